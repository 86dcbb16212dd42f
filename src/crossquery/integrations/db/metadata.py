"""
목적: 컬럼 메타데이터 조회 인터페이스와 캐시 구현을 제공한다.
설명: 커서 컬럼 선택(기본 키/정렬 가능 여부)과 검색 필드 매핑에 필요한 ColumnMeta를 테이블별로 조회한다.
    CachedMetadataProvider는 내부 공급자 결과를 TTL 동안 보관한다.
디자인 패턴: 저장소 패턴, 캐시 프록시
참조: src/crossquery/integrations/db/client.py, src/crossquery/integrations/db/pagination/cursor_paginator.py
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from crossquery.integrations.db.base.models import ColumnMeta
from crossquery.shared.logging import Logger, create_default_logger


class MetadataProvider(ABC):
    """컬럼 메타데이터 공급자 인터페이스."""

    @abstractmethod
    async def get_columns(self, table: str) -> List[ColumnMeta]:
        """테이블의 컬럼 메타데이터를 반환한다. 모르면 빈 목록이다."""


class StaticMetadataProvider(MetadataProvider):
    """미리 등록한 메타데이터를 반환하는 공급자."""

    def __init__(self, tables: Optional[Mapping[str, Iterable[ColumnMeta]]] = None) -> None:
        self._tables: Dict[str, List[ColumnMeta]] = {
            table: list(columns) for table, columns in (tables or {}).items()
        }

    def register(self, table: str, columns: Iterable[ColumnMeta]) -> None:
        self._tables[table] = list(columns)

    async def get_columns(self, table: str) -> List[ColumnMeta]:
        return [column.model_copy() for column in self._tables.get(table, [])]


class CachedMetadataProvider(MetadataProvider):
    """TTL 캐시 공급자.

    Args:
        inner: 실제 조회를 수행하는 공급자.
        ttl_seconds: 캐시 유지 시간(초).
        clock: 단조 시계(테스트에서 교체 가능).
        logger: 주입 가능한 로거.
    """

    def __init__(
        self,
        inner: MetadataProvider,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[Logger] = None,
    ) -> None:
        self._inner = inner
        self._ttl = ttl_seconds
        self._clock = clock
        self._logger = logger or create_default_logger("CachedMetadataProvider")
        self._cache: Dict[str, Tuple[float, List[ColumnMeta]]] = {}
        self._lock = asyncio.Lock()

    async def get_columns(self, table: str) -> List[ColumnMeta]:
        async with self._lock:
            cached = self._cache.get(table)
            now = self._clock()
            if cached is not None and now - cached[0] < self._ttl:
                return list(cached[1])
            columns = await self._inner.get_columns(table)
            self._cache[table] = (now, list(columns))
            self._logger.debug(f"컬럼 메타데이터를 갱신했습니다: {table}", metadata={"columns": len(columns)})
            return list(columns)

    def invalidate(self, table: Optional[str] = None) -> None:
        """캐시를 비운다. table이 없으면 전체를 비운다."""

        if table is None:
            self._cache.clear()
        else:
            self._cache.pop(table, None)
