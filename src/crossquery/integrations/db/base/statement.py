"""
목적: 드라이버로 전달되는 네이티브 문장과 드라이버 결과 모델을 정의한다.
설명: SQL 계열은 text/params를, 문서/검색/키-값 계열은 command 사전을 사용한다.
디자인 패턴: 커맨드 객체, 데이터 전송 객체(DTO)
참조: src/crossquery/integrations/db/base/driver.py, src/crossquery/integrations/db/base/dialect.py
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StatementKind(str, Enum):
    """문장 종류."""

    SELECT = "select"
    COUNT = "count"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    SCAN_OPEN = "scan_open"
    SCAN_BATCH = "scan_batch"
    SCAN_CLOSE = "scan_close"
    RAW = "raw"


WRITE_KINDS = {StatementKind.INSERT, StatementKind.UPDATE, StatementKind.DELETE}


class Statement(BaseModel):
    """드라이버가 실행할 네이티브 문장이다.

    Args:
        kind: 문장 종류.
        table: 대상 테이블/컬렉션/인덱스/키 접두사.
        text: SQL/CQL 문자열.
        params: 바인딩 파라미터(플레이스홀더 순서와 일치).
        command: 구조화 네이티브 명령.
    """

    kind: StatementKind
    table: Optional[str] = None
    text: Optional[str] = None
    params: List[Any] = Field(default_factory=list)
    command: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_write(self) -> bool:
        return self.kind in WRITE_KINDS


class RowError(BaseModel):
    """배치 안에서 백엔드가 보고한 행 단위 실패이다."""

    offset: int
    error: str


class DriverResult(BaseModel):
    """드라이버 실행 결과이다.

    Args:
        rows: 조회 행.
        columns: 결과 컬럼 이름.
        affected: 영향받은 행 수.
        count: COUNT 결과.
        inserted_ids: 삽입된 식별자.
        row_errors: 행 단위 실패.
        sort_values: 행별 정렬 키(search_after용).
        scan_handle: 스캔 핸들(point-in-time 등).
    """

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    affected: int = 0
    count: Optional[int] = None
    inserted_ids: List[Any] = Field(default_factory=list)
    row_errors: List[RowError] = Field(default_factory=list)
    sort_values: List[List[Any]] = Field(default_factory=list)
    scan_handle: Optional[str] = None
