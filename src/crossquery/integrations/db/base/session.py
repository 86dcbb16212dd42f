"""
목적: 비동기 트랜잭션 세션 추상화를 제공한다.
설명: 배치 업데이트처럼 여러 문장을 하나의 트랜잭션으로 묶기 위한 인터페이스를 정의한다.
디자인 패턴: 템플릿 메서드, 컨텍스트 매니저
참조: src/crossquery/integrations/db/base/driver.py, src/crossquery/integrations/db/engines/sql_common.py
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from crossquery.integrations.db.base.statement import DriverResult, Statement


class BaseSession(ABC):
    """DB 세션 인터페이스."""

    @abstractmethod
    async def begin(self) -> None:
        """트랜잭션을 시작한다."""

    @abstractmethod
    async def commit(self) -> None:
        """트랜잭션을 커밋한다."""

    @abstractmethod
    async def rollback(self) -> None:
        """트랜잭션을 롤백한다."""

    @abstractmethod
    async def execute(self, statement: Statement) -> DriverResult:
        """트랜잭션 안에서 문장을 실행한다."""

    async def __aenter__(self) -> "BaseSession":
        await self.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()
