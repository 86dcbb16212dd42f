"""
목적: 백엔드 드라이버 추상 인터페이스를 정의한다.
설명: 코어가 백엔드에 접근하는 유일한 경로로 open/close/ping/execute와
    트랜잭션, 요청 취소 훅을 제공한다.
디자인 패턴: 전략 패턴, 어댑터 패턴
참조: src/crossquery/integrations/db/base/statement.py, src/crossquery/integrations/db/base/session.py
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from crossquery.integrations.db.base.session import BaseSession
from crossquery.integrations.db.base.statement import DriverResult, Statement


class BaseBackendDriver(ABC):
    """백엔드 드라이버 인터페이스."""

    @property
    @abstractmethod
    def name(self) -> str:
        """드라이버 이름을 반환한다."""

    @property
    def supports_transactions(self) -> bool:
        """다중 문장 트랜잭션 지원 여부를 반환한다."""

        return False

    @abstractmethod
    async def open(self) -> None:
        """연결(풀/클라이언트)을 연다."""

    @abstractmethod
    async def close(self) -> None:
        """연결을 닫는다. 이미 닫혀 있으면 아무것도 하지 않는다."""

    @abstractmethod
    async def ping(self) -> bool:
        """가벼운 생존 확인을 수행한다. 실패하면 예외를 던진다."""

    @abstractmethod
    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        """네이티브 문장을 실행한다."""

    def transaction(self) -> BaseSession:
        """트랜잭션 세션을 반환한다."""

        raise NotImplementedError(f"{self.name} 드라이버는 트랜잭션을 지원하지 않습니다.")

    async def cancel(self, request_id: str) -> bool:
        """진행 중인 요청을 백엔드 고유 방식으로 취소한다. 취소했으면 True."""

        return False

    def is_transport_error(self, error: BaseException) -> bool:
        """라이브러리 고유 예외 중 연결 손실에 해당하는지 판별한다."""

        return False
