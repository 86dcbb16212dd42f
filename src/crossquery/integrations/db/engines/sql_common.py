"""
목적: DB-API 2.0 클라이언트 공통 드라이버를 제공한다.
설명: 블로킹 커넥션 풀에서 커넥션을 빌려 asyncio.to_thread로 문장을 실행하고, 결과를 행 사전으로 변환한다.
    실행 중인 요청은 request_id별 커넥션으로 추적해 백엔드 고유 취소에 사용한다.
    배치 업데이트용 트랜잭션 세션(begin/commit/rollback)을 제공한다.
디자인 패턴: 템플릿 메서드, 오브젝트 풀
참조: src/crossquery/integrations/db/base/driver.py, src/crossquery/integrations/db/base/pool.py
"""

from __future__ import annotations

import asyncio
import threading
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.base.pool import BaseConnectionPool, BlockingConnectionPool
from crossquery.integrations.db.base.session import BaseSession
from crossquery.integrations.db.base.statement import DriverResult, Statement, StatementKind
from crossquery.integrations.db.errors import NotConnectedError
from crossquery.integrations.db.resilience.classifier import is_transport_error
from crossquery.shared.logging import LogContext, Logger, create_default_logger


def rows_from_cursor(cursor: Any) -> tuple[List[str], List[Dict[str, Any]]]:
    """커서 결과를 (컬럼 목록, 행 사전 목록)으로 변환한다."""

    if cursor.description is None:
        return [], []
    columns = [item[0] for item in cursor.description]
    rows = [dict(zip(columns, record)) for record in cursor.fetchall()]
    return columns, rows


class DbApiDriver(BaseBackendDriver):
    """DB-API 드라이버 공통 구현.

    Args:
        pool_config: 커넥션 풀 설정.
        logger: 주입 가능한 로거.
    """

    ping_sql = "SELECT 1"

    def __init__(self, pool_config: Optional[PoolConfig] = None, logger: Optional[Logger] = None) -> None:
        self._pool_config = pool_config or PoolConfig()
        self._logger = logger or create_default_logger(type(self).__name__)
        self._pool: Optional[BaseConnectionPool] = None
        self._running: Dict[str, Any] = {}
        self._running_lock = threading.Lock()

    @property
    def supports_transactions(self) -> bool:
        return True

    @property
    def logger(self) -> Logger:
        return self._logger

    @property
    def pool_config(self) -> PoolConfig:
        return self._pool_config

    @abstractmethod
    def _connect(self) -> Any:
        """새 DB-API 커넥션을 만든다."""

    def _close_connection(self, connection: Any) -> None:
        connection.close()

    def _create_pool(self) -> BaseConnectionPool:
        """커넥션 풀을 만든다. 라이브러리 풀이 있는 드라이버는 재정의한다."""

        return BlockingConnectionPool(
            factory=self._connect,
            config=self._pool_config,
            closer=self._close_connection,
            logger=self._logger,
        )

    @abstractmethod
    def _cancel_connection(self, connection: Any) -> None:
        """커넥션에서 실행 중인 문장을 백엔드 고유 방식으로 취소한다."""

    async def open(self) -> None:
        if self._pool is not None:
            return
        pool = self._create_pool()
        await asyncio.to_thread(pool.open)
        self._pool = pool
        self._logger.info(f"{self.name} 커넥션 풀이 초기화되었습니다.", LogContext(backend=self.name))

    async def close(self) -> None:
        pool = self._pool
        if pool is None:
            return
        self._pool = None
        await asyncio.to_thread(pool.close_all)
        self._logger.info(f"{self.name} 커넥션 풀이 종료되었습니다.", LogContext(backend=self.name))

    def ensure_pool(self) -> BaseConnectionPool:
        """초기화된 커넥션 풀을 반환한다."""

        if self._pool is None:
            raise NotConnectedError(f"{self.name} 연결이 초기화되지 않았습니다.", backend=self.name)
        return self._pool

    async def ping(self) -> bool:
        result = await self.execute(Statement(kind=StatementKind.RAW, text=self.ping_sql))
        return bool(result.rows)

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        return await asyncio.to_thread(self._execute_sync, statement, request_id)

    def transaction(self) -> BaseSession:
        return DbApiSession(self)

    async def cancel(self, request_id: str) -> bool:
        with self._running_lock:
            connection = self._running.get(request_id)
        if connection is None:
            return False
        await asyncio.to_thread(self._cancel_connection, connection)
        self._logger.info(
            "실행 중인 요청을 취소했습니다.",
            LogContext(backend=self.name, operation="cancel", request_id=request_id),
        )
        return True

    def _execute_sync(self, statement: Statement, request_id: Optional[str]) -> DriverResult:
        pool = self.ensure_pool()
        connection = pool.acquire()
        discard = False
        if request_id:
            with self._running_lock:
                self._running[request_id] = connection
        try:
            result = self.run_on(connection, statement)
            connection.commit()
            return result
        except Exception as exc:
            discard = self._rollback_quietly(connection, exc)
            raise
        finally:
            if request_id:
                with self._running_lock:
                    self._running.pop(request_id, None)
            pool.release(connection, discard=discard)

    def run_on(self, connection: Any, statement: Statement) -> DriverResult:
        """주어진 커넥션에서 문장 하나를 실행한다(커밋하지 않는다)."""

        cursor = connection.cursor()
        try:
            cursor.execute(statement.text, self.adapt_params(statement.params))
            columns, rows = rows_from_cursor(cursor)
            if statement.kind is StatementKind.COUNT:
                count = int(next(iter(rows[0].values()))) if rows else 0
                return DriverResult(count=count)
            if statement.is_write:
                affected = cursor.rowcount if cursor.rowcount and cursor.rowcount > 0 else len(rows)
                return DriverResult(
                    affected=affected,
                    inserted_ids=[next(iter(row.values())) for row in rows] if rows else [],
                )
            affected = 0 if columns else max(cursor.rowcount or 0, 0)
            return DriverResult(rows=rows, columns=columns, affected=affected)
        finally:
            cursor.close()

    def adapt_params(self, params: Sequence[Any]) -> Sequence[Any]:
        return tuple(params)

    def _rollback_quietly(self, connection: Any, error: BaseException) -> bool:
        """롤백하고 커넥션을 버려야 하면 True를 반환한다."""

        broken = is_transport_error(error, self)
        try:
            connection.rollback()
        except Exception as exc:
            self._logger.warning(f"롤백에 실패했습니다: {exc}", LogContext(backend=self.name))
            return True
        return broken


class DbApiSession(BaseSession):
    """하나의 커넥션을 점유하는 DB-API 트랜잭션 세션."""

    def __init__(self, driver: DbApiDriver) -> None:
        self._driver = driver
        self._connection: Optional[Any] = None

    async def begin(self) -> None:
        pool = self._driver.ensure_pool()
        self._connection = await asyncio.to_thread(pool.acquire)

    async def execute(self, statement: Statement) -> DriverResult:
        if self._connection is None:
            raise RuntimeError("트랜잭션이 시작되지 않았습니다.")
        return await asyncio.to_thread(self._driver.run_on, self._connection, statement)

    async def commit(self) -> None:
        connection = self._take()
        try:
            await asyncio.to_thread(connection.commit)
        except BaseException:
            await asyncio.to_thread(self._driver.ensure_pool().release, connection, True)
            raise
        await asyncio.to_thread(self._driver.ensure_pool().release, connection)

    async def rollback(self) -> None:
        connection = self._take()
        discard = False
        try:
            await asyncio.to_thread(connection.rollback)
        except Exception as exc:
            discard = True
            self._driver.logger.warning(
                f"트랜잭션 롤백에 실패했습니다: {exc}",
                LogContext(backend=self._driver.name),
            )
        await asyncio.to_thread(self._driver.ensure_pool().release, connection, discard)

    def _take(self) -> Any:
        if self._connection is None:
            raise RuntimeError("트랜잭션이 시작되지 않았습니다.")
        connection, self._connection = self._connection, None
        return connection
