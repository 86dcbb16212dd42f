"""
목적: Cassandra 백엔드 드라이버를 제공한다.
설명: CassandraDialect가 만든 CQL을 준비된 문장으로 실행하고, 조회 결과에는 window 명령(정렬/경계/제한)을
    프로세스 내에서 적용한다. 쓰기 배치는 LOGGED BATCH로 실행하며 요청 취소는 ResponseFuture.cancel을 사용한다.
디자인 패턴: 어댑터 패턴
참조: src/crossquery/integrations/db/engines/cassandra/connection.py, src/crossquery/integrations/db/pagination/window.py
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Dict, List, Optional

from cassandra import OperationTimedOut
from cassandra.cluster import NoHostAvailable
from cassandra.connection import ConnectionException
from cassandra.query import BatchStatement, BatchType

from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.base.statement import DriverResult, Statement, StatementKind
from crossquery.integrations.db.engines.cassandra.connection import CassandraConnectionManager
from crossquery.integrations.db.pagination.window import apply_window
from crossquery.shared.logging import LogContext, Logger, create_default_logger


class CassandraDriver(BaseBackendDriver):
    """Cassandra 드라이버."""

    ping_cql = "SELECT release_version FROM system.local"

    def __init__(
        self,
        contact_points: Optional[List[str]] = None,
        port: int = 9042,
        keyspace: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        pool_config: Optional[PoolConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        pool_config = pool_config or PoolConfig()
        self._logger = logger or create_default_logger("CassandraDriver")
        self._connection = CassandraConnectionManager(
            contact_points=contact_points or ["127.0.0.1"],
            port=port,
            keyspace=keyspace,
            logger=self._logger,
            user=user,
            password=password,
            connect_timeout=pool_config.connect_timeout,
        )
        self._running: Dict[str, Any] = {}
        self._running_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "cassandra"

    async def open(self) -> None:
        await asyncio.to_thread(self._connection.connect)

    async def close(self) -> None:
        await asyncio.to_thread(self._connection.close)

    async def ping(self) -> bool:
        session = self._connection.ensure_session()
        rows = await asyncio.to_thread(lambda: list(session.execute(self.ping_cql)))
        return bool(rows)

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        return await asyncio.to_thread(self._execute_sync, statement, request_id)

    async def cancel(self, request_id: str) -> bool:
        with self._running_lock:
            future = self._running.get(request_id)
        if future is None:
            return False
        future.cancel()
        self._logger.info(
            "실행 중인 요청을 취소했습니다.",
            LogContext(backend=self.name, operation="cancel", request_id=request_id),
        )
        return True

    def is_transport_error(self, error: BaseException) -> bool:
        return isinstance(error, (NoHostAvailable, OperationTimedOut, ConnectionException))

    def _execute_sync(self, statement: Statement, request_id: Optional[str]) -> DriverResult:
        session = self._connection.ensure_session()
        batch_items = statement.command.get("batch")
        if batch_items is not None:
            batch = BatchStatement(batch_type=BatchType.LOGGED)
            for item in batch_items:
                batch.add(self._connection.prepare(item["text"]), item["params"])
            session.execute(batch)
            return DriverResult(affected=len(batch_items))
        prepared = self._connection.prepare(statement.text or "")
        future = session.execute_async(prepared, statement.params)
        if request_id:
            with self._running_lock:
                self._running[request_id] = future
        try:
            rows = list(future.result())
        finally:
            if request_id:
                with self._running_lock:
                    self._running.pop(request_id, None)
        if statement.kind is StatementKind.COUNT:
            count = int(next(iter(rows[0].values()))) if rows else 0
            return DriverResult(count=count)
        if statement.is_write:
            # CQL은 영향받은 행 수를 돌려주지 않으므로 대상 키 수로 집계한다.
            return DriverResult(affected=len(statement.params))
        window = statement.command.get("window")
        if window is not None:
            rows = apply_window(rows, window)
        return DriverResult(rows=rows, columns=list(rows[0].keys()) if rows else [])
