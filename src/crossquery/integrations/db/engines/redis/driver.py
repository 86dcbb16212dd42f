"""
목적: Redis 백엔드 드라이버를 제공한다.
설명: 행을 "<table>:<id>" 해시로 다룬다. 조회는 SCAN으로 키를 모아 파이프라인 HGETALL로 읽은 뒤
    프로세스 내에서 필터와 window(정렬/경계/제한)를 적용한다. 쓰기는 MULTI/EXEC 파이프라인으로 실행한다.
    Redis 명령은 짧게 끝나므로 네이티브 취소를 제공하지 않는다.
디자인 패턴: 어댑터 패턴
참조: src/crossquery/integrations/db/engines/redis/connection.py, src/crossquery/integrations/db/dialects/redis.py
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.base.statement import DriverResult, RowError, Statement
from crossquery.integrations.db.engines.redis.connection import RedisConnectionManager
from crossquery.integrations.db.engines.redis.filter_evaluator import RedisFilterEvaluator
from crossquery.integrations.db.engines.redis.keyspace import RedisKeyspaceHelper
from crossquery.integrations.db.errors import BackendError
from crossquery.integrations.db.pagination.window import apply_window, compare_values
from crossquery.shared.logging import Logger, create_default_logger


def _encode(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float, bytes)):
        return value
    return str(value)


class RedisDriver(BaseBackendDriver):
    """Redis 드라이버."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        pool_config: Optional[PoolConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        pool_config = pool_config or PoolConfig()
        self._logger = logger or create_default_logger("RedisDriver")
        self._connection = RedisConnectionManager(
            url=url,
            logger=self._logger,
            connect_timeout=pool_config.connect_timeout,
            max_connections=pool_config.max_connections,
        )
        self._keyspace = RedisKeyspaceHelper()
        self._evaluator = RedisFilterEvaluator()

    @property
    def name(self) -> str:
        return "redis"

    async def open(self) -> None:
        await asyncio.to_thread(self._connection.connect)

    async def close(self) -> None:
        await asyncio.to_thread(self._connection.close)

    async def ping(self) -> bool:
        client = self._connection.ensure_client()
        return bool(await asyncio.to_thread(client.ping))

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        return await asyncio.to_thread(self._execute_sync, statement)

    def is_transport_error(self, error: BaseException) -> bool:
        return isinstance(error, (RedisConnectionError, RedisTimeoutError))

    def _execute_sync(self, statement: Statement) -> DriverResult:
        command = statement.command
        operation = command.get("operation")
        client = self._connection.ensure_client()
        prefix = command.get("prefix") or statement.table
        if operation == "scan_rows":
            rows = [row for _, row in self._load_rows(client, prefix) if self._evaluator.match(row, command.get("filter"))]
            return DriverResult(rows=apply_window(rows, command.get("window") or {}))
        if operation == "count_rows":
            count = sum(1 for _, row in self._load_rows(client, prefix) if self._evaluator.match(row, command.get("filter")))
            return DriverResult(count=count)
        if operation == "hset_many":
            return self._hset_many(client, prefix, command["items"], bool(command.get("require_existing")))
        if operation == "delete_keys":
            keys = [self._keyspace.make_key(prefix, row_id) for row_id in command["ids"]]
            return DriverResult(affected=int(client.delete(*keys)) if keys else 0)
        if operation == "delete_matching":
            return self._delete_matching(client, prefix, command["keys"])
        raise BackendError(
            f"지원하지 않는 Redis 명령입니다: {operation}",
            operation="execute",
            table=statement.table,
            backend=self.name,
        )

    def _load_rows(self, client: Any, prefix: str) -> List[tuple]:
        keys = self._keyspace.scan_keys(client, self._keyspace.pattern(prefix))
        if not keys:
            return []
        pipeline = client.pipeline(transaction=False)
        for key in keys:
            pipeline.hgetall(key)
        return [(key, row) for key, row in zip(keys, pipeline.execute()) if row]

    def _hset_many(
        self,
        client: Any,
        prefix: str,
        items: List[Dict[str, Any]],
        require_existing: bool,
    ) -> DriverResult:
        keys = [self._keyspace.make_key(prefix, item["id"]) for item in items]
        row_errors: List[RowError] = []
        writable = list(range(len(items)))
        if require_existing:
            check = client.pipeline(transaction=False)
            for key in keys:
                check.exists(key)
            exists = check.execute()
            writable = [offset for offset in writable if exists[offset]]
            row_errors = [
                RowError(offset=offset, error=f"행이 존재하지 않습니다: {keys[offset]}")
                for offset in range(len(items))
                if not exists[offset]
            ]
        pipeline = client.pipeline(transaction=True)
        for offset in writable:
            mapping = items[offset]["mapping"]
            values = {field: _encode(value) for field, value in mapping.items() if value is not None}
            nulls = [field for field, value in mapping.items() if value is None]
            if values:
                pipeline.hset(keys[offset], mapping=values)
            if nulls:
                pipeline.hdel(keys[offset], *nulls)
        if writable:
            pipeline.execute()
        return DriverResult(
            affected=len(writable),
            inserted_ids=[items[offset]["id"] for offset in writable] if not require_existing else [],
            row_errors=row_errors,
        )

    def _delete_matching(self, client: Any, prefix: str, targets: List[Dict[str, Any]]) -> DriverResult:
        doomed = [
            key
            for key, row in self._load_rows(client, prefix)
            if any(
                all(row.get(column) is not None and compare_values(row.get(column), value) == 0 for column, value in target.items())
                for target in targets
            )
        ]
        if not doomed:
            return DriverResult()
        return DriverResult(affected=int(client.delete(*doomed)))
