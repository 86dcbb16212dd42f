"""
목적: MongoDB 백엔드 드라이버를 제공한다.
설명: MongoDialect가 만든 명령 사전(find/count/insert_many/bulk_update/delete_many)을 pymongo 호출로 실행한다.
    24자리 16진 문자열 _id는 ObjectId로 바꿔 질의하고 결과의 ObjectId는 문자열로 돌려준다.
    BulkWriteError의 writeErrors는 행 단위 실패로 보고하며, 요청 취소는 comment로 찾은 작업을 killOp한다.
디자인 패턴: 어댑터 패턴
참조: src/crossquery/integrations/db/engines/mongodb/connection.py, src/crossquery/integrations/db/dialects/mongodb.py
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import UpdateOne
from pymongo.errors import BulkWriteError, ConnectionFailure

from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.base.statement import DriverResult, RowError, Statement
from crossquery.integrations.db.engines.mongodb.connection import MongoConnectionManager
from crossquery.integrations.db.errors import BackendError
from crossquery.shared.logging import LogContext, Logger, create_default_logger

ID_FIELD = "_id"


def coerce_object_ids(value: Any, is_id: bool = False) -> Any:
    """_id 자리의 24자리 16진 문자열을 ObjectId로 바꾼다."""

    if isinstance(value, dict):
        return {
            key: coerce_object_ids(item, is_id or key == ID_FIELD)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [coerce_object_ids(item, is_id) for item in value]
    if is_id and isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _plain(document: Dict[str, Any]) -> Dict[str, Any]:
    return {key: str(value) if isinstance(value, ObjectId) else value for key, value in document.items()}


class MongoDriver(BaseBackendDriver):
    """MongoDB 드라이버."""

    def __init__(
        self,
        uri: Optional[str] = None,
        database: str = "admin",
        host: str = "127.0.0.1",
        port: int = 27017,
        user: Optional[str] = None,
        password: Optional[str] = None,
        auth_source: Optional[str] = None,
        scheme: str = "mongodb",
        pool_config: Optional[PoolConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        if auth_source is None and (user or password) and database:
            auth_source = database
        if not uri:
            auth = ""
            if user and password:
                auth = f"{user}:{password}@"
            elif user:
                auth = f"{user}@"
            uri = f"{scheme}://{auth}{host}:{port}"
        if not database:
            raise ValueError("database 설정이 필요합니다.")
        pool_config = pool_config or PoolConfig()
        self._logger = logger or create_default_logger("MongoDriver")
        self._connection = MongoConnectionManager(
            uri=uri,
            database_name=database,
            auth_source=auth_source,
            logger=self._logger,
            connect_timeout=pool_config.connect_timeout,
            max_pool_size=pool_config.max_connections,
        )

    @property
    def name(self) -> str:
        return "mongodb"

    async def open(self) -> None:
        await asyncio.to_thread(self._connection.connect)

    async def close(self) -> None:
        await asyncio.to_thread(self._connection.close)

    async def ping(self) -> bool:
        client = self._connection.ensure_client()
        response = await asyncio.to_thread(client.admin.command, "ping")
        return bool(response.get("ok"))

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        return await asyncio.to_thread(self._execute_sync, statement, request_id)

    async def cancel(self, request_id: str) -> bool:
        client = self._connection.ensure_client()
        killed = await asyncio.to_thread(self._kill_by_comment, client, request_id)
        if killed:
            self._logger.info(
                "실행 중인 요청을 취소했습니다.",
                LogContext(backend=self.name, operation="cancel", request_id=request_id),
                metadata={"operations": killed},
            )
        return killed > 0

    def is_transport_error(self, error: BaseException) -> bool:
        return isinstance(error, ConnectionFailure)

    def _execute_sync(self, statement: Statement, request_id: Optional[str]) -> DriverResult:
        command = statement.command
        operation = command.get("operation")
        collection = self._connection.ensure_database()[statement.table]
        options: Dict[str, Any] = {"comment": request_id} if request_id else {}
        if operation == "find":
            cursor = collection.find(
                coerce_object_ids(command.get("filter") or {}),
                sort=[(field, direction) for field, direction in command.get("sort") or []] or None,
                skip=int(command.get("skip") or 0),
                limit=int(command.get("limit") or 0),
                **options,
            )
            rows = [_plain(document) for document in cursor]
            return DriverResult(rows=rows)
        if operation == "count":
            count = collection.count_documents(coerce_object_ids(command.get("filter") or {}), **options)
            return DriverResult(count=count)
        if operation == "insert_many":
            return self._insert_many(collection, command)
        if operation == "bulk_update":
            return self._bulk_update(collection, command)
        if operation == "delete_many":
            result = collection.delete_many(coerce_object_ids(command["filter"]), **options)
            return DriverResult(affected=result.deleted_count)
        raise BackendError(
            f"지원하지 않는 MongoDB 명령입니다: {operation}",
            operation="execute",
            table=statement.table,
            backend=self.name,
        )

    def _insert_many(self, collection: Any, command: Dict[str, Any]) -> DriverResult:
        documents = [coerce_object_ids(document) for document in command["documents"]]
        try:
            result = collection.insert_many(documents, ordered=command.get("ordered", False))
        except BulkWriteError as exc:
            details = exc.details or {}
            return DriverResult(
                affected=int(details.get("nInserted", 0)),
                row_errors=self._row_errors(details),
            )
        return DriverResult(
            affected=len(result.inserted_ids),
            inserted_ids=[str(value) if isinstance(value, ObjectId) else value for value in result.inserted_ids],
        )

    def _bulk_update(self, collection: Any, command: Dict[str, Any]) -> DriverResult:
        requests = [
            UpdateOne(coerce_object_ids(item["filter"]), item["update"])
            for item in command["updates"]
        ]
        try:
            result = collection.bulk_write(requests, ordered=command.get("ordered", False))
        except BulkWriteError as exc:
            details = exc.details or {}
            return DriverResult(
                affected=int(details.get("nMatched", 0)),
                row_errors=self._row_errors(details),
            )
        return DriverResult(affected=result.matched_count)

    def _row_errors(self, details: Dict[str, Any]) -> List[RowError]:
        return [
            RowError(offset=int(error.get("index", 0)), error=str(error.get("errmsg", "write error")))
            for error in details.get("writeErrors", [])
        ]

    def _kill_by_comment(self, client: Any, request_id: str) -> int:
        admin = client.admin
        operations = admin.command({"currentOp": True, "command.comment": request_id}).get("inprog", [])
        for operation in operations:
            admin.command({"killOp": 1, "op": operation["opid"]})
        return len(operations)
