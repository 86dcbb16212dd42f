"""
목적: Elasticsearch 백엔드 드라이버를 제공한다.
설명: ElasticsearchDialect가 만든 명령(search/count/bulk/delete_by_query/point-in-time)을 실행한다.
    검색 결과는 _id를 포함한 행과 행별 sort 값으로, bulk 응답 항목의 실패는 행 단위 실패로 변환한다.
    요청 취소는 opaque id로 찾은 태스크를 tasks.cancel로 중단한다.
디자인 패턴: 어댑터 패턴
참조: src/crossquery/integrations/db/engines/elasticsearch/connection.py, src/crossquery/integrations/db/dialects/elasticsearch.py
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from elasticsearch import ConnectionError as ElasticConnectionError
from elasticsearch import ConnectionTimeout

from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.base.statement import DriverResult, RowError, Statement
from crossquery.integrations.db.engines.elasticsearch.connection import ElasticConnectionManager
from crossquery.integrations.db.errors import BackendError
from crossquery.shared.logging import LogContext, Logger, create_default_logger

_SEARCH_KEYS = {
    "query": "query",
    "sort": "sort",
    "size": "size",
    "from": "from_",
    "search_after": "search_after",
    "pit": "pit",
    "track_total_hits": "track_total_hits",
}


def search_kwargs(body: Dict[str, Any]) -> Dict[str, Any]:
    """검색 본문을 클라이언트 키워드 인자로 바꾼다."""

    return {_SEARCH_KEYS[key]: value for key, value in body.items() if key in _SEARCH_KEYS}


def rows_from_hits(response: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], List[List[Any]]]:
    """검색 응답을 (행 목록, 행별 sort 값)으로 변환한다."""

    rows: List[Dict[str, Any]] = []
    sort_values: List[List[Any]] = []
    for hit in response.get("hits", {}).get("hits", []):
        row = {"_id": hit.get("_id")}
        row.update(hit.get("_source") or {})
        rows.append(row)
        sort_values.append(list(hit.get("sort") or []))
    return rows, sort_values


class ElasticsearchDriver(BaseBackendDriver):
    """Elasticsearch 드라이버."""

    def __init__(
        self,
        hosts: Optional[List[str]] = None,
        ca_certs: Optional[str] = None,
        verify_certs: Optional[bool] = None,
        ssl_assert_fingerprint: Optional[str] = None,
        basic_auth: Optional[Tuple[str, str]] = None,
        refresh: bool = False,
        pool_config: Optional[PoolConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        pool_config = pool_config or PoolConfig()
        self._logger = logger or create_default_logger("ElasticsearchDriver")
        self._refresh = refresh
        self._connection = ElasticConnectionManager(
            hosts=hosts or ["http://localhost:9200"],
            logger=self._logger,
            ca_certs=ca_certs,
            verify_certs=verify_certs,
            ssl_assert_fingerprint=ssl_assert_fingerprint,
            basic_auth=basic_auth,
            request_timeout=pool_config.connect_timeout,
            max_connections=pool_config.max_connections,
        )

    @property
    def name(self) -> str:
        return "elasticsearch"

    async def open(self) -> None:
        await asyncio.to_thread(self._connection.connect)

    async def close(self) -> None:
        await asyncio.to_thread(self._connection.close)

    async def ping(self) -> bool:
        client = self._connection.ensure_client()
        return bool(await asyncio.to_thread(client.ping))

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        return await asyncio.to_thread(self._execute_sync, statement, request_id)

    async def cancel(self, request_id: str) -> bool:
        client = self._connection.ensure_client()
        cancelled = await asyncio.to_thread(self._cancel_by_opaque_id, client, request_id)
        if cancelled:
            self._logger.info(
                "실행 중인 요청을 취소했습니다.",
                LogContext(backend=self.name, operation="cancel", request_id=request_id),
                metadata={"tasks": cancelled},
            )
        return cancelled > 0

    def is_transport_error(self, error: BaseException) -> bool:
        return isinstance(error, (ElasticConnectionError, ConnectionTimeout))

    def _execute_sync(self, statement: Statement, request_id: Optional[str]) -> DriverResult:
        command = statement.command
        operation = command.get("operation")
        client = self._connection.with_options(request_id)
        if operation == "search":
            index = command.get("index")
            kwargs = search_kwargs(command.get("body") or {})
            if index:
                kwargs["index"] = index
            response = client.search(**kwargs)
            rows, sort_values = rows_from_hits(response)
            return DriverResult(rows=rows, sort_values=sort_values, scan_handle=response.get("pit_id"))
        if operation == "count":
            response = client.count(index=command["index"], query=command["body"]["query"])
            return DriverResult(count=int(response["count"]))
        if operation == "open_point_in_time":
            response = client.open_point_in_time(index=command["index"], keep_alive=command["keep_alive"])
            return DriverResult(scan_handle=response["id"])
        if operation == "close_point_in_time":
            client.close_point_in_time(id=command["id"])
            return DriverResult()
        if operation == "bulk":
            return self._bulk(client, command["actions"])
        if operation == "delete_by_query":
            response = client.delete_by_query(
                index=command["index"],
                query=command["body"]["query"],
                refresh=self._refresh,
            )
            return DriverResult(affected=int(response.get("deleted", 0)))
        raise BackendError(
            f"지원하지 않는 Elasticsearch 명령입니다: {operation}",
            operation="execute",
            table=statement.table,
            backend=self.name,
        )

    def _bulk(self, client: Any, actions: List[Dict[str, Any]]) -> DriverResult:
        response = client.bulk(operations=actions, refresh=self._refresh)
        affected = 0
        inserted_ids: List[Any] = []
        row_errors: List[RowError] = []
        for offset, item in enumerate(response.get("items", [])):
            action, outcome = next(iter(item.items()))
            status = int(outcome.get("status", 500))
            if action == "delete" and outcome.get("result") == "not_found" and not outcome.get("error"):
                # 없는 문서 삭제(404)는 실패가 아니라 미집계로 남긴다.
                continue
            if outcome.get("error") or status >= 300:
                row_errors.append(RowError(offset=offset, error=self._describe(outcome)))
                continue
            affected += 1
            if action in ("index", "create"):
                inserted_ids.append(outcome.get("_id"))
        return DriverResult(affected=affected, inserted_ids=inserted_ids, row_errors=row_errors)

    def _describe(self, outcome: Dict[str, Any]) -> str:
        error = outcome.get("error")
        if isinstance(error, dict):
            return f"{error.get('type', 'error')}: {error.get('reason', '')}".strip()
        if error:
            return str(error)
        return f"status {outcome.get('status')}"

    def _cancel_by_opaque_id(self, client: Any, request_id: str) -> int:
        response = client.tasks.list(detailed=True)
        cancelled = 0
        for node in response.get("nodes", {}).values():
            for task_id, task in node.get("tasks", {}).items():
                headers = task.get("headers") or {}
                if headers.get("X-Opaque-Id") == request_id and task.get("cancellable"):
                    client.tasks.cancel(task_id=task_id)
                    cancelled += 1
        return cancelled
