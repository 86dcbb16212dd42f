"""
목적: 백엔드별 조회/벌크/연결 관리를 하나로 묶는 어댑터 파사드를 제공한다.
설명: 필터 컴파일러, 커서 페이지네이터, 벌크 코디네이터, 연결 복원력 관리자를 조립하고
    모든 드라이버 호출을 복원력 관리자로 감싼다. 읽기 전용 설정은 I/O 이전에 쓰기를 거부하며,
    request_id로 등록한 실행 중 작업은 cancel_query로 취소할 수 있다.
디자인 패턴: 파사드, 의존성 주입
참조: src/crossquery/integrations/db/resilience/manager.py, src/crossquery/integrations/db/settings.py
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar, Union

from crossquery.integrations.db.base.dialect import BaseDialect
from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import (
    BulkOptions,
    BulkResult,
    BulkUpdateItem,
    ColumnMeta,
    CompiledQuery,
    ConnectionState,
    ConnectionStatus,
    FilterSet,
    PageRequest,
    PageResult,
    StatusEvent,
)
from crossquery.integrations.db.base.statement import DriverResult, Statement, StatementKind
from crossquery.integrations.db.bulk import BulkOperationCoordinator, Guard
from crossquery.integrations.db.compiler import FilterCompiler
from crossquery.integrations.db.errors import ReadOnlyViolationError
from crossquery.integrations.db.metadata import MetadataProvider
from crossquery.integrations.db.pagination import CursorPaginator
from crossquery.integrations.db.resilience import ConnectionResilienceManager
from crossquery.integrations.db.settings import AdapterSettings
from crossquery.shared.logging import LogContext, Logger, create_default_logger

T = TypeVar("T")
RawFilter = Union[FilterSet, Mapping[str, Any], None]

_WRITE_KEYWORDS = {"insert", "update", "delete", "merge", "upsert", "replace", "create", "drop", "alter", "truncate"}


def _is_write(statement: Statement) -> bool:
    if statement.is_write:
        return True
    if statement.kind is StatementKind.RAW and statement.text:
        words = statement.text.split(None, 1)
        return bool(words) and words[0].lower() in _WRITE_KEYWORDS
    return False


class AdapterFacade:
    """백엔드 어댑터 파사드.

    Args:
        driver: 백엔드 드라이버.
        dialect: 드라이버와 짝을 이루는 다이얼렉트.
        settings: 어댑터 설정.
        metadata: 컬럼 메타데이터 공급자.
        logger: 주입 가능한 로거.
        sleep: 재연결 백오프 대기 함수.
    """

    def __init__(
        self,
        driver: BaseBackendDriver,
        dialect: BaseDialect,
        settings: Optional[AdapterSettings] = None,
        metadata: Optional[MetadataProvider] = None,
        logger: Optional[Logger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._driver = driver
        self._dialect = dialect
        self._settings = settings or AdapterSettings()
        self._metadata = metadata
        self._logger = logger or create_default_logger("AdapterFacade")
        self._compiler = FilterCompiler(self._settings.compile_limits, logger=self._logger)
        self._paginator = CursorPaginator(
            self._compiler,
            scan_batch_size=self._settings.scan_batch_size,
            logger=self._logger,
        )
        self._coordinator = BulkOperationCoordinator(self._settings.batch_sizes, logger=self._logger)
        self._manager = ConnectionResilienceManager(
            driver,
            policy=self._settings.reconnect,
            health_check_interval=self._settings.health_check_interval,
            operation_policy=self._settings.operation_policy,
            logger=self._logger,
            sleep=sleep,
        )
        self._running: Dict[str, asyncio.Task] = {}

    @property
    def driver(self) -> BaseBackendDriver:
        return self._driver

    @property
    def dialect(self) -> BaseDialect:
        return self._dialect

    @property
    def settings(self) -> AdapterSettings:
        return self._settings

    @property
    def manager(self) -> ConnectionResilienceManager:
        return self._manager

    @property
    def is_connected(self) -> bool:
        return self._manager.status is ConnectionStatus.CONNECTED

    async def connect(self) -> ConnectionState:
        return await self._manager.connect()

    async def disconnect(self) -> ConnectionState:
        return await self._manager.disconnect()

    async def ping(self) -> bool:
        return await self._manager.ping()

    async def reconnect(self) -> ConnectionState:
        return await self._manager.reconnect()

    def status(self) -> ConnectionState:
        """현재 연결 상태 스냅샷을 반환한다."""

        return self._manager.state

    def subscribe(self, listener: Callable[[StatusEvent], Any]) -> Callable[[], None]:
        return self._manager.subscribe(listener)

    def build_query(
        self,
        filter_set: RawFilter,
        columns: Optional[Sequence[ColumnMeta]] = None,
    ) -> CompiledQuery:
        """필터를 이 어댑터의 다이얼렉트로 컴파일한다. I/O는 없다."""

        return self._compiler.compile(self._compiler.parse(filter_set), self._dialect, columns)

    async def fetch_page(
        self,
        table: str,
        request: Optional[PageRequest] = None,
        filter_set: RawFilter = None,
        request_id: Optional[str] = None,
    ) -> PageResult:
        """필터를 적용한 한 페이지를 조회한다."""

        request = request or PageRequest(limit=self._settings.default_page_size)
        parsed = self._compiler.parse(filter_set)
        columns = await self._columns(table)

        async def execute(statement: Statement) -> DriverResult:
            return await self._manager.run(
                "fetch_page",
                lambda: self._driver.execute(statement, request_id),
                table,
            )

        async def call() -> PageResult:
            return await self._paginator.fetch_page(
                request,
                parsed,
                self._driver,
                table=table,
                dialect=self._dialect,
                columns=columns,
                execute=execute,
            )

        return await self._tracked(request_id, call)

    async def count_filtered(
        self,
        table: str,
        filter_set: RawFilter = None,
        request_id: Optional[str] = None,
    ) -> int:
        """필터에 맞는 행 수를 반환한다."""

        columns = await self._columns(table)
        compiled = self._compiler.compile(self._compiler.parse(filter_set), self._dialect, columns)
        statement = self._dialect.build_count(table, compiled)

        async def call() -> int:
            result = await self._manager.run(
                "count_filtered",
                lambda: self._driver.execute(statement, request_id),
                table,
            )
            return int(result.count or 0)

        return await self._tracked(request_id, call)

    async def run_query(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        """네이티브 문장을 그대로 실행한다. 읽기 전용이면 쓰기 문장을 거부한다."""

        if _is_write(statement):
            self._check_writable("run_query", statement.table)

        async def call() -> DriverResult:
            return await self._manager.run(
                "run_query",
                lambda: self._driver.execute(statement, request_id),
                statement.table,
            )

        return await self._tracked(request_id, call)

    async def cancel_query(self, request_id: str) -> bool:
        """실행 중인 요청을 취소한다. 백엔드 취소와 대기 작업 취소를 모두 시도한다."""

        context = LogContext(backend=self._dialect.name, operation="cancel_query", request_id=request_id)
        cancelled = False
        try:
            cancelled = await self._driver.cancel(request_id)
        except Exception as exc:
            self._logger.warning(f"백엔드 취소에 실패했습니다: {exc}", context)
        task = self._running.get(request_id)
        if task is not None and not task.done():
            task.cancel()
            cancelled = True
        self._logger.info("요청 취소를 처리했습니다.", context, metadata={"cancelled": cancelled})
        return cancelled

    async def bulk_insert(
        self,
        table: str,
        rows: Sequence[Dict[str, Any]],
        options: Optional[BulkOptions] = None,
        returning: Optional[str] = None,
    ) -> BulkResult:
        self._check_writable("bulk_insert", table)
        return await self._coordinator.bulk_insert(
            rows,
            table=table,
            dialect=self._dialect,
            driver=self._driver,
            options=options,
            returning=returning,
            guard=self._guard(table),
        )

    async def bulk_update(
        self,
        table: str,
        items: Sequence[Union[BulkUpdateItem, Dict[str, Any]]],
        options: Optional[BulkOptions] = None,
    ) -> BulkResult:
        self._check_writable("bulk_update", table)
        return await self._coordinator.bulk_update(
            items,
            table=table,
            dialect=self._dialect,
            driver=self._driver,
            options=options,
            guard=self._guard(table),
        )

    async def bulk_delete(
        self,
        table: str,
        keys: Sequence[Dict[str, Any]],
        options: Optional[BulkOptions] = None,
    ) -> BulkResult:
        self._check_writable("bulk_delete", table)
        return await self._coordinator.bulk_delete(
            keys,
            table=table,
            dialect=self._dialect,
            driver=self._driver,
            options=options,
            guard=self._guard(table),
        )

    async def __aenter__(self) -> "AdapterFacade":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def _columns(self, table: str) -> List[ColumnMeta]:
        if self._metadata is None:
            return []
        return await self._metadata.get_columns(table)

    def _guard(self, table: str) -> Guard:
        async def guard(operation: str, call: Callable[[], Awaitable[DriverResult]]) -> DriverResult:
            return await self._manager.run(operation, call, table)

        return guard

    def _check_writable(self, operation: str, table: Optional[str]) -> None:
        if self._settings.read_only:
            raise ReadOnlyViolationError(
                "읽기 전용 어댑터에서는 쓰기를 수행할 수 없습니다.",
                operation=operation,
                table=table,
                backend=self._dialect.name,
            )

    async def _tracked(self, request_id: Optional[str], func: Callable[[], Awaitable[T]]) -> T:
        if request_id is None:
            return await func()
        task = asyncio.ensure_future(func())
        self._running[request_id] = task
        try:
            return await task
        finally:
            if self._running.get(request_id) is task:
                del self._running[request_id]
