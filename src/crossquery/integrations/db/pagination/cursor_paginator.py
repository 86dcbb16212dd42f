"""
목적: 백엔드 공통 키셋(커서) 페이지네이션을 제공한다.
설명: 커서 컬럼을 고르고(정렬 컬럼 > 기본 키 > 첫 컬럼), 필터 조각에 경계 조건을 AND로 더해
    limit+1행을 조회한 뒤 다음/이전 커서를 만든다. 역방향은 정렬을 뒤집어 조회하고 행을 되돌린다.
    최대 결과 창이 있는 백엔드에서 창을 넘는 오프셋은 스캔 핸들 기반 스킵 포워드로 처리한다.
디자인 패턴: 템플릿 메서드, 전략 패턴
참조: src/crossquery/integrations/db/base/dialect.py, src/crossquery/integrations/db/client.py
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from crossquery.integrations.db.base.dialect import BaseDialect
from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import (
    ColumnMeta,
    CompiledQuery,
    CursorDirection,
    CursorPosition,
    FilterSet,
    KeysetBoundary,
    PageRequest,
    PageResult,
    SortDirection,
    SortKey,
)
from crossquery.integrations.db.base.statement import DriverResult, Statement
from crossquery.integrations.db.compiler import FilterCompiler, column_map
from crossquery.integrations.db.compiler.filter_compiler import ColumnsArg
from crossquery.integrations.db.errors import CompileError, DatabaseError
from crossquery.shared.logging import LogContext, Logger, create_default_logger

Executor = Callable[[Statement], Awaitable[DriverResult]]


class CursorPaginator:
    """키셋 페이지네이터.

    Args:
        compiler: 필터 컴파일러.
        scan_batch_size: 스킵 포워드 시 한 번에 건너뛸 최대 행 수.
        logger: 주입 가능한 로거.
    """

    def __init__(
        self,
        compiler: Optional[FilterCompiler] = None,
        scan_batch_size: int = 1000,
        logger: Optional[Logger] = None,
    ) -> None:
        self._compiler = compiler or FilterCompiler()
        self._scan_batch_size = scan_batch_size
        self._logger = logger or create_default_logger("CursorPaginator")

    def choose_keys(self, request: PageRequest, columns: Dict[str, ColumnMeta]) -> List[str]:
        """커서 컬럼과 (필요하면) 기본 키 보조 정렬 컬럼을 반환한다."""

        primary = next(
            (meta.name for meta in columns.values() if meta.is_primary_key and meta.sortable),
            None,
        )
        if request.sort_column:
            cursor_column = request.sort_column
            meta = columns.get(cursor_column)
            if meta is not None and not meta.sortable:
                raise CompileError(
                    "정렬할 수 없는 컬럼입니다.",
                    operation="fetch_page",
                    column=cursor_column,
                )
        elif primary is not None:
            cursor_column = primary
        else:
            cursor_column = next((meta.name for meta in columns.values() if meta.sortable), None)
        if cursor_column is None:
            return []
        if primary is not None and primary != cursor_column:
            return [cursor_column, primary]
        return [cursor_column]

    async def fetch_page(
        self,
        request: PageRequest,
        filter_set: FilterSet,
        driver: Optional[BaseBackendDriver],
        *,
        table: str,
        dialect: BaseDialect,
        columns: ColumnsArg = None,
        execute: Optional[Executor] = None,
        compiled: Optional[CompiledQuery] = None,
    ) -> PageResult:
        """한 페이지를 조회한다."""

        if execute is None:
            if driver is None:
                raise ValueError("driver 또는 execute 중 하나가 필요합니다.")
            execute = driver.execute
        metas = column_map(columns)
        compiled = compiled or self._compiler.compile(filter_set, dialect, metas)
        key_columns = self.choose_keys(request, metas)
        if not key_columns:
            key_columns = await self._discover_keys(compiled, table, dialect, metas, execute)
            if not key_columns:
                return PageResult()
        if request.cursor is None and request.offset > 0:
            return await self._fetch_offset(request, compiled, key_columns, table, dialect, metas, execute)
        return await self._fetch_keyset(request, compiled, key_columns, table, dialect, metas, execute)

    async def _discover_keys(
        self,
        compiled: CompiledQuery,
        table: str,
        dialect: BaseDialect,
        metas: Dict[str, ColumnMeta],
        execute: Executor,
    ) -> List[str]:
        """메타데이터도 정렬 컬럼도 없으면 한 행을 읽어 첫 컬럼을 커서 컬럼으로 쓴다."""

        sample = await execute(dialect.build_page(table, compiled, [], None, 1, metas))
        names = list(sample.columns) or (list(sample.rows[0].keys()) if sample.rows else [])
        column = dialect.fallback_sort_column(names)
        self._logger.debug(
            "메타데이터가 없어 결과 컬럼으로 커서 컬럼을 정했습니다.",
            LogContext(backend=dialect.name, operation="fetch_page", table=table),
            metadata={"column": column},
        )
        return [column] if column else []

    def _sort_keys(
        self,
        key_columns: List[str],
        direction: SortDirection,
        metas: Dict[str, ColumnMeta],
    ) -> List[SortKey]:
        keys: List[SortKey] = []
        for column in key_columns:
            meta = metas.get(column)
            nullable = not (meta is not None and meta.is_primary_key)
            keys.append(SortKey(column=column, direction=direction, nullable=nullable))
        return keys

    async def _fetch_keyset(
        self,
        request: PageRequest,
        compiled: CompiledQuery,
        key_columns: List[str],
        table: str,
        dialect: BaseDialect,
        metas: Dict[str, ColumnMeta],
        execute: Executor,
    ) -> PageResult:
        cursor = request.cursor
        backward = cursor is not None and cursor.direction is CursorDirection.BACKWARD
        direction = request.sort_direction.flipped() if backward else request.sort_direction
        keys = self._sort_keys(key_columns, direction, metas)
        boundary = self._boundary(cursor, keys)
        statement = dialect.build_page(table, compiled, keys, boundary, request.limit + 1, metas)
        result = await execute(statement)
        rows, has_more = self._trim(result.rows, request.limit)
        if backward:
            rows.reverse()
            has_next, has_prev = boundary is not None, has_more
        else:
            has_next, has_prev = has_more, boundary is not None
        self._logger.debug(
            "키셋 페이지를 조회했습니다.",
            LogContext(backend=dialect.name, operation="fetch_page", table=table),
            metadata={"rows": len(rows), "has_more": has_more, "backward": backward},
        )
        return self._result(rows, result, key_columns, metas, has_next, has_prev)

    async def _fetch_offset(
        self,
        request: PageRequest,
        compiled: CompiledQuery,
        key_columns: List[str],
        table: str,
        dialect: BaseDialect,
        metas: Dict[str, ColumnMeta],
        execute: Executor,
    ) -> PageResult:
        keys = self._sort_keys(key_columns, request.sort_direction, metas)
        window = dialect.capabilities.max_result_window
        fetch_size = request.limit + 1
        if window is not None and request.offset + fetch_size > window:
            raw_rows = await self._skip_forward(request.offset, fetch_size, compiled, keys, table, dialect, metas, execute, window)
            result = DriverResult(rows=raw_rows)
        else:
            statement = dialect.build_offset_page(table, compiled, keys, request.offset, fetch_size, metas)
            result = await execute(statement)
        rows, has_more = self._trim(result.rows, request.limit)
        return self._result(rows, result, key_columns, metas, has_more, request.offset > 0)

    async def _skip_forward(
        self,
        offset: int,
        fetch_size: int,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        table: str,
        dialect: BaseDialect,
        metas: Dict[str, ColumnMeta],
        execute: Executor,
        window: int,
    ) -> List[Dict[str, Any]]:
        context = LogContext(backend=dialect.name, operation="fetch_page", table=table)
        self._logger.info(
            "결과 창을 넘는 오프셋이라 스킵 포워드로 전환합니다.",
            context,
            metadata={"offset": offset, "window": window},
        )
        opened = await execute(dialect.build_scan_open(table))
        handle = opened.scan_handle
        if not handle:
            raise DatabaseError("스캔 핸들을 열지 못했습니다.", operation="fetch_page", table=table, backend=dialect.name)
        batch_size = min(self._scan_batch_size, window)
        search_after: Optional[List[Any]] = None
        remaining = offset
        try:
            while remaining > 0:
                size = min(batch_size, remaining)
                batch = await execute(dialect.build_scan_batch(handle, compiled, keys, search_after, size, metas))
                handle = batch.scan_handle or handle
                if not batch.rows or not batch.sort_values:
                    return []
                search_after = batch.sort_values[-1]
                remaining -= len(batch.rows)
                if len(batch.rows) < size:
                    return []
            page = await execute(dialect.build_scan_batch(handle, compiled, keys, search_after, fetch_size, metas))
            return list(page.rows)
        finally:
            await self._close_scan(handle, dialect, execute, context)

    async def _close_scan(
        self,
        handle: str,
        dialect: BaseDialect,
        execute: Executor,
        context: LogContext,
    ) -> None:
        try:
            await execute(dialect.build_scan_close(handle))
        except DatabaseError as exc:
            # 핸들은 keep_alive 후 서버에서 만료된다.
            self._logger.warning(f"스캔 핸들 종료에 실패했습니다: {exc}", context)

    def _boundary(self, cursor: Optional[CursorPosition], keys: List[SortKey]) -> Optional[KeysetBoundary]:
        """커서 값으로 경계를 만든다. 값이 None인 키는 NULL 경계이고 키 자체가 없으면 거기서 끊는다."""

        if cursor is None or not keys or keys[0].column not in cursor.values:
            return None
        boundary_keys: List[SortKey] = []
        boundary_values: List[Any] = []
        for key in keys:
            if key.column not in cursor.values:
                break
            boundary_keys.append(key)
            boundary_values.append(cursor.values[key.column])
        return KeysetBoundary(keys=boundary_keys, values=boundary_values)

    def _trim(self, rows: List[Dict[str, Any]], limit: int) -> Tuple[List[Dict[str, Any]], bool]:
        has_more = len(rows) > limit
        return list(rows[:limit]), has_more

    def _result(
        self,
        rows: List[Dict[str, Any]],
        result: DriverResult,
        key_columns: List[str],
        metas: Dict[str, ColumnMeta],
        has_next: bool,
        has_prev: bool,
    ) -> PageResult:
        columns = list(result.columns) or (list(rows[0].keys()) if rows else list(metas.keys()))
        next_cursor = prev_cursor = None
        # 빈 페이지의 커서는 값 없이 방향만 가진다. 경계가 없으므로 양 끝에서 다시 읽는다.
        if has_next:
            next_cursor = CursorPosition(
                values={column: rows[-1].get(column) for column in key_columns} if rows else {},
                direction=CursorDirection.FORWARD,
            )
        if has_prev:
            prev_cursor = CursorPosition(
                values={column: rows[0].get(column) for column in key_columns} if rows else {},
                direction=CursorDirection.BACKWARD,
            )
        return PageResult(
            rows=rows,
            columns=columns,
            has_next_page=has_next,
            has_prev_page=has_prev,
            next_cursor=next_cursor,
            prev_cursor=prev_cursor,
        )
