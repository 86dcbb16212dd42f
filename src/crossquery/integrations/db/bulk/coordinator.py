"""
목적: 벌크 삽입/수정/삭제를 배치로 나눠 실행하는 코디네이터를 제공한다.
설명: 입력을 다이얼렉트 기본 배치 크기(바인딩 파라미터 한도로 추가 제한)로 나누고, 모든 문장을 I/O 전에
    컴파일한 뒤 순차 또는 제한된 동시성으로 실행한다. 배치 실패는 skip_errors에 따라 기록 후 계속하거나
    즉시 전파하며, 백엔드가 보고한 행 단위 실패는 행 인덱스로 귀속한다.
디자인 패턴: 커맨드 패턴, 템플릿 메서드
참조: src/crossquery/integrations/db/base/dialect.py, src/crossquery/integrations/db/client.py
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from crossquery.integrations.db.base.dialect import BaseDialect
from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import (
    BulkError,
    BulkErrorKind,
    BulkOptions,
    BulkResult,
    BulkUpdateItem,
)
from crossquery.integrations.db.base.statement import DriverResult, Statement
from crossquery.integrations.db.errors import (
    CompileError,
    NotConnectedError,
    PartialBatchFailure,
    ReadOnlyViolationError,
)
from crossquery.shared.logging import LogContext, Logger, create_default_logger

BatchCall = Callable[[], Awaitable[DriverResult]]
Guard = Callable[[str, BatchCall], Awaitable[DriverResult]]

# 재시도나 기록 대상이 아닌 예외
_FATAL_ERRORS = (NotConnectedError, ReadOnlyViolationError, CompileError)


@dataclass
class _Batch:
    start: int
    size: int
    call: BatchCall


@dataclass
class _Outcome:
    batch: _Batch
    result: Optional[DriverResult] = None
    error: Optional[Exception] = None


async def _direct(operation: str, call: BatchCall) -> DriverResult:
    return await call()


class BulkOperationCoordinator:
    """벌크 연산 코디네이터.

    Args:
        batch_sizes: 연산별 기본 배치 크기(insert/update/delete). 없으면 다이얼렉트 기본값.
        logger: 주입 가능한 로거.
    """

    def __init__(
        self,
        batch_sizes: Optional[Dict[str, int]] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._batch_sizes = dict(batch_sizes or {})
        self._logger = logger or create_default_logger("BulkOperationCoordinator")

    def batch_size_for(
        self,
        operation: str,
        dialect: BaseDialect,
        options: BulkOptions,
        params_per_row: int = 1,
    ) -> int:
        """배치 크기를 결정한다. 바인딩 파라미터 한도를 넘지 않도록 줄인다."""

        size = options.batch_size or self._batch_sizes.get(operation) or dialect.batch_sizes[operation]
        max_params = dialect.capabilities.max_params
        if max_params and params_per_row > 0:
            size = min(size, max(1, max_params // params_per_row))
        return size

    async def bulk_insert(
        self,
        rows: Sequence[Dict[str, Any]],
        *,
        table: str,
        dialect: BaseDialect,
        driver: BaseBackendDriver,
        options: Optional[BulkOptions] = None,
        returning: Optional[str] = None,
        guard: Optional[Guard] = None,
    ) -> BulkResult:
        """행 목록을 삽입한다. 모든 행은 첫 행과 같은 컬럼을 가져야 한다."""

        options = options or BulkOptions()
        if not rows:
            return BulkResult()
        columns = list(rows[0].keys())
        expected = set(columns)
        for index, row in enumerate(rows):
            if set(row.keys()) != expected:
                raise CompileError(
                    "모든 행은 첫 행과 같은 컬럼을 가져야 합니다.",
                    operation="bulk_insert",
                    table=table,
                    backend=dialect.name,
                    metadata={"index": index, "expected": columns, "actual": list(row.keys())},
                )
        size = self.batch_size_for("insert", dialect, options, len(columns))
        batches = []
        for start in range(0, len(rows), size):
            chunk = rows[start : start + size]
            statement = dialect.build_insert(table, columns, chunk, returning)
            batches.append(_Batch(start, len(chunk), self._single(driver, statement)))
        result = await self._execute(
            "bulk_insert", batches, len(rows), table, dialect, options, guard, collect_ids=returning is not None
        )
        return result

    async def bulk_update(
        self,
        items: Sequence[Union[BulkUpdateItem, Dict[str, Any]]],
        *,
        table: str,
        dialect: BaseDialect,
        driver: BaseBackendDriver,
        options: Optional[BulkOptions] = None,
        guard: Optional[Guard] = None,
    ) -> BulkResult:
        """기본 키로 식별한 행을 수정한다."""

        options = options or BulkOptions()
        updates = [BulkUpdateItem.model_validate(item) if isinstance(item, dict) else item for item in items]
        if not updates:
            return BulkResult()
        size = self.batch_size_for("update", dialect, options, 0)
        batches = []
        for start in range(0, len(updates), size):
            chunk = updates[start : start + size]
            native = dialect.build_update_batch(table, chunk)
            if native is not None:
                call = self._single(driver, native)
            else:
                statements = [dialect.build_update(table, item) for item in chunk]
                call = self._transactional(driver, statements)
            batches.append(_Batch(start, len(chunk), call))
        return await self._execute("bulk_update", batches, len(updates), table, dialect, options, guard)

    async def bulk_delete(
        self,
        keys: Sequence[Dict[str, Any]],
        *,
        table: str,
        dialect: BaseDialect,
        driver: BaseBackendDriver,
        options: Optional[BulkOptions] = None,
        guard: Optional[Guard] = None,
    ) -> BulkResult:
        """기본 키 맵 목록에 해당하는 행을 삭제한다."""

        options = options or BulkOptions()
        if not keys:
            return BulkResult()
        key_columns = dialect.key_columns(table, keys)
        size = self.batch_size_for("delete", dialect, options, len(key_columns))
        batches = []
        for start in range(0, len(keys), size):
            chunk = keys[start : start + size]
            statement = dialect.build_delete(table, chunk)
            batches.append(_Batch(start, len(chunk), self._single(driver, statement)))
        return await self._execute("bulk_delete", batches, len(keys), table, dialect, options, guard)

    def _single(self, driver: BaseBackendDriver, statement: Statement) -> BatchCall:
        async def call() -> DriverResult:
            return await driver.execute(statement)

        return call

    def _transactional(self, driver: BaseBackendDriver, statements: List[Statement]) -> BatchCall:
        async def call() -> DriverResult:
            affected = 0
            if not driver.supports_transactions:
                for statement in statements:
                    affected += (await driver.execute(statement)).affected
                return DriverResult(affected=affected)
            async with driver.transaction() as session:
                for statement in statements:
                    affected += (await session.execute(statement)).affected
            return DriverResult(affected=affected)

        return call

    async def _execute(
        self,
        operation: str,
        batches: List[_Batch],
        total: int,
        table: str,
        dialect: BaseDialect,
        options: BulkOptions,
        guard: Optional[Guard],
        collect_ids: bool = False,
    ) -> BulkResult:
        guard = guard or _direct
        context = LogContext(backend=dialect.name, operation=operation, table=table)
        self._logger.info(
            "벌크 연산을 시작합니다.",
            context,
            metadata={"total": total, "batches": len(batches), "concurrency": options.max_concurrency},
        )
        result = BulkResult(total=total, inserted_ids=[] if collect_ids else None)

        async def run(batch: _Batch) -> _Outcome:
            try:
                return _Outcome(batch, result=await guard(operation, batch.call))
            except _FATAL_ERRORS:
                raise
            except Exception as exc:
                if not options.skip_errors:
                    raise
                return _Outcome(batch, error=exc)

        if options.max_concurrency <= 1 or len(batches) <= 1:
            for batch in batches:
                await self._merge(await run(batch), result, options, context)
        else:
            semaphore = asyncio.Semaphore(options.max_concurrency)

            async def bounded(batch: _Batch) -> _Outcome:
                async with semaphore:
                    return await run(batch)

            tasks = [asyncio.create_task(bounded(batch)) for batch in batches]
            try:
                outcomes = await asyncio.gather(*tasks)
            except BaseException:
                # 첫 실패에서 남은 배치를 취소하고 종료까지 기다린다.
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
            for outcome in outcomes:
                await self._merge(outcome, result, options, context)

        if collect_ids and not result.inserted_ids:
            result.inserted_ids = None
        self._logger.info(
            "벌크 연산을 완료했습니다.",
            context,
            metadata={
                "total": total,
                "success": result.success_count,
                "failure": result.failure_count,
                "unaccounted": result.unaccounted_count,
            },
        )
        return result

    async def _merge(
        self,
        outcome: _Outcome,
        result: BulkResult,
        options: BulkOptions,
        context: LogContext,
    ) -> None:
        batch = outcome.batch
        if outcome.error is not None:
            result.failure_count += batch.size
            result.errors.append(
                BulkError(index=batch.start, error=str(outcome.error), count=batch.size, kind=BulkErrorKind.BATCH)
            )
            self._logger.warning(
                f"배치 실패를 기록하고 계속합니다: {outcome.error}",
                context,
                metadata={"index": batch.start, "count": batch.size},
            )
        else:
            driver_result = outcome.result or DriverResult()
            row_errors = [
                BulkError(
                    index=batch.start + row_error.offset,
                    error=row_error.error,
                    count=1,
                    kind=BulkErrorKind.ROW,
                )
                for row_error in driver_result.row_errors
            ]
            if row_errors and not options.skip_errors:
                raise PartialBatchFailure(
                    f"배치에서 {len(row_errors)}개 행이 실패했습니다.",
                    errors=row_errors,
                    operation=context.operation,
                    table=context.table,
                    backend=context.backend,
                    metadata={"index": batch.start, "count": batch.size},
                )
            result.success_count += driver_result.affected
            result.failure_count += len(row_errors)
            result.errors.extend(row_errors)
            if result.inserted_ids is not None:
                result.inserted_ids.extend(driver_result.inserted_ids)
        if options.on_progress is not None:
            progress = options.on_progress(result.success_count, result.total)
            if inspect.isawaitable(progress):
                await progress
