"""
목적: 벌크 코디네이터의 배치 분할과 실패 귀속을 검증한다.
설명: 스텁 드라이버로 배치 호출 수, skip_errors 집계, 즉시 전파, 행 단위 실패 귀속,
    진행 콜백, 트랜잭션 업데이트, 동시 실행 시 순서 보존을 확인한다.
디자인 패턴: 테스트 더블(스텁)
참조: src/crossquery/integrations/db/bulk/coordinator.py
"""

from __future__ import annotations

import asyncio
import math
from typing import List, Optional

import pytest

from crossquery.integrations.db.base import BaseBackendDriver, BaseSession, DriverResult, RowError, Statement
from crossquery.integrations.db.base.models import BulkErrorKind, BulkOptions, BulkUpdateItem
from crossquery.integrations.db.bulk import BulkOperationCoordinator
from crossquery.integrations.db.dialects import MongoDialect, SQLiteDialect
from crossquery.integrations.db.errors import BackendError, CompileError, NotConnectedError, PartialBatchFailure


class _RecordingSession(BaseSession):
    def __init__(self, driver: "_StubDriver") -> None:
        self._driver = driver

    async def begin(self) -> None:
        self._driver.events.append("begin")

    async def commit(self) -> None:
        self._driver.events.append("commit")

    async def rollback(self) -> None:
        self._driver.events.append("rollback")

    async def execute(self, statement: Statement) -> DriverResult:
        self._driver.events.append("execute")
        return DriverResult(affected=1)


class _StubDriver(BaseBackendDriver):
    """배치 호출을 기록하고 지정한 호출에서 실패하는 스텁."""

    def __init__(self, fail_calls: Optional[set] = None, error: Optional[Exception] = None) -> None:
        self.calls: List[Statement] = []
        self.events: List[str] = []
        self._fail_calls = fail_calls or set()
        self._error = error or RuntimeError("constraint violation")

    @property
    def name(self) -> str:
        return "stub"

    @property
    def supports_transactions(self) -> bool:
        return True

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def ping(self) -> bool:
        return True

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        self.calls.append(statement)
        if len(self.calls) - 1 in self._fail_calls:
            raise self._error
        rows = len(statement.params) if statement.text and statement.text.startswith("INSERT") else 0
        if statement.text and statement.text.startswith("DELETE"):
            rows = len(statement.params)
        return DriverResult(affected=rows)

    def transaction(self) -> BaseSession:
        return _RecordingSession(self)


def _rows(count: int) -> List[dict]:
    return [{"id": index} for index in range(count)]


@pytest.mark.asyncio
async def test_insert_batches_ceil_of_k_over_b() -> None:
    """K행을 B 크기로 나누면 ceil(K/B)번 호출하는지 확인한다."""

    driver = _StubDriver()
    coordinator = BulkOperationCoordinator()

    result = await coordinator.bulk_insert(
        _rows(23), table="items", dialect=SQLiteDialect(), driver=driver, options=BulkOptions(batch_size=5)
    )

    assert len(driver.calls) == math.ceil(23 / 5)
    assert result.total == 23
    assert result.success_count == 23
    assert result.failure_count == 0
    assert result.errors == []


@pytest.mark.asyncio
async def test_delete_skip_errors_attributes_whole_batch() -> None:
    """skip_errors 삭제에서 실패 배치 전체가 실패로 집계되는지 확인한다."""

    driver = _StubDriver(fail_calls={1})
    keys = [{"id": index} for index in range(10)]

    result = await BulkOperationCoordinator().bulk_delete(
        keys,
        table="items",
        dialect=SQLiteDialect(),
        driver=driver,
        options=BulkOptions(batch_size=4, skip_errors=True),
    )

    assert len(driver.calls) == 3
    assert result.failure_count == 4
    assert result.success_count == 6
    assert len(result.errors) == 1
    assert result.errors[0].index == 4
    assert result.errors[0].count == 4
    assert result.errors[0].kind is BulkErrorKind.BATCH
    assert result.unaccounted_count == 0


@pytest.mark.asyncio
async def test_failure_without_skip_errors_aborts() -> None:
    """skip_errors가 없으면 첫 실패에서 중단하고 전파하는지 확인한다."""

    driver = _StubDriver(fail_calls={0})

    with pytest.raises(RuntimeError):
        await BulkOperationCoordinator().bulk_insert(
            _rows(10), table="items", dialect=SQLiteDialect(), driver=driver, options=BulkOptions(batch_size=5)
        )

    assert len(driver.calls) == 1


@pytest.mark.asyncio
async def test_not_connected_propagates_even_with_skip_errors() -> None:
    """연결 없음 예외는 skip_errors여도 전파되는지 확인한다."""

    driver = _StubDriver(fail_calls={0}, error=NotConnectedError("연결 없음"))

    with pytest.raises(NotConnectedError):
        await BulkOperationCoordinator().bulk_insert(
            _rows(2),
            table="items",
            dialect=SQLiteDialect(),
            driver=driver,
            options=BulkOptions(skip_errors=True),
        )


@pytest.mark.asyncio
async def test_mismatched_columns_rejected_before_io() -> None:
    """행마다 컬럼이 다르면 I/O 전에 거부하는지 확인한다."""

    driver = _StubDriver()

    with pytest.raises(CompileError) as exc_info:
        await BulkOperationCoordinator().bulk_insert(
            [{"id": 1}, {"id": 2, "name": "b"}], table="items", dialect=SQLiteDialect(), driver=driver
        )

    assert exc_info.value.detail.metadata["index"] == 1
    assert driver.calls == []


@pytest.mark.asyncio
async def test_progress_callback_receives_running_totals() -> None:
    """진행 콜백이 누적 성공 수와 전체 수를 받는지 확인한다."""

    progress: List[tuple] = []

    async def on_progress(done: int, total: int) -> None:
        progress.append((done, total))

    await BulkOperationCoordinator().bulk_insert(
        _rows(5),
        table="items",
        dialect=SQLiteDialect(),
        driver=_StubDriver(),
        options=BulkOptions(batch_size=2, on_progress=on_progress),
    )

    assert progress == [(2, 5), (4, 5), (5, 5)]


@pytest.mark.asyncio
async def test_update_runs_per_row_inside_one_transaction_per_batch() -> None:
    """SQL 업데이트가 배치마다 하나의 트랜잭션에서 행별로 실행되는지 확인한다."""

    driver = _StubDriver()
    items = [BulkUpdateItem(primary_key={"id": index}, values={"name": f"n{index}"}) for index in range(3)]

    result = await BulkOperationCoordinator().bulk_update(
        items, table="items", dialect=SQLiteDialect(), driver=driver, options=BulkOptions(batch_size=2)
    )

    assert driver.events == ["begin", "execute", "execute", "commit", "begin", "execute", "commit"]
    assert result.success_count == 3


@pytest.mark.asyncio
async def test_row_errors_are_attributed_by_index() -> None:
    """백엔드가 보고한 행 단위 실패가 원래 인덱스로 귀속되는지 확인한다."""

    class _RowErrorDriver(_StubDriver):
        async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
            self.calls.append(statement)
            documents = statement.command["documents"]
            return DriverResult(affected=len(documents) - 1, row_errors=[RowError(offset=1, error="duplicate key")])

    rows = [{"_id": index} for index in range(4)]

    result = await BulkOperationCoordinator().bulk_insert(
        rows,
        table="items",
        dialect=MongoDialect(),
        driver=_RowErrorDriver(),
        options=BulkOptions(batch_size=2, skip_errors=True),
    )

    assert result.success_count == 2
    assert result.failure_count == 2
    assert [error.index for error in result.errors] == [1, 3]
    assert all(error.kind is BulkErrorKind.ROW for error in result.errors)


@pytest.mark.asyncio
async def test_row_errors_without_skip_errors_raise_partial_failure() -> None:
    """skip_errors 없이 행 실패가 있으면 PartialBatchFailure를 던지는지 확인한다."""

    class _RowErrorDriver(_StubDriver):
        async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
            return DriverResult(affected=0, row_errors=[RowError(offset=0, error="duplicate key")])

    with pytest.raises(PartialBatchFailure) as exc_info:
        await BulkOperationCoordinator().bulk_insert(
            [{"_id": 1}], table="items", dialect=MongoDialect(), driver=_RowErrorDriver()
        )

    assert exc_info.value.errors[0].index == 0


@pytest.mark.asyncio
async def test_concurrent_batches_preserve_order() -> None:
    """동시 실행에서도 실패 인덱스와 식별자 순서가 보존되는지 확인한다."""

    class _SlowDriver(_StubDriver):
        async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
            first = statement.params[0]
            await asyncio.sleep(0.01 * (5 - first // 2))
            if first == 4:
                raise BackendError("boom")
            return DriverResult(affected=len(statement.params), inserted_ids=list(statement.params))

    result = await BulkOperationCoordinator().bulk_insert(
        _rows(8),
        table="items",
        dialect=SQLiteDialect(),
        driver=_SlowDriver(),
        options=BulkOptions(batch_size=2, skip_errors=True, max_concurrency=4),
    )

    assert result.inserted_ids is None
    assert result.success_count == 6
    assert [error.index for error in result.errors] == [4]


@pytest.mark.asyncio
async def test_concurrent_failure_cancels_and_awaits_pending_batches() -> None:
    """동시 실행에서 skip_errors 없이 실패하면 남은 배치를 취소하고 끝까지 기다린 뒤 전파하는지 확인한다."""

    started: List[int] = []
    cancelled: List[int] = []

    class _HangingDriver(_StubDriver):
        async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
            first = statement.params[0]
            started.append(first)
            if first == 0:
                await asyncio.sleep(0.01)
                raise BackendError("boom")
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(first)
                raise
            return DriverResult(affected=len(statement.params))

    with pytest.raises(BackendError):
        await asyncio.wait_for(
            BulkOperationCoordinator().bulk_insert(
                _rows(8),
                table="items",
                dialect=SQLiteDialect(),
                driver=_HangingDriver(),
                options=BulkOptions(batch_size=2, max_concurrency=2),
            ),
            timeout=5,
        )

    assert 2 in started
    assert sorted(cancelled) == sorted(set(started) - {0})
    assert len(started) < 4


@pytest.mark.asyncio
async def test_guard_wraps_every_batch() -> None:
    """guard가 모든 배치 호출을 감싸는지 확인한다."""

    seen: List[str] = []

    async def guard(operation, call):
        seen.append(operation)
        return await call()

    await BulkOperationCoordinator().bulk_delete(
        [{"id": 1}, {"id": 2}, {"id": 3}],
        table="items",
        dialect=SQLiteDialect(),
        driver=_StubDriver(),
        options=BulkOptions(batch_size=1),
        guard=guard,
    )

    assert seen == ["bulk_delete"] * 3
