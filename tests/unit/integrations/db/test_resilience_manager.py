"""
목적: 연결 복원력 관리자의 상태 머신과 재연결 정책을 검증한다.
설명: 스텁 드라이버로 연결/오류 분류/지수 백오프/소진 시 disconnected 전이/fail_fast/queue 정책,
    상태 이벤트 발행, 헬스 체크 기반 복구를 확인한다.
디자인 패턴: 테스트 더블(스텁)
참조: src/crossquery/integrations/db/resilience/manager.py, src/crossquery/integrations/db/resilience/classifier.py
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import List, Optional

import pytest

from crossquery.integrations.db.base import BaseBackendDriver, DriverResult, Statement
from crossquery.integrations.db.base.models import ConnectionStatus, ReconnectPolicy, StatusEvent
from crossquery.integrations.db.errors import BackendError, CompileError, NotConnectedError, TransportError
from crossquery.integrations.db.resilience import (
    EXHAUSTED_MESSAGE,
    ConnectionResilienceManager,
    is_transport_error,
    wrap_error,
)


class _FlakyDriver(BaseBackendDriver):
    """open/ping 실패를 주입할 수 있는 스텁."""

    def __init__(self) -> None:
        self.open_calls = 0
        self.close_calls = 0
        self.fail_open = False
        self.ping_failures = 0

    @property
    def name(self) -> str:
        return "flaky"

    async def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise ConnectionRefusedError("connection refused")

    async def close(self) -> None:
        self.close_calls += 1

    async def ping(self) -> bool:
        if self.ping_failures > 0:
            self.ping_failures -= 1
            raise TimeoutError("timed out")
        return True

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        return DriverResult()


class _Sleeper:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _manager(driver: _FlakyDriver, **kwargs) -> tuple[ConnectionResilienceManager, _Sleeper, List[StatusEvent]]:
    sleeper = _Sleeper()
    manager = ConnectionResilienceManager(driver, health_check_interval=0, sleep=sleeper, **kwargs)
    events: List[StatusEvent] = []
    manager.subscribe(events.append)
    return manager, sleeper, events


def _statuses(events: List[StatusEvent]) -> List[ConnectionStatus]:
    return [event.status for event in events]


@pytest.mark.asyncio
async def test_connect_emits_connecting_then_connected() -> None:
    """연결 시 connecting, connected 이벤트가 발행되는지 확인한다."""

    manager, _, events = _manager(_FlakyDriver())

    state = await manager.connect()
    await manager.connect()

    assert state.status is ConnectionStatus.CONNECTED
    assert _statuses(events) == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]


@pytest.mark.asyncio
async def test_three_transport_failures_end_disconnected() -> None:
    """재연결 3회가 모두 실패하면 disconnected로 끝나고 자동 재시도를 멈추는지 확인한다."""

    driver = _FlakyDriver()
    manager, sleeper, events = _manager(driver, policy=ReconnectPolicy(max_attempts=3))
    await manager.connect()
    driver.fail_open = True

    async def lost_connection():
        raise ConnectionResetError("connection reset by peer")

    with pytest.raises(TransportError):
        await manager.run("fetch_page", lost_connection, "orders")

    assert manager.status is ConnectionStatus.DISCONNECTED
    assert manager.state.last_error == EXHAUSTED_MESSAGE
    assert driver.open_calls == 1 + 3
    assert sleeper.delays == [1.0, 2.0, 4.0]
    assert _statuses(events)[-2:] == [ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED]

    with pytest.raises(NotConnectedError):
        await manager.run("fetch_page", lost_connection, "orders")
    assert driver.open_calls == 4


@pytest.mark.asyncio
async def test_backend_error_leaves_state_connected() -> None:
    """쿼리 오류는 상태를 바꾸지 않고 BackendError로 전달되는지 확인한다."""

    driver = _FlakyDriver()
    manager, _, events = _manager(driver)
    await manager.connect()

    async def bad_query():
        raise sqlite3.OperationalError('near "SELEC": syntax error')

    with pytest.raises(BackendError) as exc_info:
        await manager.run("run_query", bad_query, "orders")

    assert manager.status is ConnectionStatus.CONNECTED
    assert driver.open_calls == 1
    assert exc_info.value.operation == "run_query"
    assert exc_info.value.table == "orders"
    assert _statuses(events) == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]


@pytest.mark.asyncio
async def test_domain_errors_pass_through_unchanged() -> None:
    """도메인 예외는 그대로 전달되는지 확인한다."""

    manager, _, _ = _manager(_FlakyDriver())
    await manager.connect()
    error = CompileError("잘못된 필터")

    async def compile_failure():
        raise error

    with pytest.raises(CompileError) as exc_info:
        await manager.run("fetch_page", compile_failure)

    assert exc_info.value is error
    assert manager.status is ConnectionStatus.CONNECTED


@pytest.mark.asyncio
async def test_transient_transport_error_reconnects_and_retries() -> None:
    """일시적 전송 오류 후 재연결하고 재시도해 성공하는지 확인한다."""

    driver = _FlakyDriver()
    manager, _, events = _manager(driver)
    await manager.connect()
    calls = {"count": 0}

    async def flaky_call():
        calls["count"] += 1
        if calls["count"] == 1:
            raise BrokenPipeError("broken pipe")
        return "ok"

    result = await manager.run("fetch_page", flaky_call)

    assert result == "ok"
    assert calls["count"] == 2
    assert manager.state.attempts == 0
    assert _statuses(events) == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.ERROR,
        ConnectionStatus.CONNECTED,
    ]


@pytest.mark.asyncio
async def test_run_before_connect_raises_not_connected() -> None:
    """연결 전 연산은 NotConnectedError로 거부되는지 확인한다."""

    manager, _, _ = _manager(_FlakyDriver())

    async def call():
        return 1

    with pytest.raises(NotConnectedError):
        await manager.run("count_filtered", call)


@pytest.mark.asyncio
async def test_fail_fast_policy_rejects_while_in_error() -> None:
    """fail_fast 정책은 error 상태에서 즉시 거부하는지 확인한다."""

    driver = _FlakyDriver()
    manager, _, _ = _manager(driver, operation_policy="fail_fast")
    await manager.connect()
    driver.ping_failures = 1

    assert await manager.ping() is False
    assert manager.status is ConnectionStatus.ERROR

    async def call():
        return 1

    with pytest.raises(NotConnectedError):
        await manager.run("fetch_page", call)
    assert driver.open_calls == 1


@pytest.mark.asyncio
async def test_queue_policy_waits_for_reconnect() -> None:
    """queue 정책은 재연결 후 연산을 실행하는지 확인한다."""

    driver = _FlakyDriver()
    manager, _, _ = _manager(driver)
    await manager.connect()
    driver.ping_failures = 1
    await manager.ping()

    async def call():
        return 7

    assert await manager.run("fetch_page", call) == 7
    assert manager.status is ConnectionStatus.CONNECTED
    assert driver.open_calls == 2


@pytest.mark.asyncio
async def test_explicit_reconnect_after_exhaustion() -> None:
    """소진 후 명시적 reconnect로 복구되는지 확인한다."""

    driver = _FlakyDriver()
    manager, _, _ = _manager(driver, policy=ReconnectPolicy(max_attempts=1))
    driver.fail_open = True
    with pytest.raises(TransportError):
        await manager.connect()
    assert manager.status is ConnectionStatus.ERROR

    state = await manager.reconnect()
    assert state.status is ConnectionStatus.DISCONNECTED

    driver.fail_open = False
    state = await manager.reconnect()
    assert state.status is ConnectionStatus.CONNECTED
    assert state.attempts == 0


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_transitions() -> None:
    """구독자 예외가 상태 전이를 막지 않는지 확인한다."""

    manager, _, events = _manager(_FlakyDriver())

    def broken(event: StatusEvent) -> None:
        raise RuntimeError("listener failure")

    dropped: List[StatusEvent] = []
    manager.subscribe(broken)
    unsubscribe = manager.subscribe(dropped.append)
    unsubscribe()

    await manager.connect()

    assert manager.status is ConnectionStatus.CONNECTED
    assert dropped == []
    assert _statuses(events) == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]


@pytest.mark.asyncio
async def test_disconnect_moves_to_disconnected() -> None:
    """disconnect가 드라이버를 닫고 disconnected로 전이하는지 확인한다."""

    driver = _FlakyDriver()
    manager, _, events = _manager(driver)
    await manager.connect()

    await manager.disconnect()

    assert manager.status is ConnectionStatus.DISCONNECTED
    assert driver.close_calls == 1
    assert events[-1].previous is ConnectionStatus.CONNECTED


@pytest.mark.asyncio
async def test_health_check_detects_loss_and_recovers() -> None:
    """헬스 체크가 연결 손실을 감지하고 재연결하는지 확인한다."""

    driver = _FlakyDriver()
    manager = ConnectionResilienceManager(driver, health_check_interval=0.01, sleep=_Sleeper())
    events: List[StatusEvent] = []
    manager.subscribe(events.append)
    await manager.connect()
    driver.ping_failures = 1

    for _ in range(200):
        if ConnectionStatus.ERROR in _statuses(events) and manager.status is ConnectionStatus.CONNECTED:
            break
        await asyncio.sleep(0.01)

    await manager.disconnect()

    assert _statuses(events)[:4] == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.ERROR,
        ConnectionStatus.CONNECTED,
    ]
    assert driver.open_calls == 2


def test_operation_policy_is_validated() -> None:
    """알 수 없는 연산 정책을 거부하는지 확인한다."""

    with pytest.raises(ValueError):
        ConnectionResilienceManager(_FlakyDriver(), operation_policy="retry")


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ConnectionRefusedError("refused"), True),
        (TimeoutError(), True),
        (OSError("ECONNRESET while reading"), True),
        (RuntimeError("server closed the connection unexpectedly"), True),
        (RuntimeError('syntax error at or near "FROM"'), False),
        (ValueError("duplicate key value violates unique constraint"), False),
        (BackendError("already classified"), False),
        (TransportError("already classified"), True),
    ],
)
def test_transport_classification(error, expected) -> None:
    """전송 오류 시그니처 분류를 확인한다."""

    assert is_transport_error(error) is expected


def test_wrap_error_keeps_original_and_context() -> None:
    """감싼 예외가 원본과 컨텍스트를 보관하는지 확인한다."""

    original = RuntimeError("network is unreachable")

    wrapped = wrap_error(original, operation="ping", table="t", backend="postgres")

    assert isinstance(wrapped, TransportError)
    assert wrapped.original is original
    assert wrapped.detail.metadata == {"operation": "ping", "table": "t", "backend": "postgres"}
