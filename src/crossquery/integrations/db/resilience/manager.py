"""
목적: 연결 상태 머신, 헬스 체크, 분류 기반 자동 재연결을 제공한다.
설명: disconnected/connecting/connected/error 상태를 단일 진실 원천으로 관리하고, 상태가 실제로 바뀔 때만
    구독자에게 StatusEvent를 전달한다. 재연결은 asyncio.Lock으로 직렬화하며 지수 백오프로 최대 횟수만큼
    시도한 뒤 소진되면 disconnected로 전이하고 자동 재시도를 멈춘다. run()은 모든 드라이버 호출을 감싸
    전송 오류만 재연결 후 재시도하고 그 밖의 오류는 상태를 건드리지 않고 BackendError로 올린다.
디자인 패턴: 상태 머신, 옵저버 패턴, 데코레이터(연산 래퍼)
참조: src/crossquery/integrations/db/resilience/classifier.py, src/crossquery/integrations/db/client.py
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import (
    ConnectionState,
    ConnectionStatus,
    ReconnectPolicy,
    StatusEvent,
)
from crossquery.integrations.db.errors import NotConnectedError, TransportError
from crossquery.integrations.db.resilience.classifier import wrap_error
from crossquery.shared.const import SharedConst
from crossquery.shared.logging import LogContext, Logger, create_default_logger

T = TypeVar("T")
Listener = Callable[[StatusEvent], Any]
Sleep = Callable[[float], Awaitable[Any]]

OPERATION_POLICIES = ("queue", "fail_fast")
EXHAUSTED_MESSAGE = "Max reconnect attempts reached"


class ConnectionResilienceManager:
    """연결 복원력 관리자.

    Args:
        driver: 감쌀 백엔드 드라이버.
        policy: 재연결 정책.
        health_check_interval: 헬스 체크 주기(초). 0이면 비활성화한다.
        operation_policy: error/connecting 상태에서의 연산 처리 방식(queue 또는 fail_fast).
        logger: 주입 가능한 로거.
        sleep: 백오프 대기 함수(테스트에서 교체 가능).
    """

    def __init__(
        self,
        driver: BaseBackendDriver,
        policy: Optional[ReconnectPolicy] = None,
        health_check_interval: float = SharedConst.HEALTH_CHECK_INTERVAL_SECONDS,
        operation_policy: str = "queue",
        logger: Optional[Logger] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if operation_policy not in OPERATION_POLICIES:
            raise ValueError(f"operation_policy는 {OPERATION_POLICIES} 중 하나여야 합니다.")
        self._driver = driver
        self._policy = policy or ReconnectPolicy()
        self._interval = health_check_interval
        self._operation_policy = operation_policy
        self._logger = logger or create_default_logger("ConnectionResilienceManager")
        self._sleep = sleep
        self._state = ConnectionState()
        self._listeners: List[Listener] = []
        self._lock = asyncio.Lock()
        self._generation = 0
        self._health_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        """현재 상태 스냅샷을 반환한다."""

        return self._state.model_copy()

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """상태 변경 구독자를 등록하고 해제 함수를 반환한다."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def connect(self) -> ConnectionState:
        """연결을 연다. 실패하면 error 상태로 전이하고 예외를 던진다."""

        async with self._lock:
            if self._state.status is ConnectionStatus.CONNECTED:
                return self.state
            self._transition(ConnectionStatus.CONNECTING, message="연결을 시작합니다.")
            try:
                await self._open_and_verify()
            except Exception as exc:
                error = wrap_error(exc, operation="connect", backend=self._driver.name, driver=self._driver)
                self._transition(ConnectionStatus.ERROR, message="연결에 실패했습니다.", error=error.message)
                if error is exc:
                    raise
                raise error from exc
            self._transition(ConnectionStatus.CONNECTED, message="연결되었습니다.", attempts=0)
        self._start_health_check()
        return self.state

    async def disconnect(self) -> ConnectionState:
        """헬스 체크를 멈추고 연결을 닫는다."""

        await self._stop_health_check()
        async with self._lock:
            await self._driver.close()
            self._transition(ConnectionStatus.DISCONNECTED, message="연결을 종료했습니다.", attempts=0)
        return self.state

    async def reconnect(self) -> ConnectionState:
        """호출자 요청으로 재연결한다. 연결된 상태여도 연결을 다시 연다."""

        return await self._reconnect(force=True)

    async def ping(self) -> bool:
        """생존 확인을 수행한다. 실패하면 error로 전이하고 False를 반환한다."""

        if self._state.status is not ConnectionStatus.CONNECTED:
            return False
        generation = self._generation
        try:
            await self._verify_alive()
        except Exception as exc:
            error = wrap_error(exc, operation="ping", backend=self._driver.name, driver=self._driver)
            self._mark_failed(error.message, generation)
            return False
        return True

    async def run(
        self,
        operation: str,
        func: Callable[[], Awaitable[T]],
        table: Optional[str] = None,
    ) -> T:
        """드라이버 호출을 감싸 실행한다.

        전송 오류로 분류되면 error로 전이하고 재연결 후 재시도한다(정책의 최대 횟수까지).
        그 밖의 오류는 상태를 바꾸지 않고 BackendError(또는 원래의 도메인 예외)로 올린다.
        """

        failures = 0
        while True:
            await self._ensure_ready(operation, table)
            generation = self._generation
            try:
                result = await func()
            except Exception as exc:
                error = wrap_error(
                    exc,
                    operation=operation,
                    table=table,
                    backend=self._driver.name,
                    driver=self._driver,
                )
                if not isinstance(error, TransportError):
                    if error is exc:
                        raise
                    raise error from exc
                failures += 1
                self._logger.warning(
                    f"연결 손실로 분류된 오류입니다: {error.message}",
                    self._context(operation, table),
                    metadata={"failures": failures},
                )
                self._mark_failed(error.message, generation)
                if failures > self._policy.max_attempts:
                    raise error from exc
                state = await self._reconnect(force=False)
                if state.status is not ConnectionStatus.CONNECTED:
                    raise error from exc
                continue
            if self._state.attempts:
                self._state = self._state.model_copy(update={"attempts": 0})
            return result

    async def _ensure_ready(self, operation: str, table: Optional[str]) -> None:
        status = self._state.status
        if status is ConnectionStatus.CONNECTED:
            return
        if status is ConnectionStatus.DISCONNECTED:
            raise NotConnectedError(
                "연결되어 있지 않습니다.",
                operation=operation,
                table=table,
                backend=self._driver.name,
                metadata={"last_error": self._state.last_error} if self._state.last_error else None,
            )
        if self._operation_policy == "fail_fast":
            raise NotConnectedError(
                f"연결 상태가 {status.value}이므로 연산을 거부합니다.",
                operation=operation,
                table=table,
                backend=self._driver.name,
                hint="operation_policy를 queue로 설정하면 재연결을 기다립니다.",
            )
        state = await self._reconnect(force=False)
        if state.status is not ConnectionStatus.CONNECTED:
            raise NotConnectedError(
                "재연결에 실패했습니다.",
                operation=operation,
                table=table,
                backend=self._driver.name,
                metadata={"last_error": state.last_error},
            )

    async def _reconnect(self, force: bool) -> ConnectionState:
        async with self._lock:
            if not force and self._state.status is ConnectionStatus.CONNECTED:
                return self.state
            if self._state.status is not ConnectionStatus.ERROR:
                self._transition(ConnectionStatus.CONNECTING, message="재연결을 시작합니다.")
            context = self._context("reconnect")
            last_error: Optional[str] = self._state.last_error
            for attempt in range(1, self._policy.max_attempts + 1):
                self._state = self._state.model_copy(update={"attempts": attempt})
                delay = self._policy.delay_for(attempt)
                self._logger.info(
                    "재연결을 시도합니다.",
                    context,
                    metadata={"attempt": attempt, "max_attempts": self._policy.max_attempts, "delay": delay},
                )
                await self._sleep(delay)
                try:
                    await self._close_quietly(context)
                    await self._open_and_verify()
                except Exception as exc:
                    error = wrap_error(exc, operation="reconnect", backend=self._driver.name, driver=self._driver)
                    last_error = error.message
                    self._logger.warning(
                        f"재연결 시도가 실패했습니다: {last_error}",
                        context,
                        metadata={"attempt": attempt},
                    )
                    continue
                self._transition(ConnectionStatus.CONNECTED, message="재연결되었습니다.", attempts=0)
                self._start_health_check()
                return self.state
            self._transition(
                ConnectionStatus.DISCONNECTED,
                message=f"재연결 시도 {self._policy.max_attempts}회를 모두 소진했습니다.",
                error=EXHAUSTED_MESSAGE,
                attempts=self._policy.max_attempts,
            )
            self._logger.error(
                "재연결 시도를 모두 소진했습니다. 명시적으로 reconnect()를 호출해야 합니다.",
                context,
                metadata={"last_error": last_error},
            )
        if self._health_task is not None and self._health_task is not asyncio.current_task():
            await self._stop_health_check()
        return self.state

    async def _open_and_verify(self) -> None:
        await self._driver.open()
        await self._verify_alive()

    async def _verify_alive(self) -> None:
        if not await self._driver.ping():
            raise TransportError("ping 응답이 올바르지 않습니다.", operation="ping", backend=self._driver.name)

    async def _close_quietly(self, context: LogContext) -> None:
        try:
            await self._driver.close()
        except Exception as exc:
            self._logger.debug(f"기존 연결 종료 중 오류를 무시합니다: {exc}", context)

    def _mark_failed(self, message: str, generation: int) -> None:
        """진행 중 다른 전이가 없었을 때만 connected를 error로 바꾼다."""

        if generation != self._generation or self._lock.locked():
            return
        if self._state.status is ConnectionStatus.CONNECTED:
            self._transition(ConnectionStatus.ERROR, message="연결 손실이 감지되었습니다.", error=message)

    def _transition(
        self,
        status: ConnectionStatus,
        *,
        message: Optional[str] = None,
        error: Optional[str] = None,
        attempts: Optional[int] = None,
    ) -> None:
        previous = self._state.status
        self._state = ConnectionState(
            status=status,
            last_error=error,
            attempts=self._state.attempts if attempts is None else attempts,
        )
        if previous is status:
            return
        self._generation += 1
        event = StatusEvent(status=status, previous=previous, message=message, error=error)
        self._logger.info(
            f"연결 상태가 {previous.value}에서 {status.value}(으)로 바뀌었습니다.",
            self._context("status"),
            metadata={"message": message, "error": error},
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                self._logger.warning(f"상태 구독자 호출에 실패했습니다: {exc}", self._context("status"))

    def _start_health_check(self) -> None:
        if self._interval <= 0:
            return
        if self._health_task is not None and not self._health_task.done():
            return
        self._health_task = asyncio.get_running_loop().create_task(self._health_loop())

    async def _stop_health_check(self) -> None:
        task = self._health_task
        self._health_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _health_loop(self) -> None:
        context = self._context("health_check")
        while self._state.status is not ConnectionStatus.DISCONNECTED:
            await asyncio.sleep(self._interval)
            if self._state.status is not ConnectionStatus.CONNECTED or self._lock.locked():
                continue
            generation = self._generation
            try:
                await self._verify_alive()
            except Exception as exc:
                if generation != self._generation or self._lock.locked():
                    # 프로브 도중 전이가 있었으면 결과를 버린다.
                    continue
                error = wrap_error(exc, operation="health_check", backend=self._driver.name, driver=self._driver)
                self._logger.warning(f"헬스 체크가 실패했습니다: {error.message}", context)
                self._mark_failed(error.message, generation)
                await self._reconnect(force=False)

    def _context(self, operation: str, table: Optional[str] = None) -> LogContext:
        return LogContext(backend=self._driver.name, operation=operation, table=table)
