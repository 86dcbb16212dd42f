"""
목적: DB 커넥션 풀 추상화와 블로킹 풀, 라이브러리 풀 위임 구현을 제공한다.
설명: DB-API 드라이버가 스레드에서 커넥션을 획득/반환하며, 최소/최대 크기와
    유휴/획득 타임아웃을 호출자 설정(PoolConfig)으로 받는다. 자체 풀이 있는 클라이언트
    (psycopg2, mysql-connector)는 DelegatingConnectionPool로 그 풀을 감싼다.
디자인 패턴: 오브젝트 풀
참조: src/crossquery/integrations/db/engines/sql_common.py, src/crossquery/integrations/db/base/models.py
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Deque, Iterator, List, Optional, Tuple

from crossquery.integrations.db.base.models import PoolConfig
from crossquery.shared.logging import Logger, create_default_logger


class BaseConnectionPool(ABC):
    """커넥션 풀 인터페이스."""

    @abstractmethod
    def open(self) -> None:
        """풀을 연다."""

    @abstractmethod
    def acquire(self) -> Any:
        """커넥션을 획득한다."""

    @abstractmethod
    def release(self, connection: Any, discard: bool = False) -> None:
        """커넥션을 반환한다. discard면 닫고 버린다."""

    @abstractmethod
    def close_all(self) -> None:
        """풀을 닫는다."""

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """with 문으로 커넥션을 빌려준다. 예외가 나면 커넥션을 버린다."""

        conn = self.acquire()
        try:
            yield conn
        except BaseException:
            self.release(conn, discard=True)
            raise
        self.release(conn)


class BlockingConnectionPool(BaseConnectionPool):
    """스레드 안전한 블로킹 커넥션 풀.

    Args:
        factory: 새 커넥션을 만드는 함수.
        config: 풀 크기/타임아웃 설정.
        closer: 커넥션 종료 함수. 없으면 connection.close()를 호출한다.
        logger: 주입 가능한 로거.
    """

    def __init__(
        self,
        factory: Callable[[], Any],
        config: PoolConfig,
        closer: Optional[Callable[[Any], None]] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._logger = logger or create_default_logger("BlockingConnectionPool")
        self._factory = factory
        self._config = config
        self._closer = closer or (lambda conn: conn.close())
        self._idle: Deque[Tuple[Any, float]] = deque()
        self._size = 0
        self._closed = True
        self._cond = threading.Condition()

    @property
    def size(self) -> int:
        with self._cond:
            return self._size

    @property
    def idle_count(self) -> int:
        with self._cond:
            return len(self._idle)

    def open(self) -> None:
        """풀을 열고 최소 커넥션을 미리 만든다."""

        with self._cond:
            self._closed = False
        warm = [self.acquire() for _ in range(self._config.min_connections)]
        for conn in warm:
            self.release(conn)

    def acquire(self) -> Any:
        deadline = time.monotonic() + self._config.connect_timeout
        stale: List[Any] = []
        with self._cond:
            while True:
                if self._closed:
                    raise RuntimeError("커넥션 풀이 닫혀 있습니다.")
                stale.extend(self._prune_idle_locked())
                if self._idle:
                    conn, _ = self._idle.pop()
                    self._close_all(stale)
                    return conn
                if self._size < self._config.max_connections:
                    self._size += 1
                    break
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise RuntimeError("커넥션 풀 대기 시간이 초과되었습니다.")
                self._cond.wait(remaining)
        self._close_all(stale)
        try:
            return self._factory()
        except BaseException:
            with self._cond:
                self._size -= 1
                self._cond.notify()
            raise

    def release(self, connection: Any, discard: bool = False) -> None:
        with self._cond:
            if discard or self._closed:
                self._size -= 1
                drop = True
            else:
                self._idle.append((connection, time.monotonic()))
                drop = False
            self._cond.notify()
        if drop:
            self._close_all([connection])

    def close_all(self) -> None:
        """유휴 커넥션을 모두 닫고 풀을 닫는다. 대여 중인 커넥션은 반환 시 닫힌다."""

        with self._cond:
            self._closed = True
            idle = [conn for conn, _ in self._idle]
            self._idle.clear()
            self._size -= len(idle)
            self._cond.notify_all()
        self._close_all(idle)

    def _prune_idle_locked(self) -> List[Any]:
        now = time.monotonic()
        pruned: List[Any] = []
        while (
            self._idle
            and self._size > self._config.min_connections
            and now - self._idle[0][1] > self._config.idle_timeout
        ):
            conn, _ = self._idle.popleft()
            self._size -= 1
            pruned.append(conn)
        return pruned

    def _close_all(self, connections: List[Any]) -> None:
        for conn in connections:
            try:
                self._closer(conn)
            except Exception as exc:
                self._logger.warning(f"커넥션 종료에 실패했습니다: {exc}")


class DelegatingConnectionPool(BaseConnectionPool):
    """클라이언트 라이브러리의 풀에 커넥션 관리를 위임하는 풀.

    라이브러리 풀은 고갈되면 기다리지 않고 예외를 낸다. 그래서 capacity 크기의 세마포어로
    동시 대여 수를 묶고, 빈 자리는 connect_timeout까지 기다린다. 유휴 정리는 라이브러리 몫이다.

    Args:
        config: 풀 크기/타임아웃 설정.
        capacity: 동시 대여 상한. 없으면 config.max_connections.
        logger: 주입 가능한 로거.
    """

    def __init__(
        self,
        config: PoolConfig,
        capacity: Optional[int] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._config = config
        self._logger = logger or create_default_logger(type(self).__name__)
        self._slots = threading.BoundedSemaphore(capacity or config.max_connections)
        self._closed = True

    @abstractmethod
    def _open_library(self) -> None:
        """라이브러리 풀을 만든다."""

    @abstractmethod
    def _take(self) -> Any:
        """라이브러리 풀에서 커넥션을 꺼낸다."""

    @abstractmethod
    def _give_back(self, connection: Any, discard: bool) -> None:
        """라이브러리 풀에 커넥션을 돌려준다."""

    @abstractmethod
    def _close_library(self) -> None:
        """라이브러리 풀의 커넥션을 모두 닫는다."""

    def open(self) -> None:
        self._open_library()
        self._closed = False

    def acquire(self) -> Any:
        if self._closed:
            raise RuntimeError("커넥션 풀이 닫혀 있습니다.")
        if not self._slots.acquire(timeout=self._config.connect_timeout):
            raise RuntimeError("커넥션 풀 대기 시간이 초과되었습니다.")
        try:
            return self._take()
        except BaseException:
            self._slots.release()
            raise

    def release(self, connection: Any, discard: bool = False) -> None:
        try:
            self._give_back(connection, discard)
        except Exception as exc:
            self._logger.warning(f"커넥션 반환에 실패했습니다: {exc}")
        finally:
            self._slots.release()

    def close_all(self) -> None:
        self._closed = True
        self._close_library()
