"""
목적: SQLite 백엔드 드라이버를 제공한다.
설명: 파일 경로 기반 커넥션을 풀로 관리하며 busy_timeout/WAL PRAGMA를 적용한다.
    실행 중인 요청은 Connection.interrupt()로 취소한다.
    ":memory:"는 커넥션마다 별도 DB가 되므로 max_connections=1로만 사용해야 한다.
디자인 패턴: 어댑터 패턴
참조: src/crossquery/integrations/db/engines/sql_common.py
"""

from __future__ import annotations

import os
import sqlite3
from typing import Optional

from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.engines.sql_common import DbApiDriver
from crossquery.shared.logging import Logger

_TRANSPORT_MESSAGES = ("unable to open database", "disk i/o error")


class SQLiteDriver(DbApiDriver):
    """SQLite 드라이버."""

    def __init__(
        self,
        database_path: str,
        pool_config: Optional[PoolConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(pool_config, logger)
        self._database_path = database_path
        self._busy_timeout_ms = self._read_busy_timeout_ms()

    @property
    def name(self) -> str:
        return "sqlite"

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._database_path,
            timeout=self._busy_timeout_ms / 1000.0,
            check_same_thread=False,
        )
        self._apply_pragmas(connection)
        return connection

    def _cancel_connection(self, connection: sqlite3.Connection) -> None:
        connection.interrupt()

    def is_transport_error(self, error: BaseException) -> bool:
        if not isinstance(error, sqlite3.OperationalError):
            return False
        message = str(error).lower()
        return any(text in message for text in _TRANSPORT_MESSAGES)

    def _apply_pragmas(self, connection: sqlite3.Connection) -> None:
        """동시성 친화 SQLite PRAGMA를 적용한다."""

        connection.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
        if self._database_path == ":memory:":
            return
        try:
            connection.execute("PRAGMA journal_mode=WAL")
            connection.execute("PRAGMA synchronous=NORMAL")
        except sqlite3.DatabaseError as error:
            self._logger.warning(f"SQLite PRAGMA 적용 경고: {error}")

    def _read_busy_timeout_ms(self) -> int:
        raw = os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")
        try:
            value = int(raw)
        except ValueError:
            return 5000
        return max(0, value)
