"""
목적: SQL Server 백엔드 드라이버를 제공한다.
설명: pymssql 커넥션을 풀로 관리한다. 커넥션마다 @@SPID를 기억해 두고, 실행 중인 요청은
    별도 커넥션에서 KILL <spid>로 취소한다. 취소된 세션은 롤백 실패로 풀에서 버려진다.
디자인 패턴: 어댑터 패턴
참조: src/crossquery/integrations/db/engines/sql_common.py, src/crossquery/integrations/db/engines/mysql.py
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Optional

import pymssql

from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.engines.sql_common import DbApiDriver
from crossquery.shared.logging import Logger

# DB-Library 연결 계열 에러 번호(연결 실패, 읽기/쓰기 실패, EOF, 죽은 DBPROCESS)
_TRANSPORT_ERRORS = frozenset({20002, 20003, 20004, 20006, 20009, 20017, 20047})


def error_number(error: BaseException) -> Optional[int]:
    """pymssql 예외의 에러 번호를 반환한다."""

    args = getattr(error, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


class SqlServerDriver(DbApiDriver):
    """SQL Server 드라이버."""

    ping_sql = "SELECT 1 AS ok"

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 1433,
        user: str = "sa",
        password: Optional[str] = None,
        database: str = "master",
        pool_config: Optional[PoolConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(pool_config, logger)
        self._params: Dict[str, Any] = {
            "server": host,
            "port": str(port),
            "user": user,
            "password": password or "",
            "database": database,
        }
        self._spids: Dict[int, int] = {}
        self._spids_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "sqlserver"

    def _open(self) -> Any:
        return pymssql.connect(login_timeout=int(self._pool_config.connect_timeout), **self._params)

    def _connect(self) -> Any:
        connection = self._open()
        cursor = connection.cursor()
        try:
            cursor.execute("SELECT @@SPID")
            spid = int(cursor.fetchone()[0])
        finally:
            cursor.close()
        with self._spids_lock:
            self._spids[id(connection)] = spid
        return connection

    def _close_connection(self, connection: Any) -> None:
        with self._spids_lock:
            self._spids.pop(id(connection), None)
        connection.close()

    def _cancel_connection(self, connection: Any) -> None:
        with self._spids_lock:
            spid = self._spids.get(id(connection))
        if spid is None:
            return
        killer = self._open()
        try:
            cursor = killer.cursor()
            cursor.execute(f"KILL {int(spid)}")
            cursor.close()
        finally:
            killer.close()

    def is_transport_error(self, error: BaseException) -> bool:
        if isinstance(error, pymssql.InterfaceError):
            return True
        if isinstance(error, pymssql.OperationalError):
            return error_number(error) in _TRANSPORT_ERRORS
        return False
