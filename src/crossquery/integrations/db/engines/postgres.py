"""
목적: PostgreSQL 백엔드 드라이버를 제공한다.
설명: psycopg2.pool.ThreadedConnectionPool에 커넥션 관리를 맡기고, 실행 중인 요청은 connection.cancel()로 취소한다.
    전송 오류는 SQLSTATE 08xxx(연결 예외)와 57P01~57P03(서버 종료/기동 중), 서버 코드 없는 클라이언트 연결 실패로 한정한다.
디자인 패턴: 어댑터 패턴
참조: src/crossquery/integrations/db/engines/sql_common.py, src/crossquery/integrations/db/base/pool.py
"""

from __future__ import annotations

from typing import Any, Optional

import psycopg2
import psycopg2.extensions
import psycopg2.pool

from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.base.pool import BaseConnectionPool, DelegatingConnectionPool
from crossquery.integrations.db.engines.sql_common import DbApiDriver
from crossquery.shared.logging import Logger

_SHUTDOWN_CODES = frozenset({"57P01", "57P02", "57P03"})


def is_connection_sqlstate(code: Optional[str]) -> bool:
    """연결 예외 계열 SQLSTATE인지 반환한다."""

    return bool(code) and (code.startswith("08") or code in _SHUTDOWN_CODES)


class PsycopgConnectionPool(DelegatingConnectionPool):
    """psycopg2 ThreadedConnectionPool 위임 풀."""

    def __init__(self, dsn: str, config: PoolConfig, logger: Optional[Logger] = None) -> None:
        super().__init__(config, logger=logger)
        self._dsn = dsn
        self._pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None

    def _open_library(self) -> None:
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            self._config.min_connections,
            self._config.max_connections,
            self._dsn,
            connect_timeout=int(self._config.connect_timeout),
        )

    def _take(self) -> Any:
        return self._pool.getconn()

    def _give_back(self, connection: Any, discard: bool) -> None:
        if self._pool is None or self._pool.closed:
            connection.close()
            return
        self._pool.putconn(connection, close=discard)

    def _close_library(self) -> None:
        if self._pool is not None and not self._pool.closed:
            self._pool.closeall()


class PostgresDriver(DbApiDriver):
    """PostgreSQL 드라이버."""

    def __init__(
        self,
        dsn: Optional[str] = None,
        host: str = "127.0.0.1",
        port: int = 5432,
        user: str = "postgres",
        password: Optional[str] = None,
        database: str = "postgres",
        scheme: str = "postgresql",
        pool_config: Optional[PoolConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(pool_config, logger)
        if not dsn:
            auth = f"{user}"
            if password:
                auth = f"{auth}:{password}"
            dsn = f"{scheme}://{auth}@{host}:{port}/{database}"
        self._dsn = dsn

    @property
    def name(self) -> str:
        return "postgres"

    def _create_pool(self) -> BaseConnectionPool:
        return PsycopgConnectionPool(self._dsn, self._pool_config, logger=self._logger)

    def _connect(self) -> Any:
        return psycopg2.connect(self._dsn, connect_timeout=int(self._pool_config.connect_timeout))

    def _cancel_connection(self, connection: Any) -> None:
        connection.cancel()

    def is_transport_error(self, error: BaseException) -> bool:
        if isinstance(error, psycopg2.InterfaceError):
            return True
        if isinstance(
            error,
            (psycopg2.extensions.QueryCanceledError, psycopg2.extensions.TransactionRollbackError),
        ):
            return False
        if not isinstance(error, psycopg2.OperationalError):
            return False
        code = getattr(error, "pgcode", None)
        if code is None:
            # 서버 응답 없이 끊긴 경우(연결 실패, 서버가 연결을 닫음)
            return True
        return is_connection_sqlstate(code)
