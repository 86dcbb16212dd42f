"""
목적: MySQL/MariaDB 백엔드 드라이버를 제공한다.
설명: mysql.connector.pooling.MySQLConnectionPool에 커넥션 관리를 맡긴다. 실행 중인 요청은 별도 커넥션에서
    KILL QUERY <connection_id>로 취소한다. 전송 오류는 클라이언트 연결 에러 번호
    (2002/2003/2006/2013/2055)로 한정하고 교착 상태나 잠금 대기 초과는 백엔드 오류로 둔다.
디자인 패턴: 어댑터 패턴
참조: src/crossquery/integrations/db/engines/sql_common.py, src/crossquery/integrations/db/base/pool.py
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Optional

import mysql.connector
from mysql.connector import errors as mysql_errors
from mysql.connector import pooling

from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.base.pool import BaseConnectionPool, DelegatingConnectionPool
from crossquery.integrations.db.engines.sql_common import DbApiDriver
from crossquery.shared.logging import Logger

# CR_CONNECTION_ERROR, CR_CONN_HOST_ERROR, CR_SERVER_GONE_ERROR, CR_SERVER_LOST, CR_SERVER_LOST_EXTENDED
TRANSPORT_ERRNOS = frozenset({2002, 2003, 2006, 2013, 2055})


class MySQLConnectionPool(DelegatingConnectionPool):
    """mysql-connector MySQLConnectionPool 위임 풀.

    풀 크기는 라이브러리 상한(CNX_POOL_MAXSIZE)으로 잘린다. 반환된 커넥션이 끊겨 있으면
    라이브러리가 다음 대여 때 다시 연결한다.
    """

    def __init__(self, params: Dict[str, Any], config: PoolConfig, logger: Optional[Logger] = None) -> None:
        self._size = min(config.max_connections, pooling.CNX_POOL_MAXSIZE)
        super().__init__(config, capacity=self._size, logger=logger)
        self._params = params
        self._pool: Optional[pooling.MySQLConnectionPool] = None

    def _open_library(self) -> None:
        if self._size < self._config.max_connections:
            self._logger.warning(
                f"MySQL 풀 크기를 라이브러리 상한 {self._size}(으)로 줄였습니다.",
            )
        self._pool = pooling.MySQLConnectionPool(
            pool_name=f"crossquery-{uuid.uuid4().hex[:8]}",
            pool_size=self._size,
            connection_timeout=int(self._config.connect_timeout),
            **self._params,
        )

    def _take(self) -> Any:
        return self._pool.get_connection()

    def _give_back(self, connection: Any, discard: bool) -> None:
        # PooledMySQLConnection.close()는 커넥션을 라이브러리 풀로 돌려보낸다.
        connection.close()

    def _close_library(self) -> None:
        if self._pool is not None:
            self._pool._remove_connections()


class MySQLDriver(DbApiDriver):
    """MySQL/MariaDB 드라이버.

    Args:
        flavor: 드라이버 이름(mysql 또는 mariadb).
    """

    def __init__(
        self,
        dsn: Optional[Dict[str, Any]] = None,
        host: str = "127.0.0.1",
        port: int = 3306,
        user: str = "root",
        password: Optional[str] = None,
        database: str = "mysql",
        flavor: str = "mysql",
        pool_config: Optional[PoolConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(pool_config, logger)
        if dsn is None:
            dsn = {
                "host": host,
                "port": port,
                "user": user,
                "password": password,
                "database": database,
            }
        self._dsn = dsn
        self._flavor = flavor

    @property
    def name(self) -> str:
        return self._flavor

    def _create_pool(self) -> BaseConnectionPool:
        return MySQLConnectionPool(self._dsn, self._pool_config, logger=self._logger)

    def _connect(self) -> Any:
        return mysql.connector.connect(
            connection_timeout=int(self._pool_config.connect_timeout),
            **self._dsn,
        )

    def _cancel_connection(self, connection: Any) -> None:
        killer = self._connect()
        try:
            cursor = killer.cursor()
            cursor.execute(f"KILL QUERY {int(connection.connection_id)}")
            cursor.close()
        finally:
            killer.close()

    def is_transport_error(self, error: BaseException) -> bool:
        if not isinstance(error, mysql_errors.Error):
            return False
        return getattr(error, "errno", None) in TRANSPORT_ERRNOS
