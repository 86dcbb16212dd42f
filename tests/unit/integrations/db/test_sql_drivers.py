"""
목적: DB-API 드라이버의 전송 오류 분류와 커넥션 풀 위임을 검증한다.
설명: PostgreSQL/MySQL/SQL Server 드라이버가 연결 계열 에러만 전송 오류로 보고 교착 상태나 잠금 대기 초과는
    백엔드 오류로 남기는지, psycopg2/mysql-connector 라이브러리 풀에 대여/반환/폐기를 위임하는지 확인한다.
    라이브러리 풀과 커넥션은 가짜 객체로 바꿔 서버 없이 실행한다.
디자인 패턴: 테스트 더블(페이크)
참조: src/crossquery/integrations/db/engines/postgres.py, src/crossquery/integrations/db/engines/mysql.py,
    src/crossquery/integrations/db/engines/sqlserver.py, src/crossquery/integrations/db/base/pool.py
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

import psycopg2
import psycopg2.extensions
import psycopg2.pool
import pymssql
import pytest
from mysql.connector import errors as mysql_errors
from mysql.connector import pooling

from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.base.statement import Statement, StatementKind
from crossquery.integrations.db.engines import MySQLDriver, PostgresDriver, SqlServerDriver
from crossquery.integrations.db.resilience.classifier import is_transport_error


class _AdminShutdown(psycopg2.OperationalError):
    pgcode = "57P01"


class _ConnectionFailure(psycopg2.OperationalError):
    pgcode = "08006"


class _LockNotAvailable(psycopg2.OperationalError):
    pgcode = "55P03"


class _FakeCursor:
    def __init__(self, connection: "_FakeConnection") -> None:
        self._connection = connection
        self.description: Optional[List[Tuple[str]]] = None
        self.rowcount = -1

    def execute(self, sql: str, params: Any = None) -> None:
        self._connection.executed.append(sql)
        if self._connection.error is not None:
            raise self._connection.error
        self.description = [("ok",)]

    def fetchall(self) -> List[Tuple[int]]:
        return [(1,)]

    def fetchone(self) -> Tuple[int]:
        return (self._connection.spid,)

    def close(self) -> None:
        return None


class _FakeConnection:
    def __init__(self, spid: int = 51) -> None:
        self.executed: List[str] = []
        self.error: Optional[BaseException] = None
        self.spid = spid
        self.closed = False
        self.connection_id = spid

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)

    def commit(self) -> None:
        return None

    def rollback(self) -> None:
        return None

    def close(self) -> None:
        self.closed = True


class _FakeThreadedPool:
    """psycopg2.pool.ThreadedConnectionPool 대역."""

    instances: List["_FakeThreadedPool"] = []

    def __init__(self, minconn: int, maxconn: int, *args: Any, **kwargs: Any) -> None:
        self.minconn = minconn
        self.maxconn = maxconn
        self.args = args
        self.kwargs = kwargs
        self.closed = False
        self.connection = _FakeConnection()
        self.returned: List[bool] = []
        _FakeThreadedPool.instances.append(self)

    def getconn(self) -> _FakeConnection:
        return self.connection

    def putconn(self, connection: _FakeConnection, close: bool = False) -> None:
        self.returned.append(close)

    def closeall(self) -> None:
        self.closed = True


class _FakeMySQLPool:
    """mysql.connector.pooling.MySQLConnectionPool 대역."""

    instances: List["_FakeMySQLPool"] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.connection = _FakeConnection()
        self.removed = False
        _FakeMySQLPool.instances.append(self)

    def get_connection(self) -> _FakeConnection:
        return self.connection

    def _remove_connections(self) -> int:
        self.removed = True
        return 0


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (psycopg2.extensions.TransactionRollbackError("deadlock detected"), False),
        (psycopg2.extensions.QueryCanceledError("canceling statement due to user request"), False),
        (_LockNotAvailable("could not obtain lock on row"), False),
        (_AdminShutdown("terminating connection due to administrator command"), True),
        (_ConnectionFailure("connection failure"), True),
        (psycopg2.OperationalError("server closed the connection unexpectedly"), True),
        (psycopg2.InterfaceError("connection already closed"), True),
        (psycopg2.IntegrityError("duplicate key value"), False),
    ],
)
def test_postgres_transport_errors_are_connection_sqlstates_only(error: BaseException, expected: bool) -> None:
    """PostgreSQL은 연결 예외 SQLSTATE와 서버 종료 코드만 전송 오류로 보는지 확인한다."""

    driver = PostgresDriver(dsn="postgresql://u@localhost/db")

    assert driver.is_transport_error(error) is expected
    assert is_transport_error(error, driver) is expected


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (mysql_errors.InternalError(msg="Deadlock found when trying to get lock", errno=1213), False),
        (mysql_errors.DatabaseError(msg="Lock wait timeout exceeded", errno=1205), False),
        (mysql_errors.OperationalError(msg="Query execution was interrupted", errno=1317), False),
        (mysql_errors.OperationalError(msg="MySQL server has gone away", errno=2006), True),
        (mysql_errors.OperationalError(msg="Lost connection to MySQL server during query", errno=2013), True),
        (mysql_errors.InterfaceError(msg="Can't connect to MySQL server", errno=2003), True),
        (mysql_errors.InterfaceError(msg="Can't connect to local MySQL server", errno=2002), True),
        (mysql_errors.OperationalError(msg="Lost connection to server", errno=2055), True),
    ],
)
def test_mysql_transport_errors_are_client_errnos_only(error: BaseException, expected: bool) -> None:
    """MySQL은 클라이언트 연결 에러 번호만 전송 오류로 보는지 확인한다."""

    driver = MySQLDriver()

    assert driver.is_transport_error(error) is expected
    assert is_transport_error(error, driver) is expected


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (pymssql.OperationalError(1205, b"Transaction was deadlocked"), False),
        (pymssql.OperationalError(20009, b"Unable to connect: Adaptive Server is unavailable"), True),
        (pymssql.OperationalError(20047, b"DBPROCESS is dead or not enabled"), True),
        (pymssql.InterfaceError("Connection is closed."), True),
        (pymssql.IntegrityError(2627, b"Violation of PRIMARY KEY constraint"), False),
    ],
)
def test_sqlserver_transport_errors(error: BaseException, expected: bool) -> None:
    """SQL Server는 DB-Library 연결 에러 번호만 전송 오류로 보는지 확인한다."""

    assert SqlServerDriver().is_transport_error(error) is expected


@pytest.mark.asyncio
async def test_postgres_delegates_to_threaded_connection_pool(monkeypatch: pytest.MonkeyPatch) -> None:
    """PostgreSQL 드라이버가 psycopg2 풀에서 빌리고 돌려주며, 끊긴 커넥션은 닫도록 반환하는지 확인한다."""

    _FakeThreadedPool.instances.clear()
    monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", _FakeThreadedPool)
    driver = PostgresDriver(
        dsn="postgresql://u@localhost/db",
        pool_config=PoolConfig(min_connections=1, max_connections=3, connect_timeout=2),
    )

    await driver.open()
    library_pool = _FakeThreadedPool.instances[-1]
    result = await driver.execute(Statement(kind=StatementKind.RAW, text="SELECT 1"))
    library_pool.connection.error = psycopg2.OperationalError("server closed the connection unexpectedly")
    with pytest.raises(psycopg2.OperationalError):
        await driver.execute(Statement(kind=StatementKind.RAW, text="SELECT 1"))
    library_pool.connection.error = psycopg2.extensions.TransactionRollbackError("deadlock detected")
    with pytest.raises(psycopg2.extensions.TransactionRollbackError):
        await driver.execute(Statement(kind=StatementKind.RAW, text="SELECT 1"))
    await driver.close()

    assert (library_pool.minconn, library_pool.maxconn) == (1, 3)
    assert library_pool.args == ("postgresql://u@localhost/db",)
    assert library_pool.kwargs == {"connect_timeout": 2}
    assert result.rows == [{"ok": 1}]
    assert library_pool.returned == [False, True, False]
    assert library_pool.closed is True


@pytest.mark.asyncio
async def test_mysql_delegates_to_library_pool_with_capped_size(monkeypatch: pytest.MonkeyPatch) -> None:
    """MySQL 드라이버가 라이브러리 풀 크기를 상한으로 자르고 종료 시 풀 커넥션을 정리하는지 확인한다."""

    _FakeMySQLPool.instances.clear()
    monkeypatch.setattr(pooling, "MySQLConnectionPool", _FakeMySQLPool)
    driver = MySQLDriver(
        host="db.local",
        password="pw",
        pool_config=PoolConfig(max_connections=pooling.CNX_POOL_MAXSIZE + 8),
    )

    await driver.open()
    library_pool = _FakeMySQLPool.instances[-1]
    result = await driver.execute(Statement(kind=StatementKind.RAW, text="SELECT 1"))
    await driver.close()

    assert library_pool.kwargs["pool_size"] == pooling.CNX_POOL_MAXSIZE
    assert library_pool.kwargs["host"] == "db.local"
    assert result.rows == [{"ok": 1}]
    assert library_pool.connection.closed is True
    assert library_pool.removed is True


@pytest.mark.asyncio
async def test_delegating_pool_waits_for_a_free_slot(monkeypatch: pytest.MonkeyPatch) -> None:
    """라이브러리 풀이 고갈되면 connect_timeout까지 기다린 뒤 실패하는지 확인한다."""

    monkeypatch.setattr(psycopg2.pool, "ThreadedConnectionPool", _FakeThreadedPool)
    driver = PostgresDriver(
        dsn="postgresql://u@localhost/db",
        pool_config=PoolConfig(max_connections=1, connect_timeout=0.05),
    )
    await driver.open()
    pool = driver.ensure_pool()

    held = pool.acquire()
    with pytest.raises(RuntimeError):
        pool.acquire()
    pool.release(held)
    again = pool.acquire()
    pool.release(again)
    await driver.close()

    assert again is held


@pytest.mark.asyncio
async def test_sqlserver_cancel_kills_the_tracked_session(monkeypatch: pytest.MonkeyPatch) -> None:
    """SQL Server 드라이버가 커넥션의 SPID를 기억했다가 별도 커넥션에서 KILL로 취소하는지 확인한다."""

    opened: List[_FakeConnection] = []

    def connect(**kwargs: Any) -> _FakeConnection:
        connection = _FakeConnection(spid=60 + len(opened))
        opened.append(connection)
        return connection

    monkeypatch.setattr(pymssql, "connect", connect)
    driver = SqlServerDriver(host="mssql.local", password="pw")

    await driver.open()
    worker = driver.ensure_pool().acquire()
    driver._running["req-1"] = worker
    cancelled = await driver.cancel("req-1")
    driver.ensure_pool().release(worker)
    await driver.close()

    assert cancelled is True
    assert worker.executed == ["SELECT @@SPID"]
    assert opened[1].executed == ["KILL 60"]
    assert opened[1].closed is True
