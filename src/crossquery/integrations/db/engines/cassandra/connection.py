"""
목적: Cassandra 연결 관리 모듈을 제공한다.
설명: Cluster/Session 생성과 종료, 준비된 문장(prepared statement) 캐시를 담당한다.
디자인 패턴: 매니저 패턴
참조: src/crossquery/integrations/db/engines/cassandra/driver.py
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import Cluster, Session
from cassandra.query import PreparedStatement, dict_factory

from crossquery.integrations.db.errors import NotConnectedError
from crossquery.shared.logging import Logger


class CassandraConnectionManager:
    """Cassandra 연결 관리자."""

    max_prepared = 512

    def __init__(
        self,
        contact_points: List[str],
        port: int,
        keyspace: Optional[str],
        logger: Logger,
        user: Optional[str] = None,
        password: Optional[str] = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._contact_points = contact_points
        self._port = port
        self._keyspace = keyspace
        self._logger = logger
        self._user = user
        self._password = password
        self._connect_timeout = connect_timeout
        self._cluster: Optional[Cluster] = None
        self._session: Optional[Session] = None
        self._prepared: Dict[str, PreparedStatement] = {}
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Cassandra 연결을 초기화한다."""

        if self._session is not None:
            return
        options: Dict[str, Any] = {"port": self._port, "connect_timeout": self._connect_timeout}
        if self._user:
            options["auth_provider"] = PlainTextAuthProvider(username=self._user, password=self._password or "")
        cluster = Cluster(self._contact_points, **options)
        session = cluster.connect(self._keyspace) if self._keyspace else cluster.connect()
        session.row_factory = dict_factory
        self._cluster = cluster
        self._session = session
        self._logger.info("Cassandra 연결이 초기화되었습니다.")

    def close(self) -> None:
        """Cassandra 연결을 종료한다."""

        if self._cluster is None:
            return
        self._cluster.shutdown()
        self._cluster = None
        self._session = None
        with self._lock:
            self._prepared.clear()
        self._logger.info("Cassandra 연결이 종료되었습니다.")

    def ensure_session(self) -> Session:
        """초기화된 세션을 반환한다."""

        if self._session is None:
            raise NotConnectedError("Cassandra 연결이 초기화되지 않았습니다.", backend="cassandra")
        return self._session

    def prepare(self, cql: str) -> PreparedStatement:
        """CQL을 준비하고 캐시한다."""

        with self._lock:
            prepared = self._prepared.get(cql)
        if prepared is not None:
            return prepared
        prepared = self.ensure_session().prepare(cql)
        with self._lock:
            if len(self._prepared) >= self.max_prepared:
                self._prepared.pop(next(iter(self._prepared)))
            self._prepared[cql] = prepared
        return prepared
