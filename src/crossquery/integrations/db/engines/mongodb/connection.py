"""
목적: MongoDB 연결 관리 모듈을 제공한다.
설명: MongoClient 생성/종료와 데이터베이스 객체 보장을 담당한다.
디자인 패턴: 매니저 패턴
참조: src/crossquery/integrations/db/engines/mongodb/driver.py
"""

from __future__ import annotations

from typing import Any, Optional

from pymongo import MongoClient

from crossquery.integrations.db.errors import NotConnectedError
from crossquery.shared.logging import Logger


class MongoConnectionManager:
    """MongoDB 연결 관리자."""

    def __init__(
        self,
        uri: str,
        database_name: str,
        auth_source: Optional[str],
        logger: Logger,
        connect_timeout: float = 10.0,
        max_pool_size: int = 10,
    ) -> None:
        self._uri = uri
        self._database_name = database_name
        self._auth_source = auth_source
        self._logger = logger
        self._connect_timeout_ms = int(connect_timeout * 1000)
        self._max_pool_size = max_pool_size
        self._client: Optional[MongoClient] = None
        self._database: Any = None

    def connect(self) -> None:
        """MongoDB 연결을 초기화한다."""

        if self._client is not None:
            return
        options: dict = {
            "serverSelectionTimeoutMS": self._connect_timeout_ms,
            "connectTimeoutMS": self._connect_timeout_ms,
            "maxPoolSize": self._max_pool_size,
        }
        if self._auth_source and "authSource=" not in self._uri:
            options["authSource"] = self._auth_source
        self._client = MongoClient(self._uri, **options)
        self._database = self._client[self._database_name]
        self._logger.info("MongoDB 연결이 초기화되었습니다.")

    def close(self) -> None:
        """MongoDB 연결을 종료한다."""

        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._database = None
        self._logger.info("MongoDB 연결이 종료되었습니다.")

    def ensure_database(self) -> Any:
        """초기화된 MongoDB 데이터베이스 객체를 반환한다."""

        if self._database is None:
            raise NotConnectedError("MongoDB 연결이 초기화되지 않았습니다.", backend="mongodb")
        return self._database

    def ensure_client(self) -> MongoClient:
        if self._client is None:
            raise NotConnectedError("MongoDB 연결이 초기화되지 않았습니다.", backend="mongodb")
        return self._client
