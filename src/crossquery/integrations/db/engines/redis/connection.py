"""
목적: Redis 연결 관리 모듈을 제공한다.
설명: 연결 초기화/종료와 클라이언트 보장을 담당한다.
디자인 패턴: 매니저 패턴
참조: src/crossquery/integrations/db/engines/redis/driver.py
"""

from __future__ import annotations

from typing import Optional

from redis import Redis

from crossquery.integrations.db.errors import NotConnectedError
from crossquery.shared.logging import Logger


class RedisConnectionManager:
    """Redis 연결 관리자."""

    def __init__(
        self,
        url: str,
        logger: Logger,
        connect_timeout: float = 10.0,
        max_connections: int = 10,
    ) -> None:
        self._url = url
        self._logger = logger
        self._connect_timeout = connect_timeout
        self._max_connections = max_connections
        self._client: Optional[Redis] = None

    def connect(self) -> None:
        """Redis 연결을 초기화한다."""

        if self._client is not None:
            return
        self._client = Redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=self._connect_timeout,
            max_connections=self._max_connections,
        )
        self._logger.info("Redis 연결이 초기화되었습니다.")

    def close(self) -> None:
        """Redis 연결을 종료한다."""

        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._logger.info("Redis 연결이 종료되었습니다.")

    def ensure_client(self) -> Redis:
        """초기화된 Redis 클라이언트를 반환한다."""

        if self._client is None:
            raise NotConnectedError("Redis 연결이 초기화되지 않았습니다.", backend="redis")
        return self._client
