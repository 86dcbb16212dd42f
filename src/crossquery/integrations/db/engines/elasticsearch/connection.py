"""
목적: Elasticsearch 연결 관리 모듈을 제공한다.
설명: 클라이언트 생성/종료와 요청별 옵션 클라이언트(opaque id) 반환을 담당한다.
디자인 패턴: 매니저 패턴
참조: src/crossquery/integrations/db/engines/elasticsearch/driver.py
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from elasticsearch import Elasticsearch

from crossquery.integrations.db.errors import NotConnectedError
from crossquery.shared.logging import Logger


class ElasticConnectionManager:
    """Elasticsearch 연결 관리자."""

    def __init__(
        self,
        hosts: List[str],
        logger: Logger,
        ca_certs: Optional[str] = None,
        verify_certs: Optional[bool] = None,
        ssl_assert_fingerprint: Optional[str] = None,
        basic_auth: Optional[Tuple[str, str]] = None,
        request_timeout: float = 10.0,
        max_connections: int = 10,
    ) -> None:
        self._hosts = hosts
        self._logger = logger
        self._ca_certs = ca_certs
        self._verify_certs = verify_certs
        self._ssl_assert_fingerprint = ssl_assert_fingerprint
        self._basic_auth = basic_auth
        self._request_timeout = request_timeout
        self._max_connections = max_connections
        self._client: Optional[Elasticsearch] = None

    def connect(self) -> None:
        """Elasticsearch 연결을 초기화한다."""

        if self._client is not None:
            return
        options: dict = {
            "request_timeout": self._request_timeout,
            "connections_per_node": self._max_connections,
        }
        if self._ca_certs:
            options["ca_certs"] = self._ca_certs
        if self._verify_certs is not None:
            options["verify_certs"] = self._verify_certs
        if self._ssl_assert_fingerprint:
            options["ssl_assert_fingerprint"] = self._ssl_assert_fingerprint
        if self._basic_auth:
            options["basic_auth"] = self._basic_auth
        self._client = Elasticsearch(self._hosts, **options)
        self._logger.info("Elasticsearch 연결이 초기화되었습니다.")

    def close(self) -> None:
        """Elasticsearch 연결을 종료한다."""

        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._logger.info("Elasticsearch 연결이 종료되었습니다.")

    def ensure_client(self) -> Elasticsearch:
        """초기화된 Elasticsearch 클라이언트를 반환한다."""

        if self._client is None:
            raise NotConnectedError("Elasticsearch 연결이 초기화되지 않았습니다.", backend="elasticsearch")
        return self._client

    def with_options(self, opaque_id: Optional[str]) -> Elasticsearch:
        """요청 추적용 opaque id를 붙인 옵션 클라이언트를 반환한다."""

        client = self.ensure_client()
        if opaque_id is None:
            return client
        return client.options(opaque_id=opaque_id)
