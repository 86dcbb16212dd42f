"""
목적: 백엔드 이름과 설정으로 드라이버/어댑터 파사드를 조립한다.
설명: 백엔드 이름으로 드라이버 클래스와 다이얼렉트를 고르고, AdapterSettings.pool을
    드라이버의 커넥션 풀 설정으로 전달한다. 접속 정보는 키워드 인자로 드라이버에 그대로 넘긴다.
디자인 패턴: 팩토리 메서드
참조: src/crossquery/integrations/db/client.py, src/crossquery/integrations/db/dialects/__init__.py
"""

from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional

from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.client import AdapterFacade
from crossquery.integrations.db.dialects import get_dialect
from crossquery.integrations.db.engines import (
    CassandraDriver,
    ElasticsearchDriver,
    MongoDriver,
    MySQLDriver,
    PostgresDriver,
    RedisDriver,
    SQLiteDriver,
    SqlServerDriver,
)
from crossquery.integrations.db.errors import CompileError
from crossquery.integrations.db.metadata import MetadataProvider
from crossquery.integrations.db.settings import AdapterSettings
from crossquery.shared.logging import Logger

DRIVERS: Dict[str, Callable[..., BaseBackendDriver]] = {
    "sqlite": SQLiteDriver,
    "postgres": PostgresDriver,
    "mysql": MySQLDriver,
    "mariadb": partial(MySQLDriver, flavor="mariadb"),
    "sqlserver": SqlServerDriver,
    "mongodb": MongoDriver,
    "elasticsearch": ElasticsearchDriver,
    "redis": RedisDriver,
    "cassandra": CassandraDriver,
}


def create_driver(
    backend: str,
    settings: Optional[AdapterSettings] = None,
    *,
    logger: Optional[Logger] = None,
    **options: Any,
) -> BaseBackendDriver:
    """백엔드 드라이버를 만든다. settings.pool이 커넥션 풀 설정이 된다."""

    factory = DRIVERS.get(backend.strip().lower())
    if factory is None:
        raise CompileError(f"알 수 없는 백엔드입니다: {backend}", backend=backend)
    settings = settings or AdapterSettings()
    return factory(pool_config=settings.pool, logger=logger, **options)


def create_adapter(
    backend: str,
    settings: Optional[AdapterSettings] = None,
    *,
    metadata: Optional[MetadataProvider] = None,
    logger: Optional[Logger] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **options: Any,
) -> AdapterFacade:
    """드라이버와 다이얼렉트를 짝지어 어댑터 파사드를 만든다."""

    settings = settings or AdapterSettings()
    driver = create_driver(backend, settings, logger=logger, **options)
    return AdapterFacade(
        driver,
        get_dialect(backend),
        settings=settings,
        metadata=metadata,
        logger=logger,
        sleep=sleep,
    )
