"""
목적: DB 통합 모듈 공개 API를 제공한다.
설명: 어댑터 파사드, 설정, 메타데이터 공급자, 드라이버 구현체와 다이얼렉트를 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/integrations/db/client.py, src/crossquery/integrations/db/engines
"""

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
from crossquery.integrations.db.factory import create_adapter, create_driver
from crossquery.integrations.db.errors import (
    BackendError,
    CompileError,
    DatabaseError,
    NotConnectedError,
    PartialBatchFailure,
    ReadOnlyViolationError,
    TransportError,
)
from crossquery.integrations.db.metadata import (
    CachedMetadataProvider,
    MetadataProvider,
    StaticMetadataProvider,
)
from crossquery.integrations.db.settings import AdapterSettings, load_settings

__all__ = [
    "AdapterFacade",
    "AdapterSettings",
    "create_adapter",
    "create_driver",
    "load_settings",
    "get_dialect",
    "MetadataProvider",
    "StaticMetadataProvider",
    "CachedMetadataProvider",
    "SQLiteDriver",
    "PostgresDriver",
    "MySQLDriver",
    "SqlServerDriver",
    "MongoDriver",
    "ElasticsearchDriver",
    "RedisDriver",
    "CassandraDriver",
    "DatabaseError",
    "NotConnectedError",
    "CompileError",
    "TransportError",
    "BackendError",
    "PartialBatchFailure",
    "ReadOnlyViolationError",
]
