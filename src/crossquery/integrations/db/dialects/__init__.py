"""
목적: 다이얼렉트 구현과 이름 기반 조회 함수를 노출한다.
설명: 백엔드 이름(postgres, mysql, mariadb, sqlite, sqlserver, cassandra, mongodb, elasticsearch, redis)으로
    다이얼렉트 인스턴스를 만든다.
디자인 패턴: 레지스트리, 팩토리
참조: src/crossquery/integrations/db/client.py
"""

from __future__ import annotations

from typing import Dict, Type

from crossquery.integrations.db.base.dialect import BaseDialect
from crossquery.integrations.db.dialects.cassandra import CassandraDialect
from crossquery.integrations.db.dialects.elasticsearch import ElasticsearchDialect
from crossquery.integrations.db.dialects.mongodb import MongoDialect
from crossquery.integrations.db.dialects.redis import RedisDialect
from crossquery.integrations.db.dialects.sql import (
    MariaDBDialect,
    MySQLDialect,
    PostgresDialect,
    SqlDialect,
    SQLiteDialect,
    SqlServerDialect,
)
from crossquery.integrations.db.errors import CompileError

DIALECTS: Dict[str, Type[BaseDialect]] = {
    "postgres": PostgresDialect,
    "postgresql": PostgresDialect,
    "mysql": MySQLDialect,
    "mariadb": MariaDBDialect,
    "sqlite": SQLiteDialect,
    "sqlserver": SqlServerDialect,
    "cassandra": CassandraDialect,
    "mongodb": MongoDialect,
    "elasticsearch": ElasticsearchDialect,
    "redis": RedisDialect,
}


def get_dialect(name: str) -> BaseDialect:
    """이름에 해당하는 다이얼렉트 인스턴스를 반환한다."""

    dialect_class = DIALECTS.get(name.strip().lower())
    if dialect_class is None:
        raise CompileError(f"알 수 없는 다이얼렉트입니다: {name}", backend=name)
    return dialect_class()


__all__ = [
    "BaseDialect",
    "CassandraDialect",
    "DIALECTS",
    "ElasticsearchDialect",
    "MariaDBDialect",
    "MongoDialect",
    "MySQLDialect",
    "PostgresDialect",
    "RedisDialect",
    "SQLiteDialect",
    "SqlDialect",
    "SqlServerDialect",
    "get_dialect",
]
