"""
목적: 백엔드 드라이버 구현체 모듈을 제공한다.
설명: 각 저장 엔진의 드라이버 클래스를 외부에 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/integrations/db/engines/*/driver.py
"""

from crossquery.integrations.db.engines.cassandra import CassandraDriver
from crossquery.integrations.db.engines.elasticsearch import ElasticsearchDriver
from crossquery.integrations.db.engines.mongodb import MongoDriver
from crossquery.integrations.db.engines.mysql import MySQLDriver
from crossquery.integrations.db.engines.postgres import PostgresDriver
from crossquery.integrations.db.engines.redis import RedisDriver
from crossquery.integrations.db.engines.sql_common import DbApiDriver, DbApiSession
from crossquery.integrations.db.engines.sqlite import SQLiteDriver
from crossquery.integrations.db.engines.sqlserver import SqlServerDriver

__all__ = [
    "DbApiDriver",
    "DbApiSession",
    "SQLiteDriver",
    "PostgresDriver",
    "MySQLDriver",
    "SqlServerDriver",
    "MongoDriver",
    "ElasticsearchDriver",
    "RedisDriver",
    "CassandraDriver",
]
