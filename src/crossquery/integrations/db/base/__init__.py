"""
목적: DB 베이스 모듈 공개 API를 제공한다.
설명: 공통 모델, 필터 값 유니온, 문장/결과 모델과 드라이버/세션/풀/다이얼렉트 인터페이스를 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/integrations/db/base/models.py, src/crossquery/integrations/db/base/driver.py
"""

from crossquery.integrations.db.base.dialect import BaseDialect, CompileContext, DialectCapabilities
from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.base.models import (
    BulkError,
    BulkErrorKind,
    BulkOptions,
    BulkResult,
    BulkUpdateItem,
    ColumnMeta,
    CompileLimits,
    CompiledQuery,
    ConnectionState,
    ConnectionStatus,
    CursorDirection,
    CursorPosition,
    FilterCondition,
    FilterLogic,
    FilterOperator,
    FilterSet,
    KeysetBoundary,
    PageRequest,
    PageResult,
    PoolConfig,
    ReconnectPolicy,
    SortDirection,
    SortKey,
    StatusEvent,
)
from crossquery.integrations.db.base.pool import (
    BaseConnectionPool,
    BlockingConnectionPool,
    DelegatingConnectionPool,
)
from crossquery.integrations.db.base.session import BaseSession
from crossquery.integrations.db.base.statement import (
    DriverResult,
    RowError,
    Statement,
    StatementKind,
)
from crossquery.integrations.db.base.values import (
    NULL,
    FilterValue,
    ListValue,
    NullValue,
    ResolvedCondition,
    ScalarValue,
    resolve_condition,
    split_in_values,
)

__all__ = [
    "BaseDialect",
    "CompileContext",
    "DialectCapabilities",
    "BaseBackendDriver",
    "BaseConnectionPool",
    "BlockingConnectionPool",
    "DelegatingConnectionPool",
    "BaseSession",
    "BulkError",
    "BulkErrorKind",
    "BulkOptions",
    "BulkResult",
    "BulkUpdateItem",
    "ColumnMeta",
    "CompileLimits",
    "CompiledQuery",
    "ConnectionState",
    "ConnectionStatus",
    "CursorDirection",
    "CursorPosition",
    "FilterCondition",
    "FilterLogic",
    "FilterOperator",
    "FilterSet",
    "KeysetBoundary",
    "PageRequest",
    "PageResult",
    "PoolConfig",
    "ReconnectPolicy",
    "SortDirection",
    "SortKey",
    "StatusEvent",
    "DriverResult",
    "RowError",
    "Statement",
    "StatementKind",
    "NULL",
    "FilterValue",
    "ListValue",
    "NullValue",
    "ResolvedCondition",
    "ScalarValue",
    "resolve_condition",
    "split_in_values",
]
