"""
목적: Cassandra CQL 다이얼렉트를 제공한다.
설명: CQL이 표현할 수 없는 연산자(NOT CONTAINS, IS [NOT] NULL)와 다중 조건 OR는 컴파일 단계에서 거부하고,
    임의 컬럼 정렬이 불가능하므로 필터는 서버(ALLOW FILTERING)에서, 정렬/경계/개수 제한은
    드라이버가 프로세스 내에서 적용하도록 window 명령을 함께 전달한다.
    CQL LIKE(SASI 인덱스)에는 ESCAPE 절이 없으므로 패턴 값의 % 와 _ 는 이스케이프하지 않고 와일드카드로 동작한다.
디자인 패턴: 전략 패턴
참조: src/crossquery/integrations/db/dialects/sql.py, src/crossquery/integrations/db/pagination/window.py
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from crossquery.integrations.db.base.dialect import CompileContext, DialectCapabilities
from crossquery.integrations.db.base.models import (
    BulkUpdateItem,
    ColumnMeta,
    CompiledQuery,
    FilterOperator,
    KeysetBoundary,
    SortDirection,
    SortKey,
)
from crossquery.integrations.db.base.statement import Statement, StatementKind
from crossquery.integrations.db.base.values import ResolvedCondition
from crossquery.integrations.db.dialects.sql import SqlDialect
from crossquery.integrations.db.pagination.window import window_command


class CassandraDialect(SqlDialect):
    """Cassandra CQL 다이얼렉트."""

    name = "cassandra"
    like_escape = ""
    capabilities = DialectCapabilities(
        server_side_ordering=False,
        supports_or=False,
        max_params=65535,
        unsupported_operators=frozenset(
            {
                FilterOperator.NOT_CONTAINS,
                FilterOperator.ENDS_WITH,
                FilterOperator.IS_NULL,
                FilterOperator.IS_NOT_NULL,
            }
        ),
    )
    batch_sizes = {"insert": 50, "update": 50, "delete": 50}

    def escape_pattern(self, text: str) -> str:
        return text

    def text_expression(self, column_sql: str, meta: Optional[ColumnMeta]) -> str:
        return column_sql

    def render_condition(self, condition: ResolvedCondition, ctx: CompileContext) -> str:
        operator = condition.operator
        column = self.quote_identifier(condition.column)
        if operator is FilterOperator.NOT_EQUALS:
            return f"{column} != {ctx.bind(condition.scalar)}"
        if operator is FilterOperator.CONTAINS:
            meta = ctx.column(condition.column)
            if meta is None or not meta.is_text:
                # 컬렉션 컬럼의 원소 포함 검사
                return f"{column} CONTAINS {ctx.bind(condition.scalar)}"
        return super().render_condition(condition, ctx)

    def render_between(self, column: str, condition: ResolvedCondition, ctx: CompileContext) -> str:
        low = ctx.bind(condition.scalar)
        high = ctx.bind(condition.upper)
        return f"{column} >= {low} AND {column} <= {high}"

    def _can_push_boundary(self, boundary: KeysetBoundary) -> bool:
        """선두 키 경계를 서버 조건으로 내려도 경계 뒤의 NULL 행을 잃지 않는지 반환한다."""

        key = boundary.keys[0]
        if boundary.values[0] is None:
            return False
        return not (key.nullable and self.nulls_after(key))

    def _select_filtered(
        self,
        table: str,
        compiled: CompiledQuery,
        boundary: Optional[KeysetBoundary],
    ) -> tuple[str, List[Any]]:
        ctx = self.new_context(start_index=len(compiled.params))
        where: List[str] = []
        if compiled.fragment:
            where.append(compiled.fragment)
        if boundary is not None and self._can_push_boundary(boundary):
            # 선두 키만 포함 경계로 내려 보내고 정확한 경계는 프로세스 내에서 적용한다.
            key = boundary.keys[0]
            symbol = ">=" if key.direction is SortDirection.ASC else "<="
            where.append(f"{self.quote_identifier(key.column)} {symbol} {ctx.bind(boundary.values[0])}")
        cql = f"SELECT * FROM {self.qualify(table)}"
        if where:
            cql += " WHERE " + " AND ".join(where) + " ALLOW FILTERING"
        return cql, [*compiled.params, *ctx.params]

    def build_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        boundary: Optional[KeysetBoundary],
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        cql, params = self._select_filtered(table, compiled, boundary)
        return Statement(
            kind=StatementKind.SELECT,
            table=table,
            text=cql,
            params=params,
            command={"window": window_command(keys, boundary, limit)},
        )

    def build_offset_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        offset: int,
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        cql, params = self._select_filtered(table, compiled, None)
        return Statement(
            kind=StatementKind.SELECT,
            table=table,
            text=cql,
            params=params,
            command={"window": window_command(keys, None, limit, offset)},
        )

    def build_count(self, table: str, compiled: CompiledQuery) -> Statement:
        cql = f"SELECT COUNT(*) AS total FROM {self.qualify(table)}"
        if compiled.fragment:
            cql += f" WHERE {compiled.fragment} ALLOW FILTERING"
        return Statement(kind=StatementKind.COUNT, table=table, text=cql, params=list(compiled.params))

    def build_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Dict[str, Any]],
        returning: Optional[str] = None,
    ) -> Statement:
        column_sql = ", ".join(self.quote_identifier(column) for column in columns)
        placeholders = ", ".join("?" for _ in columns)
        cql = f"INSERT INTO {self.qualify(table)} ({column_sql}) VALUES ({placeholders})"
        batch = [{"text": cql, "params": [row.get(column) for column in columns]} for row in rows]
        return Statement(kind=StatementKind.INSERT, table=table, command={"batch": batch})

    def build_update_batch(self, table: str, items: Sequence[BulkUpdateItem]) -> Optional[Statement]:
        batch = []
        for item in items:
            statement = self.build_update(table, item)
            batch.append({"text": statement.text, "params": statement.params})
        return Statement(kind=StatementKind.UPDATE, table=table, command={"batch": batch})

    def build_delete(self, table: str, keys: Sequence[Dict[str, Any]]) -> Statement:
        key_columns = self.key_columns(table, keys)
        if len(key_columns) == 1:
            return super().build_delete(table, keys)
        conditions = " AND ".join(f"{self.quote_identifier(column)} = ?" for column in key_columns)
        cql = f"DELETE FROM {self.qualify(table)} WHERE {conditions}"
        batch = [{"text": cql, "params": [key[column] for column in key_columns]} for key in keys]
        return Statement(kind=StatementKind.DELETE, table=table, command={"batch": batch})
