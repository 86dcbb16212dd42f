"""
목적: SQL 계열 다이얼렉트(PostgreSQL, MySQL, MariaDB, SQLite, SQL Server)를 제공한다.
설명: 식별자 인용, 플레이스홀더, LIKE 이스케이프, 텍스트 캐스팅 차이를 클래스 속성으로 표현하고
    조건/키셋 경계/페이지/카운트/벌크 문장을 공통 템플릿으로 생성한다.
디자인 패턴: 템플릿 메서드, 전략 패턴
참조: src/crossquery/integrations/db/base/dialect.py, src/crossquery/integrations/db/engines/sql_common.py
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional, Sequence

from crossquery.integrations.db.base.dialect import BaseDialect, CompileContext, DialectCapabilities
from crossquery.integrations.db.base.models import (
    BulkUpdateItem,
    ColumnMeta,
    CompiledQuery,
    FilterLogic,
    FilterOperator,
    KeysetBoundary,
    SortDirection,
    SortKey,
)
from crossquery.integrations.db.base.statement import Statement, StatementKind
from crossquery.integrations.db.base.values import ResolvedCondition
from crossquery.integrations.db.errors import CompileError

_Op = FilterOperator

_COMPARISON_SYMBOLS = {
    _Op.EQUALS: "=",
    _Op.NOT_EQUALS: "<>",
    _Op.GREATER_THAN: ">",
    _Op.LESS_THAN: "<",
    _Op.GREATER_OR_EQUAL: ">=",
    _Op.LESS_OR_EQUAL: "<=",
}

_PATTERN_TEMPLATES = {
    _Op.CONTAINS: "%{}%",
    _Op.NOT_CONTAINS: "%{}%",
    _Op.STARTS_WITH: "{}%",
    _Op.ENDS_WITH: "%{}",
}


class SqlDialect(BaseDialect):
    """SQL 다이얼렉트 공통 구현."""

    name = "sql"
    quote_open = '"'
    quote_close = '"'
    param_style = "?"
    like_keyword = "LIKE"
    like_escape = " ESCAPE '\\'"
    pattern_chars = "%_"
    text_cast = "CAST({} AS TEXT)"
    native_nulls_high = False
    order_required = False

    def placeholder(self, index: int) -> str:
        return self.param_style

    def quote_identifier(self, name: str) -> str:
        if not name or not name.strip():
            raise CompileError("식별자가 비어 있습니다.", backend=self.name)
        if "\x00" in name:
            raise CompileError("식별자에 NUL 문자를 사용할 수 없습니다.", column=name, backend=self.name)
        escaped = name.replace(self.quote_close, self.quote_close * 2)
        return f"{self.quote_open}{escaped}{self.quote_close}"

    def qualify(self, table: str) -> str:
        """schema.table 형식을 각각 인용한다."""

        return ".".join(self.quote_identifier(part) for part in table.split(".", 1))

    def escape_pattern(self, text: str) -> str:
        escaped = text.replace("\\", "\\\\")
        for char in self.pattern_chars:
            escaped = escaped.replace(char, "\\" + char)
        return escaped

    def text_expression(self, column_sql: str, meta: Optional[ColumnMeta]) -> str:
        """패턴 비교용 텍스트 표현식을 반환한다."""

        return self.text_cast.format(column_sql)

    def render_condition(self, condition: ResolvedCondition, ctx: CompileContext) -> str:
        column = self.quote_identifier(condition.column)
        operator = condition.operator
        if operator is _Op.IS_NULL:
            return f"{column} IS NULL"
        if operator is _Op.IS_NOT_NULL:
            return f"{column} IS NOT NULL"
        if operator is _Op.IN:
            placeholders = ", ".join(ctx.bind(item) for item in condition.items)
            return f"{column} IN ({placeholders})"
        if operator is _Op.BETWEEN:
            return self.render_between(column, condition, ctx)
        if operator in _PATTERN_TEMPLATES:
            return self.render_pattern(column, condition, ctx)
        symbol = _COMPARISON_SYMBOLS.get(operator)
        if symbol is None:
            raise CompileError(
                "지원하지 않는 연산자입니다.",
                column=condition.column,
                operator=operator.value,
                backend=self.name,
            )
        return f"{column} {symbol} {ctx.bind(condition.scalar)}"

    def render_between(self, column: str, condition: ResolvedCondition, ctx: CompileContext) -> str:
        low = ctx.bind(condition.scalar)
        high = ctx.bind(condition.upper)
        return f"{column} BETWEEN {low} AND {high}"

    def render_pattern(self, column: str, condition: ResolvedCondition, ctx: CompileContext) -> str:
        pattern = _PATTERN_TEMPLATES[condition.operator].format(self.escape_pattern(condition.text))
        keyword = self.like_keyword
        if condition.operator is _Op.NOT_CONTAINS:
            keyword = f"NOT {keyword}"
        expression = self.text_expression(column, ctx.column(condition.column))
        return f"{expression} {keyword} {ctx.bind(pattern)}{self.like_escape}"

    def combine(self, parts: Sequence[Any], logic: FilterLogic, ctx: CompileContext) -> CompiledQuery:
        if len(parts) == 1:
            fragment = parts[0]
        else:
            fragment = f" {logic.value} ".join(f"({part})" for part in parts)
        return CompiledQuery(dialect=self.name, fragment=fragment, params=list(ctx.params))

    def match_all(self) -> CompiledQuery:
        return CompiledQuery(dialect=self.name)

    def render_boundary(self, boundary: KeysetBoundary, ctx: CompileContext) -> str:
        """조회 순서상 경계 이후 행을 고르는 사전식 비교 조건을 만든다.

        NULL은 nulls_after 규칙에 따라 비교한다. NULL 경계 뒤에 올 행이 없는 키는 건너뛰고,
        어떤 키로도 이어 갈 수 없으면 항상 거짓인 조건을 반환한다.
        """

        clauses: List[str] = []
        for index, key in enumerate(boundary.keys):
            value = boundary.values[index]
            if value is None and self.nulls_after(key):
                continue
            terms = [
                self._equal_term(boundary.keys[prior].column, boundary.values[prior], ctx)
                for prior in range(index)
            ]
            terms.append(self._after_term(key, value, ctx))
            clauses.append(terms[0] if len(terms) == 1 else "(" + " AND ".join(terms) + ")")
        if not clauses:
            return "1 = 0"
        if len(clauses) == 1:
            return clauses[0]
        return "(" + " OR ".join(clauses) + ")"

    def _equal_term(self, column: str, value: Any, ctx: CompileContext) -> str:
        quoted = self.quote_identifier(column)
        if value is None:
            return f"{quoted} IS NULL"
        return f"{quoted} = {ctx.bind(value)}"

    def _after_term(self, key: SortKey, value: Any, ctx: CompileContext) -> str:
        quoted = self.quote_identifier(key.column)
        if value is None:
            return f"{quoted} IS NOT NULL"
        symbol = ">" if key.direction is SortDirection.ASC else "<"
        term = f"{quoted} {symbol} {ctx.bind(value)}"
        if key.nullable and self.nulls_after(key):
            return f"({term} OR {quoted} IS NULL)"
        return term

    def order_clause(self, keys: Sequence[SortKey]) -> str:
        parts: List[str] = []
        for key in keys:
            quoted = self.quote_identifier(key.column)
            if key.nullable and not self.native_nulls_high:
                parts.append(f"CASE WHEN {quoted} IS NULL THEN 1 ELSE 0 END {key.direction.value}")
            parts.append(f"{quoted} {key.direction.value}")
        return ", ".join(parts)

    def limit_clause(self, ctx: CompileContext, limit: int, offset: Optional[int] = None) -> str:
        clause = f"LIMIT {ctx.bind(limit)}"
        if offset:
            clause += f" OFFSET {ctx.bind(offset)}"
        return clause

    def _select(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        boundary: Optional[KeysetBoundary],
        limit: int,
        offset: Optional[int],
    ) -> Statement:
        ctx = self.new_context(start_index=len(compiled.params))
        where: List[str] = []
        if compiled.fragment:
            where.append(f"({compiled.fragment})")
        if boundary is not None:
            where.append(self.render_boundary(boundary, ctx))
        sql = f"SELECT * FROM {self.qualify(table)}"
        if where:
            sql += " WHERE " + " AND ".join(where)
        if keys:
            sql += f" ORDER BY {self.order_clause(keys)}"
        elif self.order_required:
            sql += " ORDER BY (SELECT NULL)"
        sql += " " + self.limit_clause(ctx, limit, offset)
        return Statement(
            kind=StatementKind.SELECT,
            table=table,
            text=sql,
            params=[*compiled.params, *ctx.params],
        )

    def build_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        boundary: Optional[KeysetBoundary],
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        return self._select(table, compiled, keys, boundary, limit, None)

    def build_offset_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        offset: int,
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        return self._select(table, compiled, keys, None, limit, offset)

    def build_count(self, table: str, compiled: CompiledQuery) -> Statement:
        sql = f"SELECT COUNT(*) AS total FROM {self.qualify(table)}"
        if compiled.fragment:
            sql += f" WHERE {compiled.fragment}"
        return Statement(kind=StatementKind.COUNT, table=table, text=sql, params=list(compiled.params))

    def returning_clause(self, column: str) -> str:
        return f" RETURNING {self.quote_identifier(column)}"

    def build_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Dict[str, Any]],
        returning: Optional[str] = None,
    ) -> Statement:
        ctx = self.new_context()
        column_sql = ", ".join(self.quote_identifier(column) for column in columns)
        values_sql = ", ".join(
            "(" + ", ".join(ctx.bind(row.get(column)) for column in columns) + ")"
            for row in rows
        )
        sql = f"INSERT INTO {self.qualify(table)} ({column_sql}) VALUES {values_sql}"
        if returning and self.capabilities.supports_returning:
            sql += self.returning_clause(returning)
        return Statement(kind=StatementKind.INSERT, table=table, text=sql, params=ctx.params)

    def build_update(self, table: str, item: BulkUpdateItem) -> Statement:
        if not item.values:
            raise CompileError("업데이트할 값이 없습니다.", operation="bulk_update", table=table, backend=self.name)
        self.key_columns(table, [item.primary_key])
        ctx = self.new_context()
        assignments = ", ".join(
            f"{self.quote_identifier(column)} = {ctx.bind(value)}" for column, value in item.values.items()
        )
        conditions = " AND ".join(
            f"{self.quote_identifier(column)} = {ctx.bind(value)}" for column, value in item.primary_key.items()
        )
        sql = f"UPDATE {self.qualify(table)} SET {assignments} WHERE {conditions}"
        return Statement(kind=StatementKind.UPDATE, table=table, text=sql, params=ctx.params)

    def build_delete(self, table: str, keys: Sequence[Dict[str, Any]]) -> Statement:
        key_columns = self.key_columns(table, keys)
        ctx = self.new_context()
        if len(key_columns) == 1:
            column = key_columns[0]
            placeholders = ", ".join(ctx.bind(key[column]) for key in keys)
            where = f"{self.quote_identifier(column)} IN ({placeholders})"
        else:
            groups = []
            for key in keys:
                terms = " AND ".join(
                    f"{self.quote_identifier(column)} = {ctx.bind(key[column])}" for column in key_columns
                )
                groups.append(f"({terms})")
            where = " OR ".join(groups)
        sql = f"DELETE FROM {self.qualify(table)} WHERE {where}"
        return Statement(kind=StatementKind.DELETE, table=table, text=sql, params=ctx.params)


class PostgresDialect(SqlDialect):
    """PostgreSQL 다이얼렉트(psycopg2 pyformat 파라미터)."""

    name = "postgres"
    param_style = "%s"
    like_keyword = "ILIKE"
    native_nulls_high = True
    capabilities = DialectCapabilities(supports_returning=True, max_params=65535)


class MySQLDialect(SqlDialect):
    """MySQL 다이얼렉트(mysql-connector 파라미터, 기본 LIKE 이스케이프는 백슬래시)."""

    name = "mysql"
    quote_open = "`"
    quote_close = "`"
    param_style = "%s"
    like_escape = ""
    text_cast = "CAST({} AS CHAR)"
    capabilities = DialectCapabilities(supports_returning=False, max_params=65535)


class MariaDBDialect(MySQLDialect):
    """MariaDB 다이얼렉트(10.5+ INSERT ... RETURNING 지원)."""

    name = "mariadb"
    capabilities = DialectCapabilities(supports_returning=True, max_params=65535)


class SQLiteDialect(SqlDialect):
    """SQLite 다이얼렉트."""

    name = "sqlite"
    capabilities = DialectCapabilities(
        supports_returning=sqlite3.sqlite_version_info >= (3, 35, 0),
        max_params=32766 if sqlite3.sqlite_version_info >= (3, 32, 0) else 999,
    )

    def text_expression(self, column_sql: str, meta: Optional[ColumnMeta]) -> str:
        if meta is not None and meta.is_text:
            return column_sql
        return super().text_expression(column_sql, meta)


class SqlServerDialect(SqlDialect):
    """SQL Server 다이얼렉트(pymssql pyformat 파라미터, OFFSET/FETCH 페이지)."""

    name = "sqlserver"
    quote_open = "["
    quote_close = "]"
    param_style = "%s"
    pattern_chars = "%_["
    text_cast = "CAST({} AS NVARCHAR(MAX))"
    order_required = True
    capabilities = DialectCapabilities(supports_returning=True, max_params=2100)

    def limit_clause(self, ctx: CompileContext, limit: int, offset: Optional[int] = None) -> str:
        return f"OFFSET {ctx.bind(offset or 0)} ROWS FETCH NEXT {ctx.bind(limit)} ROWS ONLY"

    def build_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Dict[str, Any]],
        returning: Optional[str] = None,
    ) -> Statement:
        ctx = self.new_context()
        column_sql = ", ".join(self.quote_identifier(column) for column in columns)
        values_sql = ", ".join(
            "(" + ", ".join(ctx.bind(row.get(column)) for column in columns) + ")"
            for row in rows
        )
        output = f" OUTPUT INSERTED.{self.quote_identifier(returning)}" if returning else ""
        sql = f"INSERT INTO {self.qualify(table)} ({column_sql}){output} VALUES {values_sql}"
        return Statement(kind=StatementKind.INSERT, table=table, text=sql, params=ctx.params)
