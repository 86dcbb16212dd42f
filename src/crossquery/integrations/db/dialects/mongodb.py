"""
목적: MongoDB 다이얼렉트를 제공한다.
설명: 조건을 MongoDB 필터 문서로 변환하고(정규식은 re.escape로 이스케이프), find/count/insert_many/
    bulk_write/delete_many 명령 사전을 생성한다.
디자인 패턴: 전략 패턴, 빌더 패턴
참조: src/crossquery/integrations/db/base/dialect.py, src/crossquery/integrations/db/engines/mongodb/driver.py
"""

from __future__ import annotations

import re
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

_COMPARISON_OPERATORS = {
    _Op.NOT_EQUALS: "$ne",
    _Op.GREATER_THAN: "$gt",
    _Op.LESS_THAN: "$lt",
    _Op.GREATER_OR_EQUAL: "$gte",
    _Op.LESS_OR_EQUAL: "$lte",
}

_REGEX_TEMPLATES = {
    _Op.CONTAINS: "{}",
    _Op.NOT_CONTAINS: "{}",
    _Op.STARTS_WITH: "^{}",
    _Op.ENDS_WITH: "{}$",
}


def _direction(direction: SortDirection) -> int:
    return 1 if direction is SortDirection.ASC else -1


class MongoDialect(BaseDialect):
    """MongoDB 다이얼렉트."""

    name = "mongodb"
    capabilities = DialectCapabilities(nulls_sort_high=False)

    def quote_identifier(self, name: str) -> str:
        if not name or not name.strip():
            raise CompileError("필드 이름이 비어 있습니다.", backend=self.name)
        if name.startswith("$") or "\x00" in name:
            raise CompileError("사용할 수 없는 필드 이름입니다.", column=name, backend=self.name)
        return name

    def escape_pattern(self, text: str) -> str:
        return re.escape(text)

    def render_condition(self, condition: ResolvedCondition, ctx: CompileContext) -> Dict[str, Any]:
        field = self.quote_identifier(condition.column)
        operator = condition.operator
        if operator is _Op.EQUALS:
            return {field: condition.scalar}
        if operator is _Op.IS_NULL:
            return {field: None}
        if operator is _Op.IS_NOT_NULL:
            return {field: {"$ne": None}}
        if operator is _Op.IN:
            return {field: {"$in": list(condition.items)}}
        if operator is _Op.BETWEEN:
            return {field: {"$gte": condition.scalar, "$lte": condition.upper}}
        if operator in _REGEX_TEMPLATES:
            regex = {
                "$regex": _REGEX_TEMPLATES[operator].format(self.escape_pattern(condition.text)),
                "$options": "i",
            }
            if operator is _Op.NOT_CONTAINS:
                return {field: {"$not": regex}}
            return {field: regex}
        return {field: {_COMPARISON_OPERATORS[operator]: condition.scalar}}

    def combine(self, parts: Sequence[Any], logic: FilterLogic, ctx: CompileContext) -> CompiledQuery:
        if len(parts) == 1:
            query = parts[0]
        else:
            query = {"$or" if logic is FilterLogic.OR else "$and": list(parts)}
        return CompiledQuery(dialect=self.name, native={"filter": query})

    def match_all(self) -> CompiledQuery:
        return CompiledQuery(dialect=self.name)

    def filter_of(self, compiled: CompiledQuery) -> Dict[str, Any]:
        if compiled.native:
            return dict(compiled.native["filter"])
        return {}

    def _boundary_filter(self, boundary: KeysetBoundary) -> Dict[str, Any]:
        """경계 이후 문서를 고르는 필터를 만든다. MongoDB는 NULL(누락 포함)을 가장 작은 값으로 정렬한다."""

        clauses: List[Dict[str, Any]] = []
        for index, key in enumerate(boundary.keys):
            value = boundary.values[index]
            if value is None and self.nulls_after(key):
                continue
            equals = {boundary.keys[prior].column: boundary.values[prior] for prior in range(index)}
            after = self._after_filter(key, value)
            if key.column in after:
                clauses.append({**equals, **after})
            else:
                clauses.append({"$and": [equals, after]} if equals else after)
        if not clauses:
            return {"_id": {"$exists": False}}
        if len(clauses) == 1:
            return clauses[0]
        return {"$or": clauses}

    def _after_filter(self, key: SortKey, value: Any) -> Dict[str, Any]:
        if value is None:
            return {key.column: {"$ne": None}}
        operator = "$gt" if key.direction is SortDirection.ASC else "$lt"
        if key.nullable and self.nulls_after(key):
            return {"$or": [{key.column: {operator: value}}, {key.column: None}]}
        return {key.column: {operator: value}}

    def _find(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        boundary: Optional[KeysetBoundary],
        limit: int,
        skip: int,
    ) -> Statement:
        query = self.filter_of(compiled)
        if boundary is not None:
            bound = self._boundary_filter(boundary)
            query = {"$and": [query, bound]} if query else bound
        return Statement(
            kind=StatementKind.SELECT,
            table=table,
            command={
                "operation": "find",
                "filter": query,
                "sort": [[key.column, _direction(key.direction)] for key in keys],
                "skip": skip,
                "limit": limit,
            },
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
        return self._find(table, compiled, keys, boundary, limit, 0)

    def build_offset_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        offset: int,
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        return self._find(table, compiled, keys, None, limit, offset)

    def build_count(self, table: str, compiled: CompiledQuery) -> Statement:
        return Statement(
            kind=StatementKind.COUNT,
            table=table,
            command={"operation": "count", "filter": self.filter_of(compiled)},
        )

    def build_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Dict[str, Any]],
        returning: Optional[str] = None,
    ) -> Statement:
        for column in columns:
            self.quote_identifier(column)
        return Statement(
            kind=StatementKind.INSERT,
            table=table,
            command={"operation": "insert_many", "documents": [dict(row) for row in rows], "ordered": False},
        )

    def build_update(self, table: str, item: BulkUpdateItem) -> Statement:
        return self.build_update_batch(table, [item])

    def build_update_batch(self, table: str, items: Sequence[BulkUpdateItem]) -> Statement:
        self.key_columns(table, [item.primary_key for item in items])
        updates = []
        for item in items:
            if not item.values:
                raise CompileError("업데이트할 값이 없습니다.", operation="bulk_update", table=table, backend=self.name)
            for column in item.values:
                self.quote_identifier(column)
            updates.append({"filter": dict(item.primary_key), "update": {"$set": dict(item.values)}})
        return Statement(
            kind=StatementKind.UPDATE,
            table=table,
            command={"operation": "bulk_update", "updates": updates, "ordered": False},
        )

    def build_delete(self, table: str, keys: Sequence[Dict[str, Any]]) -> Statement:
        key_columns = self.key_columns(table, keys)
        if len(key_columns) == 1:
            column = key_columns[0]
            query: Dict[str, Any] = {column: {"$in": [key[column] for key in keys]}}
        else:
            query = {"$or": [dict(key) for key in keys]}
        return Statement(
            kind=StatementKind.DELETE,
            table=table,
            command={"operation": "delete_many", "filter": query},
        )
