"""
목적: Elasticsearch 다이얼렉트를 제공한다.
설명: 조건을 Query DSL로 변환한다. 텍스트 필드의 equals/in은 keyword 서브필드가 있으면 term/terms,
    없으면 분석 match 쿼리로 대체한다. 페이지는 search_after(키셋)와 from/size(오프셋)로,
    결과 창을 넘는 오프셋은 point-in-time 스캔 문장으로 처리한다.
디자인 패턴: 전략 패턴, 빌더 패턴
참조: src/crossquery/integrations/db/base/dialect.py, src/crossquery/integrations/db/engines/elasticsearch/driver.py
"""

from __future__ import annotations

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

_RANGE_OPERATORS = {
    _Op.GREATER_THAN: "gt",
    _Op.LESS_THAN: "lt",
    _Op.GREATER_OR_EQUAL: "gte",
    _Op.LESS_OR_EQUAL: "lte",
}

_WILDCARD_TEMPLATES = {
    _Op.CONTAINS: "*{}*",
    _Op.NOT_CONTAINS: "*{}*",
    _Op.STARTS_WITH: "{}*",
    _Op.ENDS_WITH: "*{}",
}

PIT_KEEP_ALIVE = "1m"
KEYWORD_SUFFIX = ".keyword"


def _must_not(query: Dict[str, Any]) -> Dict[str, Any]:
    return {"bool": {"must_not": [query]}}


class ElasticsearchDialect(BaseDialect):
    """Elasticsearch Query DSL 다이얼렉트."""

    name = "elasticsearch"
    capabilities = DialectCapabilities(max_result_window=10_000)

    def quote_identifier(self, name: str) -> str:
        if not name or not name.strip():
            raise CompileError("필드 이름이 비어 있습니다.", backend=self.name)
        if "\x00" in name:
            raise CompileError("필드 이름에 NUL 문자를 사용할 수 없습니다.", column=name, backend=self.name)
        return name

    def escape_pattern(self, text: str) -> str:
        escaped = text.replace("\\", "\\\\")
        for char in "*?":
            escaped = escaped.replace(char, "\\" + char)
        return escaped

    def _exact_field(self, field: str, meta: Optional[ColumnMeta]) -> Optional[str]:
        """정확 일치에 쓸 필드를 반환한다. 분석 필드만 있으면 None이다."""

        if meta is None or not meta.is_text:
            return field
        if meta.has_keyword_subfield:
            return field + KEYWORD_SUFFIX
        return None

    def _equals(self, field: str, value: Any, meta: Optional[ColumnMeta]) -> Dict[str, Any]:
        exact = self._exact_field(field, meta)
        if exact is None:
            return {"match": {field: {"query": value, "operator": "and"}}}
        return {"term": {exact: value}}

    def render_condition(self, condition: ResolvedCondition, ctx: CompileContext) -> Dict[str, Any]:
        field = self.quote_identifier(condition.column)
        meta = ctx.column(condition.column)
        operator = condition.operator
        if operator is _Op.EQUALS:
            return self._equals(field, condition.scalar, meta)
        if operator is _Op.NOT_EQUALS:
            return _must_not(self._equals(field, condition.scalar, meta))
        if operator is _Op.IN:
            exact = self._exact_field(field, meta)
            if exact is None:
                return {
                    "bool": {
                        "should": [self._equals(field, item, meta) for item in condition.items],
                        "minimum_should_match": 1,
                    }
                }
            return {"terms": {exact: list(condition.items)}}
        if operator is _Op.IS_NULL:
            return _must_not({"exists": {"field": field}})
        if operator is _Op.IS_NOT_NULL:
            return {"exists": {"field": field}}
        if operator is _Op.BETWEEN:
            return {"range": {field: {"gte": condition.scalar, "lte": condition.upper}}}
        if operator in _WILDCARD_TEMPLATES:
            target = self._exact_field(field, meta) or field
            query = {
                "wildcard": {
                    target: {
                        "value": _WILDCARD_TEMPLATES[operator].format(self.escape_pattern(condition.text)),
                        "case_insensitive": True,
                    }
                }
            }
            if operator is _Op.NOT_CONTAINS:
                return _must_not(query)
            return query
        return {"range": {field: {_RANGE_OPERATORS[operator]: condition.scalar}}}

    def combine(self, parts: Sequence[Any], logic: FilterLogic, ctx: CompileContext) -> CompiledQuery:
        if len(parts) == 1:
            query = parts[0]
        elif logic is FilterLogic.OR:
            query = {"bool": {"should": list(parts), "minimum_should_match": 1}}
        else:
            query = {"bool": {"filter": list(parts)}}
        return CompiledQuery(dialect=self.name, native={"query": query})

    def match_all(self) -> CompiledQuery:
        return CompiledQuery(dialect=self.name)

    def query_of(self, compiled: CompiledQuery) -> Dict[str, Any]:
        if compiled.native:
            return compiled.native["query"]
        return {"match_all": {}}

    def sort_field(self, column: str, columns: Dict[str, ColumnMeta]) -> str:
        meta = columns.get(column)
        if meta is not None and meta.is_text and meta.has_keyword_subfield:
            return column + KEYWORD_SUFFIX
        return column

    def fallback_sort_column(self, columns: Sequence[str]) -> Optional[str]:
        # _id 같은 메타 필드는 정렬용 doc values가 없다.
        return next((column for column in columns if not column.startswith("_")), None)

    def _sort(self, keys: Sequence[SortKey], columns: Optional[Dict[str, ColumnMeta]]) -> List[Dict[str, Any]]:
        metas = columns or {}
        return [
            {
                self.sort_field(key.column, metas): {
                    "order": key.direction.value.lower(),
                    "missing": "_last" if self.nulls_after(key) else "_first",
                }
            }
            for key in keys
        ]

    def _equal_after(self, field: str, value: Any) -> Dict[str, Any]:
        if value is None:
            return _must_not({"exists": {"field": field}})
        return {"term": {field: value}}

    def _after(self, key: SortKey, field: str, value: Any) -> Dict[str, Any]:
        if value is None:
            return {"exists": {"field": field}}
        operator = "gt" if key.direction is SortDirection.ASC else "lt"
        query: Dict[str, Any] = {"range": {field: {operator: value}}}
        if key.nullable and self.nulls_after(key):
            return {"bool": {"should": [query, _must_not({"exists": {"field": field}})], "minimum_should_match": 1}}
        return query

    def _boundary_query(self, boundary: KeysetBoundary, columns: Dict[str, ColumnMeta]) -> Dict[str, Any]:
        """경계 다음 문서만 남기는 쿼리를 만든다.

        NULL(필드 없음) 값은 missing 정렬 위치에 맞춰 exists/must_not exists로 표현한다.
        """

        fields = [self.sort_field(key.column, columns) for key in boundary.keys]
        clauses: List[Dict[str, Any]] = []
        for index, key in enumerate(boundary.keys):
            value = boundary.values[index]
            if value is None and self.nulls_after(key):
                continue
            terms = [self._equal_after(fields[prior], boundary.values[prior]) for prior in range(index)]
            terms.append(self._after(key, fields[index], value))
            clauses.append(terms[0] if len(terms) == 1 else {"bool": {"filter": terms}})
        if not clauses:
            return _must_not({"match_all": {}})
        if len(clauses) == 1:
            return clauses[0]
        return {"bool": {"should": clauses, "minimum_should_match": 1}}

    def build_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        boundary: Optional[KeysetBoundary],
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        query = self.query_of(compiled)
        body: Dict[str, Any] = {"size": limit, "sort": self._sort(keys, columns)}
        if boundary is not None:
            if len(boundary.keys) == len(keys) and all(value is not None for value in boundary.values):
                body["search_after"] = list(boundary.values)
            else:
                # 일부 키만 있거나 NULL 값이 낀 커서는 쿼리 경계로 이어 간다.
                query = {"bool": {"filter": [query, self._boundary_query(boundary, columns or {})]}}
        body["query"] = query
        return Statement(
            kind=StatementKind.SELECT,
            table=table,
            command={"operation": "search", "index": table, "body": body},
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
        body = {
            "query": self.query_of(compiled),
            "sort": self._sort(keys, columns),
            "from": offset,
            "size": limit,
        }
        return Statement(
            kind=StatementKind.SELECT,
            table=table,
            command={"operation": "search", "index": table, "body": body},
        )

    def build_count(self, table: str, compiled: CompiledQuery) -> Statement:
        return Statement(
            kind=StatementKind.COUNT,
            table=table,
            command={"operation": "count", "index": table, "body": {"query": self.query_of(compiled)}},
        )

    def build_scan_open(self, table: str) -> Statement:
        return Statement(
            kind=StatementKind.SCAN_OPEN,
            table=table,
            command={"operation": "open_point_in_time", "index": table, "keep_alive": PIT_KEEP_ALIVE},
        )

    def build_scan_batch(
        self,
        handle: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        search_after: Optional[List[Any]],
        size: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        body: Dict[str, Any] = {
            "query": self.query_of(compiled),
            "sort": [*self._sort(keys, columns), {"_shard_doc": "asc"}],
            "size": size,
            "pit": {"id": handle, "keep_alive": PIT_KEEP_ALIVE},
            "track_total_hits": False,
        }
        if search_after is not None:
            body["search_after"] = list(search_after)
        return Statement(kind=StatementKind.SCAN_BATCH, command={"operation": "search", "body": body})

    def build_scan_close(self, handle: str) -> Statement:
        return Statement(
            kind=StatementKind.SCAN_CLOSE,
            command={"operation": "close_point_in_time", "id": handle},
        )

    def _document_id(self, table: str, key: Dict[str, Any]) -> str:
        if len(key) != 1:
            raise CompileError(
                "검색 인덱스의 문서 키는 단일 컬럼이어야 합니다.",
                operation="bulk",
                table=table,
                backend=self.name,
            )
        return str(next(iter(key.values())))

    def build_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Dict[str, Any]],
        returning: Optional[str] = None,
    ) -> Statement:
        actions: List[Dict[str, Any]] = []
        for row in rows:
            header: Dict[str, Any] = {"_index": table}
            if returning and row.get(returning) is not None:
                header["_id"] = str(row[returning])
            actions.append({"index": header})
            actions.append({column: row.get(column) for column in columns})
        return Statement(
            kind=StatementKind.INSERT,
            table=table,
            command={"operation": "bulk", "actions": actions},
        )

    def build_update(self, table: str, item: BulkUpdateItem) -> Statement:
        return self.build_update_batch(table, [item])

    def build_update_batch(self, table: str, items: Sequence[BulkUpdateItem]) -> Statement:
        self.key_columns(table, [item.primary_key for item in items])
        actions: List[Dict[str, Any]] = []
        for item in items:
            if not item.values:
                raise CompileError("업데이트할 값이 없습니다.", operation="bulk_update", table=table, backend=self.name)
            actions.append({"update": {"_index": table, "_id": self._document_id(table, item.primary_key)}})
            actions.append({"doc": dict(item.values)})
        return Statement(
            kind=StatementKind.UPDATE,
            table=table,
            command={"operation": "bulk", "actions": actions},
        )

    def build_delete(self, table: str, keys: Sequence[Dict[str, Any]]) -> Statement:
        key_columns = self.key_columns(table, keys)
        if len(key_columns) == 1:
            actions = [{"delete": {"_index": table, "_id": self._document_id(table, key)}} for key in keys]
            return Statement(
                kind=StatementKind.DELETE,
                table=table,
                command={"operation": "bulk", "actions": actions},
            )
        should = [
            {"bool": {"filter": [{"term": {column: key[column]}} for column in key_columns]}}
            for key in keys
        ]
        return Statement(
            kind=StatementKind.DELETE,
            table=table,
            command={
                "operation": "delete_by_query",
                "index": table,
                "body": {"query": {"bool": {"should": should, "minimum_should_match": 1}}},
            },
        )
