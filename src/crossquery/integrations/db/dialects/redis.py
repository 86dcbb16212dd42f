"""
목적: Redis 해시 키스페이스 다이얼렉트를 제공한다.
설명: 행은 "<table>:<id>" 해시로 저장된다고 보고, 조건을 드라이버가 프로세스 내에서 평가할
    직렬화된 필터 명세로 변환한다. 조회는 SCAN으로 후보를 모은 뒤 window 명령으로 정렬/경계/제한을 적용한다.
디자인 패턴: 전략 패턴, 인터프리터 패턴
참조: src/crossquery/integrations/db/engines/redis/filter_evaluator.py, src/crossquery/integrations/db/pagination/window.py
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from crossquery.integrations.db.base.dialect import BaseDialect, CompileContext, DialectCapabilities
from crossquery.integrations.db.base.models import (
    BulkUpdateItem,
    ColumnMeta,
    CompiledQuery,
    FilterLogic,
    KeysetBoundary,
    SortKey,
)
from crossquery.integrations.db.base.statement import Statement, StatementKind
from crossquery.integrations.db.base.values import ResolvedCondition
from crossquery.integrations.db.errors import CompileError
from crossquery.integrations.db.pagination.window import window_command


class RedisDialect(BaseDialect):
    """Redis 다이얼렉트.

    Args:
        key_field: 키 접미사로 쓰이는 행 필드 이름.
    """

    name = "redis"
    capabilities = DialectCapabilities(server_side_ordering=False)

    def __init__(self, key_field: str = "id") -> None:
        self.key_field = key_field

    def quote_identifier(self, name: str) -> str:
        if not name or not name.strip():
            raise CompileError("필드 이름이 비어 있습니다.", backend=self.name)
        if "\x00" in name:
            raise CompileError("필드 이름에 NUL 문자를 사용할 수 없습니다.", column=name, backend=self.name)
        return name

    def render_condition(self, condition: ResolvedCondition, ctx: CompileContext) -> Dict[str, Any]:
        return {
            "column": self.quote_identifier(condition.column),
            "operator": condition.operator.value,
            "value": condition.scalar,
            "upper": condition.upper,
            "items": list(condition.items),
        }

    def combine(self, parts: Sequence[Any], logic: FilterLogic, ctx: CompileContext) -> CompiledQuery:
        return CompiledQuery(
            dialect=self.name,
            native={"filter": {"logic": logic.value, "conditions": list(parts)}},
        )

    def match_all(self) -> CompiledQuery:
        return CompiledQuery(dialect=self.name)

    def filter_of(self, compiled: CompiledQuery) -> Optional[Dict[str, Any]]:
        if compiled.native:
            return compiled.native["filter"]
        return None

    def _scan(self, table: str, compiled: CompiledQuery, window: Dict[str, Any]) -> Statement:
        return Statement(
            kind=StatementKind.SELECT,
            table=table,
            command={
                "operation": "scan_rows",
                "prefix": table,
                "filter": self.filter_of(compiled),
                "window": window,
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
        return self._scan(table, compiled, window_command(keys, boundary, limit))

    def build_offset_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        offset: int,
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        return self._scan(table, compiled, window_command(keys, None, limit, offset))

    def build_count(self, table: str, compiled: CompiledQuery) -> Statement:
        return Statement(
            kind=StatementKind.COUNT,
            table=table,
            command={"operation": "count_rows", "prefix": table, "filter": self.filter_of(compiled)},
        )

    def _row_id(self, table: str, key: Dict[str, Any]) -> str:
        value = key.get(self.key_field)
        if value is None or len(key) != 1:
            raise CompileError(
                f"Redis 행 키는 '{self.key_field}' 단일 필드여야 합니다.",
                operation="bulk",
                table=table,
                column=self.key_field,
                backend=self.name,
            )
        return str(value)

    def build_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Dict[str, Any]],
        returning: Optional[str] = None,
    ) -> Statement:
        items: List[Dict[str, Any]] = []
        for row in rows:
            for column in columns:
                self.quote_identifier(column)
            items.append(
                {
                    "id": self._row_id(table, {self.key_field: row.get(self.key_field)}),
                    "mapping": {column: row.get(column) for column in columns},
                }
            )
        return Statement(
            kind=StatementKind.INSERT,
            table=table,
            command={"operation": "hset_many", "prefix": table, "items": items, "require_existing": False},
        )

    def build_update(self, table: str, item: BulkUpdateItem) -> Statement:
        return self.build_update_batch(table, [item])

    def build_update_batch(self, table: str, items: Sequence[BulkUpdateItem]) -> Statement:
        payload = []
        for item in items:
            if not item.values:
                raise CompileError("업데이트할 값이 없습니다.", operation="bulk_update", table=table, backend=self.name)
            payload.append({"id": self._row_id(table, item.primary_key), "mapping": dict(item.values)})
        return Statement(
            kind=StatementKind.UPDATE,
            table=table,
            command={"operation": "hset_many", "prefix": table, "items": payload, "require_existing": True},
        )

    def build_delete(self, table: str, keys: Sequence[Dict[str, Any]]) -> Statement:
        key_columns = self.key_columns(table, keys)
        if key_columns == [self.key_field]:
            return Statement(
                kind=StatementKind.DELETE,
                table=table,
                command={
                    "operation": "delete_keys",
                    "prefix": table,
                    "ids": [self._row_id(table, key) for key in keys],
                },
            )
        # 키 필드가 아닌 컬럼 조합은 스캔 후 일치하는 행을 지운다.
        return Statement(
            kind=StatementKind.DELETE,
            table=table,
            command={"operation": "delete_matching", "prefix": table, "keys": [dict(key) for key in keys]},
        )
