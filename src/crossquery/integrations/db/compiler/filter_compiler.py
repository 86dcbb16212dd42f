"""
목적: FilterSet을 다이얼렉트별 CompiledQuery로 변환하는 컴파일러를 제공한다.
설명: 조건 검증, 값 정규화(IN 분할/빈 조건 제거), 다이얼렉트 지원 여부 확인을 한 곳에서 수행하고
    연산자별 네이티브 조각 생성과 결합은 다이얼렉트 전략에 위임한다. I/O가 없는 순수 함수다.
디자인 패턴: 전략 패턴, 파이프라인
참조: src/crossquery/integrations/db/base/dialect.py, src/crossquery/integrations/db/base/values.py
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from crossquery.integrations.db.base.dialect import BaseDialect
from crossquery.integrations.db.base.models import (
    ColumnMeta,
    CompileLimits,
    CompiledQuery,
    FilterSet,
)
from crossquery.integrations.db.base.values import (
    ListValue,
    ResolvedCondition,
    ScalarValue,
    resolve_condition,
)
from crossquery.integrations.db.compiler.operators import operators_for_type
from crossquery.integrations.db.errors import CompileError
from crossquery.shared.logging import Logger, create_default_logger

ColumnsArg = Optional[Union[Mapping[str, ColumnMeta], Iterable[ColumnMeta]]]


def column_map(columns: ColumnsArg) -> Dict[str, ColumnMeta]:
    """컬럼 메타데이터를 이름별 사전으로 바꾼다."""

    if columns is None:
        return {}
    if isinstance(columns, Mapping):
        return dict(columns)
    return {column.name: column for column in columns}


class FilterCompiler:
    """필터 컴파일러.

    Args:
        limits: 조건 수/길이 검증 한도.
        logger: 주입 가능한 로거.
    """

    def __init__(
        self,
        limits: Optional[CompileLimits] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._limits = limits or CompileLimits()
        self._logger = logger or create_default_logger("FilterCompiler")

    @property
    def limits(self) -> CompileLimits:
        return self._limits

    def parse(self, raw: Union[FilterSet, Mapping[str, Any], None]) -> FilterSet:
        """원시 입력을 FilterSet으로 변환한다."""

        if raw is None:
            return FilterSet()
        if isinstance(raw, FilterSet):
            return raw
        try:
            return FilterSet.model_validate(raw)
        except ValidationError as exc:
            raise CompileError(
                "필터 형식이 올바르지 않습니다.",
                operation="compile",
                original=exc,
            ) from exc

    def resolve(self, filter_set: FilterSet, columns: ColumnsArg = None) -> List[ResolvedCondition]:
        """조건을 검증하고 값 형태를 확정한다. 비활성 조건은 제외된다."""

        limits = self._limits
        if len(filter_set.conditions) > limits.max_conditions:
            raise CompileError(
                f"필터 조건은 최대 {limits.max_conditions}개까지 허용됩니다.",
                operation="compile",
                metadata={"count": len(filter_set.conditions)},
            )
        metas = column_map(columns)
        resolved: List[ResolvedCondition] = []
        for condition in filter_set.conditions:
            name = condition.column_name
            if not name.strip():
                raise CompileError("컬럼 이름이 필요합니다.", operation="compile", operator=condition.operator.value)
            if len(name) > limits.max_column_length:
                raise CompileError(
                    f"컬럼 이름은 {limits.max_column_length}자를 넘을 수 없습니다.",
                    operation="compile",
                    column=name[: limits.max_column_length],
                    operator=condition.operator.value,
                )
            meta = metas.get(name)
            if meta is not None and meta.data_type:
                allowed = operators_for_type(meta.data_type)
                if condition.operator not in allowed:
                    raise CompileError(
                        f"'{meta.data_type}' 타입 컬럼에는 '{condition.operator.value}' 연산자를 사용할 수 없습니다.",
                        operation="compile",
                        column=name,
                        operator=condition.operator.value,
                    )
            item = resolve_condition(condition)
            if item is None:
                self._logger.debug(
                    "비활성 필터 조건을 제외했습니다.",
                    metadata={"column": name, "operator": condition.operator.value},
                )
                continue
            self._check_value_sizes(item)
            resolved.append(item)
        return resolved

    def compile(
        self,
        filter_set: FilterSet,
        dialect: BaseDialect,
        columns: ColumnsArg = None,
    ) -> CompiledQuery:
        """FilterSet을 다이얼렉트의 CompiledQuery로 변환한다."""

        metas = column_map(columns)
        try:
            resolved = self.resolve(filter_set, metas)
            if not resolved:
                return dialect.match_all()
            ctx = dialect.new_context(metas)
            parts = []
            for condition in resolved:
                dialect.check_condition(condition, filter_set.logic, len(resolved))
                parts.append(dialect.render_condition(condition, ctx))
            return dialect.combine(parts, filter_set.logic, ctx)
        except CompileError as exc:
            exc.with_context(operation="compile", backend=dialect.name)
            raise

    def _check_value_sizes(self, item: ResolvedCondition) -> None:
        limits = self._limits
        values: List[Any] = []
        if isinstance(item.value, ListValue):
            if len(item.value.items) > limits.max_in_values:
                raise CompileError(
                    f"IN 값은 최대 {limits.max_in_values}개까지 허용됩니다.",
                    column=item.column,
                    operator=item.operator.value,
                )
            values.extend(item.value.items)
        elif isinstance(item.value, ScalarValue):
            values.append(item.value.value)
        if isinstance(item.value2, ScalarValue):
            values.append(item.value2.value)
        for value in values:
            if isinstance(value, str) and len(value) > limits.max_value_length:
                raise CompileError(
                    f"필터 값은 {limits.max_value_length}자를 넘을 수 없습니다.",
                    column=item.column,
                    operator=item.operator.value,
                )
