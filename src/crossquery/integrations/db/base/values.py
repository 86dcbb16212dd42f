"""
목적: 필터 값의 태그드 유니온과 경계 정규화 함수를 제공한다.
설명: 원시 값(스칼라/리스트/쉼표 구분 문자열/None)을 ScalarValue, ListValue, NullValue 중
    하나로 한 번만 해석해 이후 컴파일 로직이 값의 형태를 다시 검사하지 않게 한다.
디자인 패턴: 값 객체
참조: src/crossquery/integrations/db/base/models.py, src/crossquery/integrations/db/compiler/filter_compiler.py
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from crossquery.integrations.db.base.models import FilterCondition, FilterOperator
from crossquery.integrations.db.errors import CompileError


@dataclass(frozen=True)
class ScalarValue:
    value: Any


@dataclass(frozen=True)
class ListValue:
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class NullValue:
    pass


FilterValue = Union[ScalarValue, ListValue, NullValue]

NULL = NullValue()

_NULL_OPERATORS = {FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL}
_BLANK_ALLOWED = {FilterOperator.EQUALS, FilterOperator.NOT_EQUALS}
PATTERN_OPERATORS = {
    FilterOperator.CONTAINS,
    FilterOperator.NOT_CONTAINS,
    FilterOperator.STARTS_WITH,
    FilterOperator.ENDS_WITH,
}


@dataclass(frozen=True)
class ResolvedCondition:
    """값 형태가 확정된 조건이다."""

    column: str
    operator: FilterOperator
    value: FilterValue = NULL
    value2: FilterValue = NULL

    @property
    def scalar(self) -> Any:
        if isinstance(self.value, ScalarValue):
            return self.value.value
        return None

    @property
    def upper(self) -> Any:
        if isinstance(self.value2, ScalarValue):
            return self.value2.value
        return None

    @property
    def items(self) -> Tuple[Any, ...]:
        if isinstance(self.value, ListValue):
            return self.value.items
        return ()

    @property
    def text(self) -> str:
        """패턴 연산자용 문자열 값을 반환한다."""

        return str(self.scalar)


def split_in_values(raw: Any) -> Tuple[Any, ...]:
    """IN 값을 정규화한다.

    문자열은 쉼표로 나눠 문자열로 유지하고(앞자리 0 보존), 리스트는 원소 타입을 유지한다.
    두 경우 모두 문자열 원소는 공백을 제거하며 빈 원소와 None은 버린다.
    """

    if raw is None:
        return ()
    if isinstance(raw, str):
        parts: Tuple[Any, ...] = tuple(raw.split(","))
    elif isinstance(raw, (list, tuple)):
        parts = tuple(raw)
    else:
        parts = (raw,)
    items = []
    for part in parts:
        if isinstance(part, str):
            part = part.strip()
            if not part:
                continue
        elif part is None:
            continue
        items.append(part)
    return tuple(items)


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def resolve_condition(condition: FilterCondition) -> Optional[ResolvedCondition]:
    """조건 값을 태그드 유니온으로 해석한다. 비활성 조건이면 None을 반환한다."""

    column = condition.column_name
    operator = condition.operator
    if operator in _NULL_OPERATORS:
        return ResolvedCondition(column=column, operator=operator)
    if operator is FilterOperator.IN:
        items = split_in_values(condition.value)
        if not items:
            return None
        return ResolvedCondition(column=column, operator=operator, value=ListValue(items))
    if isinstance(condition.value, (list, tuple, dict)):
        raise CompileError(
            "이 연산자는 단일 값만 허용합니다.",
            column=column,
            operator=operator.value,
        )
    if operator is FilterOperator.BETWEEN:
        if _is_blank(condition.value) or _is_blank(condition.value2):
            return None
        return ResolvedCondition(
            column=column,
            operator=operator,
            value=ScalarValue(condition.value),
            value2=ScalarValue(condition.value2),
        )
    if condition.value is None:
        raise CompileError(
            "필터 값이 필요합니다.",
            column=column,
            operator=operator.value,
            hint="NULL 비교는 is_null/is_not_null 연산자를 사용하세요.",
        )
    if _is_blank(condition.value) and operator not in _BLANK_ALLOWED:
        return None
    return ResolvedCondition(column=column, operator=operator, value=ScalarValue(condition.value))
