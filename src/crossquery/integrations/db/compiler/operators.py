"""
목적: 컬럼 데이터 타입별 허용 연산자 표를 제공한다.
설명: 숫자/날짜/불리언/문자열 타입 계열에 적용 가능한 필터 연산자를 정의한다.
디자인 패턴: 테이블 주도 설계
참조: src/crossquery/integrations/db/compiler/filter_compiler.py
"""

from __future__ import annotations

from typing import FrozenSet

from crossquery.integrations.db.base.models import FilterOperator

_Op = FilterOperator

STRING_OPERATORS: FrozenSet[FilterOperator] = frozenset(
    {
        _Op.EQUALS,
        _Op.NOT_EQUALS,
        _Op.CONTAINS,
        _Op.NOT_CONTAINS,
        _Op.STARTS_WITH,
        _Op.ENDS_WITH,
        _Op.IN,
        _Op.IS_NULL,
        _Op.IS_NOT_NULL,
    }
)

NUMERIC_OPERATORS: FrozenSet[FilterOperator] = frozenset(
    {
        _Op.EQUALS,
        _Op.NOT_EQUALS,
        _Op.GREATER_THAN,
        _Op.LESS_THAN,
        _Op.GREATER_OR_EQUAL,
        _Op.LESS_OR_EQUAL,
        _Op.BETWEEN,
        _Op.IN,
        _Op.IS_NULL,
        _Op.IS_NOT_NULL,
    }
)

DATE_OPERATORS: FrozenSet[FilterOperator] = NUMERIC_OPERATORS - {_Op.IN}

BOOLEAN_OPERATORS: FrozenSet[FilterOperator] = frozenset({_Op.EQUALS, _Op.IS_NULL, _Op.IS_NOT_NULL})

ALL_OPERATORS: FrozenSet[FilterOperator] = frozenset(FilterOperator)

_NUMERIC_MARKERS = ("int", "numeric", "decimal", "real", "double", "float", "money")
_NUMERIC_NAMES = {"number", "long", "short", "byte", "half_float", "scaled_float", "counter", "varint"}
_DATE_MARKERS = ("date", "time")
_BOOLEAN_NAMES = {"boolean", "bool", "bit"}


def operators_for_type(data_type: str) -> FrozenSet[FilterOperator]:
    """데이터 타입 문자열에 적용 가능한 연산자 집합을 반환한다."""

    normalized = data_type.strip().lower()
    if normalized in _BOOLEAN_NAMES:
        return BOOLEAN_OPERATORS
    if normalized in _NUMERIC_NAMES or any(marker in normalized for marker in _NUMERIC_MARKERS):
        return NUMERIC_OPERATORS
    if any(marker in normalized for marker in _DATE_MARKERS):
        return DATE_OPERATORS
    return STRING_OPERATORS
