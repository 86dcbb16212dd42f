"""
목적: 프로세스 내 창 적용과 Redis 필터 평가를 검증한다.
설명: 숫자 문자열 비교, NULL 정렬 위치, 경계/오프셋/제한 적용, IN/패턴/범위 평가를 확인한다.
디자인 패턴: 테스트 케이스
참조: src/crossquery/integrations/db/pagination/window.py, src/crossquery/integrations/db/engines/redis/filter_evaluator.py
"""

from __future__ import annotations

from crossquery.integrations.db.base.models import (
    FilterCondition,
    FilterLogic,
    FilterOperator,
    FilterSet,
    KeysetBoundary,
    SortDirection,
    SortKey,
)
from crossquery.integrations.db.compiler import FilterCompiler
from crossquery.integrations.db.dialects import RedisDialect
from crossquery.integrations.db.engines.redis.filter_evaluator import RedisFilterEvaluator
from crossquery.integrations.db.pagination import apply_window, compare_values, window_command


def test_compare_values_treats_numeric_strings_as_numbers() -> None:
    """숫자 문자열이 숫자로 비교되는지 확인한다."""

    assert compare_values("10", "9") == 1
    assert compare_values(2, "2.0") == 0
    assert compare_values("abc", "abd") == -1
    assert compare_values(None, 1) == 1


def test_apply_window_orders_bounds_and_limits() -> None:
    """정렬/경계/제한이 차례로 적용되는지 확인한다."""

    rows = [{"id": str(value)} for value in (5, 1, 10, 3, 7)]
    keys = [SortKey(column="id")]
    boundary = KeysetBoundary(keys=keys, values=["3"])

    window = apply_window(rows, window_command(keys, boundary, 2))

    assert [row["id"] for row in window] == ["5", "7"]


def test_apply_window_descending_with_offset() -> None:
    """내림차순 정렬과 오프셋을 확인한다."""

    rows = [{"id": value} for value in (1, 2, 3, 4)]
    keys = [SortKey(column="id", direction=SortDirection.DESC)]

    window = apply_window(rows, window_command(keys, None, 2, offset=1))

    assert [row["id"] for row in window] == [3, 2]


def test_apply_window_tie_breaks_on_secondary_key() -> None:
    """선두 키가 같으면 보조 키로 경계를 판단하는지 확인한다."""

    rows = [
        {"score": 1, "id": 1},
        {"score": 1, "id": 2},
        {"score": 2, "id": 3},
    ]
    keys = [SortKey(column="score"), SortKey(column="id")]
    boundary = KeysetBoundary(keys=keys, values=[1, 1])

    window = apply_window(rows, window_command(keys, boundary, 10))

    assert [row["id"] for row in window] == [2, 3]


def test_apply_window_continues_from_null_boundary() -> None:
    """NULL 경계에서 같은 NULL 블록의 나머지와 그 뒤 행이 이어지는지 확인한다."""

    rows = [
        {"nick": "al", "id": 1},
        {"nick": None, "id": 2},
        {"nick": "bo", "id": 3},
        {"nick": None, "id": 4},
        {"nick": None, "id": 5},
    ]
    ascending = [SortKey(column="nick"), SortKey(column="id", nullable=False)]
    descending = [
        SortKey(column="nick", direction=SortDirection.DESC),
        SortKey(column="id", direction=SortDirection.DESC, nullable=False),
    ]

    tail = apply_window(rows, window_command(ascending, KeysetBoundary(keys=ascending, values=[None, 2]), 10))
    head = apply_window(rows, window_command(descending, KeysetBoundary(keys=descending, values=[None, 4]), 10))

    assert [row["id"] for row in tail] == [4, 5]
    assert [row["id"] for row in head] == [2, 3, 1]


def _spec(*conditions: FilterCondition, logic: FilterLogic = FilterLogic.AND):
    dialect = RedisDialect()
    compiled = FilterCompiler().compile(FilterSet.of(*conditions, logic=logic), dialect)
    return dialect.filter_of(compiled)


def test_in_filter_from_comma_string_matches_expected_rows() -> None:
    """쉼표 문자열 IN이 active/pending만 고르는지 확인한다."""

    spec = _spec(FilterCondition(column_name="status", operator=FilterOperator.IN, value="active,pending"))
    evaluator = RedisFilterEvaluator()

    assert evaluator.match({"status": "active"}, spec)
    assert evaluator.match({"status": "pending"}, spec)
    assert not evaluator.match({"status": "inactive"}, spec)


def test_empty_in_filter_matches_everything() -> None:
    """빈 IN 필터가 모든 행을 통과시키는지 확인한다."""

    spec = _spec(FilterCondition(column_name="status", operator=FilterOperator.IN, value=" , "))

    assert spec is None
    assert RedisFilterEvaluator().match({"status": "inactive"}, spec)


def test_pattern_and_range_conditions() -> None:
    """패턴과 범위 조건을 평가하는지 확인한다."""

    spec = _spec(
        FilterCondition(column_name="name", operator=FilterOperator.CONTAINS, value="ALI"),
        FilterCondition(column_name="age", operator=FilterOperator.BETWEEN, value=20, value2=30),
    )
    evaluator = RedisFilterEvaluator()

    assert evaluator.match({"name": "Alice", "age": "25"}, spec)
    assert not evaluator.match({"name": "Alice", "age": "31"}, spec)
    assert not evaluator.match({"name": "Bob", "age": "25"}, spec)


def test_or_logic_and_null_checks() -> None:
    """OR 결합과 NULL 검사를 평가하는지 확인한다."""

    spec = _spec(
        FilterCondition(column_name="deleted_at", operator=FilterOperator.IS_NULL),
        FilterCondition(column_name="status", operator=FilterOperator.EQUALS, value="archived"),
        logic=FilterLogic.OR,
    )
    evaluator = RedisFilterEvaluator()

    assert evaluator.match({"status": "active"}, spec)
    assert evaluator.match({"status": "archived", "deleted_at": "2024-01-01"}, spec)
    assert not evaluator.match({"status": "active", "deleted_at": "2024-01-01"}, spec)
