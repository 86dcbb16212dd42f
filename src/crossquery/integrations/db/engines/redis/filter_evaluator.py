"""
목적: Redis 필터 평가기를 제공한다.
설명: RedisDialect가 직렬화한 필터 명세를 해시 행에 적용해 일치 여부를 반환한다.
    해시 값은 문자열이므로 비교는 window.compare_values 규칙(숫자 문자열은 숫자로)을 따른다.
디자인 패턴: 인터프리터 패턴
참조: src/crossquery/integrations/db/dialects/redis.py, src/crossquery/integrations/db/pagination/window.py
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

from crossquery.integrations.db.pagination.window import compare_values


class RedisFilterEvaluator:
    """Redis 필터 평가기."""

    def match(self, row: Mapping[str, Any], spec: Optional[Dict[str, Any]]) -> bool:
        """행이 필터 조건을 만족하는지 판단한다."""

        if not spec or not spec.get("conditions"):
            return True
        results = [self._evaluate_condition(row, condition) for condition in spec["conditions"]]
        if spec.get("logic") == "OR":
            return any(results)
        return all(results)

    def _evaluate_condition(self, row: Mapping[str, Any], condition: Dict[str, Any]) -> bool:
        value = row.get(condition["column"])
        operator = condition["operator"]
        target = condition.get("value")
        if operator == "is_null":
            return value is None
        if operator == "is_not_null":
            return value is not None
        if operator == "equals":
            return self._compare(value, target, lambda result: result == 0)
        if operator == "not_equals":
            return self._compare(value, target, lambda result: result != 0)
        if operator == "greater_than":
            return self._compare(value, target, lambda result: result > 0)
        if operator == "greater_or_equal":
            return self._compare(value, target, lambda result: result >= 0)
        if operator == "less_than":
            return self._compare(value, target, lambda result: result < 0)
        if operator == "less_or_equal":
            return self._compare(value, target, lambda result: result <= 0)
        if operator == "in":
            return any(self._compare(value, item, lambda result: result == 0) for item in condition.get("items") or [])
        if operator == "between":
            return self._compare(value, target, lambda result: result >= 0) and self._compare(
                value, condition.get("upper"), lambda result: result <= 0
            )
        if operator == "contains":
            return self._text(value, target, lambda text, needle: needle in text)
        if operator == "not_contains":
            return self._text(value, target, lambda text, needle: needle not in text)
        if operator == "starts_with":
            return self._text(value, target, lambda text, needle: text.startswith(needle))
        if operator == "ends_with":
            return self._text(value, target, lambda text, needle: text.endswith(needle))
        raise NotImplementedError("지원하지 않는 연산자입니다.")

    def _compare(self, left: Any, right: Any, check: Callable[[int], bool]) -> bool:
        if left is None or right is None:
            return False
        return check(compare_values(left, right))

    def _text(self, value: Any, target: Any, check: Callable[[str, str], bool]) -> bool:
        if value is None or target is None:
            return False
        return check(str(value).lower(), str(target).lower())
