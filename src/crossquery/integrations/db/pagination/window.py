"""
목적: 서버 측 정렬이 없는 백엔드를 위한 프로세스 내 키셋 창 적용 함수를 제공한다.
설명: 정렬 키/경계/개수 제한을 명령 사전으로 직렬화하고, 드라이버가 가져온 후보 행에
    같은 비교 규칙(숫자 문자열은 숫자로, NULL은 가장 큼)으로 정렬/경계/오프셋/제한을 적용한다.
디자인 패턴: 유틸리티 함수
참조: src/crossquery/integrations/db/dialects/cassandra.py, src/crossquery/integrations/db/engines/redis/driver.py
"""

from __future__ import annotations

import math
from functools import cmp_to_key
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from crossquery.integrations.db.base.models import KeysetBoundary, SortDirection, SortKey


def window_command(
    keys: Sequence[SortKey],
    boundary: Optional[KeysetBoundary],
    limit: int,
    offset: int = 0,
) -> Dict[str, Any]:
    """정렬/경계/제한 정보를 드라이버 명령 사전으로 만든다."""

    return {
        "keys": [key.model_dump() for key in keys],
        "boundary": boundary.model_dump() if boundary is not None else None,
        "limit": limit,
        "offset": offset,
    }


def _token(value: Any) -> Tuple[int, Any]:
    if value is None:
        return (2, "")
    if isinstance(value, (bool, int, float)):
        return (0, float(value))
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return (1, value)
        if math.isfinite(number):
            return (0, number)
        return (1, value)
    return (1, str(value))


def compare_values(left: Any, right: Any) -> int:
    """두 값을 비교해 -1/0/1을 반환한다."""

    a, b = _token(left), _token(right)
    return (a > b) - (a < b)


def compare_keys(left: Sequence[Any], right: Sequence[Any], keys: Sequence[SortKey]) -> int:
    """정렬 키 방향을 반영해 값 목록을 사전식으로 비교한다."""

    for a, b, key in zip(left, right, keys):
        result = compare_values(a, b)
        if key.direction is SortDirection.DESC:
            result = -result
        if result:
            return result
    return 0


def apply_window(rows: List[Dict[str, Any]], command: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """후보 행에 정렬/경계/오프셋/제한을 적용한다."""

    keys = [SortKey.model_validate(item) for item in command.get("keys") or []]
    raw_boundary = command.get("boundary")
    boundary = KeysetBoundary.model_validate(raw_boundary) if raw_boundary else None

    def values(row: Dict[str, Any], sort_keys: Sequence[SortKey]) -> List[Any]:
        return [row.get(key.column) for key in sort_keys]

    ordered = list(rows)
    if keys:
        ordered.sort(key=cmp_to_key(lambda a, b: compare_keys(values(a, keys), values(b, keys), keys)))
    if boundary is not None:
        ordered = [
            row
            for row in ordered
            if compare_keys(values(row, boundary.keys), boundary.values, boundary.keys) > 0
        ]
    offset = int(command.get("offset") or 0)
    limit = command.get("limit")
    if limit is None:
        return ordered[offset:]
    return ordered[offset : offset + int(limit)]
