"""
목적: Redis 키스페이스 유틸 모듈을 제공한다.
설명: "<table>:<id>" 키 생성 규칙과 SCAN 기반 키 수집을 담당한다.
디자인 패턴: 유틸리티 클래스
참조: src/crossquery/integrations/db/engines/redis/driver.py
"""

from __future__ import annotations

from typing import Any, List


class RedisKeyspaceHelper:
    """Redis 키스페이스 도우미."""

    scan_count = 200

    def make_key(self, table: str, row_id: object) -> str:
        """행 저장 키를 생성한다."""

        return f"{table}:{row_id}"

    def pattern(self, table: str) -> str:
        """테이블의 모든 행 키에 일치하는 SCAN 패턴을 반환한다."""

        escaped = "".join("\\" + char if char in "*?[]\\" else char for char in table)
        return f"{escaped}:*"

    def scan_keys(self, client: Any, pattern: str) -> List[str]:
        """패턴에 해당하는 키를 모두 조회한다."""

        cursor = 0
        keys: List[str] = []
        while True:
            cursor, batch = client.scan(cursor=cursor, match=pattern, count=self.scan_count)
            keys.extend(batch)
            if cursor == 0:
                break
        return keys
