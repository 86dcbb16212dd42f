"""
목적: 벌크 연산 모듈 공개 API를 제공한다.
설명: 배치 분할/실행/실패 귀속을 담당하는 코디네이터를 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/integrations/db/bulk/coordinator.py
"""

from crossquery.integrations.db.bulk.coordinator import BulkOperationCoordinator, Guard

__all__ = ["BulkOperationCoordinator", "Guard"]
