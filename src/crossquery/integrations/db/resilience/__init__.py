"""
목적: 연결 복원력 모듈 공개 API를 제공한다.
설명: 상태 머신 관리자와 전송 오류 분류 함수를 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/integrations/db/resilience/manager.py, src/crossquery/integrations/db/resilience/classifier.py
"""

from crossquery.integrations.db.resilience.classifier import (
    TRANSPORT_SIGNATURES,
    is_transport_error,
    wrap_error,
)
from crossquery.integrations.db.resilience.manager import (
    EXHAUSTED_MESSAGE,
    ConnectionResilienceManager,
)

__all__ = [
    "ConnectionResilienceManager",
    "EXHAUSTED_MESSAGE",
    "TRANSPORT_SIGNATURES",
    "is_transport_error",
    "wrap_error",
]
