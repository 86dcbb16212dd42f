"""
목적: 어댑터 구조화 로그의 레벨/컨텍스트/레코드 모델을 정의한다.
설명: LogContext는 백엔드, 연산, 테이블, 요청 식별자를 담고 기본 컨텍스트 위에 덮어쓰는 병합 규칙을 가진다.
    LogRecord는 stdout JSON 한 줄로 직렬화되며, LogLevel은 최소 레벨 필터링을 위한 순위를 제공한다.
디자인 패턴: 데이터 전송 객체(DTO)
참조: src/crossquery/shared/logging/logger.py
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

_LEVEL_RANKS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}


class LogLevel(str, Enum):
    """로그 레벨 열거형."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self.value]

    @classmethod
    def parse(cls, raw: Optional[str], default: "LogLevel") -> "LogLevel":
        """환경 변수 문자열을 레벨로 바꾼다. 알 수 없는 값이면 기본값을 쓴다."""

        if raw is None:
            return default
        try:
            return cls(raw.strip().upper())
        except ValueError:
            return default


class LogContext(BaseModel):
    """어댑터 연산 로그 컨텍스트.

    Args:
        backend: 대상 백엔드 이름(postgres, mongodb 등).
        operation: 수행 중인 연산 이름.
        table: 대상 테이블/컬렉션/인덱스.
        request_id: 취소 가능한 요청의 식별자.
        tags: 자유형 태그.
    """

    backend: Optional[str] = None
    operation: Optional[str] = None
    table: Optional[str] = None
    request_id: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)

    def merged_over(self, base: Optional["LogContext"]) -> "LogContext":
        """base 위에 이 컨텍스트의 값이 있는 항목만 덮어쓴다."""

        if base is None:
            return self
        return LogContext(
            backend=self.backend or base.backend,
            operation=self.operation or base.operation,
            table=self.table or base.table,
            request_id=self.request_id or base.request_id,
            tags={**base.tags, **self.tags},
        )

    def fields(self) -> Dict[str, Any]:
        payload = self.model_dump(exclude_none=True)
        if not self.tags:
            payload.pop("tags", None)
        return payload


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LogRecord(BaseModel):
    """로그 레코드 모델이다.

    Args:
        level: 로그 레벨.
        message: 로그 메시지.
        timestamp: 기록 시각(UTC).
        logger_name: 로거 이름(드라이버/구성 요소 이름).
        context: 병합된 연산 컨텍스트.
        metadata: 시도 횟수, 배치 인덱스 같은 추가 정보.
    """

    level: LogLevel
    message: str
    timestamp: datetime = Field(default_factory=_utc_now)
    logger_name: str
    context: Optional[LogContext] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """stdout JSON 한 줄로 쓸 사전을 만든다."""

        payload: Dict[str, Any] = {
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat(),
            "level": self.level.value,
            "logger": self.logger_name,
            "message": self.message,
        }
        if self.context is not None:
            fields = self.context.fields()
            if fields:
                payload["context"] = fields
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload
