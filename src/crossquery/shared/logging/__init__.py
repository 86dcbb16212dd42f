"""
목적: 로깅 모듈 공개 API를 제공한다.
설명: 로거 인터페이스, 인메모리 구현체, 로그 모델을 노출한다.
디자인 패턴: 퍼사드
참조: src/crossquery/shared/logging/logger.py, src/crossquery/shared/logging/models.py
"""

from crossquery.shared.logging.logger import (
    InMemoryLogger,
    InMemoryLogRepository,
    Logger,
    LogRepository,
    create_default_logger,
)
from crossquery.shared.logging.models import LogContext, LogLevel, LogRecord

__all__ = [
    "Logger",
    "LogRepository",
    "InMemoryLogger",
    "InMemoryLogRepository",
    "create_default_logger",
    "LogContext",
    "LogLevel",
    "LogRecord",
]
