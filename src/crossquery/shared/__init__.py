"""
목적: shared 패키지의 공개 API를 제공한다.
설명: 로깅, 예외, 설정 하위 모듈에 대한 접근 포인트를 제공한다.
디자인 패턴: 퍼사드
참조: src/crossquery/shared/exceptions, src/crossquery/shared/logging, src/crossquery/shared/config
"""

from crossquery.shared.config import ConfigLoader
from crossquery.shared.exceptions import BaseAppException, ExceptionDetail
from crossquery.shared.logging import (
    InMemoryLogger,
    InMemoryLogRepository,
    LogContext,
    LogLevel,
    LogRecord,
    Logger,
    LogRepository,
    create_default_logger,
)

__all__ = [
    "ConfigLoader",
    "BaseAppException",
    "ExceptionDetail",
    "LogContext",
    "LogLevel",
    "LogRecord",
    "Logger",
    "LogRepository",
    "InMemoryLogger",
    "InMemoryLogRepository",
    "create_default_logger",
]
