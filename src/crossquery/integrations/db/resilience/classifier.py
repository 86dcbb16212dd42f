"""
목적: 실패를 연결 손실(재연결 대상)과 일반 백엔드 실패로 분류한다.
설명: 파이썬 연결 예외 타입, 드라이버가 알려 준 라이브러리 전송 예외, 메시지 시그니처 문자열을
    차례로 확인한다. 분류 결과에 따라 TransportError 또는 BackendError로 감싼다.
디자인 패턴: 규칙 기반 분류기
참조: src/crossquery/integrations/db/resilience/manager.py, src/crossquery/integrations/db/errors.py
"""

from __future__ import annotations

from typing import Optional

from crossquery.integrations.db.base.driver import BaseBackendDriver
from crossquery.integrations.db.errors import (
    BackendError,
    DatabaseError,
    TransportError,
)

TRANSPORT_SIGNATURES = (
    "econnrefused",
    "econnreset",
    "etimedout",
    "ehostunreach",
    "enetunreach",
    "connection refused",
    "connection reset",
    "timed out",
    "connection terminated",
    "connection closed",
    "server closed the connection unexpectedly",
    "terminating connection due to administrator command",
    "ssl connection has been closed unexpectedly",
    "broken pipe",
    "host unreachable",
    "network is unreachable",
)

_TRANSPORT_TYPES = (ConnectionError, TimeoutError, BrokenPipeError)


def is_transport_error(error: BaseException, driver: Optional[BaseBackendDriver] = None) -> bool:
    """연결 손실로 볼 수 있는 예외인지 판단한다."""

    if isinstance(error, TransportError):
        return True
    if isinstance(error, DatabaseError):
        return False
    if isinstance(error, _TRANSPORT_TYPES):
        return True
    if driver is not None and driver.is_transport_error(error):
        return True
    message = str(error).lower()
    return any(signature in message for signature in TRANSPORT_SIGNATURES)


def wrap_error(
    error: BaseException,
    *,
    operation: str,
    table: Optional[str] = None,
    backend: Optional[str] = None,
    driver: Optional[BaseBackendDriver] = None,
) -> DatabaseError:
    """원본 예외를 도메인 예외로 감싼다. 이미 도메인 예외면 컨텍스트만 채운다."""

    if isinstance(error, DatabaseError):
        return error.with_context(operation=operation, table=table, backend=backend)
    error_class = TransportError if is_transport_error(error, driver) else BackendError
    return error_class(
        str(error) or type(error).__name__,
        operation=operation,
        table=table,
        backend=backend,
        original=error,
    )
