"""
목적: 데이터베이스 계층의 도메인 예외를 정의한다.
설명: 연결 없음/컴파일 실패/전송 실패/백엔드 실패/부분 배치 실패/읽기 전용 위반을 구분하고
    연산 이름, 대상 테이블, 컬럼/연산자 컨텍스트를 ExceptionDetail 메타데이터로 보관한다.
디자인 패턴: 도메인 예외 객체
참조: src/crossquery/shared/exceptions/base.py, src/crossquery/integrations/db/resilience/classifier.py
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from crossquery.shared.exceptions import BaseAppException, ErrorCode, ExceptionDetail


class DatabaseError(BaseAppException):
    """데이터베이스 계층 공통 예외.

    Args:
        message: 에러 메시지.
        operation: 실패한 연산 이름(fetch_page, bulk_insert 등).
        table: 대상 테이블/컬렉션/인덱스.
        column: 문제가 된 컬럼.
        operator: 문제가 된 필터 연산자.
        backend: 백엔드/다이얼렉트 이름.
        hint: 해결 힌트.
        original: 원본 예외.
        metadata: 추가 메타데이터.
    """

    code = ErrorCode.DB_ERROR.value
    default_hint: Optional[str] = None
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        column: Optional[str] = None,
        operator: Optional[str] = None,
        backend: Optional[str] = None,
        hint: Optional[str] = None,
        original: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        detail = ExceptionDetail.of(
            self.code,
            original,
            hint=hint or self.default_hint,
            retryable=self.retryable,
            operation=operation,
            table=table,
            column=column,
            operator=operator,
            backend=backend,
            **(metadata or {}),
        )
        super().__init__(message, detail, original)

    @property
    def operation(self) -> Optional[str]:
        return self.detail.metadata.get("operation")

    @property
    def table(self) -> Optional[str]:
        return self.detail.metadata.get("table")

    @property
    def column(self) -> Optional[str]:
        return self.detail.metadata.get("column")

    @property
    def operator(self) -> Optional[str]:
        return self.detail.metadata.get("operator")

    def with_context(self, **context: Any) -> "DatabaseError":
        """비어 있는 컨텍스트 항목을 채운다."""

        for key, value in context.items():
            if value is not None and self.detail.metadata.get(key) is None:
                self.detail.metadata[key] = value
        return self


class NotConnectedError(DatabaseError):
    """살아 있는 연결 없이 연산을 시도한 경우."""

    code = ErrorCode.DB_NOT_CONNECTED.value
    default_hint = "connect() 또는 reconnect()를 먼저 호출하세요."


class CompileError(DatabaseError):
    """필터/정렬/배치 요청을 네이티브 쿼리로 변환할 수 없는 경우."""

    code = ErrorCode.DB_COMPILE_ERROR.value


class TransportError(DatabaseError):
    """연결 손실로 분류된 I/O 실패."""

    code = ErrorCode.DB_TRANSPORT_ERROR.value
    retryable = True


class BackendError(DatabaseError):
    """쿼리 문법/제약 조건 등 연결과 무관한 백엔드 실패."""

    code = ErrorCode.DB_BACKEND_ERROR.value


class ReadOnlyViolationError(DatabaseError):
    """읽기 전용 연결에서 쓰기를 시도한 경우."""

    code = ErrorCode.DB_READ_ONLY.value
    default_hint = "read_only 설정을 해제한 어댑터를 사용하세요."


class PartialBatchFailure(DatabaseError):
    """벌크 연산 중 일부 배치 또는 행이 실패한 경우.

    Args:
        errors: 실패 항목 목록(BulkError).
    """

    code = ErrorCode.DB_PARTIAL_BATCH_FAILURE.value

    def __init__(self, message: str, *, errors: Optional[List[Any]] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors = list(errors or [])


__all__ = [
    "DatabaseError",
    "NotConnectedError",
    "CompileError",
    "TransportError",
    "BackendError",
    "ReadOnlyViolationError",
    "PartialBatchFailure",
]
