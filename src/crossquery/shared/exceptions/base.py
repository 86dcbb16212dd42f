"""
목적: crossquery 예외의 공통 베이스 클래스를 제공한다.
설명: 메시지와 ExceptionDetail(에러 코드, 재시도 가능 여부, 연산 컨텍스트)을 보관하고,
    드라이버가 던진 원본 예외를 __cause__로 연결해 traceback에서 함께 보이게 한다.
디자인 패턴: 도메인 예외 객체
참조: src/crossquery/shared/exceptions/models.py, src/crossquery/integrations/db/errors.py
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from crossquery.shared.exceptions.models import ExceptionDetail


class BaseAppException(Exception):
    """crossquery 공통 예외 클래스이다.

    Args:
        message: 호출자에게 전달할 메시지.
        detail: 에러 코드와 컨텍스트를 담은 상세 모델.
        original: 드라이버/라이브러리가 던진 원본 예외.
    """

    def __init__(
        self,
        message: str,
        detail: ExceptionDetail,
        original: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self._message = message
        self._detail = detail
        self._original = original
        if original is not None:
            self.__cause__ = original

    @property
    def message(self) -> str:
        return self._message

    @property
    def detail(self) -> ExceptionDetail:
        return self._detail

    @property
    def code(self) -> str:
        return self._detail.code

    @property
    def retryable(self) -> bool:
        """재연결 후 다시 시도할 만한 실패인지 반환한다."""

        return self._detail.retryable

    @property
    def original(self) -> Optional[BaseException]:
        return self._original

    def to_dict(self) -> Dict[str, Any]:
        """로그 메타데이터나 응답 본문에 쓸 사전으로 변환한다."""

        return {
            "message": self._message,
            "code": self._detail.code,
            "retryable": self._detail.retryable,
            "detail": self._detail.model_dump(exclude_none=True),
            "original": repr(self._original) if self._original else None,
        }

    def __str__(self) -> str:
        context = ", ".join(f"{key}={value}" for key, value in self._detail.metadata.items())
        if not context:
            return self._message
        return f"{self._message} ({context})"
