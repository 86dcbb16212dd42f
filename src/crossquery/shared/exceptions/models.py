"""
목적: crossquery 예외의 에러 코드와 상세 모델을 정의한다.
설명: 설정/연결/컴파일/전송/백엔드/벌크/읽기 전용 실패를 ErrorCode로 구분하고, 연산 컨텍스트
    (operation, table, column, operator, backend)를 None 없이 메타데이터로 보관한다.
    retryable은 재연결 후 다시 시도할 만한 실패(전송 실패)인지 표시한다.
디자인 패턴: 데이터 전송 객체(DTO)
참조: src/crossquery/shared/exceptions/base.py, src/crossquery/integrations/db/errors.py
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, field_validator


class ErrorCode(str, Enum):
    """crossquery 에러 코드."""

    CONFIG_INVALID = "CONFIG_INVALID"
    DB_ERROR = "DB_ERROR"
    DB_NOT_CONNECTED = "DB_NOT_CONNECTED"
    DB_COMPILE_ERROR = "DB_COMPILE_ERROR"
    DB_TRANSPORT_ERROR = "DB_TRANSPORT_ERROR"
    DB_BACKEND_ERROR = "DB_BACKEND_ERROR"
    DB_PARTIAL_BATCH_FAILURE = "DB_PARTIAL_BATCH_FAILURE"
    DB_READ_ONLY = "DB_READ_ONLY"


class ExceptionDetail(BaseModel):
    """예외 상세 정보 모델이다.

    Args:
        code: ErrorCode 값. 문자열로 보관한다.
        cause: 원본 예외 메시지.
        hint: 호출자가 취할 조치.
        retryable: 재연결 후 재시도로 회복될 수 있는 실패인지 여부.
        metadata: 연산 컨텍스트와 배치 인덱스 같은 구조화 정보.
    """

    code: str = Field(..., description="에러 코드")
    cause: Optional[str] = Field(default=None, description="원본 예외 메시지")
    hint: Optional[str] = Field(default=None, description="해결 힌트")
    retryable: bool = Field(default=False, description="재시도 가능 여부")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="연산 컨텍스트")

    @field_validator("code", mode="before")
    @classmethod
    def _code_value(cls, value: Any) -> Any:
        if isinstance(value, ErrorCode):
            return value.value
        return value

    @field_validator("metadata")
    @classmethod
    def _drop_empty(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        return {key: item for key, item in value.items() if item is not None}

    @classmethod
    def of(
        cls,
        code: Union[ErrorCode, str],
        original: Optional[BaseException] = None,
        *,
        hint: Optional[str] = None,
        retryable: bool = False,
        **context: Any,
    ) -> "ExceptionDetail":
        """원본 예외와 컨텍스트 키워드로 상세 모델을 만든다."""

        return cls(
            code=code,
            cause=str(original) if original is not None else None,
            hint=hint,
            retryable=retryable,
            metadata=context,
        )
