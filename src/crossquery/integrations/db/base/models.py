"""
목적: 크로스 백엔드 쿼리 계층의 공통 데이터 모델을 정의한다.
설명: 필터, 페이지 요청/결과, 커서, 벌크 요청/결과, 연결 상태, 재연결/풀 정책,
    컬럼 메타데이터를 Pydantic 모델로 제공한다.
디자인 패턴: 데이터 전송 객체(DTO)
참조: src/crossquery/integrations/db/base/values.py, src/crossquery/integrations/db/client.py
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from crossquery.integrations.db.errors import CompileError


class FilterOperator(str, Enum):
    """필터 연산자 열거형."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    IN = "in"
    BETWEEN = "between"


class FilterLogic(str, Enum):
    """조건 결합 논리."""

    AND = "AND"
    OR = "OR"


class FilterCondition(BaseModel):
    """단일 필터 조건 모델이다.

    value는 API 경계의 원시 값이다. IN 연산자는 리스트 또는 쉼표 구분 문자열을 허용하며
    컴파일 전에 values.resolve_condition에서 한 번만 정규화된다.
    """

    model_config = ConfigDict(populate_by_name=True)

    column_name: str = Field(..., alias="columnName", description="컬럼/필드 이름")
    operator: FilterOperator = Field(..., description="필터 연산자")
    value: Any = Field(default=None, description="비교 값")
    value2: Any = Field(default=None, description="BETWEEN 상한 값")


class FilterSet(BaseModel):
    """필터 조건 집합이다. 비어 있으면 제한 없음으로 컴파일된다."""

    conditions: List[FilterCondition] = Field(default_factory=list)
    logic: FilterLogic = Field(default=FilterLogic.AND, description="조건 결합 논리(AND/OR)")

    @classmethod
    def of(cls, *conditions: FilterCondition, logic: FilterLogic = FilterLogic.AND) -> "FilterSet":
        """조건 목록으로 필터 집합을 만든다."""

        return cls(conditions=list(conditions), logic=logic)

    @property
    def is_empty(self) -> bool:
        return not self.conditions


class CompiledQuery(BaseModel):
    """컴파일된 필터이다.

    SQL 계열은 fragment/params를, 문서/검색/키-값 계열은 native를 채운다.
    """

    model_config = ConfigDict(frozen=True)

    dialect: str
    fragment: str = ""
    params: List[Any] = Field(default_factory=list)
    native: Optional[Dict[str, Any]] = None

    @property
    def is_empty(self) -> bool:
        """제한 없음(match-all) 여부를 반환한다."""

        return not self.fragment and not self.native


class SortDirection(str, Enum):
    """정렬 방향."""

    ASC = "ASC"
    DESC = "DESC"

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


class CursorDirection(str, Enum):
    """커서 이동 방향."""

    FORWARD = "forward"
    BACKWARD = "backward"


class CursorPosition(BaseModel):
    """키셋 페이지네이션 커서 위치이다."""

    values: Dict[str, Any] = Field(default_factory=dict)
    direction: CursorDirection = CursorDirection.FORWARD

    def to_token(self) -> str:
        """호출자에게 전달할 불투명 토큰으로 인코딩한다."""

        raw = self.model_dump_json().encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    @classmethod
    def from_token(cls, token: str) -> "CursorPosition":
        """to_token으로 만든 토큰을 복원한다."""

        padded = token + "=" * (-len(token) % 4)
        try:
            raw = base64.urlsafe_b64decode(padded.encode("ascii"))
            return cls.model_validate_json(raw)
        except (binascii.Error, UnicodeError, ValueError, ValidationError) as exc:
            raise CompileError(
                "커서 토큰을 해석할 수 없습니다.",
                operation="fetch_page",
                original=exc,
            ) from exc


class PageRequest(BaseModel):
    """페이지 요청 모델이다.

    cursor가 있으면 키셋 페이지네이션, 없고 offset이 양수이면 오프셋 페이지네이션을 사용한다.
    """

    limit: int = Field(default=100, ge=1, le=10_000)
    sort_column: Optional[str] = None
    sort_direction: SortDirection = SortDirection.ASC
    cursor: Optional[CursorPosition] = None
    offset: int = Field(default=0, ge=0)


class PageResult(BaseModel):
    """페이지 결과 모델이다."""

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    has_next_page: bool = False
    has_prev_page: bool = False
    next_cursor: Optional[CursorPosition] = None
    prev_cursor: Optional[CursorPosition] = None


class SortKey(BaseModel):
    """정렬 키(컬럼과 방향). 기본 키처럼 NULL이 없는 컬럼은 nullable=False로 둔다."""

    model_config = ConfigDict(frozen=True)

    column: str
    direction: SortDirection = SortDirection.ASC
    nullable: bool = True


class KeysetBoundary(BaseModel):
    """키셋 경계 조건이다.

    keys는 실제 조회 순서의 정렬 키이며, 경계는 항상 "조회 순서상 values 다음" 행을 뜻한다.
    values의 None은 NULL 값 자체를 경계로 삼는다는 뜻이다.
    """

    keys: List[SortKey]
    values: List[Any]

    @model_validator(mode="after")
    def _check_lengths(self) -> "KeysetBoundary":
        if len(self.keys) != len(self.values) or not self.keys:
            raise ValueError("keys와 values의 길이가 같아야 하며 비어 있을 수 없습니다.")
        return self


class BulkUpdateItem(BaseModel):
    """벌크 업데이트 항목이다."""

    model_config = ConfigDict(populate_by_name=True)

    primary_key: Dict[str, Any] = Field(..., alias="primaryKey")
    values: Dict[str, Any]


class BulkErrorKind(str, Enum):
    """벌크 에러 귀속 단위."""

    BATCH = "batch"
    ROW = "row"


class BulkError(BaseModel):
    """벌크 실패 항목이다.

    Args:
        index: 배치 실패면 배치 시작 인덱스, 행 실패면 행 인덱스.
        error: 에러 메시지.
        count: 이 항목에 귀속된 실패 행 수.
        kind: 배치/행 귀속 구분.
    """

    index: int
    error: str
    count: int = 1
    kind: BulkErrorKind = BulkErrorKind.BATCH


class BulkOptions(BaseModel):
    """벌크 연산 옵션이다."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    batch_size: Optional[int] = Field(default=None, ge=1)
    skip_errors: bool = False
    on_progress: Optional[Callable[[int, int], Any]] = None
    max_concurrency: int = Field(default=1, ge=1)


class BulkResult(BaseModel):
    """벌크 연산 결과이다.

    배치 전체가 실패해도 행 단위 귀속이 불가능한 경우(예: 삭제 대상이 이미 없음)
    success_count + failure_count가 total과 다를 수 있으며 그 차이는 unaccounted_count로 드러난다.
    """

    total: int = 0
    success_count: int = 0
    failure_count: int = 0
    errors: List[BulkError] = Field(default_factory=list)
    inserted_ids: Optional[List[Any]] = None

    @property
    def unaccounted_count(self) -> int:
        return max(0, self.total - self.success_count - self.failure_count)


class ConnectionStatus(str, Enum):
    """연결 상태."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ConnectionState(BaseModel):
    """연결 상태 스냅샷이다."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_error: Optional[str] = None
    attempts: int = 0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StatusEvent(BaseModel):
    """상태 전이 이벤트이다."""

    status: ConnectionStatus
    previous: ConnectionStatus
    message: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)


class ReconnectPolicy(BaseModel):
    """재연결 정책이다. 대기 시간은 base_delay * backoff_multiplier^(attempt-1)이다."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """attempt번째(1부터) 시도 전 대기 시간을 반환한다."""

        exponent = max(0, attempt - 1)
        return min(self.max_delay, self.base_delay * self.backoff_multiplier**exponent)


class PoolConfig(BaseModel):
    """연결 풀 설정이다."""

    min_connections: int = Field(default=0, ge=0)
    max_connections: int = Field(default=10, ge=1)
    idle_timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "PoolConfig":
        if self.min_connections > self.max_connections:
            raise ValueError("min_connections는 max_connections보다 클 수 없습니다.")
        return self


class ColumnMeta(BaseModel):
    """커서 컬럼 선택과 검색 필드 매핑에 쓰이는 컬럼 메타데이터이다."""

    name: str
    data_type: Optional[str] = None
    is_primary_key: bool = False
    sortable: bool = True
    is_text: bool = False
    has_keyword_subfield: bool = False


class CompileLimits(BaseModel):
    """필터 검증 한도이다."""

    max_conditions: int = Field(default=20, ge=1)
    max_column_length: int = Field(default=128, ge=1)
    max_value_length: int = Field(default=1000, ge=1)
    max_in_values: int = Field(default=100, ge=1)
