"""
목적: 백엔드 다이얼렉트 전략 인터페이스를 정의한다.
설명: 연산자별 네이티브 조각 변환, 식별자 인용, 패턴 이스케이프, 플레이스홀더,
    페이지/카운트/스캔 문장 생성과 네이티브 벌크 프리미티브를 하나의 전략 객체로 묶는다.
디자인 패턴: 전략 패턴, 템플릿 메서드
참조: src/crossquery/integrations/db/compiler/filter_compiler.py, src/crossquery/integrations/db/dialects
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from crossquery.integrations.db.base.models import (
    BulkUpdateItem,
    ColumnMeta,
    CompiledQuery,
    FilterLogic,
    FilterOperator,
    KeysetBoundary,
    SortDirection,
    SortKey,
)
from crossquery.integrations.db.base.statement import Statement
from crossquery.integrations.db.base.values import ResolvedCondition
from crossquery.integrations.db.errors import CompileError


class DialectCapabilities(BaseModel):
    """다이얼렉트 기능 플래그이다.

    Args:
        supports_returning: INSERT 후 식별자 반환 지원 여부.
        server_side_ordering: 임의 컬럼 정렬/경계를 서버에서 처리하는지 여부.
        max_result_window: from/size 방식의 최대 결과 창(초과 시 스킵 포워드).
        max_params: 문장당 최대 바인딩 파라미터 수.
        supports_or: 여러 조건의 OR 결합 지원 여부.
        nulls_sort_high: NULL을 모든 값보다 큰 값으로 정렬하는지 여부(ASC면 마지막, DESC면 처음).
        unsupported_operators: 지원하지 않는 연산자.
    """

    model_config = ConfigDict(frozen=True)

    supports_returning: bool = False
    server_side_ordering: bool = True
    max_result_window: Optional[int] = None
    max_params: Optional[int] = None
    supports_or: bool = True
    nulls_sort_high: bool = True
    unsupported_operators: FrozenSet[FilterOperator] = Field(default_factory=frozenset)


class CompileContext:
    """한 번의 컴파일 동안 바인딩 파라미터와 컬럼 메타데이터를 보관한다.

    Args:
        dialect: 플레이스홀더를 생성할 다이얼렉트.
        columns: 컬럼 이름별 메타데이터.
        start_index: 이미 바인딩된 파라미터 수(문장 조합 시 이어서 번호를 매긴다).
    """

    def __init__(
        self,
        dialect: "BaseDialect",
        columns: Optional[Dict[str, ColumnMeta]] = None,
        start_index: int = 0,
    ) -> None:
        self._dialect = dialect
        self._start = start_index
        self.columns: Dict[str, ColumnMeta] = dict(columns or {})
        self.params: List[Any] = []

    def bind(self, value: Any) -> str:
        """값을 바인딩하고 플레이스홀더를 반환한다."""

        index = self._start + len(self.params)
        self.params.append(value)
        return self._dialect.placeholder(index)

    def column(self, name: str) -> Optional[ColumnMeta]:
        return self.columns.get(name)


class BaseDialect(ABC):
    """다이얼렉트 인터페이스."""

    name: str = ""
    capabilities = DialectCapabilities()
    batch_sizes: Dict[str, int] = {"insert": 1000, "update": 500, "delete": 1000}

    def new_context(
        self,
        columns: Optional[Dict[str, ColumnMeta]] = None,
        start_index: int = 0,
    ) -> CompileContext:
        """컴파일 컨텍스트를 만든다."""

        return CompileContext(self, columns, start_index)

    def placeholder(self, index: int) -> str:
        """index번째(0부터) 파라미터의 플레이스홀더를 반환한다."""

        raise NotImplementedError(f"{self.name} 다이얼렉트는 위치 파라미터를 사용하지 않습니다.")

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """식별자를 안전하게 인용한다."""

    def escape_pattern(self, text: str) -> str:
        """패턴 연산자에 넣을 사용자 값을 이스케이프한다."""

        return text

    def check_condition(self, condition: ResolvedCondition, logic: FilterLogic, total: int) -> None:
        """다이얼렉트가 조건을 표현할 수 있는지 확인한다."""

        if condition.operator in self.capabilities.unsupported_operators:
            raise CompileError(
                f"{self.name}에서는 '{condition.operator.value}' 연산자를 지원하지 않습니다.",
                column=condition.column,
                operator=condition.operator.value,
                backend=self.name,
                hint="결과를 가져온 뒤 클라이언트에서 필터링하세요.",
            )
        if logic is FilterLogic.OR and total > 1 and not self.capabilities.supports_or:
            raise CompileError(
                f"{self.name}에서는 여러 조건의 OR 결합을 지원하지 않습니다.",
                column=condition.column,
                operator=condition.operator.value,
                backend=self.name,
                hint="조건별로 나눠 조회하거나 AND 결합을 사용하세요.",
            )

    @abstractmethod
    def render_condition(self, condition: ResolvedCondition, ctx: CompileContext) -> Any:
        """단일 조건을 네이티브 조각으로 변환한다."""

    @abstractmethod
    def combine(self, parts: Sequence[Any], logic: FilterLogic, ctx: CompileContext) -> CompiledQuery:
        """조각을 결합해 CompiledQuery를 만든다. parts는 비어 있지 않다."""

    @abstractmethod
    def match_all(self) -> CompiledQuery:
        """제한 없음을 나타내는 CompiledQuery를 반환한다."""

    def nulls_after(self, key: SortKey) -> bool:
        """조회 순서상 NULL 행이 NULL이 아닌 행 뒤에 오는지 반환한다."""

        return (key.direction is SortDirection.ASC) == self.capabilities.nulls_sort_high

    def sort_field(self, column: str, columns: Dict[str, ColumnMeta]) -> str:
        """정렬에 사용할 네이티브 필드 이름을 반환한다."""

        return column

    def fallback_sort_column(self, columns: Sequence[str]) -> Optional[str]:
        """메타데이터가 없을 때 커서 컬럼으로 쓸 결과 컬럼을 고른다."""

        return columns[0] if columns else None

    @abstractmethod
    def build_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        boundary: Optional[KeysetBoundary],
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        """키셋 페이지 조회 문장을 만든다. keys는 실제 조회 방향이다."""

    @abstractmethod
    def build_offset_page(
        self,
        table: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        offset: int,
        limit: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        """오프셋 페이지 조회 문장을 만든다."""

    @abstractmethod
    def build_count(self, table: str, compiled: CompiledQuery) -> Statement:
        """필터 적용 건수 조회 문장을 만든다."""

    def build_scan_open(self, table: str) -> Statement:
        """안정적인 스캔 핸들(point-in-time)을 여는 문장을 만든다."""

        raise NotImplementedError(f"{self.name} 다이얼렉트는 스캔 핸들을 지원하지 않습니다.")

    def build_scan_batch(
        self,
        handle: str,
        compiled: CompiledQuery,
        keys: Sequence[SortKey],
        search_after: Optional[List[Any]],
        size: int,
        columns: Optional[Dict[str, ColumnMeta]] = None,
    ) -> Statement:
        """스캔 핸들 위에서 다음 묶음을 조회하는 문장을 만든다."""

        raise NotImplementedError(f"{self.name} 다이얼렉트는 스캔 핸들을 지원하지 않습니다.")

    def build_scan_close(self, handle: str) -> Statement:
        """스캔 핸들을 닫는 문장을 만든다."""

        raise NotImplementedError(f"{self.name} 다이얼렉트는 스캔 핸들을 지원하지 않습니다.")

    @abstractmethod
    def build_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Dict[str, Any]],
        returning: Optional[str] = None,
    ) -> Statement:
        """다중 행 삽입 문장을 만든다."""

    @abstractmethod
    def build_update(self, table: str, item: BulkUpdateItem) -> Statement:
        """단일 행 업데이트 문장을 만든다."""

    def build_update_batch(self, table: str, items: Sequence[BulkUpdateItem]) -> Optional[Statement]:
        """네이티브 배치 업데이트 문장을 만든다. 없으면 None(행별 트랜잭션 실행)."""

        return None

    @abstractmethod
    def build_delete(self, table: str, keys: Sequence[Dict[str, Any]]) -> Statement:
        """기본 키 목록 삭제 문장을 만든다."""

    def key_columns(self, table: str, keys: Iterable[Dict[str, Any]]) -> List[str]:
        """모든 키 맵이 같은 컬럼 집합을 갖는지 확인하고 컬럼 목록을 반환한다."""

        columns: Optional[List[str]] = None
        for index, key in enumerate(keys):
            if not key:
                raise CompileError(
                    "기본 키가 비어 있습니다.",
                    operation="bulk",
                    table=table,
                    backend=self.name,
                    metadata={"index": index},
                )
            if columns is None:
                columns = list(key.keys())
            elif set(key.keys()) != set(columns):
                raise CompileError(
                    "모든 기본 키는 같은 컬럼으로 구성되어야 합니다.",
                    operation="bulk",
                    table=table,
                    backend=self.name,
                    metadata={"index": index},
                )
            if any(value is None for value in key.values()):
                raise CompileError(
                    "기본 키 값은 NULL일 수 없습니다.",
                    operation="bulk",
                    table=table,
                    backend=self.name,
                    metadata={"index": index},
                )
        return columns or []
