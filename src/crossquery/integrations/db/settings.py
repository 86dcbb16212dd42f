"""
목적: 어댑터 설정 모델과 로딩 함수를 제공한다.
설명: 읽기 전용 여부, 커넥션 풀, 재연결 정책, 헬스 체크 주기, 연산 정책, 배치 크기, 컴파일 한도를
    하나의 Pydantic 모델로 검증한다. load_settings는 dict/JSON/.env/환경 변수를 ConfigLoader로 병합한다.
디자인 패턴: 설정 객체
참조: src/crossquery/shared/config/loader.py, src/crossquery/integrations/db/client.py
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from crossquery.integrations.db.base.models import CompileLimits, PoolConfig, ReconnectPolicy
from crossquery.shared.config import ConfigLoader
from crossquery.shared.const import SharedConst
from crossquery.shared.exceptions import BaseAppException, ErrorCode, ExceptionDetail
from crossquery.shared.logging import Logger

_BATCH_OPERATIONS = {"insert", "update", "delete"}


class AdapterSettings(BaseModel):
    """어댑터 설정 모델이다."""

    read_only: bool = False
    pool: PoolConfig = Field(default_factory=PoolConfig)
    reconnect: ReconnectPolicy = Field(default_factory=ReconnectPolicy)
    health_check_interval: float = Field(default=SharedConst.HEALTH_CHECK_INTERVAL_SECONDS, ge=0)
    operation_policy: Literal["queue", "fail_fast"] = "queue"
    batch_sizes: Dict[str, int] = Field(default_factory=dict)
    compile_limits: CompileLimits = Field(default_factory=CompileLimits)
    default_page_size: int = Field(default=SharedConst.DEFAULT_PAGE_SIZE, ge=1, le=10_000)
    scan_batch_size: int = Field(default=1000, ge=1)

    @field_validator("batch_sizes")
    @classmethod
    def _check_batch_sizes(cls, value: Dict[str, int]) -> Dict[str, int]:
        unknown = set(value) - _BATCH_OPERATIONS
        if unknown:
            raise ValueError(f"알 수 없는 배치 연산입니다: {sorted(unknown)}")
        if any(size < 1 for size in value.values()):
            raise ValueError("배치 크기는 1 이상이어야 합니다.")
        return value


def load_settings(
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    json_path: Optional[str] = None,
    dotenv_path: Optional[str] = None,
    env_prefix: Optional[str] = SharedConst.ENV_PREFIX,
    logger: Optional[Logger] = None,
) -> AdapterSettings:
    """설정 소스를 병합해 AdapterSettings를 만든다.

    우선순위는 JSON 파일 < .env 파일 < 환경 변수 < overrides 순이다.
    env_prefix가 None이면 환경 변수를 읽지 않는다.
    """

    loader = ConfigLoader(logger=logger)
    if json_path:
        loader.add_json_file(json_path)
    if dotenv_path:
        loader.add_dotenv(dotenv_path, prefix=env_prefix or "")
    if env_prefix is not None:
        loader.add_env(prefix=env_prefix)
    payload = loader.build(overrides)
    try:
        return AdapterSettings.model_validate(payload)
    except ValidationError as exc:
        detail = ExceptionDetail(
            code=ErrorCode.CONFIG_INVALID,
            cause=str(exc),
            hint=f"{SharedConst.ENV_PREFIX} 접두사 환경 변수와 설정 파일 값을 확인하세요.",
            metadata={"errors": exc.errors(include_url=False)},
        )
        raise BaseAppException("어댑터 설정이 올바르지 않습니다.", detail, exc) from exc
