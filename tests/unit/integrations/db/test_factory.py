"""
목적: 백엔드 이름으로 드라이버와 어댑터 파사드를 조립하는 팩토리를 검증한다.
설명: AdapterSettings.pool이 드라이버 풀 설정으로 전달되는지, 백엔드 별칭과 MariaDB 드라이버 이름,
    알 수 없는 백엔드 거부, 다이얼렉트 짝짓기를 확인한다. 드라이버는 열지 않는다.
디자인 패턴: 테스트 케이스
참조: src/crossquery/integrations/db/factory.py
"""

from __future__ import annotations

from pathlib import Path

import pytest

from crossquery.integrations.db import AdapterSettings, SqlServerDriver, create_adapter, create_driver
from crossquery.integrations.db.base.models import PoolConfig
from crossquery.integrations.db.dialects import SQLiteDialect
from crossquery.integrations.db.errors import CompileError


def test_pool_settings_reach_the_driver(tmp_path: Path) -> None:
    """설정의 풀 구성이 드라이버에 그대로 전달되는지 확인한다."""

    settings = AdapterSettings(pool=PoolConfig(max_connections=2, connect_timeout=1.5))

    driver = create_driver("sqlite", settings, database_path=str(tmp_path / "app.db"))

    assert driver.name == "sqlite"
    assert driver.pool_config is settings.pool


def test_backend_names_are_normalized() -> None:
    """백엔드 이름의 대소문자/공백을 무시하고 MariaDB는 자체 이름을 쓰는지 확인한다."""

    assert isinstance(create_driver(" SqlServer "), SqlServerDriver)
    assert create_driver("mariadb").name == "mariadb"


def test_unknown_backend_is_rejected() -> None:
    """알 수 없는 백엔드는 CompileError로 거부하는지 확인한다."""

    with pytest.raises(CompileError) as exc_info:
        create_driver("oracle")

    assert exc_info.value.detail.metadata["backend"] == "oracle"


def test_adapter_pairs_driver_with_dialect(tmp_path: Path) -> None:
    """어댑터 파사드가 같은 백엔드의 드라이버와 다이얼렉트를 갖는지 확인한다."""

    settings = AdapterSettings(read_only=True)

    adapter = create_adapter("sqlite", settings, database_path=str(tmp_path / "app.db"))

    assert isinstance(adapter.dialect, SQLiteDialect)
    assert adapter.driver.pool_config is settings.pool
