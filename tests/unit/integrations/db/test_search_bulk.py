"""
목적: Elasticsearch bulk 응답 항목의 집계를 검증한다.
설명: 가짜 클라이언트의 bulk 응답으로 없는 문서 삭제(404 not_found)가 실패가 아닌 미집계로 남고,
    실제 항목 오류만 행 단위 실패로 귀속되는지 확인한다.
디자인 패턴: 테스트 더블(페이크)
참조: src/crossquery/integrations/db/engines/elasticsearch/driver.py, src/crossquery/integrations/db/bulk/coordinator.py
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from crossquery.integrations.db.base.models import BulkOptions
from crossquery.integrations.db.bulk import BulkOperationCoordinator
from crossquery.integrations.db.dialects import ElasticsearchDialect
from crossquery.integrations.db.engines import ElasticsearchDriver


class _BulkClient:
    """bulk 호출을 기록하고 정해 둔 항목 결과를 돌려주는 클라이언트."""

    def __init__(self, items: List[Dict[str, Any]]) -> None:
        self.items = items
        self.operations: List[Any] = []

    def bulk(self, operations: List[Any], refresh: bool = False) -> Dict[str, Any]:
        self.operations.append(operations)
        return {"errors": True, "items": self.items}


def _driver(client: _BulkClient, monkeypatch: pytest.MonkeyPatch) -> ElasticsearchDriver:
    driver = ElasticsearchDriver(hosts=["http://search.local:9200"])

    def with_options(opaque_id: Optional[str]) -> _BulkClient:
        return client

    monkeypatch.setattr(driver._connection, "with_options", with_options)
    return driver


@pytest.mark.asyncio
async def test_delete_of_missing_document_is_unaccounted(monkeypatch: pytest.MonkeyPatch) -> None:
    """404 not_found 삭제는 행 실패가 아니라 미집계로 남는지 확인한다."""

    client = _BulkClient(
        [
            {"delete": {"_id": "1", "status": 200, "result": "deleted"}},
            {"delete": {"_id": "2", "status": 404, "result": "not_found"}},
            {
                "delete": {
                    "_id": "3",
                    "status": 503,
                    "error": {"type": "unavailable_shards_exception", "reason": "primary shard is not active"},
                }
            },
        ]
    )
    driver = _driver(client, monkeypatch)

    result = await BulkOperationCoordinator().bulk_delete(
        [{"id": 1}, {"id": 2}, {"id": 3}],
        table="logs",
        dialect=ElasticsearchDialect(),
        driver=driver,
        options=BulkOptions(skip_errors=True),
    )

    assert len(client.operations) == 1
    assert result.success_count == 1
    assert result.failure_count == 1
    assert result.unaccounted_count == 1
    assert [error.index for error in result.errors] == [2]
    assert "unavailable_shards_exception" in result.errors[0].error


@pytest.mark.asyncio
async def test_index_errors_are_row_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    """색인 항목 오류는 행 실패로, 성공 항목은 식별자로 집계되는지 확인한다."""

    client = _BulkClient(
        [
            {"index": {"_id": "a", "status": 201, "result": "created"}},
            {
                "index": {
                    "_id": "b",
                    "status": 400,
                    "error": {"type": "mapper_parsing_exception", "reason": "failed to parse field [n]"},
                }
            },
        ]
    )
    driver = _driver(client, monkeypatch)

    result = await BulkOperationCoordinator().bulk_insert(
        [{"id": "a", "n": 1}, {"id": "b", "n": "x"}],
        table="logs",
        dialect=ElasticsearchDialect(),
        driver=driver,
        options=BulkOptions(skip_errors=True),
        returning="id",
    )

    assert result.success_count == 1
    assert result.failure_count == 1
    assert result.unaccounted_count == 0
    assert result.inserted_ids == ["a"]
