"""
목적: 커서 페이지네이터의 키 선택, 스킵 포워드, 경계 처리를 검증한다.
설명: 메모리 기반 검색 엔진 스텁으로 결과 창을 넘는 오프셋이 point-in-time 스캔으로 전환되는지,
    search_after 키셋 페이지가 전체 문서를 한 번씩 열거하는지 확인한다.
디자인 패턴: 테스트 더블(스텁)
참조: src/crossquery/integrations/db/pagination/cursor_paginator.py, src/crossquery/integrations/db/dialects/elasticsearch.py
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from crossquery.integrations.db.base import BaseBackendDriver, DialectCapabilities, DriverResult, Statement
from crossquery.integrations.db.base.models import (
    ColumnMeta,
    CursorDirection,
    CursorPosition,
    FilterSet,
    PageRequest,
    SortDirection,
)
from crossquery.integrations.db.dialects import ElasticsearchDialect, SQLiteDialect
from crossquery.integrations.db.errors import CompileError
from crossquery.integrations.db.pagination import CursorPaginator


class _SmallWindowDialect(ElasticsearchDialect):
    capabilities = DialectCapabilities(max_result_window=10)


class _SearchStub(BaseBackendDriver):
    """단일 정렬 키만 지원하는 검색 엔진 스텁."""

    def __init__(self, count: int) -> None:
        self.documents = [{"_id": str(index), "n": index} for index in range(count)]
        self.operations: List[str] = []
        self.closed: List[str] = []

    @property
    def name(self) -> str:
        return "search-stub"

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def ping(self) -> bool:
        return True

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        command = statement.command
        operation = command["operation"]
        if operation == "open_point_in_time":
            self.operations.append("open")
            return DriverResult(scan_handle="pit-1")
        if operation == "close_point_in_time":
            self.closed.append(command["id"])
            return DriverResult()
        body = command["body"]
        self.operations.append("pit_search" if "pit" in body else ("from_search" if "from" in body else "search"))
        return self._search(body)

    def _search(self, body: Dict[str, Any]) -> DriverResult:
        if not body.get("sort"):
            return DriverResult(rows=[dict(row) for row in self.documents[: body["size"]]])
        field, spec = next(iter(body["sort"][0].items()))
        descending = spec["order"] == "desc"
        rows = sorted(self.documents, key=lambda row: row[field], reverse=descending)
        query = body.get("query") or {}
        bound = query.get("range", {}).get(field) if isinstance(query, dict) else None
        if bound:
            rows = [row for row in rows if ("gt" in bound and row[field] > bound["gt"]) or ("lt" in bound and row[field] < bound["lt"])]
        after = body.get("search_after")
        if after is not None:
            rows = [row for row in rows if (row[field] < after[0] if descending else row[field] > after[0])]
        start = body.get("from", 0)
        page = rows[start : start + body["size"]]
        return DriverResult(rows=[dict(row) for row in page], sort_values=[[row[field], 0] for row in page])


@pytest.mark.asyncio
async def test_offset_beyond_window_switches_to_skip_forward() -> None:
    """결과 창을 넘는 오프셋이 스캔 핸들 기반 스킵 포워드로 처리되는지 확인한다."""

    driver = _SearchStub(25)
    paginator = CursorPaginator(scan_batch_size=1000)

    page = await paginator.fetch_page(
        PageRequest(limit=5, offset=12, sort_column="n"),
        FilterSet(),
        driver,
        table="docs",
        dialect=_SmallWindowDialect(),
    )

    assert [row["n"] for row in page.rows] == [12, 13, 14, 15, 16]
    assert page.has_next_page is True
    assert page.has_prev_page is True
    assert driver.operations == ["open", "pit_search", "pit_search", "pit_search"]
    assert driver.closed == ["pit-1"]


@pytest.mark.asyncio
async def test_offset_inside_window_uses_from_size() -> None:
    """결과 창 안의 오프셋은 from/size로 조회하는지 확인한다."""

    driver = _SearchStub(25)

    page = await CursorPaginator().fetch_page(
        PageRequest(limit=3, offset=4, sort_column="n"),
        FilterSet(),
        driver,
        table="docs",
        dialect=_SmallWindowDialect(),
    )

    assert [row["n"] for row in page.rows] == [4, 5, 6]
    assert driver.operations == ["from_search"]


@pytest.mark.asyncio
async def test_skip_forward_past_the_end_returns_empty_page() -> None:
    """데이터 끝을 넘는 오프셋은 빈 페이지를 반환하고 핸들을 닫는지 확인한다."""

    driver = _SearchStub(12)

    page = await CursorPaginator().fetch_page(
        PageRequest(limit=5, offset=20, sort_column="n"),
        FilterSet(),
        driver,
        table="docs",
        dialect=_SmallWindowDialect(),
    )

    assert page.rows == []
    assert page.has_next_page is False
    assert driver.closed == ["pit-1"]


@pytest.mark.asyncio
async def test_search_after_enumerates_every_document_once() -> None:
    """next_cursor를 따라가면 모든 문서를 한 번씩 열거하는지 확인한다."""

    driver = _SearchStub(23)
    paginator = CursorPaginator()
    request = PageRequest(limit=5, sort_column="n", sort_direction=SortDirection.DESC)
    seen: List[int] = []

    while True:
        page = await paginator.fetch_page(request, FilterSet(), driver, table="docs", dialect=ElasticsearchDialect())
        seen.extend(row["n"] for row in page.rows)
        if not page.has_next_page:
            break
        request = request.model_copy(update={"cursor": page.next_cursor})

    assert seen == list(range(22, -1, -1))


@pytest.mark.asyncio
async def test_backward_cursor_returns_rows_in_display_order() -> None:
    """역방향 커서가 이전 페이지를 정방향 표시 순서로 돌려주는지 확인한다."""

    driver = _SearchStub(20)
    paginator = CursorPaginator()
    dialect = ElasticsearchDialect()
    first = await paginator.fetch_page(PageRequest(limit=5, sort_column="n"), FilterSet(), driver, table="docs", dialect=dialect)
    second = await paginator.fetch_page(
        PageRequest(limit=5, sort_column="n", cursor=first.next_cursor), FilterSet(), driver, table="docs", dialect=dialect
    )

    back = await paginator.fetch_page(
        PageRequest(limit=5, sort_column="n", cursor=second.prev_cursor), FilterSet(), driver, table="docs", dialect=dialect
    )

    assert second.prev_cursor is not None
    assert second.prev_cursor.direction is CursorDirection.BACKWARD
    assert [row["n"] for row in back.rows] == [row["n"] for row in first.rows]
    assert back.has_next_page is True
    assert back.has_prev_page is False


def test_choose_keys_prefers_sort_column_then_primary_key() -> None:
    """커서 컬럼 선택 순서와 기본 키 보조 정렬을 확인한다."""

    paginator = CursorPaginator()
    columns = {
        "name": ColumnMeta(name="name"),
        "id": ColumnMeta(name="id", is_primary_key=True),
    }

    assert paginator.choose_keys(PageRequest(sort_column="name"), columns) == ["name", "id"]
    assert paginator.choose_keys(PageRequest(), columns) == ["id"]
    assert paginator.choose_keys(PageRequest(), {"name": ColumnMeta(name="name")}) == ["name"]


def test_choose_keys_rejects_unsortable_column() -> None:
    """정렬 불가 컬럼을 거부하는지 확인한다."""

    columns = {"body": ColumnMeta(name="body", sortable=False)}

    with pytest.raises(CompileError):
        CursorPaginator().choose_keys(PageRequest(sort_column="body"), columns)


@pytest.mark.asyncio
async def test_cursor_value_that_no_longer_exists_degrades_to_nearest_boundary() -> None:
    """사라진 값을 가리키는 커서가 가장 가까운 경계부터 이어지는지 확인한다."""

    driver = _SearchStub(10)
    driver.documents = [row for row in driver.documents if row["n"] != 4]
    cursor = CursorPosition(values={"n": 4}, direction=CursorDirection.FORWARD)

    page = await CursorPaginator().fetch_page(
        PageRequest(limit=3, sort_column="n", cursor=cursor),
        FilterSet(),
        driver,
        table="docs",
        dialect=ElasticsearchDialect(),
    )

    assert [row["n"] for row in page.rows] == [5, 6, 7]


class _CapturingDriver(BaseBackendDriver):
    """실행한 문장을 기록하고 정해 둔 행을 돌려주는 스텁."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None) -> None:
        self.rows = rows or []
        self.statements: List[Statement] = []

    @property
    def name(self) -> str:
        return "capture-stub"

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def ping(self) -> bool:
        return True

    async def execute(self, statement: Statement, request_id: Optional[str] = None) -> DriverResult:
        self.statements.append(statement)
        return DriverResult(rows=[dict(row) for row in self.rows])


@pytest.mark.asyncio
async def test_null_cursor_value_continues_after_null_block() -> None:
    """NULL 커서 값이 첫 페이지로 되돌아가지 않고 NULL 묶음 다음부터 이어지는지 확인한다."""

    driver = _CapturingDriver()
    columns = [ColumnMeta(name="id", is_primary_key=True), ColumnMeta(name="nick")]
    cursor = CursorPosition(values={"nick": None, "id": 3}, direction=CursorDirection.FORWARD)

    await CursorPaginator().fetch_page(
        PageRequest(limit=2, sort_column="nick", cursor=cursor),
        FilterSet(),
        driver,
        table="users",
        dialect=SQLiteDialect(),
        columns=columns,
    )

    statement = driver.statements[0]
    assert statement.text == (
        'SELECT * FROM "users" WHERE ("nick" IS NULL AND "id" > ?) '
        'ORDER BY CASE WHEN "nick" IS NULL THEN 1 ELSE 0 END ASC, "nick" ASC, "id" ASC LIMIT ?'
    )
    assert statement.params == [3, 3]


@pytest.mark.asyncio
async def test_null_cursor_survives_token_round_trip() -> None:
    """NULL 값이 든 커서 토큰을 복원해도 NULL 경계가 유지되는지 확인한다."""

    token = CursorPosition(values={"nick": None, "id": 3}).to_token()
    driver = _CapturingDriver()

    await CursorPaginator().fetch_page(
        PageRequest(limit=2, sort_column="nick", cursor=CursorPosition.from_token(token)),
        FilterSet(),
        driver,
        table="users",
        dialect=SQLiteDialect(),
        columns=[ColumnMeta(name="id", is_primary_key=True), ColumnMeta(name="nick")],
    )

    assert '"nick" IS NULL AND "id" > ?' in driver.statements[0].text


@pytest.mark.asyncio
async def test_missing_metadata_falls_back_to_first_result_column() -> None:
    """메타데이터와 정렬 컬럼이 없으면 첫 결과 컬럼을 커서로 써서 끝까지 열거하는지 확인한다."""

    driver = _SearchStub(12)
    paginator = CursorPaginator()
    request = PageRequest(limit=5)
    seen: List[int] = []
    pages = 0

    while True:
        page = await paginator.fetch_page(request, FilterSet(), driver, table="docs", dialect=ElasticsearchDialect())
        pages += 1
        seen.extend(row["n"] for row in page.rows)
        if not page.has_next_page:
            break
        assert page.next_cursor is not None
        assert page.next_cursor.values == {"n": page.rows[-1]["n"]}
        request = request.model_copy(update={"cursor": page.next_cursor})

    assert seen == list(range(12))
    assert pages == 3


@pytest.mark.asyncio
async def test_missing_metadata_on_empty_table_returns_empty_page() -> None:
    """메타데이터 없이 빈 테이블을 조회하면 다음 페이지 없는 빈 페이지를 반환하는지 확인한다."""

    page = await CursorPaginator().fetch_page(
        PageRequest(limit=5), FilterSet(), _SearchStub(0), table="docs", dialect=ElasticsearchDialect()
    )

    assert page.rows == []
    assert page.has_next_page is False
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_empty_backward_page_still_offers_next_cursor() -> None:
    """앞쪽에 행이 없는 역방향 페이지도 다음 커서를 내주고, 그 커서가 첫 페이지로 이어지는지 확인한다."""

    driver = _SearchStub(10)
    paginator = CursorPaginator()
    dialect = ElasticsearchDialect()
    cursor = CursorPosition(values={"n": 0}, direction=CursorDirection.BACKWARD)

    back = await paginator.fetch_page(
        PageRequest(limit=5, sort_column="n", cursor=cursor), FilterSet(), driver, table="docs", dialect=dialect
    )
    forward = await paginator.fetch_page(
        PageRequest(limit=5, sort_column="n", cursor=back.next_cursor), FilterSet(), driver, table="docs", dialect=dialect
    )

    assert back.rows == []
    assert back.has_next_page is True
    assert back.next_cursor is not None
    assert [row["n"] for row in forward.rows] == [0, 1, 2, 3, 4]
