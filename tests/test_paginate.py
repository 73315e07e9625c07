"""Tests for the paginate action."""

import pytest
from playwright.async_api import Error as PlaywrightError

from stepwright.actions.paginate import paginate
from stepwright.data_types import ExtractField, PaginateStep
from tests.fakes import FakePage, listing_pages

TITLE = (ExtractField("title", ".title"),)


def paginate_step(**kwargs) -> PaginateStep:
    kwargs.setdefault("selector", ".next")
    kwargs.setdefault("item_selector", ".item")
    kwargs.setdefault("fields", TITLE)
    return PaginateStep(**kwargs)


class TestPaginate:
    @pytest.mark.asyncio
    async def test_stops_at_max_pages_while_next_exists(self) -> None:
        """Pagination shall visit at most max_pages pages."""
        page = FakePage.with_html(*listing_pages(5, items_per_page=2))

        result = await paginate(paginate_step(max_pages=3), page)

        assert result.success
        assert result.data is not None
        assert len(result.data) == 6
        assert page.clicked == [".next", ".next"]
        assert "max_pages" in result.message

    @pytest.mark.asyncio
    async def test_stops_cleanly_when_next_is_absent(self) -> None:
        """A missing next control shall end pagination successfully."""
        page = FakePage.with_html(*listing_pages(2, items_per_page=3))

        result = await paginate(paginate_step(), page)

        assert result.success
        assert result.data is not None
        assert [r["title"] for r in result.data][-1] == "Item 2-3"
        assert len(result.data) == 6
        assert "no next page" in result.message

    @pytest.mark.asyncio
    async def test_single_page_listing(self) -> None:
        """A listing without a next control shall visit exactly one page."""
        page = FakePage.with_html(*listing_pages(1, items_per_page=4))

        result = await paginate(paginate_step(), page)

        assert result.success
        assert result.data is not None
        assert len(result.data) == 4
        assert page.clicked == []

    @pytest.mark.asyncio
    async def test_waits_for_network_idle_after_each_click(self) -> None:
        """Every click on the next control shall be followed by a load wait."""
        page = FakePage.with_html(*listing_pages(3, items_per_page=1))

        await paginate(paginate_step(), page)

        assert page.load_states == ["networkidle", "networkidle"]

    @pytest.mark.asyncio
    async def test_without_fields_only_walks_pages(self) -> None:
        """Pagination without fields shall walk pages and extract nothing."""
        page = FakePage.with_html(*listing_pages(3, items_per_page=1))

        result = await paginate(PaginateStep(selector=".next"), page)

        assert result.success
        assert result.data == []
        assert page.listing_index == 2

    @pytest.mark.asyncio
    async def test_click_failure_keeps_accumulated_records(self) -> None:
        """A failing click shall fail with the records gathered so far."""
        page = FakePage.with_html(*listing_pages(3, items_per_page=2))
        page.click_error = PlaywrightError("Element is detached")

        result = await paginate(paginate_step(), page)

        assert not result.success
        assert result.data is not None
        assert len(result.data) == 2
        assert "detached" in result.message
