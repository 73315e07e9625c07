"""In-memory stand-ins for the Playwright page, context and browser.

A FakePage serves HTML from a ``site`` mapping of URL to one or more
listing pages. CSS selectors are evaluated against the current HTML with
lxml, so actions see real query semantics without a browser:

- ``goto(url)`` loads ``site[url]``; an unknown URL raises a connection
  error the way Chromium does.
- Clicking an element matching ``next_selector`` advances to the next
  listing page of the current URL.
- Clicking a link whose ``href`` is in ``site`` navigates to it.
- ``go_back()`` returns to the previous history entry.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from typing import Any

from cssselect import SelectorError
from lxml.html import HtmlElement, document_fromstring
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

BLANK_URL = "about:blank"
BASE_URL = "https://example.test/"

# URL -> HTML, or a list of HTML pages for a paginated listing
Site = dict[str, Any]


def listing_pages(
    page_count: int,
    items_per_page: int = 10,
    next_control: str = '<a class="next" href="#">Next</a>',
) -> list[str]:
    """Build a paginated listing; the next control is absent on the last page."""
    pages = []
    for page_number in range(1, page_count + 1):
        items = "".join(
            f'<li class="item"><span class="title">'
            f"Item {page_number}-{i}</span></li>"
            for i in range(1, items_per_page + 1)
        )
        control = next_control if page_number < page_count else ""
        pages.append(
            f"<html><body><ul>{items}</ul>{control}</body></html>"
        )
    return pages


class FakeElement:
    def __init__(
        self, page: FakePage, selector: str, element: HtmlElement
    ) -> None:
        self.page = page
        self.selector = selector
        self.element = element

    async def click(self, *, timeout: float | None = None) -> None:
        await self.page._handle_click(self, timeout)

    async def fill(self, value: str, *, timeout: float | None = None) -> None:
        if self.page.fill_error is not None:
            raise self.page.fill_error
        self.page.filled[self.selector] = value


class FakeRoleLocator:
    """``page.get_by_role``: matches ``role`` attributes or tag names."""

    def __init__(
        self, page: FakePage, role: str, name: str | re.Pattern[str] | None
    ) -> None:
        self.page = page
        self.role = role
        self.name = name

    def _matches(self, element: HtmlElement) -> bool:
        if element.get("role", element.tag) != self.role:
            return False
        if self.name is None:
            return True
        label = element.get("aria-label") or element.text_content().strip()
        if isinstance(self.name, str):
            return self.name.lower() in label.lower()
        return self.name.search(label) is not None

    async def click(
        self, *, timeout: float | None = None, force: bool | None = None
    ) -> None:
        if self.page.click_error is not None:
            raise self.page.click_error
        matches = [e for e in self.page._elements("*") if self._matches(e)]
        if not matches:
            raise PlaywrightTimeoutError(
                f"locator.click: Timeout {timeout}ms exceeded."
            )
        self.page.clicked.append(f"role={self.role}")
        self.page.forced_clicks += bool(force)


class FakePage:
    """A single tab serving HTML from ``site``."""

    def __init__(
        self,
        site: Site | None = None,
        *,
        context: FakeContext | None = None,
        next_selector: str = ".next",
        latency: float = 0.0,
    ) -> None:
        self.site: Site = site or {}
        self._context = context
        self.next_selector = next_selector
        self.latency = latency

        self._url = BLANK_URL
        self._pages: list[str] = [""]
        self._index = 0
        self._history: list[tuple[str, list[str], int]] = []

        self.visited: list[str] = []
        self.clicked: list[str] = []
        self.forced_clicks = 0
        self.filled: dict[str, str] = {}
        self.evaluated: list[tuple[str, Any]] = []
        self.load_states: list[str | None] = []
        self.viewport: dict[str, int] | None = None
        self.closed = False

        self.click_error: Exception | None = None
        self.fill_error: Exception | None = None
        self.close_error: Exception | None = None
        self.content_error: Exception | None = None

    @classmethod
    def with_html(cls, *pages: str, **kwargs: Any) -> FakePage:
        """A page already showing ``pages`` (a listing when more than one)."""
        page = cls({BASE_URL: list(pages)}, **kwargs)
        page._load(BASE_URL)
        return page

    # -- state ---------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def context(self) -> FakeContext:
        assert self._context is not None, "page has no context"
        return self._context

    @property
    def html(self) -> str:
        return self._pages[self._index]

    @property
    def listing_index(self) -> int:
        """Zero-based position in the current listing."""
        return self._index

    def set_html(self, html: str) -> None:
        """Replace the DOM of the current page in place."""
        self._pages = self._pages.copy()
        self._pages[self._index] = html

    def _load(self, url: str) -> None:
        if self._url != BLANK_URL:
            self._history.append((self._url, self._pages, self._index))
        content = self.site[url]
        self._url = url
        self._pages = [content] if isinstance(content, str) else list(content)
        self._index = 0
        self.visited.append(url)

    def _elements(self, selector: str) -> list[HtmlElement]:
        if not self.html.strip():
            return []
        try:
            return document_fromstring(self.html).cssselect(selector)
        except SelectorError as e:
            raise PlaywrightError(
                f"Unexpected token in selector {selector!r}: {e}"
            ) from e

    async def _handle_click(
        self, element: FakeElement, timeout: float | None
    ) -> None:
        if self.click_error is not None:
            raise self.click_error
        self.clicked.append(element.selector)
        if element.selector == self.next_selector:
            if self._index + 1 < len(self._pages):
                self._index += 1
            return
        href = element.element.get("href")
        if href and href in self.site:
            self._load(href)

    # -- Playwright surface --------------------------------------------------

    async def goto(
        self,
        url: str,
        *,
        timeout: float | None = None,
        wait_until: str | None = None,
    ) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if url not in self.site:
            raise PlaywrightError(
                f"page.goto: net::ERR_CONNECTION_REFUSED at {url}"
            )
        self._load(url)

    async def go_back(
        self,
        *,
        timeout: float | None = None,
        wait_until: str | None = None,
    ) -> None:
        if not self._history:
            return None
        self._url, self._pages, self._index = self._history.pop()

    async def query_selector(self, selector: str) -> FakeElement | None:
        elements = self._elements(selector)
        if not elements:
            return None
        return FakeElement(self, selector, elements[0])

    async def query_selector_all(self, selector: str) -> list[FakeElement]:
        return [FakeElement(self, selector, e) for e in self._elements(selector)]

    def get_by_role(
        self, role: str, *, name: str | re.Pattern[str] | None = None
    ) -> FakeRoleLocator:
        return FakeRoleLocator(self, role, name)

    async def wait_for_selector(
        self,
        selector: str,
        *,
        state: str | None = None,
        timeout: float | None = None,
    ) -> FakeElement | None:
        element = await self.query_selector(selector)
        if element is None:
            raise PlaywrightTimeoutError(
                f"page.wait_for_selector: Timeout {timeout}ms exceeded."
            )
        return element

    async def wait_for_load_state(
        self,
        state: str | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self.load_states.append(state)

    async def content(self) -> str:
        if self.content_error is not None:
            raise self.content_error
        return self.html

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.evaluated.append((expression, arg))
        return None

    async def set_viewport_size(self, viewport_size: dict[str, int]) -> None:
        self.viewport = viewport_size

    async def close(self) -> None:
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeContext:
    """An isolated context: its own cookies, storage and pages."""

    def __init__(
        self,
        browser: FakeBrowser | None = None,
        site: Site | None = None,
        page_factory: Callable[[FakeContext], FakePage] | None = None,
    ) -> None:
        self.browser = browser
        self.site: Site = site or {}
        self.page_factory = page_factory
        self.pages: list[FakePage] = []
        self.cookie_jar: list[dict[str, Any]] = []
        self.origins: list[dict[str, Any]] = []
        self.closed = False
        self.new_page_error: Exception | None = None

    async def new_page(self) -> FakePage:
        if self.new_page_error is not None:
            raise self.new_page_error
        if self.page_factory is not None:
            page = self.page_factory(self)
        else:
            page = FakePage(self.site, context=self)
        self.pages.append(page)
        return page

    async def cookies(self) -> list[dict[str, Any]]:
        return list(self.cookie_jar)

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        self.cookie_jar.extend(cookies)

    async def storage_state(self) -> dict[str, Any]:
        return {"cookies": list(self.cookie_jar), "origins": self.origins}

    async def close(self) -> None:
        if not self.closed and self.browser is not None:
            self.browser.open_contexts -= 1
        self.closed = True


class FakeBrowser:
    """Counts open contexts so tests can check the concurrency bound."""

    def __init__(self, site: Site | None = None, latency: float = 0.01) -> None:
        self.site: Site = site or {}
        self.latency = latency
        self.contexts: list[FakeContext] = []
        self.context_options: list[dict[str, Any]] = []
        self.open_contexts = 0
        self.max_open_contexts = 0
        self.close_count = 0

    async def new_context(self, **kwargs: Any) -> FakeContext:
        self.context_options.append(kwargs)
        context = FakeContext(
            self,
            self.site,
            lambda ctx: FakePage(self.site, context=ctx, latency=self.latency),
        )
        self.contexts.append(context)
        self.open_contexts += 1
        self.max_open_contexts = max(
            self.max_open_contexts, self.open_contexts
        )
        return context

    async def close(self) -> None:
        self.close_count += 1
