"""Capability protocols for the browser-automation collaborator.

The engine never imports concrete browser classes outside the orchestrator.
Actions and the runner are written against these protocols, which mirror
the subset of the Playwright async API the engine relies on, so a
Playwright ``Page``/``BrowserContext``/``Browser`` satisfies them as-is and
tests can substitute in-memory fakes.
"""

from __future__ import annotations

from re import Pattern
from typing import Any, Protocol


class ElementHandle(Protocol):
    """A live element in the page."""

    async def click(self, *, timeout: float | None = None) -> None: ...

    async def fill(self, value: str, *, timeout: float | None = None) -> None: ...


class LocatorHandle(Protocol):
    """A lazily resolved locator, such as one returned by ``get_by_role``."""

    async def click(
        self, *, timeout: float | None = None, force: bool | None = None
    ) -> None: ...


class PageHandle(Protocol):
    """One page (tab) inside an isolated browsing context."""

    @property
    def url(self) -> str: ...

    @property
    def context(self) -> ContextHandle: ...

    async def goto(
        self,
        url: str,
        *,
        timeout: float | None = None,
        wait_until: str | None = None,
    ) -> Any: ...

    async def go_back(
        self,
        *,
        timeout: float | None = None,
        wait_until: str | None = None,
    ) -> Any: ...

    async def query_selector(self, selector: str) -> ElementHandle | None: ...

    async def query_selector_all(self, selector: str) -> list[ElementHandle]: ...

    def get_by_role(
        self, role: Any, *, name: str | Pattern[str] | None = None
    ) -> LocatorHandle: ...

    async def wait_for_selector(
        self,
        selector: str,
        *,
        state: str | None = None,
        timeout: float | None = None,
    ) -> ElementHandle | None: ...

    async def wait_for_load_state(
        self,
        state: str | None = None,
        *,
        timeout: float | None = None,
    ) -> None: ...

    async def content(self) -> str: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def set_viewport_size(self, viewport_size: dict[str, int]) -> None: ...

    async def close(self) -> None: ...


class ContextHandle(Protocol):
    """An isolated browsing context: its own cookie jar, storage and pages."""

    async def new_page(self) -> PageHandle: ...

    async def cookies(self) -> list[dict[str, Any]]: ...

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None: ...

    async def storage_state(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class BrowserHandle(Protocol):
    """The shared browser session for a run."""

    async def new_context(self, **kwargs: Any) -> ContextHandle: ...

    async def close(self) -> None: ...
