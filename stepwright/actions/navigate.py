"""Navigate action: load a URL and wait for the network to go idle."""

from __future__ import annotations

import logging

from playwright.async_api import Error as PlaywrightError

from stepwright.common.page_handle import PageHandle
from stepwright.common.retry import with_retry
from stepwright.data_types import ActionResult, NavigateStep

logger = logging.getLogger(__name__)

# Seconds before the first retry of a transient navigation failure.
RETRY_BASE_DELAY = 1.0


async def navigate(step: NavigateStep, page: PageHandle) -> ActionResult:
    """Load ``step.url``, retrying transient network errors ``step.retries`` times.

    Strict: any failure gates the steps that follow, so it is reported as
    ``success=False`` with the target URL and the cause.
    """

    async def goto() -> None:
        await page.goto(
            step.url, wait_until="networkidle", timeout=step.timeout
        )

    try:
        await with_retry(
            goto, attempts=step.retries + 1, base_delay=RETRY_BASE_DELAY
        )
    except PlaywrightError as e:
        return ActionResult(
            success=False,
            message=f"Navigation to {step.url} failed: {e}",
        )

    return ActionResult(success=True, message=f"Navigated to {step.url}")
