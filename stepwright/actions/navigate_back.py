"""Navigate-back action: step back through the page history."""

from __future__ import annotations

from playwright.async_api import Error as PlaywrightError

from stepwright.common.page_handle import PageHandle
from stepwright.data_types import ActionResult, NavigateBackStep


async def navigate_back(
    step: NavigateBackStep, page: PageHandle
) -> ActionResult:
    """Go back ``step.count`` times, waiting for network idle each time.

    The first failure aborts the remaining back-navigations.
    """
    done = 0
    try:
        while done < step.count:
            await page.go_back(wait_until="networkidle", timeout=step.timeout)
            done += 1
    except PlaywrightError as e:
        return ActionResult(
            success=False,
            message=(
                f"Navigating back failed after {done}/{step.count} "
                f"page(s): {e}"
            ),
        )

    return ActionResult(
        success=True, message=f"Navigated back {step.count} page(s)"
    )
