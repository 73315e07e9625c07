"""Fill action.

Strict, unlike click: later steps depend on the field holding the value.
"""

from __future__ import annotations

from playwright.async_api import Error as PlaywrightError

from stepwright.common.page_handle import PageHandle
from stepwright.data_types import ActionResult, FillStep


async def fill(step: FillStep, page: PageHandle) -> ActionResult:
    try:
        element = await page.query_selector(step.selector)
        if element is None:
            return ActionResult(
                success=False,
                message=f'Field "{step.selector}" not found',
            )
        await element.fill(step.value, timeout=step.timeout)
    except PlaywrightError as e:
        return ActionResult(
            success=False,
            message=f'Filling "{step.selector}" failed: {e}',
        )

    return ActionResult(success=True, message=f'Filled "{step.selector}"')
