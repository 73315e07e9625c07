"""Click action.

Tolerant: scraping targets are unreliable and an absent element (a cookie
banner that never showed up, an optional "show more" button) must never
block a run. Only a click that is attempted and fails is an error.

Recorded scripts also emit role selectors of the form
``[role=<role> <accessible name>]``. Those are resolved through
``page.get_by_role`` with a case-insensitive name match and forced clicks.
"""

from __future__ import annotations

import re

from playwright.async_api import Error as PlaywrightError

from stepwright.common.page_handle import PageHandle
from stepwright.data_types import ActionResult, ClickStep

_ROLE_SELECTOR = re.compile(r"^\[role=(\w+)\s+(.*)\]$")


async def click(step: ClickStep, page: PageHandle) -> ActionResult:
    try:
        role_match = _ROLE_SELECTOR.match(step.selector)
        if role_match:
            role, name = role_match.groups()
            locator = page.get_by_role(role, name=re.compile(name, re.I))
            await locator.click(timeout=step.timeout, force=True)
        else:
            element = await page.query_selector(step.selector)
            if element is None:
                return ActionResult(
                    success=True,
                    message=f'Element "{step.selector}" not found, click skipped',
                )
            await element.click(timeout=step.timeout)
    except PlaywrightError as e:
        return ActionResult(
            success=False,
            message=f'Click on "{step.selector}" failed: {e}',
        )
    except re.error as e:
        return ActionResult(
            success=False,
            message=f'Click on "{step.selector}" failed: invalid name pattern: {e}',
        )

    return ActionResult(success=True, message=f'Clicked "{step.selector}"')
