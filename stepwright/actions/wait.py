"""Wait action: block until a selector is visible or a duration elapses."""

from __future__ import annotations

import asyncio

from playwright.async_api import Error as PlaywrightError

from stepwright.common.page_handle import PageHandle
from stepwright.data_types import ActionResult, WaitStep


async def wait(step: WaitStep, page: PageHandle) -> ActionResult:
    """Wait for ``step.duration`` ms, or for ``step.selector`` to be visible.

    A duration takes precedence when both are given.
    """
    if step.duration is not None:
        await asyncio.sleep(step.duration / 1000.0)
        return ActionResult(
            success=True, message=f"Waited {step.duration}ms"
        )

    if step.selector is None:
        return ActionResult(
            success=False,
            message='Either "selector" or "duration" is required',
        )

    try:
        await page.wait_for_selector(
            step.selector, state="visible", timeout=step.timeout
        )
    except PlaywrightError as e:
        return ActionResult(
            success=False,
            message=f'Waiting for selector "{step.selector}" failed: {e}',
        )

    return ActionResult(
        success=True, message=f'Selector "{step.selector}" is visible'
    )
