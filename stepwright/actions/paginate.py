"""Paginate action: walk a listing by clicking its next-page control.

Each iteration extracts the current page (when fields are known), then looks
up the next-page control. A missing control is the expected end of the
listing, not an error. ``max_pages`` bounds the pages visited even when a
next-page control is still present.
"""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Error as PlaywrightError

from stepwright.actions.extract import extract_records
from stepwright.common.exceptions import InvalidSelectorException
from stepwright.common.page_handle import PageHandle
from stepwright.data_types import ActionResult, PaginateStep

logger = logging.getLogger(__name__)


async def _extract_current_page(
    step: PaginateStep, page: PageHandle
) -> list[dict[str, Any]]:
    if not step.fields:
        return []
    return await extract_records(
        page, step.item_selector or "body", step.fields
    )


async def _advance(step: PaginateStep, page: PageHandle) -> bool:
    """Click the next-page control.

    Returns:
        False when there is no next-page control.
    """
    next_control = await page.query_selector(step.selector)
    if next_control is None:
        return False
    await next_control.click(timeout=step.timeout)
    await page.wait_for_load_state("networkidle", timeout=step.timeout)
    return True


async def paginate(step: PaginateStep, page: PageHandle) -> ActionResult:
    records: list[dict[str, Any]] = []
    pages = 0

    try:
        while True:
            pages += 1
            records = records + await _extract_current_page(step, page)

            if pages >= step.max_pages:
                stop_reason = f"reached max_pages={step.max_pages}"
                break
            if not await _advance(step, page):
                stop_reason = "no next page"
                break
    except (InvalidSelectorException, PlaywrightError) as e:
        return ActionResult(
            success=False,
            message=(
                f'Pagination with "{step.selector}" failed on page '
                f"{pages}: {e}"
            ),
            data=records,
        )

    logger.debug(f"Pagination stopped after {pages} page(s): {stop_reason}")
    return ActionResult(
        success=True,
        message=(
            f"Extracted {len(records)} record(s) from {pages} page(s), "
            f"{stop_reason}"
        ),
        data=records,
    )
