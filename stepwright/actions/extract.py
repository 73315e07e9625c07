"""Extract action: one record per repeated element.

The page is snapshotted once and queried statically. A field whose
sub-element or attribute is missing becomes ``None``; a selector matching
nothing yields an empty list. Only an invalid selector or a failure to
snapshot the page makes the step fail.
"""

from __future__ import annotations

from typing import Any

from playwright.async_api import Error as PlaywrightError

from stepwright.common.dom_snapshot import DomSnapshot
from stepwright.common.exceptions import InvalidSelectorException
from stepwright.common.page_handle import PageHandle
from stepwright.data_types import ActionResult, ExtractField, ExtractStep


async def snapshot_page(page: PageHandle) -> DomSnapshot:
    return DomSnapshot.from_html(await page.content())


async def extract_records(
    page: PageHandle, selector: str, fields: tuple[ExtractField, ...]
) -> list[dict[str, Any]]:
    """Snapshot ``page`` and build one record per element matching ``selector``.

    Raises:
        InvalidSelectorException: If a selector cannot be compiled.
        playwright.async_api.Error: If the page content cannot be read.
    """
    snapshot = await snapshot_page(page)
    return snapshot.extract_records(selector, fields)


async def extract(step: ExtractStep, page: PageHandle) -> ActionResult:
    try:
        records = await extract_records(page, step.selector, step.fields)
    except (InvalidSelectorException, PlaywrightError) as e:
        return ActionResult(
            success=False,
            message=f'Extraction with "{step.selector}" failed: {e}',
        )

    return ActionResult(
        success=True,
        message=f"Extracted {len(records)} record(s)",
        data=records,
    )
