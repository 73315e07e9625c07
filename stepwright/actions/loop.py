"""Loop action: run nested steps once per element matching a selector.

The number of elements is snapshotted before the first iteration. The
selector is queried again before every iteration because nested steps
usually navigate away and back, and the loop stops early when the page has
fewer elements than the current index.

Nested steps run through the executor the interpreter injects, so a loop
can contain any action, including another loop.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import re
from collections.abc import Awaitable, Callable
from typing import Any

from playwright.async_api import Error as PlaywrightError

from stepwright.common.page_handle import PageHandle
from stepwright.data_types import (
    ActionResult,
    BaseStep,
    ExtractField,
    LoopStep,
    StepDefinition,
)

logger = logging.getLogger(__name__)

StepExecutor = Callable[[StepDefinition, PageHandle], Awaitable[ActionResult]]

_TOKEN = re.compile(r"\$\{(index|total)\}")


def _substitute_value(value: Any, variables: dict[str, str]) -> Any:
    if isinstance(value, str):
        return _TOKEN.sub(lambda m: variables[m.group(1)], value)
    if isinstance(value, tuple):
        return tuple(_substitute_value(item, variables) for item in value)
    if isinstance(value, (BaseStep, ExtractField)):
        return substitute_tokens(value, variables)
    return value


def substitute_tokens(step: Any, variables: dict[str, str]) -> Any:
    """Return a copy of ``step`` with ``${index}``/``${total}`` replaced.

    Works on steps and extract fields, recursing into nested steps. Values
    without tokens are left untouched.
    """
    changes = {
        step_field.name: _substitute_value(
            getattr(step, step_field.name), variables
        )
        for step_field in dataclasses.fields(step)
    }
    return dataclasses.replace(step, **changes)


async def _run_iteration(
    step: LoopStep,
    page: PageHandle,
    execute: StepExecutor,
    variables: dict[str, str],
) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for nested in step.steps:
        nested = substitute_tokens(nested, variables)
        try:
            result = await execute(nested, page)
        except Exception as e:
            logger.warning(
                f"Loop iteration {variables['index']}: "
                f"{nested.action.value} raised: {e}",
                exc_info=True,
            )
            continue
        if not result.success:
            logger.warning(
                f"Loop iteration {variables['index']}: "
                f"{nested.action.value} failed: {result.message}"
            )
        if result.data:
            records = records + result.data
    return records


async def loop(
    step: LoopStep, page: PageHandle, execute: StepExecutor
) -> ActionResult:
    records: list[dict[str, Any]] = []
    completed = 0

    try:
        total_elements = len(await page.query_selector_all(step.selector))
        if total_elements == 0:
            return ActionResult(
                success=True,
                message=f'No elements found for "{step.selector}"',
                data=[],
            )

        iterations = total_elements
        if step.max_iterations is not None:
            iterations = min(total_elements, step.max_iterations)
        logger.info(f"Loop over {iterations} element(s) of {step.selector}")

        for index in range(iterations):
            current = len(await page.query_selector_all(step.selector))
            if index >= current:
                logger.info(
                    f"Loop stopped early: {current} element(s) left, "
                    f"needed more than {index}"
                )
                break

            variables = {"index": str(index), "total": str(iterations)}
            records = records + await _run_iteration(
                step, page, execute, variables
            )
            completed += 1

            if step.delay_between_iterations > 0 and index < iterations - 1:
                await asyncio.sleep(step.delay_between_iterations / 1000.0)
    except PlaywrightError as e:
        return ActionResult(
            success=False,
            message=f'Loop over "{step.selector}" failed: {e}',
            data=records,
        )

    return ActionResult(
        success=True,
        message=f"{completed} iteration(s), {len(records)} record(s)",
        data=records,
    )
