"""Runner: execute one job's steps against one isolated browsing context.

A failing step never aborts the job. Each failed ActionResult becomes a
StepError and the next step runs. An exception escaping a step is caught
once at the job boundary and recorded with ``step_index=-1``. Whatever
happens, the page is closed and the result is finalized and returned.
"""

from __future__ import annotations

import dataclasses
import logging
import time
import traceback
from typing import Any

from stepwright.actions.interpreter import ActionInterpreter
from stepwright.common.page_handle import ContextHandle, PageHandle
from stepwright.data_types import (
    ActionKind,
    ActionResult,
    ExtractStep,
    JobDefinition,
    JobResult,
    LoopStep,
    PaginateStep,
    StepDefinition,
    StepError,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


def inherit_extract_fields(
    step: PaginateStep, last_extract: ExtractStep | None
) -> PaginateStep:
    """Hand the fields of the most recent extract step to a paginate step.

    A paginate step that declares its own fields is returned unchanged.
    """
    if step.fields is not None or last_extract is None:
        return step
    return dataclasses.replace(
        step,
        item_selector=step.item_selector or last_extract.selector,
        fields=last_extract.fields,
    )


class _StepAccumulator:
    """Folds step results into a JobResult."""

    def __init__(self, result: JobResult) -> None:
        self.result = result
        self.last_extract: ExtractStep | None = None
        # Records contributed by the step right before the current one, when
        # that step was an extract.
        self._preceding_extract_records: int | None = None
        self._paginated_records: int | None = None

    def prepare(self, step: StepDefinition) -> StepDefinition:
        if isinstance(step, PaginateStep):
            return inherit_extract_fields(step, self.last_extract)
        return step

    def record(
        self, index: int, step: StepDefinition, outcome: ActionResult
    ) -> None:
        preceding_extract_records = self._preceding_extract_records
        self._preceding_extract_records = None

        if not outcome.success:
            logger.warning(
                f"[{self.result.name}] step {index} ({step.action.value}) "
                f"failed: {outcome.message}"
            )
            self.result.add_error(
                StepError(index, step.action, outcome.message)
            )
        else:
            logger.debug(
                f"[{self.result.name}] step {index} ({step.action.value}): "
                f"{outcome.message}"
            )

        records: list[dict[str, Any]] = outcome.data or []

        match step:
            case ExtractStep():
                self.last_extract = step
                self.result.add_records(records)
                self._preceding_extract_records = len(records)
            case PaginateStep():
                if preceding_extract_records is not None and step.fields:
                    # Pagination harvests the first page again
                    self.result.replace_last_records(
                        preceding_extract_records, records
                    )
                else:
                    self.result.add_records(records)
                self._paginated_records = (
                    self._paginated_records or 0
                ) + len(records)
            case LoopStep():
                self.result.add_records(records)
            case _:
                if records:
                    self.result.add_records(records)

    def finish(self) -> None:
        if self._paginated_records is not None:
            self.result.estimate_page_count(self._paginated_records)


async def _close_page(page: PageHandle, job_name: str) -> None:
    try:
        await page.close()
    except Exception as e:
        logger.warning(f"[{job_name}] Ignoring page close error: {e}")


async def run_job(
    definition: JobDefinition,
    context: ContextHandle,
    interpreter: ActionInterpreter,
) -> JobResult:
    """Run every step of ``definition`` in a fresh page of ``context``.

    Never raises: every outcome, including a broken page handle, is
    reported through the returned JobResult.
    """
    result = JobResult(name=definition.name, url=definition.url)
    accumulator = _StepAccumulator(result)
    start = time.monotonic()
    page: PageHandle | None = None
    current_action: ActionKind | None = None

    try:
        page = await context.new_page()
        if definition.viewport is not None:
            await page.set_viewport_size(definition.viewport.to_dict())

        logger.info(
            f"[{definition.name}] running {len(definition.steps)} step(s)"
        )
        for index, step in enumerate(definition.steps):
            current_action = step.action
            step = accumulator.prepare(step)
            outcome = await interpreter.execute(step, page)
            accumulator.record(index, step, outcome)
        current_action = None
    except Exception as e:
        logger.error(
            f"[{definition.name}] fatal error: {e}",
            exc_info=True,
            extra={"job": definition.name, "url": definition.url},
        )
        result.add_error(
            StepError(
                step_index=-1,
                action=current_action,
                message=f"Fatal error: {e}",
                stack=traceback.format_exc(),
            )
        )
    finally:
        accumulator.finish()
        if page is not None:
            await _close_page(page, definition.name)
        result.completed_at = utc_now_iso()
        result.duration = int((time.monotonic() - start) * 1000)

    logger.info(
        f"[{definition.name}] finished: success={result.success}, "
        f"{result.record_count} record(s), {len(result.errors)} error(s)"
    )
    return result
