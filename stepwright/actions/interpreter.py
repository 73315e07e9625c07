"""Dispatch of steps to their action implementations."""

from __future__ import annotations

import logging

from typing_extensions import assert_never

from stepwright.actions.click import click
from stepwright.actions.extract import extract
from stepwright.actions.fill import fill
from stepwright.actions.loop import loop
from stepwright.actions.navigate import navigate
from stepwright.actions.navigate_back import navigate_back
from stepwright.actions.paginate import paginate
from stepwright.actions.session import session_load, session_save
from stepwright.actions.wait import wait
from stepwright.common.page_handle import PageHandle
from stepwright.data_types import (
    ActionResult,
    ClickStep,
    ExtractStep,
    FillStep,
    LoopStep,
    NavigateBackStep,
    NavigateStep,
    PaginateStep,
    SessionLoadStep,
    SessionSaveStep,
    StepDefinition,
    WaitStep,
)
from stepwright.session import SessionStore

logger = logging.getLogger(__name__)


class ActionInterpreter:
    """Executes one step against a page and reports an ActionResult.

    Browser failures inside an action are converted to ``success=False``.
    Any other exception propagates to the caller.

    Args:
        session_store: Store used by session-load and session-save steps.
    """

    def __init__(self, session_store: SessionStore | None = None) -> None:
        self.session_store = session_store or SessionStore()

    async def execute(
        self, step: StepDefinition, page: PageHandle
    ) -> ActionResult:
        logger.debug(f"Executing {step.action.value} step: {step.params}")
        match step:
            case NavigateStep():
                return await navigate(step, page)
            case WaitStep():
                return await wait(step, page)
            case ClickStep():
                return await click(step, page)
            case FillStep():
                return await fill(step, page)
            case ExtractStep():
                return await extract(step, page)
            case PaginateStep():
                return await paginate(step, page)
            case LoopStep():
                return await loop(step, page, self.execute)
            case NavigateBackStep():
                return await navigate_back(step, page)
            case SessionLoadStep():
                return await session_load(step, page, self.session_store)
            case SessionSaveStep():
                return await session_save(step, page, self.session_store)
            case _:
                assert_never(step)
