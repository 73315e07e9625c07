"""Session actions: persist and restore a context's cookies and storage."""

from __future__ import annotations

from playwright.async_api import Error as PlaywrightError

from stepwright.common.exceptions import SessionStoreError
from stepwright.common.page_handle import PageHandle
from stepwright.data_types import ActionResult, SessionLoadStep, SessionSaveStep
from stepwright.session import SessionStore


async def session_save(
    step: SessionSaveStep, page: PageHandle, store: SessionStore
) -> ActionResult:
    store = store.for_directory(step.sessions_dir)
    try:
        path = await store.save_session(page.context, step.session_name)
    except (SessionStoreError, PlaywrightError) as e:
        return ActionResult(success=False, message=str(e))
    return ActionResult(
        success=True, message=f"Session '{step.session_name}' saved to {path}"
    )


async def session_load(
    step: SessionLoadStep, page: PageHandle, store: SessionStore
) -> ActionResult:
    """Restore a saved session into the page's context.

    A missing or expired session is reported as ``success=False`` so the job
    records it, but later steps still run.
    """
    store = store.for_directory(step.sessions_dir)
    try:
        loaded = await store.load_session(page.context, step.session_name)
    except PlaywrightError as e:
        return ActionResult(
            success=False,
            message=f"Loading session '{step.session_name}' failed: {e}",
        )
    if not loaded:
        return ActionResult(
            success=False,
            message=(
                f"Session '{step.session_name}' not found or expired in "
                f"{store.sessions_dir}"
            ),
        )
    return ActionResult(
        success=True, message=f"Session '{step.session_name}' loaded"
    )
