"""Orchestrator: one shared browser, bounded concurrency, isolated jobs.

Jobs are fed to a pool of worker tasks through a queue, so at most
``concurrency`` jobs hold a browsing context at any time. Each job gets a
fresh context (its own cookies and storage) that is closed when the job
ends. A job that blows up is converted into a failed JobResult; it never
takes its siblings or the browser down with it.

Example::

    async with Orchestrator.open(headless=True) as orchestrator:
        summary = await orchestrator.run(config)
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from playwright.async_api import async_playwright

from stepwright.actions import ActionInterpreter
from stepwright.common.exceptions import BrowserLaunchError
from stepwright.common.page_handle import BrowserHandle, ContextHandle
from stepwright.data_types import (
    JobDefinition,
    JobResult,
    RunConfig,
    RunSummary,
    utc_now_iso,
)
from stepwright.runner import run_job
from stepwright.session import SessionStore
from stepwright.storage import save_result

logger = logging.getLogger(__name__)

BROWSER_TYPE = "chromium"


def format_summary(summary: RunSummary) -> str:
    """Render a run summary as a plain-text report."""
    lines = [
        "=" * 60,
        "RUN SUMMARY",
        "=" * 60,
        f"Started:   {summary.started_at}",
        f"Completed: {summary.completed_at}",
        f"Duration:  {summary.duration}ms ({summary.duration / 1000:.2f}s)",
        "-" * 60,
        f"Jobs run:      {summary.job_count}",
        f"  succeeded:   {summary.success_count}",
        f"  failed:      {summary.failure_count}",
        f"Total records: {summary.total_records}",
        "-" * 60,
    ]
    for result in summary.results:
        status = "OK  " if result.success else "FAIL"
        duration = f"{result.duration}ms"
        records = f"{result.record_count} records"
        errors = f"({len(result.errors)} errors)" if result.errors else ""
        lines.append(
            f"  {status} {result.name:<20} | {duration:>8} | "
            f"{records:<12} {errors}".rstrip()
        )
    lines.append("=" * 60)
    return "\n".join(lines)


class Orchestrator:
    """Runs the jobs of a RunConfig against one shared browser.

    Args:
        browser: The shared browser session. The orchestrator only creates
            contexts from it; closing it is up to whoever launched it.
        session_store: Store handed to session-load/session-save steps.
    """

    def __init__(
        self,
        browser: BrowserHandle,
        session_store: SessionStore | None = None,
    ) -> None:
        self.browser = browser
        self.interpreter = ActionInterpreter(session_store)

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        headless: bool = True,
        session_store: SessionStore | None = None,
    ) -> AsyncIterator[Orchestrator]:
        """Launch Chromium and yield an orchestrator bound to it.

        The browser is closed and Playwright stopped on exit, with close
        errors logged rather than raised.

        Raises:
            BrowserLaunchError: If the browser cannot be started.
        """
        try:
            playwright = await async_playwright().start()
        except Exception as e:
            raise BrowserLaunchError(BROWSER_TYPE, e) from e

        try:
            try:
                browser_launcher = getattr(playwright, BROWSER_TYPE)
                browser = await browser_launcher.launch(headless=headless)
            except Exception as e:
                raise BrowserLaunchError(BROWSER_TYPE, e) from e
            logger.info(f"Launched {BROWSER_TYPE} (headless={headless})")

            try:
                yield cls(browser, session_store)
            finally:
                try:
                    await browser.close()
                except Exception as e:
                    logger.warning(f"Ignoring browser close error: {e}")
        finally:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning(f"Ignoring Playwright stop error: {e}")

    @classmethod
    async def run_config(
        cls,
        config: RunConfig,
        session_store: SessionStore | None = None,
    ) -> RunSummary:
        """Launch a browser for ``config``, run it and close the browser.

        The browser is headless unless some job asks for a visible one.
        """
        headless = all(job.headless for job in config.jobs)
        async with cls.open(headless, session_store) as orchestrator:
            return await orchestrator.run(config)

    async def run(self, config: RunConfig) -> RunSummary:
        """Run every job of ``config`` and summarize the outcomes.

        Results appear in the summary in job submission order.
        """
        started_at = utc_now_iso()
        start = time.monotonic()
        jobs = config.jobs
        results: list[JobResult | None] = [None] * len(jobs)

        queue: asyncio.Queue[tuple[int, JobDefinition]] = asyncio.Queue()
        for item in enumerate(jobs):
            queue.put_nowait(item)

        num_workers = min(config.concurrency, len(jobs))
        logger.info(
            f"Running {len(jobs)} job(s) with concurrency {config.concurrency}"
        )

        async def worker(worker_id: int) -> None:
            while True:
                try:
                    index, job = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    logger.info(f"Worker {worker_id} starting job {job.name}")
                    results[index] = await self._settle_job(
                        job, config.output_dir
                    )
                finally:
                    queue.task_done()

        workers = [
            asyncio.create_task(worker(i)) for i in range(num_workers)
        ]
        outcomes = await asyncio.gather(*workers, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.error(f"Worker crashed: {outcome!r}")

        settled: list[JobResult] = []
        for job, result in zip(jobs, results):
            if result is None:
                result = JobResult.failed(
                    job.name, job.url, "Critical failure: job never completed"
                )
            settled.append(result)

        summary = RunSummary.from_results(
            settled,
            started_at=started_at,
            completed_at=utc_now_iso(),
            duration=int((time.monotonic() - start) * 1000),
        )
        logger.info(f"Run finished\n{format_summary(summary)}")
        return summary

    def _context_options(self, job: JobDefinition) -> dict[str, Any]:
        options: dict[str, Any] = {
            "ignore_https_errors": True,
            "java_script_enabled": True,
        }
        if job.viewport is not None:
            options["viewport"] = job.viewport.to_dict()
        return options

    async def _run_isolated(
        self, job: JobDefinition, output_dir: str | Path
    ) -> JobResult:
        context: ContextHandle | None = None
        try:
            context = await self.browser.new_context(
                **self._context_options(job)
            )
            result = await run_job(job, context, self.interpreter)
            await asyncio.to_thread(save_result, result, output_dir)
            return result
        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    logger.warning(
                        f"[{job.name}] Ignoring context close error: {e}"
                    )

    async def _settle_job(
        self, job: JobDefinition, output_dir: str | Path
    ) -> JobResult:
        """Run ``job`` in isolation, turning any escape into a failed result."""
        try:
            return await self._run_isolated(job, output_dir)
        except Exception as e:
            logger.error(
                f"[{job.name}] Critical failure: {e}",
                exc_info=True,
                extra={"job": job.name, "url": job.url},
            )
            failed = JobResult.failed(
                job.name,
                job.url,
                f"Critical failure: {e}",
                stack=traceback.format_exc(),
            )
            try:
                await asyncio.to_thread(save_result, failed, output_dir)
            except OSError as save_error:
                logger.warning(
                    f"[{job.name}] Could not persist failed result: "
                    f"{save_error}"
                )
            return failed
