"""Tests for the orchestrator: concurrency, isolation, persistence, summary."""

import json
import threading
from pathlib import Path

import pytest

from stepwright import orchestrator as orchestrator_module
from stepwright.common.exceptions import BrowserLaunchError
from stepwright.data_types import (
    ExtractField,
    ExtractStep,
    JobDefinition,
    NavigateStep,
    RunConfig,
    Viewport,
)
from stepwright.orchestrator import Orchestrator, format_summary
from stepwright.runner import run_job
from stepwright.session import SessionStore
from tests.fakes import FakeBrowser, listing_pages

TITLE = (ExtractField("title", ".title"),)


def make_job(name: str, url: str, **kwargs) -> JobDefinition:
    return JobDefinition(
        name=name,
        url=url,
        steps=(NavigateStep(url=url), ExtractStep(".item", TITLE)),
        **kwargs,
    )


def site_for(*names: str, items: int = 2) -> dict:
    return {
        f"https://{name}.test/": listing_pages(1, items_per_page=items)
        for name in names
    }


class FakeLauncher:
    def __init__(self, browser, error=None) -> None:
        self.browser = browser
        self.error = error
        self.headless = None

    async def launch(self, headless: bool):
        self.headless = headless
        if self.error is not None:
            raise self.error
        return self.browser


class FakePlaywright:
    def __init__(self, launcher: FakeLauncher) -> None:
        self.chromium = launcher
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


class FakePlaywrightManager:
    def __init__(self, playwright: FakePlaywright) -> None:
        self.playwright = playwright

    async def start(self) -> FakePlaywright:
        return self.playwright


@pytest.fixture
def fake_playwright(monkeypatch: pytest.MonkeyPatch):
    """Replace async_playwright() with an in-memory launcher."""

    def install(browser, error=None) -> FakePlaywright:
        playwright = FakePlaywright(FakeLauncher(browser, error))
        monkeypatch.setattr(
            orchestrator_module,
            "async_playwright",
            lambda: FakePlaywrightManager(playwright),
        )
        return playwright

    return install


class TestOrchestratorRun:
    @pytest.mark.asyncio
    async def test_concurrency_bounds_open_contexts(
        self, output_dir: Path, session_store: SessionStore
    ) -> None:
        """No more than ``concurrency`` contexts shall be open at once."""
        names = [f"job{i}" for i in range(6)]
        browser = FakeBrowser(site_for(*names))
        config = RunConfig(
            jobs=tuple(make_job(n, f"https://{n}.test/") for n in names),
            concurrency=2,
            output_dir=str(output_dir),
        )

        summary = await Orchestrator(browser, session_store).run(config)

        assert browser.max_open_contexts == 2
        assert browser.open_contexts == 0
        assert summary.job_count == 6
        assert summary.success_count == 6
        assert summary.total_records == 12

    @pytest.mark.asyncio
    async def test_results_keep_submission_order(
        self, output_dir: Path
    ) -> None:
        """Summary results shall be in job submission order."""
        names = ["c", "a", "b"]
        browser = FakeBrowser(site_for(*names))
        config = RunConfig(
            jobs=tuple(make_job(n, f"https://{n}.test/") for n in names),
            concurrency=3,
            output_dir=str(output_dir),
        )

        summary = await Orchestrator(browser).run(config)

        assert [r.name for r in summary.results] == names

    @pytest.mark.asyncio
    async def test_one_network_failure_among_two_jobs(
        self, output_dir: Path
    ) -> None:
        """A navigation failure shall fail only its own job."""
        browser = FakeBrowser(site_for("good"))
        config = RunConfig(
            jobs=(
                make_job("bad", "https://unreachable.test/"),
                make_job("good", "https://good.test/"),
            ),
            output_dir=str(output_dir),
        )

        summary = await Orchestrator(browser).run(config)

        assert summary.job_count == 2
        assert summary.success_count == 1
        assert summary.failure_count == 1
        bad, good = summary.results
        assert not bad.success
        assert "ERR_CONNECTION_REFUSED" in bad.errors[0].message
        assert good.record_count == 2

    @pytest.mark.asyncio
    async def test_job_raising_in_its_task_does_not_affect_siblings(
        self, output_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An exception escaping a job shall become a synthetic failed result."""
        names = ["ok1", "boom", "ok2", "ok3"]
        browser = FakeBrowser(site_for(*names))

        async def sometimes_explode(definition, context, interpreter):
            if definition.name == "boom":
                raise RuntimeError("runner crashed")
            return await run_job(definition, context, interpreter)

        monkeypatch.setattr(orchestrator_module, "run_job", sometimes_explode)
        config = RunConfig(
            jobs=tuple(make_job(n, f"https://{n}.test/") for n in names),
            concurrency=2,
            output_dir=str(output_dir),
        )

        summary = await Orchestrator(browser).run(config)

        assert summary.job_count == 4
        assert summary.failure_count == 1
        boom = summary.results[1]
        assert boom.name == "boom"
        assert boom.errors[0].step_index == -1
        assert "runner crashed" in boom.errors[0].message
        assert all(context.closed for context in browser.contexts)
        assert len(list(output_dir.glob("*.json"))) == 4

    @pytest.mark.asyncio
    async def test_every_result_is_persisted(self, output_dir: Path) -> None:
        """Each job shall write exactly one result file."""
        browser = FakeBrowser(site_for("shop"))
        config = RunConfig(
            jobs=(make_job("shop", "https://shop.test/"),),
            output_dir=str(output_dir),
        )

        await Orchestrator(browser).run(config)

        files = list(output_dir.glob("shop-*.json"))
        assert len(files) == 1
        persisted = json.loads(files[0].read_text())
        assert persisted["metadata"]["total_records"] == 2
        assert persisted["metadata"]["error"] is None

    @pytest.mark.asyncio
    async def test_results_are_written_off_the_event_loop(
        self, output_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Result files shall be written in a worker thread."""
        browser = FakeBrowser(site_for("a", "b"))
        config = RunConfig(
            jobs=(make_job("a", "https://a.test/"), make_job("b", "https://b.test/")),
            output_dir=str(output_dir),
        )
        writer_threads = []
        save_result = orchestrator_module.save_result

        def recording_save(result, directory):
            writer_threads.append(threading.get_ident())
            return save_result(result, directory)

        monkeypatch.setattr(orchestrator_module, "save_result", recording_save)

        await Orchestrator(browser).run(config)

        assert len(writer_threads) == 2
        assert threading.get_ident() not in writer_threads
        assert len(list(output_dir.glob("*.json"))) == 2

    @pytest.mark.asyncio
    async def test_contexts_are_isolated_and_configured(
        self, output_dir: Path
    ) -> None:
        """Every job shall get its own context that ignores TLS errors."""
        browser = FakeBrowser(site_for("a", "b"))
        config = RunConfig(
            jobs=(
                make_job("a", "https://a.test/", viewport=Viewport(1024, 768)),
                make_job("b", "https://b.test/"),
            ),
            output_dir=str(output_dir),
        )

        await Orchestrator(browser).run(config)

        assert len(browser.contexts) == 2
        assert all(o["ignore_https_errors"] for o in browser.context_options)
        assert all(o["java_script_enabled"] for o in browser.context_options)
        viewports = [o.get("viewport") for o in browser.context_options]
        assert {"width": 1024, "height": 768} in viewports


class TestOrchestratorOpen:
    @pytest.mark.asyncio
    async def test_run_config_closes_browser_once(
        self, fake_playwright, output_dir: Path
    ) -> None:
        """The shared browser shall be launched once and closed once."""
        browser = FakeBrowser(site_for("a"))
        playwright = fake_playwright(browser)
        config = RunConfig(
            jobs=(make_job("a", "https://a.test/"),),
            output_dir=str(output_dir),
        )

        summary = await Orchestrator.run_config(config)

        assert summary.success_count == 1
        assert browser.close_count == 1
        assert playwright.stopped
        assert playwright.chromium.headless is True

    @pytest.mark.asyncio
    async def test_headed_job_launches_visible_browser(
        self, fake_playwright, output_dir: Path
    ) -> None:
        """A job asking for a visible browser shall disable headless mode."""
        browser = FakeBrowser(site_for("a"))
        playwright = fake_playwright(browser)
        config = RunConfig(
            jobs=(make_job("a", "https://a.test/", headless=False),),
            output_dir=str(output_dir),
        )

        await Orchestrator.run_config(config)

        assert playwright.chromium.headless is False

    @pytest.mark.asyncio
    async def test_launch_failure_is_fatal(self, fake_playwright) -> None:
        """A browser that cannot start shall abort the run."""
        playwright = fake_playwright(
            None, error=RuntimeError("Executable doesn't exist")
        )

        with pytest.raises(BrowserLaunchError) as exc_info:
            async with Orchestrator.open():
                pass

        assert "Executable doesn't exist" in str(exc_info.value)
        assert playwright.stopped


class TestFormatSummary:
    @pytest.mark.asyncio
    async def test_lists_every_job(self, output_dir: Path) -> None:
        """The summary report shall list every job with its status."""
        browser = FakeBrowser(site_for("good"))
        config = RunConfig(
            jobs=(
                make_job("good", "https://good.test/"),
                make_job("bad", "https://bad.test/"),
            ),
            output_dir=str(output_dir),
        )
        summary = await Orchestrator(browser).run(config)

        report = format_summary(summary)

        assert "OK   good" in report
        assert "FAIL bad" in report
        assert "(1 errors)" in report
