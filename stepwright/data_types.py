"""Data types for the scraper execution engine.

This module defines the records passed between the orchestrator, the runner
and the action interpreter. These types are designed to be:

1. Exhaustive - Every step kind is its own frozen dataclass so the
   interpreter can dispatch with a match statement and assert_never
2. Immutable - Job definitions and steps are frozen once loaded
3. Serializable - Steps round-trip to the ``{action, params}`` shape used
   by job sources

JobResult is the one mutable record: the runner creates it empty at job
start, mutates it step by step and finalizes it in a cleanup phase.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar

# Records per listing page, used to estimate how many pages a pagination
# step walked through.
RECORDS_PER_PAGE_ESTIMATE = 10

DEFAULT_CONCURRENCY = 5
DEFAULT_OUTPUT_DIR = "./results"


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string with milliseconds."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


# =============================================================================
# Steps
# =============================================================================


class ActionKind(Enum):
    """The closed vocabulary of step actions."""

    NAVIGATE = "navigate"
    WAIT = "wait"
    CLICK = "click"
    FILL = "fill"
    EXTRACT = "extract"
    PAGINATE = "paginate"
    LOOP = "loop"
    NAVIGATE_BACK = "navigate-back"
    SESSION_LOAD = "session-load"
    SESSION_SAVE = "session-save"


# Python attribute name -> key used by job sources.
_PARAM_ALIASES = {
    "item_selector": "itemSelector",
    "delay_between_iterations": "delayBetweenIterations",
    "session_name": "sessionName",
    "sessions_dir": "sessionsDir",
}


def _serialize_param(value: Any) -> Any:
    if isinstance(value, (BaseStep, ExtractField)):
        return value.to_dict()
    if isinstance(value, tuple):
        return [_serialize_param(item) for item in value]
    return value


@dataclass(frozen=True)
class ExtractField:
    """One named value to pull out of every matched element.

    Attributes:
        name: Key of the value in the extracted record.
        selector: CSS selector resolved inside the matched element.
        attribute: Attribute to read. When None the trimmed text content
            is used.
    """

    name: str
    selector: str
    attribute: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "selector": self.selector}
        if self.attribute is not None:
            data["attribute"] = self.attribute
        return data


@dataclass(frozen=True)
class BaseStep:
    """Base class for all step variants."""

    action: ClassVar[ActionKind]

    @property
    def params(self) -> dict[str, Any]:
        """Parameters in job-source form, omitting unset optionals."""
        params: dict[str, Any] = {}
        for step_field in fields(self):
            value = getattr(self, step_field.name)
            if value is None:
                continue
            key = _PARAM_ALIASES.get(step_field.name, step_field.name)
            params[key] = _serialize_param(value)
        return params

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action.value, "params": self.params}


@dataclass(frozen=True)
class NavigateStep(BaseStep):
    """Load a URL and wait for the network to go idle."""

    action: ClassVar[ActionKind] = ActionKind.NAVIGATE

    url: str
    timeout: int = 30000
    retries: int = 0


@dataclass(frozen=True)
class WaitStep(BaseStep):
    """Wait for a selector to become visible, or for a fixed duration (ms)."""

    action: ClassVar[ActionKind] = ActionKind.WAIT

    selector: str | None = None
    duration: int | None = None
    timeout: int = 10000


@dataclass(frozen=True)
class ClickStep(BaseStep):
    action: ClassVar[ActionKind] = ActionKind.CLICK

    selector: str
    timeout: int = 10000


@dataclass(frozen=True)
class FillStep(BaseStep):
    action: ClassVar[ActionKind] = ActionKind.FILL

    selector: str
    value: str
    timeout: int = 10000


@dataclass(frozen=True)
class ExtractStep(BaseStep):
    """Extract one record per element matching ``selector``."""

    action: ClassVar[ActionKind] = ActionKind.EXTRACT

    selector: str
    fields: tuple[ExtractField, ...]


@dataclass(frozen=True)
class PaginateStep(BaseStep):
    """Walk a paginated listing by clicking its next-page control.

    Attributes:
        selector: Selector of the next-page control.
        max_pages: Upper bound on pages visited, including the first one.
        item_selector: Selector of the repeated items on each page.
        fields: Fields extracted from each item. When None no extraction
            happens unless the runner hands over an earlier extract step.
        timeout: Timeout in milliseconds for the click and the page load.
    """

    action: ClassVar[ActionKind] = ActionKind.PAGINATE

    selector: str
    max_pages: int = 10
    item_selector: str | None = None
    fields: tuple[ExtractField, ...] | None = None
    timeout: int = 10000


@dataclass(frozen=True)
class LoopStep(BaseStep):
    """Run nested steps once per element matching ``selector``.

    String parameters of nested steps may contain ``${index}`` (zero based)
    and ``${total}`` tokens, substituted before every iteration.
    """

    action: ClassVar[ActionKind] = ActionKind.LOOP

    selector: str
    steps: tuple[StepDefinition, ...]
    max_iterations: int | None = None
    delay_between_iterations: int = 1000
    timeout: int = 10000


@dataclass(frozen=True)
class NavigateBackStep(BaseStep):
    action: ClassVar[ActionKind] = ActionKind.NAVIGATE_BACK

    count: int = 1
    timeout: int = 10000


@dataclass(frozen=True)
class SessionLoadStep(BaseStep):
    action: ClassVar[ActionKind] = ActionKind.SESSION_LOAD

    session_name: str
    sessions_dir: str | None = None


@dataclass(frozen=True)
class SessionSaveStep(BaseStep):
    action: ClassVar[ActionKind] = ActionKind.SESSION_SAVE

    session_name: str
    sessions_dir: str | None = None


# A job step is exactly one of these variants.
StepDefinition = (
    NavigateStep
    | WaitStep
    | ClickStep
    | FillStep
    | ExtractStep
    | PaginateStep
    | LoopStep
    | NavigateBackStep
    | SessionLoadStep
    | SessionSaveStep
)


# =============================================================================
# Jobs and run configuration
# =============================================================================


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int

    def to_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class JobDefinition:
    """One configured scraping job.

    Attributes:
        name: Unique job name, also used in result filenames.
        url: Start URL of the job.
        steps: Ordered steps, executed strictly in sequence.
        headless: Whether the job wants a headless browser.
        viewport: Optional viewport applied to the job's page.
    """

    name: str
    url: str
    steps: tuple[StepDefinition, ...]
    headless: bool = True
    viewport: Viewport | None = None


@dataclass(frozen=True)
class RunConfig:
    """A validated run: the jobs plus run-wide settings."""

    jobs: tuple[JobDefinition, ...]
    concurrency: int = DEFAULT_CONCURRENCY
    output_dir: str = DEFAULT_OUTPUT_DIR

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(
                f"concurrency must be >= 1, got {self.concurrency}"
            )


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a single step execution.

    Attributes:
        success: Whether the step met its contract.
        message: What happened, or why it failed.
        data: Records produced by extract, paginate or loop steps.
    """

    success: bool
    message: str
    data: list[dict[str, Any]] | None = None


@dataclass(frozen=True)
class StepError:
    """A failure recorded against a job.

    Attributes:
        step_index: Index of the failing step, or -1 for a fatal error
            caught at the job boundary.
        action: Action of the failing step, None when the failure happened
            outside step execution.
        message: Failure description.
        stack: Formatted traceback for fatal errors.
    """

    step_index: int
    action: ActionKind | None
    message: str
    stack: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step_index,
            "action": self.action.value if self.action else None,
            "message": self.message,
            "stack": self.stack,
        }


@dataclass
class JobResult:
    """Result of one job, assembled by the runner.

    ``record_count`` always equals ``len(data)``; use the mutation helpers
    rather than touching ``data`` directly.
    """

    name: str
    url: str
    started_at: str = field(default_factory=utc_now_iso)
    completed_at: str = ""
    duration: int = 0
    success: bool = True
    page_count: int = 0
    record_count: int = 0
    data: list[dict[str, Any]] = field(default_factory=list)
    errors: list[StepError] = field(default_factory=list)

    @classmethod
    def failed(
        cls,
        name: str,
        url: str,
        message: str,
        stack: str | None = None,
        started_at: str | None = None,
    ) -> JobResult:
        """Build a finalized result for a job that never produced one."""
        now = utc_now_iso()
        result = cls(name=name, url=url, started_at=started_at or now)
        result.completed_at = now
        result.add_error(StepError(-1, None, message, stack))
        return result

    def add_records(self, records: list[dict[str, Any]]) -> None:
        self.data.extend(records)
        self.record_count = len(self.data)

    def replace_last_records(
        self, count: int, records: list[dict[str, Any]]
    ) -> None:
        """Drop the last ``count`` records and append ``records`` instead."""
        if count:
            del self.data[-count:]
        self.add_records(records)

    def add_error(self, error: StepError) -> None:
        self.errors.append(error)
        self.success = False

    def estimate_page_count(self, paginated_records: int) -> None:
        self.page_count = (
            math.ceil(paginated_records / RECORDS_PER_PAGE_ESTIMATE) or 1
        )

    @property
    def error_message(self) -> str | None:
        if not self.errors:
            return None
        return "; ".join(error.message for error in self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "duration": self.duration,
            "success": self.success,
            "pageCount": self.page_count,
            "recordCount": self.record_count,
            "data": self.data,
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass(frozen=True)
class RunSummary:
    """Aggregate of every job in a run, built once all jobs settle."""

    started_at: str
    completed_at: str
    duration: int
    job_count: int
    success_count: int
    failure_count: int
    total_records: int
    results: tuple[JobResult, ...]

    @classmethod
    def from_results(
        cls,
        results: list[JobResult],
        started_at: str,
        completed_at: str,
        duration: int,
    ) -> RunSummary:
        success_count = sum(1 for result in results if result.success)
        return cls(
            started_at=started_at,
            completed_at=completed_at,
            duration=duration,
            job_count=len(results),
            success_count=success_count,
            failure_count=len(results) - success_count,
            total_records=sum(result.record_count for result in results),
            results=tuple(results),
        )
