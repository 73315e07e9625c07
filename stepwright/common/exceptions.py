"""Exception types for stepwright.

Only validation errors and browser-launch failures are allowed to abort a
whole run. Everything below the run level is converted into StepError
records by the runner or the orchestrator.
"""

from typing import Any


class StepwrightException(Exception):
    """Base class for stepwright errors.

    Subclasses carry structured context that is folded into the message so
    the error reads well both in logs and in persisted results.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """
        Args:
            message: What went wrong, in one line.
            context: Key/value details appended below the message.
        """
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.context:
            return self.message
        details = "\n".join(
            f"  {key}: {value}" for key, value in self.context.items()
        )
        return f"{self.message}\nContext:\n{details}"


# =============================================================================
# Run-level errors (fatal before or at the start of a run)
# =============================================================================


class ConfigLoadError(StepwrightException):
    """Raised when a job source cannot be read or parsed as YAML."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message, {"file": path} if path else None)


class ConfigValidationError(StepwrightException):
    """Raised when a job source does not describe a valid run.

    Attributes:
        path: Dotted location of the offending value, e.g.
            ``scrapers[0].steps[2].params``.
        expected: Optional description of what was expected instead.
    """

    def __init__(
        self,
        message: str,
        path: str,
        expected: str | None = None,
    ) -> None:
        self.path = path
        self.expected = expected

        context: dict[str, Any] = {"path": path}
        if expected is not None:
            context["expected"] = expected

        super().__init__(message, context)


class BrowserLaunchError(StepwrightException):
    """Raised when the shared browser session cannot be started.

    There is nothing to isolate jobs against without a browser, so this is
    fatal to the entire run.
    """

    def __init__(self, browser_type: str, cause: BaseException) -> None:
        self.browser_type = browser_type
        self.cause = cause
        super().__init__(
            f"Failed to launch {browser_type} browser: {cause}",
            {"browser_type": browser_type},
        )


# =============================================================================
# Step-level errors (converted to failed ActionResults by the actions)
# =============================================================================


class InvalidSelectorException(StepwrightException):
    """Raised when a CSS selector cannot be compiled.

    Attributes:
        selector: The selector that failed to compile.
        description: What the selector was meant to find.
    """

    def __init__(self, selector: str, description: str, reason: str) -> None:
        self.selector = selector
        self.description = description
        super().__init__(
            f"Invalid selector for '{description}': {reason}",
            {"selector": selector},
        )


class SessionStoreError(StepwrightException):
    """Raised when a session snapshot cannot be written."""

    def __init__(self, session_name: str, path: str, cause: BaseException) -> None:
        self.session_name = session_name
        self.path = path
        super().__init__(
            f"Failed to save session '{session_name}': {cause}",
            {"file": path},
        )
