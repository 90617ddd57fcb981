"""Custom exception hierarchy for Focus-UserCount.

This module defines domain-specific exceptions that provide semantic clarity
and enable targeted error handling throughout the application. Each exception
includes contextual information to aid debugging and observability.

Extraction errors carry a ``kind`` class attribute. Extractors never let
these escape; they are converted into ``SourceResult.error`` using ``kind``
and ``message`` so the aggregator only ever sees data.
"""

from datetime import UTC, datetime
from typing import Any, ClassVar


class UserCountError(Exception):
    """Base exception for all Focus-UserCount errors.

    Attributes:
        kind: Stable failure category recorded in source results.
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    kind: ClassVar[str] = "UserCountError"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


class ExtractionError(UserCountError):
    """Base for failures of a single extraction attempt."""

    kind: ClassVar[str] = "ExtractionError"


class FetchError(ExtractionError):
    """Raised when a page cannot be retrieved.

    Covers transport failures and non-success HTTP statuses.
    """

    kind: ClassVar[str] = "FetchError"

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Fetching '{url}' failed: {reason}",
            context={"url": url, "reason": reason, "status_code": status_code},
        )
        self.status_code = status_code


class ParseError(ExtractionError):
    """Raised when the expected node is missing from static markup.

    Usually means the storefront changed its layout and the selector
    (or marker word) needs updating.
    """

    kind: ClassVar[str] = "ParseError"

    def __init__(
        self,
        selector: str,
        url: str,
        reason: str = "Selector matched zero elements - possible layout shift",
    ) -> None:
        super().__init__(
            message=f"Parsing failed for selector '{selector}': {reason}",
            context={"selector": selector, "url": url, "reason": reason},
        )


class ElementNotFoundError(ExtractionError):
    """Raised when a rendered page lacks the configured element."""

    kind: ClassVar[str] = "ElementNotFound"

    def __init__(self, selector: str, url: str) -> None:
        super().__init__(
            message=f"Element '{selector}' not found on rendered page",
            context={"selector": selector, "url": url},
        )


class NoNumberFoundError(ExtractionError):
    """Raised when the selected text contains no digits."""

    kind: ClassVar[str] = "NoNumberFound"

    def __init__(self, text: str) -> None:
        super().__init__(
            message="No number found in selected text",
            context={"text": text[:80]},
        )


class NumericParseError(ExtractionError):
    """Raised when a digit run is malformed or out of range."""

    kind: ClassVar[str] = "NumericParseError"

    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(
            message=f"Cannot parse count from '{raw}': {reason}",
            context={"raw": raw, "reason": reason},
        )


class ExtractionTimeoutError(ExtractionError):
    """Raised when a rendered page or a whole cycle exceeds its time bound."""

    kind: ClassVar[str] = "TimeoutError"

    def __init__(self, url: str, timeout_ms: int | float) -> None:
        super().__init__(
            message=f"Timed out after {timeout_ms}ms waiting for '{url}'",
            context={"url": url, "timeout_ms": timeout_ms},
        )


class AutomationLaunchError(ExtractionError):
    """Raised when the browser automation session fails to start.

    Common causes include missing Playwright browsers, resource constraints,
    or conflicting browser processes.
    """

    kind: ClassVar[str] = "AutomationLaunchError"

    def __init__(self, reason: str, browser_type: str = "chromium") -> None:
        super().__init__(
            message=f"Failed to launch {browser_type} browser: {reason}",
            context={"browser_type": browser_type, "reason": reason},
        )


class LoggingInitializationError(UserCountError):
    """Raised when the logging system fails to initialize.

    This is a startup-blocking error - the application cannot proceed
    without a functioning logging infrastructure.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
