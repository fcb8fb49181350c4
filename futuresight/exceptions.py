"""Custom exceptions and failure classification for FutureSight."""

from enum import Enum


class LLMError(Exception):
    """Raised when a call to the LLM provider fails."""

    pass


class FailureKind(str, Enum):
    """User-facing classes of AI flow failures."""
    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    INVALID_OUTPUT = "invalid_output"
    UNKNOWN = "unknown"


class CalendarErrorKind(str, Enum):
    """Classes of calendar import failures."""
    MALFORMED_FORMAT = "malformed_format"
    INCONSISTENT_LINE_ENDINGS = "inconsistent_line_endings"
    UNKNOWN = "unknown"


# Matched case-insensitively against provider error text. Vendors do not
# document these strings; keep every marker here.
RATE_LIMIT_MARKERS = ("429", "quota", "resource has been exhausted")
OVERLOAD_MARKERS = ("503", "overloaded")

FAILURE_MESSAGES = {
    FailureKind.RATE_LIMITED: "The AI service quota has been reached. Please try again later.",
    FailureKind.OVERLOADED: "The AI model is temporarily overloaded. Please try again shortly.",
    FailureKind.UNKNOWN: "Failed to process AI request.",
}


def classify_failure(error: Exception | str) -> FailureKind:
    """Map a provider error onto a FailureKind by its message text.

    Rate-limit markers win over overload markers when both appear.
    """
    text = str(error).lower()
    if any(marker in text for marker in RATE_LIMIT_MARKERS):
        return FailureKind.RATE_LIMITED
    if any(marker in text for marker in OVERLOAD_MARKERS):
        return FailureKind.OVERLOADED
    return FailureKind.UNKNOWN


class FlowError(Exception):
    """Base exception for AI flow errors."""

    pass


class FlowRequestError(FlowError):
    """Raised when a flow request is rejected before reaching the LLM (400)."""

    pass


class FlowFailure(FlowError):
    """Raised when a flow invocation fails and the flow has no safe default."""

    def __init__(self, kind: FailureKind, message: str, flow: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.flow = flow


class CalendarImportError(Exception):
    """Raised when uploaded calendar text cannot be parsed."""

    def __init__(self, kind: CalendarErrorKind, message: str, detail: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail
