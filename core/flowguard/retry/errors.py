"""
Error classification for retry decisions.

Executors report failures as free-form messages or exceptions. Retry
policies speak in normalized categories (TIMEOUT, RATE_LIMIT, ...), so
every error is classified before it is matched against a policy.
"""

from enum import StrEnum


class ErrorCategory(StrEnum):
    """Normalized error categories."""

    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    SERVER_ERROR = "SERVER_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# Checked in order; the first category with a matching marker wins.
_MESSAGE_MARKERS: list[tuple[ErrorCategory, tuple[str, ...]]] = [
    (ErrorCategory.TIMEOUT, ("timeout", "timed out")),
    (ErrorCategory.RATE_LIMIT, ("rate limit", "ratelimit", "too many requests", "429")),
    (
        ErrorCategory.NETWORK_ERROR,
        ("network", "econnreset", "econnrefused", "connection reset", "connection refused"),
    ),
    (ErrorCategory.SERVICE_UNAVAILABLE, ("503", "service unavailable")),
    (ErrorCategory.SERVER_ERROR, ("500", "internal server error")),
    (ErrorCategory.AUTH_ERROR, ("unauthorized", "authentication", "forbidden", "401", "403")),
    (ErrorCategory.VALIDATION_ERROR, ("validation", "schema", "invalid", "400")),
]

# Operator-facing labels for the DLQ view
_DISPLAY_LABELS = {
    ErrorCategory.TIMEOUT: "Timeout",
    ErrorCategory.RATE_LIMIT: "Rate Limit",
    ErrorCategory.NETWORK_ERROR: "Network",
    ErrorCategory.SERVICE_UNAVAILABLE: "Server Error",
    ErrorCategory.SERVER_ERROR: "Server Error",
    ErrorCategory.AUTH_ERROR: "Auth",
    ErrorCategory.VALIDATION_ERROR: "Validation",
    ErrorCategory.UNKNOWN_ERROR: "Other",
}


def error_message(error: BaseException | str | None) -> str:
    """Best-effort text of an error, never empty for a real exception."""
    if error is None:
        return ""
    if isinstance(error, BaseException):
        text = str(error)
        return text or type(error).__name__
    return str(error)


def classify_error(error: BaseException | str | None) -> ErrorCategory:
    """
    Map an error to its normalized category.

    Exceptions are classified by type first (TimeoutError, ConnectionError),
    then by message text like plain strings.
    """
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, ConnectionError):
        return ErrorCategory.NETWORK_ERROR

    message = error_message(error).lower()
    if not message:
        return ErrorCategory.UNKNOWN_ERROR

    # Messages that already carry a category name ("TIMEOUT: ...")
    for category in ErrorCategory:
        if message.startswith(category.value.lower()):
            return category

    for category, markers in _MESSAGE_MARKERS:
        if any(marker in message for marker in markers):
            return category
    return ErrorCategory.UNKNOWN_ERROR


def matches_pattern(error: BaseException | str | None, pattern: str) -> bool:
    """
    True if ``pattern`` names the error's category or occurs in its text.

    Both comparisons are case-insensitive.
    """
    if not pattern:
        return False
    if classify_error(error).value == pattern.strip().upper():
        return True
    return pattern.lower() in error_message(error).lower()


def display_category(error: BaseException | str | None) -> str:
    """Short label for operator views ("Timeout", "Rate Limit", ..., "Other")."""
    if error is None or error == "":
        return "Unknown"
    return _DISPLAY_LABELS[classify_error(error)]
