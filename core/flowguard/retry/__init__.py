"""Retry policies, error classification and the retry decision function."""

from flowguard.retry.errors import ErrorCategory, classify_error, display_category
from flowguard.retry.evaluator import (
    AbandonReason,
    RetryAction,
    RetryDecision,
    RetryEvaluator,
    backoff_delay,
    is_retryable,
)
from flowguard.retry.policy import DEFAULT_RETRYABLE_ERRORS, RetryPolicy

__all__ = [
    "RetryPolicy",
    "DEFAULT_RETRYABLE_ERRORS",
    "RetryEvaluator",
    "RetryDecision",
    "RetryAction",
    "AbandonReason",
    "backoff_delay",
    "is_retryable",
    "ErrorCategory",
    "classify_error",
    "display_category",
]
