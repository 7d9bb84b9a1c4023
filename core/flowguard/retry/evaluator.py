"""
Retry Policy Evaluator - a pure decision function.

Given the attempt that just failed, the record's policy and the error,
decide whether to retry (and after how long) or abandon. No side effects
and no I/O; the only source of nondeterminism is the injected
``random.Random`` used for jitter, so tests seed it.

Backoff:
    delay = min(max_delay_ms, initial_delay_ms * backoff_multiplier ** (attempt - 1))

With jitter enabled the delay is drawn uniformly from [0, delay]
("full jitter").
"""

import random
from dataclasses import dataclass
from enum import StrEnum

from flowguard.retry.errors import ErrorCategory, classify_error, matches_pattern
from flowguard.retry.policy import RetryPolicy


class RetryAction(StrEnum):
    RETRY = "retry"
    ABANDON = "abandon"


class AbandonReason(StrEnum):
    EXHAUSTED = "exhausted"  # attempts reached max_attempts
    PERMANENT = "permanent"  # error matches no retryable pattern


@dataclass(frozen=True)
class RetryDecision:
    """What to do after a failed attempt."""

    action: RetryAction
    category: ErrorCategory
    delay_ms: float | None = None  # RETRY only
    reason: AbandonReason | None = None  # ABANDON only

    @property
    def should_retry(self) -> bool:
        return self.action == RetryAction.RETRY

    @classmethod
    def retry(cls, delay_ms: float, category: ErrorCategory) -> "RetryDecision":
        return cls(action=RetryAction.RETRY, category=category, delay_ms=delay_ms)

    @classmethod
    def abandon(cls, reason: AbandonReason, category: ErrorCategory) -> "RetryDecision":
        return cls(action=RetryAction.ABANDON, category=category, reason=reason)


def backoff_delay(attempt_number: int, policy: RetryPolicy) -> float:
    """Capped exponential delay (ms) before the attempt after ``attempt_number``."""
    exponent = max(attempt_number - 1, 0)
    try:
        delay = policy.initial_delay_ms * policy.backoff_multiplier**exponent
    except OverflowError:
        return policy.max_delay_ms
    return min(policy.max_delay_ms, delay)


def is_retryable(error: BaseException | str | None, policy: RetryPolicy) -> bool:
    """True if the error matches any of the policy's retryable patterns."""
    return any(matches_pattern(error, pattern) for pattern in policy.retryable_errors)


class RetryEvaluator:
    """
    Decides retry-after(delay) or abandon for a failed attempt.

    Example:
        evaluator = RetryEvaluator(rng=random.Random(7))
        decision = evaluator.decide(1, RetryPolicy(), "TIMEOUT: gmail did not answer")
        decision.action  # RetryAction.RETRY
    """

    def __init__(self, rng: random.Random | None = None, seed: int | None = None):
        self._rng = rng if rng is not None else random.Random(seed)

    def compute_delay(self, attempt_number: int, policy: RetryPolicy) -> float:
        """Backoff delay in ms, jittered if the policy asks for it."""
        delay = backoff_delay(attempt_number, policy)
        if policy.jitter_enabled:
            delay = self._rng.uniform(0, delay)
        return delay

    def decide(
        self,
        attempt_number: int,
        policy: RetryPolicy,
        error: BaseException | str | None,
    ) -> RetryDecision:
        """
        Decide what follows a failed attempt.

        Args:
            attempt_number: 1-based count of attempts made so far (including this one)
            policy: Retry policy of the record
            error: The failure that ended the attempt

        Returns:
            RetryDecision.retry(delay) or RetryDecision.abandon(reason)
        """
        category = classify_error(error)

        if not is_retryable(error, policy):
            return RetryDecision.abandon(AbandonReason.PERMANENT, category)

        if attempt_number >= policy.max_attempts:
            return RetryDecision.abandon(AbandonReason.EXHAUSTED, category)

        return RetryDecision.retry(self.compute_delay(attempt_number, policy), category)
