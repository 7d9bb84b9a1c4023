"""Tests for RetryPolicy, the error classifier and the RetryEvaluator."""

import random

import pytest
from pydantic import ValidationError

from flowguard.retry import (
    DEFAULT_RETRYABLE_ERRORS,
    AbandonReason,
    ErrorCategory,
    RetryAction,
    RetryEvaluator,
    RetryPolicy,
    backoff_delay,
    classify_error,
    display_category,
    is_retryable,
)
from flowguard.retry.errors import matches_pattern

# === POLICY ===


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.initial_delay_ms == 1000
        assert policy.max_delay_ms == 30000
        assert policy.backoff_multiplier == 2.0
        assert policy.jitter_enabled is True
        assert policy.retryable_errors == DEFAULT_RETRYABLE_ERRORS

    def test_merged_partial_override(self):
        policy = RetryPolicy().merged({"max_attempts": 5, "jitterEnabled": False})

        assert policy.max_attempts == 5
        assert policy.jitter_enabled is False
        assert policy.initial_delay_ms == 1000

    def test_merged_none_returns_same_policy(self):
        policy = RetryPolicy()
        assert policy.merged(None) is policy

    def test_from_config_accepts_camel_case(self):
        policy = RetryPolicy.from_config({"maxAttempts": 4, "initialDelayMs": 250})

        assert policy.max_attempts == 4
        assert policy.initial_delay_ms == 250

    @pytest.mark.parametrize("key", ["MaxAttempts", "maxAttempts", "max_attempts"])
    def test_from_config_any_key_casing(self, key):
        assert RetryPolicy.from_config({key: 3, "JitterEnabled": False}).max_attempts == 3

    def test_validates_camel_case_aliases_directly(self):
        policy = RetryPolicy.model_validate({"backoffMultiplier": 3.0, "maxDelayMs": 60000})

        assert policy.backoff_multiplier == 3.0
        assert policy.model_dump(by_alias=True)["maxDelayMs"] == 60000

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_attempts": 0},
            {"backoff_multiplier": 0.5},
            {"initial_delay_ms": 5000, "max_delay_ms": 1000},
            {"unknown_field": 1},
        ],
    )
    def test_invalid_policy_rejected(self, overrides):
        with pytest.raises(ValidationError):
            RetryPolicy().merged(overrides)

    def test_policy_is_frozen(self):
        with pytest.raises(ValidationError):
            RetryPolicy().max_attempts = 10


# === ERROR CLASSIFICATION ===


class TestClassifyError:
    @pytest.mark.parametrize(
        "error,category",
        [
            ("TIMEOUT: gmail did not answer", ErrorCategory.TIMEOUT),
            ("Request timed out after 30s", ErrorCategory.TIMEOUT),
            ("HTTP 429 Too Many Requests", ErrorCategory.RATE_LIMIT),
            ("read ECONNRESET", ErrorCategory.NETWORK_ERROR),
            ("503 Service Unavailable", ErrorCategory.SERVICE_UNAVAILABLE),
            ("500 Internal Server Error", ErrorCategory.SERVER_ERROR),
            ("401 Unauthorized", ErrorCategory.AUTH_ERROR),
            ("payload failed schema check", ErrorCategory.VALIDATION_ERROR),
            ("something odd", ErrorCategory.UNKNOWN_ERROR),
            ("", ErrorCategory.UNKNOWN_ERROR),
            (None, ErrorCategory.UNKNOWN_ERROR),
        ],
    )
    def test_message_classification(self, error, category):
        assert classify_error(error) == category

    def test_exception_types(self):
        assert classify_error(TimeoutError()) == ErrorCategory.TIMEOUT
        assert classify_error(ConnectionResetError("peer")) == ErrorCategory.NETWORK_ERROR
        assert classify_error(ValueError("invalid address")) == ErrorCategory.VALIDATION_ERROR

    def test_matches_pattern_by_category_or_substring(self):
        assert matches_pattern("HTTP 429 Too Many Requests", "RATE_LIMIT")
        assert matches_pattern("HTTP 429 Too Many Requests", "rate_limit")
        assert matches_pattern("quota exceeded for project", "QUOTA EXCEEDED")
        assert not matches_pattern("401 Unauthorized", "TIMEOUT")
        assert not matches_pattern("anything", "")

    def test_display_category(self):
        assert display_category("TIMEOUT: slow") == "Timeout"
        assert display_category("502 bad gateway") == "Other"
        assert display_category("503 Service Unavailable") == "Server Error"
        assert display_category(None) == "Unknown"


# === BACKOFF ===


class TestBackoff:
    def test_capped_exponential_sequence(self):
        """Non-jittered delays double from 1000 and cap at 30000."""
        policy = RetryPolicy(jitter_enabled=False)

        delays = [backoff_delay(n, policy) for n in range(1, 9)]

        assert delays == [1000, 2000, 4000, 8000, 16000, 30000, 30000, 30000]

    def test_huge_attempt_number_caps(self):
        policy = RetryPolicy(backoff_multiplier=10, jitter_enabled=False)
        assert backoff_delay(10_000, policy) == policy.max_delay_ms

    def test_jitter_within_bounds(self):
        """Full jitter draws from [0, computed delay] over repeated trials."""
        policy = RetryPolicy()
        evaluator = RetryEvaluator(rng=random.Random(1234))

        for attempt in range(1, 8):
            cap = backoff_delay(attempt, policy)
            samples = [evaluator.compute_delay(attempt, policy) for _ in range(200)]
            assert all(0 <= s <= cap for s in samples)
            assert len(set(samples)) > 1

    def test_seeded_evaluators_agree(self):
        policy = RetryPolicy()
        a = RetryEvaluator(seed=7)
        b = RetryEvaluator(seed=7)

        assert [a.compute_delay(2, policy) for _ in range(5)] == [
            b.compute_delay(2, policy) for _ in range(5)
        ]


# === DECISIONS ===


class TestRetryEvaluator:
    def setup_method(self):
        self.policy = RetryPolicy(jitter_enabled=False)
        self.evaluator = RetryEvaluator()

    def test_retry_with_backoff(self):
        decision = self.evaluator.decide(1, self.policy, "TIMEOUT: no answer")

        assert decision.action == RetryAction.RETRY
        assert decision.should_retry is True
        assert decision.delay_ms == 1000
        assert decision.category == ErrorCategory.TIMEOUT

    def test_abandon_when_exhausted(self):
        decision = self.evaluator.decide(3, self.policy, "TIMEOUT: no answer")

        assert decision.action == RetryAction.ABANDON
        assert decision.reason == AbandonReason.EXHAUSTED
        assert decision.delay_ms is None

    def test_permanent_error_abandons_on_first_attempt(self):
        policy = self.policy.merged({"max_attempts": 10})

        decision = self.evaluator.decide(1, policy, "401 Unauthorized")

        assert decision.action == RetryAction.ABANDON
        assert decision.reason == AbandonReason.PERMANENT

    def test_custom_retryable_substring(self):
        policy = self.policy.merged({"retryable_errors": ["quota"]})

        assert is_retryable("Daily quota reached", policy)
        assert self.evaluator.decide(1, policy, "Daily quota reached").should_retry
        assert not self.evaluator.decide(1, policy, "TIMEOUT").should_retry
