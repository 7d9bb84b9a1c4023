"""
Retry Policy - how a node invocation is retried.

A policy is attached to every execution record. It starts from the
workflow/node defaults and may be partially overridden per execution:

    policy = RetryPolicy().merged({"max_attempts": 5})
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel, to_snake

from flowguard.retry.errors import ErrorCategory

DEFAULT_RETRYABLE_ERRORS = [
    ErrorCategory.TIMEOUT.value,
    ErrorCategory.RATE_LIMIT.value,
    ErrorCategory.NETWORK_ERROR.value,
    ErrorCategory.SERVICE_UNAVAILABLE.value,
]


class RetryPolicy(BaseModel):
    """Exponential backoff policy with optional full jitter."""

    max_attempts: int = Field(default=3, ge=1, description="Attempts before abandoning")
    initial_delay_ms: float = Field(default=1000, ge=0)
    max_delay_ms: float = Field(default=30000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    jitter_enabled: bool = True
    retryable_errors: list[str] = Field(
        default_factory=lambda: list(DEFAULT_RETRYABLE_ERRORS),
        description="Error categories or message substrings that may be retried",
    )

    # camelCase aliases for configuration files; field names work as well
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True
    )

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicy":
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= "
                f"initial_delay_ms ({self.initial_delay_ms})"
            )
        return self

    def merged(self, overrides: dict[str, Any] | None) -> "RetryPolicy":
        """Return a copy with ``overrides`` applied (validated)."""
        if not overrides:
            return self
        return RetryPolicy.model_validate(
            {**self.model_dump(), **{to_snake(key): value for key, value in overrides.items()}}
        )

    @classmethod
    def from_config(cls, data: dict[str, Any] | None) -> "RetryPolicy":
        """Build from a configuration section; camelCase keys are accepted."""
        if not data:
            return cls()
        return cls.model_validate({to_snake(key): value for key, value in data.items()})
