"""
Execution Record Schema - one record per node execution.

A record is identified by (execution_id, node_id). It holds the retry
policy in force, the append-only attempt history and the lifecycle
status:

    pending → retrying → succeeded
        \\        \\
         → failed → dlq ──(operator replay)──→ pending

succeeded and dlq are terminal; only an operator replay leaves dlq.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from flowguard.retry.policy import RetryPolicy


def utcnow() -> datetime:
    return datetime.now(UTC)


# Identity of a record. The string form from record_key() is for display only.
RecordId = tuple[str, str]


def record_key(execution_id: str, node_id: str) -> str:
    """Display form of a record identity, used in logs and messages."""
    return f"{execution_id}:{node_id}"


class ExecutionStatus(StrEnum):
    """Lifecycle status of an execution record."""

    PENDING = "pending"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DLQ = "dlq"


TERMINAL_STATUSES = frozenset({ExecutionStatus.SUCCEEDED, ExecutionStatus.DLQ})
ACTIVE_STATUSES = frozenset({ExecutionStatus.PENDING, ExecutionStatus.RETRYING})

# Allowed status transitions. FAILED is transient: it is entered and left
# (to DLQ) within the same write.
TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset(
        {ExecutionStatus.RETRYING, ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.RETRYING: frozenset(
        {ExecutionStatus.RETRYING, ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED}
    ),
    ExecutionStatus.FAILED: frozenset({ExecutionStatus.DLQ}),
    ExecutionStatus.DLQ: frozenset({ExecutionStatus.PENDING}),
    ExecutionStatus.SUCCEEDED: frozenset(),
}


class Attempt(BaseModel):
    """One invocation attempt. Appended when its outcome is known."""

    attempt: int = Field(ge=1, description="1-based ordinal across the record's whole history")
    timestamp: datetime = Field(default_factory=utcnow, description="When the outcome arrived")
    dispatched_at: datetime | None = None
    succeeded: bool = False
    error: str | None = None
    next_retry_at: datetime | None = None


class ExecutionRecord(BaseModel):
    """State of one node execution across all of its attempts."""

    execution_id: str
    node_id: str
    workflow_id: str | None = None
    node_type: str | None = None

    status: ExecutionStatus = ExecutionStatus.PENDING
    policy: RetryPolicy = Field(default_factory=RetryPolicy)
    attempts: list[Attempt] = Field(default_factory=list)
    idempotency_key: str | None = None
    last_error: str | None = None

    # Scheduling
    next_retry_at: datetime | None = None
    in_flight_attempt: int | None = Field(
        default=None, description="Ordinal of the attempt currently dispatched, if any"
    )
    in_flight_since: datetime | None = None

    # Replay bookkeeping: attempts before quota_start belong to earlier cycles
    quota_start: int = 0
    replay_count: int = 0

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"extra": "allow"}

    @property
    def key(self) -> str:
        return record_key(self.execution_id, self.node_id)

    @property
    def ident(self) -> RecordId:
        return (self.execution_id, self.node_id)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def cycle_attempt_count(self) -> int:
        """Attempts made since creation or the last replay."""
        return len(self.attempts) - self.quota_start

    @property
    def next_ordinal(self) -> int:
        return len(self.attempts) + 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def idempotency_slot(self) -> tuple[str, str]:
        """Key of the at-most-one-in-flight guarantee: (node_id, idempotency key)."""
        return (self.node_id, self.idempotency_key or f"execution:{self.execution_id}")

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now or utcnow()


@dataclass(frozen=True)
class InvocationOutcome:
    """
    Result of one invocation as reported by the executor.

    Timeouts travel through the same channel as any other failure.
    """

    success: bool
    error: str | None = None

    @classmethod
    def succeeded(cls) -> "InvocationOutcome":
        return cls(success=True)

    @classmethod
    def failed(cls, error: BaseException | str) -> "InvocationOutcome":
        if isinstance(error, BaseException):
            error = str(error) or type(error).__name__
        return cls(success=False, error=error or "Unknown error")

    @classmethod
    def timed_out(cls, detail: str | None = None) -> "InvocationOutcome":
        return cls(success=False, error=f"TIMEOUT: {detail or 'invocation timed out'}")
