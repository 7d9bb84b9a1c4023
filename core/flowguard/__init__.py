"""
flowguard - workflow graph validation and retry/dead-letter execution.

The graph side checks a submitted workflow before it is saved or run; the
runtime side drives each node execution through retries with backoff and
parks abandoned executions in a dead-letter queue for operators.
"""

from flowguard.config import EngineConfig
from flowguard.errors import (
    DeadLetterNotFoundError,
    FlowguardError,
    InvalidTransitionError,
    RecordNotFoundError,
    StorageError,
)
from flowguard.graph import GraphValidator, ScopeRegistry, ValidationResult, validate_graph
from flowguard.retry import RetryEvaluator, RetryPolicy
from flowguard.runtime.dead_letter import DeadLetterManager
from flowguard.runtime.engine import ExecutionEngine, NodeExecutor
from flowguard.runtime.event_bus import EventBus, EventType, ExecutionEvent
from flowguard.schemas.execution import (
    Attempt,
    ExecutionRecord,
    ExecutionStatus,
    InvocationOutcome,
)
from flowguard.storage.execution_store import (
    ExecutionStore,
    FileExecutionStore,
    InMemoryExecutionStore,
)

__all__ = [
    # Graph validation
    "GraphValidator",
    "ScopeRegistry",
    "ValidationResult",
    "validate_graph",
    # Retry
    "RetryPolicy",
    "RetryEvaluator",
    # Execution
    "ExecutionEngine",
    "NodeExecutor",
    "ExecutionRecord",
    "ExecutionStatus",
    "Attempt",
    "InvocationOutcome",
    "DeadLetterManager",
    # Storage
    "ExecutionStore",
    "InMemoryExecutionStore",
    "FileExecutionStore",
    # Events
    "EventBus",
    "EventType",
    "ExecutionEvent",
    # Config & errors
    "EngineConfig",
    "FlowguardError",
    "RecordNotFoundError",
    "DeadLetterNotFoundError",
    "InvalidTransitionError",
    "StorageError",
]
