"""Exceptions raised by the execution engine, dead-letter manager and stores."""


class FlowguardError(Exception):
    """Base class for flowguard errors."""

    pass


class RecordNotFoundError(FlowguardError):
    """Raised when no execution record exists for (execution_id, node_id)."""

    def __init__(self, execution_id: str, node_id: str):
        self.execution_id = execution_id
        self.node_id = node_id
        super().__init__(f"No execution record found for {execution_id}:{node_id}")


class DeadLetterNotFoundError(FlowguardError):
    """Raised when an operator action targets a record that is not dead-lettered."""

    def __init__(self, execution_id: str, node_id: str):
        self.execution_id = execution_id
        self.node_id = node_id
        super().__init__(f"No DLQ item found for {execution_id}:{node_id}")


class InvalidTransitionError(FlowguardError):
    """Raised when a record is asked to make a transition the state machine forbids."""

    def __init__(self, key: str, current: str, target: str):
        self.key = key
        self.current = current
        self.target = target
        super().__init__(f"Execution {key}: cannot transition from '{current}' to '{target}'")


class StorageError(FlowguardError):
    """Raised when a store cannot read or write a record."""

    pass
