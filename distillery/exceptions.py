"""
Error taxonomy for the distillation pipeline.

Scoring and monitoring errors are handled per item / per cluster and never
abort a whole cycle; orchestrator-level errors are reported through the
``distillation_failed`` notification instead of being raised to the caller.
"""

from typing import Any, Optional


class DistilleryError(Exception):
    """Base class for all distillery errors."""
    pass


class InvalidItemError(DistilleryError):
    """Raised when an experience record is missing required fields or holds bad values."""
    pass


class CapacityViolationError(DistilleryError):
    """Internal invariant failure: a store holds more items than its capacity."""

    def __init__(self, size: int, capacity: int):
        self.size = size
        self.capacity = capacity
        super().__init__(f"Store size {size} exceeds capacity {capacity}")


class PersistenceUnavailableError(DistilleryError):
    """The persistence collaborator failed to save or load an agent checkpoint."""

    def __init__(self, agent_id: str, operation: str, cause: Optional[BaseException] = None):
        self.agent_id = agent_id
        self.operation = operation
        self.cause = cause
        message = f"Persistence {operation} failed for agent {agent_id}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class CompactionPartialFailure(DistilleryError):
    """Aggregating one cluster failed; its members are kept unmodified."""

    def __init__(self, signature: Any, cause: BaseException):
        self.signature = signature
        self.cause = cause
        super().__init__(f"Compaction of cluster {signature!r} failed: {cause}")


class CycleInProgressError(DistilleryError):
    """A distillation cycle for this agent is already running."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Distillation cycle already in progress for agent {agent_id}")


class InvalidTransitionError(DistilleryError, ValueError):
    """The distillation state machine was asked for a transition it does not allow."""
    pass
