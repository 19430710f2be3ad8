"""
Custom Exceptions for Agent Dispatch

Provides specific exception types for the assignment failure modes.
"""


class DispatchError(Exception):
    """Base exception for all dispatch errors."""


class AgentNotFoundError(DispatchError):
    """Raised when an agent id is not present in the registry."""


class CapacityError(DispatchError):
    """
    Raised when a load increment would push an agent past max_concurrent.

    Callers check capacity before assigning; this is the registry's own
    invariant check. The critical path forces through it instead.
    """


class NoCapableAgentError(DispatchError):
    """Raised when no online agent with spare capacity matches the task."""


class DuplicateAssignmentError(DispatchError):
    """Raised when a task already holds an active assignment."""


class AssignmentNotFoundError(DispatchError):
    """Raised when a task has no active assignment to act on."""


class NoAgentsAvailableError(DispatchError):
    """Raised when every registered agent is offline."""


class InvalidConfiguration(DispatchError):
    """Raised when configuration is invalid or cannot be parsed."""
