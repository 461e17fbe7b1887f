"""Exception types raised by corepool.

The hierarchy mirrors where a failure happens:

- ConfigurationError: the request was rejected before any worker was touched.
- SpawnError: not a single worker process could be started.
- TaskError: the function raised inside a worker process.
- ExecutionError: anything else that went wrong while dispatching or joining.

All of them derive from EngineError so callers can catch the whole family.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all corepool errors."""


class ConfigurationError(EngineError, ValueError):
    """Raised when a run request or configuration value is invalid."""


class SpawnError(EngineError, RuntimeError):
    """Raised when the pool could not start any worker process."""


class TaskError(EngineError):
    """Raised when a task fails inside a worker process.

    Attributes:
        task_index: Index of the failed task within the dispatched batch.
        error_type: Name of the exception type raised in the worker.
        remote_message: The exception message reported by the worker.
    """

    def __init__(self, task_index: int, error_type: str, remote_message: str) -> None:
        self.task_index = task_index
        self.error_type = error_type
        self.remote_message = remote_message
        super().__init__(f'Task {task_index} failed with {error_type}: {remote_message}')

    def __reduce__(self) -> tuple[type[TaskError], tuple[int, str, str]]:
        return (type(self), (self.task_index, self.error_type, self.remote_message))


class ExecutionError(EngineError, RuntimeError):
    """Raised when dispatching or collecting results fails unexpectedly."""
