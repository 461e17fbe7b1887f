"""Result aggregation for parallel task execution.

This module provides the ResultAggregator class that collects the outcomes of
a fixed number of tasks into index-addressed slots. Results are reassembled by
task index, never by completion time.
"""

from __future__ import annotations

import threading
from typing import Any

from corepool.errors import EngineError, ExecutionError


_PENDING = object()


class ResultAggregator:
    """Aggregates results from parallel worker processes.

    Thread-safe collection of task outcomes. Every task owns one slot; the
    aggregator counts completions and remembers which tasks failed.

    Attributes:
        total_tasks: Number of tasks being tracked.
        completed: Number of tasks that finished, successfully or not.

    Example:
        >>> aggregator = ResultAggregator(total_tasks=2)
        >>> aggregator.set_result(1, [3, 4])
        >>> aggregator.set_result(0, [1, 2])
        >>> aggregator.flatten()
        [1, 2, 3, 4]
    """

    def __init__(self, total_tasks: int) -> None:
        """Initialize the result aggregator.

        Args:
            total_tasks: Total number of tasks to collect.
        """
        self._total_tasks = total_tasks
        self._slots: list[Any] = [_PENDING] * total_tasks
        self._errors: dict[int, BaseException] = {}
        self._completed = 0
        self._lock = threading.Lock()

    @property
    def total_tasks(self) -> int:
        """Return the total number of tasks."""
        return self._total_tasks

    @property
    def completed(self) -> int:
        """Return the number of finished tasks."""
        with self._lock:
            return self._completed

    @property
    def is_complete(self) -> bool:
        """Return True once every task has reported."""
        with self._lock:
            return self._completed == self._total_tasks

    @property
    def failed_indices(self) -> list[int]:
        """Return the indices of failed tasks in ascending order."""
        with self._lock:
            return sorted(self._errors)

    def set_result(self, index: int, value: Any) -> None:
        """Record the result of task ``index``."""
        with self._lock:
            self._claim(index)
            self._slots[index] = value

    def set_error(self, index: int, error: BaseException) -> None:
        """Record the failure of task ``index``."""
        with self._lock:
            self._claim(index)
            self._errors[index] = error

    def first_error(self) -> BaseException | None:
        """Return the error of the lowest-indexed failed task, if any."""
        with self._lock:
            if not self._errors:
                return None
            return self._errors[min(self._errors)]

    def results(self) -> list[Any]:
        """Return all results ordered by task index.

        Raises:
            RuntimeError: If some tasks have not reported yet.
            TaskError: If a task failed in its worker; the lowest-indexed
                failure wins.
            ExecutionError: If the lowest-indexed failure happened outside the
                task itself, e.g. while talking to the worker.
        """
        with self._lock:
            if self._completed != self._total_tasks:
                msg = f'Only {self._completed} of {self._total_tasks} task(s) have completed'
                raise RuntimeError(msg)
            if self._errors:
                index = min(self._errors)
                error = self._errors[index]
                if isinstance(error, EngineError):
                    raise error
                msg = f'Task {index} could not be executed: {error}'
                raise ExecutionError(msg) from error
            return list(self._slots)

    def flatten(self) -> list[Any]:
        """Return the per-task results concatenated in task order.

        List and tuple results are spliced in; any other result is kept as a
        single element.
        """
        flat: list[Any] = []
        for chunk in self.results():
            if isinstance(chunk, (list, tuple)):
                flat.extend(chunk)
            else:
                flat.append(chunk)
        return flat

    def _claim(self, index: int) -> None:
        """Mark slot ``index`` as finished. Must be called with lock held."""
        if not 0 <= index < self._total_tasks:
            msg = f'Task index {index} out of range for {self._total_tasks} task(s)'
            raise IndexError(msg)
        if self._slots[index] is not _PENDING or index in self._errors:
            msg = f'Task {index} already reported'
            raise ValueError(msg)
        self._completed += 1
