"""Shared pytest configuration and fixtures for corepool tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from corepool.errors import ExecutionError
from corepool.parallel.worker import execute_message


# Register markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line('markers', 'small: Fast, isolated unit tests (< 100ms)')
    config.addinivalue_line('markers', 'medium: Integration tests with real resources (< 10s)')
    config.addinivalue_line('markers', 'large: End-to-end system tests (< 60s)')


# Auto-mark tests based on directory
def pytest_collection_modifyitems(
    config: pytest.Config,  # noqa: ARG001
    items: list[pytest.Item],
) -> None:
    """Automatically apply markers based on test directory."""
    for item in items:
        # Get the path parts from the item's path
        item_path = Path(str(item.fspath))
        path_parts = item_path.parts

        if 'small' in path_parts:
            item.add_marker(pytest.mark.small)
        elif 'medium' in path_parts:
            item.add_marker(pytest.mark.medium)
        elif 'large' in path_parts:
            item.add_marker(pytest.mark.large)


class InProcessWorker:
    """Stand-in for Worker that runs requests in the calling process."""

    def __init__(self, factory: InProcessWorkerFactory, worker_id: int) -> None:
        self._factory = factory
        self.worker_id = worker_id
        self.started = False
        self.terminated = False
        self.crashed = False
        self.requests: list[dict[str, Any]] = []

    @property
    def alive(self) -> bool:
        return self.started and not self.terminated and not self.crashed

    def start(self) -> None:
        self._factory.attempts += 1
        if self._factory.attempts in self._factory.fail_on:
            msg = 'Resource temporarily unavailable'
            raise OSError(11, msg)
        self.started = True

    def request(self, message: dict[str, Any]) -> dict[str, Any]:
        if not self.alive:
            msg = f'Worker {self.worker_id} is not running'
            raise ExecutionError(msg)
        self.requests.append(message)
        return execute_message(message)

    def warmup(self) -> bool:
        return self.alive

    def terminate(self) -> None:
        self.terminated = True


@dataclass
class InProcessWorkerFactory:
    """Creates InProcessWorkers in place of real worker processes.

    Attributes:
        fail_on: 1-based spawn attempt numbers that raise OSError.
        attempts: Number of start() calls so far.
        created: Every worker created, in order.
    """

    fail_on: set[int] = field(default_factory=set)
    attempts: int = 0
    created: list[InProcessWorker] = field(default_factory=list)

    def __call__(self, worker_id: int, mp_context: object, shutdown_timeout: float = 1.0) -> InProcessWorker:  # noqa: ARG002
        worker = InProcessWorker(self, worker_id)
        self.created.append(worker)
        return worker


@pytest.fixture
def in_process_workers(monkeypatch: pytest.MonkeyPatch) -> InProcessWorkerFactory:
    """Replace worker processes with in-process workers."""
    factory = InProcessWorkerFactory()
    monkeypatch.setattr('corepool.parallel.pool.Worker', factory)
    return factory
