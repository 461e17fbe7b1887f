"""Tests for WorkerPool class.

These tests verify pool sizing and lifecycle management. Worker processes are
replaced by in-process stand-ins; real processes are covered by the medium tests.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from corepool.errors import SpawnError
from corepool.parallel.pool import WorkerPool
from corepool.parallel.pool_config import PoolConfig, cpu_core_count


if TYPE_CHECKING:
    from conftest import InProcessWorkerFactory


class TestWorkerPoolCreation:
    """Tests for WorkerPool instantiation."""

    def test_creates_with_default_workers(self) -> None:
        """WorkerPool defaults to CPU count when no worker count specified."""
        pool = WorkerPool()
        assert pool.max_workers == cpu_core_count()

    def test_creates_with_specified_workers(self) -> None:
        """WorkerPool respects specified worker count."""
        pool = WorkerPool(max_workers=4)
        assert pool.max_workers == 4
        assert pool.config.max_workers == 4

    def test_from_config(self) -> None:
        """from_config creates pool using PoolConfig settings."""
        config = PoolConfig(max_workers=8, warmup=True)
        pool = WorkerPool.from_config(config)
        assert pool.max_workers == 8
        assert pool.config is config

    def test_explicit_max_workers_overrides_config(self) -> None:
        """Explicit max_workers parameter overrides config max_workers."""
        pool = WorkerPool(max_workers=2, config=PoolConfig(max_workers=8))
        assert pool.max_workers == 2

    def test_new_pool_is_empty(self) -> None:
        """No worker is started until asked for."""
        pool = WorkerPool(max_workers=4)
        assert pool.size == 0
        assert pool.workers == ()


class TestWorkerPoolEnsure:
    """Tests for WorkerPool.ensure."""

    def test_spawns_requested_workers(self, in_process_workers: InProcessWorkerFactory) -> None:
        """ensure(n) starts n workers."""
        pool = WorkerPool(max_workers=8)
        assert pool.ensure(3) == 3
        assert pool.size == 3
        assert pool.live_count == 3
        assert in_process_workers.attempts == 3

    def test_only_spawns_the_shortfall(self, in_process_workers: InProcessWorkerFactory) -> None:
        """Existing live workers are kept and counted."""
        pool = WorkerPool(max_workers=8)
        pool.ensure(2)
        first = pool.workers
        pool.ensure(4)
        assert pool.size == 4
        assert pool.workers[:2] == first
        assert in_process_workers.attempts == 4

    def test_smaller_request_keeps_pool(self, in_process_workers: InProcessWorkerFactory) -> None:
        """ensure never removes live workers."""
        pool = WorkerPool(max_workers=8)
        pool.ensure(4)
        assert pool.ensure(1) == 4
        assert in_process_workers.attempts == 4

    def test_caps_at_max_workers(self, in_process_workers: InProcessWorkerFactory) -> None:  # noqa: ARG002
        """Requests above max_workers are capped."""
        pool = WorkerPool(max_workers=2)
        assert pool.ensure(10) == 2

    def test_rejects_non_positive_request(self) -> None:
        """At least one worker must be requested."""
        pool = WorkerPool(max_workers=2)
        with pytest.raises(ValueError, match='at least 1'):
            pool.ensure(0)

    def test_spawn_failure_keeps_partial_pool(
        self,
        in_process_workers: InProcessWorkerFactory,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A refused spawn stops spawning and the pool carries on smaller."""
        in_process_workers.fail_on = {5}
        pool = WorkerPool(max_workers=8)

        with caplog.at_level(logging.WARNING, logger='corepool.parallel.pool'):
            assert pool.ensure(8) == 4

        assert pool.size == 4
        assert in_process_workers.attempts == 5
        assert 'Maintaining 4 worker(s) instead of 8' in caplog.text

    def test_spawn_failure_is_not_retried(self, in_process_workers: InProcessWorkerFactory) -> None:
        """Spawning stops at the first refusal within one call."""
        in_process_workers.fail_on = {2}
        pool = WorkerPool(max_workers=4)
        assert pool.ensure(4) == 1
        assert in_process_workers.attempts == 2

    def test_no_worker_at_all_raises(self, in_process_workers: InProcessWorkerFactory) -> None:
        """If even the first worker cannot start, SpawnError is raised."""
        in_process_workers.fail_on = {1}
        pool = WorkerPool(max_workers=4)
        with pytest.raises(SpawnError, match='Could not start any worker'):
            pool.ensure(2)
        assert pool.size == 0

    def test_dead_workers_are_replaced(
        self,
        in_process_workers: InProcessWorkerFactory,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Workers that died are dropped and replaced on the next ensure."""
        pool = WorkerPool(max_workers=4)
        pool.ensure(3)
        in_process_workers.created[1].crashed = True

        with caplog.at_level(logging.WARNING, logger='corepool.parallel.pool'):
            assert pool.ensure(3) == 3

        assert in_process_workers.created[1] not in pool.workers
        assert 'Dropping 1 dead worker(s)' in caplog.text

    def test_warmup_marks_pool_warmed(self, in_process_workers: InProcessWorkerFactory) -> None:  # noqa: ARG002
        """New workers are warmed up when the config asks for it."""
        pool = WorkerPool(config=PoolConfig(max_workers=2, warmup=True))
        pool.ensure(2)
        assert pool.is_warmed_up

    def test_no_warmup_by_default(self, in_process_workers: InProcessWorkerFactory) -> None:  # noqa: ARG002
        """Warmup is off unless configured."""
        pool = WorkerPool(max_workers=2)
        pool.ensure(2)
        assert not pool.is_warmed_up


class TestWorkerPoolResize:
    """Tests for WorkerPool.resize."""

    def test_growth_rebuilds_whole_pool(self, in_process_workers: InProcessWorkerFactory) -> None:
        """Growing terminates every existing worker and starts a fresh pool."""
        pool = WorkerPool(max_workers=8)
        pool.ensure(2)
        old = pool.workers

        assert pool.resize(5) == 5
        assert all(worker.terminated for worker in old)
        assert not set(old) & set(pool.workers)
        assert in_process_workers.attempts == 7

    def test_shrink_request_is_ignored(self, in_process_workers: InProcessWorkerFactory) -> None:
        """Asking for fewer workers leaves the pool untouched."""
        pool = WorkerPool(max_workers=8)
        pool.ensure(4)
        old = pool.workers

        assert pool.resize(2) == 4
        assert pool.workers == old
        assert in_process_workers.attempts == 4

    def test_equal_request_is_ignored(self, in_process_workers: InProcessWorkerFactory) -> None:  # noqa: ARG002
        """Asking for the current size changes nothing."""
        pool = WorkerPool(max_workers=8)
        pool.ensure(3)
        old = pool.workers
        pool.resize(3)
        assert pool.workers == old

    def test_snapshot_survives_resize(self, in_process_workers: InProcessWorkerFactory) -> None:  # noqa: ARG002
        """A workers snapshot taken before a resize is not mutated by it."""
        pool = WorkerPool(max_workers=8)
        pool.ensure(2)
        snapshot = pool.workers
        pool.resize(4)
        assert len(snapshot) == 2


class TestWorkerPoolTeardown:
    """Tests for WorkerPool.teardown."""

    def test_teardown_terminates_all(self, in_process_workers: InProcessWorkerFactory) -> None:
        """Every worker is terminated and the pool emptied."""
        pool = WorkerPool(max_workers=4)
        pool.ensure(3)
        pool.teardown()
        assert pool.size == 0
        assert all(worker.terminated for worker in in_process_workers.created)

    def test_teardown_twice_is_noop(self, in_process_workers: InProcessWorkerFactory) -> None:  # noqa: ARG002
        """Calling teardown on an empty pool is safe."""
        pool = WorkerPool(max_workers=4)
        pool.ensure(2)
        pool.teardown()
        pool.teardown()
        assert pool.size == 0

    def test_teardown_when_never_started_is_safe(self) -> None:
        """Tearing down a pool that never started does nothing."""
        pool = WorkerPool(max_workers=2)
        pool.teardown()
        assert pool.size == 0

    def test_context_manager_starts_and_stops(self, in_process_workers: InProcessWorkerFactory) -> None:
        """The context manager fills the pool and tears it down on exit."""
        with WorkerPool(max_workers=3) as pool:
            assert pool.size == 3
        assert pool.size == 0
        assert all(worker.terminated for worker in in_process_workers.created)
