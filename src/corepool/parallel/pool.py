"""Worker pool manager.

The pool owns a set of persistent worker processes and keeps it sized to what
the caller asks for. Workers stay alive between runs, so each one pays the
interpreter startup cost once instead of once per task.

Lifecycle operations:
- ensure(n): start workers until n are live. If the operating system refuses
  to create a process, spawning stops and the pool carries on with the
  workers it has (at least one).
- resize(n): if n is larger than the current pool, the whole pool is torn down
  and rebuilt at size n. Smaller requests leave the pool alone, so its size
  never goes down except through teardown().
- teardown(): terminate every worker and empty the pool. Idempotent.

The worker list is replaced, never mutated in place, so a dispatch that took a
snapshot of ``workers`` keeps talking to the same workers for its whole run.

Workers are OS processes: a pool that is never torn down leaks them until the
interpreter exits.
"""

from __future__ import annotations

import logging
import multiprocessing  # noqa: TC003 - used at runtime for context
from typing import Self

from corepool.errors import SpawnError
from corepool.parallel.pool_config import PoolConfig
from corepool.parallel.worker import Worker


logger = logging.getLogger(__name__)


class WorkerPool:
    """Manages a set of persistent worker processes.

    Attributes:
        max_workers: Upper bound on the number of workers.
        size: Number of workers currently in the pool.
        config: The PoolConfig used to configure this pool.
        is_warmed_up: Whether every worker answered the last warmup round.

    Example:
        >>> config = PoolConfig(max_workers=4)
        >>> pool = WorkerPool.from_config(config)
        >>> pool.size
        0
        >>> with pool:  # doctest: +SKIP
        ...     pool.ensure(2)  # doctest: +SKIP
        2
    """

    def __init__(
        self,
        max_workers: int | None = None,
        *,
        config: PoolConfig | None = None,
    ) -> None:
        """Initialize the pool without starting any worker.

        Args:
            max_workers: Upper bound on the pool size. Defaults to CPU count.
            config: Optional PoolConfig. If provided, max_workers is taken from
                it unless explicitly given.
        """
        if config is not None:
            self._config = config
            self._max_workers = max_workers if max_workers is not None else config.max_workers
        elif max_workers is not None:
            self._config = PoolConfig(max_workers=max_workers)
            self._max_workers = max_workers
        else:
            self._config = PoolConfig()
            self._max_workers = self._config.max_workers

        self._mp_context: multiprocessing.context.BaseContext = self._config.get_mp_context()
        self._workers: tuple[Worker, ...] = ()
        self._next_worker_id = 0
        self._is_warmed_up = False

    @classmethod
    def from_config(cls, config: PoolConfig) -> Self:
        """Create a WorkerPool from a PoolConfig."""
        return cls(config=config)

    @property
    def max_workers(self) -> int:
        """Return the maximum number of workers."""
        return self._max_workers

    @property
    def config(self) -> PoolConfig:
        """Return the PoolConfig used by this pool."""
        return self._config

    @property
    def workers(self) -> tuple[Worker, ...]:
        """Return a snapshot of the current workers."""
        return self._workers

    @property
    def size(self) -> int:
        """Return the number of workers in the pool."""
        return len(self._workers)

    @property
    def live_count(self) -> int:
        """Return the number of workers whose process is running."""
        return sum(1 for worker in self._workers if worker.alive)

    @property
    def is_warmed_up(self) -> bool:
        """Return whether workers have been pre-warmed."""
        return self._is_warmed_up

    def __enter__(self) -> Self:
        """Enter context manager, starting up to max_workers workers."""
        self.ensure(self._max_workers)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit context manager, shutting down workers."""
        self.teardown()

    def _spawn_worker(self) -> Worker:
        worker = Worker(
            self._next_worker_id,
            self._mp_context,
            shutdown_timeout=self._config.shutdown_timeout,
        )
        self._next_worker_id += 1
        worker.start()
        return worker

    def ensure(self, num_workers: int) -> int:
        """Start workers until ``num_workers`` of them are live.

        Workers whose process has died are dropped first. Requests above
        max_workers are capped.

        Args:
            num_workers: Desired number of live workers.

        Returns:
            The number of live workers after spawning.

        Raises:
            ValueError: If num_workers is less than 1.
            SpawnError: If the pool is still empty after trying to spawn.
        """
        if num_workers < 1:
            msg = f'num_workers must be at least 1, got {num_workers}'
            raise ValueError(msg)

        target = min(num_workers, self._max_workers)
        workers = [worker for worker in self._workers if worker.alive]
        if len(workers) != len(self._workers):
            logger.warning('Dropping %d dead worker(s) from the pool', len(self._workers) - len(workers))

        spawned: list[Worker] = []
        while len(workers) + len(spawned) < target:
            try:
                spawned.append(self._spawn_worker())
            except OSError as exc:
                logger.warning(
                    'Maintaining %d worker(s) instead of %d due to resource limitation: %s',
                    len(workers) + len(spawned),
                    target,
                    exc,
                )
                break

        if spawned and self._config.warmup:
            self._warmup(spawned)

        self._workers = (*workers, *spawned)

        if not self._workers:
            msg = 'Could not start any worker process'
            raise SpawnError(msg)
        return len(self._workers)

    def resize(self, num_workers: int) -> int:
        """Rebuild the pool at ``num_workers`` when it is currently smaller.

        The existing workers are all terminated and a fresh pool is started;
        requests that do not exceed the current size change nothing.

        Args:
            num_workers: Required number of workers.

        Returns:
            The pool size after the call.
        """
        if num_workers <= self.size:
            return self.size

        logger.debug('Rebuilding pool: %d -> %d workers', self.size, num_workers)
        self.teardown()
        return self.ensure(num_workers)

    def teardown(self) -> None:
        """Terminate every worker and clear the pool. Safe to call repeatedly."""
        workers = self._workers
        self._workers = ()
        self._is_warmed_up = False
        for worker in workers:
            worker.terminate()

    def _warmup(self, workers: list[Worker]) -> None:
        """Round-trip a no-op task through each new worker."""
        answered = sum(1 for worker in workers if worker.warmup())
        self._is_warmed_up = answered == len(workers)
        if not self._is_warmed_up:
            logger.warning('Only %d of %d worker(s) answered warmup', answered, len(workers))
