"""Task dispatch across pool workers.

The Dispatcher places work item ``i`` on worker ``i % len(workers)``, issues
every item without waiting on other workers and hands back one Future per
item. Items that land on the same worker run one after another on that
worker, each waiting for exactly one reply.

Joining is all-or-nothing: ``gather`` waits for every Future, lets the tasks
that are still running finish, and then either returns every result in task
order or raises the failure of the lowest-indexed task that failed.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
import logging
from typing import TYPE_CHECKING, Any

from corepool.errors import TaskError
from corepool.parallel.aggregator import ResultAggregator
from corepool.parallel.distribution import DistributionStrategy, RoundRobinDistribution


if TYPE_CHECKING:
    from collections.abc import Sequence

    from corepool.parallel.serialization import WorkItem
    from corepool.parallel.worker import Worker


logger = logging.getLogger(__name__)


class Dispatcher:
    """Sends work items to a fixed set of workers and collects the outcomes.

    The worker set is captured at construction, so a pool that is rebuilt
    later does not affect a dispatch already in flight.

    Attributes:
        workers: The workers tasks are assigned to.
    """

    def __init__(self, workers: Sequence[Worker], strategy: DistributionStrategy | None = None) -> None:
        """Initialize the dispatcher.

        Args:
            workers: Workers to send tasks to.
            strategy: Spreads task indices over workers. Defaults to round-robin.

        Raises:
            ValueError: If no worker is given.
        """
        if not workers:
            msg = 'Dispatcher needs at least one worker'
            raise ValueError(msg)
        self._workers = tuple(workers)
        self._strategy: DistributionStrategy = strategy if strategy is not None else RoundRobinDistribution()
        self._executors: list[ThreadPoolExecutor] = []

    @property
    def workers(self) -> tuple[Worker, ...]:
        """Return the workers tasks are assigned to."""
        return self._workers

    def dispatch(self, items: Sequence[WorkItem]) -> list[Future[Any]]:
        """Send every item to its worker and return one Future per item.

        Args:
            items: Work items, in task order.

        Returns:
            Futures in the same order as ``items``. A Future fails with
            TaskError when its function raised in the worker.
        """
        futures: list[Future[Any]] = [Future() for _ in items]
        if not items:
            return futures

        buckets = self._strategy.distribute(list(range(len(items))), len(self._workers))
        queues = [(worker, indices) for worker, indices in zip(self._workers, buckets, strict=False) if indices]

        # Sender threads are joined in gather() once every Future has resolved.
        executor = ThreadPoolExecutor(max_workers=len(queues), thread_name_prefix='corepool-dispatch')
        self._executors.append(executor)
        for worker, indices in queues:
            batch = [(index, items[index]) for index in indices]
            executor.submit(self._serve, worker, batch, futures)

        logger.debug('Dispatched %d task(s) to %d worker(s)', len(items), len(queues))
        return futures

    @staticmethod
    def _serve(worker: Worker, batch: list[tuple[int, WorkItem]], futures: list[Future[Any]]) -> None:
        """Run a worker's share of the tasks in order, resolving their Futures."""
        for index, item in batch:
            future = futures[index]
            if not future.set_running_or_notify_cancel():
                continue
            try:
                reply = worker.request(item.to_message())
            except Exception as exc:
                future.set_exception(exc)
                continue

            if 'error' in reply:
                future.set_exception(TaskError(index, reply.get('error_type', 'Exception'), reply['error']))
            else:
                future.set_result(reply.get('result'))

    def gather(self, futures: Sequence[Future[Any]]) -> ResultAggregator:
        """Wait for every Future and collect the outcomes by task index.

        Args:
            futures: Futures returned by :meth:`dispatch`.

        Returns:
            A complete ResultAggregator. Call ``results()`` or ``flatten()`` on
            it to get the values or the first failure.
        """
        wait(futures)
        executors, self._executors = self._executors, []
        for executor in executors:
            executor.shutdown(wait=True)

        aggregator = ResultAggregator(len(futures))
        for index, future in enumerate(futures):
            error = future.exception()
            if error is not None:
                aggregator.set_error(index, error)
            else:
                aggregator.set_result(index, future.result())

        failed = aggregator.failed_indices
        if failed:
            logger.debug(
                '%d of %d task(s) failed %s, first: %s', len(failed), len(futures), failed, aggregator.first_error()
            )
        return aggregator

    def run(self, items: Sequence[WorkItem]) -> list[Any]:
        """Dispatch ``items``, wait for all of them and return results in order.

        Raises:
            TaskError: If any task raised in its worker.
            ExecutionError: If a worker could not be reached.
        """
        return self.gather(self.dispatch(items)).results()
