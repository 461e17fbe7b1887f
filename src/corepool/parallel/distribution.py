"""Work distribution strategies for parallel execution.

Two concerns live here:

- Splitting bulk input into contiguous chunks, one per worker, for
  data-parallel runs (``partition`` / ``ContiguousDistribution``).
- Mapping task indices onto workers (``RoundRobinDistribution``).
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Protocol


if TYPE_CHECKING:
    from collections.abc import Sequence


def partition(data: Sequence[Any], num_workers: int) -> list[list[Any]]:
    """Split ``data`` into contiguous chunks of ``ceil(len(data) / num_workers)``.

    The last chunk may be shorter. No chunk is empty, so fewer than
    ``num_workers`` chunks come back when the data is short.

    Args:
        data: The input sequence.
        num_workers: Number of workers the data is spread over.

    Returns:
        The chunks, in input order. Empty input gives an empty list.

    Raises:
        ValueError: If num_workers is less than 1.

    Example:
        >>> partition([1, 2, 3, 4, 5], 2)
        [[1, 2, 3], [4, 5]]
        >>> partition([1, 2, 3, 4, 5, 6, 7, 8, 9], 4)
        [[1, 2, 3], [4, 5, 6], [7, 8, 9]]
    """
    if num_workers < 1:
        msg = f'num_workers must be at least 1, got {num_workers}'
        raise ValueError(msg)

    items = list(data)
    if not items:
        return []

    chunk_size = math.ceil(len(items) / num_workers)
    return [items[i : i + chunk_size] for i in range(0, len(items), chunk_size)]


class DistributionStrategy(Protocol):
    """Protocol for data distribution strategies.

    Implementations split input into per-worker buckets.
    """

    def distribute(self, data: Sequence[Any], num_workers: int) -> list[list[Any]]:
        """Split data across workers.

        Args:
            data: Items to distribute.
            num_workers: Number of worker processes.

        Returns:
            Buckets of items, one per task.
        """
        ...


class ContiguousDistribution:
    """Contiguous chunking: bucket ``i`` holds a run of adjacent items.

    Concatenating the buckets in order gives back the input, which is what
    lets data-parallel runs reassemble their output in input order.

    Example:
        >>> ContiguousDistribution().distribute(list(range(7)), num_workers=3)
        [[0, 1, 2], [3, 4, 5], [6]]
    """

    def distribute(self, data: Sequence[Any], num_workers: int) -> list[list[Any]]:
        """Split data into contiguous chunks."""
        return partition(data, num_workers)


class RoundRobinDistribution:
    """Simple round-robin distribution strategy.

    Assigns item N to worker N % num_workers. Fast and deterministic,
    but doesn't account for varying execution times.

    Example:
        >>> RoundRobinDistribution().distribute(['a', 'b', 'c', 'd', 'e'], num_workers=3)
        [['a', 'd'], ['b', 'e'], ['c']]
        >>> RoundRobinDistribution().assign(5, num_workers=3)
        [0, 1, 2, 0, 1]
    """

    def assign(self, num_tasks: int, num_workers: int) -> list[int]:
        """Return the worker index for each task index.

        Args:
            num_tasks: Number of tasks to place.
            num_workers: Number of workers available.

        Returns:
            A list whose entry ``i`` is the worker for task ``i``.

        Raises:
            ValueError: If num_workers is less than 1.
        """
        if num_workers < 1:
            msg = f'num_workers must be at least 1, got {num_workers}'
            raise ValueError(msg)
        return [i % num_workers for i in range(num_tasks)]

    def distribute(self, data: Sequence[Any], num_workers: int) -> list[list[Any]]:
        """Distribute items round-robin across workers.

        Args:
            data: Items to distribute.
            num_workers: Number of worker processes.

        Returns:
            List of num_workers buckets with items distributed round-robin.
        """
        buckets: list[list[Any]] = [[] for _ in range(num_workers)]

        for item, worker_idx in zip(data, self.assign(len(data), num_workers), strict=True):
            buckets[worker_idx].append(item)

        return buckets
