"""Tests for work distribution strategies.

These tests verify that input is chunked contiguously and that tasks are
mapped onto workers round-robin.
"""

from __future__ import annotations

import math

import pytest

from corepool.parallel.distribution import (
    ContiguousDistribution,
    DistributionStrategy,
    RoundRobinDistribution,
    partition,
)


class TestPartition:
    """Tests for the partition function."""

    def test_empty_input_yields_no_chunks(self) -> None:
        """Empty data produces no chunks at all."""
        assert partition([], 4) == []

    def test_even_split(self) -> None:
        """Data that divides evenly gives equal chunks."""
        assert partition(list(range(1, 21)), 4) == [
            [1, 2, 3, 4, 5],
            [6, 7, 8, 9, 10],
            [11, 12, 13, 14, 15],
            [16, 17, 18, 19, 20],
        ]

    def test_last_chunk_may_be_shorter(self) -> None:
        """The final chunk carries the remainder."""
        assert partition([1, 2, 3, 4, 5], 2) == [[1, 2, 3], [4, 5]]

    def test_more_workers_than_items(self) -> None:
        """Each item gets its own chunk when workers outnumber items."""
        assert partition(['a', 'b'], 8) == [['a'], ['b']]

    def test_single_worker_gets_everything(self) -> None:
        """One worker gets the whole input as a single chunk."""
        assert partition([3, 1, 2], 1) == [[3, 1, 2]]

    def test_accepts_any_sequence(self) -> None:
        """Tuples and ranges are chunked into lists."""
        assert partition(range(4), 2) == [[0, 1], [2, 3]]
        assert partition(('x', 'y', 'z'), 3) == [['x'], ['y'], ['z']]

    def test_rejects_zero_workers(self) -> None:
        """num_workers must be at least one."""
        with pytest.raises(ValueError, match='num_workers must be at least 1'):
            partition([1, 2], 0)

    @pytest.mark.parametrize(('length', 'workers'), [(1, 1), (7, 3), (20, 4), (9, 4), (100, 7), (5, 16)])
    def test_chunk_sizes_and_coverage(self, length: int, workers: int) -> None:
        """Chunks are contiguous, non-empty, bounded by ceil(L/N) and cover the input."""
        data = list(range(length))
        chunks = partition(data, workers)
        chunk_size = math.ceil(length / workers)

        assert sum(len(chunk) for chunk in chunks) == length
        assert all(0 < len(chunk) <= chunk_size for chunk in chunks)
        assert all(len(chunk) == chunk_size for chunk in chunks[:-1])
        assert len(chunks) == math.ceil(length / chunk_size)
        assert [item for chunk in chunks for item in chunk] == data

    def test_flatten_of_mapped_chunks_equals_mapped_input(self) -> None:
        """Mapping each chunk then concatenating equals mapping the input."""
        data = list(range(1, 21))
        chunks = partition(data, 4)
        flattened = [x * 2 for chunk in chunks for x in chunk]
        assert flattened == [x * 2 for x in data]


class TestDistributionStrategyProtocol:
    """Tests for the DistributionStrategy protocol."""

    def test_contiguous_implements_protocol(self) -> None:
        """ContiguousDistribution implements DistributionStrategy protocol."""
        strategy: DistributionStrategy = ContiguousDistribution()
        assert hasattr(strategy, 'distribute')

    def test_round_robin_implements_protocol(self) -> None:
        """RoundRobinDistribution implements DistributionStrategy protocol."""
        strategy: DistributionStrategy = RoundRobinDistribution()
        assert hasattr(strategy, 'distribute')


class TestContiguousDistribution:
    """Tests for ContiguousDistribution strategy."""

    def test_matches_partition(self) -> None:
        """ContiguousDistribution delegates to partition."""
        data = list(range(10))
        assert ContiguousDistribution().distribute(data, num_workers=3) == partition(data, 3)


class TestRoundRobinDistribution:
    """Tests for RoundRobinDistribution strategy."""

    def test_assign_wraps_around(self) -> None:
        """Task i goes to worker i % num_workers."""
        assert RoundRobinDistribution().assign(7, num_workers=3) == [0, 1, 2, 0, 1, 2, 0]

    def test_assign_one_task_per_worker(self) -> None:
        """With as many tasks as workers, each worker gets exactly one."""
        assert RoundRobinDistribution().assign(4, num_workers=4) == [0, 1, 2, 3]

    def test_assign_no_tasks(self) -> None:
        """No tasks means no assignments."""
        assert RoundRobinDistribution().assign(0, num_workers=4) == []

    def test_assign_rejects_zero_workers(self) -> None:
        """num_workers must be at least one."""
        with pytest.raises(ValueError, match='num_workers must be at least 1'):
            RoundRobinDistribution().assign(3, num_workers=0)

    def test_empty_items_returns_empty_buckets(self) -> None:
        """Distributing empty list returns empty buckets for each worker."""
        assert RoundRobinDistribution().distribute([], num_workers=3) == [[], [], []]

    def test_handles_uneven_distribution(self) -> None:
        """Handles case where items don't divide evenly."""
        result = RoundRobinDistribution().distribute(list(range(5)), num_workers=3)
        assert result == [[0, 3], [1, 4], [2]]
