"""Execution statistics.

Stats are a diagnostic side channel: wall-clock duration, number of workers
used, number of items processed and the change in available system memory
over a run. Figures are best effort. Memory is sampled system-wide, so other
processes show up in the delta, which may be negative; no clamping is done.
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Any, Self

import psutil


BYTE_UNITS: tuple[str, ...] = ('Bytes', 'KB', 'MB', 'GB', 'TB')
KILOBYTE = 1024


def format_bytes(num_bytes: float) -> str:
    """Format a byte count as a human-readable base-1024 magnitude.

    Whole scaled values are printed without decimals, others with two.
    Negative values keep their sign; values past TB stay in TB.

    Args:
        num_bytes: The byte count.

    Returns:
        A string such as ``'512 Bytes'``, ``'1.50 KB'`` or ``'-2 MB'``.

    Example:
        >>> format_bytes(0)
        '0 Bytes'
        >>> format_bytes(1024)
        '1 KB'
        >>> format_bytes(1536)
        '1.50 KB'
        >>> format_bytes(-3 * 1024 * 1024)
        '-3 MB'
    """
    if num_bytes == 0:
        return '0 Bytes'

    sign = '-' if num_bytes < 0 else ''
    magnitude = abs(num_bytes)
    index = 0
    while index < len(BYTE_UNITS) - 1 and magnitude >= KILOBYTE ** (index + 1):
        index += 1

    scaled = magnitude / KILOBYTE**index
    text = f'{scaled:.0f}' if scaled % 1 == 0 else f'{scaled:.2f}'
    return f'{sign}{text} {BYTE_UNITS[index]}'


def available_memory() -> int:
    """Return the memory available to new processes, in bytes."""
    return psutil.virtual_memory().available


def current_memory_usage() -> float:
    """Return the share of system memory in use, as a percentage."""
    return psutil.virtual_memory().percent


def current_cpu_load() -> float:
    """Return the one-minute system load average."""
    return psutil.getloadavg()[0]


@dataclass(frozen=True)
class Stats:
    """Statistics for one run.

    Attributes:
        time_taken_seconds: Wall-clock duration of the run.
        num_processes_used: Number of workers the run was spread over.
        data_processed: Logical items processed (workers for simple runs,
            input length for extended runs).
        memory_used: Change in available memory, formatted by format_bytes.
        memory_used_bytes: The same change as a raw byte count.
    """

    time_taken_seconds: float
    num_processes_used: int
    data_processed: int
    memory_used: str
    memory_used_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return the stats keyed the way they are reported to callers."""
        return {
            'timeTakenSeconds': self.time_taken_seconds,
            'numProcessesUsed': self.num_processes_used,
            'dataProcessed': self.data_processed,
            'memoryUsed': self.memory_used,
        }


class StatsCollector:
    """Measures time and memory around an operation.

    Example:
        >>> collector = StatsCollector.start()
        >>> stats = collector.finish(num_processes=4, data_length=20)
        >>> stats.num_processes_used, stats.data_processed
        (4, 20)
    """

    def __init__(self) -> None:
        self._start_time: float | None = None
        self._initial_memory = 0

    @classmethod
    def start(cls) -> Self:
        """Create a collector and take the starting measurements."""
        collector = cls()
        collector.restart()
        return collector

    def restart(self) -> None:
        """Take the starting measurements again."""
        self._initial_memory = available_memory()
        self._start_time = time.monotonic()

    def finish(self, num_processes: int, data_length: int) -> Stats:
        """Take the closing measurements and build the Stats.

        Args:
            num_processes: Number of workers the run used.
            data_length: Number of logical items processed.

        Raises:
            RuntimeError: If the collector was never started.
        """
        if self._start_time is None:
            msg = 'StatsCollector.finish() called before start()'
            raise RuntimeError(msg)

        duration = time.monotonic() - self._start_time
        memory_delta = self._initial_memory - available_memory()
        return Stats(
            time_taken_seconds=duration,
            num_processes_used=num_processes,
            data_processed=data_length,
            memory_used=format_bytes(memory_delta),
            memory_used_bytes=memory_delta,
        )
