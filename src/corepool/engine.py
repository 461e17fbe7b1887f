"""Execution façade.

``Engine.run`` is the single entry point. It validates a request, sizes the
worker pool for the requested power, picks the simple or extended strategy
and returns the results together with run statistics.

- simple: the function runs once per worker with no arguments. Each worker
  computes independently, so a randomized function gives one independent
  result per worker.
- extended: the input is split into contiguous chunks, one per worker, the
  function is applied to each chunk and the per-chunk outputs are
  concatenated in chunk order.

Every engine owns its own pool. Workers are OS processes: call
``teardown()`` (or use the engine as a context manager) when done, or they
stay around until the interpreter exits.

Example:
    >>> from corepool import create_engine
    >>> with create_engine(max_workers=4) as engine:  # doctest: +SKIP
    ...     result = engine.run(double_all, type='extended', data=range(1, 21), power=100)
    ...     result.data[:3]
    [2, 4, 6]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import math
import threading
from typing import TYPE_CHECKING, Any, Self

from corepool.config import EngineConfig, load_config, merge_configs
from corepool.errors import ConfigurationError, EngineError, ExecutionError, TaskError
from corepool.parallel.dispatcher import Dispatcher
from corepool.parallel.distribution import ContiguousDistribution
from corepool.parallel.pool import WorkerPool
from corepool.parallel.serialization import WorkItem, serialize_function
from corepool.stats import Stats, StatsCollector


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from pathlib import Path

    from corepool.parallel.worker import Worker


logger = logging.getLogger(__name__)


class ExecutionType(Enum):
    """Execution strategies.

    Attributes:
        SIMPLE: Run a no-argument function once per worker.
        EXTENDED: Split input data across workers and map the function over the chunks.
    """

    SIMPLE = 'simple'
    EXTENDED = 'extended'

    @classmethod
    def parse(cls, value: ExecutionType | str) -> ExecutionType:
        """Return the ExecutionType for ``value``.

        Raises:
            ConfigurationError: If ``value`` names no execution type.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ', '.join(repr(member.value) for member in cls)
            msg = f'Invalid execution type specified: {value!r}. Valid types are {valid}.'
            raise ConfigurationError(msg) from None


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a run.

    Attributes:
        data: One result per worker (simple) or the flattened per-chunk
            results in input order (extended).
        stats: Statistics for the run.
    """

    data: list[Any]
    stats: Stats

    def to_dict(self) -> dict[str, Any]:
        """Return ``{'data': ..., 'stats': ...}``."""
        return {'data': self.data, 'stats': self.stats.to_dict()}


def calculate_num_processes(power: float, max_processes: int) -> int:
    """Convert a power percentage into a worker count.

    The count is ``max(round(max_processes * power / 100), 1)`` with halves
    rounded up; power is clamped to 0-100.

    Example:
        >>> calculate_num_processes(0, 8)
        1
        >>> calculate_num_processes(100, 8)
        8
        >>> calculate_num_processes(70, 8)
        6
        >>> calculate_num_processes(50, 5)
        3
    """
    percentage = min(max(power, 0), 100) / 100
    return max(math.floor(max_processes * percentage + 0.5), 1)


class Engine:
    """Runs functions in parallel on a pool of worker processes.

    Calls to ``run`` on one engine are serialized, so a pool resize never
    happens while another run on the same engine is dispatching.

    Attributes:
        config: The EngineConfig of this engine.
        max_processes: Number of cores the engine may use.
        pool: The engine's WorkerPool.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        """Initialize the engine without starting workers.

        Args:
            config: Engine configuration. Defaults to EngineConfig().
        """
        self._config = config if config is not None else EngineConfig()
        self._pool = WorkerPool.from_config(self._config.pool_config())
        self._run_lock = threading.Lock()

    @property
    def config(self) -> EngineConfig:
        """Return the engine configuration."""
        return self._config

    @property
    def max_processes(self) -> int:
        """Return the number of cores the engine may use."""
        return self._config.max_processes

    @property
    def pool(self) -> WorkerPool:
        """Return the engine's worker pool."""
        return self._pool

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.teardown()

    def start(self) -> Self:
        """Start workers for every available core ahead of the first run."""
        with self._run_lock:
            self._pool.ensure(self.max_processes)
        return self

    def run(
        self,
        func: Callable[..., Any],
        *,
        type: ExecutionType | str = ExecutionType.SIMPLE,  # noqa: A002
        data: Iterable[Any] | None = None,
        args: Mapping[str, Any] | None = None,
        power: float | None = None,
    ) -> ExecutionResult:
        """Execute ``func`` across worker processes.

        Args:
            func: A module-level, closure-free function. In simple mode it is
                called with no arguments; in extended mode with one chunk
                (a list), or with ``{'data': chunk, 'args': args}`` when
                ``args`` is non-empty.
            type: 'simple' or 'extended'.
            data: Input items; required and non-empty for extended, must be
                empty or absent for simple.
            args: Extra named values sent along with every chunk (extended).
            power: Percentage of max_processes to use. Defaults to the
                configured default_power.

        Returns:
            ExecutionResult with the data and the run statistics.

        Raises:
            ConfigurationError: If the request is invalid. The pool is not touched.
            SpawnError: If no worker process could be started.
            TaskError: If ``func`` raised in any worker. No partial data is returned.
            ExecutionError: If dispatching failed for any other reason.
        """
        execution_type = ExecutionType.parse(type)
        try:
            items = list(data) if data is not None else []
        except TypeError as exc:
            msg = f"'data' must be an iterable of items, got {data.__class__.__name__}"
            raise ConfigurationError(msg) from exc
        extra = dict(args) if args else {}

        if execution_type is ExecutionType.SIMPLE and items:
            msg = (
                "Simple execution type should not include 'data'. "
                "Please ensure 'data' is empty or not provided for simple tasks."
            )
            raise ConfigurationError(msg)
        if execution_type is ExecutionType.EXTENDED and not items:
            msg = "Extended execution type requires a non-empty 'data' sequence."
            raise ConfigurationError(msg)
        if not callable(func):
            msg = f"For {execution_type.value!r} execution type, 'func' must be a callable."
            raise ConfigurationError(msg)

        payload = serialize_function(func)
        num_processes = calculate_num_processes(self._resolve_power(power), self.max_processes)

        with self._run_lock:
            # Spawn at most once per run; refused spawns are not retried.
            if num_processes > self._pool.size:
                self._pool.resize(num_processes)
            else:
                self._pool.ensure(num_processes)
            workers = self._pool.workers[:num_processes]

            collector = StatsCollector.start()
            try:
                if execution_type is ExecutionType.SIMPLE:
                    output = self._run_simple(payload, workers)
                    stats = collector.finish(len(workers), len(output))
                else:
                    output = self._run_extended(payload, items, extra, workers)
                    stats = collector.finish(len(workers), len(items))
            except TaskError as exc:
                logger.error(
                    'Error executing %r type with function %s: %s',
                    execution_type.value,
                    getattr(func, '__name__', 'anonymous'),
                    exc,
                )
                raise
            except EngineError:
                logger.exception('Error during %r execution', execution_type.value)
                raise
            except Exception as exc:
                logger.exception('Unexpected error during %r execution', execution_type.value)
                msg = f'Execution of {payload!r} failed: {exc}'
                raise ExecutionError(msg) from exc

        return ExecutionResult(data=output, stats=stats)

    def _resolve_power(self, power: float | None) -> float:
        if power is None:
            return self._config.default_power
        if isinstance(power, bool) or not isinstance(power, int | float) or math.isnan(power):
            msg = f"'power' must be a number between 0 and 100, got {power!r}"
            raise ConfigurationError(msg)
        return power

    @staticmethod
    def _run_simple(payload: str, workers: tuple[Worker, ...]) -> list[Any]:
        tasks = [WorkItem(payload=payload, args=[]) for _ in workers]
        return Dispatcher(workers).run(tasks)

    @staticmethod
    def _run_extended(
        payload: str,
        items: list[Any],
        extra: dict[str, Any],
        workers: tuple[Worker, ...],
    ) -> list[Any]:
        tasks = [
            WorkItem(payload=payload, args={'data': chunk, 'args': extra} if extra else [chunk])
            for chunk in ContiguousDistribution().distribute(items, len(workers))
        ]
        dispatcher = Dispatcher(workers)
        return dispatcher.gather(dispatcher.dispatch(tasks)).flatten()

    def teardown(self) -> None:
        """Terminate every worker. Safe to call more than once."""
        self._pool.teardown()

    kill = teardown


def create_engine(
    config: EngineConfig | None = None,
    *,
    rootdir: Path | None = None,
    start: bool = True,
    **overrides: Any,
) -> Engine:
    """Create an Engine, optionally reading [tool.corepool] from pyproject.toml.

    Args:
        config: Base configuration. Takes precedence over ``rootdir``.
        rootdir: Directory whose pyproject.toml provides the base configuration.
        start: Start one worker per core right away.
        **overrides: EngineConfig fields overriding the base configuration.

    Returns:
        A new Engine with its own worker pool.
    """
    if config is None:
        config = load_config(rootdir) if rootdir is not None else EngineConfig()
    engine = Engine(merge_configs(config, **overrides))
    if start:
        engine.start()
    return engine
