"""Configuration loading for corepool.

This module reads configuration from the pyproject.toml [tool.corepool]
section and provides sensible defaults when configuration is absent.

Example pyproject.toml section::

    [tool.corepool]
    max_workers = 8
    default_power = 70
    start_method = "forkserver"
    warmup = true
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import tomllib
from typing import TYPE_CHECKING, Any

from corepool.errors import ConfigurationError
from corepool.parallel.pool_config import PoolConfig, cpu_core_count


if TYPE_CHECKING:
    from pathlib import Path


DEFAULT_POWER = 70


@dataclass(frozen=True)
class EngineConfig:
    """Configuration for an Engine.

    Fields left as None fall back to built-in defaults when the pool
    configuration is built.

    Attributes:
        max_workers: Number of cores the engine may use. Defaults to CPU count.
        default_power: Percentage of max_workers used when a run gives none.
        start_method: Process start method for workers.
        warmup: Whether new workers are warmed up with a no-op task.
        shutdown_timeout: Seconds a worker gets to exit before being killed.
    """

    max_workers: int | None = None
    default_power: int = DEFAULT_POWER
    start_method: str | None = None
    warmup: bool | None = None
    shutdown_timeout: float | None = None

    def __post_init__(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If default_power is outside 0-100.
        """
        if isinstance(self.default_power, bool) or not isinstance(self.default_power, int | float):
            msg = f'default_power must be a number, got {self.default_power!r}'
            raise ConfigurationError(msg)
        if not 0 <= self.default_power <= 100:  # noqa: PLR2004
            msg = f'default_power must be between 0 and 100, got {self.default_power}'
            raise ConfigurationError(msg)

    @property
    def max_processes(self) -> int:
        """Return the effective core count."""
        return self.max_workers if self.max_workers is not None else cpu_core_count()

    def pool_config(self) -> PoolConfig:
        """Build the PoolConfig for the engine's worker pool.

        Raises:
            ConfigurationError: If a pool setting is invalid.
        """
        options: dict[str, Any] = {'max_workers': self.max_processes}
        if self.start_method is not None:
            options['start_method'] = self.start_method
        if self.warmup is not None:
            options['warmup'] = self.warmup
        if self.shutdown_timeout is not None:
            options['shutdown_timeout'] = self.shutdown_timeout
        try:
            return PoolConfig(**options)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc


def load_config(rootdir: Path) -> EngineConfig:
    """Load configuration from pyproject.toml.

    Reads the [tool.corepool] section from pyproject.toml in the given
    directory. Returns default configuration if the file or section does not
    exist. Unknown keys are rejected.

    Args:
        rootdir: Directory containing pyproject.toml.

    Returns:
        EngineConfig with values from pyproject.toml or defaults.

    Raises:
        ConfigurationError: If the section contains unknown keys or bad values.
    """
    pyproject_path = rootdir / 'pyproject.toml'

    if not pyproject_path.exists():
        return EngineConfig()

    with pyproject_path.open('rb') as f:
        data = tomllib.load(f)

    tool_config = data.get('tool', {}).get('corepool', {})

    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(tool_config) - known)
    if unknown:
        msg = f'Unknown [tool.corepool] option(s): {", ".join(unknown)}'
        raise ConfigurationError(msg)

    return EngineConfig(**tool_config)


def merge_configs(file_config: EngineConfig, **overrides: Any) -> EngineConfig:
    """Merge explicit settings with file configuration.

    Explicit values take precedence over pyproject.toml configuration.
    Overrides given as None are treated as not provided.

    Args:
        file_config: Configuration loaded from pyproject.toml.
        **overrides: EngineConfig fields to override.

    Returns:
        EngineConfig with explicit values overriding file config where provided.

    Raises:
        ConfigurationError: If an override names an unknown option.
    """
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        msg = f'Unknown engine option(s): {", ".join(unknown)}'
        raise ConfigurationError(msg)

    provided = {key: value for key, value in overrides.items() if value is not None}
    return replace(file_config, **provided)
