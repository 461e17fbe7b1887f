"""corepool: spread CPU-bound work across persistent worker processes.

A caller hands over a module-level function and, for data-parallel runs, a
sequence of inputs; corepool runs it on several worker processes at once and
returns the results together with run statistics.

Example:
    Double every item using all cores::

        from corepool import create_engine

        def double_all(chunk):
            return [x * 2 for x in chunk]

        with create_engine() as engine:
            result = engine.run(double_all, type='extended', data=range(100), power=100)
            print(result.data, result.stats)
"""

from __future__ import annotations

from corepool.config import EngineConfig, load_config
from corepool.engine import Engine, ExecutionResult, ExecutionType, calculate_num_processes, create_engine
from corepool.errors import ConfigurationError, EngineError, ExecutionError, SpawnError, TaskError
from corepool.stats import Stats, format_bytes


__version__ = '1.0.0'
__all__ = [
    'ConfigurationError',
    'Engine',
    'EngineConfig',
    'EngineError',
    'ExecutionError',
    'ExecutionResult',
    'ExecutionType',
    'SpawnError',
    'Stats',
    'TaskError',
    '__version__',
    'calculate_num_processes',
    'create_engine',
    'format_bytes',
    'load_config',
]
