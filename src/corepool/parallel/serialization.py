"""Function-as-data serialization for the worker boundary.

Workers share no memory with the caller, so the function to run has to travel
as data. Rather than shipping source text and evaluating it, a function is
sent as a textual reference ``"<module>:<qualname>"`` and looked up again on
the worker side. Only module-level callables that the worker can import
qualify, which makes the set of runnable code exactly the set of code already
installed where the worker runs.

Example:
    >>> import math
    >>> serialize_function(math.factorial)
    'math:factorial'
    >>> deserialize_function('math:factorial')(5)
    120
"""

from __future__ import annotations

from dataclasses import dataclass
import importlib
import inspect
import sys
from typing import TYPE_CHECKING, Any

from corepool.errors import ConfigurationError


if TYPE_CHECKING:
    from collections.abc import Callable


REF_SEPARATOR = ':'


def serialize_function(func: Callable[..., Any]) -> str:
    """Return the textual reference a worker uses to rebuild ``func``.

    Args:
        func: A module-level function or other importable callable.

    Returns:
        The reference string ``"<module>:<qualname>"``.

    Raises:
        ConfigurationError: If ``func`` is not callable or cannot be
            reconstructed from its reference (lambdas, nested functions,
            closures, bound methods of instances).
    """
    if not callable(func):
        msg = f"'func' must be a callable, got {type(func).__name__}"
        raise ConfigurationError(msg)

    module = getattr(func, '__module__', None)
    qualname = getattr(func, '__qualname__', None)
    if not module or not qualname:
        msg = f'Cannot serialize {func!r}: it has no module-level name'
        raise ConfigurationError(msg)

    if '<lambda>' in qualname or '<locals>' in qualname:
        msg = f'Cannot serialize {qualname!r}: lambdas and nested functions are not importable by workers'
        raise ConfigurationError(msg)

    if getattr(func, '__closure__', None):
        msg = f'Cannot serialize {qualname!r}: functions with closures are not supported'
        raise ConfigurationError(msg)

    owner = getattr(func, '__self__', None)
    if owner is not None and not isinstance(owner, type) and not inspect.ismodule(owner):
        msg = f'Cannot serialize {qualname!r}: bound methods of instances are not supported'
        raise ConfigurationError(msg)

    ref = f'{module}{REF_SEPARATOR}{qualname}'
    try:
        resolved = deserialize_function(ref)
    except ConfigurationError:
        msg = f'Cannot serialize {qualname!r}: it is not reachable as {ref!r}'
        raise ConfigurationError(msg) from None
    if resolved != func:
        msg = f'Cannot serialize {qualname!r}: {ref!r} resolves to a different object'
        raise ConfigurationError(msg)
    return ref


def deserialize_function(ref: str) -> Callable[..., Any]:
    """Resolve a reference produced by :func:`serialize_function`.

    Args:
        ref: The ``"<module>:<qualname>"`` reference.

    Returns:
        The callable the reference names.

    Raises:
        ConfigurationError: If the reference is malformed or does not resolve
            to a callable.
    """
    module_name, sep, qualname = ref.partition(REF_SEPARATOR)
    if not sep or not module_name or not qualname:
        msg = f'Malformed function reference: {ref!r}'
        raise ConfigurationError(msg)

    module = sys.modules.get(module_name)
    if module is None:
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            msg = f'Cannot import module {module_name!r} for {ref!r}: {exc}'
            raise ConfigurationError(msg) from exc

    target: Any = module
    for part in qualname.split('.'):
        try:
            target = getattr(target, part)
        except AttributeError:
            msg = f'{module_name!r} has no attribute path {qualname!r}'
            raise ConfigurationError(msg) from None

    if not callable(target):
        msg = f'{ref!r} does not name a callable'
        raise ConfigurationError(msg)
    return target


@dataclass(frozen=True)
class WorkItem:
    """A unit of work addressed to one worker.

    Attributes:
        payload: The function reference from :func:`serialize_function`.
        args: Either a list of positional arguments, or a structured
            ``{'data': chunk, 'args': extra}`` mapping passed as the single
            argument.
    """

    payload: str
    args: list[Any] | dict[str, Any]

    @classmethod
    def for_call(cls, func: Callable[..., Any], args: list[Any] | dict[str, Any] | None = None) -> WorkItem:
        """Build a WorkItem by serializing ``func``."""
        return cls(payload=serialize_function(func), args=args if args is not None else [])

    def to_message(self) -> dict[str, Any]:
        """Return the wire message sent over the worker pipe."""
        return {'func': self.payload, 'args': self.args}
