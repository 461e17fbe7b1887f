"""Persistent worker processes.

Each worker is a separate OS process connected to the caller by a duplex
pipe. It stays alive between tasks: it waits for a message, rebuilds the
function from its reference, runs it and replies with exactly one message.

Wire format:
- request: ``{'func': '<module>:<qualname>', 'args': [...] | {'data': ..., 'args': ...}}``
- reply: ``{'result': value}`` or ``{'error': message, 'error_type': name}``
- ``None`` asks the worker to exit.

A failing task is reported back and the worker keeps serving; only a closed
pipe or the ``None`` sentinel ends the loop.

Note: Messages travel through multiprocessing connections, which pickle them.
Requests only ever contain a function reference plus the caller's own data,
and replies come from our own worker processes.
"""

from __future__ import annotations

import logging
import pickle
import signal
import threading
from typing import TYPE_CHECKING, Any

from corepool.errors import ExecutionError
from corepool.parallel.serialization import deserialize_function


if TYPE_CHECKING:
    import multiprocessing.context
    import multiprocessing.process
    from multiprocessing.connection import Connection


logger = logging.getLogger(__name__)

STOP_SENTINEL = None


def _warmup_noop() -> bool:  # pragma: no cover
    """No-op function for worker warmup.

    Returns:
        True to indicate successful warmup.
    """
    return True


WARMUP_MESSAGE: dict[str, Any] = {'func': f'{__name__}:_warmup_noop', 'args': []}


def execute_message(message: dict[str, Any]) -> dict[str, Any]:
    """Run the task described by ``message`` and build the reply.

    A list of arguments is spread positionally; a mapping is passed whole as
    the only argument.

    Args:
        message: A request as produced by ``WorkItem.to_message()``.

    Returns:
        ``{'result': value}`` on success, ``{'error': ..., 'error_type': ...}``
        when rebuilding or running the function raised.
    """
    try:
        func = deserialize_function(message['func'])
        args = message.get('args', [])
        result = func(*args) if isinstance(args, (list, tuple)) else func(args)
    except Exception as exc:
        return {'error': str(exc), 'error_type': type(exc).__name__}
    return {'result': result}


def worker_main(conn: Connection) -> None:  # pragma: no cover
    """Entry point of a worker process.

    Serves requests from ``conn`` until the sentinel arrives or the pipe closes.
    """
    # Ctrl-C is handled by the parent, which tears the pool down.
    signal.signal(signal.SIGINT, signal.SIG_IGN)

    while True:
        try:
            message = conn.recv()
        except (EOFError, OSError):
            break

        if message is STOP_SENTINEL:
            break

        reply = execute_message(message)
        try:
            conn.send(reply)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            conn.send({'error': f'Result could not be sent back: {exc}', 'error_type': type(exc).__name__})
        except (BrokenPipeError, OSError):
            break

    conn.close()


class Worker:
    """Handle to one persistent worker process.

    Lifecycle: created -> started (ready) -> any number of request/reply
    round trips -> terminated. A terminated worker is never restarted.

    Attributes:
        worker_id: Position-independent identifier of this worker.
        alive: Whether the process is running and not terminated.

    Example:
        >>> import multiprocessing
        >>> worker = Worker(0, multiprocessing.get_context('spawn'))  # doctest: +SKIP
        >>> worker.start()  # doctest: +SKIP
        >>> worker.request({'func': 'math:factorial', 'args': [5]})  # doctest: +SKIP
        {'result': 120}
        >>> worker.terminate()  # doctest: +SKIP
    """

    def __init__(
        self,
        worker_id: int,
        mp_context: multiprocessing.context.BaseContext,
        shutdown_timeout: float = 1.0,
    ) -> None:
        self._worker_id = worker_id
        self._mp_context = mp_context
        self._shutdown_timeout = shutdown_timeout
        self._process: multiprocessing.process.BaseProcess | None = None
        self._conn: Connection | None = None
        self._lock = threading.Lock()
        self._terminated = False

    def __repr__(self) -> str:
        pid = self._process.pid if self._process is not None else None
        return f'Worker(id={self._worker_id}, pid={pid}, alive={self.alive})'

    @property
    def worker_id(self) -> int:
        """Return the worker identifier."""
        return self._worker_id

    @property
    def pid(self) -> int | None:
        """Return the OS process id, or None before start."""
        return self._process.pid if self._process is not None else None

    @property
    def alive(self) -> bool:
        """Return whether the worker process is running."""
        if self._terminated or self._process is None:
            return False
        return self._process.is_alive()

    def start(self) -> None:
        """Start the worker process.

        Raises:
            RuntimeError: If the worker was already started or terminated.
            OSError: If the operating system refuses to create the process.
        """
        if self._process is not None or self._terminated:
            msg = f'Worker {self._worker_id} cannot be started twice'
            raise RuntimeError(msg)

        parent_conn, child_conn = self._mp_context.Pipe(duplex=True)
        process = self._mp_context.Process(
            target=worker_main,
            args=(child_conn,),
            name=f'corepool-worker-{self._worker_id}',
            daemon=True,
        )
        try:
            process.start()
        except BaseException:
            parent_conn.close()
            child_conn.close()
            raise
        # The child owns its end now; keeping ours open would hide EOF.
        child_conn.close()

        self._process = process
        self._conn = parent_conn
        logger.debug('Started worker %d (pid %s)', self._worker_id, process.pid)

    def request(self, message: dict[str, Any]) -> dict[str, Any]:
        """Send one request and wait for its single reply.

        Concurrent callers are serialized so every request is paired with its
        own reply.

        Args:
            message: The request message.

        Returns:
            The worker's reply message.

        Raises:
            ExecutionError: If the worker is not running or dies before replying.
        """
        with self._lock:
            if not self.alive or self._conn is None:
                msg = f'Worker {self._worker_id} is not running'
                raise ExecutionError(msg)
            try:
                self._conn.send(message)
                return self._conn.recv()
            except (EOFError, OSError) as exc:
                msg = f'Worker {self._worker_id} exited before replying'
                raise ExecutionError(msg) from exc

    def warmup(self) -> bool:
        """Round-trip a no-op task; return True when the worker answered."""
        try:
            reply = self.request(WARMUP_MESSAGE)
        except ExecutionError:
            return False
        return reply.get('result') is True

    def terminate(self) -> None:
        """Stop the worker process. Safe to call more than once.

        Asks the worker to exit, then escalates to SIGTERM and SIGKILL if it
        does not go away within the shutdown timeout. Requests still in flight
        fail with ExecutionError.
        """
        if self._terminated:
            return
        self._terminated = True

        conn = self._conn
        process = self._process
        self._conn = None

        if conn is not None:
            try:
                conn.send(STOP_SENTINEL)
            except (BrokenPipeError, OSError):
                pass
            conn.close()

        if process is None:
            return

        process.join(timeout=self._shutdown_timeout)
        if process.is_alive():
            logger.debug('Worker %d did not exit, sending SIGTERM', self._worker_id)
            process.terminate()
            process.join(timeout=self._shutdown_timeout)
        if process.is_alive():
            logger.warning('Sending SIGKILL to worker %d (pid %s)', self._worker_id, process.pid)
            process.kill()
            process.join()
        logger.debug('Terminated worker %d', self._worker_id)
