"""Per-mirror fault channel and the policy applied to faults that arrive on it.

Background components (port-forwards) have no caller to return errors to.
They report into the channel of the Mirror that created them; the Mirror's
supervisor loop picks the fault up and hands it to FatalErrorPolicy, which
kills the worker and terminates the program.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from typing import NoReturn

from kmirror.logger import logger

CONNECTION_REFUSED = "Connection refused"

RADAR_LOST_MESSAGE = "Lost connection to remote radar pod. Try again (it should restart)."


class FaultChannel:
    """Queue of unreturnable errors for one Mirror.

    ``report()`` may be called from any thread or task.  Each ``bind()`` starts
    a fresh queue on the given loop, so faults left over from an earlier run
    (possibly on another loop) never reach the next one.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[BaseException] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach to ``loop``: reports from other threads are routed onto it."""
        self._queue = asyncio.Queue()
        self._loop = loop
        self._loop_thread = threading.get_ident()

    def report(self, exc: BaseException) -> None:
        logger.debug("Fault reported", err=str(exc))
        if self._loop is None or threading.get_ident() == self._loop_thread:
            self._queue.put_nowait(exc)
            return
        with contextlib.suppress(RuntimeError):  # loop already closed
            self._loop.call_soon_threadsafe(self._queue.put_nowait, exc)

    async def get(self) -> BaseException:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()


def describe_fault(exc: BaseException) -> str:
    """Diagnostic shown to the user for an unreturnable error.

    ``Connection refused`` from a port-forward means the radar pod went away,
    which in practice means it restarted.
    """
    if CONNECTION_REFUSED in str(exc):
        return RADAR_LOST_MESSAGE
    return f"unreturnable error: {exc}"


def kill_worker(proc: asyncio.subprocess.Process | None) -> bool:
    """SIGKILL the worker. Returns False (and does nothing) if it already exited."""
    if proc is None or proc.returncode is not None:
        return False
    try:
        proc.kill()
    except ProcessLookupError:
        return False
    return True


class FatalErrorPolicy:
    """Kill the mirror's worker, then exit the program with a diagnostic."""

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self.proc = proc

    def handle(self, exc: BaseException) -> NoReturn:
        killed = kill_worker(self.proc)
        message = describe_fault(exc)
        logger.critical(message, worker_pid=self.proc.pid, worker_killed=killed)
        raise SystemExit(1)
