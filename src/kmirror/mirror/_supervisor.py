"""Mirror: runs one sync worker from a local path into a remote container.

State machine::

    created -> path_resolving -> negotiating -> starting -> running -> exited
                     |                |             |
                     +------------> aborted <-------+
    (any non-terminal state) -> cancelled

Setup errors abort the run and propagate to the caller.  Once the worker is
running, the supervisor waits on three things at once: the worker exiting,
a fault arriving on this mirror's channel, and the caller's cancel event.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, Protocol, TypeVar

from kmirror.config import get_settings
from kmirror.errors import NegotiationError, PathLookupError, WorkerStartError
from kmirror.logger import logger, worker_logger
from kmirror.mirror._faults import FatalErrorPolicy, FaultChannel, kill_worker
from kmirror.mirror._invocation import build_worker_invocation
from kmirror.radar.instance import RadarInstance
from kmirror.streams import attach_process_streams
from kmirror.types import Container, ContainerPath, MirrorResult, MirrorState

T = TypeVar("T")


class PathResolver(Protocol):
    async def get_abs_path(self, container_path: ContainerPath) -> str: ...


class ConnectionNegotiator(Protocol):
    async def mirror_connection(self, node_name: str) -> int: ...


class _Cancelled(Exception):
    """The caller's cancel event fired during a setup step."""


async def _unless_cancelled(coro: Coroutine[Any, Any, T], cancel: asyncio.Event) -> T:
    """Await ``coro`` unless ``cancel`` fires first, in which case raise _Cancelled."""
    if cancel.is_set():
        coro.close()
        raise _Cancelled
    task = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()
    if task.done():
        return task.result()
    task.cancel()
    await asyncio.wait({task})
    raise _Cancelled


class Mirror:
    """A sync from the local host into a remote container.

    ``run()`` is long running: it returns only when the worker exits or the
    caller cancels.  The worker handle exists only for the duration of a run.
    """

    def __init__(
        self,
        container: Container,
        local_path: str,
        remote_path: str,
        *,
        resolver: PathResolver | None = None,
        negotiator: ConnectionNegotiator | None = None,
    ) -> None:
        self.container = container
        self.local_path = local_path
        self.remote_path = remote_path
        self.proc: asyncio.subprocess.Process | None = None
        self.faults = FaultChannel()
        self.state = MirrorState.CREATED
        self.transitions: list[MirrorState] = [MirrorState.CREATED]
        self._resolver = resolver
        self._negotiator = negotiator
        self._radar: RadarInstance | None = None
        self._active = False
        self._log = logger.bind(
            pod=container.pod_name,
            container=container.name,
            local_path=local_path,
            remote_path=remote_path,
        )

    def _set_state(self, state: MirrorState) -> None:
        self.state = state
        self.transitions.append(state)
        self._log.debug("Mirror state changed", state=state.value)

    def _radar_instance(self) -> RadarInstance:
        if self._radar is None:
            self._radar = RadarInstance(on_fault=self.faults.report)
        return self._radar

    async def path(self) -> str:
        """Host path of the remote side, as reported by the node's radar."""
        resolver = self._resolver
        if resolver is None:
            try:
                resolver = await self._radar_instance().client(self.container.node_name)
            except NegotiationError as exc:
                raise PathLookupError(
                    f"cannot reach radar on node {self.container.node_name}: {exc}"
                ) from exc
        return await resolver.get_abs_path(ContainerPath(self.container.id, self.remote_path))

    async def negotiate(self) -> int:
        negotiator = self._negotiator or self._radar_instance()
        return await negotiator.mirror_connection(self.container.node_name)

    async def run(self, cancel: asyncio.Event | None = None) -> MirrorResult:
        """Resolve, negotiate, start the worker and wait for it to exit.

        Raises PathLookupError, NegotiationError or WorkerStartError if setup
        fails (no worker is left running).  Setting ``cancel`` kills the worker
        and returns a ``cancelled`` result.  A fault on ``self.faults`` while
        the worker runs kills it and raises SystemExit.
        """
        if self._active:
            raise RuntimeError(f"mirror into {self.container.name} is already running")
        self._active = True
        if self.state.is_terminal:
            self.state = MirrorState.CREATED
            self.transitions = [MirrorState.CREATED]
        self.faults.bind(asyncio.get_running_loop())
        try:
            return await self._run(cancel or asyncio.Event())
        finally:
            self._active = False
            if self._radar is not None:
                await self._radar.close()
                self._radar = None

    def _cancelled(self, exit_code: int | None = None) -> MirrorResult:
        self._set_state(MirrorState.CANCELLED)
        self._log.info("Mirror cancelled", exit_code=exit_code)
        return MirrorResult(state=MirrorState.CANCELLED, exit_code=exit_code, error="cancelled")

    async def _run(self, cancel: asyncio.Event) -> MirrorResult:
        self._set_state(MirrorState.PATH_RESOLVING)
        try:
            path = await _unless_cancelled(self.path(), cancel)
        except _Cancelled:
            return self._cancelled()
        except Exception:
            self._set_state(MirrorState.ABORTED)
            raise

        self._set_state(MirrorState.NEGOTIATING)
        try:
            port = await _unless_cancelled(self.negotiate(), cancel)
        except _Cancelled:
            return self._cancelled()
        except Exception:
            self._set_state(MirrorState.ABORTED)
            raise

        self._set_state(MirrorState.STARTING)
        invocation = build_worker_invocation(port, self.local_path, path)
        worker_log = worker_logger.bind(path=invocation.executable, args=invocation.argv)

        try:
            proc = await asyncio.create_subprocess_exec(
                *invocation.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=get_settings().mirror.read_limit,
            )
        except OSError as exc:
            self._set_state(MirrorState.ABORTED)
            raise WorkerStartError(f"cannot start {invocation.executable}: {exc}") from exc

        self.proc = proc
        try:
            try:
                readers = attach_process_streams(proc, worker_log)
            except ValueError as exc:
                kill_worker(proc)
                await proc.wait()
                self._set_state(MirrorState.ABORTED)
                raise WorkerStartError(str(exc)) from exc

            policy = FatalErrorPolicy(proc)
            self._set_state(MirrorState.RUNNING)
            self._log.debug("starting mirror", pid=proc.pid, args=invocation.argv)
            return await self._supervise(proc, readers, policy, cancel)
        finally:
            self.proc = None

    async def _supervise(
        self,
        proc: asyncio.subprocess.Process,
        readers: tuple[asyncio.Task[int], asyncio.Task[int]],
        policy: FatalErrorPolicy,
        cancel: asyncio.Event,
    ) -> MirrorResult:
        exit_task = asyncio.ensure_future(proc.wait())
        fault_task = asyncio.ensure_future(self.faults.get())
        cancel_task = asyncio.ensure_future(cancel.wait())

        async def drain() -> None:
            # Exit alone is not enough: the last lines may still be in the pipes
            await asyncio.gather(exit_task, *readers, return_exceptions=True)

        try:
            done, _ = await asyncio.wait(
                {exit_task, fault_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if exit_task not in done and cancel_task not in done:
                try:
                    policy.handle(fault_task.result())
                finally:
                    await drain()
                    self._set_state(MirrorState.EXITED)

            if exit_task not in done:
                kill_worker(proc)
                await drain()
                return self._cancelled(exit_code=exit_task.result())

            await drain()
            code = exit_task.result()
            self._set_state(MirrorState.EXITED)
            if code != 0:
                self._log.error("Mirror worker exited with error", code=code)
                return MirrorResult(
                    state=MirrorState.EXITED,
                    exit_code=code,
                    error=f"mirror worker exited with code {code}",
                )
            self._log.info("Mirror worker exited")
            return MirrorResult(state=MirrorState.EXITED, exit_code=0)
        finally:
            fault_task.cancel()
            cancel_task.cancel()
            if kill_worker(proc):
                # Only reachable when this task itself was cancelled mid-wait
                await drain()
