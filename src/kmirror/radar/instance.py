"""Reach the radar pod running on a given node through ``kubectl port-forward``.

Every forward is a long-lived kubectl subprocess.  Once a forward is up, any
error kubectl prints (or its unexpected exit) has no caller left to return to,
so it is reported to the fault sink the instance was created with.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
import subprocess
from collections import deque
from collections.abc import Callable

from kmirror._kube import kubectl_base, kubectl_json
from kmirror.config import get_settings
from kmirror.errors import KubectlError, NegotiationError, UnreturnableError
from kmirror.logger import logger
from kmirror.radar.client import RadarClient
from kmirror.streams import attach_stream

FaultSink = Callable[[BaseException], None]

_READY_MARKER = "Forwarding from"


def _free_port() -> int:
    """Ask the kernel for an unused loopback port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _log_fault(exc: BaseException) -> None:
    logger.error("Port-forward fault with no handler", err=str(exc))


class PortForward:
    """One ``kubectl port-forward`` subprocess from a local port to a radar pod."""

    def __init__(
        self,
        pod_name: str,
        local_port: int,
        remote_port: int,
        proc: asyncio.subprocess.Process,
        on_fault: FaultSink,
    ) -> None:
        self.pod_name = pod_name
        self.local_port = local_port
        self.remote_port = remote_port
        self.proc = proc
        self._on_fault = on_fault
        self._ready = asyncio.Event()
        self._closing = False
        self._stderr_tail: deque[str] = deque(maxlen=20)
        self._log = logger.bind(pod=pod_name, local_port=local_port, remote_port=remote_port)

        assert proc.stdout is not None
        assert proc.stderr is not None
        self._readers = (
            attach_stream(proc.stdout, self._on_stdout),
            attach_stream(proc.stderr, self._on_stderr),
        )
        self._exit_task = asyncio.ensure_future(self._watch_exit())

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def _on_stdout(self, line: str) -> None:
        self._log.debug(line)
        if line.startswith(_READY_MARKER):
            self._ready.set()

    def _on_stderr(self, line: str) -> None:
        self._log.warning(line)
        self._stderr_tail.append(line)
        if self.is_ready and not self._closing and "error" in line.lower():
            self._on_fault(UnreturnableError(line))

    async def _watch_exit(self) -> int:
        code = await self.proc.wait()
        # Let the readers drain so the tail holds kubectl's last words
        await asyncio.gather(*self._readers, return_exceptions=True)
        if self.is_ready and not self._closing:
            self._on_fault(
                UnreturnableError(
                    f"port-forward to {self.pod_name} exited with code {code}: "
                    f"{self.stderr_tail}"
                )
            )
        return code

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    async def wait_ready(self, timeout: float) -> None:
        """Block until kubectl reports the forward is listening.

        Raises NegotiationError if kubectl exits first or the timeout elapses.
        """
        ready_task = asyncio.ensure_future(self._ready.wait())
        try:
            done, _ = await asyncio.wait(
                {ready_task, self._exit_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            ready_task.cancel()

        if self.is_ready:
            self._log.debug("Port-forward ready")
            return
        if self._exit_task in done:
            raise NegotiationError(
                f"port-forward to {self.pod_name} exited with code "
                f"{self._exit_task.result()}: {self.stderr_tail}"
            )
        raise NegotiationError(
            f"port-forward to {self.pod_name} not ready within {timeout:.0f}s"
        )

    async def close(self) -> None:
        """Kill the forward and wait for its readers (idempotent)."""
        self._closing = True
        if self.proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self.proc.kill()
        await asyncio.gather(self._exit_task, return_exceptions=True)


class RadarInstance:
    """Connections to the radar pods, one port-forward per request.

    Forwards are not reused: each call allocates a fresh kubectl process.
    ``close()`` tears down every forward this instance opened.
    """

    def __init__(self, on_fault: FaultSink | None = None) -> None:
        self._on_fault = on_fault or _log_fault
        self._forwards: list[PortForward] = []

    async def find_pod(self, node_name: str) -> str:
        """Name of the radar pod scheduled on ``node_name``."""
        s = get_settings()
        try:
            pods = await kubectl_json(
                "get",
                "pods",
                "--namespace",
                s.radar.namespace,
                "--selector",
                s.radar.label_selector,
                "--field-selector",
                f"spec.nodeName={node_name}",
            )
        except (KubectlError, OSError, subprocess.SubprocessError) as exc:
            raise NegotiationError(f"cannot list radar pods on {node_name}: {exc}") from exc

        running = [
            p["metadata"]["name"]
            for p in pods.get("items", [])
            if p.get("status", {}).get("phase") == "Running"
        ]
        if not running:
            raise NegotiationError(
                f"no running radar pod on node {node_name} "
                f"(namespace={s.radar.namespace}, selector={s.radar.label_selector})"
            )
        return running[0]

    async def port_forward(self, node_name: str, remote_port: int) -> PortForward:
        s = get_settings()
        pod_name = await self.find_pod(node_name)
        local_port = _free_port()

        try:
            proc = await asyncio.create_subprocess_exec(
                *kubectl_base(),
                "port-forward",
                "--namespace",
                s.radar.namespace,
                f"pod/{pod_name}",
                f"{local_port}:{remote_port}",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise NegotiationError(f"cannot start kubectl port-forward: {exc}") from exc

        forward = PortForward(pod_name, local_port, remote_port, proc, self._on_fault)
        try:
            await forward.wait_ready(s.radar.port_forward_timeout)
        except BaseException:
            await forward.close()
            raise

        self._forwards.append(forward)
        logger.info(
            "Port-forward established",
            node=node_name,
            pod=pod_name,
            local_port=local_port,
            remote_port=remote_port,
        )
        return forward

    async def mirror_connection(self, node_name: str) -> int:
        """Local port on which the sync worker reaches the node's radar mirror port."""
        forward = await self.port_forward(node_name, get_settings().radar.mirror_port)
        return forward.local_port

    async def client(self, node_name: str) -> RadarClient:
        """A RadarClient for the radar API on ``node_name``."""
        forward = await self.port_forward(node_name, get_settings().radar.api_port)
        return RadarClient(f"http://localhost:{forward.local_port}")

    async def close(self) -> None:
        forwards, self._forwards = self._forwards, []
        await asyncio.gather(*(f.close() for f in forwards), return_exceptions=True)
