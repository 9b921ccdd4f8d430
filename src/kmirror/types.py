"""Shared value types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


@dataclass(frozen=True)
class Container:
    """A running container on a Kubernetes node.

    Mirrors reference containers; they never manage their lifecycle.
    """

    id: str
    name: str
    pod_name: str
    namespace: str
    node_name: str


@dataclass(frozen=True)
class ContainerPath:
    """Request to the radar service: a path inside one container."""

    container_id: str
    path: str


@dataclass(frozen=True)
class WorkerInvocation:
    """Fully materialized command line for the external sync worker."""

    executable: str
    jvm_flags: tuple[str, ...]
    classpath: str
    main_class: str
    host: str
    port: int
    local_path: str
    remote_path: str
    mode: str = "client"

    @property
    def argv(self) -> list[str]:
        return [
            self.executable,
            *self.jvm_flags,
            "-cp",
            self.classpath,
            self.main_class,
            self.mode,
            "-h",
            self.host,
            "-p",
            str(self.port),
            "-l",
            self.local_path,
            "-r",
            self.remote_path,
        ]


class MirrorState(StrEnum):
    CREATED = "created"
    PATH_RESOLVING = "path_resolving"
    NEGOTIATING = "negotiating"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    ABORTED = "aborted"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (MirrorState.EXITED, MirrorState.ABORTED, MirrorState.CANCELLED)


@dataclass(frozen=True)
class MirrorResult:
    """Outcome of one ``Mirror.run()``."""

    state: MirrorState
    exit_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state == MirrorState.EXITED and self.exit_code == 0
