"""Build the sync worker's command line from settings."""

from __future__ import annotations

from kmirror.config import MirrorConfig, get_settings
from kmirror.types import WorkerInvocation


def jvm_flags(cfg: MirrorConfig) -> tuple[str, ...]:
    flags = [f"-Xmx{cfg.max_heap}"]
    if cfg.heap_dump_on_oom:
        flags.append("-XX:+HeapDumpOnOutOfMemoryError")
    flags.extend(cfg.extra_jvm_flags)
    return tuple(flags)


def build_worker_invocation(port: int, local_path: str, remote_path: str) -> WorkerInvocation:
    """Worker in client mode, pointed at the negotiated loopback port."""
    cfg = get_settings().mirror
    return WorkerInvocation(
        executable=cfg.java,
        jvm_flags=jvm_flags(cfg),
        classpath=cfg.classpath,
        main_class=cfg.main_class,
        host=cfg.host,
        port=port,
        local_path=local_path,
        remote_path=remote_path,
    )
