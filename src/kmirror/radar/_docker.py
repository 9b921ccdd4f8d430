"""Docker CLI wrappers used by the node-side radar service.

All public functions are async so they don't block the event loop.
The underlying subprocess calls run in a thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import shutil
import subprocess
import time

from kmirror.logger import logger


def docker_available() -> bool:
    """Check if ``docker`` is on PATH."""
    return shutil.which("docker") is not None


def _run_docker_sync(*args: str, timeout: int = 30) -> subprocess.CompletedProcess[str]:
    """Run a ``docker`` CLI command (blocking, internal only).

    Never raises on a non-zero exit: callers read ``returncode`` and ``stderr``.
    """
    return subprocess.run(
        ["docker", *args],
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


async def run_docker(*args: str, timeout: int = 30) -> subprocess.CompletedProcess[str]:
    """Run a ``docker`` CLI command without blocking the event loop."""
    return await asyncio.to_thread(_run_docker_sync, *args, timeout=timeout)


async def inspect_container(container_id: str) -> subprocess.CompletedProcess[str]:
    """``docker inspect`` a container, warning when the daemon is slow to answer."""
    start = time.monotonic()
    result = await run_docker("inspect", "--type", "container", container_id)
    elapsed_ms = (time.monotonic() - start) * 1000
    if elapsed_ms > 500:
        logger.warning(
            "Slow docker inspect",
            container=container_id,
            elapsed_ms=round(elapsed_ms),
        )
    return result
