"""kubectl CLI wrappers.

Blocking calls run in a thread via ``asyncio.to_thread`` so the supervisor's
event loop keeps servicing worker output while the API server answers.
"""

from __future__ import annotations

import asyncio
import json
import subprocess
from typing import Any

from kmirror.config import get_settings
from kmirror.errors import KubectlError


def kubectl_base() -> list[str]:
    """The kubectl executable plus global flags (``--context``) from settings."""
    s = get_settings()
    base = [s.kube.kubectl]
    if s.kube.context:
        base += ["--context", s.kube.context]
    return base


def _run_kubectl_sync(*args: str, timeout: int = 30) -> subprocess.CompletedProcess[str]:
    """Run a ``kubectl`` CLI command (blocking, internal only)."""
    return subprocess.run(
        [*kubectl_base(), *args],
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


async def run_kubectl(*args: str, timeout: int = 30) -> subprocess.CompletedProcess[str]:
    """Run a ``kubectl`` CLI command without blocking the event loop."""
    return await asyncio.to_thread(_run_kubectl_sync, *args, timeout=timeout)


async def kubectl_json(*args: str, timeout: int = 30) -> Any:
    """Run ``kubectl ... -o json`` and return the decoded document.

    Raises KubectlError on non-zero exit or undecodable output.
    """
    result = await run_kubectl(*args, "-o", "json", timeout=timeout)
    if result.returncode != 0:
        raise KubectlError(list(args), result.returncode, result.stderr)
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise KubectlError(list(args), result.returncode, f"invalid JSON output: {exc}") from exc
