"""Resolve a container's merged filesystem path on the node it runs on."""

from __future__ import annotations

import json
import subprocess

from kmirror.errors import PathLookupError
from kmirror.logger import logger
from kmirror.radar._docker import docker_available, inspect_container
from kmirror.types import ContainerPath


async def get_root_path(container_path: ContainerPath) -> str:
    """Return the absolute path on the node for the container's root filesystem.

    Only overlay-style storage drivers expose ``MergedDir``; anything else is a
    lookup failure.  ``container_path.path`` is not joined onto the result:
    paths that live on volumes sit in a different directory on the host
    entirely, so callers get the container root and nothing more.
    """
    if not docker_available():
        raise PathLookupError("docker client unavailable: `docker` is not on PATH")

    logger.debug("docker client created")

    try:
        result = await inspect_container(container_path.container_id)
    except (OSError, subprocess.SubprocessError) as exc:
        raise PathLookupError(
            f"docker inspect {container_path.container_id} failed: {exc}"
        ) from exc

    if result.returncode != 0:
        raise PathLookupError(
            f"cannot inspect container {container_path.container_id}: {result.stderr.strip()}"
        )

    try:
        cntr = json.loads(result.stdout)[0]
    except (json.JSONDecodeError, IndexError, TypeError) as exc:
        raise PathLookupError(
            f"unexpected docker inspect output for {container_path.container_id}"
        ) from exc

    logger.debug(
        "merge path retrieved",
        name=cntr.get("Name"),
        id=container_path.container_id,
    )

    graph_driver = cntr.get("GraphDriver") or {}
    merged = (graph_driver.get("Data") or {}).get("MergedDir")
    if not merged:
        raise PathLookupError(
            f"container {container_path.container_id} has no merged directory "
            f"(storage driver: {graph_driver.get('Name', 'unknown')})"
        )
    return merged
