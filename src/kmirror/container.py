"""Look up the container a mirror should sync into."""

from __future__ import annotations

import subprocess
from typing import Any

from kmirror._kube import kubectl_json
from kmirror.errors import ContainerNotFoundError, KubectlError
from kmirror.logger import logger
from kmirror.types import Container


def _strip_runtime_prefix(container_id: str) -> str:
    """``docker://abc123`` -> ``abc123`` (same for containerd/cri-o)."""
    _, sep, rest = container_id.partition("://")
    return rest if sep else container_id


def container_from_pod(pod: dict[str, Any], container_name: str | None = None) -> Container:
    """Build a Container from a ``kubectl get pod -o json`` document.

    With no ``container_name`` the pod's first container is used.
    """
    metadata = pod.get("metadata", {})
    pod_name = metadata.get("name", "")
    node_name = pod.get("spec", {}).get("nodeName")
    if not node_name:
        raise ContainerNotFoundError(f"pod {pod_name} is not scheduled on a node")

    statuses = pod.get("status", {}).get("containerStatuses") or []
    if container_name is not None:
        statuses = [s for s in statuses if s.get("name") == container_name]
    if not statuses:
        wanted = f"container {container_name}" if container_name else "any container"
        raise ContainerNotFoundError(f"pod {pod_name} has no status for {wanted}")

    status = statuses[0]
    raw_id = status.get("containerID")
    if not raw_id:
        raise ContainerNotFoundError(
            f"container {status.get('name')} in pod {pod_name} is not running yet"
        )

    return Container(
        id=_strip_runtime_prefix(raw_id),
        name=status["name"],
        pod_name=pod_name,
        namespace=metadata.get("namespace", "default"),
        node_name=node_name,
    )


async def get_container(
    pod_name: str,
    container_name: str | None = None,
    namespace: str = "default",
) -> Container:
    """Fetch the pod from the API server and pick out the container."""
    try:
        pod = await kubectl_json("get", "pod", pod_name, "--namespace", namespace)
    except (KubectlError, OSError, subprocess.SubprocessError) as exc:
        raise ContainerNotFoundError(f"cannot get pod {namespace}/{pod_name}: {exc}") from exc

    container = container_from_pod(pod, container_name)
    logger.debug(
        "Container found",
        pod=pod_name,
        container=container.name,
        id=container.id,
        node=container.node_name,
    )
    return container
