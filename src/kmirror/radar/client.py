"""Client for the radar HTTP service."""

from __future__ import annotations

import aiohttp

from kmirror.errors import PathLookupError
from kmirror.logger import logger
from kmirror.types import ContainerPath


class RadarClient:
    """Talks to one node's radar service (usually through a port-forward)."""

    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_abs_path(self, container_path: ContainerPath) -> str:
        """Resolve ``container_path`` to an absolute path on the node.

        Every transport or server failure surfaces as PathLookupError.
        """
        url = f"{self.base_url}/v1/containers/{container_path.container_id}/path"
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(url, params={"path": container_path.path}) as resp:
                    data = await resp.json(content_type=None)
                    if resp.status != 200:
                        error = data.get("error") if isinstance(data, dict) else None
                        raise PathLookupError(
                            f"radar could not resolve {container_path.container_id}:"
                            f"{container_path.path}: {error or f'HTTP {resp.status}'}"
                        )
        except (aiohttp.ClientError, OSError, TimeoutError, ValueError) as exc:
            raise PathLookupError(f"radar request to {self.base_url} failed: {exc}") from exc

        full = data.get("full") if isinstance(data, dict) else None
        if not full:
            raise PathLookupError(f"radar returned no path for {container_path.container_id}")

        logger.debug(
            "Resolved container path",
            container=container_path.container_id,
            path=container_path.path,
            full=full,
        )
        return full
