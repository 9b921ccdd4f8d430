"""Radar HTTP service: runs on every node, answers path lookups for its containers.

Endpoints:
    GET /health                                   liveness probe
    GET /v1/containers/{container_id}/path?path=  merged dir of the container
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from aiohttp import web

from kmirror.config import get_settings
from kmirror.errors import PathLookupError
from kmirror.logger import logger
from kmirror.radar.docker import get_root_path
from kmirror.types import ContainerPath

Resolver = Callable[[ContainerPath], Awaitable[str]]

resolver_key = web.AppKey("resolver", Resolver)


async def _handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def _handle_container_path(request: web.Request) -> web.Response:
    container_id = request.match_info["container_id"]
    path = request.query.get("path")
    if not path:
        return web.json_response({"error": "path parameter required"}, status=400)

    resolve = request.app[resolver_key]
    try:
        full = await resolve(ContainerPath(container_id, path))
    except PathLookupError as exc:
        logger.warning("Path lookup failed", container=container_id, path=path, err=str(exc))
        return web.json_response({"error": str(exc)}, status=404)

    return web.json_response({"container_id": container_id, "path": path, "full": full})


def create_app(resolver: Resolver = get_root_path) -> web.Application:
    app = web.Application()
    app[resolver_key] = resolver
    app.router.add_get("/health", _handle_health)
    app.router.add_get("/v1/containers/{container_id}/path", _handle_container_path)
    return app


async def start_radar_server(
    host: str | None = None,
    port: int | None = None,
) -> web.AppRunner:
    """Create, start, and return the radar server runner."""
    s = get_settings()
    host = host if host is not None else s.radar.bind_host
    port = port if port is not None else s.radar.api_port

    runner = web.AppRunner(create_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Radar server listening", host=host, port=port)
    return runner
