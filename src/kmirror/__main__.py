"""Entry point for `python -m kmirror` / `kmirror`.

Subcommands:
    kmirror mirror POD LOCAL REMOTE   Sync LOCAL into REMOTE inside a pod's container
    kmirror radar                     Serve the radar API on this node
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from kmirror.logger import logger


async def _mirror(pod: str, local: str, remote: str, container: str | None, namespace: str) -> int:
    from kmirror.container import get_container
    from kmirror.errors import MirrorError
    from kmirror.mirror import Mirror
    from kmirror.types import MirrorState

    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, cancel.set)

    try:
        target = await get_container(pod, container, namespace)
        result = await Mirror(target, local, remote).run(cancel)
    except MirrorError as exc:
        logger.error("Mirror failed", error_type=type(exc).__name__, error=str(exc))
        return 1

    if result.state == MirrorState.CANCELLED:
        return 0
    if result.exit_code is None:
        return 1
    if result.exit_code < 0:
        # Killed by a signal: report it the way a shell would (SIGKILL -> 137)
        return 128 - result.exit_code
    return result.exit_code


async def _radar(host: str | None, port: int | None) -> None:
    from kmirror.radar.server import start_radar_server

    runner = await start_radar_server(host, port)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    try:
        await stop.wait()
    finally:
        await runner.cleanup()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="kmirror",
        description="Mirror local directories into containers on Kubernetes nodes",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    mirror = sub.add_parser("mirror", help="Sync a local path into a pod's container")
    mirror.add_argument("pod", help="Pod to sync into")
    mirror.add_argument("local", help="Local path")
    mirror.add_argument("remote", help="Path inside the container")
    mirror.add_argument("-c", "--container", help="Container name (default: first container)")
    mirror.add_argument("-n", "--namespace", default="default", help="Pod namespace")

    radar = sub.add_parser("radar", help="Serve the radar API on this node")
    radar.add_argument("--host", help="Bind address (default: radar.bind_host)")
    radar.add_argument("--port", type=int, help="Listen port (default: radar.api_port)")

    args = parser.parse_args()

    match args.command:
        case "mirror":
            code = asyncio.run(
                _mirror(args.pod, args.local, args.remote, args.container, args.namespace)
            )
            sys.exit(code)
        case "radar":
            asyncio.run(_radar(args.host, args.port))


if __name__ == "__main__":
    main()
