"""Radar: the per-node coordinator a mirror talks to.

Node side:
  docker    container id -> merged overlay directory (``docker inspect``)
  server    aiohttp service exposing that lookup
Client side:
  client    RadarClient, HTTP client for the service
  instance  RadarInstance, kubectl port-forwards to a node's radar pod
"""

from kmirror.radar.client import RadarClient
from kmirror.radar.docker import get_root_path
from kmirror.radar.instance import PortForward, RadarInstance
from kmirror.radar.server import create_app, start_radar_server

__all__ = [
    "PortForward",
    "RadarClient",
    "RadarInstance",
    "create_app",
    "get_root_path",
    "start_radar_server",
]
