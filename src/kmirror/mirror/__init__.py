"""Mirror: supervise the external sync worker for one local/remote path pair.

This package is split into focused submodules:
  _invocation  worker command line construction from settings
  _faults      per-mirror fault channel, fault diagnostics, fatal policy
  _supervisor  Mirror state machine (resolve, negotiate, start, wait)
"""

from kmirror.mirror._faults import (
    RADAR_LOST_MESSAGE,
    FatalErrorPolicy,
    FaultChannel,
    describe_fault,
    kill_worker,
)
from kmirror.mirror._invocation import build_worker_invocation
from kmirror.mirror._supervisor import ConnectionNegotiator, Mirror, PathResolver

__all__ = [
    "RADAR_LOST_MESSAGE",
    "ConnectionNegotiator",
    "FatalErrorPolicy",
    "FaultChannel",
    "Mirror",
    "PathResolver",
    "build_worker_invocation",
    "describe_fault",
    "kill_worker",
]
