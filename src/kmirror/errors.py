"""Exception hierarchy.

Setup failures (lookup, negotiation, start) propagate to whoever called
``Mirror.run()``.  ``UnreturnableError`` never propagates: it travels over a
Mirror's fault channel and ends in the fatal error policy.
"""

from __future__ import annotations


class MirrorError(Exception):
    """Base class for every kmirror failure."""


class PathLookupError(MirrorError, LookupError):
    """The container's host path could not be resolved."""


class ContainerNotFoundError(MirrorError, LookupError):
    """The pod or container to mirror into does not exist."""


class NegotiationError(MirrorError):
    """No radar pod is reachable on the node, or the port-forward failed."""


class WorkerStartError(MirrorError):
    """The sync worker process could not be launched or attached to."""


class UnreturnableError(MirrorError):
    """A background fault with no caller to report to."""


class KubectlError(MirrorError):
    """A kubectl command exited non-zero."""

    def __init__(self, command: list[str], returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"kubectl {' '.join(command)} exited {returncode}: {stderr.strip()}")
