"""Shared test fixtures for kmirror."""

from __future__ import annotations

import asyncio

import pytest

from kmirror.types import Container

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures, importable by test files)
# ---------------------------------------------------------------------------


def make_settings(**overrides):
    """Create a Settings object with sensible defaults for testing.

    Usage::

        s = make_settings(mirror=MirrorConfig(classpath="/opt/mirror.jar"))
    """
    from kmirror.config import KubeConfig, MirrorConfig, RadarConfig, Settings

    defaults = {
        "mirror": MirrorConfig(),
        "radar": RadarConfig(),
        "kube": KubeConfig(),
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def make_container(**overrides) -> Container:
    fields = {
        "id": "c1",
        "name": "web",
        "pod_name": "web-7f9c",
        "namespace": "default",
        "node_name": "node-7",
    }
    fields.update(overrides)
    return Container(**fields)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll `predicate` on the event loop until it holds or `timeout` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


class FakeProcess:
    """Simulates asyncio.subprocess.Process for testing.

    ``kill()`` behaves like the real thing: the process exits with -9, and
    killing an already-exited process raises ProcessLookupError.
    """

    def __init__(self, pid: int = 12345) -> None:
        self.stdin = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.pid = pid
        self.kill_count = 0
        self._returncode: int | None = None
        self._wait_event = asyncio.Event()

    def emit_stdout(self, data: bytes) -> None:
        self.stdout.feed_data(data)

    def emit_stderr(self, data: bytes) -> None:
        self.stderr.feed_data(data)

    def close(self, code: int = 0) -> None:
        """Simulate process exit."""
        if self._returncode is not None:
            return
        self._returncode = code
        for stream in (self.stdout, self.stderr):
            if stream is not None:
                stream.feed_eof()
        self._wait_event.set()

    async def wait(self) -> int:
        await self._wait_event.wait()
        return self._returncode  # type: ignore[return-value]

    def kill(self) -> None:
        if self._returncode is not None:
            raise ProcessLookupError
        self.kill_count += 1
        self.close(-9)

    @property
    def returncode(self) -> int | None:
        return self._returncode


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Ensure each test starts with a clean Settings singleton.

    Uses ``make_settings()`` to build from pure defaults: no kmirror.toml,
    no .env, no file I/O.
    """
    monkeypatch.setattr("kmirror.config._settings", make_settings())
