"""Tests for the worker command line."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest
from conftest import make_settings

from kmirror.config import MirrorConfig
from kmirror.mirror import build_worker_invocation
from kmirror.mirror._invocation import jvm_flags


def _adjacent(argv: list[str], flag: str, value: str) -> bool:
    return any(argv[i] == flag and argv[i + 1] == value for i in range(len(argv) - 1))


class TestBuildWorkerInvocation:
    def test_negotiated_port_and_loopback_host(self):
        inv = build_worker_invocation(41211, "/home/me/src", "/var/lib/overlay/abc123")
        assert _adjacent(inv.argv, "-p", "41211")
        assert _adjacent(inv.argv, "-h", "localhost")

    def test_paths_and_mode(self):
        inv = build_worker_invocation(41211, "/home/me/src", "/var/lib/overlay/abc123")
        assert _adjacent(inv.argv, "-l", "/home/me/src")
        assert _adjacent(inv.argv, "-r", "/var/lib/overlay/abc123")
        main = inv.argv.index("mirror.Mirror")
        assert inv.argv[main + 1] == "client"

    def test_default_command_line(self):
        inv = build_worker_invocation(5000, "/a", "/b")
        assert inv.argv == [
            "java",
            "-Xmx2G",
            "-XX:+HeapDumpOnOutOfMemoryError",
            "-cp",
            "/usr/local/share/kmirror/mirror-all.jar",
            "mirror.Mirror",
            "client",
            "-h",
            "localhost",
            "-p",
            "5000",
            "-l",
            "/a",
            "-r",
            "/b",
        ]

    def test_uses_configured_tool_location(self, monkeypatch):
        s = make_settings(
            mirror=MirrorConfig(java="/opt/jdk/bin/java", classpath="/opt/mirror.jar")
        )
        monkeypatch.setattr("kmirror.config._settings", s)
        inv = build_worker_invocation(5000, "/a", "/b")
        assert inv.argv[0] == "/opt/jdk/bin/java"
        assert _adjacent(inv.argv, "-cp", "/opt/mirror.jar")

    def test_invocation_is_frozen(self):
        inv = build_worker_invocation(5000, "/a", "/b")
        with pytest.raises(FrozenInstanceError):
            inv.port = 6000  # type: ignore[misc]


class TestJvmFlags:
    def test_heap_dump_optional(self):
        assert jvm_flags(MirrorConfig(heap_dump_on_oom=False)) == ("-Xmx2G",)

    def test_extra_flags_appended(self):
        flags = jvm_flags(MirrorConfig(max_heap="512m", extra_jvm_flags=["-XX:+UseG1GC"]))
        assert flags == ("-Xmx512M", "-XX:+HeapDumpOnOutOfMemoryError", "-XX:+UseG1GC")
