"""Tests for merged-directory lookup via docker inspect."""

from __future__ import annotations

import json
import subprocess
from unittest.mock import AsyncMock, patch

import pytest

from kmirror.errors import PathLookupError
from kmirror.radar._docker import inspect_container
from kmirror.radar.docker import get_root_path
from kmirror.types import ContainerPath

_DOCKER = "kmirror.radar.docker"


def _inspect_result(payload, returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    stdout = payload if isinstance(payload, str) else json.dumps(payload)
    return subprocess.CompletedProcess(
        args=["docker", "inspect"], returncode=returncode, stdout=stdout, stderr=stderr
    )


def _overlay(merged: str, name: str = "/web") -> list[dict]:
    return [
        {
            "Id": "c1",
            "Name": name,
            "GraphDriver": {
                "Name": "overlay2",
                "Data": {
                    "LowerDir": "/var/lib/overlay/abc123-init/diff",
                    "MergedDir": merged,
                    "UpperDir": "/var/lib/overlay/abc123/diff",
                },
            },
        }
    ]


def _patch_docker(result=None, *, available: bool = True, side_effect=None):
    inspect = AsyncMock(return_value=result, side_effect=side_effect)
    return (
        patch(f"{_DOCKER}.docker_available", return_value=available),
        patch(f"{_DOCKER}.inspect_container", inspect),
    )


class TestGetRootPath:
    @pytest.mark.asyncio
    async def test_returns_merged_dir_ignoring_requested_path(self):
        avail, inspect = _patch_docker(_inspect_result(_overlay("/var/lib/overlay/abc123")))
        with avail, inspect as mock_inspect:
            path = await get_root_path(ContainerPath("c1", "/data"))

        # The container-relative path is not joined on: callers get the root
        assert path == "/var/lib/overlay/abc123"
        mock_inspect.assert_awaited_once_with("c1")

    @pytest.mark.asyncio
    async def test_merged_dir_returned_unmodified(self):
        weird = "/var/lib/docker/overlay2/with space/merged/"
        avail, inspect = _patch_docker(_inspect_result(_overlay(weird)))
        with avail, inspect:
            assert await get_root_path(ContainerPath("c1", "/")) == weird

    @pytest.mark.asyncio
    async def test_unknown_container(self):
        result = _inspect_result([], returncode=1, stderr="Error: No such container: nope\n")
        avail, inspect = _patch_docker(result)
        with avail, inspect, pytest.raises(PathLookupError, match="No such container"):
            await get_root_path(ContainerPath("nope", "/data"))

    @pytest.mark.asyncio
    async def test_docker_unavailable(self):
        avail, inspect = _patch_docker(available=False)
        with avail, inspect as mock_inspect, pytest.raises(PathLookupError):
            await get_root_path(ContainerPath("c1", "/data"))
        mock_inspect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inspect_timeout(self):
        avail, inspect = _patch_docker(
            side_effect=subprocess.TimeoutExpired(cmd="docker inspect", timeout=30)
        )
        with avail, inspect, pytest.raises(PathLookupError):
            await get_root_path(ContainerPath("c1", "/data"))

    @pytest.mark.asyncio
    async def test_malformed_output(self):
        avail, inspect = _patch_docker(_inspect_result("not json"))
        with avail, inspect, pytest.raises(PathLookupError, match="unexpected"):
            await get_root_path(ContainerPath("c1", "/data"))

    @pytest.mark.asyncio
    async def test_non_overlay_driver(self):
        payload = [{"Name": "/web", "GraphDriver": {"Name": "vfs", "Data": None}}]
        avail, inspect = _patch_docker(_inspect_result(payload))
        with avail, inspect, pytest.raises(PathLookupError, match="vfs"):
            await get_root_path(ContainerPath("c1", "/data"))

    @pytest.mark.asyncio
    async def test_logs_name_and_id(self):
        avail, inspect = _patch_docker(_inspect_result(_overlay("/m", name="/web")))
        with avail, inspect, patch(f"{_DOCKER}.logger") as mock_logger:
            await get_root_path(ContainerPath("c1", "/data"))
        mock_logger.debug.assert_any_call("merge path retrieved", name="/web", id="c1")


class TestInspectContainer:
    @pytest.mark.asyncio
    async def test_missing_container_returned_not_raised(self):
        result = _inspect_result("[]", returncode=1, stderr="Error: No such container: zzz")
        with patch("subprocess.run", return_value=result) as run:
            got = await inspect_container("zzz")

        assert got.returncode == 1
        assert run.call_args.args[0] == ["docker", "inspect", "--type", "container", "zzz"]
        assert run.call_args.kwargs["check"] is False
