# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for the Podman API client and the Podman-backed store."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from pathlib import Path
from typing import Any

import httpx
import pytest

from bricklayer.builder.models import Builder, IDMap
from bricklayer.builder.sources import SourceResolver
from bricklayer.builder.store import ContainerUnknownError, ImageNotFoundError, PullError, PullOptions, StoreError
from bricklayer.operations import OperationError
from bricklayer.podman_client import API_PREFIX, PodmanClient, PodmanError, PodmanStore

CONTAINER = {
    "Id": "c0ffee",
    "Name": "alpine-working-container",
    "ImageName": "docker.io/library/alpine:latest",
    "Config": {"WorkingDir": "/work"},
    "HostConfig": {"IDMappings": {"UidMap": ["0:100000:65536"], "GidMap": ["0:200000:65536"]}},
}


class FakePodman:
    """Minimal libpod API served through :class:`httpx.MockTransport`."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.containers: dict[str, dict[str, Any]] = {"c0ffee": CONTAINER}
        self.pull_lines: list[dict[str, Any]] = [
            {"stream": "Trying to pull docker.io/library/alpine:latest...\n"},
            {"id": "1mage"},
        ]
        self.pull_status = 200
        self.mounted: set[str] = set()
        self.removed: list[str] = []
        # Paths that answer 500 regardless of state.
        self.failing: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix(API_PREFIX)
        method = request.method

        if path in self.failing:
            return httpx.Response(500, json={"cause": "x", "message": "database is locked", "response": 500})

        if method == "POST" and path == "/images/pull":
            if self.pull_status != 200:
                return httpx.Response(self.pull_status, json={"cause": "x", "message": "manifest unknown", "response": self.pull_status})
            body = "".join(json.dumps(line) + "\n" for line in self.pull_lines)
            return httpx.Response(200, text=body)
        if method == "GET" and path == "/images/1mage/json":
            return httpx.Response(200, json={"Id": "1mage", "RepoTags": ["docker.io/library/alpine:latest"], "Config": {}})
        if method == "GET" and path == "/containers/json":
            return httpx.Response(200, json=[{"Id": "c0ffee", "Names": ["alpine-working-container"]}])
        if method == "POST" and path == "/containers/create":
            spec = json.loads(request.content)
            self.containers["new1d"] = {**CONTAINER, "Id": "new1d", "Name": spec["name"]}
            return httpx.Response(201, json={"Id": "new1d", "Warnings": []})
        if path.startswith("/containers/"):
            parts = path.split("/")
            cid = parts[2]
            if cid not in self.containers:
                return httpx.Response(404, json={"cause": "no such container", "message": f"no container with name or ID \"{cid}\" found", "response": 404})
            action = parts[3] if len(parts) > 3 else ""
            if method == "GET" and action == "json":
                return httpx.Response(200, json=self.containers[cid])
            if method == "POST" and action == "mount":
                self.mounted.add(cid)
                return httpx.Response(200, json=f"/var/lib/containers/storage/overlay/{cid}/merged")
            if method == "POST" and action == "unmount":
                self.mounted.discard(cid)
                return httpx.Response(204)
            if method == "DELETE" and not action:
                self.removed.append(cid)
                del self.containers[cid]
                return httpx.Response(204)
        return httpx.Response(500, json={"message": f"unexpected {method} {path}"})


@pytest.fixture
def podman() -> FakePodman:
    return FakePodman()


@pytest.fixture
def client(podman: FakePodman) -> PodmanClient:
    return PodmanClient("/nonexistent.sock", transport=httpx.MockTransport(podman.handler))


@pytest.fixture
def podman_store(client: PodmanClient, tmp_path: Path) -> PodmanStore:
    return PodmanStore(client, str(tmp_path / "state"))


def test_inspect_container_maps_fields(client: PodmanClient):
    info = asyncio.run(client.inspect_container("c0ffee"))
    assert info.id == "c0ffee"
    assert info.config.working_dir == "/work"
    maps = info.id_mapping_options()
    assert maps.uid_map == [IDMap(container_id=0, host_id=100000, size=65536)]
    assert maps.gid_to_host(10) == 200010


def test_error_body_becomes_podman_error(client: PodmanClient):
    with pytest.raises(PodmanError) as excinfo:
        asyncio.run(client.inspect_container("nope"))
    assert excinfo.value.code == 404
    assert 'no container with name or ID "nope" found' in str(excinfo.value)


def test_unreachable_socket():
    client = PodmanClient("/nonexistent/podman.sock")

    async def scenario() -> None:
        try:
            await client.get("/_ping")
        finally:
            await client.close()

    with pytest.raises(PodmanError, match="talking to Podman"):
        asyncio.run(scenario())


def test_pull_sends_credentials(client: PodmanClient, podman: FakePodman):
    async def scenario() -> list:
        return [r async for r in client.pull_image("alpine", PullOptions(creds="me:s3cret", tls_verify=False))]

    reports = asyncio.run(scenario())

    assert reports[-1].id == "1mage"
    request = podman.requests[0]
    assert request.url.params["reference"] == "alpine"
    assert request.url.params["tlsVerify"] == "false"
    auth = json.loads(base64.urlsafe_b64decode(request.headers["X-Registry-Auth"]))
    assert auth == {"username": "me", "password": "s3cret"}


def test_open_existing(podman_store: PodmanStore):
    builder = asyncio.run(podman_store.open_existing("c0ffee"))
    assert builder.container_name == "alpine-working-container"
    assert builder.workdir == "/work"
    assert builder.id_mappings.uid_to_host(0) == 100000


def test_open_unknown_container(podman_store: PodmanStore):
    with pytest.raises(ContainerUnknownError):
        asyncio.run(podman_store.open_existing("nope"))


def test_saved_state_survives_reopen(podman_store: PodmanStore):
    async def scenario() -> Builder:
        builder = await podman_store.open_existing("c0ffee")
        builder.add_history("/bin/sh -c #(nop) COPY file:abc")
        await podman_store.save(builder)
        return await podman_store.open_existing("c0ffee")

    reopened = asyncio.run(scenario())
    assert [h.created_by for h in reopened.history] == ["/bin/sh -c #(nop) COPY file:abc"]
    assert reopened.id_mappings.uid_to_host(0) == 100000


def test_pull_creates_working_container(podman_store: PodmanStore, podman: FakePodman, tmp_path: Path):
    lines: list[str] = []

    builder = asyncio.run(podman_store.pull("alpine", PullOptions(), lines.append))

    assert builder.container_id == "new1d"
    assert builder.container_name == "alpine-working-container-1"
    assert builder.from_image == "docker.io/library/alpine:latest"
    assert lines == ["Trying to pull docker.io/library/alpine:latest..."]
    assert (tmp_path / "state" / "new1d.json").is_file()


def test_pull_error_line_not_found(podman_store: PodmanStore, podman: FakePodman):
    podman.pull_lines = [{"error": "initializing source docker://nope: manifest unknown"}]
    with pytest.raises(ImageNotFoundError):
        asyncio.run(podman_store.pull("nope", PullOptions()))


def test_pull_error_line_transient(podman_store: PodmanStore, podman: FakePodman):
    podman.pull_lines = [{"error": "read tcp: connection reset by peer"}]
    with pytest.raises(PullError, match="connection reset"):
        asyncio.run(podman_store.pull("alpine", PullOptions()))


def test_pull_http_404(podman_store: PodmanStore, podman: FakePodman):
    podman.pull_status = 404
    with pytest.raises(ImageNotFoundError):
        asyncio.run(podman_store.pull("nope", PullOptions()))


def test_pull_http_500_is_transient(podman_store: PodmanStore, podman: FakePodman):
    podman.pull_status = 500
    with pytest.raises(PullError):
        asyncio.run(podman_store.pull("alpine", PullOptions()))


def test_mount_unmount_delete(podman_store: PodmanStore, podman: FakePodman, tmp_path: Path):
    async def scenario() -> Builder:
        builder = await podman_store.open_existing("c0ffee")
        await podman_store.save(builder)
        mount_point = await podman_store.mount(builder)
        assert mount_point.endswith("/c0ffee/merged")
        assert builder.mounted
        await podman_store.unmount(builder)
        await podman_store.delete(builder)
        # Already gone is fine.
        await podman_store.delete(builder)
        return builder

    builder = asyncio.run(scenario())
    assert not builder.mounted
    assert podman.removed == ["c0ffee"]
    assert not (tmp_path / "state" / "c0ffee.json").exists()


def test_mount_failure_is_store_error(podman_store: PodmanStore):
    builder = Builder(container_id="gone", container_name="gone")
    with pytest.raises(StoreError):
        asyncio.run(podman_store.mount(builder))


def test_pull_removes_container_when_inspect_fails(podman_store: PodmanStore, podman: FakePodman, tmp_path: Path):
    podman.failing.add("/containers/new1d/json")

    with pytest.raises(StoreError, match="creating working container from alpine: database is locked"):
        asyncio.run(podman_store.pull("alpine", PullOptions()))

    assert podman.removed == ["new1d"]
    assert list(podman.containers) == ["c0ffee"]
    assert not (tmp_path / "state" / "new1d.json").exists()


def test_pull_removes_container_when_save_fails(
    client: PodmanClient, podman: FakePodman, tmp_path: Path, caplog: pytest.LogCaptureFixture
):
    blocker = tmp_path / "state"
    blocker.write_text("not a directory")
    store = PodmanStore(client, str(blocker))

    with caplog.at_level(logging.WARNING, logger="bricklayer.podman_client"):
        with pytest.raises(StoreError, match="writing builder state"):
            asyncio.run(store.pull("alpine", PullOptions()))

    assert podman.removed == ["new1d"]
    assert "Failed to remove state of container new1d" in caplog.text


def test_retried_pulls_leave_no_containers(podman_store: PodmanStore, podman: FakePodman):
    podman.failing.add("/containers/new1d/json")
    resolver = SourceResolver(podman_store, retry=2, retry_delay=0)

    with pytest.raises(OperationError, match=r"database is locked \(after 2 attempts\)"):
        asyncio.run(resolver.open("alpine"))

    assert podman.removed == ["new1d", "new1d"]
    assert list(podman.containers) == ["c0ffee"]
