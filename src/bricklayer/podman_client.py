# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Podman REST API client and the store built on it.

:class:`PodmanClient` is a thin async client for the libpod API,
talking over the Podman service's Unix socket.  :class:`PodmanStore`
implements :class:`bricklayer.builder.store.Store` on top of it and keeps the
builder metadata Podman doesn't know about (history, working directory,
source image) in one JSON file per container under the state directory.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import tempfile
from collections.abc import AsyncGenerator
from contextlib import aclosing
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .builder.models import Builder, BuilderRecord, IDMap, IDMappingOptions
from .builder.store import (
    ContainerUnknownError,
    ImageNotFoundError,
    PullError,
    PullOptions,
    ReportSink,
    StoreError,
    get_image_name,
    working_container_name,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/v4.0.0/libpod"

# Pull errors that mean the reference itself is wrong.
_NOT_FOUND_MARKERS = (
    "manifest unknown",
    "name unknown",
    "not found",
    "does not exist",
    "repository name must",
    "invalid reference format",
)


class PodmanError(Exception):
    """Error from the Podman API."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class InspectIDMappings(_Model):
    uid_map: list[str] = Field(default_factory=lambda: list[str](), alias="UidMap")
    gid_map: list[str] = Field(default_factory=lambda: list[str](), alias="GidMap")


class InspectHostConfig(_Model):
    id_mappings: InspectIDMappings | None = Field(default=None, alias="IDMappings")


class InspectConfig(_Model):
    working_dir: str = Field(default="", alias="WorkingDir")


class ContainerInspect(_Model):
    id: str = Field(alias="Id")
    name: str = Field(default="", alias="Name")
    image_name: str = Field(default="", alias="ImageName")
    config: InspectConfig = Field(default_factory=InspectConfig, alias="Config")
    host_config: InspectHostConfig = Field(default_factory=InspectHostConfig, alias="HostConfig")

    def id_mapping_options(self) -> IDMappingOptions:
        mappings = self.host_config.id_mappings
        if mappings is None:
            return IDMappingOptions()
        return IDMappingOptions(
            uid_map=[IDMap.parse(m) for m in mappings.uid_map],
            gid_map=[IDMap.parse(m) for m in mappings.gid_map],
        )


class ImageInspect(_Model):
    id: str = Field(alias="Id")
    repo_tags: list[str] | None = Field(default=None, alias="RepoTags")
    config: InspectConfig = Field(default_factory=InspectConfig, alias="Config")


class ContainerListEntry(_Model):
    id: str = Field(alias="Id")
    names: list[str] = Field(default_factory=lambda: list[str](), alias="Names")


class PullReport(_Model):
    stream: str = ""
    error: str = ""
    id: str = ""
    images: list[str] | None = None


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class PodmanClient:
    """Async client for the libpod REST API over a Unix socket."""

    def __init__(
        self,
        socket_path: str = "/run/podman/podman.sock",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._socket_path = socket_path
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            transport = self._transport or httpx.AsyncHTTPTransport(uds=self._socket_path)
            self._client = httpx.AsyncClient(
                transport=transport,
                base_url="http://d" + API_PREFIX,
                timeout=httpx.Timeout(30.0, read=None),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> None:
        """Turn a libpod error body into :class:`PodmanError`.

        libpod reports failures as::

            {"cause": "...", "message": "...", "response": 404}
        """
        if response.is_success:
            return
        message = response.reason_phrase or "unknown error"
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("cause") or message
        raise PodmanError(message, response.status_code)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise PodmanError(f"talking to Podman at {self._socket_path}: {e}") from e
        self._raise_for_error(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get(self, path: str, **kwargs: Any) -> Any:
        """GET request."""
        return await self._request("GET", path, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        """POST request."""
        return await self._request("POST", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        """DELETE request."""
        return await self._request("DELETE", path, **kwargs)

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    async def inspect_container(self, name: str) -> ContainerInspect:
        data = await self.get(f"/containers/{name}/json")
        return ContainerInspect.model_validate(data)

    async def list_containers(self) -> list[ContainerListEntry]:
        data = await self.get("/containers/json", params={"all": "true"})
        return [ContainerListEntry.model_validate(item) for item in data or []]

    async def create_container(self, name: str, image: str) -> str:
        """Create a container that is never started; returns its ID."""
        data = await self.post(
            "/containers/create",
            json={"name": name, "image": image, "command": ["/bin/sh"]},
        )
        return data["Id"]

    async def mount_container(self, container_id: str) -> str:
        path = await self.post(f"/containers/{container_id}/mount")
        if not isinstance(path, str) or not path:
            raise PodmanError(f"unexpected mount response for {container_id}: {path!r}")
        return path

    async def unmount_container(self, container_id: str) -> None:
        await self.post(f"/containers/{container_id}/unmount")

    async def remove_container(self, container_id: str) -> None:
        await self.delete(f"/containers/{container_id}", params={"force": "true"})

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    async def inspect_image(self, name: str) -> ImageInspect:
        data = await self.get(f"/images/{name}/json")
        return ImageInspect.model_validate(data)

    async def pull_image(self, reference: str, options: PullOptions) -> AsyncGenerator[PullReport, None]:
        """Stream the pull progress reports for *reference*.

        Raises:
            PodmanError: On an HTTP-level failure.
        """
        client = await self._get_client()
        params = {
            "reference": reference,
            "tlsVerify": "true" if options.tls_verify else "false",
            "policy": "always",
        }
        headers = {}
        if options.creds:
            user, _, password = options.creds.partition(":")
            auth = json.dumps({"username": user, "password": password})
            headers["X-Registry-Auth"] = base64.urlsafe_b64encode(auth.encode()).decode()
        try:
            async with client.stream("POST", "/images/pull", params=params, headers=headers) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for_error(response)
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        yield PullReport.model_validate_json(line)
                    except ValidationError:
                        logger.debug("Ignoring unparsable pull report line %r", line)
        except httpx.TransportError as e:
            raise PodmanError(f"talking to Podman at {self._socket_path}: {e}") from e


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------


def _is_not_found(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _NOT_FOUND_MARKERS)


class PodmanStore:
    """:class:`~bricklayer.builder.store.Store` backed by a Podman service."""

    def __init__(self, client: PodmanClient, state_dir: str):
        self._client = client
        self._state_dir = Path(state_dir)

    def _state_path(self, container_id: str) -> Path:
        return self._state_dir / f"{container_id}.json"

    def _load_record(self, container_id: str) -> BuilderRecord | None:
        path = self._state_path(container_id)
        try:
            return BuilderRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as e:
            raise StoreError(f"reading builder state {path}: {e}") from e

    async def open_existing(self, name: str) -> Builder:
        try:
            info = await self._client.inspect_container(name)
        except PodmanError as e:
            if e.code == 404:
                raise ContainerUnknownError(f"container not known: {name}") from e
            raise StoreError(str(e)) from e

        record = self._load_record(info.id)
        if record is not None:
            builder = Builder.from_record(record)
            builder.id_mappings = info.id_mapping_options()
            return builder
        return Builder(
            container_id=info.id,
            container_name=info.name,
            from_image=info.image_name,
            workdir=info.config.working_dir or "/",
            id_mappings=info.id_mapping_options(),
        )

    async def pull(self, ref: str, options: PullOptions, report: ReportSink | None = None) -> Builder:
        if options.decryption_keys:
            logger.warning("Podman pulls ignore decryption keys; pulling %s without them", ref)

        image_id = ""
        try:
            async with aclosing(self._client.pull_image(ref, options)) as reports:
                async for item in reports:
                    if item.error:
                        if _is_not_found(item.error):
                            raise ImageNotFoundError(item.error)
                        raise PullError(item.error)
                    if item.stream and report is not None:
                        report(item.stream.rstrip("\n"))
                    if item.id:
                        image_id = item.id
                    elif item.images:
                        image_id = item.images[0]
        except PodmanError as e:
            if e.code == 404 or (e.code is not None and 400 <= e.code < 500 and _is_not_found(str(e))):
                raise ImageNotFoundError(str(e)) from e
            raise PullError(str(e)) from e
        if not image_id:
            raise PullError(f"pull of {ref} finished without reporting an image")

        try:
            image = await self._client.inspect_image(image_id)
            image_name = get_image_name(ref, image.repo_tags or [])
            taken = [n.lstrip("/") for c in await self._client.list_containers() for n in c.names]
            name = working_container_name(image_name, taken)
            container_id = await self._client.create_container(name, image.id)
        except PodmanError as e:
            raise StoreError(f"creating working container from {ref}: {e}") from e

        try:
            try:
                info = await self._client.inspect_container(container_id)
            except PodmanError as e:
                raise StoreError(f"creating working container from {ref}: {e}") from e
            builder = Builder(
                container_id=container_id,
                container_name=name,
                from_image=image_name,
                workdir=image.config.working_dir or "/",
                id_mappings=info.id_mapping_options(),
            )
            await self.save(builder)
        except BaseException:
            await self._discard(container_id)
            raise

        logger.info("Created working container %s (%s) from %s", name, container_id[:12], image_name)
        return builder

    async def _discard(self, container_id: str) -> None:
        """Remove a container :meth:`pull` created but could not hand out."""
        try:
            await self._client.remove_container(container_id)
        except PodmanError as e:
            logger.warning("Failed to remove working container %s: %s", container_id[:12], e)
        try:
            self._state_path(container_id).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove state of container %s: %s", container_id[:12], e)

    async def mount(self, builder: Builder) -> str:
        try:
            builder.mount_point = await self._client.mount_container(builder.container_id)
        except PodmanError as e:
            raise StoreError(str(e)) from e
        return builder.mount_point

    async def unmount(self, builder: Builder) -> None:
        try:
            await self._client.unmount_container(builder.container_id)
        except PodmanError as e:
            raise StoreError(str(e)) from e
        builder.mount_point = ""

    async def delete(self, builder: Builder) -> None:
        try:
            await self._client.remove_container(builder.container_id)
        except PodmanError as e:
            if e.code != 404:
                raise StoreError(str(e)) from e
        try:
            self._state_path(builder.container_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StoreError(f"removing builder state: {e}") from e

    async def save(self, builder: Builder) -> None:
        path = self._state_path(builder.container_id)
        data = builder.to_record().model_dump_json(indent=2)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                os.unlink(tmp)
                raise
        except OSError as e:
            raise StoreError(f"writing builder state {path}: {e}") from e
