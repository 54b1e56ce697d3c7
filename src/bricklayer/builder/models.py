# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Builder, ID mapping and history types."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from .digester import CompositeDigester


class Verb(enum.Enum):
    """Which ingestion command is running.

    The verb decides whether local archives are unpacked: ``ADD``
    extracts them in place, ``COPY`` copies them as opaque files.
    """

    ADD = "ADD"
    COPY = "COPY"

    @property
    def extracts_local_archives(self) -> bool:
        if self is Verb.ADD:
            return True
        if self is Verb.COPY:
            return False
        raise AssertionError(f"unhandled verb {self!r}")


class IDMap(BaseModel):
    """One contiguous range of a user namespace ID map."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    container_id: int = Field(alias="containerID", ge=0)
    host_id: int = Field(alias="hostID", ge=0)
    size: int = Field(ge=1)

    @classmethod
    def parse(cls, text: str) -> IDMap:
        """Parse ``container:host:size`` (the form Podman reports)."""
        parts = text.split(":")
        if len(parts) != 3:
            raise ValueError(f"badly formatted ID mapping {text!r}: expected container:host:size")
        return cls(container_id=int(parts[0]), host_id=int(parts[1]), size=int(parts[2]))


def _translate(maps: list[IDMap], value: int, to_host: bool) -> int:
    # An empty map is the identity mapping.
    if not maps:
        return value
    for m in maps:
        start, other = (m.container_id, m.host_id) if to_host else (m.host_id, m.container_id)
        if start <= value < start + m.size:
            return other + (value - start)
    direction = "host" if to_host else "container"
    raise LookupError(f"ID {value} is not mapped to a {direction} ID")


class IDMappingOptions(BaseModel):
    """UID and GID maps between a container's namespace and the host."""

    uid_map: list[IDMap] = Field(default_factory=lambda: list[IDMap]())
    gid_map: list[IDMap] = Field(default_factory=lambda: list[IDMap]())

    def uid_to_host(self, uid: int) -> int:
        return _translate(self.uid_map, uid, to_host=True)

    def gid_to_host(self, gid: int) -> int:
        return _translate(self.gid_map, gid, to_host=True)

    def uid_to_container(self, uid: int) -> int:
        return _translate(self.uid_map, uid, to_host=False)

    def gid_to_container(self, gid: int) -> int:
        return _translate(self.gid_map, gid, to_host=False)


class HistoryEntry(BaseModel):
    """One append-only line of a Builder's history."""

    model_config = ConfigDict(frozen=True)

    created: datetime
    created_by: str
    empty_layer: bool = False


class BuilderRecord(BaseModel):
    """Persisted form of a :class:`Builder`."""

    container_id: str
    container_name: str
    from_image: str = ""
    workdir: str = "/"
    id_mappings: IDMappingOptions = Field(default_factory=IDMappingOptions)
    history: list[HistoryEntry] = Field(default_factory=lambda: list[HistoryEntry]())


@dataclass
class Builder:
    """A working container under construction.

    ``mount_point`` is non-empty exactly while the container's root
    filesystem is mounted.  ``content_digester`` is runtime state and
    is never persisted.
    """

    container_id: str
    container_name: str
    from_image: str = ""
    workdir: str = "/"
    id_mappings: IDMappingOptions = field(default_factory=IDMappingOptions)
    history: list[HistoryEntry] = field(default_factory=lambda: list[HistoryEntry]())
    mount_point: str = ""
    content_digester: CompositeDigester = field(default_factory=CompositeDigester)

    @property
    def mounted(self) -> bool:
        return bool(self.mount_point)

    def add_history(self, created_by: str, created: datetime | None = None) -> HistoryEntry:
        entry = HistoryEntry(
            created=created or datetime.now(timezone.utc),
            created_by=created_by,
        )
        self.history.append(entry)
        return entry

    def to_record(self) -> BuilderRecord:
        return BuilderRecord(
            container_id=self.container_id,
            container_name=self.container_name,
            from_image=self.from_image,
            workdir=self.workdir,
            id_mappings=self.id_mappings,
            history=list(self.history),
        )

    @classmethod
    def from_record(cls, record: BuilderRecord) -> Builder:
        return cls(
            container_id=record.container_id,
            container_name=record.container_name,
            from_image=record.from_image,
            workdir=record.workdir,
            id_mappings=record.id_mappings,
            history=list(record.history),
        )
