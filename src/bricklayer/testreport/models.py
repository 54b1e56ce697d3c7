# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Subset of the OCI runtime spec produced by the snapshot tool.

Field aliases are the OCI JSON names; serialize with
``model_dump_json(by_alias=True, exclude_none=True)``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

OCI_VERSION = "1.2.0"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Box(_Model):
    height: int
    width: int


class User(_Model):
    uid: int
    gid: int
    additional_gids: list[int] | None = Field(default=None, alias="additionalGids")


class LinuxCapabilities(_Model):
    bounding: list[str] | None = None
    effective: list[str] | None = None
    inheritable: list[str] | None = None
    permitted: list[str] | None = None
    ambient: list[str] | None = None


class POSIXRlimit(_Model):
    type: str
    hard: int
    soft: int


class Process(_Model):
    terminal: bool = False
    console_size: Box | None = Field(default=None, alias="consoleSize")
    user: User
    args: list[str] = Field(default_factory=lambda: list[str]())
    env: list[str] = Field(default_factory=lambda: list[str]())
    cwd: str
    capabilities: LinuxCapabilities | None = None
    rlimits: list[POSIXRlimit] | None = None
    no_new_privileges: bool = Field(default=False, alias="noNewPrivileges")
    oom_score_adj: int | None = Field(default=None, alias="oomScoreAdj")


class Mount(_Model):
    destination: str
    type: str = ""
    source: str = ""
    options: list[str] = Field(default_factory=lambda: list[str]())


class LinuxIDMapping(_Model):
    container_id: int = Field(alias="containerID")
    host_id: int = Field(alias="hostID")
    size: int


class Linux(_Model):
    uid_mappings: list[LinuxIDMapping] | None = Field(default=None, alias="uidMappings")
    gid_mappings: list[LinuxIDMapping] | None = Field(default=None, alias="gidMappings")
    sysctl: dict[str, str] | None = None


class Spec(_Model):
    oci_version: str = Field(default=OCI_VERSION, alias="ociVersion")
    hostname: str = ""
    process: Process | None = None
    mounts: list[Mount] | None = None
    linux: Linux | None = None


class SpecReport(_Model):
    """Top-level document: ``{"spec": {...}}``."""

    spec: Spec = Field(default_factory=Spec)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
