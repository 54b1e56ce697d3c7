# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Option schema and validation for the ``add`` and ``copy`` verbs.

This module defines the **ingest option schema**, the single list of
every option an ingestion accepts.  The CLI maps its flags onto these
keys and library callers build the same plain dict; both go through
:func:`parse_options`, so every argument error is raised here, before
any container is opened, mounted or pulled.

Schema format
-------------
The schema is a JSON object with a ``version`` integer and an ordered
array of ``sections``::

    {
        "version": 1,
        "sections": [
            {"id": "source", "title": "Content Source", "options": [...]},
            ...
        ]
    }

Option::

    {
        "key": "ignore_file",              // dict key
        "type": "string",                  // boolean | string | integer | array
        "title": "Ignore File",
        "description": "Path to .containerignore file",
        "default": "",
        "requires": {"context_dir": true}  // optional
    }

``requires`` lists prerequisites that must hold whenever the option is
set to a non-default value.  A prerequisite of ``true`` on a string
option means "must be non-empty".

There is no archive-extraction option: the verb decides it (``ADD``
extracts, ``COPY`` never does).
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import BricklayerConfig


# =============================================================================
# Schema Definition
# =============================================================================

INGEST_SCHEMA: dict[str, Any] = {
    "version": 1,
    "sections": [
        {
            "id": "source",
            "title": "Content Source",
            "options": [
                {
                    "key": "source",
                    "type": "string",
                    "title": "From",
                    "description": "Use the named container's or image's root directory as the source root",
                    "default": "",
                },
                {
                    "key": "context_dir",
                    "type": "string",
                    "title": "Context Directory",
                    "description": "Context directory path",
                    "default": "",
                },
                {
                    "key": "ignore_file",
                    "type": "string",
                    "title": "Ignore File",
                    "description": "Path to .containerignore file",
                    "default": "",
                    "requires": {"context_dir": True},
                    "requires_message": "--ignorefile option requires that you specify a context dir using --contextdir",
                },
                {
                    "key": "excludes",
                    "type": "array",
                    "items": {"type": "string"},
                    "title": "Exclude",
                    "description": "Exclude pattern when copying files",
                    "default": [],
                },
                {
                    "key": "checksum",
                    "type": "string",
                    "title": "Checksum",
                    "description": "Checksum the HTTP source content (algorithm:hex)",
                    "default": "",
                },
            ],
        },
        {
            "id": "ownership",
            "title": "Ownership and Metadata",
            "options": [
                {
                    "key": "chown",
                    "type": "string",
                    "title": "Owner",
                    "description": "Set the user and group ownership of the destination content",
                    "default": "",
                },
                {
                    "key": "chmod",
                    "type": "string",
                    "title": "Mode",
                    "description": "Set the access permissions of the destination content",
                    "default": "",
                },
                {
                    "key": "timestamp",
                    "type": "string",
                    "title": "Timestamp",
                    "description": "Set timestamps on new content to seconds after the epoch",
                    "default": "",
                },
                {
                    "key": "parents",
                    "type": "boolean",
                    "title": "Parents",
                    "description": "Preserve leading directories in the paths of items being copied",
                    "default": False,
                },
                {
                    "key": "link",
                    "type": "boolean",
                    "title": "Link",
                    "description": "Enable layer caching for this operation (creates an independent layer)",
                    "default": False,
                },
            ],
        },
        {
            "id": "pull",
            "title": "Image Pull",
            "options": [
                {
                    "key": "retry",
                    "type": "integer",
                    "title": "Retry",
                    "description": "Number of times to retry in case of failure when performing pull",
                    "default": 3,
                },
                {
                    "key": "retry_delay",
                    "type": "string",
                    "title": "Retry Delay",
                    "description": "Delay between retries in case of pull failures",
                    "default": "2s",
                },
                {
                    "key": "tls_verify",
                    "type": "boolean",
                    "title": "TLS Verify",
                    "description": "Require HTTPS and verify certificates when pulling images and fetching URLs",
                    "default": True,
                },
                {
                    "key": "cert_dir",
                    "type": "string",
                    "title": "Certificate Directory",
                    "description": "Use certificates at the specified path to access registries and HTTPS sources",
                    "default": "",
                },
                {
                    "key": "creds",
                    "type": "string",
                    "title": "Credentials",
                    "description": "[username[:password]] for accessing registries when pulling images",
                    "default": "",
                },
                {
                    "key": "decryption_keys",
                    "type": "array",
                    "items": {"type": "string"},
                    "title": "Decryption Keys",
                    "description": "Keys needed to decrypt a pulled image",
                    "default": [],
                },
            ],
        },
        {
            "id": "output",
            "title": "Output",
            "options": [
                {
                    "key": "quiet",
                    "type": "boolean",
                    "title": "Quiet",
                    "description": "Don't output a digest of the newly-added/copied content",
                    "default": False,
                },
                {
                    "key": "add_history",
                    "type": "boolean",
                    "title": "Add History",
                    "description": "Add an entry for this operation to the image's history",
                    "default": False,
                },
            ],
        },
    ],
}


def get_ingest_schema_json() -> str:
    """Return the ingest schema as a compact JSON string."""
    return json.dumps(INGEST_SCHEMA, separators=(",", ":"))


# =============================================================================
# Defaults & Validation
# =============================================================================

def _iter_options() -> list[dict[str, Any]]:
    return [option for section in INGEST_SCHEMA["sections"] for option in section["options"]]


_DEFAULTS: dict[str, Any] = {o["key"]: o["default"] for o in _iter_options()}
_TYPES: dict[str, str] = {o["key"]: str(o["type"]) for o in _iter_options()}
_REQUIRES: dict[str, tuple[dict[str, Any], str]] = {
    o["key"]: (o["requires"], o.get("requires_message", ""))
    for o in _iter_options()
    if "requires" in o
}

# Python type expected for each schema type
_TYPE_CHECK: dict[str, type | tuple[type, ...]] = {
    "boolean": bool,
    "string": str,
    "integer": int,
    "array": list,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_CHECKSUM = re.compile(r"^([a-z0-9]+):([a-f0-9]+)$")
_CHECKSUM_ALGORITHMS = frozenset({"sha256", "sha384", "sha512"})


class OptionValidationError(Exception):
    """Raised when an option dict fails validation."""


@dataclass
class IngestOptions:
    """Validated ingestion options.

    Built by :func:`parse_options`.  String-typed schema values that
    carry numbers (``timestamp``, ``chmod``, ``retry_delay``) are stored
    here already converted, so later stages never parse user input.
    """

    source: str = ""
    context_dir: str = ""
    ignore_file: str = ""
    excludes: list[str] = field(default_factory=lambda: list[str]())
    checksum: str = ""
    chown: str = ""
    chmod: int | None = None
    timestamp: int | None = None
    parents: bool = False
    link: bool = False
    retry: int = 3
    retry_delay: float = 2.0
    tls_verify: bool = True
    cert_dir: str = ""
    creds: str = ""
    decryption_keys: list[str] = field(default_factory=lambda: list[str]())
    quiet: bool = False
    add_history: bool = False


def parse_duration(value: str) -> float:
    """Parse a duration such as ``"2s"``, ``"500ms"`` or ``"1m30s"``.

    A bare number is taken as seconds.

    Raises:
        ValueError: If *value* is not a duration.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if seconds < 0:
            raise ValueError(f"negative duration {value!r}")
        return seconds

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


def parse_timestamp(value: str) -> int:
    """Parse an epoch-seconds timestamp (base-10 integer)."""
    text = value.strip()
    if not re.fullmatch(r"[+-]?\d+", text):
        raise ValueError(f"invalid syntax {value!r}")
    return int(text, 10)


def parse_chmod(value: str) -> int:
    """Parse an octal permission string such as ``"0755"``."""
    text = value.strip()
    if not re.fullmatch(r"0?[0-7]{1,4}", text):
        raise ValueError(f"invalid mode {value!r}")
    mode = int(text, 8)
    if mode > 0o7777:
        raise ValueError(f"invalid mode {value!r}")
    return mode


def split_chown(value: str) -> tuple[str, str | None]:
    """Split ``user[:group]``; the group is ``None`` when omitted."""
    user, sep, group = value.partition(":")
    if not user or (sep and not group) or ":" in group:
        raise ValueError(f"invalid owner {value!r}: expected user[:group]")
    return user, (group if sep else None)


def _satisfies(value: Any, required: Any) -> bool:
    if required is True and isinstance(value, str):
        return bool(value)
    return value == required


def parse_options(raw: dict[str, Any], config: BricklayerConfig | None = None) -> IngestOptions:
    """Parse and validate an option dict into :class:`IngestOptions`.

    - Unknown keys are rejected.
    - Missing keys get their schema defaults, or the configured
      defaults for ``retry``, ``retry_delay`` and ``add_history`` when
      *config* is given.
    - Type mismatches are rejected.
    - Constraint violations (``requires``) are rejected.
    - ``timestamp``, ``chmod``, ``chown``, ``retry_delay`` and
      ``checksum`` are parsed here so malformed values fail before any
      I/O.

    Raises:
        OptionValidationError: On validation failure.
    """
    unknown = set(raw.keys()) - set(_DEFAULTS.keys())
    if unknown:
        raise OptionValidationError(f"Unknown options: {', '.join(sorted(unknown))}")

    defaults = dict(_DEFAULTS)
    if config is not None:
        defaults.update(
            retry=config.retry,
            retry_delay=config.retry_delay,
            add_history=config.add_history,
        )
    merged: dict[str, Any] = {**defaults, **raw}

    for key, value in merged.items():
        expected_type = _TYPES[key]
        py_type = _TYPE_CHECK[expected_type]
        # bool is a subclass of int; don't let True pass as an integer.
        if not isinstance(value, py_type) or (expected_type == "integer" and isinstance(value, bool)):
            raise OptionValidationError(
                f"Option '{key}' must be {expected_type}, got {type(value).__name__}"
            )
        if expected_type == "array":
            for i, item in enumerate(value):
                if not isinstance(item, str):
                    raise OptionValidationError(
                        f"{key}[{i}] must be a string, got {type(item).__name__}"
                    )

    for key, (requires, message) in _REQUIRES.items():
        if merged[key] == _DEFAULTS[key]:
            continue
        for other, required in requires.items():
            if not _satisfies(merged[other], required):
                raise OptionValidationError(message or f"{key} requires {other}")

    if merged["retry"] < 0:
        raise OptionValidationError(f"--retry must not be negative, got {merged['retry']}")

    try:
        retry_delay = parse_duration(merged["retry_delay"])
    except ValueError as e:
        raise OptionValidationError(
            f"unable to parse value provided {merged['retry_delay']!r} as --retry-delay: {e}"
        ) from e

    timestamp: int | None = None
    if merged["timestamp"]:
        try:
            timestamp = parse_timestamp(merged["timestamp"])
        except ValueError as e:
            raise OptionValidationError(
                f"parsing timestamp value {merged['timestamp']!r}: {e}"
            ) from e

    chmod: int | None = None
    if merged["chmod"]:
        try:
            chmod = parse_chmod(merged["chmod"])
        except ValueError as e:
            raise OptionValidationError(f"parsing --chmod value: {e}") from e

    if merged["chown"]:
        try:
            split_chown(merged["chown"])
        except ValueError as e:
            raise OptionValidationError(f"parsing --chown value: {e}") from e

    if merged["checksum"]:
        match = _CHECKSUM.match(merged["checksum"])
        if not match or match.group(1) not in _CHECKSUM_ALGORITHMS:
            raise OptionValidationError(f"invalid --checksum value {merged['checksum']!r}")

    return IngestOptions(
        source=merged["source"],
        context_dir=merged["context_dir"],
        ignore_file=merged["ignore_file"],
        excludes=list(merged["excludes"]),
        checksum=merged["checksum"],
        chown=merged["chown"],
        chmod=chmod,
        timestamp=timestamp,
        parents=merged["parents"],
        link=merged["link"],
        retry=merged["retry"],
        retry_delay=retry_delay,
        tls_verify=merged["tls_verify"],
        cert_dir=merged["cert_dir"],
        creds=merged["creds"],
        decryption_keys=list(merged["decryption_keys"]),
        quiet=merged["quiet"],
        add_history=merged["add_history"],
    )
