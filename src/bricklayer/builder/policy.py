# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Exclusion and ownership policy for one copy operation.

The effective exclude list is the ignore-file patterns (when a context
directory was given) followed by the explicit ``--exclude`` patterns,
so explicit patterns get the last word.  Ownership, mode and timestamp
overrides pass through unchanged; the only decision made here is that
content copied out of another container keeps its owners unless
``--chown`` says otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..ingest_options import IngestOptions, OptionValidationError, split_chown
from .constants import DEFAULT_IGNORE_FILES
from .paths import secure_join

logger = logging.getLogger(__name__)


class IgnoreFileError(OSError):
    """The ignore file could not be read."""


@dataclass(frozen=True)
class OwnershipPolicy:
    """Effective owner/mode/time overrides for ingested entries."""

    chown: str = ""
    chmod: int | None = None
    timestamp: int | None = None
    preserve_ownership: bool = False


def read_ignore_file(context_dir: str, ignore_file: str = "") -> tuple[list[str], str]:
    """Read exclude patterns from an ignore file.

    Args:
        context_dir: Directory the patterns are relative to.
        ignore_file: Explicit ignore file. When empty, the first of
            ``.containerignore`` / ``.dockerignore`` found in
            *context_dir* is used, if any.

    Returns:
        ``(patterns, path)`` where *path* is the file actually read, or
        ``""`` when no ignore file applied.

    Raises:
        IgnoreFileError: If an explicitly named file can't be read.
    """
    if ignore_file:
        path = Path(ignore_file)
    else:
        for name in DEFAULT_IGNORE_FILES:
            candidate = Path(context_dir) / name
            if candidate.is_file():
                path = candidate
                break
        else:
            return [], ""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise IgnoreFileError(e.errno, f"reading ignore file {str(path)!r}: {e.strerror}") from e

    patterns = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        patterns.append(line)
    logger.debug("Read %d exclude patterns from %s", len(patterns), path)
    return patterns, str(path)


def effective_excludes(
    context_dir: str,
    ignore_file: str,
    excludes: list[str],
) -> tuple[list[str], str]:
    """Merge ignore-file patterns with explicit excludes.

    Returns:
        ``(patterns, ignore_file_used)``.

    Raises:
        OptionValidationError: If *ignore_file* is set without
            *context_dir*.
        IgnoreFileError: If the ignore file can't be read.
    """
    if not context_dir:
        if ignore_file:
            raise OptionValidationError(
                "--ignorefile option requires that you specify a context dir using --contextdir"
            )
        return list(excludes), ""
    from_file, used = read_ignore_file(context_dir, ignore_file)
    return [*from_file, *excludes], used


def ownership_policy(options: IngestOptions, from_container: bool) -> OwnershipPolicy:
    """Compute overrides; cross-container copies preserve ownership."""
    return OwnershipPolicy(
        chown=options.chown,
        chmod=options.chmod,
        timestamp=options.timestamp,
        preserve_ownership=from_container and not options.chown,
    )


def _read_db(rootfs: str, relpath: str) -> list[list[str]]:
    try:
        path = secure_join(rootfs, relpath)
        with open(path, encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\n").split(":") for line in f if line.strip() and not line.startswith("#")]
    except FileNotFoundError:
        return []


def resolve_owner(rootfs: str, spec: str) -> tuple[int, int]:
    """Resolve ``user[:group]`` to container-relative IDs.

    Names are looked up in the container's ``/etc/passwd`` and
    ``/etc/group``.  A user given without a group gets that user's
    primary group, or, for an unlisted numeric user, the same number.

    Raises:
        LookupError: If a name isn't found in the container.
    """
    user, group = split_chown(spec)

    passwd = _read_db(rootfs, "etc/passwd")
    uid: int | None = None
    primary_gid: int | None = None
    if user.isdigit():
        uid = int(user)
        for fields in passwd:
            if len(fields) > 3 and fields[2] == user and fields[3].isdigit():
                primary_gid = int(fields[3])
                break
    else:
        for fields in passwd:
            if len(fields) > 3 and fields[0] == user and fields[2].isdigit() and fields[3].isdigit():
                uid, primary_gid = int(fields[2]), int(fields[3])
                break
        if uid is None:
            raise LookupError(f"user {user!r} not found in container's /etc/passwd")

    if group is None:
        return uid, primary_gid if primary_gid is not None else uid
    if group.isdigit():
        return uid, int(group)
    for fields in _read_db(rootfs, "etc/group"):
        if len(fields) > 2 and fields[0] == group and fields[2].isdigit():
            return uid, int(fields[2])
    raise LookupError(f"group {group!r} not found in container's /etc/group")


def forced_owner(rootfs: str, policy: OwnershipPolicy) -> tuple[int, int] | None:
    """Container-relative owner forced by *policy*, or ``None`` to keep each entry's own."""
    if policy.chown:
        return resolve_owner(rootfs, policy.chown)
    if policy.preserve_ownership:
        return None
    return 0, 0
