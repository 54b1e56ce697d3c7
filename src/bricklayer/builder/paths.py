# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Path resolution confined to a container root."""

from __future__ import annotations

import os
import posixpath

# Arbitrary; guards against symlink loops.
_MAX_LINK_HOPS = 255


def secure_join(root: str, path: str) -> str:
    """Join *path* onto *root*, resolving symlinks as if *root* were ``/``.

    Absolute symlink targets restart from *root* and ``..`` never climbs
    above it, so the result always lies inside *root*.  Components that
    don't exist yet are appended verbatim.

    Raises:
        OSError: On a symlink loop.
    """
    root = os.path.abspath(root)
    pending = [p for p in reversed(path.split("/")) if p]
    resolved: list[str] = []
    hops = 0
    while pending:
        part = pending.pop()
        if part == ".":
            continue
        if part == "..":
            if resolved:
                resolved.pop()
            continue
        candidate = os.path.join(root, *resolved, part)
        if os.path.islink(candidate):
            hops += 1
            if hops > _MAX_LINK_HOPS:
                raise OSError(40, f"too many levels of symbolic links: {path!r}")
            target = os.readlink(candidate)
            if target.startswith("/"):
                resolved = []
            pending.extend(p for p in reversed(target.split("/")) if p)
            continue
        resolved.append(part)
    return os.path.join(root, *resolved)


def container_path(workdir: str, path: str) -> str:
    """Absolute in-container path for *path*, relative to *workdir* unless absolute."""
    if not path:
        path = workdir or "/"
    elif not path.startswith("/"):
        path = posixpath.join(workdir or "/", path)
    return "/" + posixpath.normpath(path).lstrip("/")
