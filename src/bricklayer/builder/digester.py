# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Running content digest for ingestion operations.

A :class:`CompositeDigester` holds one part per ingested source.  Each
part hashes a canonical header for every entry written (path, kind,
mode, owner, size, mtime, link target) followed by the entry's bytes,
so the result depends only on what landed in the container, never on
the order the host filesystem happened to list it in.

``restart()`` clears every part; it is called once at the start of each
top-level invocation.  ``digest()`` may be called any number of times
and never changes the state.
"""

from __future__ import annotations

import hashlib

DIGEST_ALGORITHM = "sha256"

# Content types of individual parts.
CONTENT_FILE = "file"
CONTENT_DIR = "dir"
CONTENT_URL = ""
CONTENT_MULTI = "multi"


class ContentDigester:
    """Hash for a single ingested source."""

    def __init__(self, content_type: str) -> None:
        self.content_type = content_type
        self._hash = hashlib.new(DIGEST_ALGORITHM)

    def write(self, data: bytes) -> int:
        self._hash.update(data)
        return len(data)

    def add_header(
        self,
        name: str,
        kind: str,
        mode: int,
        uid: int,
        gid: int,
        size: int,
        mtime: int,
        linkname: str = "",
    ) -> None:
        """Record one entry's metadata ahead of its content."""
        header = "\x00".join(
            [name, kind, f"{mode:o}", str(uid), str(gid), str(size), str(mtime), linkname]
        )
        self._hash.update(header.encode("utf-8", "surrogateescape") + b"\n")

    def hexdigest(self) -> str:
        return self._hash.copy().hexdigest()


class CompositeDigester:
    """Accumulates digests across the sources of one invocation."""

    def __init__(self) -> None:
        self._parts: list[ContentDigester] = []

    def restart(self) -> None:
        self._parts = []

    def start(self, content_type: str) -> ContentDigester:
        """Begin a new part and return it for writing."""
        part = ContentDigester(content_type)
        self._parts.append(part)
        return part

    @property
    def current(self) -> ContentDigester | None:
        return self._parts[-1] if self._parts else None

    def digest(self) -> tuple[str, str]:
        """Return ``(content_type, hex_digest)`` for everything so far.

        One part reports its own type and hash.  Several parts report
        ``multi`` and the hash of their comma-joined ``type:hex`` list.
        No parts yields ``("", "")``.
        """
        if not self._parts:
            return "", ""
        if len(self._parts) == 1:
            part = self._parts[0]
            return part.content_type, part.hexdigest()
        pieces = []
        for part in self._parts:
            prefix = f"{part.content_type}:" if part.content_type else ""
            pieces.append(prefix + part.hexdigest())
        combined = hashlib.new(DIGEST_ALGORITHM, ",".join(pieces).encode()).hexdigest()
        return CONTENT_MULTI, combined
