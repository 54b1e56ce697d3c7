# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Image/container store interface.

The ingestion core talks to container storage only through
:class:`Store`.  Every primitive is a coroutine.  ``pull`` makes a
single attempt; retrying is the caller's business.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from .constants import WORKING_CONTAINER_SUFFIX
from .models import Builder


class StoreError(Exception):
    """Failure reported by the store."""


class ContainerUnknownError(StoreError):
    """No working container with the requested name or ID exists."""


class ImageNotFoundError(StoreError):
    """The image reference could not be resolved; retrying won't help."""


class PullError(StoreError):
    """A pull attempt failed; another attempt may succeed."""


@dataclass(frozen=True)
class PullOptions:
    """Per-pull settings handed through to the store."""

    tls_verify: bool = True
    cert_dir: str = ""
    creds: str = ""
    decryption_keys: list[str] = field(default_factory=lambda: list[str]())


ReportSink = Callable[[str], None]


class Store(Protocol):
    async def open_existing(self, name: str) -> Builder:
        """Open a working container by name or ID.

        Raises:
            ContainerUnknownError: If no such container exists.
        """
        ...

    async def pull(self, ref: str, options: PullOptions, report: ReportSink | None = None) -> Builder:
        """Pull *ref* once and create a working container from it."""
        ...

    async def mount(self, builder: Builder) -> str:
        """Mount *builder*'s root filesystem; sets and returns its mount point."""
        ...

    async def unmount(self, builder: Builder) -> None:
        """Unmount *builder*; clears its mount point."""
        ...

    async def delete(self, builder: Builder) -> None:
        ...

    async def save(self, builder: Builder) -> None:
        ...


def get_image_name(name: str, names: Iterable[str]) -> str:
    """Pick the display name of a pulled image.

    The first of *names* containing the requested *name* wins, then the
    first of *names*, then *name* itself.
    """
    names = list(names)
    for candidate in names:
        if name in candidate:
            return candidate
    if names:
        return names[0]
    return name


def working_container_name(image: str, taken: Iterable[str]) -> str:
    """``<image-basename>-working-container``, suffixed ``-N`` until unused."""
    base = image.rsplit("/", 1)[-1]
    # Drop tag and digest.
    base = base.split("@", 1)[0].split(":", 1)[0]
    base = re.sub(r"[^a-zA-Z0-9_.-]", "", base) or "working"
    name = base + WORKING_CONTAINER_SUFFIX
    taken = set(taken)
    candidate = name
    n = 1
    while candidate in taken:
        candidate = f"{name}-{n}"
        n += 1
    return candidate
