# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Add/copy operations against working containers.

An invocation is a pipeline of step functions (see
:mod:`bricklayer.builder.ingest`).  Each step receives the
:class:`IngestContext`, checks its own preconditions, and performs one
concern.  Resources acquired by the steps are released when the
context's exit stack closes, which happens on every path out of
:func:`run_ingest`.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any

from ..ingest_options import IngestOptions
from ..operations import OperationReporter, operation
from .contexts import IngestContext, IngestState
from .ingest import ingest_pipeline
from .models import HistoryEntry, Verb
from .store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Outcome of a committed add/copy."""

    content_type: str
    digest: str
    history_entry: HistoryEntry | None

    @property
    def history_digest(self) -> str:
        """The digest as it appears at the end of the history line."""
        return f"{self.content_type}:{self.digest}" if self.content_type else self.digest


async def run_ingest(ctx: IngestContext) -> None:
    """Run the ingest pipeline on *ctx*, releasing whatever it acquired.

    On failure ``ctx.state`` ends as ``FAILED`` and the error propagates
    after every pending release has been attempted.
    """
    try:
        async with ctx.stack:
            await ingest_pipeline.run(ctx)
    except BaseException:
        ctx.advance(IngestState.FAILED)
        raise


class IngestService:
    """Content ingestion into working containers."""

    def __init__(self, store: Store):
        self._store = store

    @operation(
        "ingest",
        description="{verb.value} into {container}",
        target_param="container",
    )
    async def ingest(
        self,
        progress: OperationReporter,
        *,
        verb: Verb,
        container: str,
        sources: list[str],
        dest: str = "",
        options: IngestOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> IngestResult:
        """Add or copy *sources* into *container*.

        Args:
            progress: Operation reporter (auto-injected)
            verb: ``ADD`` unpacks local archives, ``COPY`` doesn't.
            container: Target working container name or ID.
            sources: Paths, globs or URLs; relative to ``--from``'s root
                when ``options.source`` is set.
            dest: Destination inside the container; empty means the
                working directory.
            options: Validated options. If None, defaults are used.
            cancel: Set to stop the invocation at the next safe point.

        Returns:
            The committed digest and, when history is enabled, the
            appended entry.
        """
        ctx = IngestContext(
            verb=verb,
            container=container,
            sources=list(sources),
            dest=dest,
            opts=options or IngestOptions(),
            store=self._store,
            stack=AsyncExitStack(),
            progress=progress,
            cancel=cancel or asyncio.Event(),
        )
        await run_ingest(ctx)
        logger.debug("%s into %s committed: %s:%s", verb.value, container, ctx.content_type, ctx.digest)
        return IngestResult(
            content_type=ctx.content_type,
            digest=ctx.digest,
            history_entry=ctx.history_entry,
        )

    async def add(self, **kwargs: Any) -> IngestResult:
        return await self.ingest(verb=Verb.ADD, **kwargs)

    async def copy(self, **kwargs: Any) -> IngestResult:
        return await self.ingest(verb=Verb.COPY, **kwargs)
