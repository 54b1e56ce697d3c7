# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Context dataclass passed through the ingest pipeline steps."""

from __future__ import annotations

import asyncio
import enum
from contextlib import AsyncExitStack
from dataclasses import dataclass, field

from ..ingest_options import IngestOptions
from ..operations import OperationCancelled, OperationReporter
from .models import Builder, HistoryEntry, Verb
from .policy import OwnershipPolicy
from .sources import Source
from .store import Store


class IngestState(enum.Enum):
    UNBOUND = "Unbound"
    TARGET_OPEN = "TargetOpen"
    SOURCE_READY = "SourceReady"
    INGESTED = "Ingested"
    SOURCE_CLEANED = "SourceCleaned"
    COMMITTED = "Committed"
    FAILED = "Failed"


@dataclass
class IngestContext:
    """Context for one add/copy invocation.

    Steps advance ``state`` as they complete.  Anything a step acquires
    that must be released (mounts, temporary containers) goes on
    ``stack``; the service closes the stack when the pipeline ends,
    successful or not.

    Steps should guard their own preconditions (e.g. only resolve a
    source when ``opts.source`` is set).
    """

    verb: Verb
    container: str
    sources: list[str]
    dest: str
    opts: IngestOptions
    store: Store
    stack: AsyncExitStack
    progress: OperationReporter | None
    cancel: asyncio.Event = field(default_factory=asyncio.Event)

    state: IngestState = IngestState.UNBOUND

    # Built up by pipeline steps
    excludes: list[str] = field(default_factory=lambda: list[str]())
    ignore_file: str = ""
    ownership: OwnershipPolicy = field(default_factory=OwnershipPolicy)
    builder: Builder | None = None
    source: Source | None = None
    content_type: str = ""
    digest: str = ""
    history_entry: HistoryEntry | None = None

    def info(self, msg: str) -> None:
        if self.progress:
            self.progress.info(msg)

    def dim(self, msg: str) -> None:
        if self.progress:
            self.progress.dim(msg)

    def advance(self, state: IngestState) -> None:
        self.state = state

    def check_cancelled(self) -> None:
        if self.cancel.is_set():
            raise OperationCancelled(f'{self.verb.value} into "{self.container}": cancelled')
