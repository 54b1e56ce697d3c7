# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ingest step: append history and save the target."""

from __future__ import annotations

from ...operations import OperationError
from ..constants import HISTORY_PREFIX
from ..contexts import IngestContext, IngestState
from ..store import StoreError
from . import ingest_pipeline


def history_line(verb: str, content_type: str, digest: str) -> str:
    """``/bin/sh -c #(nop) <VERB> [<type>:]<hex>``"""
    prefix = f"{content_type}:" if content_type else ""
    return f"{HISTORY_PREFIX} {verb} {prefix}{digest}"


@ingest_pipeline.step(order=800)
async def commit(ctx: IngestContext) -> None:
    """Record the history entry (when enabled) and persist the builder."""
    builder = ctx.builder
    assert builder is not None, "open_target must run first"

    if ctx.opts.add_history:
        ctx.history_entry = builder.add_history(history_line(ctx.verb.value, ctx.content_type, ctx.digest))
    try:
        await ctx.store.save(builder)
    except StoreError as e:
        raise OperationError(f'saving information about container "{builder.container_id}": {e}') from e
    ctx.advance(IngestState.COMMITTED)
