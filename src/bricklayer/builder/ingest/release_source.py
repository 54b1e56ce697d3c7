# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ingest step: unmount the source and delete it if it was pulled."""

from __future__ import annotations

from ..contexts import IngestContext, IngestState
from . import ingest_pipeline


@ingest_pipeline.step(order=600)
async def release_source(ctx: IngestContext) -> None:
    """Run the source's release obligations now, so their errors are fatal."""
    if ctx.source is not None:
        await ctx.stack.aclose()
        ctx.dim(f"Released source {ctx.source.ref}")
    ctx.advance(IngestState.SOURCE_CLEANED)
