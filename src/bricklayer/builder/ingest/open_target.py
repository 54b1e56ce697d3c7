# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ingest step: open the target working container."""

from __future__ import annotations

from ...operations import OperationError
from ..contexts import IngestContext, IngestState
from ..store import StoreError
from . import ingest_pipeline


@ingest_pipeline.step(order=300)
async def open_target(ctx: IngestContext) -> None:
    """Open the target and restart its content digest."""
    ctx.check_cancelled()
    try:
        ctx.builder = await ctx.store.open_existing(ctx.container)
    except StoreError as e:
        raise OperationError(f'reading build container "{ctx.container}": {e}') from e

    ctx.builder.content_digester.restart()
    ctx.dim(f"Target: {ctx.builder.container_name or ctx.builder.container_id}")
    ctx.advance(IngestState.TARGET_OPEN)
