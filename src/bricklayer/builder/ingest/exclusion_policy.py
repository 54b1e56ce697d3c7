# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ingest step: work out excludes and ownership overrides."""

from __future__ import annotations

from ...operations import OperationError
from ..contexts import IngestContext
from ..policy import IgnoreFileError, effective_excludes, ownership_policy
from . import ingest_pipeline


@ingest_pipeline.step(order=450)
async def exclusion_policy(ctx: IngestContext) -> None:
    """Merge ignore-file and explicit excludes; decide ownership."""
    opts = ctx.opts
    context_dir = opts.context_dir
    if ctx.source is not None and context_dir:
        context_dir = ctx.source.path(context_dir)
    try:
        ctx.excludes, ctx.ignore_file = effective_excludes(context_dir, opts.ignore_file, opts.excludes)
    except IgnoreFileError as e:
        raise OperationError(str(e)) from e
    if ctx.ignore_file:
        ctx.dim(f"Using ignore file {ctx.ignore_file}")
    ctx.ownership = ownership_policy(opts, from_container=ctx.source is not None)
