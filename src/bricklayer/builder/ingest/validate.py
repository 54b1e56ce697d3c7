# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ingest step: reject bad arguments before touching the store."""

from __future__ import annotations

from ...ingest_options import OptionValidationError
from ..contexts import IngestContext
from . import ingest_pipeline


@ingest_pipeline.step(order=100)
async def validate(ctx: IngestContext) -> None:
    """Check container, sources and context-dir requirements."""
    if not ctx.container:
        raise OptionValidationError("container ID must be specified")
    if not ctx.sources:
        raise OptionValidationError("src must be specified")
    if ctx.opts.ignore_file and not ctx.opts.context_dir:
        raise OptionValidationError(
            "--ignorefile option requires that you specify a context dir using --contextdir"
        )
    if ctx.opts.parents and ctx.verb.extracts_local_archives:
        raise OptionValidationError(f"--parents is not supported by {ctx.verb.value}")
