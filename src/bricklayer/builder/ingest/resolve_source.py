# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ingest step: resolve and mount the ``--from`` source, if any."""

from __future__ import annotations

from ..contexts import IngestContext, IngestState
from ..sources import SourceResolver
from ..store import PullOptions
from . import ingest_pipeline


@ingest_pipeline.step(order=400)
async def resolve_source(ctx: IngestContext) -> None:
    """Mount the source container, pulling it as an image if needed."""
    opts = ctx.opts
    if opts.source:
        resolver = SourceResolver(
            ctx.store,
            retry=opts.retry,
            retry_delay=opts.retry_delay,
            pull_options=PullOptions(
                tls_verify=opts.tls_verify,
                cert_dir=opts.cert_dir,
                creds=opts.creds,
                decryption_keys=list(opts.decryption_keys),
            ),
            cancel=ctx.cancel,
            report=None if opts.quiet else ctx.dim,
        )
        ctx.info(f"Resolving source {opts.source}")
        ctx.source = await resolver.acquire(opts.source, ctx.stack)
        if ctx.source.temporary:
            ctx.dim(f"Pulled {opts.source} into {ctx.source.builder.container_name}")
    ctx.advance(IngestState.SOURCE_READY)
