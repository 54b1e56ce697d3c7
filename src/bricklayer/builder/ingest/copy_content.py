# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Ingest step: mount the target and copy the sources into it."""

from __future__ import annotations

from ...operations import OperationError
from ..contexts import IngestContext, IngestState
from ..copier import ContentCopier, CopyError, CopyRequest
from ..fetch import FetchOptions
from ..sources import mounted
from . import ingest_pipeline


@ingest_pipeline.step(order=500)
async def copy_content(ctx: IngestContext) -> None:
    """Copy every source into the mounted target and snapshot the digest."""
    ctx.check_cancelled()
    builder = ctx.builder
    assert builder is not None, "open_target must run first"
    opts = ctx.opts

    sources = list(ctx.sources)
    context_dir = opts.context_dir
    source_maps = None
    if ctx.source is not None:
        sources = [ctx.source.path(s) for s in sources]
        context_dir = ctx.source.path(opts.context_dir)
        source_maps = ctx.source.builder.id_mappings

    if opts.link:
        ctx.dim("Independent layer requested; content is copied into the container root")

    request = CopyRequest(
        sources=sources,
        verb=ctx.verb,
        dest=ctx.dest,
        context_dir=context_dir,
        excludes=ctx.excludes,
        ownership=ctx.ownership,
        source_id_mappings=source_maps,
        parents=opts.parents,
        link=opts.link,
        fetch=FetchOptions(
            tls_verify=opts.tls_verify,
            cert_dir=opts.cert_dir,
            retry=opts.retry,
            retry_delay=opts.retry_delay,
            checksum=opts.checksum,
        ),
    )

    async with mounted(ctx.store, builder, ctx.container):
        try:
            await ContentCopier(builder, request).run()
        except CopyError as e:
            raise OperationError(f'adding content to container "{builder.container_id}": {e}') from e

    ctx.content_type, ctx.digest = builder.content_digester.digest()
    ctx.advance(IngestState.INGESTED)
