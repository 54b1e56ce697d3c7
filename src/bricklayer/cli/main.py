#!/usr/bin/env python3
# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later
"""
bricklayer CLI - Main entry point.

Usage:
    bricklayer [OPTIONS] COMMAND [ARGS]...

Add or copy files, directories and URLs into working containers,
recording a content digest for each operation.
"""

import asyncio
import logging
import os
import signal
from typing import Annotated, Any, Optional

import typer
from rich.logging import RichHandler

from . import __version__
from ..builder import IngestService, Verb
from ..config import BricklayerConfig, load_config
from ..ingest_options import OptionValidationError, parse_options
from ..operations import OperationReporter
from ..podman_client import PodmanClient, PodmanStore
from .async_typer import AsyncTyper
from .decorators import report_errors
from .output import out


# Create the main Typer app
app = AsyncTyper(
    name="bricklayer",
    help="Add and copy content into working containers",
    add_completion=False,
    no_args_is_help=True,
)

# Flags end at the first positional argument; anything after it is a path.
_POSITIONAL_ONLY = {"allow_interspersed_args": False}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        out.info(f"bricklayer version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option(
        "warning",
        "--log-level",
        help="Logging level: debug, info, warning or error.",
    ),
    socket: Optional[str] = typer.Option(
        None,
        "--socket",
        help="Podman API socket (default: from config or BRICKLAYER_SOCKET).",
    ),
) -> None:
    """
    bricklayer - build container images one layer of content at a time.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        out.error(f"Unknown log level: {log_level}")
        raise typer.Exit(1)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=out.console, show_path=False)],
    )

    config = load_config()
    if socket:
        config = BricklayerConfig(
            socket_path=socket,
            state_dir=config.state_dir,
            retry=config.retry,
            retry_delay=config.retry_delay,
            add_history=config.add_history,
        )
    ctx.obj = config


def split_args(args: list[str]) -> tuple[str, list[str], str]:
    """Split ``CONTAINER SRC... [DEST]``.

    With more than one path after the container, the last one is the
    destination.

    Raises:
        OptionValidationError: If the container or source is missing, or
            an option was given after the container name.
    """
    if not args:
        raise OptionValidationError("container ID must be specified")
    container, paths = args[0], list(args[1:])
    if not paths:
        raise OptionValidationError("src must be specified")
    for arg in paths:
        if arg.startswith("-") and arg != "-":
            raise OptionValidationError(
                f"no options ({arg}) can be specified after the image or container name"
            )
    dest = ""
    if len(paths) > 1:
        dest = paths.pop()
    return container, paths, dest


# Options shared by ``add`` and ``copy``.
Paths = Annotated[list[str], typer.Argument(metavar="CONTAINER SRC... [DEST]", show_default=False)]
AddHistory = Annotated[Optional[bool], typer.Option(
    "--add-history/--no-add-history",
    help="Add an entry for this operation to the image's history (BRICKLAYER_HISTORY overrides the default).",
    show_default=False,
)]
CertDir = Annotated[str, typer.Option("--cert-dir", help="Certificates for registries and HTTPS sources.")]
Checksum = Annotated[str, typer.Option("--checksum", help="Checksum the HTTP source content (algorithm:hex).")]
Chown = Annotated[str, typer.Option("--chown", help="Set the user and group ownership of the destination content.")]
Chmod = Annotated[str, typer.Option("--chmod", help="Set the access permissions of the destination content.")]
Creds = Annotated[str, typer.Option("--creds", help="[username[:password]] for pulling images.", hidden=True)]
Link = Annotated[bool, typer.Option("--link", help="Create an independent layer for this operation.")]
From = Annotated[str, typer.Option("--from", help="Use this container's or image's root as the source root.")]
DecryptionKeys = Annotated[Optional[list[str]], typer.Option(
    "--decryption-key", help="Key needed to decrypt a pulled image.", hidden=True,
)]
Excludes = Annotated[Optional[list[str]], typer.Option("--exclude", help="Exclude pattern when copying files.")]
IgnoreFile = Annotated[str, typer.Option("--ignorefile", help="Path to a .containerignore file.")]
ContextDir = Annotated[str, typer.Option("--contextdir", help="Context directory path.")]
Retry = Annotated[Optional[int], typer.Option(
    "--retry", help="Pull attempts in case of failure (default: from config).", show_default=False,
)]
RetryDelay = Annotated[Optional[str], typer.Option(
    "--retry-delay", help="Delay between pull attempts (default: from config).", show_default=False,
)]
Quiet = Annotated[bool, typer.Option("--quiet", "-q", help="Don't output a digest of the added content.")]
TLSVerify = Annotated[bool, typer.Option(
    "--tls-verify/--no-tls-verify", help="Require HTTPS and verify certificates.",
)]
Timestamp = Annotated[str, typer.Option("--timestamp", help="Set timestamps on new content to SECONDS after the epoch.")]


def _raw_options(**values: Any) -> dict[str, Any]:
    # Unset options fall back to configured defaults in parse_options.
    return {k: v for k, v in values.items() if v is not None}


async def _ingest(config: BricklayerConfig, verb: Verb, args: list[str], raw: dict[str, Any]) -> None:
    container, sources, dest = split_args(args)
    options = parse_options(raw, config)

    client = PodmanClient(config.socket_path)
    service = IngestService(PodmanStore(client, config.state_dir))
    reporter = OperationReporter(verb.value.lower(), target=container, console=out.console, quiet=options.quiet)

    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, cancel.set)
    try:
        result = await service.ingest(
            verb=verb,
            container=container,
            sources=sources,
            dest=dest,
            options=options,
            cancel=cancel,
            progress=reporter,
        )
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await client.close()

    if not options.quiet:
        out.result(result.digest)


@app.command(context_settings=_POSITIONAL_ONLY)
@report_errors
async def add(
    ctx: typer.Context,
    args: Paths,
    add_history: AddHistory = None,
    cert_dir: CertDir = "",
    checksum: Checksum = "",
    chown: Chown = "",
    chmod: Chmod = "",
    creds: Creds = "",
    link: Link = False,
    source: From = "",
    decryption_key: DecryptionKeys = None,
    exclude: Excludes = None,
    ignorefile: IgnoreFile = "",
    contextdir: ContextDir = "",
    retry: Retry = None,
    retry_delay: RetryDelay = None,
    quiet: Quiet = False,
    tls_verify: TLSVerify = True,
    timestamp: Timestamp = "",
) -> None:
    """Add content to the container.

    Adds the contents of a file, URL, or directory to a container's
    working directory.  If a local file appears to be an archive, its
    contents are extracted and added instead of the archive file itself.

        bricklayer add containerID '/myapp/app.conf'
        bricklayer add containerID 'app.tar.gz' '/myapp/'
    """
    raw = _raw_options(
        add_history=add_history, cert_dir=cert_dir, checksum=checksum, chown=chown, chmod=chmod,
        creds=creds, link=link, source=source, decryption_keys=decryption_key, excludes=exclude,
        ignore_file=ignorefile, context_dir=contextdir, retry=retry, retry_delay=retry_delay,
        quiet=quiet, tls_verify=tls_verify, timestamp=timestamp,
    )
    await _ingest(ctx.obj, Verb.ADD, args, raw)


@app.command(context_settings=_POSITIONAL_ONLY)
@report_errors
async def copy(
    ctx: typer.Context,
    args: Paths,
    add_history: AddHistory = None,
    cert_dir: CertDir = "",
    checksum: Checksum = "",
    chown: Chown = "",
    chmod: Chmod = "",
    creds: Creds = "",
    link: Link = False,
    source: From = "",
    decryption_key: DecryptionKeys = None,
    exclude: Excludes = None,
    ignorefile: IgnoreFile = "",
    contextdir: ContextDir = "",
    parents: bool = typer.Option(False, "--parents", help="Preserve leading directories in the paths of items being copied."),
    retry: Retry = None,
    retry_delay: RetryDelay = None,
    quiet: Quiet = False,
    tls_verify: TLSVerify = True,
    timestamp: Timestamp = "",
) -> None:
    """Copy content into the container.

    Copies the contents of a file, URL, or directory into a container's
    working directory.

        bricklayer copy containerID 'app.conf' '/myapp/app.conf'
        bricklayer copy containerID 'app.conf' 'drop-in.conf' '/myapp/app.conf.d/'
    """
    raw = _raw_options(
        add_history=add_history, cert_dir=cert_dir, checksum=checksum, chown=chown, chmod=chmod,
        creds=creds, link=link, source=source, decryption_keys=decryption_key, excludes=exclude,
        ignore_file=ignorefile, context_dir=contextdir, parents=parents, retry=retry,
        retry_delay=retry_delay, quiet=quiet, tls_verify=tls_verify, timestamp=timestamp,
    )
    await _ingest(ctx.obj, Verb.COPY, args, raw)


def cli() -> None:
    """CLI entry point for setuptools."""
    prog_name = os.environ.get("BRICKLAYER_PROG_NAME", "bricklayer")
    app(prog_name=prog_name)


if __name__ == "__main__":
    cli()
