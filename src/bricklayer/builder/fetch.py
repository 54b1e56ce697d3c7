# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Download of URL sources."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import posixpath
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from urllib.parse import unquote, urlsplit

import httpx

from .constants import COPY_CHUNK_SIZE
from .digester import ContentDigester

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A URL source could not be downloaded or failed verification."""


@dataclass(frozen=True)
class FetchOptions:
    tls_verify: bool = True
    cert_dir: str = ""
    retry: int = 3
    retry_delay: float = 2.0
    checksum: str = ""
    timeout: float = 60.0


@dataclass(frozen=True)
class FetchResult:
    size: int
    last_modified: datetime | None


def url_basename(url: str) -> str:
    """Final path component of *url*, percent-decoded."""
    name = posixpath.basename(unquote(urlsplit(url).path))
    if not name or name in (".", ".."):
        raise FetchError(f"cannot determine a file name from URL {url!r}")
    return name


def tls_context(cert_dir: str) -> ssl.SSLContext:
    """Build an SSL context from a containers-style certificate directory.

    ``*.crt`` files are extra CA certificates; each ``foo.cert`` with a
    matching ``foo.key`` is a client certificate.
    """
    ctx = ssl.create_default_context()
    directory = Path(cert_dir)
    for ca in sorted(directory.glob("*.crt")):
        ctx.load_verify_locations(cafile=str(ca))
    for cert in sorted(directory.glob("*.cert")):
        key = cert.with_suffix(".key")
        if not key.is_file():
            raise FetchError(f"missing key {key.name} for client certificate {cert}")
        ctx.load_cert_chain(str(cert), str(key))
    return ctx


class _RetryableStatus(Exception):
    pass


def _verify(options: FetchOptions) -> ssl.SSLContext | bool:
    if not options.tls_verify:
        return False
    if options.cert_dir:
        return tls_context(options.cert_dir)
    return True


async def fetch_url(
    url: str,
    dest: str,
    part: ContentDigester,
    options: FetchOptions,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FetchResult:
    """Download *url* into the file *dest*, feeding every byte to *part*.

    Transport failures and 5xx responses are retried up to
    ``options.retry`` attempts.  When ``options.checksum`` is set the
    downloaded bytes must match it, otherwise *dest* is removed and
    :class:`FetchError` raised.
    """
    attempts = max(1, options.retry)
    last_error: Exception | None = None
    async with httpx.AsyncClient(
        verify=_verify(options),
        transport=transport,
        timeout=options.timeout,
        follow_redirects=True,
    ) as client:
        for attempt in range(1, attempts + 1):
            try:
                return await _download(client, url, dest, part, options)
            except (httpx.TransportError, _RetryableStatus) as e:
                last_error = e
                logger.info("Fetching %s failed (attempt %d/%d): %s", url, attempt, attempts, e)
                if attempt < attempts:
                    await asyncio.sleep(options.retry_delay)
    raise FetchError(f"fetching {url!r} after {attempts} attempts: {last_error}")


async def _download(
    client: httpx.AsyncClient,
    url: str,
    dest: str,
    part: ContentDigester,
    options: FetchOptions,
) -> FetchResult:
    hasher = None
    expected = ""
    if options.checksum:
        algorithm, expected = options.checksum.split(":", 1)
        hasher = hashlib.new(algorithm)

    async with client.stream("GET", url) as response:
        if response.status_code >= 500:
            raise _RetryableStatus(f"server returned {response.status_code}")
        if response.status_code >= 400:
            raise FetchError(f"fetching {url!r}: server returned {response.status_code}")

        size = 0
        with open(dest, "wb") as f:
            async for chunk in response.aiter_bytes(COPY_CHUNK_SIZE):
                f.write(chunk)
                size += len(chunk)
                if hasher is not None:
                    hasher.update(chunk)

        if hasher is not None and hasher.hexdigest() != expected:
            os.unlink(dest)
            raise FetchError(
                f"fetching {url!r}: checksum mismatch: expected {options.checksum}, "
                f"got {hasher.name}:{hasher.hexdigest()}"
            )

        last_modified = None
        header = response.headers.get("Last-Modified")
        if header:
            try:
                last_modified = parsedate_to_datetime(header)
            except (TypeError, ValueError):
                logger.debug("Ignoring unparsable Last-Modified header %r", header)

    # Only a complete download reaches the digester.
    with open(dest, "rb") as f:
        while chunk := f.read(COPY_CHUNK_SIZE):
            part.write(chunk)
    return FetchResult(size=size, last_modified=last_modified)
