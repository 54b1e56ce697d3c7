# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for URL downloads."""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

import httpx
import pytest

from bricklayer.builder.digester import ContentDigester
from bricklayer.builder.fetch import FetchError, FetchOptions, fetch_url, url_basename

BODY = b"remote content\n"


def _fetch(tmp_path: Path, handler, **options) -> tuple[Path, ContentDigester, object]:
    dest = tmp_path / "download"
    part = ContentDigester("")
    opts = FetchOptions(retry_delay=0, **options)
    result = asyncio.run(
        fetch_url("https://example.com/files/app.conf", str(dest), part, opts, transport=httpx.MockTransport(handler))
    )
    return dest, part, result


def test_url_basename():
    assert url_basename("https://example.com/a/b/app%20v1.tar.gz?x=1") == "app v1.tar.gz"
    with pytest.raises(FetchError):
        url_basename("https://example.com/")


def test_download_feeds_digester(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=BODY, headers={"Last-Modified": "Wed, 21 Oct 2015 07:28:00 GMT"})

    dest, part, result = _fetch(tmp_path, handler)

    assert dest.read_bytes() == BODY
    assert result.size == len(BODY)
    assert int(result.last_modified.timestamp()) == 1445412480
    assert part.hexdigest() == hashlib.sha256(BODY).hexdigest()


def test_server_errors_are_retried(tmp_path: Path):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, content=BODY)

    dest, _, _ = _fetch(tmp_path, handler, retry=3)

    assert len(calls) == 3
    assert dest.read_bytes() == BODY


def test_gives_up_after_retries(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with pytest.raises(FetchError, match="after 2 attempts"):
        _fetch(tmp_path, handler, retry=2)


def test_client_errors_are_not_retried(tmp_path: Path):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(404)

    with pytest.raises(FetchError, match="server returned 404"):
        _fetch(tmp_path, handler, retry=3)
    assert len(calls) == 1


def test_checksum_mismatch_removes_file(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=BODY)

    with pytest.raises(FetchError, match="checksum mismatch"):
        _fetch(tmp_path, handler, checksum="sha256:" + "0" * 64)
    assert not (tmp_path / "download").exists()


def test_checksum_match(tmp_path: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=BODY)

    dest, _, _ = _fetch(tmp_path, handler, checksum="sha256:" + hashlib.sha256(BODY).hexdigest())
    assert dest.read_bytes() == BODY
