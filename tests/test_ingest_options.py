# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for ingest option parsing and validation."""

from __future__ import annotations

import json

import pytest

from bricklayer.config import BricklayerConfig
from bricklayer.ingest_options import (
    INGEST_SCHEMA,
    IngestOptions,
    OptionValidationError,
    get_ingest_schema_json,
    parse_chmod,
    parse_duration,
    parse_options,
    parse_timestamp,
    split_chown,
)


def test_defaults():
    opts = parse_options({})
    assert opts == IngestOptions()
    assert opts.retry == 3
    assert opts.retry_delay == 2.0
    assert opts.chmod is None
    assert opts.timestamp is None


def test_schema_json_matches_schema():
    doc = json.loads(get_ingest_schema_json())
    assert doc == INGEST_SCHEMA
    keys = {o["key"] for s in doc["sections"] for o in s["options"]}
    assert {"source", "ignore_file", "chown", "retry", "quiet", "add_history"} <= keys


def test_unknown_keys_rejected():
    with pytest.raises(OptionValidationError, match="Unknown options: bogus, extract"):
        parse_options({"extract": True, "bogus": 1})


@pytest.mark.parametrize(
    "raw",
    [
        {"retry": "3"},
        {"retry": True},
        {"quiet": "yes"},
        {"excludes": "*.tmp"},
        {"excludes": ["ok", 3]},
    ],
)
def test_type_mismatch_rejected(raw):
    with pytest.raises(OptionValidationError):
        parse_options(raw)


def test_ignore_file_requires_context_dir():
    with pytest.raises(OptionValidationError, match="--ignorefile option requires"):
        parse_options({"ignore_file": "/tmp/ignore"})
    opts = parse_options({"ignore_file": "/tmp/ignore", "context_dir": "/tmp"})
    assert opts.ignore_file == "/tmp/ignore"


def test_negative_retry_rejected():
    with pytest.raises(OptionValidationError, match="--retry must not be negative"):
        parse_options({"retry": -1})


def test_zero_retry_allowed():
    assert parse_options({"retry": 0}).retry == 0


def test_bad_retry_delay():
    with pytest.raises(OptionValidationError, match="unable to parse value provided 'soon' as --retry-delay"):
        parse_options({"retry_delay": "soon"})


def test_bad_timestamp():
    with pytest.raises(OptionValidationError, match="parsing timestamp value 'yesterday'"):
        parse_options({"timestamp": "yesterday"})


def test_timestamp_and_chmod_are_converted():
    opts = parse_options({"timestamp": "1700000000", "chmod": "0755"})
    assert opts.timestamp == 1700000000
    assert opts.chmod == 0o755


@pytest.mark.parametrize("value", ["rwx", "0899", "17777"])
def test_bad_chmod(value):
    with pytest.raises(OptionValidationError, match="parsing --chmod value"):
        parse_options({"chmod": value})


@pytest.mark.parametrize("value", [":wheel", "root:", "a:b:c"])
def test_bad_chown(value):
    with pytest.raises(OptionValidationError, match="parsing --chown value"):
        parse_options({"chown": value})


@pytest.mark.parametrize("value", ["md5:abcd", "sha256", "sha256:XYZ"])
def test_bad_checksum(value):
    with pytest.raises(OptionValidationError, match="invalid --checksum value"):
        parse_options({"checksum": value})


def test_checksum_accepted():
    digest = "a" * 64
    assert parse_options({"checksum": f"sha256:{digest}"}).checksum == f"sha256:{digest}"


def test_config_supplies_defaults():
    config = BricklayerConfig(retry=5, retry_delay="500ms", add_history=True)
    opts = parse_options({}, config)
    assert opts.retry == 5
    assert opts.retry_delay == pytest.approx(0.5)
    assert opts.add_history is True


def test_explicit_values_override_config():
    config = BricklayerConfig(retry=5, add_history=True)
    opts = parse_options({"retry": 1, "add_history": False}, config)
    assert opts.retry == 1
    assert opts.add_history is False


@pytest.mark.parametrize(
    ("text", "seconds"),
    [
        ("2s", 2.0),
        ("500ms", 0.5),
        ("1m30s", 90.0),
        ("1.5h", 5400.0),
        ("3", 3.0),
        ("0", 0.0),
    ],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


@pytest.mark.parametrize("text", ["", "-1", "2x", "s", "1s junk"])
def test_parse_duration_invalid(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_parse_timestamp():
    assert parse_timestamp("0") == 0
    assert parse_timestamp(" 42 ") == 42
    with pytest.raises(ValueError):
        parse_timestamp("4.2")


def test_parse_chmod():
    assert parse_chmod("644") == 0o644
    assert parse_chmod("04755") == 0o4755


def test_split_chown():
    assert split_chown("1000") == ("1000", None)
    assert split_chown("app:staff") == ("app", "staff")
