# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from bricklayer.config import DEFAULT_SOCKET_PATH, load_config, parse_bool


def _write(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    return path


def test_defaults_without_files(tmp_path: Path):
    config = load_config(paths=[tmp_path / "missing.conf"])
    assert config.socket_path == DEFAULT_SOCKET_PATH
    assert config.retry == 3
    assert config.retry_delay == "2s"
    assert config.add_history is False
    # From the autouse fixture.
    assert config.state_dir == str(tmp_path / "state")


def test_higher_priority_file_wins(tmp_path: Path):
    user = _write(tmp_path / "user.conf", "[bricklayer]\nretry = 7\n")
    system = _write(
        tmp_path / "system.conf",
        "[bricklayer]\nretry = 1\nretry_delay = 10s\nsocket_path = /run/other.sock\n",
    )
    config = load_config(paths=[user, system])
    assert config.retry == 7
    assert config.retry_delay == "10s"
    assert config.socket_path == "/run/other.sock"


def test_invalid_retry_falls_back(tmp_path: Path):
    path = _write(tmp_path / "c.conf", "[bricklayer]\nretry = many\n")
    assert load_config(paths=[path]).retry == 3


def test_environment_overrides_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    path = _write(tmp_path / "c.conf", "[bricklayer]\nadd_history = false\nsocket_path = /a.sock\n")
    monkeypatch.setenv("BRICKLAYER_HISTORY", "true")
    monkeypatch.setenv("BRICKLAYER_SOCKET", "/b.sock")
    config = load_config(paths=[path])
    assert config.add_history is True
    assert config.socket_path == "/b.sock"


def test_user_config_under_xdg(tmp_path: Path):
    _write(tmp_path / "xdg-config" / "bricklayer" / "bricklayer.conf", "[bricklayer]\nadd_history = yes\n")
    assert load_config().add_history is True


def test_state_dir_from_xdg_data(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("BRICKLAYER_STATE_DIR")
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("os.geteuid", lambda: 1000)
    config = load_config(paths=[])
    assert config.state_dir == str(tmp_path / "data" / "bricklayer")


@pytest.mark.parametrize(
    ("value", "expected"),
    [("1", True), ("TRUE", True), (" yes ", True), ("on", True), ("0", False), ("nope", False), ("", False)],
)
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected
