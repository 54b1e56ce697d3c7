# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Tool configuration.

Configuration is read from (highest to lowest priority):

  1. ``$XDG_CONFIG_HOME/bricklayer/bricklayer.conf``  (user)
  2. ``/etc/bricklayer/bricklayer.conf``              (system)
  3. ``/usr/lib/bricklayer/bricklayer.conf``          (package defaults)

Each file is INI with a single ``[bricklayer]`` section.  Environment
variables are applied on top, once, when :func:`load_config` runs;
nothing re-reads the environment afterwards.
"""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

SECTION = "bricklayer"

DEFAULT_SOCKET_PATH = "/run/podman/podman.sock"
# Matches the pull/push retry defaults of the containers tooling.
DEFAULT_RETRY = 3
DEFAULT_RETRY_DELAY = "2s"

ENV_HISTORY = "BRICKLAYER_HISTORY"
ENV_SOCKET = "BRICKLAYER_SOCKET"
ENV_STATE_DIR = "BRICKLAYER_STATE_DIR"

_SYSTEM_PATHS = (
    Path("/etc/bricklayer/bricklayer.conf"),
    Path("/usr/lib/bricklayer/bricklayer.conf"),
)

_TRUE = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class BricklayerConfig:
    socket_path: str = DEFAULT_SOCKET_PATH
    state_dir: str = ""
    retry: int = DEFAULT_RETRY
    retry_delay: str = DEFAULT_RETRY_DELAY
    add_history: bool = False


def _user_config_path(home_dir: str | None) -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "bricklayer" / "bricklayer.conf"
    home = Path(home_dir) if home_dir else Path.home()
    return home / ".config" / "bricklayer" / "bricklayer.conf"


def _default_state_dir(home_dir: str | None) -> str:
    if os.geteuid() == 0:
        return "/var/lib/bricklayer"
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return str(Path(xdg) / "bricklayer")
    home = Path(home_dir) if home_dir else Path.home()
    return str(home / ".local" / "share" / "bricklayer")


def parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE


def load_config(home_dir: str | None = None, paths: list[Path] | None = None) -> BricklayerConfig:
    """Load configuration files and apply environment overrides.

    Args:
        home_dir: Home directory used for the user-level file and the
            default state directory. Defaults to the caller's home.
        paths: Explicit list of files, highest priority first. Mostly
            useful in tests.

    Returns:
        A frozen :class:`BricklayerConfig`.
    """
    if paths is None:
        paths = [_user_config_path(home_dir), *_SYSTEM_PATHS]

    parser = configparser.ConfigParser()
    # ConfigParser.read gives later files precedence, so feed lowest first.
    read = parser.read([str(p) for p in reversed(paths)])
    if read:
        logger.debug("Loaded configuration from %s", ", ".join(read))

    section = parser[SECTION] if parser.has_section(SECTION) else {}
    socket_path = section.get("socket_path", DEFAULT_SOCKET_PATH)
    state_dir = section.get("state_dir", "") or _default_state_dir(home_dir)
    retry_delay = section.get("retry_delay", DEFAULT_RETRY_DELAY)
    add_history = parse_bool(section.get("add_history", "false"))
    try:
        retry = int(section.get("retry", str(DEFAULT_RETRY)))
    except ValueError:
        logger.warning("Ignoring invalid retry value in configuration: %r", section.get("retry"))
        retry = DEFAULT_RETRY

    if ENV_SOCKET in os.environ:
        socket_path = os.environ[ENV_SOCKET]
    if ENV_STATE_DIR in os.environ:
        state_dir = os.environ[ENV_STATE_DIR]
    if ENV_HISTORY in os.environ:
        add_history = parse_bool(os.environ[ENV_HISTORY])

    return BricklayerConfig(
        socket_path=socket_path,
        state_dir=state_dir,
        retry=retry,
        retry_delay=retry_delay,
        add_history=add_history,
    )
