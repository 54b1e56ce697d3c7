# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Collect the calling process's runtime environment into a :class:`SpecReport`.

Collectors run in a fixed order and each fills in one part of the
report.  Capability sets and resource limits are enumerated from
explicit ordered tables, so two runs in the same environment produce
byte-identical documents.
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
import re
import resource
import socket
import struct
import sys
import termios
from collections.abc import Callable

from .models import (
    Box,
    Linux,
    LinuxCapabilities,
    LinuxIDMapping,
    Mount,
    POSIXRlimit,
    Process,
    SpecReport,
    User,
)

logger = logging.getLogger(__name__)

PROC = "/proc"


class ReportError(Exception):
    """Part of the runtime environment could not be read."""


# Capability bit number -> name, in kernel order.
CAPABILITIES = (
    "CAP_CHOWN",
    "CAP_DAC_OVERRIDE",
    "CAP_DAC_READ_SEARCH",
    "CAP_FOWNER",
    "CAP_FSETID",
    "CAP_KILL",
    "CAP_SETGID",
    "CAP_SETUID",
    "CAP_SETPCAP",
    "CAP_LINUX_IMMUTABLE",
    "CAP_NET_BIND_SERVICE",
    "CAP_NET_BROADCAST",
    "CAP_NET_ADMIN",
    "CAP_NET_RAW",
    "CAP_IPC_LOCK",
    "CAP_IPC_OWNER",
    "CAP_SYS_MODULE",
    "CAP_SYS_RAWIO",
    "CAP_SYS_CHROOT",
    "CAP_SYS_PTRACE",
    "CAP_SYS_PACCT",
    "CAP_SYS_ADMIN",
    "CAP_SYS_BOOT",
    "CAP_SYS_NICE",
    "CAP_SYS_RESOURCE",
    "CAP_SYS_TIME",
    "CAP_SYS_TTY_CONFIG",
    "CAP_MKNOD",
    "CAP_LEASE",
    "CAP_AUDIT_WRITE",
    "CAP_AUDIT_CONTROL",
    "CAP_SETFCAP",
    "CAP_MAC_OVERRIDE",
    "CAP_MAC_ADMIN",
    "CAP_SYSLOG",
    "CAP_WAKE_ALARM",
    "CAP_BLOCK_SUSPEND",
    "CAP_AUDIT_READ",
    "CAP_PERFMON",
    "CAP_BPF",
    "CAP_CHECKPOINT_RESTORE",
)

# (report field, /proc/<pid>/status key)
CAPABILITY_SETS = (
    ("effective", "CapEff"),
    ("permitted", "CapPrm"),
    ("inheritable", "CapInh"),
    ("bounding", "CapBnd"),
    ("ambient", "CapAmb"),
)

RLIMITS = (
    "RLIMIT_AS",
    "RLIMIT_CORE",
    "RLIMIT_CPU",
    "RLIMIT_DATA",
    "RLIMIT_FSIZE",
    "RLIMIT_LOCKS",
    "RLIMIT_MEMLOCK",
    "RLIMIT_MSGQUEUE",
    "RLIMIT_NICE",
    "RLIMIT_NOFILE",
    "RLIMIT_NPROC",
    "RLIMIT_RSS",
    "RLIMIT_RTPRIO",
    "RLIMIT_RTTIME",
    "RLIMIT_SIGPENDING",
    "RLIMIT_STACK",
)

# Sysctl read failures that just mean "not readable from here".
_SYSCTL_SKIP = frozenset({errno.EACCES, errno.EINVAL, errno.EIO, errno.EPERM})

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


# -----------------------------------------------------------------------------
# Parsers
# -----------------------------------------------------------------------------


def parse_status(text: str) -> dict[str, str]:
    """``Key:\\tvalue`` lines of ``/proc/<pid>/status``."""
    fields = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


def capability_names(mask: int) -> list[str]:
    """Names of the known capabilities set in *mask*."""
    return [name for bit, name in enumerate(CAPABILITIES) if mask & (1 << bit)]


def parse_id_map(text: str, node: str) -> list[LinuxIDMapping]:
    mappings = []
    for line in text.splitlines():
        fields = line.split()
        if not fields:
            continue
        if len(fields) != 3:
            raise ReportError(f"badly formatted line {line!r} in {node!r}: expected to find exactly three fields")
        try:
            cid, hid, size = (int(f, 10) for f in fields)
        except ValueError as e:
            raise ReportError(f"parsing line {line!r} in {node!r}: {e}") from e
        mappings.append(LinuxIDMapping(container_id=cid, host_id=hid, size=size))
    return mappings


def _unescape(field: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def parse_mountinfo(text: str) -> list[Mount]:
    """Mounts from ``/proc/<pid>/mountinfo``, in table order.

    Each line is ``id parent major:minor root mountpoint options
    [optional...] - fstype source superoptions``.
    """
    mounts = []
    for line in text.splitlines():
        if not line.strip():
            continue
        left, sep, right = line.partition(" - ")
        before = left.split()
        after = right.split()
        if not sep or len(before) < 6 or len(after) < 2:
            raise ReportError(f"badly formatted mountinfo line {line!r}")
        mounts.append(
            Mount(
                destination=_unescape(before[4]),
                type=after[0],
                source=_unescape(after[1]),
                options=before[5].split(","),
            )
        )
    return mounts


def sysctl_value(raw: str) -> str:
    value = raw.rstrip("\r\n")
    # Multi-line values are kept verbatim.
    if "\r" in value or "\n" in value:
        return raw
    return value


# -----------------------------------------------------------------------------
# Collectors
# -----------------------------------------------------------------------------


def _read(path: str) -> str:
    try:
        with open(path, encoding="utf-8", errors="surrogateescape") as f:
            return f.read()
    except OSError as e:
        raise ReportError(f"reading {path!r}: {e}") from e


def get_hostname(r: SpecReport, proc: str) -> None:
    r.spec.hostname = socket.gethostname()


def get_process(r: SpecReport, proc: str) -> None:
    terminal = os.isatty(sys.stdin.fileno())
    console_size = None
    if terminal:
        try:
            packed = fcntl.ioctl(sys.stdin.fileno(), termios.TIOCGWINSZ, b"\0" * 8)
        except OSError as e:
            raise ReportError(f"reading size of terminal on stdin: {e}") from e
        rows, cols, _, _ = struct.unpack("HHHH", packed)
        console_size = Box(height=rows, width=cols)

    status = parse_status(_read(os.path.join(proc, "self", "status")))

    caps = LinuxCapabilities()
    for field_name, key in CAPABILITY_SETS:
        names = capability_names(int(status.get(key, "0"), 16))
        setattr(caps, field_name, names or None)

    rlimits = []
    for name in RLIMITS:
        which = getattr(resource, name, None)
        if which is None:
            continue
        try:
            soft, hard = resource.getrlimit(which)
        except (OSError, ValueError) as e:
            raise ReportError(f"reading {name} limit: {e}") from e
        if soft == resource.RLIM_INFINITY and hard == resource.RLIM_INFINITY:
            continue
        rlimits.append(POSIXRlimit(type=name, soft=soft, hard=hard))

    oom_text = _read(os.path.join(proc, "self", "oom_score_adj")).split()
    if len(oom_text) != 1:
        raise ReportError(f"badly formatted oom_score_adj {oom_text!r}: expected to find only one field")
    oom = int(oom_text[0])

    r.spec.process = Process(
        terminal=terminal,
        console_size=console_size,
        user=User(uid=os.getuid(), gid=os.getgid(), additional_gids=os.getgroups() or None),
        args=list(sys.argv),
        env=[f"{k}={v}" for k, v in os.environ.items()],
        cwd=os.getcwd(),
        capabilities=caps,
        rlimits=rlimits or None,
        no_new_privileges=status.get("NoNewPrivs", "0") != "0",
        oom_score_adj=oom or None,
    )


def get_mounts(r: SpecReport, proc: str) -> None:
    r.spec.mounts = parse_mountinfo(_read(os.path.join(proc, "self", "mountinfo")))


def get_linux(r: SpecReport, proc: str) -> None:
    uid_node = os.path.join(proc, "self", "uid_map")
    gid_node = os.path.join(proc, "self", "gid_map")
    linux = Linux(
        uid_mappings=parse_id_map(_read(uid_node), uid_node),
        gid_mappings=parse_id_map(_read(gid_node), gid_node),
        sysctl=read_sysctls(os.path.join(proc, "sys")),
    )
    r.spec.linux = linux


def read_sysctls(root: str) -> dict[str, str]:
    """Every readable file under *root* as ``dotted.name -> value``."""
    sysctls = {}

    def onerror(e: OSError) -> None:
        if e.errno not in _SYSCTL_SKIP:
            raise ReportError(f"walking {root!r}: {e}") from e

    for dirpath, dirnames, filenames in os.walk(root, onerror=onerror):
        dirnames.sort()
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            try:
                with open(path, encoding="utf-8", errors="surrogateescape") as f:
                    raw = f.read()
            except OSError as e:
                if e.errno in _SYSCTL_SKIP:
                    continue
                raise ReportError(f"reading sysctl {path!r}: {e}") from e
            key = os.path.relpath(path, root).replace(os.sep, ".")
            sysctls[key] = sysctl_value(raw)
    return sysctls


COLLECTORS: tuple[tuple[str, Callable[[SpecReport, str], None]], ...] = (
    ("process", get_process),
    ("hostname", get_hostname),
    ("mounts", get_mounts),
    ("linux", get_linux),
)


def collect_report(proc: str = PROC) -> SpecReport:
    """Run every collector in order.

    Raises:
        ReportError: If any part of the environment can't be read.
    """
    report = SpecReport()
    for name, collector in COLLECTORS:
        logger.debug("Collecting %s", name)
        collector(report, proc)
    return report
