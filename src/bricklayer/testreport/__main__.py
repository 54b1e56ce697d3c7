# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Entry point for the runtime snapshot tool.

Usage:
    bricklayer-testreport
    python -m bricklayer.testreport

Prints ``{"spec": {...}}`` describing the current process to stdout.
"""

from __future__ import annotations

import argparse
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

from .collect import PROC, ReportError, collect_report

logger = logging.getLogger("bricklayer.testreport")


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="bricklayer-testreport",
        description="Describe this process's runtime environment as an OCI runtime spec",
    )
    parser.add_argument("--proc", default=PROC, help=argparse.SUPPRESS)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    try:
        report = collect_report(args.proc)
    except ReportError as e:
        logger.error("%s", e)
        return 1
    sys.stdout.write(report.to_json() + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
