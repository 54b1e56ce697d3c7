# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Terminal output helpers.

Everything human-readable goes to stderr through ``rich``; stdout only
ever carries command results (the digest line), so it stays scriptable.
"""

from __future__ import annotations

import sys

from rich.console import Console


class Output:
    """Styled stderr output plus a plain stdout channel for results."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def error(self, msg: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {msg}", highlight=False)

    def info(self, msg: str) -> None:
        self.console.print(msg, highlight=False)

    def result(self, line: str) -> None:
        """Write *line* to stdout, undecorated."""
        sys.stdout.write(line + "\n")
        sys.stdout.flush()


out = Output()
