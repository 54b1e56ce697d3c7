# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Exclude-pattern matching with ``.containerignore`` semantics.

Patterns are slash-separated globs matched against paths relative to
the context root:

- ``*`` and ``?`` never cross a ``/``; ``**`` matches any number of
  directories.
- A leading ``!`` re-includes paths excluded by earlier patterns; the
  last matching pattern wins.
- A pattern that matches a directory also excludes everything below it.
"""

from __future__ import annotations

import posixpath
import re
from collections.abc import Iterable
from dataclasses import dataclass


class PatternError(ValueError):
    """An exclude pattern could not be compiled."""


def _translate(pattern: str) -> str:
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if pattern.startswith("/", i):
                    # "**/" also matches zero directories
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = i + 1
            if j < n and pattern[j] in "!^":
                j += 1
            if j < n and pattern[j] == "]":
                j += 1
            while j < n and pattern[j] != "]":
                j += 1
            if j >= n:
                raise PatternError(f"syntax error in pattern {pattern!r}: unterminated character class")
            body = pattern[i + 1 : j]
            if body[:1] in ("!", "^"):
                body = "^" + body[1:]
            out.append("[" + body.replace("\\", "\\\\") + "]")
            i = j
        elif c == "\\":
            i += 1
            if i >= n:
                raise PatternError(f"syntax error in pattern {pattern!r}: trailing backslash")
            out.append(re.escape(pattern[i]))
        else:
            out.append(re.escape(c))
        i += 1
    return "^" + "".join(out) + "$"


@dataclass(frozen=True)
class _Pattern:
    text: str
    exclusion: bool
    regex: re.Pattern[str]

    def match(self, path: str) -> bool:
        return self.regex.match(path) is not None


class PatternMatcher:
    """Ordered list of exclude patterns."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns: list[_Pattern] = []
        for raw in patterns:
            text = raw.strip()
            if not text:
                continue
            exclusion = text.startswith("!")
            if exclusion:
                text = text[1:].strip()
                if not text:
                    raise PatternError('illegal exclusion pattern: "!"')
            text = posixpath.normpath(text).lstrip("/")
            if text in (".", ""):
                continue
            try:
                regex = re.compile(_translate(text))
            except re.error as e:
                raise PatternError(f"syntax error in pattern {raw!r}: {e}") from e
            self._patterns.append(_Pattern(text=text, exclusion=exclusion, regex=regex))

    def __bool__(self) -> bool:
        return bool(self._patterns)

    @property
    def has_exclusions(self) -> bool:
        """True when some pattern starts with ``!``."""
        return any(p.exclusion for p in self._patterns)

    def excludes(self, rel_path: str) -> bool:
        """Whether *rel_path* (relative, slash-separated) is excluded."""
        path = posixpath.normpath(rel_path).lstrip("/")
        parent = posixpath.dirname(path)
        parent_dirs = parent.split("/") if parent else []
        matched = False
        for pattern in self._patterns:
            # Inclusions only matter once something matched; exclusions only before.
            if pattern.exclusion != matched:
                continue
            hit = pattern.match(path)
            if not hit:
                for i in range(len(parent_dirs)):
                    if pattern.match("/".join(parent_dirs[: i + 1])):
                        hit = True
                        break
            if hit:
                matched = not pattern.exclusion
        return matched
