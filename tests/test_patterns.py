# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for exclude-pattern matching."""

from __future__ import annotations

import pytest

from bricklayer.builder.patterns import PatternError, PatternMatcher


@pytest.mark.parametrize(
    ("patterns", "path", "excluded"),
    [
        (["*.tmp"], "a.tmp", True),
        (["*.tmp"], "dir/a.tmp", False),
        (["**/*.tmp"], "dir/sub/a.tmp", True),
        (["**/*.tmp"], "a.tmp", True),
        (["build"], "build/out/app", True),
        (["build"], "builder", False),
        (["doc?"], "docs", True),
        (["[a-c].txt"], "b.txt", True),
        (["[!a-c].txt"], "b.txt", False),
        (["/abs/path"], "abs/path", True),
        (["*.md", "!README.md"], "README.md", False),
        (["*.md", "!README.md"], "CHANGES.md", True),
        (["*.md", "!README.md", "README*"], "README.md", True),
        (["logs", "!logs/keep.log"], "logs/keep.log", False),
        (["logs", "!logs/keep.log"], "logs/other.log", True),
    ],
)
def test_excludes(patterns, path, excluded):
    assert PatternMatcher(patterns).excludes(path) is excluded


def test_blank_and_dot_patterns_are_ignored():
    matcher = PatternMatcher(["", "  ", "."])
    assert not matcher
    assert not matcher.excludes("anything")


def test_has_exclusions():
    assert not PatternMatcher(["*.tmp"]).has_exclusions
    assert PatternMatcher(["*.tmp", "!keep.tmp"]).has_exclusions


@pytest.mark.parametrize("pattern", ["!", "[abc", "trailing\\"])
def test_invalid_patterns(pattern):
    with pytest.raises(PatternError):
        PatternMatcher([pattern])
