# SPDX-FileCopyrightText: 2026 Lasath Fernando <devel@lasath.org>
#
# SPDX-License-Identifier: GPL-3.0-or-later

"""End-to-end tests of the add/copy lifecycle against an in-memory store."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from pathlib import Path

import pytest

from bricklayer.builder import IngestResult, IngestService, Verb
from bricklayer.builder.contexts import IngestContext, IngestState
from bricklayer.builder.ingest.commit import history_line
from bricklayer.builder.service import run_ingest
from bricklayer.builder.store import PullError, StoreError
from bricklayer.ingest_options import IngestOptions, OptionValidationError, parse_options
from bricklayer.operations import OperationCancelled, OperationError

from .fakes import FakeStore, write_tree


def _balanced(store: FakeStore) -> bool:
    return store.count("mount") == store.count("unmount")


def _run(store: FakeStore, verb: Verb, sources: list[str], dest: str = "", **options) -> IngestResult:
    service = IngestService(store)
    return asyncio.run(
        service.ingest(verb=verb, container="target", sources=sources, dest=dest, options=IngestOptions(**options))
    )


def _context(store: FakeStore, sources: list[str], **options) -> IngestContext:
    return IngestContext(
        verb=Verb.COPY,
        container="target",
        sources=sources,
        dest="/",
        opts=IngestOptions(**options),
        store=store,
        stack=AsyncExitStack(),
        progress=None,
    )


@pytest.fixture
def target(store: FakeStore):
    return store.add_container("target")


def test_history_line():
    assert history_line("COPY", "file", "abc") == "/bin/sh -c #(nop) COPY file:abc"
    assert history_line("ADD", "", "abc") == "/bin/sh -c #(nop) ADD abc"


def test_copy_commits_and_records_history(store: FakeStore, target, context_dir: Path):
    write_tree(context_dir, {"app.conf": "x=1\n"})

    result = _run(store, Verb.COPY, ["app.conf"], "/etc/", context_dir=str(context_dir), add_history=True)

    assert (store.rootfs(target.container_id) / "etc" / "app.conf").read_text() == "x=1\n"
    assert result.content_type == "file"
    assert result.history_entry is not None
    assert result.history_entry.created_by == f"/bin/sh -c #(nop) COPY {result.history_digest}"
    assert store.saved["target-id"].history[-1] == result.history_entry
    assert _balanced(store)
    assert not target.mounted
    assert store.calls[-1] == ("save", "target-id")


def test_history_is_optional(store: FakeStore, target, context_dir: Path):
    write_tree(context_dir, {"a": "a"})
    result = _run(store, Verb.ADD, ["a"], "/", context_dir=str(context_dir))
    assert result.history_entry is None
    assert store.saved["target-id"].history == []


def test_repeat_invocations_restart_the_digest(store: FakeStore, target, context_dir: Path):
    write_tree(context_dir, {"a": "a"})
    first = _run(store, Verb.COPY, ["a"], "/", context_dir=str(context_dir), timestamp=0)
    second = _run(store, Verb.COPY, ["a"], "/", context_dir=str(context_dir), timestamp=0)
    assert first.digest == second.digest
    assert first.content_type == second.content_type == "file"


def test_ignorefile_without_contextdir_never_mounts(store: FakeStore, target):
    with pytest.raises(OptionValidationError, match="--ignorefile option requires"):
        _run(store, Verb.COPY, ["a"], "/", ignore_file="/tmp/.containerignore")
    assert store.calls == []


def test_bad_timestamp_fails_before_the_store():
    with pytest.raises(OptionValidationError, match="parsing timestamp value"):
        parse_options({"timestamp": "tomorrow"})


def test_parents_rejected_for_add(store: FakeStore, target):
    with pytest.raises(OptionValidationError, match="--parents is not supported by ADD"):
        _run(store, Verb.ADD, ["a"], "/", parents=True)
    assert store.calls == []


def test_missing_target(store: FakeStore):
    with pytest.raises(OperationError, match='reading build container "target"'):
        _run(store, Verb.COPY, ["a"], "/")
    assert store.count("mount") == 0


def test_ignore_file_from_context(store: FakeStore, target, context_dir: Path):
    write_tree(context_dir, {".containerignore": "secret\n", "secret": "s", "public": "p"})

    _run(store, Verb.COPY, ["."], "/srv", context_dir=str(context_dir), excludes=["!secret", ".containerignore"])

    root = store.rootfs(target.container_id)
    # Explicit excludes come after the ignore file, so "!secret" wins.
    assert (root / "srv" / "secret").exists()
    assert (root / "srv" / "public").exists()
    assert not (root / "srv" / ".containerignore").exists()


def test_copy_failure_unmounts_and_fails(store: FakeStore, target, context_dir: Path):
    ctx = _context(store, ["absent"], context_dir=str(context_dir))

    with pytest.raises(OperationError, match='adding content to container "target-id"'):
        asyncio.run(run_ingest(ctx))

    assert ctx.state is IngestState.FAILED
    assert _balanced(store)
    assert store.count("save") == 0


def test_successful_context_ends_committed(store: FakeStore, target, context_dir: Path):
    write_tree(context_dir, {"a": "a"})
    ctx = _context(store, ["a"], context_dir=str(context_dir))
    asyncio.run(run_ingest(ctx))
    assert ctx.state is IngestState.COMMITTED


def test_cancelled_before_start(store: FakeStore, target):
    ctx = _context(store, ["a"])
    ctx.cancel.set()
    with pytest.raises(OperationCancelled, match='COPY into "target": cancelled'):
        asyncio.run(run_ingest(ctx))
    assert ctx.state is IngestState.FAILED
    assert store.count("mount") == 0


def test_save_failure(store: FakeStore, target, context_dir: Path):
    write_tree(context_dir, {"a": "a"})
    store.fail_on[("save", "target-id")] = StoreError("disk full")
    with pytest.raises(OperationError, match='saving information about container "target-id": disk full'):
        _run(store, Verb.COPY, ["a"], "/", context_dir=str(context_dir))
    assert _balanced(store)


def test_from_container(store: FakeStore, target):
    source = store.add_container("builder", files={"out/app": "binary", "out/lib/x.so": "so"})

    _run(store, Verb.COPY, ["/out"], "/usr/local/", source="builder")

    root = store.rootfs(target.container_id)
    assert (root / "usr" / "local" / "app").read_text() == "binary"
    assert (root / "usr" / "local" / "lib" / "x.so").read_text() == "so"
    assert store.calls == [
        ("open", "target"),
        ("open", "builder"),
        ("mount", source.container_id),
        ("mount", "target-id"),
        ("unmount", "target-id"),
        ("unmount", source.container_id),
        ("save", "target-id"),
    ]
    assert store.deleted == []


def test_from_container_respects_contextdir_inside_source(store: FakeStore, target):
    store.add_container("builder", files={
        "src/.containerignore": "*.o\n",
        "src/main.o": "obj",
        "src/main": "bin",
    })

    _run(store, Verb.COPY, ["/src"], "/app", source="builder", context_dir="/src")

    root = store.rootfs(target.container_id)
    assert (root / "app" / "main").exists()
    assert not (root / "app" / "main.o").exists()


def test_from_image_pulls_and_deletes(store: FakeStore, target):
    store.add_image("registry.example/tools:1", {"bin/tool": "t"})

    _run(store, Verb.COPY, ["/bin/tool"], "/usr/bin/tool", source="registry.example/tools:1", retry_delay=0)

    assert (store.rootfs(target.container_id) / "usr" / "bin" / "tool").read_text() == "t"
    assert len(store.deleted) == 1
    actions = [a for a, _ in store.calls]
    assert actions == ["open", "open", "pull", "mount", "mount", "unmount", "unmount", "delete", "save"]


def test_from_image_retries(store: FakeStore, target):
    store.add_image("flaky", {"f": "x"})
    store.pull_failures = [PullError("timeout"), PullError("timeout")]

    _run(store, Verb.COPY, ["/f"], "/f", source="flaky", retry=3, retry_delay=0)

    assert store.count("pull") == 3


def test_from_missing_image(store: FakeStore, target):
    with pytest.raises(OperationError, match='no container named "ghost", error copying content from image "ghost"'):
        _run(store, Verb.COPY, ["/f"], "/f", source="ghost", retry_delay=0)
    assert store.count("pull") == 1
    assert store.count("mount") == 0


def test_source_released_when_copy_fails(store: FakeStore, target):
    store.add_image("img", {"f": "x"})

    with pytest.raises(OperationError, match="adding content"):
        _run(store, Verb.COPY, ["/absent"], "/", source="img", retry_delay=0)

    assert _balanced(store)
    assert len(store.deleted) == 1


def test_source_unmount_failure_is_fatal(store: FakeStore, target):
    source = store.add_container("builder", files={"f": "x"})
    store.fail_on[("unmount", source.container_id)] = StoreError("busy")

    with pytest.raises(OperationError, match='unmounting "builder" container "builder-id": busy'):
        _run(store, Verb.COPY, ["/f"], "/f", source="builder")
    assert store.count("save") == 0


def test_fully_excluded_copy_does_not_commit(store: FakeStore, target, context_dir: Path):
    write_tree(context_dir, {"b.tmp": "b"})
    ctx = _context(store, ["b.tmp"], context_dir=str(context_dir), excludes=["*.tmp"], add_history=True)

    with pytest.raises(OperationError, match=r"no items matching glob 'b.tmp' copied \(1 filtered out\)"):
        asyncio.run(run_ingest(ctx))

    assert ctx.state is IngestState.FAILED
    assert ctx.digest == ""
    assert store.count("save") == 0
    assert _balanced(store)
