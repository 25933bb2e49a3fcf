"""Tests for building and persisting the context document."""

import os

import pytest

from specflow.config import ContextConfig
from specflow.context_sync import (
    CONTEXT_BANNER,
    ContextSynchronizer,
    iter_context_files,
    render_context,
)
from specflow.errors import ContextMissing, SyncError

from conftest import write_file


def _synchronizer(root, **overrides):
    return ContextSynchronizer(ContextConfig(project_root=root, **overrides))


def test_example_tree_includes_only_eligible_files(project):
    write_file(project, "src/a.ts", "x")
    write_file(project, "node_modules/b.ts", "y")
    write_file(project, "README.md", "z")

    sync = _synchronizer(project, ignore=["node_modules"], extensions=[".ts", ".md"])
    result = sync.sync()

    document = sync.context_path.read_text(encoding="utf-8")
    assert document == (
        CONTEXT_BANNER
        + "\n--- FILE: README.md ---\nz\n"
        + "\n--- FILE: src/a.ts ---\nx\n"
    )
    assert result.file_count == 2
    assert "node_modules" not in document


def test_sync_twice_is_byte_identical(project):
    for rel in ["b/z.py", "a/y.ts", "a/b/c.md", "root.json", "Zeta.ts"]:
        write_file(project, rel, f"content of {rel}\n")
    sync = _synchronizer(project)

    sync.sync()
    first = sync.context_path.read_bytes()
    sync.sync()
    assert sync.context_path.read_bytes() == first


def test_ignored_name_is_skipped_at_any_depth(project):
    write_file(project, "src/keep.ts", "keep")
    write_file(project, "src/deep/node_modules/pkg/index.ts", "nested-dependency")
    write_file(project, "src/.env.local", "SECRET=1")

    sync = _synchronizer(project)
    sync.sync()
    document = sync.load()

    assert "src/keep.ts" in document
    assert "nested-dependency" not in document
    assert "SECRET" not in document


def test_extension_match_is_exact_and_case_sensitive(project):
    write_file(project, "lower.ts", "included")
    write_file(project, "UPPER.TS", "shouty")
    write_file(project, "notes.txt", "plain text")
    write_file(project, "types.d.ts", "declared")

    sections = list(iter_context_files(project, ignore=[], extensions=[".ts"]))

    assert [s.relative_path for s in sections] == ["lower.ts", "types.d.ts"]


def test_context_document_does_not_index_itself(project):
    write_file(project, "a.md", "alpha")
    sync = _synchronizer(project, context_file="context.md")

    sync.sync()
    sync.sync()

    assert "FILE: context.md" not in sync.load()


def test_symlink_cycle_is_not_followed(project):
    write_file(project, "src/a.ts", "x")
    os.symlink(project, project / "src" / "loop", target_is_directory=True)

    sync = _synchronizer(project)
    result = sync.sync()

    assert result.file_count == 1
    assert sync.load().count("--- FILE: src/a.ts ---") == 1


def test_failed_read_leaves_previous_document(project):
    write_file(project, "good.ts", "fine")
    sync = _synchronizer(project)
    sync.context_path.write_text("previous document", encoding="utf-8")
    (project / "bad.ts").write_bytes(b"\xff\xfe\x00broken")

    with pytest.raises(SyncError):
        sync.sync()

    assert sync.context_path.read_text(encoding="utf-8") == "previous document"


def test_oversized_file_is_skipped_and_reported(project):
    write_file(project, "small.ts", "ok")
    write_file(project, "big.ts", "x" * 100)

    sync = _synchronizer(project, max_file_bytes=10)
    result = sync.sync()

    assert result.skipped == ["big.ts"]
    assert "FILE: big.ts" not in sync.load()
    assert "FILE: small.ts" in sync.load()


def test_total_size_cap_aborts_without_writing(project):
    write_file(project, "a.ts", "a" * 40)
    write_file(project, "b.ts", "b" * 40)

    sync = _synchronizer(project, max_total_bytes=50)
    with pytest.raises(SyncError):
        sync.sync()

    assert not sync.context_path.exists()


def test_load_before_sync_raises_context_missing(project):
    with pytest.raises(ContextMissing):
        _synchronizer(project).load()


def test_missing_root_raises_sync_error(tmp_path):
    with pytest.raises(SyncError):
        _synchronizer(tmp_path / "nope").sync()


def test_iterator_is_lazy(project):
    write_file(project, "a.ts", "first")
    (project / "b.ts").write_bytes(b"\xff\xfe not utf-8")

    it = iter_context_files(project, ignore=[], extensions=[".ts"])
    first = next(it)

    assert first.relative_path == "a.ts"
    assert first.content == "first"
    # b.ts is only read when the caller asks for it.
    with pytest.raises(SyncError):
        next(it)


def test_render_empty_tree_is_banner_only():
    assert render_context([]) == CONTEXT_BANNER


def test_summary_reports_persisted_document(project):
    write_file(project, "a.ts", "x")
    write_file(project, "b.md", "y")
    sync = _synchronizer(project)

    assert sync.summary()["exists"] is False
    sync.sync()
    summary = sync.summary()

    assert summary["exists"] is True
    assert summary["fileCount"] == 2
    assert summary["bytes"] == sync.context_path.stat().st_size


def test_summary_count_ignores_quoted_headers(project):
    write_file(project, "notes.md", "intro\n--- FILE: fake ---\nmore\n")
    sync = _synchronizer(project)

    result = sync.sync()

    assert result.file_count == 1
    assert sync.summary()["fileCount"] == 1
    assert "FILE: codebase_context.txt.meta.json" not in sync.load()


def test_summary_falls_back_when_sidecar_is_stale(project):
    write_file(project, "a.ts", "x")
    sync = _synchronizer(project)
    sync.sync()

    sync.context_path.write_text(sync.load() + "\n--- FILE: b.ts ---\ny\n", encoding="utf-8")

    assert sync.summary()["fileCount"] == 2
