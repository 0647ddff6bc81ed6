# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for the filename index used for short-name resolution."""

from pathlib import Path

from citation_context.file_cache import FileCache


def build(root: Path) -> FileCache:
    cache = FileCache()
    cache.build_cache(str(root))
    return cache


def test_build_counts_markdown_files_only(docs: Path):
    (docs / "notes.txt").write_text("not markdown")
    cache = FileCache()

    stats = cache.build_cache(str(docs))

    assert stats.total_files == 3
    assert stats.duplicates == 0
    assert stats.scope_folder == str(docs)


def test_exact_and_extensionless_lookup(docs: Path):
    cache = build(docs)

    exact = cache.resolve_file("setup.md")
    bare = cache.resolve_file("setup")
    with_dirs = cache.resolve_file("somewhere/else/setup.md")

    assert exact.found and exact.path == str(docs / "guides" / "setup.md")
    assert bare.found and bare.path == exact.path
    assert with_dirs.found and with_dirs.path == exact.path
    assert not exact.fuzzy_match


def test_duplicates_are_reported_not_guessed(docs: Path, caplog):
    (docs / "guides" / "whole.md").write_text("# Another whole\n")
    cache = FileCache()

    with caplog.at_level("WARNING"):
        stats = cache.build_cache(str(docs))
    result = cache.resolve_file("whole.md")

    assert stats.duplicates == 1
    assert "whole.md" in caplog.text
    assert not result.found
    assert result.reason == "duplicate"
    assert result.duplicate_count == 2
    assert "relative path" in result.message
    assert len(cache.get_duplicates()["whole.md"]) == 2


def test_double_extension_is_corrected(docs: Path):
    result = build(docs).resolve_file("target.md.md")

    assert result.found
    assert result.fuzzy_match
    assert result.corrected_filename == "target.md"
    assert "double extension" in result.message


def test_common_typo_is_corrected(tmp_path: Path):
    (tmp_path / "architecture.md").write_text("# Architecture\n")

    result = build(tmp_path).resolve_file("architeture.md")

    assert result.found
    assert result.path == str(tmp_path / "architecture.md")
    assert result.corrected_filename == "architecture.md"


def test_unknown_file(docs: Path):
    result = build(docs).resolve_file("missing.md")

    assert not result.found
    assert result.reason == "not_found"
    assert 'File "missing.md" not found' in result.message


def test_rebuild_replaces_index(docs: Path, tmp_path: Path):
    other = tmp_path / "other"
    other.mkdir()
    (other / "solo.md").write_text("# Solo\n")
    cache = build(docs)

    cache.build_cache(str(other))

    assert cache.resolve_file("solo.md").found
    assert not cache.resolve_file("target.md").found
    assert cache.get_cache_stats()["total_files"] == 1
