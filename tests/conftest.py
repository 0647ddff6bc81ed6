# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures: a small markdown corpus with cross-document citations."""

from pathlib import Path

import pytest

TARGET_MD = """# Target

Intro text.

## Section One

This is section one content.

### Detail

Nested detail.

## Section Two

Second section. ^block-1

## Config: Setup

Setup text.
"""

WHOLE_MD = """# Whole

A document cited in full.
"""


def word_count(text: str) -> int:
    """Deterministic token counter for tests (no tiktoken download)."""
    return len(text.split())


@pytest.fixture
def docs(tmp_path: Path) -> Path:
    """Create a docs folder with target documents.

    Layout:
        docs/target.md         sections, a block anchor, a colon heading
        docs/whole.md          short document for full-file links
        docs/guides/setup.md   only reachable by filename through the file cache
    """
    root = tmp_path / "docs"
    root.mkdir()
    (root / "target.md").write_text(TARGET_MD, encoding="utf-8")
    (root / "whole.md").write_text(WHOLE_MD, encoding="utf-8")
    guides = root / "guides"
    guides.mkdir()
    (guides / "setup.md").write_text("# Setup\n\n## Install\n\nRun the installer.\n")
    return root


@pytest.fixture
def write_source(docs: Path):
    """Write a source document into the docs folder and return its path."""

    def _write(content: str, name: str = "source.md") -> Path:
        path = docs / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write
