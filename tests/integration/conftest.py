# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests."""

from pathlib import Path

import pytest

ARCHITECTURE_MD = """# Architecture

## Overview

The system has three layers.

## Storage Layer

Documents are cached after parsing. ^storage-note

## API

Requests go through the service.
"""

PLAN_MD = """# Plan

See [overview](architecture.md#Overview) and [storage](architecture.md#Storage%20Layer).
The same overview again: [[architecture#Overview|overview]]
Storage note: [note](architecture.md#^storage-note)
Full glossary: [glossary](glossary.md)
Forced glossary: [glossary](glossary.md) %%force-extract%%
Never: [api](architecture.md#API) %%stop-extract-link%%
Install: [install](setup.md#Install)
Broken: [broken](architecture.md#Deployment)
"""


@pytest.fixture
def knowledge_base(tmp_path: Path) -> Path:
    """Create a small knowledge base with one planning document citing the rest.

    Layout:
        kb/plan.md            nine citations covering every extraction path
        kb/architecture.md    sections and a block anchor
        kb/glossary.md        cited as a whole document
        kb/guides/setup.md    cited by filename only, needs the scope folder

    Returns:
        Path to the knowledge base root
    """
    root = tmp_path / "kb"
    (root / "guides").mkdir(parents=True)
    (root / "architecture.md").write_text(ARCHITECTURE_MD)
    (root / "glossary.md").write_text("# Glossary\n\nCitation: a link to a section.\n")
    (root / "guides" / "setup.md").write_text("# Setup\n\n## Install\n\nRun the installer.\n")
    (root / "plan.md").write_text(PLAN_MD)
    return root
