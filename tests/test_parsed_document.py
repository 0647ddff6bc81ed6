# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for the ParsedDocument query facade."""

from pathlib import Path

import pytest

from citation_context.parsed_document import ParsedDocument, anchor_similarity, rank_by_similarity
from citation_context.parser import MarkdownParser


@pytest.fixture
def target_doc(docs: Path) -> ParsedDocument:
    return ParsedDocument(MarkdownParser().parse_file(str(docs / "target.md")))


class TestAnchors:
    def test_has_anchor_by_id_and_encoded_id(self, target_doc):
        assert target_doc.has_anchor("Section One")
        assert target_doc.has_anchor("Section%20One")
        assert target_doc.has_anchor("Config%20Setup")
        assert target_doc.has_anchor("block-1")
        assert not target_doc.has_anchor("Section Three")

    def test_anchor_ids_unique_in_order(self, target_doc):
        ids = target_doc.anchor_ids()

        assert ids[:3] == ["Target", "Section One", "Section%20One"]
        assert len(ids) == len(set(ids))
        assert "block-1" in ids


class TestSimilarity:
    def test_typo_suggests_closest_anchor_first(self, target_doc):
        suggestions = target_doc.find_similar_anchors("Section Onne")

        assert suggestions[0] == "Section One"

    def test_caret_is_ignored_for_block_ids(self, target_doc):
        assert target_doc.find_similar_anchors("^block-2")[0] == "block-1"

    def test_limit_and_unbounded(self, target_doc):
        assert len(target_doc.find_similar_anchors("Section", limit=1)) == 1
        unbounded = target_doc.find_similar_anchors("Section", limit=None)
        assert len(unbounded) >= 2

    def test_nothing_above_threshold(self, target_doc):
        assert target_doc.find_similar_anchors("zzzzzzzzzzzzzzzzzzzz") == []

    def test_ranking_is_deterministic_with_ties_in_input_order(self):
        candidates = ["abd", "abe", "abf"]

        first = rank_by_similarity("abc", candidates)
        second = rank_by_similarity("abc", candidates)

        assert first == second
        assert [name for name, _ in first] == ["abd", "abe", "abf"]

    def test_similarity_bounds(self):
        assert anchor_similarity("Intro", "Intro") == 1.0
        assert anchor_similarity("", "Intro") == 0.0
        assert anchor_similarity("INTRO", "intro") == 1.0


class TestExtraction:
    def test_section_includes_nested_headings(self, target_doc):
        section = target_doc.extract_section("Section One")

        assert section == (
            "## Section One\n\nThis is section one content.\n\n### Detail\n\nNested detail.\n"
        )

    def test_last_section_runs_to_end(self, target_doc):
        assert target_doc.extract_section("Config: Setup") == "## Config: Setup\n\nSetup text.\n"

    def test_section_with_level_filter(self, target_doc):
        assert target_doc.extract_section("Detail", heading_level=2) is None
        assert target_doc.extract_section("Detail", heading_level=3).startswith("### Detail")

    def test_missing_section(self, target_doc):
        assert target_doc.extract_section("Nope") is None

    def test_block_extraction(self, target_doc):
        assert target_doc.extract_block("block-1") == "Second section. ^block-1"
        assert target_doc.extract_block("block-9") is None
        assert target_doc.extract_block(None) is None

    def test_full_content(self, target_doc, docs: Path):
        assert target_doc.extract_full_content() == (docs / "target.md").read_text()
