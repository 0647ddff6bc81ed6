# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for ContentExtractor and extraction reports."""

import asyncio
from pathlib import Path

import pytest

from citation_context.citation_validator import CitationValidator
from citation_context.content_extractor import (
    ContentExtractor,
    build_extraction_report,
    decode_url_anchor,
    generate_content_id,
    normalize_block_id,
)
from citation_context.file_cache import FileCache
from citation_context.models import ExtractionStatus
from citation_context.parsed_file_cache import ParsedFileCache
from citation_context.parser import MarkdownParser
from citation_context.strategies import CliFlagStrategy, ExtractionOptions, StopMarkerStrategy
from conftest import word_count


def make_extractor(file_cache=None, strategies=()) -> ContentExtractor:
    cache = ParsedFileCache()
    validator = CitationValidator(cache, file_cache=file_cache)
    return ContentExtractor(cache, validator, strategies=strategies)


def extract(extractor: ContentExtractor, path: Path, **options):
    return asyncio.run(extractor.extract_links_content(str(path), ExtractionOptions(**options)))


class TestScenarios:
    def test_header_link_extracted_without_flag(self, write_source):
        source = write_source("[X](target.md#Section%20Two)\n")

        outcomes = extract(make_extractor(), source)

        assert len(outcomes) == 1
        outcome = outcomes[0]
        assert outcome.status == ExtractionStatus.SUCCESS
        assert outcome.success_details.decision_reason == "Anchor links eligible by default"
        assert outcome.success_details.extracted_content == (
            "## Section Two\n\nSecond section. ^block-1\n"
        )

    def test_missing_file_skipped_as_validation_failure(self, write_source):
        source = write_source("[Y](missing.md)\n")

        outcome = extract(make_extractor(), source)[0]

        assert outcome.status == ExtractionStatus.SKIPPED
        assert outcome.failure_details.reason.startswith("Link failed validation: ")
        assert "File not found" in outcome.failure_details.reason

    def test_full_document_link_needs_flag(self, write_source, docs: Path):
        source = write_source("[Z](whole.md)\n")
        extractor = make_extractor()

        without = extract(extractor, source, full_files=False)[0]
        with_flag = extract(extractor, source, full_files=True)[0]

        assert without.source_link.status == "valid"
        assert without.status == ExtractionStatus.SKIPPED
        assert without.failure_details.reason == (
            "Link not eligible: Full-document link ineligible without --full-files flag"
        )
        assert with_flag.status == ExtractionStatus.SUCCESS
        assert with_flag.success_details.extracted_content == (docs / "whole.md").read_text()

    def test_stop_marker_skips_valid_anchor_link(self, write_source):
        source = write_source("[X](target.md#Section%20One) %%stop-extract-link%%\n")

        outcome = extract(make_extractor(), source, full_files=True)[0]

        assert outcome.source_link.status == "valid"
        assert outcome.status == ExtractionStatus.SKIPPED
        assert "explicit opt-out" in outcome.failure_details.reason

    def test_force_marker_does_not_rescue_validation_error(self, write_source):
        source = write_source("[Y](missing.md) %%force-extract%%\n")

        outcome = extract(make_extractor(), source)[0]

        assert outcome.status == ExtractionStatus.SKIPPED
        assert outcome.failure_details.reason.startswith("Link failed validation: ")

    def test_force_marker_extracts_full_document(self, write_source, docs: Path):
        source = write_source("[Z](whole.md) <!-- force-extract -->\n")

        outcome = extract(make_extractor(), source)[0]

        assert outcome.status == ExtractionStatus.SUCCESS
        assert "explicit opt-in" in outcome.success_details.decision_reason


class TestRetrieval:
    def test_one_outcome_per_link_in_order(self, write_source):
        source = write_source(
            "[a](target.md#Section%20One)\n"
            "[b](missing.md)\n"
            "[c](target.md#^block-1)\n"
            "[d](whole.md)\n"
            "[e](target.md#Nope)\n"
            "[f](#Local)\n\n## Local\n\nLocal text.\n"
        )

        outcomes = extract(make_extractor(), source)

        assert [o.source_link.link.text for o in outcomes] == ["a", "b", "c", "d", "e", "f"]
        assert [o.status for o in outcomes] == [
            ExtractionStatus.SUCCESS,
            ExtractionStatus.SKIPPED,
            ExtractionStatus.SUCCESS,
            ExtractionStatus.SKIPPED,
            ExtractionStatus.SKIPPED,
            ExtractionStatus.SUCCESS,
        ]
        assert outcomes[2].success_details.extracted_content == "Second section. ^block-1"
        assert outcomes[5].success_details.extracted_content == "## Local\n\nLocal text.\n"

    def test_wiki_link_with_colon_heading(self, write_source):
        source = write_source("[[target#Config: Setup|setup]]\n")

        outcome = extract(make_extractor(), source)[0]

        assert outcome.success_details.extracted_content == "## Config: Setup\n\nSetup text.\n"

    def test_mid_line_and_emphasis_anchors_are_extracted(self, write_source, docs: Path):
        (docs / "notes.md").write_text(
            "# Notes\n\nA claim ^claim-1 in the middle.\n\n==**Important Note**== keep this.\n"
        )
        source = write_source("[c](notes.md#^claim-1)\n[n](notes.md#Important%20Note)\n")

        outcomes = extract(make_extractor(), source)

        assert [o.status for o in outcomes] == [ExtractionStatus.SUCCESS] * 2
        assert outcomes[0].success_details.extracted_content == "A claim ^claim-1 in the middle."
        assert outcomes[1].success_details.extracted_content == "==**Important Note**== keep this."

    def test_file_cache_resolved_target_is_extracted(self, write_source, docs: Path):
        file_cache = FileCache()
        file_cache.build_cache(str(docs))
        source = write_source("[Install](setup.md#Install)\n")

        outcome = extract(make_extractor(file_cache=file_cache), source)[0]

        assert outcome.source_link.status == "warning"
        assert outcome.status == ExtractionStatus.SUCCESS
        assert outcome.success_details.extracted_content == "## Install\n\nRun the installer.\n"

    def test_target_deleted_after_validation_is_isolated_error(self, write_source, docs: Path):
        source = write_source("[Z](whole.md)\n[X](target.md#Target)\n")
        cache = ParsedFileCache()
        validator = CitationValidator(cache)
        extractor = ContentExtractor(cache, validator)

        async def run():
            result = await validator.validate_file(str(source))
            (docs / "whole.md").unlink()
            return await extractor.extract_content(
                result.links, ExtractionOptions(full_files=True)
            )

        outcomes = asyncio.run(run())

        assert outcomes[0].status == ExtractionStatus.ERROR
        assert outcomes[0].failure_details.reason.startswith("Extraction failed: ")
        assert outcomes[1].status == ExtractionStatus.SUCCESS

    def test_unexpected_parser_error_is_isolated_error(self, write_source, docs: Path):
        class FragileParser(MarkdownParser):
            def parse_file(self, file_path):
                if str(file_path).endswith("fragile.md"):
                    raise RuntimeError("parser crashed")
                return super().parse_file(file_path)

        (docs / "fragile.md").write_text("# Fragile\n")
        source = write_source("[F](fragile.md)\n[X](target.md#Target)\n")
        cache = ParsedFileCache(parser=FragileParser())
        extractor = ContentExtractor(cache, CitationValidator(cache))

        outcomes = asyncio.run(
            extractor.extract_links_content(str(source), ExtractionOptions(full_files=True))
        )

        assert outcomes[0].status == ExtractionStatus.ERROR
        assert outcomes[0].failure_details.reason == "Extraction failed: parser crashed"
        assert outcomes[1].status == ExtractionStatus.SUCCESS

    def test_missing_source_propagates(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            extract(make_extractor(), tmp_path / "absent.md")

    def test_custom_strategy_sequence(self, write_source):
        source = write_source("[X](target.md#Section%20One)\n")
        extractor = make_extractor(strategies=[StopMarkerStrategy(), CliFlagStrategy()])

        outcome = extract(extractor, source)[0]

        assert outcome.status == ExtractionStatus.SKIPPED
        assert "--full-files" in outcome.failure_details.reason


class TestReport:
    def test_duplicate_content_stored_once(self, write_source):
        source = write_source(
            "[a](target.md#Section%20Two)\n"
            "[b](target.md#Section%20Two)\n"
            "[c](target.md#Config%20Setup)\n"
            "[d](missing.md)\n"
        )
        outcomes = extract(make_extractor(), source)

        report = build_extraction_report(outcomes, token_counter=word_count)

        assert len(report.content_blocks) == 2
        section_two = "## Section Two\n\nSecond section. ^block-1\n"
        block = report.content_blocks[generate_content_id(section_two)]
        assert [s["sourceLine"] for s in block.source_links] == [1, 2]
        assert block.token_count == word_count(section_two)

        stats = report.stats
        assert stats.total_links == 4
        assert stats.extracted == 3
        assert stats.skipped == 1
        assert stats.errors == 0
        assert stats.unique_content == 2
        assert stats.duplicate_content_detected == 1
        assert stats.tokens_saved == word_count(section_two)
        unique_tokens = sum(b.token_count for b in report.content_blocks.values())
        assert stats.compression_ratio == pytest.approx(
            stats.tokens_saved / (unique_tokens + stats.tokens_saved)
        )

    def test_empty_report(self):
        report = build_extraction_report([], token_counter=word_count)

        assert report.content_blocks == {}
        assert report.stats.compression_ratio == 0.0
        assert report.to_dict()["outgoingLinksReport"] == {"processedLinks": []}

    def test_report_json_shape(self, write_source):
        source = write_source("[a](target.md#Section%20Two)\n")
        report = build_extraction_report(
            extract(make_extractor(), source), token_counter=word_count
        )

        data = report.to_dict()

        assert set(data) == {"extractedContentBlocks", "outgoingLinksReport", "stats"}
        (block,) = data["extractedContentBlocks"].values()
        assert block["sourceLinks"] == [
            {"rawSourceLink": "[a](target.md#Section%20Two)", "sourceLine": 1}
        ]
        assert data["stats"]["uniqueContent"] == 1


def test_anchor_helpers():
    assert normalize_block_id("^abc") == "abc"
    assert normalize_block_id("abc") == "abc"
    assert normalize_block_id(None) is None
    assert decode_url_anchor("Section%20One") == "Section One"
    assert len(generate_content_id("text")) == 16
    assert generate_content_id("text") == generate_content_id("text")
