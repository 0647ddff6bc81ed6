# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for the command-line interface."""

import io
import json
from pathlib import Path

import pytest

from citation_context.cli import (
    EXIT_ERROR,
    EXIT_FAILED,
    EXIT_OK,
    build_parser,
    main,
    parse_line_range,
)
from citation_context.config import Config
from citation_context.service import CitationService
from conftest import word_count


@pytest.fixture
def service(tmp_path: Path) -> CitationService:
    return CitationService(
        Config(tmp_path / "none.yml"), token_counter=word_count, data_root=tmp_path / "data"
    )


def run(argv, service):
    stdout, stderr = io.StringIO(), io.StringIO()
    code = main(argv, service=service, stdout=stdout, stderr=stderr)
    return code, stdout.getvalue(), stderr.getvalue()


class TestValidate:
    def test_clean_document(self, service, write_source):
        source = write_source("[a](target.md#Section%20One)\n")

        code, out, _ = run(["validate", str(source)], service)

        assert code == EXIT_OK
        assert "Line 1: [OK] [a](target.md#Section%20One)" in out
        assert "1 links: 1 valid, 0 warnings, 0 errors" in out

    def test_errors_exit_one(self, service, write_source):
        source = write_source("[a](target.md#Sectoin%20One)\n")

        code, out, _ = run(["validate", str(source)], service)

        assert code == EXIT_FAILED
        assert "[ERROR]" in out
        assert "Anchor not found: #Sectoin%20One" in out
        assert "Did you mean" in out

    def test_json_format(self, service, write_source):
        source = write_source("[a](target.md#Section%20One)\n[b](missing.md)\n")

        code, out, _ = run(["validate", str(source), "--format", "json"], service)

        data = json.loads(out)
        assert code == EXIT_FAILED
        assert data["summary"]["errors"] == 1
        assert len(data["links"]) == 2

    def test_lines_filter(self, service, write_source):
        source = write_source(
            "[a](target.md#Section%20One)\n[b](missing.md)\n[c](target.md#Section%20Two)\n"
        )

        first_code, first_out, _ = run(["validate", str(source), "--lines", "1"], service)
        rest_code, rest_out, _ = run(["validate", str(source), "--lines", "2-3"], service)

        assert first_code == EXIT_OK
        assert "1 links: 1 valid, 0 warnings, 0 errors" in first_out
        assert rest_code == EXIT_FAILED
        assert "Line 1:" not in rest_out
        assert "2 links: 1 valid, 0 warnings, 1 errors" in rest_out

    @pytest.mark.parametrize("value", ["0", "3-1", "a-b", ""])
    def test_bad_line_range_rejected(self, service, write_source, value):
        source = write_source("[a](target.md#Section%20One)\n")

        with pytest.raises(SystemExit):
            run(["validate", str(source), "--lines", value], service)

    def test_fix_rewrites_and_revalidates(self, service, write_source):
        source = write_source("[a](target.md#section-one)\n")

        code, out, _ = run(["validate", str(source), "--fix"], service)

        assert code == EXIT_OK
        assert "Fixed 1 citations in" in out
        assert "    - [a](target.md#section-one)" in out
        assert "    + [a](target.md#Section%20One)" in out
        assert "1 links: 1 valid, 0 warnings, 0 errors" in out
        assert source.read_text() == "[a](target.md#Section%20One)\n"

    def test_fix_json(self, service, write_source):
        source = write_source("[a](target.md#section-one)\n[b](missing.md)\n")

        code, out, _ = run(["validate", str(source), "--fix", "--format", "json"], service)

        data = json.loads(out)
        assert code == EXIT_FAILED
        assert data["fixes"] == [
            {
                "line": 1,
                "type": "anchor",
                "old": "[a](target.md#section-one)",
                "new": "[a](target.md#Section%20One)",
            }
        ]
        assert data["summary"]["errors"] == 1

    def test_fix_without_fixable_citations(self, service, write_source):
        source = write_source("[a](target.md#Section%20One)\n")

        code, out, _ = run(["validate", str(source), "--fix"], service)

        assert code == EXIT_OK
        assert f"No auto-fixable citations found in {source}" in out

    def test_missing_source_exit_two(self, service, tmp_path):
        code, out, err = run(["validate", str(tmp_path / "absent.md")], service)

        assert code == EXIT_ERROR
        assert out == ""
        assert err.startswith("ERROR: ")

    def test_bad_scope_exit_two(self, service, tmp_path, write_source):
        source = write_source("[a](target.md#Section%20One)\n")

        code, _, err = run(["validate", str(source), "--scope", str(tmp_path / "nope")], service)

        assert code == EXIT_ERROR
        assert "Scope folder is not a directory" in err


class TestExtract:
    def test_links_json(self, service, write_source):
        source = write_source("[a](target.md#Section%20Two)\n[b](target.md#Section%20Two)\n")

        code, out, err = run(["extract", "links", str(source)], service)

        data = json.loads(out)
        assert code == EXIT_OK
        assert err == ""
        assert data["stats"]["uniqueContent"] == 1
        assert data["stats"]["duplicateContentDetected"] == 1

    def test_skipped_links_reported_on_stderr(self, service, write_source):
        source = write_source("[a](target.md#Section%20Two)\n[z](whole.md)\n")

        code, _, err = run(["extract", "links", str(source)], service)

        assert code == EXIT_OK
        assert "Links not extracted:" in err
        assert "Line 2: Link not eligible:" in err

    def test_full_files_flag(self, service, write_source):
        source = write_source("[z](whole.md)\n")

        without_code, _, _ = run(["extract", "links", str(source)], service)
        with_code, out, _ = run(["extract", "links", str(source), "--full-files"], service)

        assert without_code == EXIT_FAILED
        assert with_code == EXIT_OK
        assert json.loads(out)["stats"]["extracted"] == 1

    def test_text_format(self, service, write_source):
        source = write_source("[a](target.md#Section%20Two)\n")

        code, out, _ = run(["extract", "links", str(source), "--format", "text"], service)

        assert code == EXIT_OK
        assert "cited by line 1" in out
        assert "Second section. ^block-1" in out
        assert "1/1 extracted" in out

    def test_session_repeat_prints_nothing(self, service, write_source):
        source = write_source("[a](target.md#Section%20Two)\n")
        argv = ["extract", "links", str(source), "--session", "s1"]

        first_code, first_out, _ = run(argv, service)
        second_code, second_out, _ = run(argv, service)

        assert first_code == EXIT_OK and first_out
        assert second_code == EXIT_OK
        assert second_out == ""

    def test_header(self, service, docs):
        code, out, _ = run(["extract", "header", str(docs / "target.md"), "Detail"], service)

        (block,) = json.loads(out)["extractedContentBlocks"].values()
        assert code == EXIT_OK
        assert block["content"] == "### Detail\n\nNested detail.\n"

    def test_missing_header_exit_one(self, service, docs):
        code, _, err = run(["extract", "header", str(docs / "target.md"), "Nope"], service)

        assert code == EXIT_FAILED
        assert "Anchor not found" in err

    def test_file(self, service, docs):
        code, out, _ = run(["extract", "file", str(docs / "whole.md")], service)

        assert code == EXIT_OK
        assert json.loads(out)["stats"]["extracted"] == 1


def test_clear_session(service, write_source):
    source = write_source("[a](target.md#Section%20Two)\n")
    run(["extract", "links", str(source), "--session", "s1"], service)

    code, out, _ = run(["clear-session", "--session", "s1"], service)

    assert code == EXIT_OK
    assert out.strip() == "Removed 1 session markers"


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_global_options_parsed(tmp_path):
    args = build_parser().parse_args(
        ["--config", str(tmp_path / "c.yml"), "--data-root", str(tmp_path), "validate", "a.md"]
    )

    assert args.config == tmp_path / "c.yml"
    assert args.data_root == tmp_path
    assert args.scope is None
    assert args.format == "text"
    assert args.lines is None
    assert args.fix is False


def test_parse_line_range():
    assert parse_line_range("7") == (7, 7)
    assert parse_line_range("10-50") == (10, 50)
