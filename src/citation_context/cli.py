# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Command-line interface for citation validation and extraction.

Exit codes:
    0  validate: no errors / extract: at least one content block extracted
    1  validate: errors found (remaining after --fix) / extract: nothing extracted
    2  hard failure (missing source file, unreadable file, bad configuration)
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO, Tuple

from citation_context.config import Config, ConfigurationError
from citation_context.log_config import get_default_data_root, get_logs_dir
from citation_context.logging_setup import setup_logging
from citation_context.models import (
    CitationFix,
    ExtractionReport,
    ExtractionStatus,
    ValidationResult,
    ValidationStatus,
)
from citation_context.service import CitationService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2

_STATUS_LABELS = {
    ValidationStatus.VALID: "OK",
    ValidationStatus.WARNING: "WARN",
    ValidationStatus.ERROR: "ERROR",
}


def parse_line_range(value: str) -> Tuple[int, int]:
    """Parse "N" or "START-END" (1-based, inclusive) for --lines."""
    start_text, _, end_text = value.partition("-")
    try:
        start = int(start_text)
        end = int(end_text) if end_text else start
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid line range: {value!r}") from None
    if start < 1 or end < start:
        raise argparse.ArgumentTypeError(f"invalid line range: {value!r}")
    return start, end


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="citation-context",
        description="Validate markdown citations and extract the content they point at",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file (default: ./.citation_context.yml)",
    )
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help=f"Root directory for logs and session markers. Default: {get_default_data_root()}",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log to stderr")

    commands = parser.add_subparsers(dest="command", required=True)

    validate = commands.add_parser("validate", help="Validate every citation in a document")
    validate.add_argument("file", help="Markdown document to validate")
    validate.add_argument("--scope", default=None, help="Folder searched for short filenames")
    validate.add_argument("--format", choices=["text", "json"], default="text")
    validate.add_argument(
        "--lines",
        type=parse_line_range,
        default=None,
        metavar="START[-END]",
        help="Only report citations on these source lines",
    )
    validate.add_argument(
        "--fix",
        action="store_true",
        help="Rewrite fixable paths and anchors in place before validating",
    )

    extract = commands.add_parser("extract", help="Extract cited content")
    extract_commands = extract.add_subparsers(dest="extract_command", required=True)

    links = extract_commands.add_parser("links", help="Extract content for a document's links")
    links.add_argument("file", help="Source markdown document")
    links.add_argument(
        "--full-files",
        action="store_true",
        default=None,
        help="Also extract links that point at whole documents",
    )
    links.add_argument("--scope", default=None, help="Folder searched for short filenames")
    links.add_argument(
        "--session", default=None, help="Skip content this session already extracted"
    )
    links.add_argument("--format", choices=["text", "json"], default="json")

    header = extract_commands.add_parser("header", help="Extract one section of a document")
    header.add_argument("file", help="Markdown document holding the section")
    header.add_argument("header", help="Heading text of the section")
    header.add_argument("--scope", default=None, help="Folder searched for short filenames")
    header.add_argument("--format", choices=["text", "json"], default="json")

    whole = extract_commands.add_parser("file", help="Extract a whole document")
    whole.add_argument("file", help="Markdown document to extract")
    whole.add_argument("--scope", default=None, help="Folder searched for short filenames")
    whole.add_argument("--format", choices=["text", "json"], default="json")

    cache = commands.add_parser("clear-session", help="Remove session extraction markers")
    cache.add_argument("--session", default=None, help="Session to clear (default: all)")

    return parser


def format_validation_text(result: ValidationResult) -> str:
    lines = []
    for enriched in result.links:
        link = enriched.link
        label = _STATUS_LABELS.get(enriched.status, enriched.status.upper())
        line = f"Line {link.line}: [{label}] {link.full_match}"
        if enriched.validation.error:
            line += f" - {enriched.validation.error}"
        if enriched.validation.suggestion:
            line += f" ({enriched.validation.suggestion})"
        lines.append(line)

    summary = result.summary
    lines.append(
        f"{summary.total} links: {summary.valid} valid, {summary.warnings} warnings, "
        f"{summary.errors} errors"
    )
    return "\n".join(lines)


def format_fixes_text(file_path: str, fixes: List[CitationFix]) -> str:
    if not fixes:
        return f"No auto-fixable citations found in {file_path}"
    lines = [f"Fixed {len(fixes)} citations in {file_path}:"]
    for fix in fixes:
        lines.append(f"  Line {fix.line} ({fix.fix_type}):")
        lines.append(f"    - {fix.old}")
        lines.append(f"    + {fix.new}")
    return "\n".join(lines)


def format_report_text(report: ExtractionReport) -> str:
    parts = []
    for content_id, block in report.content_blocks.items():
        cited_by = ", ".join(f"line {s['sourceLine']}" for s in block.source_links)
        parts.append(f"=== {content_id} ({block.token_count} tokens, cited by {cited_by}) ===")
        parts.append(block.content.rstrip("\n"))
    stats = report.stats
    parts.append(
        f"{stats.extracted}/{stats.total_links} extracted, {stats.skipped} skipped, "
        f"{stats.errors} errors, {stats.tokens_saved} tokens saved"
    )
    return "\n".join(parts)


def _report_problems(report: ExtractionReport, stderr: TextIO) -> None:
    for outcome in report.outcomes:
        if outcome.status == ExtractionStatus.SUCCESS or outcome.failure_details is None:
            continue
        link = outcome.source_link.link
        print(f"  Line {link.line}: {outcome.failure_details.reason}", file=stderr)


def _emit_report(report: ExtractionReport, output_format: str, stdout: TextIO) -> None:
    if output_format == "json":
        print(json.dumps(report.to_dict(), indent=2), file=stdout)
    else:
        print(format_report_text(report), file=stdout)


async def _run(
    args: argparse.Namespace, service: CitationService, stdout: TextIO, stderr: TextIO
) -> int:
    if args.command == "validate":
        fixes = None
        if args.fix:
            fixes = await service.fix(args.file, scope_folder=args.scope)
        result = await service.validate(args.file, scope_folder=args.scope)
        if args.lines is not None:
            result = result.in_line_range(*args.lines)
        if args.format == "json":
            data = result.to_dict()
            if fixes is not None:
                data["fixes"] = [fix.to_dict() for fix in fixes]
            print(json.dumps(data, indent=2), file=stdout)
        else:
            if fixes is not None:
                print(format_fixes_text(args.file, fixes), file=stdout)
            print(format_validation_text(result), file=stdout)
        return EXIT_FAILED if result.summary.errors > 0 else EXIT_OK

    if args.command == "clear-session":
        removed = service.clear_session(args.session)
        print(f"Removed {removed} session markers", file=stdout)
        return EXIT_OK

    report: Optional[ExtractionReport]
    if args.extract_command == "links":
        if args.session:
            report = await service.extract_for_session(
                args.session, args.file, full_files=args.full_files, scope_folder=args.scope
            )
            if report is None:
                # Already extracted in this session: nothing to print
                return EXIT_OK
        else:
            report = await service.extract(
                args.file, full_files=args.full_files, scope_folder=args.scope
            )
    elif args.extract_command == "header":
        report = await service.extract_header(args.file, args.header, scope_folder=args.scope)
    else:
        report = await service.extract_file(args.file, scope_folder=args.scope)

    if report.stats.skipped or report.stats.errors:
        print("Links not extracted:", file=stderr)
        _report_problems(report, stderr)

    _emit_report(report, args.format, stdout)
    return EXIT_OK if report.stats.unique_content > 0 else EXIT_FAILED


def main(
    argv: Optional[List[str]] = None,
    service: Optional[CitationService] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    """Run the CLI and return its exit code."""
    stdout = stdout if stdout is not None else sys.stdout
    stderr = stderr if stderr is not None else sys.stderr
    args = build_parser().parse_args(argv)

    if args.verbose:
        data_root = args.data_root or get_default_data_root()
        setup_logging(log_dir=get_logs_dir(data_root), log_level=logging.DEBUG)

    try:
        if service is None:
            service = CitationService(Config(args.config), data_root=args.data_root)
        return asyncio.run(_run(args, service, stdout, stderr))
    except (OSError, ValueError, ConfigurationError) as e:
        logger.debug(f"Command failed: {e}")
        print(f"ERROR: {e}", file=stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
