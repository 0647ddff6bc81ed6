# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Markdown parser producing links, headings and anchors for one file.

Block structure (headings, fenced and indented code) comes from markdown-it-py
token line maps. Links and block anchors are then recognized line by line on
everything outside code, since neither wiki links nor Obsidian block ids are
part of CommonMark.

Recognized syntax:
- Markdown links: [text](path.md#anchor), [text](#anchor)
- Wiki links: [[path#anchor|text]], [[#anchor]]
- Extraction markers right after a link: %%force-extract%%, <!-- stop-extract-link -->
- Header anchors: every heading, with an optional explicit {#id}
- Block anchors: ^block-id at the end of a line or mid-line (version ranges
  such as ^14.0.1 excluded), and ==**emphasis**== markers
"""

import logging
import os
import re
from typing import List, Optional, Set, Tuple
from urllib.parse import unquote

from markdown_it import MarkdownIt

from citation_context.models import (
    Anchor,
    AnchorType,
    ExtractionMarker,
    Heading,
    Link,
    LinkScope,
    LinkSource,
    LinkTarget,
    LinkType,
    ParserOutput,
    TargetPath,
)

logger = logging.getLogger(__name__)

# [text](target) but not ![alt](image)
MARKDOWN_LINK_PATTERN = re.compile(r"(?<!!)\[([^\[\]]*)\]\(([^()\s]*(?:\([^()]*\)[^()\s]*)*)\)")

# [[target#anchor|text]]
WIKI_LINK_PATTERN = re.compile(r"\[\[([^\[\]|#]*)(?:#([^\[\]|]*))?(?:\|([^\[\]]*))?\]\]")

# %%text%% or <!-- text --> directly after a link
MARKER_PATTERN = re.compile(r"^\s*(%%(.+?)%%|<!--\s*(.+?)\s*-->)")

INLINE_CODE_PATTERN = re.compile(r"(`+)(.+?)\1")

BLOCK_ANCHOR_PATTERN = re.compile(r"\^([A-Za-z0-9\-_]+)$")

# ^id anywhere in a line; #^id is a link reference, ^1.2 a version range
CARET_ANCHOR_PATTERN = re.compile(r"(?<!#)\^([A-Za-z0-9\-]+)(?![A-Za-z0-9\-]|\.\d)")

# ==**text**==
EMPHASIS_ANCHOR_PATTERN = re.compile(r"==\*\*([^*]+)\*\*==")

EXPLICIT_HEADING_ID_PATTERN = re.compile(r"^(.+?)\s*\{#([^}]+)\}$")

EXTERNAL_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


def determine_anchor_type(anchor: Optional[str]) -> Optional[str]:
    """Classify an anchor string: caret prefix means block, anything else header."""
    if not anchor:
        return None
    if anchor.startswith("^"):
        return AnchorType.BLOCK
    return AnchorType.HEADER


def detect_extraction_marker(line: str, link_end_column: int) -> Optional[ExtractionMarker]:
    """Return the extraction marker immediately following a link, if any."""
    match = MARKER_PATTERN.match(line[link_end_column:])
    if not match:
        return None
    inner = match.group(2) if match.group(2) is not None else match.group(3)
    return ExtractionMarker(full_match=match.group(1), inner_text=(inner or "").strip())


def resolve_target_path(raw_path: str, source_path: str) -> Optional[str]:
    """Resolve a raw link path against the source file's directory.

    Returns:
        Absolute path if it names an existing file, None otherwise.
    """
    if not raw_path:
        return None
    candidates = [unquote(raw_path)]
    if candidates[0] != raw_path:
        candidates.append(raw_path)

    source_dir = os.path.dirname(source_path)
    for candidate in candidates:
        if os.path.isabs(candidate):
            resolved = os.path.normpath(candidate)
        else:
            resolved = os.path.normpath(os.path.join(source_dir, candidate))
        if os.path.isfile(resolved):
            return resolved
    return None


def url_encoded_heading_id(text: str) -> str:
    """Obsidian-compatible header id: colons removed, whitespace runs become %20."""
    return re.sub(r"\s+", "%20", text.replace(":", ""))


def create_header_link(target_file: str, header: str) -> Link:
    """Synthetic link to one section of target_file, as if cited from elsewhere."""
    return _synthetic_link(target_file, header)


def create_file_link(target_file: str) -> Link:
    """Synthetic full-document link to target_file."""
    return _synthetic_link(target_file, None)


def _synthetic_link(target_file: str, anchor: Optional[str]) -> Link:
    absolute_path = os.path.abspath(target_file)
    suffix = f"#{anchor}" if anchor else ""
    return Link(
        link_type=LinkType.MARKDOWN,
        scope=LinkScope.CROSS_DOCUMENT,
        anchor_type=determine_anchor_type(anchor),
        source=LinkSource(path=absolute_path, line=0, column=0),
        target=LinkTarget(
            path=TargetPath(
                raw=target_file, absolute=resolve_target_path(absolute_path, absolute_path)
            ),
            anchor=anchor,
        ),
        text=anchor or os.path.basename(target_file),
        full_match=f"[{anchor or os.path.basename(target_file)}]({target_file}{suffix})",
    )


class MarkdownParser:
    """Parses markdown files into ParserOutput.

    The parser is stateless; one instance can be shared by every cache.

    Usage:
        parser = MarkdownParser()
        output = parser.parse_file("/abs/path/doc.md")
    """

    def __init__(self) -> None:
        self._md = MarkdownIt("commonmark")

    def parse_file(self, file_path: str) -> ParserOutput:
        """Read and parse a markdown file.

        Args:
            file_path: Absolute path to the file.

        Returns:
            ParserOutput with links, headings and anchors in document order.

        Raises:
            FileNotFoundError: If the file does not exist.
            UnicodeDecodeError: If the file is not valid UTF-8.
            OSError: If the file cannot be read.
        """
        with open(file_path, encoding="utf-8") as f:
            content = f.read()
        return self.parse_content(content, os.path.abspath(file_path))

    def parse_content(self, content: str, file_path: str) -> ParserOutput:
        """Parse markdown content that belongs to file_path."""
        lines = content.split("\n")
        headings, code_lines = self._scan_blocks(content)

        links: List[Link] = []
        for index, line in enumerate(lines):
            if index in code_lines:
                continue
            links.extend(self._extract_links(line, index + 1, file_path))

        anchors = self._extract_anchors(lines, headings, code_lines)

        logger.debug(
            f"Parsed {file_path}: {len(links)} links, {len(headings)} headings, "
            f"{len(anchors)} anchors"
        )
        return ParserOutput(
            file_path=file_path,
            content=content,
            links=links,
            headings=headings,
            anchors=anchors,
        )

    def _scan_blocks(self, content: str) -> Tuple[List[Heading], Set[int]]:
        """Collect headings and the 0-based line numbers covered by code blocks."""
        headings: List[Heading] = []
        code_lines: Set[int] = set()

        tokens = self._md.parse(content)
        for i, token in enumerate(tokens):
            if token.type == "heading_open" and token.map:
                inline = tokens[i + 1] if i + 1 < len(tokens) else None
                text = inline.content.strip() if inline is not None else ""
                headings.append(Heading(level=int(token.tag[1:]), text=text, line=token.map[0] + 1))
            elif token.type in ("fence", "code_block") and token.map:
                code_lines.update(range(token.map[0], token.map[1]))

        return headings, code_lines

    def _extract_links(self, line: str, line_number: int, file_path: str) -> List[Link]:
        code_spans = [m.span() for m in INLINE_CODE_PATTERN.finditer(line)]

        def in_code(position: int) -> bool:
            return any(start <= position < end for start, end in code_spans)

        found: List[Tuple[int, Link]] = []

        for match in WIKI_LINK_PATTERN.finditer(line):
            if in_code(match.start()):
                continue
            raw_path = match.group(1).strip()
            anchor = match.group(2).strip() if match.group(2) else None
            if raw_path and not os.path.splitext(raw_path)[1]:
                raw_path = f"{raw_path}.md"
            link = self._create_link(
                link_type=LinkType.WIKI,
                raw_path=raw_path,
                anchor=anchor,
                text=match.group(3),
                full_match=match.group(0),
                line=line,
                line_number=line_number,
                column=match.start(),
                end_column=match.end(),
                file_path=file_path,
            )
            found.append((match.start(), link))

        for match in MARKDOWN_LINK_PATTERN.finditer(line):
            if in_code(match.start()):
                continue
            href = match.group(2).strip()
            if not href or EXTERNAL_SCHEME_PATTERN.match(href):
                continue
            raw_path, _, anchor = href.partition("#")
            link = self._create_link(
                link_type=LinkType.MARKDOWN,
                raw_path=raw_path,
                anchor=anchor or None,
                text=match.group(1),
                full_match=match.group(0),
                line=line,
                line_number=line_number,
                column=match.start(),
                end_column=match.end(),
                file_path=file_path,
            )
            found.append((match.start(), link))

        found.sort(key=lambda item: item[0])
        return [link for _, link in found]

    def _create_link(
        self,
        link_type: str,
        raw_path: str,
        anchor: Optional[str],
        text: Optional[str],
        full_match: str,
        line: str,
        line_number: int,
        column: int,
        end_column: int,
        file_path: str,
    ) -> Link:
        if raw_path:
            scope = LinkScope.CROSS_DOCUMENT
            absolute = resolve_target_path(raw_path, file_path)
            target_raw: Optional[str] = raw_path
        else:
            scope = LinkScope.INTERNAL
            absolute = file_path
            target_raw = None

        return Link(
            link_type=link_type,
            scope=scope,
            anchor_type=determine_anchor_type(anchor),
            source=LinkSource(path=file_path, line=line_number, column=column),
            target=LinkTarget(path=TargetPath(raw=target_raw, absolute=absolute), anchor=anchor),
            text=text,
            full_match=full_match,
            extraction_marker=detect_extraction_marker(line, end_column),
        )

    def _extract_anchors(
        self, lines: List[str], headings: List[Heading], code_lines: Set[int]
    ) -> List[Anchor]:
        anchors: List[Anchor] = []

        for heading in headings:
            explicit = EXPLICIT_HEADING_ID_PATTERN.match(heading.text)
            if explicit:
                explicit_id = explicit.group(2)
                anchors.append(
                    Anchor(
                        anchor_type=AnchorType.HEADER,
                        id=explicit_id,
                        line=heading.line,
                        raw_text=explicit.group(1).strip(),
                        url_encoded_id=explicit_id,
                    )
                )
            else:
                anchors.append(
                    Anchor(
                        anchor_type=AnchorType.HEADER,
                        id=heading.text,
                        line=heading.line,
                        raw_text=heading.text,
                        url_encoded_id=url_encoded_heading_id(heading.text),
                    )
                )

        for index, line in enumerate(lines):
            if index in code_lines:
                continue
            stripped = line.rstrip()
            end_start = -1
            match = BLOCK_ANCHOR_PATTERN.search(stripped)
            if match:
                end_start = match.start()
                anchors.append(
                    Anchor(
                        anchor_type=AnchorType.BLOCK,
                        id=match.group(1),
                        line=index + 1,
                        column=match.start(),
                    )
                )

            for caret in CARET_ANCHOR_PATTERN.finditer(stripped):
                if caret.start() == end_start:
                    continue
                anchors.append(
                    Anchor(
                        anchor_type=AnchorType.BLOCK,
                        id=caret.group(1),
                        line=index + 1,
                        column=caret.start(),
                    )
                )

            for emphasis in EMPHASIS_ANCHOR_PATTERN.finditer(stripped):
                anchors.append(
                    Anchor(
                        anchor_type=AnchorType.BLOCK,
                        id=emphasis.group(1),
                        line=index + 1,
                        column=emphasis.start(),
                    )
                )

        # Document order: by line, headers before block ids on the same line
        anchors.sort(key=lambda a: (a.line, a.anchor_type != AnchorType.HEADER, a.column))
        return anchors
