# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Read-only facade over one parsed markdown document.

ParsedDocument isolates consumers (validator, extractor) from the parser's
output schema. Instances are built once per path by ParsedFileCache and never
modified afterwards.
"""

import logging
from typing import List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from citation_context.models import Anchor, AnchorType, Link, ParserOutput

logger = logging.getLogger(__name__)

# Minimum normalized similarity for a candidate to be suggested
DEFAULT_SIMILARITY_THRESHOLD = 0.3


def anchor_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity in [0, 1], case-insensitive."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return float(Levenshtein.normalized_similarity(a.casefold(), b.casefold()))


def rank_by_similarity(
    anchor: str,
    candidates: List[str],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> List[Tuple[str, float]]:
    """Rank candidates by similarity to anchor, highest first.

    Ties keep the candidates' original order (sorted() is stable), so the
    same inputs always produce the same ranking.
    """
    scored = [(candidate, anchor_similarity(anchor, candidate)) for candidate in candidates]
    matches = [item for item in scored if item[1] > threshold]
    return sorted(matches, key=lambda item: -item[1])


class ParsedDocument:
    """Stable query interface over ParserOutput.

    Usage:
        doc = ParsedDocument(parser.parse_file(path))
        doc.has_anchor("Overview")
        doc.find_similar_anchors("Overveiw")
        doc.extract_section("Overview")
    """

    def __init__(self, parser_output: ParserOutput) -> None:
        self._data = parser_output
        self._anchor_ids: Optional[List[str]] = None

    @property
    def file_path(self) -> str:
        return self._data.file_path

    @property
    def anchors(self) -> List[Anchor]:
        return list(self._data.anchors)

    def get_links(self) -> List[Link]:
        """All links in document order."""
        return list(self._data.links)

    def anchor_ids(self) -> List[str]:
        """Unique anchor ids in order of appearance, including URL-encoded header ids."""
        if self._anchor_ids is None:
            ids: List[str] = []
            seen = set()
            for anchor in self._data.anchors:
                for value in (anchor.id, anchor.url_encoded_id):
                    if value is not None and value not in seen:
                        seen.add(value)
                        ids.append(value)
            self._anchor_ids = ids
        return list(self._anchor_ids)

    def has_anchor(self, anchor_id: str) -> bool:
        """Check whether anchor_id names an anchor (id or header URL-encoded id)."""
        for anchor in self._data.anchors:
            if anchor.id == anchor_id:
                return True
            if anchor.anchor_type == AnchorType.HEADER and anchor.url_encoded_id == anchor_id:
                return True
        return False

    def find_similar_anchors(
        self,
        anchor_id: str,
        limit: Optional[int] = 5,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[str]:
        """Anchor ids similar to anchor_id, most similar first.

        Args:
            anchor_id: The anchor that was not found. A leading caret is ignored.
            limit: Maximum suggestions to return, None for all.
            threshold: Minimum similarity (exclusive).
        """
        search = anchor_id[1:] if anchor_id.startswith("^") else anchor_id
        ranking = rank_by_similarity(search, self.anchor_ids(), threshold)
        ranked = [candidate for candidate, _ in ranking]
        return ranked if limit is None else ranked[:limit]

    def extract_full_content(self) -> str:
        return self._data.content

    def extract_section(
        self, heading_text: str, heading_level: Optional[int] = None
    ) -> Optional[str]:
        """Extract a heading and everything up to the next heading of same or higher level.

        Args:
            heading_text: Exact heading text, or an explicit {#id}.
            heading_level: Optional level (1-6) to disambiguate repeated headings.

        Returns:
            Section text, or None if no such heading exists.
        """
        headings = self._data.headings
        target_index = None
        for index, heading in enumerate(headings):
            if heading_level is not None and heading.level != heading_level:
                continue
            if heading.text == heading_text or self._explicit_id(heading.text) == heading_text:
                target_index = index
                break
        if target_index is None:
            return None

        target = headings[target_index]
        lines = self._data.content.split("\n")
        end_line = len(lines)  # exclusive, 0-based
        for heading in headings[target_index + 1 :]:
            if heading.level <= target.level:
                end_line = heading.line - 1
                break

        return "\n".join(lines[target.line - 1 : end_line]).rstrip("\n") + "\n"

    def extract_block(self, block_id: Optional[str]) -> Optional[str]:
        """Return the line carrying ^block_id, or None if absent."""
        if not block_id:
            return None
        for anchor in self._data.anchors:
            if anchor.anchor_type == AnchorType.BLOCK and anchor.id == block_id:
                lines = self._data.content.split("\n")
                index = anchor.line - 1
                if 0 <= index < len(lines):
                    return lines[index]
                return None
        return None

    @staticmethod
    def _explicit_id(heading_text: str) -> Optional[str]:
        if heading_text.endswith("}") and "{#" in heading_text:
            return heading_text[heading_text.rindex("{#") + 2 : -1]
        return None
