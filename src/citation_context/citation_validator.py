# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Citation validation: checks every link's target file and anchor.

Validation Workflow:
1. Fetch the source ParsedDocument (a failure here propagates to the caller)
2. Enrich every link concurrently with a ValidationMetadata verdict:
   - Unresolved target path -> error "File not found: <raw>", unless the
     file cache finds the filename elsewhere in scope (-> warning with a
     path conversion suggestion)
   - Header/block anchor -> target parsed through the shared cache; missing
     anchors get similarity-ranked suggestions
   - Full-document link -> valid
3. Wait for all enrichments, derive the summary from the enriched links

Per-link problems, including unreadable target files, are recorded as data
and never raised out of validate_file().
"""

import asyncio
import logging
import os
import re
from typing import List, Optional
from urllib.parse import unquote

from citation_context.file_cache import FileCache
from citation_context.models import (
    AnchorType,
    EnrichedLink,
    Link,
    LinkType,
    PathConversion,
    ValidationMetadata,
    ValidationResult,
    ValidationStatus,
)
from citation_context.parsed_document import DEFAULT_SIMILARITY_THRESHOLD, ParsedDocument
from citation_context.parsed_file_cache import ParsedFileCache

logger = logging.getLogger(__name__)

# Suggestions rendered into the verdict text; the full ranking is available via suggest_anchors()
_SUGGESTIONS_IN_MESSAGE = 3


def clean_markdown_for_comparison(text: Optional[str]) -> str:
    """Strip inline markdown (code, bold, italic, highlight, links) for loose comparison."""
    if not text:
        return ""
    text = text.replace("`", "").replace("**", "").replace("*", "")
    text = re.sub(r"==([^=]+)==", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    return text.strip()


def loose_anchor_key(text: Optional[str]) -> str:
    """Case-folded anchor text without inline markdown, separators or punctuation."""
    cleaned = clean_markdown_for_comparison(unquote(text or ""))
    return re.sub(r"[\s\-_.:]+", "", cleaned).casefold()


class CitationValidator:
    """Validates the links of a document and enriches them with verdicts.

    Usage:
        validator = CitationValidator(ParsedFileCache())
        result = await validator.validate_file("/abs/doc.md")
        print(result.summary.errors)
    """

    def __init__(
        self,
        parsed_file_cache: ParsedFileCache,
        file_cache: Optional[FileCache] = None,
        suggestion_limit: int = 5,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        """Initialize the validator.

        Args:
            parsed_file_cache: Shared cache used for source and target documents.
            file_cache: Optional filename index for short-name resolution.
            suggestion_limit: Maximum anchor suggestions to compute per miss.
            similarity_threshold: Minimum similarity for an anchor suggestion.
        """
        self._parsed_file_cache = parsed_file_cache
        self._file_cache = file_cache
        self._suggestion_limit = suggestion_limit
        self._similarity_threshold = similarity_threshold

    @property
    def file_cache(self) -> Optional[FileCache]:
        return self._file_cache

    @file_cache.setter
    def file_cache(self, value: Optional[FileCache]) -> None:
        self._file_cache = value

    async def validate_file(self, file_path: str) -> ValidationResult:
        """Validate every link in a document.

        Args:
            file_path: Path to the source document.

        Returns:
            ValidationResult with one EnrichedLink per link, in document order.

        Raises:
            FileNotFoundError: If the source document does not exist.
            UnicodeDecodeError: If the source document is not valid UTF-8.
            OSError: If the source document cannot be read.
        """
        source = await self._parsed_file_cache.resolve_parsed_file(file_path)
        links = source.get_links()

        enriched = await asyncio.gather(
            *(self.validate_link(link, source.file_path) for link in links)
        )
        result = ValidationResult(links=list(enriched))

        summary = result.summary
        logger.info(
            f"Validated {source.file_path}: {summary.total} links, {summary.valid} valid, "
            f"{summary.warnings} warnings, {summary.errors} errors"
        )
        return result

    async def validate_link(self, link: Link, source_path: str) -> EnrichedLink:
        """Resolve and validate a single link from source_path."""
        raw_path = link.target.path.raw
        target_path = link.target.path.absolute
        path_conversion: Optional[PathConversion] = None

        if target_path is None:
            if self._file_cache is None or not raw_path:
                return EnrichedLink(
                    link=link,
                    validation=ValidationMetadata(
                        status=ValidationStatus.ERROR,
                        error=f"File not found: {raw_path}",
                        suggestion="Check if file exists or fix path",
                    ),
                )

            resolution = self._file_cache.resolve_file(os.path.basename(unquote(raw_path)))
            if not resolution.found or resolution.path is None:
                return EnrichedLink(
                    link=link,
                    validation=ValidationMetadata(
                        status=ValidationStatus.ERROR,
                        error=f"File not found: {raw_path}",
                        suggestion=resolution.message,
                    ),
                )
            target_path = resolution.path
            path_conversion = self._path_conversion(link, source_path, target_path)
            logger.debug(f"Resolved {raw_path} via file cache to {target_path}")

        validation = await self.validate_target(link, target_path, path_conversion)
        return EnrichedLink(link=link, validation=validation, resolved_path=target_path)

    async def validate_target(
        self,
        link: Link,
        target_path: str,
        path_conversion: Optional[PathConversion] = None,
    ) -> ValidationMetadata:
        """Verdict for a link whose target file is known to exist.

        Args:
            link: Link being validated.
            target_path: Absolute path of the target document.
            path_conversion: Set when the target was only found via the file cache.
        """
        if link.anchor_type in (AnchorType.HEADER, AnchorType.BLOCK) and link.target.anchor:
            anchor = link.target.anchor
            try:
                target_doc = await self._parsed_file_cache.resolve_parsed_file(target_path)
            except Exception as e:
                logger.debug(f"Could not read target {target_path}: {e}")
                return ValidationMetadata(
                    status=ValidationStatus.ERROR,
                    error=f"Error reading target file {target_path}: {e}",
                )

            if not self.anchor_exists(target_doc, anchor):
                suggestions = target_doc.find_similar_anchors(
                    anchor, limit=self._suggestion_limit, threshold=self._similarity_threshold
                )
                return ValidationMetadata(
                    status=ValidationStatus.ERROR,
                    error=f"Anchor not found: #{anchor}",
                    suggestion=self._format_suggestions(suggestions),
                    path_conversion=path_conversion,
                )

        if path_conversion is not None:
            return ValidationMetadata(
                status=ValidationStatus.WARNING,
                error=f"Found via file cache in different directory: {target_path}",
                suggestion=f"Use relative path: {path_conversion.recommended}",
                path_conversion=path_conversion,
            )

        return ValidationMetadata(status=ValidationStatus.VALID)

    async def suggest_anchors(self, anchor: str, target_path: str) -> List[str]:
        """Full similarity ranking of the target's anchors against anchor.

        Raises:
            OSError: If the target document cannot be read.
        """
        target_doc = await self._parsed_file_cache.resolve_parsed_file(target_path)
        return target_doc.find_similar_anchors(
            anchor, limit=None, threshold=self._similarity_threshold
        )

    async def corrected_anchor(self, enriched: EnrichedLink) -> Optional[str]:
        """Replacement for a missing header anchor, or None when not unambiguous.

        A heading qualifies when it equals the anchor after ignoring case,
        separators and inline markdown (#section-one -> Section One). Exactly
        one heading must qualify. Markdown links get the URL-encoded form,
        wiki links the heading text.

        Raises:
            OSError: If the target document cannot be read.
        """
        link = enriched.link
        anchor = link.target.anchor
        if link.anchor_type != AnchorType.HEADER or not anchor or enriched.resolved_path is None:
            return None

        target_doc = await self._parsed_file_cache.resolve_parsed_file(enriched.resolved_path)
        key = loose_anchor_key(anchor)
        matches = [
            candidate
            for candidate in target_doc.anchors
            if candidate.anchor_type == AnchorType.HEADER
            and key in (loose_anchor_key(candidate.id), loose_anchor_key(candidate.raw_text))
        ]
        if len(matches) != 1:
            return None
        match = matches[0]
        if link.link_type == LinkType.WIKI:
            return match.id
        return match.url_encoded_id or match.id

    @staticmethod
    def anchor_exists(document: ParsedDocument, anchor: str) -> bool:
        """Check an anchor, tolerating URL encoding, caret prefixes and inline markdown."""
        if document.has_anchor(anchor):
            return True

        decoded = unquote(anchor)
        if decoded != anchor and document.has_anchor(decoded):
            return True

        if anchor.startswith("^") and document.has_anchor(anchor[1:]):
            return True

        cleaned_search = clean_markdown_for_comparison(decoded)
        if not cleaned_search:
            return False
        for candidate in document.anchors:
            if clean_markdown_for_comparison(candidate.raw_text or candidate.id) == cleaned_search:
                return True
        return False

    @staticmethod
    def _format_suggestions(suggestions: List[str]) -> str:
        if not suggestions:
            return "No similar anchors found"
        shown = ", ".join(f"#{s}" for s in suggestions[:_SUGGESTIONS_IN_MESSAGE])
        return f"Did you mean: {shown}"

    @staticmethod
    def _path_conversion(link: Link, source_path: str, target_path: str) -> PathConversion:
        relative = os.path.relpath(target_path, os.path.dirname(source_path)).replace("\\", "/")
        anchor = f"#{link.target.anchor}" if link.target.anchor else ""
        raw = link.target.path.raw or ""
        return PathConversion(original=f"{raw}{anchor}", recommended=f"{relative}{anchor}")
