# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Content extraction orchestrator.

Extraction Workflow:
1. Validate the source document (source read/parse failures propagate)
2. Links with validation errors -> skipped, "Link failed validation: ..."
3. Strategy chain on the rest -> ineligible links skipped, "Link not eligible: ..."
4. Eligible links -> target content retrieved concurrently through the shared
   ParsedFileCache: header section, block line, or full document
5. One ExtractionOutcome per source link, in document order

A retrieval failure only affects its own link (status "error").
build_extraction_report() then folds the outcomes into a deduplicated
payload for an LLM context window.
"""

import asyncio
import hashlib
import logging
from typing import Callable, Dict, List, Optional, Sequence
from urllib.parse import unquote

from citation_context.citation_validator import CitationValidator, clean_markdown_for_comparison
from citation_context.models import (
    AnchorType,
    ContentBlock,
    EligibilityDecision,
    EnrichedLink,
    ExtractionOutcome,
    ExtractionReport,
    ExtractionStats,
    ExtractionStatus,
    FailureDetails,
    Link,
    SuccessDetails,
    ValidationStatus,
)
from citation_context.parsed_document import ParsedDocument
from citation_context.parsed_file_cache import ParsedFileCache
from citation_context.strategies import ExtractionOptions, ExtractionStrategy, StrategyChain
from citation_context.tokens import TokenCounter

logger = logging.getLogger(__name__)

VALIDATION_FAILURE_PREFIX = "Link failed validation: "
INELIGIBLE_PREFIX = "Link not eligible: "
EXTRACTION_FAILURE_PREFIX = "Extraction failed: "


class ContentRetrievalError(Exception):
    """Raised when an eligible link's content cannot be located in its target."""

    pass


def normalize_block_id(anchor: Optional[str]) -> Optional[str]:
    """Drop the leading caret of a block reference."""
    if anchor and anchor.startswith("^"):
        return anchor[1:]
    return anchor


def decode_url_anchor(anchor: Optional[str]) -> Optional[str]:
    if anchor is None:
        return None
    return unquote(anchor)


def generate_content_id(content: str) -> str:
    """16 hex characters of the SHA-256 of content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


class ContentExtractor:
    """Validates a document's links and extracts the content they reference.

    Usage:
        extractor = ContentExtractor(cache, CitationValidator(cache))
        outcomes = await extractor.extract_links_content(
            "/abs/doc.md", ExtractionOptions(full_files=False)
        )
    """

    def __init__(
        self,
        parsed_file_cache: ParsedFileCache,
        citation_validator: CitationValidator,
        strategies: Sequence[ExtractionStrategy] = (),
    ) -> None:
        """Initialize the extractor.

        Args:
            parsed_file_cache: Cache shared with the validator.
            citation_validator: Validator run on the source document.
            strategies: Replacement eligibility chain (default: built-in order).
        """
        self._parsed_file_cache = parsed_file_cache
        self._citation_validator = citation_validator
        self._chain = StrategyChain(strategies)

    @property
    def strategy_chain(self) -> StrategyChain:
        return self._chain

    def analyze_eligibility(self, link: Link, options: ExtractionOptions) -> EligibilityDecision:
        return self._chain.analyze(link, options)

    async def extract_links_content(
        self, source_path: str, options: Optional[ExtractionOptions] = None
    ) -> List[ExtractionOutcome]:
        """Validate source_path and extract content for every eligible link.

        Args:
            source_path: Path to the source document.
            options: Caller flags (default: ExtractionOptions()).

        Returns:
            One ExtractionOutcome per link in the source document, order preserved.

        Raises:
            FileNotFoundError: If the source document does not exist.
            OSError: If the source document cannot be read or parsed.
        """
        options = options if options is not None else ExtractionOptions()
        validation_result = await self._citation_validator.validate_file(source_path)
        outcomes = await self.extract_content(validation_result.links, options)

        extracted = sum(1 for o in outcomes if o.status == ExtractionStatus.SUCCESS)
        logger.info(f"Extracted {extracted}/{len(outcomes)} links from {source_path}")
        return outcomes

    async def extract_content(
        self, enriched_links: Sequence[EnrichedLink], options: ExtractionOptions
    ) -> List[ExtractionOutcome]:
        """Extract content for links that were validated beforehand."""
        outcomes = await asyncio.gather(
            *(self._process_link(enriched, options) for enriched in enriched_links)
        )
        return list(outcomes)

    async def _process_link(
        self, enriched: EnrichedLink, options: ExtractionOptions
    ) -> ExtractionOutcome:
        if enriched.status == ValidationStatus.ERROR:
            return ExtractionOutcome(
                source_link=enriched,
                status=ExtractionStatus.SKIPPED,
                failure_details=FailureDetails(
                    reason=f"{VALIDATION_FAILURE_PREFIX}{enriched.validation.error}"
                ),
            )

        decision = self._chain.analyze(enriched.link, options)
        if not decision.eligible:
            return ExtractionOutcome(
                source_link=enriched,
                status=ExtractionStatus.SKIPPED,
                failure_details=FailureDetails(reason=f"{INELIGIBLE_PREFIX}{decision.reason}"),
            )

        try:
            content = await self._retrieve_content(enriched)
        except Exception as e:
            logger.debug(f"Extraction failed for {enriched.link.full_match}: {e}")
            return ExtractionOutcome(
                source_link=enriched,
                status=ExtractionStatus.ERROR,
                failure_details=FailureDetails(reason=f"{EXTRACTION_FAILURE_PREFIX}{e}"),
            )

        return ExtractionOutcome(
            source_link=enriched,
            status=ExtractionStatus.SUCCESS,
            success_details=SuccessDetails(
                decision_reason=decision.reason, extracted_content=content
            ),
        )

    async def _retrieve_content(self, enriched: EnrichedLink) -> str:
        link = enriched.link
        target_path = enriched.resolved_path or link.target.path.absolute
        if target_path is None:
            raise ContentRetrievalError(f"Target path unresolved: {link.target.path.raw}")

        target_doc = await self._parsed_file_cache.resolve_parsed_file(target_path)

        if link.anchor_type == AnchorType.HEADER:
            heading = self._section_key(target_doc, link.target.anchor or "")
            section = target_doc.extract_section(heading)
            if section is None:
                # ==**text**== anchors are cited like headings
                section = target_doc.extract_block(heading)
            if section is None:
                raise ContentRetrievalError(f"Heading not found: {heading}")
            return section

        if link.anchor_type == AnchorType.BLOCK:
            block_id = normalize_block_id(link.target.anchor)
            block = target_doc.extract_block(block_id)
            if block is None:
                raise ContentRetrievalError(f"Block not found: {block_id}")
            return block

        return target_doc.extract_full_content()

    @staticmethod
    def _section_key(document: ParsedDocument, anchor: str) -> str:
        """Map a link anchor to the heading key extract_section() understands."""
        decoded = decode_url_anchor(anchor) or ""
        headers = [a for a in document.anchors if a.anchor_type == AnchorType.HEADER]

        for candidate in headers:
            if anchor in (candidate.id, candidate.url_encoded_id) or decoded == candidate.id:
                return candidate.id

        cleaned = clean_markdown_for_comparison(decoded)
        for candidate in headers:
            if clean_markdown_for_comparison(candidate.raw_text or candidate.id) == cleaned:
                return candidate.id

        return decoded


def build_extraction_report(
    outcomes: Sequence[ExtractionOutcome],
    token_counter: Optional[Callable[[str], int]] = None,
) -> ExtractionReport:
    """Fold outcomes into content blocks keyed by content id, plus statistics.

    Identical content extracted through several links is stored once; the
    duplicate extractions are counted in tokens_saved.
    """
    count_tokens = token_counter if token_counter is not None else TokenCounter()
    blocks: Dict[str, ContentBlock] = {}
    stats = ExtractionStats(total_links=len(outcomes))

    for outcome in outcomes:
        if outcome.status == ExtractionStatus.SKIPPED:
            stats.skipped += 1
            continue
        if outcome.status == ExtractionStatus.ERROR or outcome.success_details is None:
            stats.errors += 1
            continue

        stats.extracted += 1
        content = outcome.success_details.extracted_content
        content_id = generate_content_id(content)
        block = blocks.get(content_id)
        if block is None:
            block = ContentBlock(
                content=content,
                content_length=len(content),
                token_count=count_tokens(content),
            )
            blocks[content_id] = block
            stats.unique_content += 1
        else:
            stats.duplicate_content_detected += 1
            stats.tokens_saved += block.token_count

        link = outcome.source_link.link
        block.source_links.append({"rawSourceLink": link.full_match, "sourceLine": link.line})

    unique_tokens = sum(block.token_count for block in blocks.values())
    if unique_tokens + stats.tokens_saved > 0:
        stats.compression_ratio = stats.tokens_saved / (unique_tokens + stats.tokens_saved)

    return ExtractionReport(content_blocks=blocks, outcomes=list(outcomes), stats=stats)
