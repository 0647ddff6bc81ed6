# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for citation validation and content extraction.

This module defines the records that flow through the pipeline:
- Link: A citation produced by the parser (never mutated afterwards)
- Anchor / Heading / ParserOutput: Parser output for one document
- ValidationMetadata / EnrichedLink: A link plus its validation verdict
- ValidationResult / ValidationSummary: Result of validating one document
- EligibilityDecision: Verdict of the eligibility strategy chain
- ExtractionOutcome: Per-link extraction record
- ContentBlock / ExtractionStats / ExtractionReport: Deduplicated extraction payload
- FileResolution / FileCacheStats: Filename index lookups

Status and type values are plain string class constants so every record
serializes to JSON without conversion. ``to_dict()`` emits the camelCase
keys consumed by reporting callers.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class LinkType:
    """Syntax variant of a link."""

    MARKDOWN = "markdown"  # [text](file.md#anchor)
    WIKI = "wiki"  # [[file#anchor|text]]


class LinkScope:
    """Whether a link points into its own document or another one."""

    INTERNAL = "internal"
    CROSS_DOCUMENT = "cross-document"


class AnchorType:
    """Kinds of anchors. A link without an anchor has anchor_type None."""

    HEADER = "header"
    BLOCK = "block"


class ValidationStatus:
    VALID = "valid"
    WARNING = "warning"
    ERROR = "error"


class ExtractionStatus:
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


class MarkerText:
    """Inner text of extraction markers that follow a link."""

    STOP = "stop-extract-link"  # [x](a.md#b) %%stop-extract-link%%
    FORCE = "force-extract"  # [x](a.md) <!-- force-extract -->


@dataclass(frozen=True)
class LinkSource:
    """Where a link was found."""

    path: str
    line: int  # 1-based
    column: int  # 0-based

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "line": self.line, "column": self.column}


@dataclass(frozen=True)
class TargetPath:
    raw: Optional[str]
    absolute: Optional[str]  # None when the raw path does not resolve to an existing file

    def to_dict(self) -> Dict[str, Any]:
        return {"raw": self.raw, "absolute": self.absolute}


@dataclass(frozen=True)
class LinkTarget:
    path: TargetPath
    anchor: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path.to_dict(), "anchor": self.anchor}


@dataclass(frozen=True)
class ExtractionMarker:
    """Marker such as ``%%force-extract%%`` placed right after a link."""

    full_match: str
    inner_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"fullMatch": self.full_match, "innerText": self.inner_text}


@dataclass(frozen=True)
class Link:
    """A citation as produced by the parser.

    Links are immutable. Validation produces an EnrichedLink that wraps the
    link instead of adding fields to it.
    """

    link_type: str  # LinkType value
    scope: str  # LinkScope value
    anchor_type: Optional[str]  # AnchorType value, None for full-document links
    source: LinkSource
    target: LinkTarget
    text: Optional[str]
    full_match: str
    extraction_marker: Optional[ExtractionMarker] = None

    @property
    def line(self) -> int:
        return self.source.line

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "linkType": self.link_type,
            "scope": self.scope,
            "anchorType": self.anchor_type,
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "text": self.text,
            "fullMatch": self.full_match,
            "line": self.source.line,
            "column": self.source.column,
            "extractionMarker": (
                self.extraction_marker.to_dict() if self.extraction_marker else None
            ),
        }


@dataclass(frozen=True)
class Anchor:
    """A named location inside a document."""

    anchor_type: str  # AnchorType value
    id: str  # Heading text, explicit {#id}, or block id without the caret
    line: int  # 1-based
    column: int = 0
    raw_text: Optional[str] = None  # Heading text for header anchors
    url_encoded_id: Optional[str] = None  # Obsidian-style id for header anchors


@dataclass(frozen=True)
class Heading:
    level: int
    text: str
    line: int  # 1-based


@dataclass
class ParserOutput:
    """Everything the parser extracts from one file."""

    file_path: str
    content: str
    links: List[Link]
    headings: List[Heading]
    anchors: List[Anchor]


@dataclass(frozen=True)
class PathConversion:
    """Suggested rewrite of a link path that only resolved via the file cache."""

    original: str
    recommended: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "path-conversion",
            "original": self.original,
            "recommended": self.recommended,
        }


@dataclass(frozen=True)
class ValidationMetadata:
    """Validation verdict for one link.

    Raises:
        ValueError: If error or suggestion is set on a valid verdict.
    """

    status: str  # ValidationStatus value
    error: Optional[str] = None
    suggestion: Optional[str] = None
    path_conversion: Optional[PathConversion] = None

    def __post_init__(self) -> None:
        if self.status == ValidationStatus.VALID and (
            self.error is not None or self.suggestion is not None
        ):
            raise ValueError("A valid verdict cannot carry an error or suggestion")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"status": self.status}
        if self.error is not None:
            result["error"] = self.error
        if self.suggestion is not None:
            result["suggestion"] = self.suggestion
        if self.path_conversion is not None:
            result["pathConversion"] = self.path_conversion.to_dict()
        return result


@dataclass(frozen=True)
class EnrichedLink:
    """A parser link paired with its validation verdict.

    resolved_path is the target file the validator checked. It differs from
    link.target.path.absolute when the file cache located the target, and is
    None when no target file was found.
    """

    link: Link
    validation: ValidationMetadata
    resolved_path: Optional[str] = None

    @property
    def status(self) -> str:
        return self.validation.status

    def to_dict(self) -> Dict[str, Any]:
        result = self.link.to_dict()
        if self.resolved_path is not None and self.resolved_path != self.link.target.path.absolute:
            result["resolvedPath"] = self.resolved_path
        result["validation"] = self.validation.to_dict()
        return result


@dataclass(frozen=True)
class ValidationSummary:
    total: int
    valid: int
    warnings: int
    errors: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "valid": self.valid,
            "warnings": self.warnings,
            "errors": self.errors,
        }


@dataclass
class ValidationResult:
    """Enriched links of one document. The summary is always derived from them."""

    links: List[EnrichedLink]

    @property
    def summary(self) -> ValidationSummary:
        statuses = [link.status for link in self.links]
        return ValidationSummary(
            total=len(statuses),
            valid=statuses.count(ValidationStatus.VALID),
            warnings=statuses.count(ValidationStatus.WARNING),
            errors=statuses.count(ValidationStatus.ERROR),
        )

    def in_line_range(self, start: int, end: int) -> "ValidationResult":
        """Links whose source line lies in [start, end]; the summary follows."""
        return ValidationResult(
            links=[link for link in self.links if start <= link.link.line <= end]
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "links": [link.to_dict() for link in self.links],
        }


@dataclass(frozen=True)
class CitationFix:
    """One citation rewritten in place."""

    line: int
    old: str
    new: str
    fix_type: str  # "path", "anchor" or "path+anchor"

    def to_dict(self) -> Dict[str, Any]:
        return {"line": self.line, "type": self.fix_type, "old": self.old, "new": self.new}



@dataclass(frozen=True)
class EligibilityDecision:
    eligible: bool
    reason: str


@dataclass(frozen=True)
class SuccessDetails:
    decision_reason: str
    extracted_content: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decisionReason": self.decision_reason,
            "extractedContent": self.extracted_content,
        }


@dataclass(frozen=True)
class FailureDetails:
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"reason": self.reason}


@dataclass(frozen=True)
class ExtractionOutcome:
    """Extraction record for one source link.

    Exactly one of success_details / failure_details is set, matching status.

    Raises:
        ValueError: If the details do not match the status.
    """

    source_link: EnrichedLink
    status: str  # ExtractionStatus value
    success_details: Optional[SuccessDetails] = None
    failure_details: Optional[FailureDetails] = None

    def __post_init__(self) -> None:
        if self.status == ExtractionStatus.SUCCESS:
            if self.success_details is None or self.failure_details is not None:
                raise ValueError("A success outcome requires success_details only")
        elif self.status in (ExtractionStatus.SKIPPED, ExtractionStatus.ERROR):
            if self.failure_details is None or self.success_details is not None:
                raise ValueError(f"A {self.status} outcome requires failure_details only")
        else:
            raise ValueError(f"Unknown extraction status: {self.status}")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "sourceLink": self.source_link.to_dict(),
            "status": self.status,
        }
        if self.success_details is not None:
            result["successDetails"] = self.success_details.to_dict()
        if self.failure_details is not None:
            result["failureDetails"] = self.failure_details.to_dict()
        return result


@dataclass
class ContentBlock:
    """A unique piece of extracted content and the links that produced it."""

    content: str
    content_length: int
    token_count: int
    source_links: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "contentLength": self.content_length,
            "tokenCount": self.token_count,
            "sourceLinks": self.source_links,
        }


@dataclass
class ExtractionStats:
    total_links: int = 0
    extracted: int = 0
    skipped: int = 0
    errors: int = 0
    unique_content: int = 0
    duplicate_content_detected: int = 0
    tokens_saved: int = 0
    compression_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalLinks": self.total_links,
            "extracted": self.extracted,
            "skipped": self.skipped,
            "errors": self.errors,
            "uniqueContent": self.unique_content,
            "duplicateContentDetected": self.duplicate_content_detected,
            "tokensSaved": self.tokens_saved,
            "compressionRatio": self.compression_ratio,
        }


@dataclass
class ExtractionReport:
    """Deduplicated extraction payload ready for an LLM context window."""

    content_blocks: Dict[str, ContentBlock]
    outcomes: List[ExtractionOutcome]
    stats: ExtractionStats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extractedContentBlocks": {
                content_id: block.to_dict() for content_id, block in self.content_blocks.items()
            },
            "outgoingLinksReport": {"processedLinks": [o.to_dict() for o in self.outcomes]},
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class FileResolution:
    """Result of resolving a bare filename through the file cache."""

    found: bool
    path: Optional[str] = None
    reason: Optional[str] = None  # "duplicate", "duplicate_fuzzy" or "not_found"
    message: Optional[str] = None
    fuzzy_match: bool = False
    corrected_filename: Optional[str] = None
    duplicate_count: int = 0


@dataclass(frozen=True)
class FileCacheStats:
    total_files: int
    duplicates: int
    scope_folder: str
    real_scope_folder: str
