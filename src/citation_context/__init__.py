# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Markdown citation validation and content extraction."""

from .citation_validator import CitationValidator
from .config import Config, ConfigurationError
from .content_extractor import ContentExtractor, build_extraction_report
from .file_cache import FileCache
from .models import (
    EnrichedLink,
    ExtractionOutcome,
    ExtractionReport,
    Link,
    ValidationMetadata,
    ValidationResult,
)
from .parsed_document import ParsedDocument
from .parsed_file_cache import ParsedFileCache
from .parser import MarkdownParser
from .service import CitationService
from .session_cache import SessionCache, compute_fingerprint
from .strategies import ExtractionOptions, ExtractionStrategy, StrategyChain

__version__ = "0.1.0"

__all__ = [
    "CitationService",
    "CitationValidator",
    "Config",
    "ConfigurationError",
    "ContentExtractor",
    "build_extraction_report",
    "FileCache",
    "MarkdownParser",
    "ParsedDocument",
    "ParsedFileCache",
    "SessionCache",
    "compute_fingerprint",
    "ExtractionOptions",
    "ExtractionStrategy",
    "StrategyChain",
    "Link",
    "EnrichedLink",
    "ValidationMetadata",
    "ValidationResult",
    "ExtractionOutcome",
    "ExtractionReport",
]
