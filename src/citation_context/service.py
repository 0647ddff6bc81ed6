# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""CitationService - business logic layer shared by the CLI and the MCP server.

Key Responsibilities:
- Own the parser, the parsed-document cache, per-scope file caches, the
  session cache and the token counter
- Validate citations in a document
- Extract cited content into a deduplicated ExtractionReport
- Skip extraction a session has already performed for unchanged content
- Rewrite auto-fixable citations in place
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from citation_context.citation_validator import CitationValidator
from citation_context.config import Config, ConfigurationError
from citation_context.content_extractor import ContentExtractor, build_extraction_report
from citation_context.file_cache import FileCache
from citation_context.log_config import get_extractions_dir, get_session_cache_dir
from citation_context.logging_setup import get_extraction_logger
from citation_context.models import (
    CitationFix,
    EnrichedLink,
    ExtractionReport,
    Link,
    ValidationResult,
    ValidationStatus,
)
from citation_context.parsed_file_cache import ParsedFileCache
from citation_context.parser import MarkdownParser, create_file_link, create_header_link
from citation_context.session_cache import SessionCache, compute_fingerprint
from citation_context.strategies import ExtractionOptions
from citation_context.tokens import TokenCounter

logger = logging.getLogger(__name__)

_MAX_FILEPATH_LENGTH = 4096


def apply_fixes(file_path: str, fixes: Sequence[CitationFix]) -> None:
    """Rewrite each fixed citation on its own line, first occurrence only."""
    with open(file_path, encoding="utf-8", newline="") as f:
        lines = f.read().split("\n")
    for fix in fixes:
        index = fix.line - 1
        lines[index] = lines[index].replace(fix.old, fix.new, 1)
    with open(file_path, "w", encoding="utf-8", newline="") as f:
        f.write("\n".join(lines))


class CitationService:
    """Coordinates validation and extraction for one process.

    The parsed-document cache lives as long as the service, so documents read
    by several requests are parsed once. Edited files are parsed again on the
    next request; invalidate_cache() forces it when an edit keeps the file
    size and modification time.

    Usage:
        service = CitationService(Config())
        result = await service.validate("docs/design.md")
        report = await service.extract("docs/design.md", full_files=True)
    """

    def __init__(
        self,
        config: Config,
        parsed_file_cache: Optional[ParsedFileCache] = None,
        session_cache: Optional[SessionCache] = None,
        token_counter: Optional[Callable[[str], int]] = None,
        data_root: Optional[Path] = None,
    ):
        """Initialize the service with its dependencies.

        Args:
            config: Configuration object
            parsed_file_cache: Shared document cache (default: new cache)
            session_cache: Session marker store (default: config dir or data root)
            token_counter: Token counter for report statistics (default: config encoding)
            data_root: Root directory for persisted data. If None, uses ~/.citation_context/
        """
        self.config = config
        self._data_root = data_root
        self._parser = MarkdownParser()
        self._parsed_file_cache = (
            parsed_file_cache
            if parsed_file_cache is not None
            else ParsedFileCache(parser=self._parser)
        )

        if session_cache is None:
            cache_dir = config.session_cache_dir or get_session_cache_dir(data_root)
            session_cache = SessionCache(cache_dir)
        self._session_cache = session_cache

        self._token_counter = (
            token_counter if token_counter is not None else TokenCounter(config.token_encoding)
        )

        # One FileCache per scope folder, built on first use
        self._file_caches: Dict[str, FileCache] = {}

        self._extraction_logger: Optional[logging.Logger] = None
        if config.enable_extraction_logging:
            self._extraction_logger = get_extraction_logger(get_extractions_dir(data_root))

    @property
    def session_cache(self) -> SessionCache:
        return self._session_cache

    @property
    def parsed_file_cache(self) -> ParsedFileCache:
        return self._parsed_file_cache

    def _validate_filepath(self, filepath: str) -> None:
        """Reject paths that are empty, oversized or carry control characters.

        Raises:
            ValueError: If the path is unusable.
        """
        if not filepath:
            raise ValueError("Filepath must not be empty")
        if any(ord(c) < 32 and c not in ("\t",) for c in filepath):
            raise ValueError("Invalid characters in filepath")
        if len(filepath) > _MAX_FILEPATH_LENGTH:
            raise ValueError(f"Filepath too long: {len(filepath)} > {_MAX_FILEPATH_LENGTH}")

    def _file_cache_for(self, scope_folder: Optional[str]) -> Optional[FileCache]:
        """FileCache for scope_folder (argument, else config), or None when unscoped.

        Raises:
            ConfigurationError: If the scope folder is not a directory.
        """
        scope = scope_folder or self.config.scope_folder
        if not scope:
            return None

        real_scope = os.path.realpath(os.path.expanduser(scope))
        if not os.path.isdir(real_scope):
            raise ConfigurationError(f"Scope folder is not a directory: {scope}")

        file_cache = self._file_caches.get(real_scope)
        if file_cache is None:
            file_cache = FileCache(extensions=self.config.file_extensions)
            file_cache.build_cache(real_scope)
            self._file_caches[real_scope] = file_cache
        return file_cache

    def _validator(self, scope_folder: Optional[str]) -> CitationValidator:
        return CitationValidator(
            self._parsed_file_cache,
            file_cache=self._file_cache_for(scope_folder),
            suggestion_limit=self.config.suggestion_limit,
            similarity_threshold=self.config.similarity_threshold,
        )

    def _options(
        self, full_files: Optional[bool], scope_folder: Optional[str]
    ) -> ExtractionOptions:
        return ExtractionOptions(
            full_files=self.config.full_files if full_files is None else full_files,
            scope_folder=scope_folder or self.config.scope_folder,
        )

    async def validate(
        self, file_path: str, scope_folder: Optional[str] = None
    ) -> ValidationResult:
        """Validate every citation in file_path.

        Raises:
            ValueError: If file_path is unusable.
            ConfigurationError: If the scope folder is not a directory.
            FileNotFoundError: If the document does not exist.
            OSError: If the document cannot be read.
        """
        self._validate_filepath(file_path)
        return await self._validator(scope_folder).validate_file(file_path)

    async def fix(self, file_path: str, scope_folder: Optional[str] = None) -> List[CitationFix]:
        """Rewrite the auto-fixable citations of file_path in place.

        Fixable are warnings carrying a path conversion, and anchor misses where
        exactly one heading of the target matches loosely (see
        CitationValidator.corrected_anchor). An anchor fix for a target found
        via the file cache also gets the corrected path.

        Returns:
            Applied fixes in document order; empty when nothing was fixable.

        Raises:
            ValueError: If file_path is unusable.
            ConfigurationError: If the scope folder is not a directory.
            FileNotFoundError: If the document does not exist.
            OSError: If the document cannot be read or written.
        """
        self._validate_filepath(file_path)
        validator = self._validator(scope_folder)
        result = await validator.validate_file(file_path)

        fixes: List[CitationFix] = []
        for enriched in result.links:
            fix = await self._fix_for(validator, enriched)
            if fix is not None:
                fixes.append(fix)

        if fixes:
            await asyncio.to_thread(apply_fixes, file_path, fixes)
            self._parsed_file_cache.invalidate(file_path)
            logger.info(f"Fixed {len(fixes)} citations in {file_path}")
        return fixes

    async def _fix_for(
        self, validator: CitationValidator, enriched: EnrichedLink
    ) -> Optional[CitationFix]:
        link = enriched.link
        validation = enriched.validation
        conversion = validation.path_conversion
        old = link.full_match

        if validation.status == ValidationStatus.WARNING and conversion is not None:
            new = old.replace(conversion.original, conversion.recommended, 1)
            fix_type = "path"
        elif validation.status == ValidationStatus.ERROR and (validation.error or "").startswith(
            "Anchor not found"
        ):
            anchor = await validator.corrected_anchor(enriched)
            if anchor is None:
                return None
            new = old
            fix_type = "anchor"
            if conversion is not None and conversion.original in new:
                new = new.replace(conversion.original, conversion.recommended, 1)
                fix_type = "path+anchor"
            new = new.replace(f"#{link.target.anchor}", f"#{anchor}", 1)
        else:
            return None

        if new == old:
            return None
        return CitationFix(line=link.line, old=old, new=new, fix_type=fix_type)

    async def extract(
        self,
        file_path: str,
        full_files: Optional[bool] = None,
        scope_folder: Optional[str] = None,
    ) -> ExtractionReport:
        """Extract the content cited by file_path.

        Args:
            file_path: Source document.
            full_files: Extract full-document links too (default: config value).
            scope_folder: Folder indexed for short-name resolution (default: config value).

        Raises:
            ValueError: If file_path is unusable.
            ConfigurationError: If the scope folder is not a directory.
            FileNotFoundError: If the source document does not exist.
            OSError: If the source document cannot be read.
        """
        self._validate_filepath(file_path)
        validator = self._validator(scope_folder)
        extractor = ContentExtractor(self._parsed_file_cache, validator)
        outcomes = await extractor.extract_links_content(
            file_path, self._options(full_files, scope_folder)
        )
        report = build_extraction_report(outcomes, self._token_counter)
        self._log_extraction(file_path, report)
        return report

    async def extract_for_session(
        self,
        session_id: str,
        file_path: str,
        full_files: Optional[bool] = None,
        scope_folder: Optional[str] = None,
    ) -> Optional[ExtractionReport]:
        """Like extract(), but at most once per session for the same file content.

        The session is marked only when the report holds extracted content, so
        a document without usable citations is retried on the next call.

        Returns:
            The report, or None if this session already extracted this content.

        Raises:
            ValueError: If session_id is not a safe filename component.
        """
        self._validate_filepath(file_path)
        if not self.config.enable_session_cache:
            return await self.extract(file_path, full_files, scope_folder)

        fingerprint = compute_fingerprint(file_path)
        if self._session_cache.has_run(session_id, fingerprint):
            logger.info(f"Session {session_id} already extracted {file_path}, skipping")
            return None

        # Content not seen by this session: parse the source afresh
        self._parsed_file_cache.invalidate(file_path)
        report = await self.extract(file_path, full_files, scope_folder)
        if report.stats.unique_content > 0:
            self._session_cache.mark_run(session_id, fingerprint)
        return report

    async def extract_header(
        self, target_file: str, header: str, scope_folder: Optional[str] = None
    ) -> ExtractionReport:
        """Extract one section of target_file without a citing document."""
        self._validate_filepath(target_file)
        return await self._extract_single(
            create_header_link(target_file, header), scope_folder, full_files=False
        )

    async def extract_file(
        self, target_file: str, scope_folder: Optional[str] = None
    ) -> ExtractionReport:
        """Extract all of target_file without a citing document."""
        self._validate_filepath(target_file)
        return await self._extract_single(
            create_file_link(target_file), scope_folder, full_files=True
        )

    async def _extract_single(
        self, link: Link, scope_folder: Optional[str], full_files: bool
    ) -> ExtractionReport:
        validator = self._validator(scope_folder)
        enriched = await validator.validate_link(link, link.source.path)
        extractor = ContentExtractor(self._parsed_file_cache, validator)
        outcomes = await extractor.extract_content(
            [enriched], self._options(full_files, scope_folder)
        )
        report = build_extraction_report(outcomes, self._token_counter)
        self._log_extraction(link.source.path, report)
        return report

    def _log_extraction(self, file_path: str, report: ExtractionReport) -> None:
        if self._extraction_logger is None:
            return
        self._extraction_logger.info(
            "extraction",
            extra={"extra_fields": {"source": file_path, **report.stats.to_dict()}},
        )

    def invalidate_cache(self, file_path: Optional[str] = None) -> None:
        """Drop cached documents (one path or everything) and all file indexes."""
        if file_path is None:
            self._parsed_file_cache.clear()
        else:
            self._parsed_file_cache.invalidate(file_path)
        self._file_caches.clear()

    def clear_session(self, session_id: Optional[str] = None) -> int:
        """Remove session markers; returns how many were removed."""
        return self._session_cache.clear(session_id)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "parsed_file_cache": self._parsed_file_cache.get_statistics(),
            "file_caches": {
                scope: cache.get_cache_stats() for scope, cache in self._file_caches.items()
            },
            "session_cache_dir": str(self._session_cache.cache_dir),
        }
