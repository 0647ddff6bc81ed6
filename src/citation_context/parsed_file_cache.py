# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Memoizing cache of ParsedDocument instances keyed by absolute path.

Each path is parsed at most once while its file is unchanged. Concurrent
requests for a path that is still being parsed attach to the same in-flight
task instead of starting a second parse.

Key Features:
- One ParsedDocument instance per path while the file is unchanged
- Demand-driven staleness detection: a hit whose file mtime or size changed
  since it was parsed is dropped and parsed again
- In-flight request deduplication via a map of shared tasks
- Failures are never cached: the error propagates unchanged to every waiter
  and the next request retries
- Parsing runs in a worker thread so file I/O does not block the event loop

Concurrency:
- Designed for a single asyncio event loop. All bookkeeping happens between
  awaits, so no lock is needed.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional, Tuple

from citation_context.parsed_document import ParsedDocument
from citation_context.parser import MarkdownParser

logger = logging.getLogger(__name__)

# (st_mtime_ns, st_size) of a file when it was parsed
FileStamp = Tuple[int, int]


def file_stamp(path: str) -> Optional[FileStamp]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return (st.st_mtime_ns, st.st_size)


class ParsedFileCache:
    """Async cache resolving file paths to ParsedDocument facades.

    Usage:
        cache = ParsedFileCache(MarkdownParser())
        doc = await cache.resolve_parsed_file("/path/to/file.md")
        same = await cache.resolve_parsed_file("/path/to/file.md")  # no re-parse
        # after an edit to file.md the next request parses it again
    """

    def __init__(self, parser: Optional[MarkdownParser] = None) -> None:
        """Initialize the cache.

        Args:
            parser: Parser used for cache misses (default: MarkdownParser()).
        """
        self._parser = parser if parser is not None else MarkdownParser()
        self._documents: Dict[str, ParsedDocument] = {}
        self._stamps: Dict[str, Optional[FileStamp]] = {}
        self._in_flight: Dict[str, "asyncio.Task[ParsedDocument]"] = {}

        self._hits = 0
        self._misses = 0
        self._joins = 0
        self._failures = 0
        self._stale = 0

    @staticmethod
    def cache_key(file_path: str) -> str:
        return os.path.abspath(os.path.normpath(file_path))

    async def resolve_parsed_file(self, file_path: str) -> ParsedDocument:
        """Return the ParsedDocument for file_path, parsing it on first use.

        A cached document is returned only while the file still has the mtime
        and size it had when parsed; otherwise the file is parsed again.

        Args:
            file_path: Path to a markdown file. Relative paths are made absolute.

        Returns:
            The ParsedDocument instance for the current content of this path.

        Raises:
            FileNotFoundError: If the file does not exist.
            UnicodeDecodeError: If the file is not valid UTF-8.
            OSError: If the file cannot be read.
        """
        key = self.cache_key(file_path)

        document = self._documents.get(key)
        if document is not None and self._is_stale(key):
            self._stale += 1
            logger.debug(f"Parsed file changed on disk, re-parsing: {key}")
            self._drop(key)
            document = None
        if document is not None:
            self._hits += 1
            logger.debug(f"Parsed file cache hit: {key}")
            return document

        task = self._in_flight.get(key)
        if task is None:
            self._misses += 1
            logger.debug(f"Parsed file cache miss: {key}")
            task = asyncio.ensure_future(self._parse(key))
            self._in_flight[key] = task
            task.add_done_callback(lambda _t, k=key: self._in_flight.pop(k, None))
        else:
            self._joins += 1
            logger.debug(f"Joining in-flight parse: {key}")

        return await asyncio.shield(task)

    def _is_stale(self, key: str) -> bool:
        stamp = self._stamps.get(key)
        return stamp is None or file_stamp(key) != stamp

    def _drop(self, key: str) -> bool:
        self._stamps.pop(key, None)
        return self._documents.pop(key, None) is not None

    async def _parse(self, key: str) -> ParsedDocument:
        # Stamp before reading so an edit during the parse is seen as stale
        stamp = file_stamp(key)
        try:
            output = await asyncio.to_thread(self._parser.parse_file, key)
        except Exception as e:
            self._failures += 1
            logger.debug(f"Parse failed for {key}: {e}")
            raise
        document = ParsedDocument(output)
        self._documents[key] = document
        self._stamps[key] = stamp
        return document

    def is_cached(self, file_path: str) -> bool:
        return self.cache_key(file_path) in self._documents

    def invalidate(self, file_path: str) -> bool:
        """Drop one cached document; returns True if it was cached."""
        removed = self._drop(self.cache_key(file_path))
        if removed:
            logger.debug(f"Invalidated parsed document: {file_path}")
        return removed

    def clear(self) -> None:
        """Drop every cached document. In-flight parses still complete."""
        self._documents.clear()
        self._stamps.clear()
        logger.debug("Parsed file cache cleared")

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "cached_documents": len(self._documents),
            "in_flight": len(self._in_flight),
            "hits": self._hits,
            "misses": self._misses,
            "joins": self._joins,
            "failures": self._failures,
            "stale": self._stale,
        }
