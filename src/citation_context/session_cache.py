# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Per-session record of which document contents were already extracted.

One empty marker file per (session, content fingerprint):

    <cache_dir>/<session_id>_<md5 of file bytes>

Editing a document changes its fingerprint, so a session re-extracts it.
Markers live until removed with clear(); there is no expiry.
"""

import hashlib
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from citation_context.log_config import get_session_cache_dir, validate_filename_component

logger = logging.getLogger(__name__)

_READ_CHUNK_SIZE = 65536


def compute_fingerprint(file_path: Union[str, Path]) -> str:
    """MD5 hex digest of a file's bytes.

    Raises:
        FileNotFoundError: If the file does not exist.
        OSError: If the file cannot be read.
    """
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(_READ_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class SessionCache:
    """Marker-file store answering "has this session already extracted this content?".

    Usage:
        cache = SessionCache()
        fingerprint = compute_fingerprint("doc.md")
        if not cache.has_run(session_id, fingerprint):
            ...extract...
            cache.mark_run(session_id, fingerprint)
    """

    def __init__(self, cache_dir: Optional[Path] = None) -> None:
        """Initialize the cache.

        Args:
            cache_dir: Marker directory. If None, uses ~/.citation_context/session_cache/
        """
        self._cache_dir = Path(cache_dir) if cache_dir is not None else get_session_cache_dir()

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def _marker_path(self, session_id: str, fingerprint: str) -> Path:
        validate_filename_component(session_id, "session_id")
        validate_filename_component(fingerprint, "fingerprint")
        return self._cache_dir / f"{session_id}_{fingerprint}"

    def has_run(self, session_id: str, fingerprint: str) -> bool:
        """True if mark_run() was called earlier for this pair.

        Raises:
            ValueError: If session_id or fingerprint is not a safe filename component.
        """
        return self._marker_path(session_id, fingerprint).exists()

    def mark_run(self, session_id: str, fingerprint: str) -> None:
        """Record the pair. Calling it again for the same pair is a no-op.

        Raises:
            ValueError: If session_id or fingerprint is not a safe filename component.
            OSError: If the marker cannot be written.
        """
        marker = self._marker_path(session_id, fingerprint)
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        marker.touch(exist_ok=True)
        logger.debug(f"Marked session {session_id} for content {fingerprint}")

    def created_at(self, session_id: str, fingerprint: str) -> Optional[datetime]:
        """When the pair was first marked, or None if it never was."""
        marker = self._marker_path(session_id, fingerprint)
        try:
            mtime = marker.stat().st_mtime
        except FileNotFoundError:
            return None
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def entries(self, session_id: Optional[str] = None) -> List[str]:
        """Marker names, optionally restricted to one session."""
        if session_id is not None:
            validate_filename_component(session_id, "session_id")
        if not self._cache_dir.is_dir():
            return []
        names = []
        for entry in os.scandir(self._cache_dir):
            if not entry.is_file() or "_" not in entry.name:
                continue
            # Session ids may contain "_", fingerprints never do
            owner = entry.name.rsplit("_", 1)[0]
            if session_id is None or owner == session_id:
                names.append(entry.name)
        return sorted(names)

    def clear(self, session_id: Optional[str] = None) -> int:
        """Remove one session's markers, or every marker when session_id is None.

        Returns:
            Number of markers removed.
        """
        removed = 0
        for name in self.entries(session_id):
            try:
                (self._cache_dir / name).unlink()
                removed += 1
            except FileNotFoundError:
                continue
        logger.info(f"Cleared {removed} session markers from {self._cache_dir}")
        return removed
