# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Filename index for resolving links that name a file without a usable path.

The cache walks a scope folder once and maps every markdown filename to its
absolute path. A filename seen more than once is recorded as a duplicate:
the first path wins in the index, but resolution of that name reports the
ambiguity instead of returning an arbitrary match.

Fallback lookups (applied in order when the exact name is missing):
1. Name with ".md" appended
2. Double extension fixed ("file.md.md" -> "file.md")
3. Common typos fixed ("verson", "architeture", "managment")
"""

import logging
import os
import re
from typing import Dict, List, Optional, Sequence, Tuple

from citation_context.models import FileCacheStats, FileResolution

logger = logging.getLogger(__name__)

TYPO_CORRECTIONS: Tuple[Tuple[str, str], ...] = (
    ("verson", "version"),
    ("architeture", "architecture"),
    ("managment", "management"),
)


class FileCache:
    """Short filename -> absolute path index for one scope folder.

    Usage:
        cache = FileCache()
        stats = cache.build_cache("/project/docs")
        result = cache.resolve_file("architecture.md")
        if result.found:
            ...
    """

    def __init__(self, extensions: Sequence[str] = (".md",)) -> None:
        """Initialize an empty index.

        Args:
            extensions: File extensions to index (default: markdown only).
        """
        self._extensions = tuple(extensions)
        self._index: Dict[str, str] = {}
        self._all_paths: Dict[str, List[str]] = {}
        self._scope_folder: Optional[str] = None

    @property
    def scope_folder(self) -> Optional[str]:
        return self._scope_folder

    def build_cache(self, scope_folder: str) -> FileCacheStats:
        """Index every matching file under scope_folder, replacing any previous index.

        Symlinks on the scope folder itself are resolved first so the tree is
        only walked once. Unreadable directories are logged and skipped.

        Args:
            scope_folder: Root folder to scan.

        Returns:
            FileCacheStats with file and duplicate counts.
        """
        self._index.clear()
        self._all_paths.clear()

        absolute_scope = os.path.abspath(scope_folder)
        real_scope = os.path.realpath(absolute_scope)
        self._scope_folder = absolute_scope

        def on_error(error: OSError) -> None:
            logger.warning(f"Could not read directory {error.filename}: {error.strerror}")

        for dir_path, dir_names, file_names in os.walk(real_scope, onerror=on_error):
            dir_names.sort()
            for file_name in sorted(file_names):
                if file_name.endswith(self._extensions):
                    self._add(file_name, os.path.join(dir_path, file_name))

        duplicates = self.get_duplicates()
        if duplicates:
            logger.warning(f"Found duplicate filenames in scope: {', '.join(sorted(duplicates))}")

        logger.debug(
            f"File cache built for {absolute_scope}: {len(self._index)} files, "
            f"{len(duplicates)} duplicates"
        )
        return FileCacheStats(
            total_files=len(self._index),
            duplicates=len(duplicates),
            scope_folder=absolute_scope,
            real_scope_folder=real_scope,
        )

    def _add(self, file_name: str, full_path: str) -> None:
        paths = self._all_paths.setdefault(file_name, [])
        paths.append(full_path)
        # First seen wins the index slot
        self._index.setdefault(file_name, full_path)

    def get_duplicates(self) -> Dict[str, List[str]]:
        """Filenames that occur more than once, with every path they occur at."""
        return {name: list(paths) for name, paths in self._all_paths.items() if len(paths) > 1}

    def resolve_file(self, filename: str) -> FileResolution:
        """Resolve a bare filename to an absolute path.

        Args:
            filename: Filename, with or without the ".md" extension.

        Returns:
            FileResolution. found is False for unknown or ambiguous names;
            duplicate_count carries how many files share the name.
        """
        filename = os.path.basename(filename)

        for candidate in self._exact_candidates(filename):
            if candidate in self._index:
                return self._resolution_for(candidate)

        fuzzy = self._find_fuzzy_match(filename)
        if fuzzy is not None:
            return fuzzy

        return FileResolution(
            found=False,
            reason="not_found",
            message=f'File "{filename}" not found in scope folder.',
        )

    @staticmethod
    def _exact_candidates(filename: str) -> List[str]:
        candidates = [filename]
        if not filename.endswith(".md"):
            candidates.append(f"{filename}.md")
        return candidates

    def _resolution_for(self, name: str) -> FileResolution:
        count = len(self._all_paths.get(name, []))
        if count > 1:
            return FileResolution(
                found=False,
                reason="duplicate",
                message=(
                    f'Multiple files named "{name}" found in scope. '
                    "Use relative path for disambiguation."
                ),
                duplicate_count=count,
            )
        return FileResolution(found=True, path=self._index[name], duplicate_count=count)

    def _find_fuzzy_match(self, filename: str) -> Optional[FileResolution]:
        corrections: List[Tuple[str, str]] = []
        if filename.endswith(".md.md"):
            corrections.append((filename[: -len(".md")], "corrected double extension"))
        for typo, fix in TYPO_CORRECTIONS:
            if typo in filename:
                corrections.append((re.sub(typo, fix, filename), "corrected typo"))

        for corrected, description in corrections:
            if corrected not in self._index:
                continue
            count = len(self._all_paths[corrected])
            if count > 1:
                return FileResolution(
                    found=False,
                    reason="duplicate_fuzzy",
                    message=(
                        f'Found potential match "{corrected}" ({description}), but multiple '
                        "files with this name exist. Use relative path for disambiguation."
                    ),
                    duplicate_count=count,
                )
            return FileResolution(
                found=True,
                path=self._index[corrected],
                message=f'Auto-{description}: "{filename}" -> "{corrected}"',
                fuzzy_match=True,
                corrected_filename=corrected,
                duplicate_count=count,
            )
        return None

    def get_cache_stats(self) -> Dict[str, object]:
        duplicates = self.get_duplicates()
        return {
            "total_files": len(self._index),
            "duplicate_count": len(duplicates),
            "duplicates": sorted(duplicates),
        }
