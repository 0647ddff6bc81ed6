# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Data directory layout for citation context.

Everything the tool persists lives under one data root
(default: ~/.citation_context/):
- logs/           structured Python logging output (setup_logging())
- session_cache/  per-session extraction markers (SessionCache)
- extractions/    one JSONL record per extraction run
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

DEFAULT_DATA_ROOT = Path.home() / ".citation_context"

LOGS_SUBDIR = "logs"
SESSION_CACHE_SUBDIR = "session_cache"
EXTRACTIONS_SUBDIR = "extractions"


def get_default_data_root() -> Path:
    return DEFAULT_DATA_ROOT


def get_current_utc_date() -> str:
    """Current UTC date as YYYY-MM-DD."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def validate_filename_component(value: str, name: str = "value") -> None:
    """Validate a string for safe use in filenames.

    Args:
        value: The string to validate.
        name: Name of the parameter for error messages.

    Raises:
        ValueError: If value is empty or contains path separators, parent
                   references, or null bytes.
    """
    if not value:
        raise ValueError(f"{name} must not be empty")
    if "\0" in value:
        raise ValueError(f"{name} contains null bytes: {value!r}")
    if "/" in value or "\\" in value or ":" in value:
        raise ValueError(f"{name} must not contain path separators: {value}")
    if ".." in value:
        raise ValueError(f"{name} must not contain parent references: {value}")


def get_logs_dir(data_root: Optional[Path] = None) -> Path:
    root = data_root or DEFAULT_DATA_ROOT
    return root / LOGS_SUBDIR


def get_session_cache_dir(data_root: Optional[Path] = None) -> Path:
    root = data_root or DEFAULT_DATA_ROOT
    return root / SESSION_CACHE_SUBDIR


def get_extractions_dir(data_root: Optional[Path] = None) -> Path:
    root = data_root or DEFAULT_DATA_ROOT
    return root / EXTRACTIONS_SUBDIR


def ensure_data_directories(data_root: Optional[Path] = None) -> None:
    """Create the data root and all subdirectories if they don't exist."""
    root = data_root or DEFAULT_DATA_ROOT
    root.mkdir(parents=True, exist_ok=True)
    for subdir in (LOGS_SUBDIR, SESSION_CACHE_SUBDIR, EXTRACTIONS_SUBDIR):
        (root / subdir).mkdir(exist_ok=True)
