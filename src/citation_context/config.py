# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for citation context."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".citation_context.yml"


class ConfigurationError(Exception):
    """Raised when configuration validation fails critically."""

    pass


class Config:
    """Configuration for the citation validator and extractor.

    Loads configuration from .citation_context.yml with validation and defaults.
    """

    DEFAULTS: Dict[str, Any] = {
        "full_files": False,
        "scope_folder": "",
        "file_extensions": [".md"],
        "suggestion_limit": 5,
        "similarity_threshold": 0.3,
        "session_cache_dir": "",
        "token_encoding": "cl100k_base",
        "enable_session_cache": True,
        "enable_extraction_logging": False,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses ./.citation_context.yml
        """
        if config_path is None:
            config_path = Path.cwd() / CONFIG_FILENAME

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _defaults(self) -> Dict[str, Any]:
        config = self.DEFAULTS.copy()
        config["file_extensions"] = list(self.DEFAULTS["file_extensions"])
        return config

    def _load_config(self) -> None:
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self._defaults()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)

            if loaded_config is None:
                logger.warning("Configuration file is empty, using defaults")
                self._config = self._defaults()
                return

            if not isinstance(loaded_config, dict):
                logger.warning(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(loaded_config)}, using defaults"
                )
                self._config = self._defaults()
                return

            self._config = self._defaults()
            self._validate_and_merge(loaded_config)

        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._defaults()
        except OSError as e:
            logger.warning(
                f"Error reading configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._defaults()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Merge loaded values over the defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            # YAML "null" for an optional path means "unset"
            if value is None and key in ("scope_folder", "session_cache_dir"):
                value = ""

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        default = self.DEFAULTS[key]

        # bool is an int subclass; keep them apart
        if isinstance(default, bool) or isinstance(value, bool):
            return isinstance(value, bool) and isinstance(default, bool)

        if key == "similarity_threshold":
            return isinstance(value, (int, float)) and 0.0 <= value < 1.0

        if not isinstance(value, type(default)):
            return False

        if key == "suggestion_limit":
            return 0 < value <= 50
        elif key == "file_extensions":
            return bool(value) and all(
                isinstance(ext, str) and ext.startswith(".") and len(ext) > 1 for ext in value
            )
        elif key == "token_encoding":
            return bool(value.strip())

        return True

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._config)

    @property
    def full_files(self) -> bool:
        """Whether full-document links are extracted by default."""
        value = self._config["full_files"]
        assert isinstance(value, bool)
        return value

    @property
    def scope_folder(self) -> Optional[str]:
        """Folder indexed by the file cache for fallback resolution, or None."""
        value = self._config["scope_folder"]
        assert isinstance(value, str)
        return value or None

    @property
    def file_extensions(self) -> List[str]:
        value = self._config["file_extensions"]
        assert isinstance(value, list)
        return value

    @property
    def suggestion_limit(self) -> int:
        """Maximum anchor suggestions returned by suggest_anchors()."""
        value = self._config["suggestion_limit"]
        assert isinstance(value, int)
        return value

    @property
    def similarity_threshold(self) -> float:
        """Minimum similarity (exclusive) for an anchor suggestion."""
        value = self._config["similarity_threshold"]
        assert isinstance(value, (int, float))
        return float(value)

    @property
    def session_cache_dir(self) -> Optional[Path]:
        """Directory for session markers, or None for the data-root default."""
        value = self._config["session_cache_dir"]
        assert isinstance(value, str)
        return Path(value).expanduser() if value else None

    @property
    def token_encoding(self) -> str:
        """tiktoken encoding used for token statistics."""
        value = self._config["token_encoding"]
        assert isinstance(value, str)
        return value

    @property
    def enable_session_cache(self) -> bool:
        value = self._config["enable_session_cache"]
        assert isinstance(value, bool)
        return value

    @property
    def enable_extraction_logging(self) -> bool:
        """Whether each extraction run is recorded in extractions.jsonl."""
        value = self._config["enable_extraction_logging"]
        assert isinstance(value, bool)
        return value
