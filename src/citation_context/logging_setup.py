# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Structured logging setup for citation context."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from citation_context.log_config import get_current_utc_date, get_extractions_dir, get_logs_dir

EXTRACTION_LOGGER_NAME = "citation_context.extractions"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Callers attach structured data via extra={"extra_fields": {...}}
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: int = logging.INFO,
    console_output: bool = True,
) -> Path:
    """Set up structured logging for the application.

    Args:
        log_dir: Directory for log files. If None, uses ~/.citation_context/logs/
        log_level: Logging level (default: INFO)
        console_output: Whether to also output to stderr (default: True)

    Returns:
        Path of the JSON log file.
    """
    if log_dir is None:
        log_dir = get_logs_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    log_file = log_dir / f"citation_context_{get_current_utc_date()}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(file_handler)

    # stdout is reserved for CLI output and MCP stdio
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(console_handler)

    logging.info(f"Logging initialized. Log directory: {log_dir}")
    return log_file


def get_extraction_logger(log_dir: Optional[Path] = None) -> logging.Logger:
    """Get the logger recording one JSONL line per extraction run.

    Args:
        log_dir: Directory for the log file. If None, uses ~/.citation_context/extractions/

    Returns:
        Logger writing StructuredFormatter records to extractions.jsonl
    """
    if log_dir is None:
        log_dir = get_extractions_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    extraction_logger = logging.getLogger(EXTRACTION_LOGGER_NAME)
    extraction_logger.setLevel(logging.INFO)
    extraction_logger.propagate = False

    for handler in list(extraction_logger.handlers):
        handler.close()
    extraction_logger.handlers.clear()

    handler = logging.FileHandler(log_dir / "extractions.jsonl", encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(StructuredFormatter())
    extraction_logger.addHandler(handler)

    return extraction_logger
