"""
Custom Log Handlers for Synax Offline Sync.

JSONL rotating file handler for structured log output.
"""

import json
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path


class JSONLRotatingHandler(RotatingFileHandler):
    """
    Rotating file handler that writes one JSON object per line.

    Messages produced by a log entry's to_json() are written as-is; plain
    text messages are wrapped with timestamp, level and logger name.
    """

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 10_000_000,  # 10MB
        backup_count: int = 5,
    ):
        filepath = Path(filename)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(filepath),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )

    def format(self, record: logging.LogRecord) -> str:
        """Render the record as a single JSON line (without newline)."""
        msg = record.getMessage()
        try:
            data = json.loads(msg)
            if not isinstance(data, dict):
                raise ValueError("not an object")
        except ValueError:
            data = {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "message": msg,
                "logger": record.name,
            }
        return json.dumps(data, default=str)


def create_jsonl_logger(
    name: str,
    filepath: Path,
    level: str = "INFO",
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
    console_level: str | None = None,
) -> logging.Logger:
    """
    Create a logger configured for JSONL output.

    Args:
        name: Logger name
        filepath: Path to log file
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Max file size before rotation
        backup_count: Number of backup files
        console_level: Also echo to stderr at this level when given

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    logger.addHandler(
        JSONLRotatingHandler(
            filepath,
            max_bytes=max_bytes,
            backup_count=backup_count,
        )
    )

    if console_level:
        console = logging.StreamHandler()
        console.setLevel(getattr(logging, console_level.upper(), logging.WARNING))
        logger.addHandler(console)

    # Don't propagate to root logger
    logger.propagate = False

    return logger
