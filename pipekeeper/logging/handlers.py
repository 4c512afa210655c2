"""
Custom Log Handlers for Pipekeeper.

The recovery audit log is a rotating file with one JSON object per line.
"""

import json
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import LogConfig


class JSONLRotatingHandler(RotatingFileHandler):
    """
    Rotating file handler that writes one JSON object per line.

    Messages produced by ``RecoveryLogEntry.to_json()`` are written as-is;
    anything else is wrapped with timestamp, level and logger name so every
    line of the file parses.
    """

    def __init__(self, filename: str | Path, max_bytes: int, backup_count: int):
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")

    @staticmethod
    def _as_object(record: logging.LogRecord, msg: str) -> dict:
        try:
            data = json.loads(msg)
        except ValueError:
            data = None
        if isinstance(data, dict):
            return data
        return {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "message": msg,
            "logger": record.name,
        }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self.shouldRollover(record):
                self.doRollover()
            data = self._as_object(record, self.format(record))
            self.stream.write(json.dumps(data, default=str) + "\n")
            self.flush()
        except Exception:
            self.handleError(record)


class MessageOnlyFormatter(logging.Formatter):
    """Formatter that returns the message unchanged."""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def create_jsonl_logger(name: str, filepath: Path, config: LogConfig, level: str | None = None) -> logging.Logger:
    """
    Attach a fresh JSONL handler to the named logger.

    Rotation comes from ``config``; ``level`` defaults to
    ``config.recovery_level``. Existing handlers are closed and replaced.
    The logger does not propagate, so audit lines never reach the console.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, (level or config.recovery_level).upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = JSONLRotatingHandler(
        filepath,
        max_bytes=config.max_file_size_bytes,
        backup_count=config.backup_count,
    )
    handler.setFormatter(MessageOnlyFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
