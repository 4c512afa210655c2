"""
Pipekeeper Logging System.

Provides structured JSONL logging for recovery events:
- Checkpoint creation (and orphaned tags needing manual cleanup)
- Rollbacks to a checkpoint
- Stage navigation
- Resume and stage restart

Usage:
    from pipekeeper.logging import log_recovery_event, EVENT_ROLLBACK

    log_recovery_event(
        EVENT_ROLLBACK,
        project_id="myproject",
        checkpoint_id=checkpoint.id,
        vcs_tag=checkpoint.vcs_tag,
    )

Logs are written to ~/.pipekeeper/logs/recovery.jsonl

Diagnostic logging uses the standard ``logging.getLogger(__name__)``
loggers in each module; ``configure_console_logging`` routes them to stderr.
"""

import logging
import threading
from typing import Any

from .config import LogConfig, get_config, set_config
from .entries import (
    EVENT_CHECKPOINT_CREATED,
    EVENT_CHECKPOINT_ORPHANED,
    EVENT_NAVIGATION,
    EVENT_RESUME,
    EVENT_ROLLBACK,
    EVENT_STAGE_RESTART,
    RecoveryLogEntry,
    now_iso,
)
from .handlers import create_jsonl_logger

_logger = logging.getLogger(__name__)

# Lazy-initialized logger to avoid creating files before needed
_recovery_logger: logging.Logger | None = None
_init_lock = threading.Lock()


def _ensure_logger() -> logging.Logger:
    """Initialize the recovery logger on first use."""
    global _recovery_logger

    if _recovery_logger is not None:
        return _recovery_logger

    with _init_lock:
        if _recovery_logger is None:
            config = get_config()
            _recovery_logger = create_jsonl_logger(
                "pipekeeper.audit.recovery",
                config.recovery_log_path,
                config,
            )
    return _recovery_logger


def reset_recovery_logger() -> None:
    """Drop the cached logger so the next event re-reads the log config."""
    global _recovery_logger
    with _init_lock:
        if _recovery_logger is not None:
            for handler in list(_recovery_logger.handlers):
                _recovery_logger.removeHandler(handler)
                handler.close()
        _recovery_logger = None


def log_recovery_event(
    event_type: str,
    project_id: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """
    Append one entry to the recovery audit log.

    Audit logging never raises: a failure to write is reported on the
    module logger and otherwise ignored.
    """
    try:
        entry = RecoveryLogEntry(
            timestamp=now_iso(),
            project_id=project_id,
            event_type=event_type,
            **fields,
        )
        _ensure_logger().log(level, entry.to_json())
    except Exception as e:
        _logger.warning(f"Failed to write recovery log entry ({event_type}): {e}")


def configure_console_logging(verbose: bool = False) -> None:
    """Route module loggers to stderr for CLI runs."""
    config = get_config()
    level = logging.DEBUG if verbose else getattr(logging, config.console_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = [
    # Events
    "EVENT_CHECKPOINT_CREATED",
    "EVENT_CHECKPOINT_ORPHANED",
    "EVENT_NAVIGATION",
    "EVENT_RESUME",
    "EVENT_ROLLBACK",
    "EVENT_STAGE_RESTART",
    "RecoveryLogEntry",
    "log_recovery_event",
    "reset_recovery_logger",
    "configure_console_logging",
    # Utilities
    "now_iso",
    # Config
    "LogConfig",
    "get_config",
    "set_config",
]
