"""
Logging Configuration for Pipekeeper.

Where the recovery audit log lives, how it rotates, and which levels the
audit log and the console use.

Environment:
    PIPEKEEPER_LOG_DIR          audit log directory (default ~/.pipekeeper/logs)
    PIPEKEEPER_LOG_LEVEL        level for both audit log and console
    PIPEKEEPER_LOG_MAX_SIZE_MB  rotate after this many megabytes
    PIPEKEEPER_LOG_BACKUPS      rotated files to keep
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

_logger = logging.getLogger(__name__)

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
MB = 1024 * 1024


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        _logger.warning(f"Ignoring {name}={raw!r}: not an integer")
        return default
    if value <= 0:
        _logger.warning(f"Ignoring {name}={raw!r}: must be positive")
        return default
    return value


@dataclass
class LogConfig:
    """Configuration for the Pipekeeper logging system."""

    log_dir: Path = field(default_factory=lambda: Path.home() / ".pipekeeper" / "logs")

    # Rotation
    max_file_size_bytes: int = 10 * MB
    backup_count: int = 5

    # One of LEVELS
    recovery_level: str = "INFO"
    console_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Defaults overlaid with PIPEKEEPER_LOG_* variables."""
        config = cls()

        level = os.environ.get("PIPEKEEPER_LOG_LEVEL", "").strip().upper()
        if level in LEVELS:
            config.recovery_level = level
            config.console_level = level
        elif level:
            _logger.warning(f"Ignoring PIPEKEEPER_LOG_LEVEL={level!r}: expected one of {', '.join(LEVELS)}")

        if log_dir := os.environ.get("PIPEKEEPER_LOG_DIR"):
            config.log_dir = Path(log_dir).expanduser()

        config.max_file_size_bytes = _env_int("PIPEKEEPER_LOG_MAX_SIZE_MB", config.max_file_size_bytes // MB) * MB
        config.backup_count = _env_int("PIPEKEEPER_LOG_BACKUPS", config.backup_count)
        return config

    def ensure_log_dir(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def recovery_log_path(self) -> Path:
        """Checkpoint, rollback, navigation and resume events."""
        return self.log_dir / "recovery.jsonl"


_config: LogConfig | None = None


def get_config() -> LogConfig:
    """Get the global log config, initializing from env if needed."""
    global _config
    if _config is None:
        _config = LogConfig.from_env()
        _config.ensure_log_dir()
    return _config


def set_config(config: LogConfig) -> None:
    """Replace the global log config (tests point it at a temp dir)."""
    global _config
    _config = config
    _config.ensure_log_dir()
