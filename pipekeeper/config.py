"""
Pipekeeper - Configuration Management

Handles loading config.json, environment variables, and per-project paths.
Global settings are stored in ~/.config/pipekeeper/config.json. Pipeline state
for every project lives in ~/.config/pipekeeper/state.db, outside any working
tree, so a git reset never rewinds it.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pipekeeper.exceptions import ConfigError


# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "pipekeeper"
CONFIG_FILE = CONFIG_DIR / "config.json"
DB_FILENAME = "state.db"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid boolean for {name}", {"value": value})


@dataclass
class PipekeeperConfig:
    """Main configuration container for Pipekeeper."""

    project_dir: str = "."
    db_path: str = ""
    vcs_timeout_seconds: int = 60
    enforce_prerequisites: bool = True
    default_model: str = ""

    def __post_init__(self) -> None:
        # Expand ~ in paths
        self.project_dir = str(Path(self.project_dir).expanduser().resolve())
        if self.db_path:
            self.db_path = str(Path(self.db_path).expanduser())

    @property
    def database_path(self) -> Path:
        """Path to the SQLite state database."""
        if self.db_path:
            return Path(self.db_path)
        return CONFIG_DIR / DB_FILENAME

    @property
    def database_in_project(self) -> bool:
        """True when an overridden database path sits inside the project tree."""
        return Path(self.project_dir) in self.database_path.resolve().parents

    @property
    def default_project_id(self) -> str:
        """Project identifier derived from the project directory name."""
        return Path(self.project_dir).name

    def to_dict(self) -> dict[str, Any]:
        """Convert global settings to a dictionary for JSON serialization."""
        return {
            "vcs_timeout_seconds": self.vcs_timeout_seconds,
            "enforce_prerequisites": self.enforce_prerequisites,
            "default_model": self.default_model,
        }

    def apply_dict(self, data: dict[str, Any]) -> None:
        """Apply settings loaded from config.json."""
        if "vcs_timeout_seconds" in data:
            self.vcs_timeout_seconds = int(data["vcs_timeout_seconds"])
        if "enforce_prerequisites" in data:
            self.enforce_prerequisites = bool(data["enforce_prerequisites"])
        if "default_model" in data:
            self.default_model = str(data["default_model"])
        if data.get("db_path"):
            self.db_path = str(Path(data["db_path"]).expanduser())


def ensure_config_dir() -> None:
    """Ensure configuration directory exists."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def load_config(project_dir: str | Path | None = None) -> PipekeeperConfig:
    """
    Load configuration from files and environment.

    Environment variables win over config.json.

    Args:
        project_dir: Project directory (defaults to the working directory)

    Returns:
        PipekeeperConfig with all settings loaded

    Raises:
        ConfigError: If configuration is invalid
    """
    config = PipekeeperConfig(project_dir=str(project_dir or Path.cwd()))

    if CONFIG_FILE.exists():
        try:
            with open(CONFIG_FILE) as f:
                data = json.load(f)
            config.apply_dict(data)
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"Invalid JSON in {CONFIG_FILE}",
                {"error": str(e)},
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(
                "Invalid value in config file",
                {"error": str(e)},
            )

    if db_path := os.environ.get("PIPEKEEPER_DB_PATH"):
        config.db_path = str(Path(db_path).expanduser())

    if timeout := os.environ.get("PIPEKEEPER_VCS_TIMEOUT"):
        try:
            config.vcs_timeout_seconds = int(timeout)
        except ValueError:
            raise ConfigError(
                "PIPEKEEPER_VCS_TIMEOUT must be an integer number of seconds",
                {"value": timeout},
            )

    if enforce := os.environ.get("PIPEKEEPER_ENFORCE_PREREQUISITES"):
        config.enforce_prerequisites = _parse_bool("PIPEKEEPER_ENFORCE_PREREQUISITES", enforce)

    if model := os.environ.get("PIPEKEEPER_MODEL"):
        config.default_model = model

    if config.vcs_timeout_seconds <= 0:
        raise ConfigError(
            "vcs_timeout_seconds must be positive",
            {"value": config.vcs_timeout_seconds},
        )

    return config


def save_config(config: PipekeeperConfig) -> None:
    """
    Save global settings to config.json.

    Args:
        config: PipekeeperConfig to save
    """
    ensure_config_dir()

    with open(CONFIG_FILE, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
