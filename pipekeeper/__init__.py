"""
Pipekeeper - pipeline state and recovery.

Tracks a project through Init -> Interview -> Design -> Plan -> Review ->
Develop -> Complete, with git-backed checkpoints, rollback, stage
navigation and resume.
"""

__version__ = "0.1.0"

from pipekeeper.exceptions import (
    PipekeeperError,
    ConfigError,
    NotFoundError,
    ValidationError,
    InvalidTransitionError,
    VCSError,
    PersistenceError,
)
from pipekeeper.state import Stage

__all__ = [
    "__version__",
    "Stage",
    "PipekeeperError",
    "ConfigError",
    "NotFoundError",
    "ValidationError",
    "InvalidTransitionError",
    "VCSError",
    "PersistenceError",
]
