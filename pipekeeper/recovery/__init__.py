"""
Pipeline recovery: checkpoints, stage navigation and resume.

- CheckpointManager: tag-backed recovery points and rollback
- StageNavigator: legal stage moves and their consequences
- ResumeController: where to continue after an interruption
- PrerequisiteRegistry: artifact checks for entering a stage
"""

from pipekeeper.recovery.checkpoint import (
    CHECKPOINT_TYPE_AUTO,
    CHECKPOINT_TYPE_MANUAL,
    CheckpointManager,
    sanitize_tag_name,
)
from pipekeeper.recovery.navigation import (
    NavigationOptions,
    NavigationResult,
    StageNavigator,
)
from pipekeeper.recovery.prerequisites import DEFAULT_CHECKS, PrerequisiteRegistry
from pipekeeper.recovery.resume import (
    DEVELOP_FALLBACK_ACTION,
    RESTORED_FROM_CURRENT,
    ResumeContext,
    ResumeController,
    ResumeInfo,
    ResumeOptions,
    ResumeResult,
    format_duration,
)

__all__ = [
    "CheckpointManager",
    "CHECKPOINT_TYPE_AUTO",
    "CHECKPOINT_TYPE_MANUAL",
    "sanitize_tag_name",
    "StageNavigator",
    "NavigationResult",
    "NavigationOptions",
    "PrerequisiteRegistry",
    "DEFAULT_CHECKS",
    "ResumeController",
    "ResumeOptions",
    "ResumeResult",
    "ResumeInfo",
    "ResumeContext",
    "RESTORED_FROM_CURRENT",
    "DEVELOP_FALLBACK_ACTION",
    "format_duration",
]
