"""
Pipekeeper Persistence Layer

Provides SQLite-based persistence for pipeline state.
Single source of truth - no in-memory caches needed.
"""

from pipekeeper.persistence.models import (
    Architecture,
    Blocker,
    Checkpoint,
    InterviewData,
    NavigationEvent,
    Phase,
    PhaseProgress,
    # Enums
    PhaseStatus,
    ProgressStats,
    # Core entities
    Project,
    Task,
    TaskStatus,
)
from pipekeeper.persistence.repository import PipekeeperRepository

__all__ = [
    # Enums
    "PhaseStatus",
    "TaskStatus",
    # Core entities
    "Project",
    "Phase",
    "Task",
    "Checkpoint",
    # Artifacts
    "InterviewData",
    "Architecture",
    "Blocker",
    "NavigationEvent",
    # Derived
    "ProgressStats",
    "PhaseProgress",
    # Repository
    "PipekeeperRepository",
]
