"""
Pipekeeper Persistence Models

Dataclasses that map to SQLite tables for the pipeline state store.
Each row type has ``from_row``; writable ones have ``to_row``. Progress
types at the bottom are derived on demand and never stored.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pipekeeper.state import Stage


# ============================================================================
# ENUMS - Type-safe status values matching SQL schema
# ============================================================================


class PhaseStatus(str, Enum):
    """Phase lifecycle status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    SKIPPED = "skipped"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def generate_id() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Get current datetime as ISO string."""
    return datetime.now().isoformat()


def parse_json_or_dict(value: str | dict | None) -> dict:
    """Parse JSON string to dict, or return empty dict."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    try:
        result = json.loads(value)
        return result if isinstance(result, dict) else {}
    except (json.JSONDecodeError, TypeError):
        return {}


def to_json(value: list | dict | None) -> str | None:
    """Convert list or dict to JSON string."""
    if value is None:
        return None
    return json.dumps(value)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse ISO datetime string to datetime object."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None


def iso_or_none(value: datetime | None) -> str | None:
    """Format an optional datetime for storage."""
    return value.isoformat() if isinstance(value, datetime) else value


# ============================================================================
# CORE ENTITIES
# ============================================================================


@dataclass
class Project:
    """
    A tracked project moving through the pipeline.

    Maps to: projects table
    """

    id: str = ""
    name: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    current_stage: Stage = Stage.INIT
    current_phase_id: str | None = None

    @classmethod
    def from_row(cls, row: tuple) -> Project:
        """Create from database row."""
        return cls(
            id=row[0],
            name=row[1],
            created_at=parse_datetime(row[2]) or datetime.now(),
            current_stage=Stage.parse(row[3]),
            current_phase_id=row[4],
        )

    def to_row(self) -> tuple:
        """Convert to database row."""
        return (
            self.id,
            self.name,
            iso_or_none(self.created_at),
            self.current_stage.value,
            self.current_phase_id,
        )


@dataclass
class Phase:
    """
    A development phase created during planning.

    Maps to: phases table
    """

    id: str = field(default_factory=generate_id)
    project_id: str = ""
    number: int = 0
    title: str = ""
    content: str = ""
    status: PhaseStatus = PhaseStatus.NOT_STARTED
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: tuple) -> Phase:
        """Create from database row."""
        return cls(
            id=row[0],
            project_id=row[1],
            number=row[2],
            title=row[3],
            content=row[4] or "",
            status=PhaseStatus(row[5]),
            created_at=parse_datetime(row[6]) or datetime.now(),
            started_at=parse_datetime(row[7]),
            completed_at=parse_datetime(row[8]),
        )

    def to_row(self) -> tuple:
        """Convert to database row."""
        return (
            self.id,
            self.project_id,
            self.number,
            self.title,
            self.content,
            self.status.value,
            iso_or_none(self.created_at),
            iso_or_none(self.started_at),
            iso_or_none(self.completed_at),
        )


@dataclass
class Task:
    """
    A single development task within a phase.

    Maps to: tasks table
    """

    id: str = field(default_factory=generate_id)
    phase_id: str = ""
    number: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.NOT_STARTED
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: tuple) -> Task:
        """Create from database row."""
        return cls(
            id=row[0],
            phase_id=row[1],
            number=row[2],
            description=row[3],
            status=TaskStatus(row[4]),
            started_at=parse_datetime(row[5]),
            completed_at=parse_datetime(row[6]),
        )

    def to_row(self) -> tuple:
        """Convert to database row."""
        return (
            self.id,
            self.phase_id,
            self.number,
            self.description,
            self.status.value,
            iso_or_none(self.started_at),
            iso_or_none(self.completed_at),
        )


@dataclass(frozen=True)
class Checkpoint:
    """
    Named recovery point: a store record tied to a version-control tag.

    Immutable once created.

    Maps to: checkpoints table
    """

    id: str
    project_id: str
    name: str
    vcs_tag: str
    created_at: datetime = field(default_factory=datetime.now)
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: tuple) -> Checkpoint:
        """Create from database row."""
        return cls(
            id=row[0],
            project_id=row[1],
            name=row[2] or "",
            vcs_tag=row[3] or "",
            created_at=parse_datetime(row[4]) or datetime.now(),
            metadata={str(k): str(v) for k, v in parse_json_or_dict(row[5]).items()},
        )

    def to_row(self) -> tuple:
        """Convert to database row."""
        return (
            self.id,
            self.project_id,
            self.name,
            self.vcs_tag,
            iso_or_none(self.created_at),
            to_json(dict(self.metadata)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Opaque JSON form for downstream tooling."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "git_tag": self.vcs_tag,
            "created_at": self.created_at.isoformat(),
            "metadata": dict(self.metadata),
        }


# ============================================================================
# ARTIFACTS - checked for presence, never interpreted
# ============================================================================


@dataclass
class InterviewData:
    """
    Gathered requirements, stored as an opaque JSON document.

    Maps to: interview_data table
    """

    project_id: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: tuple) -> InterviewData:
        """Create from database row."""
        return cls(
            project_id=row[0],
            data=parse_json_or_dict(row[1]),
            completed_at=parse_datetime(row[2]),
        )


@dataclass
class Architecture:
    """
    System design document (markdown).

    Maps to: architectures table
    """

    project_id: str = ""
    content: str = ""
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_row(cls, row: tuple) -> Architecture:
        """Create from database row."""
        return cls(
            project_id=row[0],
            content=row[1],
            created_at=parse_datetime(row[2]) or datetime.now(),
        )


@dataclass
class Blocker:
    """
    An issue preventing progress on a task.

    Maps to: blockers table
    """

    id: str = field(default_factory=generate_id)
    task_id: str = ""
    description: str = ""
    resolution: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    resolved_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.resolved_at is None

    @classmethod
    def from_row(cls, row: tuple) -> Blocker:
        """Create from database row."""
        return cls(
            id=row[0],
            task_id=row[1],
            description=row[2],
            resolution=row[3],
            created_at=parse_datetime(row[4]) or datetime.now(),
            resolved_at=parse_datetime(row[5]),
        )

    def to_row(self) -> tuple:
        """Convert to database row."""
        return (
            self.id,
            self.task_id,
            self.description,
            self.resolution,
            iso_or_none(self.created_at),
            iso_or_none(self.resolved_at),
        )


@dataclass
class NavigationEvent:
    """
    One stage move, appended to the navigation history.

    Maps to: navigation_history table
    """

    id: int | None = None  # Auto-increment
    project_id: str = ""
    from_stage: Stage = Stage.INIT
    to_stage: Stage = Stage.INIT
    created_at: datetime = field(default_factory=datetime.now)
    reason: str | None = None

    @classmethod
    def from_row(cls, row: tuple) -> NavigationEvent:
        """Create from database row."""
        return cls(
            id=row[0],
            project_id=row[1],
            from_stage=Stage.parse(row[2]),
            to_stage=Stage.parse(row[3]),
            created_at=parse_datetime(row[4]) or datetime.now(),
            reason=row[5],
        )

    def describe(self) -> str:
        """Human-readable one-line form."""
        return f"{self.from_stage}->{self.to_stage} at {self.created_at.isoformat(timespec='seconds')}"


# ============================================================================
# DERIVED - computed on demand, never persisted
# ============================================================================


@dataclass
class ProgressStats:
    """Overall project progress, derived from phase and task rows."""

    total_phases: int = 0
    completed_phases: int = 0
    in_progress_phases: int = 0
    blocked_phases: int = 0
    pending_phases: int = 0

    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    blocked_tasks: int = 0
    skipped_tasks: int = 0
    pending_tasks: int = 0

    completion_percentage: float = 0.0

    started_at: datetime | None = None
    elapsed: timedelta = field(default_factory=timedelta)
    estimated_remaining: timedelta = field(default_factory=timedelta)

    current_stage: Stage = Stage.INIT
    current_phase_id: str | None = None


@dataclass
class PhaseProgress:
    """Progress for a single phase."""

    phase_id: str
    phase_number: int
    phase_title: str
    status: PhaseStatus
    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    blocked_tasks: int = 0
    percentage: float = 0.0
