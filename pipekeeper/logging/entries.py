"""
Log Entry Data Structures for Pipekeeper.

One structured entry per recovery event: checkpoint created, rollback,
stage navigation, resume and stage restart.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


def now_iso() -> str:
    """Get current timestamp in ISO 8601 format."""
    return datetime.now().isoformat()


# Event types written to recovery.jsonl
EVENT_CHECKPOINT_CREATED = "checkpoint_created"
EVENT_CHECKPOINT_ORPHANED = "checkpoint_orphaned"
EVENT_ROLLBACK = "rollback"
EVENT_NAVIGATION = "navigation"
EVENT_RESUME = "resume"
EVENT_STAGE_RESTART = "stage_restart"


@dataclass
class RecoveryLogEntry:
    """Log entry for pipeline state and recovery events."""

    # Identity
    timestamp: str  # ISO 8601
    project_id: str
    event_type: str

    # Stage context
    from_stage: str | None = None
    to_stage: str | None = None

    # Checkpoint context
    checkpoint_id: str | None = None
    vcs_tag: str | None = None

    # Free-form event data
    details: dict[str, Any] = field(default_factory=dict)

    # Error (if any)
    error: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecoveryLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
