"""
Stage Prerequisites

Each forward move into a stage requires an artifact from the stage before
it. Checks are registered once per destination stage and evaluated by the
stage navigator for exactly-one-forward moves.

Default checks:
- INTERVIEW: none
- DESIGN: interview data present
- PLAN: architecture document present
- REVIEW / DEVELOP: at least one phase
- COMPLETE: every phase completed
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pipekeeper.exceptions import NotFoundError, PrerequisiteError
from pipekeeper.persistence import PhaseStatus, PipekeeperRepository
from pipekeeper.state import Stage

logger = logging.getLogger(__name__)

# A check returns None when satisfied, or a description of what is missing
PrerequisiteCheck = Callable[[PipekeeperRepository, str], str | None]


def has_interview_data(repo: PipekeeperRepository, project_id: str) -> str | None:
    try:
        repo.get_interview_data(project_id)
    except NotFoundError:
        return "interview data is required"
    return None


def has_architecture(repo: PipekeeperRepository, project_id: str) -> str | None:
    try:
        repo.get_architecture(project_id)
    except NotFoundError:
        return "an architecture document is required"
    return None


def has_phases(repo: PipekeeperRepository, project_id: str) -> str | None:
    if not repo.list_phases(project_id):
        return "a DevPlan with at least one phase is required"
    return None


def all_phases_completed(repo: PipekeeperRepository, project_id: str) -> str | None:
    phases = repo.list_phases(project_id)
    if not phases:
        return "a DevPlan with at least one phase is required"
    pending = [p for p in phases if p.status != PhaseStatus.COMPLETED]
    if pending:
        numbers = ", ".join(str(p.number) for p in pending)
        return f"all phases must be completed (pending: {numbers})"
    return None


DEFAULT_CHECKS: dict[Stage, PrerequisiteCheck] = {
    Stage.DESIGN: has_interview_data,
    Stage.PLAN: has_architecture,
    Stage.REVIEW: has_phases,
    Stage.DEVELOP: has_phases,
    Stage.COMPLETE: all_phases_completed,
}


class PrerequisiteRegistry:
    """
    Per-stage artifact presence checks.

    Usage:
        registry = PrerequisiteRegistry(repo)
        registry.check(Stage.PLAN, "myproject")  # raises PrerequisiteError

        # Disable enforcement entirely
        registry = PrerequisiteRegistry(repo, enabled=False)
    """

    def __init__(self, repo: PipekeeperRepository, enabled: bool = True):
        self.repo = repo
        self.enabled = enabled
        self._checks: dict[Stage, PrerequisiteCheck] = dict(DEFAULT_CHECKS)

    def register(self, stage: Stage, check: PrerequisiteCheck | None) -> None:
        """Register (or replace) the check for entering ``stage``. None removes it."""
        stage = Stage.parse(stage)
        if check is None:
            self._checks.pop(stage, None)
        else:
            self._checks[stage] = check

    def missing(self, stage: Stage, project_id: str) -> str | None:
        """Describe the missing prerequisite for entering ``stage``, or None."""
        if not self.enabled:
            return None
        check = self._checks.get(Stage.parse(stage))
        if check is None:
            return None
        return check(self.repo, project_id)

    def check(self, stage: Stage, project_id: str, from_stage: Stage | None = None) -> None:
        """
        Verify the prerequisite for entering ``stage``.

        Raises:
            PrerequisiteError: If the required artifact is missing
        """
        stage = Stage.parse(stage)
        problem = self.missing(stage, project_id)
        if problem is None:
            return

        source = Stage.parse(from_stage) if from_stage is not None else None
        logger.info(f"Prerequisite for {stage} not met on {project_id}: {problem}")
        raise PrerequisiteError(
            f"cannot enter {stage}: {problem}",
            from_stage=source.value if source else "",
            to_stage=stage.value,
        )
