"""
Stage Navigator

Validates and performs moves between pipeline stages.

Moving back is always allowed so a stage can be reiterated; the navigator
reports which artifacts survive the move and which may need regenerating.
Moving forward goes one stage at a time and requires the artifact of the
stage being left (see prerequisites.py).

Every move is appended to the navigation history and committed to the
working tree as a marker. Neither of those can fail a navigation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from pipekeeper import state
from pipekeeper.exceptions import NotFoundError, PersistenceError, VCSError
from pipekeeper.logging import EVENT_NAVIGATION, log_recovery_event
from pipekeeper.persistence import NavigationEvent, PipekeeperRepository
from pipekeeper.recovery.prerequisites import PrerequisiteRegistry
from pipekeeper.state import Stage
from pipekeeper.vcs import SnapshotStore

logger = logging.getLogger(__name__)

# Artifact labels reported by determine_artifacts
ARTIFACT_INTERVIEW = "Interview data"
ARTIFACT_ARCHITECTURE = "Architecture"
ARTIFACT_DEVPLAN = "DevPlan"
REGENERATE_ARCHITECTURE = "Architecture (if interview changes)"
REGENERATE_DEVPLAN = "DevPlan (if architecture changes)"


@dataclass
class NavigationResult:
    """Outcome of a stage move."""

    from_stage: Stage
    to_stage: Stage
    preserved_work: list[str] = field(default_factory=list)
    regenerated_artifacts: list[str] = field(default_factory=list)
    next_action: str = ""


@dataclass
class NavigationOptions:
    """Stages reachable from the current one."""

    current_stage: Stage
    can_go_back: list[Stage] = field(default_factory=list)
    can_go_forward: list[Stage] = field(default_factory=list)
    next_stage: Stage | None = None


def _format_labels(labels: list[str]) -> str:
    return "[" + ", ".join(labels) + "]"


class StageNavigator:
    """
    Moves a project between pipeline stages.

    Usage:
        navigator = StageNavigator(repo, GitManager(project_dir))
        result = navigator.navigate_to_stage("myproject", Stage.INTERVIEW)
        print(result.preserved_work, result.next_action)
    """

    def __init__(
        self,
        repo: PipekeeperRepository,
        snapshots: SnapshotStore,
        prerequisites: PrerequisiteRegistry | None = None,
    ):
        self.repo = repo
        self.snapshots = snapshots
        self.prerequisites = prerequisites or PrerequisiteRegistry(repo)

    def validate_transition(
        self,
        from_stage: Stage,
        to_stage: Stage,
        project_id: str | None = None,
    ) -> None:
        """
        Check that a move is legal.

        Same-stage moves and moves that skip a stage are rejected. A move
        exactly one stage forward must also satisfy the prerequisite of the
        destination stage when ``project_id`` is given.

        Raises:
            InvalidTransitionError: Illegal ordering
            PrerequisiteError: Required artifact missing
        """
        from_stage = Stage.parse(from_stage)
        to_stage = Stage.parse(to_stage)

        state.validate_transition(from_stage, to_stage)

        if project_id is not None and to_stage.rank == from_stage.rank + 1:
            self.prerequisites.check(to_stage, project_id, from_stage=from_stage)

    def navigate_to_stage(
        self,
        project_id: str,
        target_stage: Stage,
        reason: str | None = None,
    ) -> NavigationResult:
        """
        Move a project to ``target_stage``.

        Args:
            project_id: Project to move
            target_stage: Destination stage
            reason: Optional note stored with the history entry

        Returns:
            NavigationResult describing preserved and regenerated work
        """
        target_stage = Stage.parse(target_stage)
        project = self.repo.get_project(project_id)
        current_stage = project.current_stage

        self.validate_transition(current_stage, target_stage, project_id)

        result = NavigationResult(from_stage=current_stage, to_stage=target_stage)
        self.determine_artifacts(project_id, current_stage, target_stage, result)

        self.repo.update_project_stage(project_id, target_stage)
        logger.info(f"Project {project_id} navigated {current_stage} -> {target_stage}")

        self._record_history(project_id, current_stage, target_stage, reason)

        self._commit_marker(current_stage, target_stage, result)

        result.next_action = state.next_action(target_stage)

        log_recovery_event(
            EVENT_NAVIGATION,
            project_id=project_id,
            from_stage=current_stage.value,
            to_stage=target_stage.value,
            details={
                "preserved": result.preserved_work,
                "regenerate": result.regenerated_artifacts,
                "reason": reason,
            },
        )
        return result

    def _record_history(
        self,
        project_id: str,
        from_stage: Stage,
        to_stage: Stage,
        reason: str | None,
    ) -> None:
        try:
            self.repo.record_navigation(project_id, from_stage, to_stage, reason)
        except PersistenceError as e:
            logger.warning(f"Failed to record navigation history for {project_id}: {e}")

    def _commit_marker(self, from_stage: Stage, to_stage: Stage, result: NavigationResult) -> None:
        message = (
            f"Navigate from {from_stage} to {to_stage} stage\n\n"
            f"Preserved: {_format_labels(result.preserved_work)}\n"
            f"Will regenerate: {_format_labels(result.regenerated_artifacts)}"
        )
        metadata = {
            "type": "navigation",
            "from_stage": from_stage.value,
            "to_stage": to_stage.value,
            "timestamp": datetime.now().astimezone().isoformat(timespec="seconds"),
        }
        try:
            self.snapshots.commit_all(message, metadata)
        except VCSError as e:
            logger.warning(f"Failed to commit navigation marker: {e}")

    def determine_artifacts(
        self,
        project_id: str,
        from_stage: Stage,
        to_stage: Stage,
        result: NavigationResult | None = None,
    ) -> NavigationResult:
        """
        Fill in preserved and regenerated artifacts for a backward move.

        Forward moves leave both lists empty.
        """
        from_stage = Stage.parse(from_stage)
        to_stage = Stage.parse(to_stage)
        if result is None:
            result = NavigationResult(from_stage=from_stage, to_stage=to_stage)

        if not state.is_backward(from_stage, to_stage):
            return result

        if self._exists(self.repo.get_interview_data, project_id):
            result.preserved_work.append(ARTIFACT_INTERVIEW)
        if self._exists(self.repo.get_architecture, project_id):
            result.preserved_work.append(ARTIFACT_ARCHITECTURE)
        if self.repo.list_phases(project_id):
            result.preserved_work.append(ARTIFACT_DEVPLAN)

        if to_stage == Stage.INTERVIEW:
            if from_stage.rank > Stage.DESIGN.rank:
                result.regenerated_artifacts.append(REGENERATE_ARCHITECTURE)
            if from_stage.rank > Stage.PLAN.rank:
                result.regenerated_artifacts.append(REGENERATE_DEVPLAN)
        elif to_stage == Stage.DESIGN:
            if from_stage.rank > Stage.PLAN.rank:
                result.regenerated_artifacts.append(REGENERATE_DEVPLAN)

        return result

    @staticmethod
    def _exists(lookup, project_id: str) -> bool:
        try:
            lookup(project_id)
        except NotFoundError:
            return False
        return True

    def get_navigation_options(self, project_id: str) -> NavigationOptions:
        """Stages the project can move to from where it is now."""
        project = self.repo.get_project(project_id)
        current = project.current_stage
        upcoming = state.next_stage(current)

        return NavigationOptions(
            current_stage=current,
            can_go_back=state.previous_stages(current),
            can_go_forward=[upcoming] if upcoming else [],
            next_stage=upcoming,
        )

    def get_navigation_history(self, project_id: str) -> list[NavigationEvent]:
        """Recorded stage moves, oldest first."""
        return self.repo.list_navigation_history(project_id)

    def get_iteration_count(self, project_id: str, stage: Stage) -> int:
        """Number of times the project has been moved into ``stage``."""
        stage = Stage.parse(stage)
        return sum(1 for event in self.get_navigation_history(project_id) if event.to_stage == stage)
