"""
Resume Controller

Decides where work continues after an interruption:

1. From the current persisted state, or from a checkpoint (working tree
   rolled back, pipeline state kept)
2. Optionally at an explicitly chosen stage
3. Optionally restarting that stage, which puts in-flight phases and
   tasks back to not started

and reports the next thing the operator should run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from pipekeeper import state
from pipekeeper.exceptions import InvalidTransitionError, NotFoundError, PersistenceError
from pipekeeper.logging import EVENT_RESUME, EVENT_STAGE_RESTART, log_recovery_event
from pipekeeper.persistence import (
    Architecture,
    Blocker,
    Checkpoint,
    InterviewData,
    Phase,
    PhaseStatus,
    PipekeeperRepository,
    ProgressStats,
    Project,
    TaskStatus,
)
from pipekeeper.recovery.checkpoint import CheckpointManager
from pipekeeper.recovery.navigation import StageNavigator
from pipekeeper.state import Stage

logger = logging.getLogger(__name__)

RESTORED_FROM_CURRENT = "current"

# Resume-specific wording; every other stage uses state.next_action()
RESUME_ACTIONS: dict[Stage, str] = {
    Stage.INTERVIEW: "Run 'pipekeeper interview --resume' to continue the interview",
    Stage.DESIGN: "Run 'pipekeeper design' to generate or review the architecture",
    Stage.PLAN: "Run 'pipekeeper plan' to generate or review the DevPlan",
}
DEVELOP_FALLBACK_ACTION = "Run 'pipekeeper develop' to continue development"


def format_duration(duration: timedelta) -> str:
    """
    Render a duration for the resume summary.

    Examples: ``42s``, ``17m``, ``3h 5m``, ``2d 4h``.
    """
    seconds = duration.total_seconds()
    if seconds < 60:
        return f"{seconds:.0f}s"
    if seconds < 3600:
        return f"{seconds / 60:.0f}m"
    hours = int(seconds // 3600)
    if hours < 24:
        minutes = int(seconds // 60) % 60
        return f"{hours}h {minutes}m"
    return f"{hours // 24}d {hours % 24}h"


@dataclass
class ResumeOptions:
    """Operator choices for a resume."""

    project_id: str
    from_checkpoint: str | None = None
    restart_stage: bool = False
    stage: Stage | None = None
    selected_model: str | None = None
    # Apply an explicit stage even when the move would be rejected by the navigator
    force_stage: bool = True


@dataclass
class ResumeResult:
    """Where work continues."""

    project_id: str
    stage: Stage
    phase_id: str | None = None
    restored_from: str = RESTORED_FROM_CURRENT
    next_action: str = ""
    model_selection: str | None = None


@dataclass
class ResumeInfo:
    """Incomplete-work report for a project."""

    project_id: str
    project_name: str
    current_stage: Stage
    current_phase_id: str | None = None
    has_incomplete_work: bool = False
    last_checkpoint: Checkpoint | None = None
    progress: ProgressStats | None = None
    summary: str = ""


@dataclass
class ResumeContext:
    """Artifacts relevant to resuming a stage. Missing ones are left as None."""

    project_id: str
    stage: Stage
    progress: ProgressStats | None = None
    interview_data: InterviewData | None = None
    architecture: Architecture | None = None
    phases: list[Phase] = field(default_factory=list)
    active_blockers: list[Blocker] = field(default_factory=list)


class ResumeController:
    """
    Resume detection and workflow.

    Usage:
        controller = ResumeController(repo, checkpoints, navigator)
        info = controller.detect_incomplete_work("myproject")
        if info.has_incomplete_work:
            result = controller.resume(ResumeOptions(project_id="myproject"))
            print(result.next_action)
    """

    def __init__(
        self,
        repo: PipekeeperRepository,
        checkpoints: CheckpointManager,
        navigator: StageNavigator | None = None,
    ):
        self.repo = repo
        self.checkpoints = checkpoints
        self.navigator = navigator or StageNavigator(repo, checkpoints.snapshots)

    # =========================================================================
    # DETECTION
    # =========================================================================

    def detect_incomplete_work(self, project_id: str) -> ResumeInfo:
        """Report whether a project has unfinished work, with a text summary."""
        project = self.repo.get_project(project_id)

        info = ResumeInfo(
            project_id=project.id,
            project_name=project.name,
            current_stage=project.current_stage,
            current_phase_id=project.current_phase_id,
        )

        if project.current_stage == Stage.COMPLETE:
            info.summary = "Project is complete"
            return info

        progress = self.repo.calculate_progress(project_id)
        info.progress = progress
        info.has_incomplete_work = (
            progress.completion_percentage < 100 or project.current_stage != Stage.COMPLETE
        )

        checkpoints = self.repo.list_checkpoints(project_id)
        if checkpoints:
            info.last_checkpoint = checkpoints[0]

        info.summary = self._summarize(project, progress)
        return info

    def _summarize(self, project: Project, progress: ProgressStats) -> str:
        lines = [
            f"Project: {project.name}",
            f"Current Stage: {project.current_stage}",
            f"Progress: {progress.completion_percentage:.1f}% complete",
            f"Completed Tasks: {progress.completed_tasks} / {progress.total_tasks}",
        ]
        if progress.in_progress_tasks > 0:
            lines.append(f"In Progress: {progress.in_progress_tasks} tasks")
        if progress.blocked_tasks > 0:
            lines.append(f"⚠️  Blocked: {progress.blocked_tasks} tasks")
        lines.append(f"Time Elapsed: {format_duration(progress.elapsed)}")
        if progress.estimated_remaining > timedelta(0):
            lines.append(f"Estimated Remaining: {format_duration(progress.estimated_remaining)}")
        return "\n".join(lines) + "\n"

    # =========================================================================
    # RESUME
    # =========================================================================

    def resume(self, options: ResumeOptions) -> ResumeResult:
        """
        Resume work on a project.

        A checkpoint restore reverts the working tree only; the stage and
        phase come from the database as they were before the rollback.

        Raises:
            InvalidTransitionError: Explicit stage rejected and ``force_stage`` is off
        """
        project = self.repo.get_project(options.project_id)
        restored_from = RESTORED_FROM_CURRENT

        if options.from_checkpoint:
            checkpoint = self.checkpoints.rollback(options.from_checkpoint)
            project = self.repo.get_project(options.project_id)
            restored_from = checkpoint.id

        result = ResumeResult(
            project_id=project.id,
            stage=project.current_stage,
            phase_id=project.current_phase_id,
            restored_from=restored_from,
            model_selection=options.selected_model,
        )

        if options.stage is not None:
            target = Stage.parse(options.stage)
            self._check_override(project, target, options.force_stage)
            self.repo.update_project_stage(project.id, target)
            result.stage = target

        if options.restart_stage:
            self._restart_stage(project.id, result.stage)

        result.next_action = self._next_action(project.id, result.stage)

        log_recovery_event(
            EVENT_RESUME,
            project_id=project.id,
            from_stage=project.current_stage.value,
            to_stage=result.stage.value,
            checkpoint_id=None if restored_from == RESTORED_FROM_CURRENT else restored_from,
            details={
                "restart_stage": options.restart_stage,
                "model": options.selected_model,
            },
        )
        return result

    def _check_override(self, project: Project, target: Stage, force: bool) -> None:
        """Run an explicit stage choice through the navigator's rules."""
        if target == project.current_stage:
            return
        try:
            self.navigator.validate_transition(project.current_stage, target, project.id)
        except InvalidTransitionError as e:
            if not force:
                raise
            logger.warning(
                f"Forcing {project.id} from {project.current_stage} to {target} "
                f"despite failed validation: {e.message}"
            )

    def _restart_stage(self, project_id: str, stage: Stage) -> None:
        """
        Reset in-flight work for a stage.

        For DEVELOP, in-progress phases and tasks go back to not started;
        completed and blocked ones are left alone. Other stages only have
        their stage value re-asserted.
        """
        reset_phases = 0
        reset_tasks = 0

        if stage == Stage.DEVELOP:
            try:
                with self.repo.transaction():
                    for phase in self.repo.list_phases(project_id):
                        if phase.status == PhaseStatus.IN_PROGRESS:
                            self.repo.update_phase_status(phase.id, PhaseStatus.NOT_STARTED)
                            reset_phases += 1
                        for task in self.repo.list_tasks(phase.id):
                            if task.status == TaskStatus.IN_PROGRESS:
                                self.repo.update_task_status(task.id, TaskStatus.NOT_STARTED)
                                reset_tasks += 1
                    self.repo.update_project_stage(project_id, stage)
            except PersistenceError as e:
                raise PersistenceError(f"failed to restart stage: {e.message}") from e
        else:
            self.repo.update_project_stage(project_id, stage)

        logger.info(
            f"Restarted {stage} for {project_id}: "
            f"{reset_phases} phases and {reset_tasks} tasks reset"
        )
        log_recovery_event(
            EVENT_STAGE_RESTART,
            project_id=project_id,
            to_stage=stage.value,
            details={"phases_reset": reset_phases, "tasks_reset": reset_tasks},
        )

    def _next_action(self, project_id: str, stage: Stage) -> str:
        if stage in RESUME_ACTIONS:
            return RESUME_ACTIONS[stage]
        if stage != Stage.DEVELOP:
            return state.next_action(stage)

        for phase in self.repo.list_phases(project_id):
            if phase.status in (PhaseStatus.IN_PROGRESS, PhaseStatus.NOT_STARTED):
                return f"Run 'pipekeeper develop' to continue with phase {phase.number}: {phase.title}"
        return DEVELOP_FALLBACK_ACTION

    # =========================================================================
    # READS
    # =========================================================================

    def list_available_checkpoints(self, project_id: str) -> list[Checkpoint]:
        """Checkpoints a resume can start from, newest first."""
        return self.repo.list_checkpoints(project_id)

    def get_resume_context(self, project_id: str, stage: Stage) -> ResumeContext:
        """
        Collect the artifacts relevant to ``stage``.

        Interview data from INTERVIEW on, architecture from DESIGN on,
        phases from PLAN on, and active blockers for DEVELOP. Lookups that
        fail are skipped.
        """
        stage = Stage.parse(stage)
        context = ResumeContext(
            project_id=project_id,
            stage=stage,
            progress=self.repo.calculate_progress(project_id),
        )

        if stage.rank >= Stage.INTERVIEW.rank:
            context.interview_data = self._optional(self.repo.get_interview_data, project_id)
        if stage.rank >= Stage.DESIGN.rank:
            context.architecture = self._optional(self.repo.get_architecture, project_id)
        if stage.rank >= Stage.PLAN.rank:
            context.phases = self._optional(self.repo.list_phases, project_id) or []
        if stage == Stage.DEVELOP:
            context.active_blockers = self._optional(self.repo.list_active_blockers, project_id) or []

        return context

    @staticmethod
    def _optional(lookup, project_id: str) -> Any:
        try:
            return lookup(project_id)
        except (NotFoundError, PersistenceError) as e:
            logger.debug(f"Skipping {getattr(lookup, '__name__', lookup)} for {project_id}: {e}")
            return None
