"""
Pipekeeper - Pipeline Stage Machine

Defines the fixed project pipeline and the ordering rules every other
component uses to decide whether a move is forward or backward.

Stage order:
INIT -> INTERVIEW -> DESIGN -> PLAN -> REVIEW -> DEVELOP -> COMPLETE

Rules:
- Moving to the current stage is rejected
- Moving backward to any earlier stage is always allowed (reiteration)
- Moving forward is allowed one stage at a time
"""

from __future__ import annotations

from enum import Enum

from pipekeeper.exceptions import InvalidTransitionError, ValidationError


class Stage(str, Enum):
    """
    Pipeline stages, declared in pipeline order.

    Declaration order is the single source of truth for rank.
    """

    INIT = "init"
    INTERVIEW = "interview"
    DESIGN = "design"
    PLAN = "plan"
    REVIEW = "review"
    DEVELOP = "develop"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        """Position of this stage in the pipeline (0-based)."""
        return STAGE_ORDER.index(self)

    @classmethod
    def parse(cls, value: str | Stage) -> Stage:
        """
        Parse a stage name.

        Names are case-sensitive and must be one of the seven stage values.

        Raises:
            ValidationError: If the name is not a known stage
        """
        if isinstance(value, Stage):
            return value
        for stage in cls:
            if stage.value == value:
                return stage
        allowed = ", ".join(s.value for s in cls)
        raise ValidationError(
            f"unknown stage: {value} (must be one of: {allowed})",
            {"stage": value},
        )

    def __str__(self) -> str:
        return self.value


STAGE_ORDER: list[Stage] = list(Stage)

# Operator-facing instruction for each stage
NEXT_ACTIONS: dict[Stage, str] = {
    Stage.INIT: "Run 'pipekeeper init' to initialize the project",
    Stage.INTERVIEW: "Run 'pipekeeper interview' to start or continue the interview",
    Stage.DESIGN: "Run 'pipekeeper design' to generate or refine the architecture",
    Stage.PLAN: "Run 'pipekeeper plan' to generate or refine the DevPlan",
    Stage.REVIEW: "Run 'pipekeeper review' to review and validate the DevPlan",
    Stage.DEVELOP: "Run 'pipekeeper develop' to start development",
    Stage.COMPLETE: "Project is complete!",
}


def rank(stage: Stage) -> int:
    """Return the pipeline position of a stage."""
    return Stage.parse(stage).rank


def next_stage(stage: Stage) -> Stage | None:
    """Return the stage after ``stage``, or None at the end of the pipeline."""
    position = rank(stage)
    if position + 1 < len(STAGE_ORDER):
        return STAGE_ORDER[position + 1]
    return None


def previous_stages(stage: Stage) -> list[Stage]:
    """Return every stage before ``stage``, in pipeline order."""
    return STAGE_ORDER[: rank(stage)]


def is_backward(from_stage: Stage, to_stage: Stage) -> bool:
    """Check if moving from ``from_stage`` to ``to_stage`` goes back in the pipeline."""
    return rank(to_stage) < rank(from_stage)


def validate_transition(from_stage: Stage, to_stage: Stage) -> None:
    """
    Apply the ordering rules to a stage move.

    Prerequisite (artifact presence) checks for forward moves are layered
    on top of this by the stage navigator.

    Args:
        from_stage: Current stage
        to_stage: Requested stage

    Raises:
        InvalidTransitionError: If the move is to the same stage or skips stages
    """
    from_stage = Stage.parse(from_stage)
    to_stage = Stage.parse(to_stage)

    if from_stage == to_stage:
        raise InvalidTransitionError(
            f"already at stage {to_stage}",
            from_stage=from_stage.value,
            to_stage=to_stage.value,
        )

    if to_stage.rank > from_stage.rank + 1:
        required = STAGE_ORDER[from_stage.rank + 1]
        raise InvalidTransitionError(
            f"cannot skip stages: must complete {required} before moving to {to_stage}",
            from_stage=from_stage.value,
            to_stage=to_stage.value,
        )


def next_action(stage: Stage) -> str:
    """Return the operator instruction for a stage."""
    return NEXT_ACTIONS.get(Stage.parse(stage), "Unknown stage")
