"""
Pipekeeper - Exception Hierarchy

All Pipekeeper-specific exceptions inherit from PipekeeperError.
Components wrap lower-level causes with "failed to X: <cause>" messages
and chain them with ``raise ... from``.
"""

from typing import Any


class PipekeeperError(Exception):
    """Base exception for all Pipekeeper-related errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration Errors
class ConfigError(PipekeeperError):
    """Raised when configuration is invalid or missing."""

    pass


# Lookup Errors
class NotFoundError(PipekeeperError):
    """Raised when a keyed entity (project, phase, task, checkpoint) is absent."""

    pass


class ProjectNotFoundError(NotFoundError):
    """Raised when a project is not found in the store."""

    pass


class PhaseNotFoundError(NotFoundError):
    """Raised when a phase is not found in the store."""

    pass


class TaskNotFoundError(NotFoundError):
    """Raised when a task is not found in the store."""

    pass


class CheckpointNotFoundError(NotFoundError):
    """Raised when a checkpoint record is not found in the store."""

    pass


# Validation Errors
class ValidationError(PipekeeperError):
    """Raised for bad input: empty names, unknown stages, illegal moves."""

    pass


class InvalidTransitionError(ValidationError):
    """Raised when a stage transition is not allowed.

    Includes the source and target stage for debugging.
    """

    def __init__(self, message: str, from_stage: str, to_stage: str):
        super().__init__(message, {"from_stage": from_stage, "to_stage": to_stage})
        self.from_stage = from_stage
        self.to_stage = to_stage


class PrerequisiteError(InvalidTransitionError):
    """Raised when the artifact required to enter a stage is missing."""

    pass


class InvalidCheckpointError(ValidationError):
    """Raised when a checkpoint record cannot be rolled back to."""

    pass


# Version Control Errors
class VCSError(PipekeeperError):
    """Raised when a version-control command fails or times out.

    The combined stdout/stderr of the failed process is kept in ``output``.
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        output: str = "",
        returncode: int | None = None,
    ):
        super().__init__(
            message,
            {"command": " ".join(command or []), "returncode": returncode},
        )
        self.command = command or []
        self.output = output
        self.returncode = returncode

    def __str__(self) -> str:
        text = super().__str__()
        if self.output:
            return f"{text}\nOutput: {self.output.strip()}"
        return text


# Persistence Errors
class PersistenceError(PipekeeperError):
    """Raised when a store read or write fails."""

    pass
