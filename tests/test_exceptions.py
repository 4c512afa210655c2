"""Tests for exception hierarchy."""

import pytest

from pipekeeper.exceptions import (
    CheckpointNotFoundError,
    ConfigError,
    InvalidCheckpointError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    PhaseNotFoundError,
    PipekeeperError,
    PrerequisiteError,
    ProjectNotFoundError,
    TaskNotFoundError,
    ValidationError,
    VCSError,
)


class TestPipekeeperError:
    """Tests for base PipekeeperError."""

    def test_basic_error(self):
        """Test basic error creation."""
        err = PipekeeperError("Something went wrong")
        assert err.message == "Something went wrong"
        assert err.details == {}
        assert str(err) == "Something went wrong"

    def test_error_with_details(self):
        """Test error with details dict."""
        err = PipekeeperError("Error occurred", {"code": 500, "reason": "internal"})
        assert err.details == {"code": 500, "reason": "internal"}
        assert "code" in str(err)
        assert "500" in str(err)


class TestHierarchy:
    """Every error is catchable by its category and by the base class."""

    @pytest.mark.parametrize(
        "error_cls,parent",
        [
            (ConfigError, PipekeeperError),
            (NotFoundError, PipekeeperError),
            (ProjectNotFoundError, NotFoundError),
            (PhaseNotFoundError, NotFoundError),
            (TaskNotFoundError, NotFoundError),
            (CheckpointNotFoundError, NotFoundError),
            (ValidationError, PipekeeperError),
            (InvalidCheckpointError, ValidationError),
            (PersistenceError, PipekeeperError),
        ],
    )
    def test_inheritance(self, error_cls, parent):
        """Each error is an instance of its category and the base."""
        err = error_cls("boom")
        assert isinstance(err, parent)
        assert isinstance(err, PipekeeperError)

    def test_prerequisite_error_is_transition_error(self):
        """A prerequisite failure is also a transition failure."""
        err = PrerequisiteError("cannot enter plan", from_stage="design", to_stage="plan")
        assert isinstance(err, InvalidTransitionError)
        assert isinstance(err, ValidationError)


class TestInvalidTransitionError:
    def test_carries_stages(self):
        """Both stages are kept as attributes and details."""
        err = InvalidTransitionError("cannot skip stages", from_stage="init", to_stage="plan")
        assert err.from_stage == "init"
        assert err.to_stage == "plan"
        assert err.details == {"from_stage": "init", "to_stage": "plan"}


class TestVCSError:
    def test_output_in_message(self):
        """Process output is appended to the message."""
        err = VCSError(
            "git tag failed",
            command=["git", "tag", "-a", "x"],
            output="fatal: tag 'x' already exists\n",
            returncode=128,
        )
        assert err.returncode == 128
        assert err.command == ["git", "tag", "-a", "x"]
        assert "Output: fatal: tag 'x' already exists" in str(err)
        assert err.details["command"] == "git tag -a x"

    def test_without_output(self):
        """No output section without output."""
        err = VCSError("git CLI not found")
        assert "Output" not in str(err)
        assert err.command == []
