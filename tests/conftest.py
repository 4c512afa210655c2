"""Shared fixtures: temporary state database and an in-memory snapshot store."""

import pytest

from pipekeeper.exceptions import VCSError
from pipekeeper.logging import LogConfig, reset_recovery_logger, set_config
from pipekeeper.persistence import (
    Phase,
    PhaseStatus,
    PipekeeperRepository,
    Task,
    TaskStatus,
)
from pipekeeper.recovery import (
    CheckpointManager,
    PrerequisiteRegistry,
    ResumeController,
    StageNavigator,
)
from pipekeeper.vcs import SnapshotStore

PROJECT_ID = "demo"


class FakeSnapshotStore(SnapshotStore):
    """Snapshot store that keeps tags in a dict and can be told to fail."""

    def __init__(self):
        self.tags: dict[str, str] = {}
        self.restored: list[str] = []
        self.commits: list[tuple[str, dict]] = []
        self.fail_create = False
        self.fail_restore = False
        self.fail_delete = False
        self.fail_commit = False

    def create(self, name, message):
        if self.fail_create:
            raise VCSError("git tag failed", command=["git", "tag"], output="fatal: boom", returncode=128)
        self.tags[name] = message

    def restore(self, name):
        if self.fail_restore or name not in self.tags:
            raise VCSError("git reset failed", command=["git", "reset"], output="unknown revision", returncode=128)
        self.restored.append(name)

    def list(self):
        return sorted(self.tags)

    def delete(self, name):
        if self.fail_delete:
            raise VCSError("git tag failed", command=["git", "tag", "-d"], returncode=1)
        self.tags.pop(name, None)

    def commit_all(self, message, metadata=None):
        if self.fail_commit:
            raise VCSError("git commit failed", command=["git", "commit"], returncode=1)
        self.commits.append((message, dict(metadata or {})))


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path):
    """Keep the recovery audit log inside the test's temp directory."""
    set_config(LogConfig(log_dir=tmp_path / "logs"))
    reset_recovery_logger()
    yield tmp_path / "logs"
    reset_recovery_logger()


@pytest.fixture
def repo(tmp_path):
    repository = PipekeeperRepository(tmp_path / "state" / "state.db")
    repository.initialize()
    yield repository
    repository.close()


@pytest.fixture
def project(repo):
    return repo.get_or_create_project(PROJECT_ID, "Demo Project")


@pytest.fixture
def snapshots():
    return FakeSnapshotStore()


@pytest.fixture
def checkpoints(repo, snapshots):
    return CheckpointManager(repo, snapshots)


@pytest.fixture
def navigator(repo, snapshots):
    return StageNavigator(repo, snapshots, PrerequisiteRegistry(repo))


@pytest.fixture
def resumer(repo, checkpoints, navigator):
    return ResumeController(repo, checkpoints, navigator)


def add_phase(
    repo: PipekeeperRepository,
    number: int,
    status: PhaseStatus = PhaseStatus.NOT_STARTED,
    task_statuses: tuple = (),
    project_id: str = PROJECT_ID,
) -> Phase:
    """Insert a phase with one task per entry in ``task_statuses``."""
    phase = repo.save_phase(
        Phase(project_id=project_id, number=number, title=f"Phase {number}", status=status)
    )
    for i, task_status in enumerate(task_statuses, 1):
        repo.save_task(
            Task(
                phase_id=phase.id,
                number=f"{number}.{i}",
                description=f"Task {number}.{i}",
                status=TaskStatus(task_status),
            )
        )
    return phase
