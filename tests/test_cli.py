"""Tests for the pipekeeper CLI commands.

Commands run through Typer's CliRunner inside a temporary project
directory, with git replaced by the in-memory snapshot store:
- init: register the project
- checkpoint: create, list and restore checkpoints
- rollback: interactive checkpoint selection
- navigate: stage moves, options and history
- resume: detection and the resume workflow

TestRealGitWorkflow repeats the recovery commands against a real git
binary to show that a rollback leaves the pipeline state alone.
"""

import shutil

import pytest
from typer.testing import CliRunner

from conftest import FakeSnapshotStore, add_phase
from pipekeeper import config as config_module
from pipekeeper.cli import app
from pipekeeper.persistence import PhaseStatus, PipekeeperRepository
from pipekeeper.state import Stage
from pipekeeper.vcs import GitManager

PROJECT = "myapp"

ENV_VARS = (
    "PIPEKEEPER_DB_PATH",
    "PIPEKEEPER_VCS_TIMEOUT",
    "PIPEKEEPER_ENFORCE_PREREQUISITES",
    "PIPEKEEPER_MODEL",
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


class FakeGit(FakeSnapshotStore):
    """Snapshot store with the repository checks the CLI uses."""

    def __init__(self):
        super().__init__()
        self.repository = False
        self.dirty = False
        self.excluded = []

    def is_repository(self):
        return self.repository

    def initialize(self):
        self.repository = True

    def has_uncommitted_changes(self):
        return self.dirty

    def exclude(self, path):
        self.excluded.append(path)
        return True

    def commit_all(self, message, metadata=None):
        super().commit_all(message, metadata)
        self.dirty = False


def isolate_config(tmp_path, monkeypatch):
    """Point the global config dir at tmp_path/config and clear env overrides."""
    config_dir = tmp_path / "config"
    monkeypatch.setattr(config_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_dir / "config.json")
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return config_dir


def make_project_dir(tmp_path, monkeypatch, name=PROJECT):
    path = tmp_path / name
    path.mkdir()
    monkeypatch.chdir(path)
    return path


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def git(monkeypatch):
    fake = FakeGit()
    monkeypatch.setattr("pipekeeper.cli.typer_commands.GitManager", lambda *args, **kwargs: fake)
    return fake


@pytest.fixture
def workdir(tmp_path, monkeypatch, git):
    """An empty project directory as the working directory."""
    isolate_config(tmp_path, monkeypatch)
    return make_project_dir(tmp_path, monkeypatch)


@pytest.fixture
def initialized(runner, workdir, git):
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output
    return workdir


def state_db(workdir):
    return workdir.parent / "config" / "state.db"


def open_repo(workdir, db_path=None):
    repo = PipekeeperRepository(db_path or state_db(workdir))
    repo.initialize()
    return repo


def stored_stage(workdir, db_path=None):
    repo = open_repo(workdir, db_path)
    try:
        return repo.get_project(PROJECT).current_stage
    finally:
        repo.close()


class TestInit:
    def test_creates_project_and_repository(self, runner, workdir, git):
        """init registers the project at the init stage and creates a repository."""
        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert "Initialized project 'myapp'" in result.output
        assert "Initialized git repository" in result.output
        assert git.repository
        assert stored_stage(workdir) == Stage.INIT

    def test_state_database_outside_working_tree(self, runner, workdir, git):
        """The default database lives in the config dir, not the project."""
        runner.invoke(app, ["init"])

        assert state_db(workdir).exists()
        assert list(workdir.iterdir()) == []
        assert git.excluded == []

    def test_in_tree_database_is_excluded(self, runner, workdir, git, monkeypatch):
        """A database placed inside the project is kept out of git."""
        db_path = workdir / "data" / "state.db"
        monkeypatch.setenv("PIPEKEEPER_DB_PATH", str(db_path))

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0, result.output
        assert git.excluded == [db_path]

    def test_second_init_keeps_stage(self, runner, initialized, git):
        """Re-running init reports the existing project and leaves its stage."""
        runner.invoke(app, ["navigate", "--stage", "interview"])

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0
        assert "already initialized" in result.output
        assert "Git repository already initialized" in result.output
        assert stored_stage(initialized) == Stage.INTERVIEW

    def test_custom_name(self, runner, workdir):
        """--name sets the display name."""
        runner.invoke(app, ["init", "--name", "My App"])
        repo = open_repo(workdir)
        try:
            assert repo.get_project(PROJECT).name == "My App"
        finally:
            repo.close()

    def test_markup_in_directory_name_is_printed_literally(self, runner, tmp_path, monkeypatch, git):
        """Rich markup in a project id is escaped, not interpreted."""
        isolate_config(tmp_path, monkeypatch)
        make_project_dir(tmp_path, monkeypatch, name="[bold]odd")

        result = runner.invoke(app, ["init"])

        assert result.exit_code == 0, result.output
        assert "Initialized project '[bold]odd'" in result.output


class TestCheckpointCommand:
    """pipekeeper checkpoint"""

    def test_requires_init(self, runner, workdir):
        """Checkpoints need a registered project."""
        result = runner.invoke(app, ["checkpoint", "--name", "x"])
        assert result.exit_code == 1
        assert "pipekeeper init" in result.output

    def test_requires_git(self, runner, initialized, git):
        """Checkpoints need a git repository and create no tag without one."""
        git.repository = False
        result = runner.invoke(app, ["checkpoint", "--name", "x"])
        assert result.exit_code == 1
        assert "not in a git repository" in result.output
        assert git.tags == {}

    def test_create(self, runner, initialized, git):
        """A named checkpoint becomes a tag; a clean tree is not committed."""
        result = runner.invoke(app, ["checkpoint", "-n", "before-refactor"])

        assert result.exit_code == 0, result.output
        assert "Checkpoint created" in result.output
        [tag] = git.tags
        assert tag.startswith("checkpoint-before-refactor-")
        assert git.commits == []

    def test_create_commits_pending_changes(self, runner, initialized, git):
        """Uncommitted work is committed before tagging."""
        git.dirty = True
        runner.invoke(app, ["checkpoint", "-n", "wip"])

        message, metadata = git.commits[0]
        assert message == "pipekeeper checkpoint: wip"
        assert metadata["type"] == "checkpoint"
        assert metadata["project_id"] == PROJECT

    def test_default_name(self, runner, initialized, git):
        """Without --name the checkpoint is named after the current time."""
        runner.invoke(app, ["checkpoint"])
        [tag] = git.tags
        assert tag.startswith("checkpoint-checkpoint-")

    def test_list(self, runner, initialized):
        """--list shows an empty notice, then the created checkpoints."""
        empty = runner.invoke(app, ["checkpoint", "--list"])
        assert "No checkpoints found." in empty.output

        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        listed = runner.invoke(app, ["checkpoint", "-l"])
        assert "Found 1 checkpoint(s)" in listed.output
        assert "alpha" in listed.output

    def test_rollback_by_name_with_yes(self, runner, initialized, git):
        """--rollback NAME --yes restores the tag without prompting."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        [tag] = git.tags

        result = runner.invoke(app, ["checkpoint", "-r", "alpha", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Rolled back to checkpoint 'alpha'" in result.output
        assert git.restored == [tag]

    def test_rollback_needs_typed_yes(self, runner, initialized, git):
        """Only a typed 'yes' confirms a rollback."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])

        declined = runner.invoke(app, ["checkpoint", "-r", "alpha"], input="y\n")
        assert "Rollback cancelled." in declined.output
        assert git.restored == []

        accepted = runner.invoke(app, ["checkpoint", "-r", "alpha"], input="yes\n")
        assert accepted.exit_code == 0
        assert len(git.restored) == 1

    def test_rollback_unknown(self, runner, initialized):
        """An unknown checkpoint name is an error."""
        result = runner.invoke(app, ["checkpoint", "-r", "missing", "--yes"])
        assert result.exit_code == 1
        assert "checkpoint not found" in result.output


class TestRollbackCommand:
    def test_no_checkpoints(self, runner, initialized):
        """Nothing to choose from is not an error."""
        result = runner.invoke(app, ["rollback"])
        assert result.exit_code == 0
        assert "No checkpoints found." in result.output

    def test_select_and_confirm(self, runner, initialized, git):
        """Choosing a number and typing 'yes' restores that checkpoint."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        [tag] = git.tags

        result = runner.invoke(app, ["rollback"], input="1\nyes\n")

        assert result.exit_code == 0, result.output
        assert "Available checkpoints:" in result.output
        assert "Rollback complete!" in result.output
        assert git.restored == [tag]

    def test_invalid_selection_reprompts(self, runner, initialized, git):
        """Out-of-range and non-numeric answers ask again."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        result = runner.invoke(app, ["rollback", "--yes"], input="5\nabc\n1\n")

        assert "Invalid selection" in result.output
        assert "Enter a number" in result.output
        assert len(git.restored) == 1

    def test_quit(self, runner, initialized, git):
        """'q' leaves without restoring."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        result = runner.invoke(app, ["rollback"], input="q\n")
        assert result.exit_code == 0
        assert git.restored == []

    def test_decline(self, runner, initialized, git):
        """Answering 'no' at the confirmation cancels."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        result = runner.invoke(app, ["rollback"], input="1\nno\n")
        assert "Rollback cancelled." in result.output
        assert git.restored == []


class TestNavigateCommand:
    """pipekeeper navigate"""

    def test_move_back_and_forth(self, runner, initialized, git):
        """A one-stage move updates the stage and commits a marker."""
        result = runner.invoke(app, ["navigate", "--stage", "interview"])

        assert result.exit_code == 0, result.output
        assert "Navigated" in result.output
        assert "pipekeeper interview" in result.output
        assert stored_stage(initialized) == Stage.INTERVIEW
        assert git.commits[-1][0].startswith("Navigate from init to interview stage")

    def test_stage_names_are_case_sensitive(self, runner, initialized):
        """Stage names must be lower case."""
        result = runner.invoke(app, ["navigate", "--stage", "Design"])
        assert result.exit_code == 1
        assert "unknown stage" in result.output
        assert stored_stage(initialized) == Stage.INIT

    def test_skip_rejected(self, runner, initialized):
        """Forward moves of more than one stage fail."""
        result = runner.invoke(app, ["navigate", "--stage", "plan"])
        assert result.exit_code == 1
        assert "cannot skip stages" in result.output

    def test_missing_prerequisite(self, runner, initialized):
        """Design cannot be entered without interview data."""
        runner.invoke(app, ["navigate", "--stage", "interview"])
        result = runner.invoke(app, ["navigate", "--stage", "design"])
        assert result.exit_code == 1
        assert "interview data is required" in result.output

    def test_prerequisites_can_be_disabled(self, runner, initialized, monkeypatch):
        """PIPEKEEPER_ENFORCE_PREREQUISITES=false lifts the artifact checks."""
        monkeypatch.setenv("PIPEKEEPER_ENFORCE_PREREQUISITES", "false")
        runner.invoke(app, ["navigate", "--stage", "interview"])
        result = runner.invoke(app, ["navigate", "--stage", "design"])
        assert result.exit_code == 0, result.output
        assert stored_stage(initialized) == Stage.DESIGN

    def test_options(self, runner, initialized):
        """Without --stage the available moves are listed."""
        result = runner.invoke(app, ["navigate"])
        assert "No target stage specified." in result.output
        assert "Current stage:" in result.output
        assert "Next stage: interview" in result.output

        listed = runner.invoke(app, ["navigate", "--list"])
        assert "No target stage specified." not in listed.output
        assert "Current stage:" in listed.output

    def test_history(self, runner, initialized):
        """--history shows recorded moves."""
        empty = runner.invoke(app, ["navigate", "--history"])
        assert "No navigation history recorded." in empty.output

        runner.invoke(app, ["navigate", "--stage", "interview"])
        runner.invoke(app, ["navigate", "--stage", "init"])
        result = runner.invoke(app, ["navigate", "--history"])
        assert result.exit_code == 0
        assert "interview" in result.output

    def test_unknown_project(self, runner, initialized):
        """--project naming an unregistered project fails."""
        result = runner.invoke(app, ["navigate", "--stage", "interview", "--project", "ghost"])
        assert result.exit_code == 1
        assert "project not found" in result.output


class TestResumeCommand:
    """pipekeeper resume"""

    def test_complete_project(self, runner, initialized):
        """A complete project has nothing to resume."""
        repo = open_repo(initialized)
        repo.update_project_stage(PROJECT, Stage.COMPLETE)
        repo.close()

        result = runner.invoke(app, ["resume"])

        assert result.exit_code == 0
        assert "Project is complete" in result.output
        assert "No incomplete work detected." in result.output

    def test_default_resume_shows_hints(self, runner, initialized):
        """A plain resume shows status, checkpoint hints and the model."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        result = runner.invoke(app, ["resume", "--model", "big-model"])

        assert result.exit_code == 0, result.output
        assert "Project Status" in result.output
        assert "Resume options:" in result.output
        assert "alpha" in result.output
        assert "Resume complete" in result.output
        assert "big-model" in result.output

    def test_default_model_from_env(self, runner, initialized, monkeypatch):
        """PIPEKEEPER_MODEL supplies the model when --model is absent."""
        monkeypatch.setenv("PIPEKEEPER_MODEL", "env-model")
        result = runner.invoke(app, ["resume"])
        assert "env-model" in result.output

    def test_from_checkpoint(self, runner, initialized, git):
        """--checkpoint restores the tag before resuming."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        [tag] = git.tags

        result = runner.invoke(app, ["resume", "--checkpoint", "alpha", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Restored from:" in result.output
        assert git.restored == [tag]

    def test_checkpoint_needs_confirmation(self, runner, initialized, git):
        """Resuming from a checkpoint asks first."""
        runner.invoke(app, ["checkpoint", "-n", "alpha"])
        result = runner.invoke(app, ["resume", "--checkpoint", "alpha"], input="no\n")
        assert "Resume cancelled." in result.output
        assert git.restored == []

    def test_stage_override_is_forced(self, runner, initialized):
        """--stage may jump past the ordering rules."""
        result = runner.invoke(app, ["resume", "--stage", "develop"])
        assert result.exit_code == 0, result.output
        assert stored_stage(initialized) == Stage.DEVELOP

    def test_bad_stage(self, runner, initialized):
        """An unknown --stage value fails."""
        result = runner.invoke(app, ["resume", "--stage", "deploy"])
        assert result.exit_code == 1
        assert "unknown stage" in result.output

    def test_restart_stage(self, runner, initialized):
        """Restarting develop warns, asks, then resets in-progress work."""
        repo = open_repo(initialized)
        phase = add_phase(repo, 1, PhaseStatus.IN_PROGRESS, ("in_progress",), project_id=PROJECT)
        repo.update_project_stage(PROJECT, Stage.DEVELOP)
        repo.close()

        declined = runner.invoke(app, ["resume", "--restart-stage"], input="no\n")
        assert "Resume cancelled." in declined.output
        assert "reset to not started" in declined.output

        result = runner.invoke(app, ["resume", "--restart-stage"], input="yes\n")
        assert result.exit_code == 0, result.output
        assert "phase 1: Phase 1" in result.output

        repo = open_repo(initialized)
        try:
            assert repo.get_phase(phase.id).status == PhaseStatus.NOT_STARTED
        finally:
            repo.close()

    def test_restart_outside_develop_loses_nothing(self, runner, initialized):
        """Restarting any other stage warns of no loss and does not prompt."""
        repo = open_repo(initialized)
        phase = add_phase(repo, 1, PhaseStatus.IN_PROGRESS, project_id=PROJECT)
        repo.update_project_stage(PROJECT, Stage.PLAN)
        repo.close()

        result = runner.invoke(app, ["resume", "--restart-stage"])

        assert result.exit_code == 0, result.output
        assert "nothing will be lost" in result.output
        assert "reset to not started" not in result.output
        assert "Type 'yes'" not in result.output
        repo = open_repo(initialized)
        try:
            assert repo.get_phase(phase.id).status == PhaseStatus.IN_PROGRESS
        finally:
            repo.close()

    def test_restart_with_develop_override_warns(self, runner, initialized):
        """The warning follows the stage being resumed, not the stored one."""
        result = runner.invoke(app, ["resume", "--restart-stage", "--stage", "develop"], input="no\n")
        assert "reset to not started" in result.output
        assert "Resume cancelled." in result.output
        assert stored_stage(initialized) == Stage.INIT

    def test_requires_project(self, runner, workdir):
        """Resume fails for an unregistered project."""
        result = runner.invoke(app, ["resume"])
        assert result.exit_code == 1
        assert "project not found" in result.output


@pytest.fixture
def real_workdir(tmp_path, monkeypatch):
    """A project directory driven by the real git binary."""
    isolate_config(tmp_path, monkeypatch)
    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text(
        "[user]\n\tname = Test\n\temail = test@example.com\n"
        "[commit]\n\tgpgsign = false\n"
        "[tag]\n\tgpgsign = false\n"
        "[init]\n\tdefaultBranch = main\n"
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for name in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(name, "Test")
    for name in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(name, "test@example.com")

    path = make_project_dir(tmp_path, monkeypatch)
    (path / "README.md").write_text("one\n")
    return path


def pipeline_state(workdir, db_path=None):
    """Stage, phase and task statuses and checkpoint names as stored."""
    repo = open_repo(workdir, db_path)
    try:
        phases = repo.list_phases(PROJECT)
        return (
            repo.get_project(PROJECT).current_stage,
            [phase.status for phase in phases],
            [task.status for phase in phases for task in repo.list_tasks(phase.id)],
            [checkpoint.name for checkpoint in repo.list_checkpoints(PROJECT)],
        )
    finally:
        repo.close()


def tracked_files(workdir):
    return GitManager(workdir)._run_git(["ls-files"]).stdout.splitlines()


@requires_git
class TestRealGitWorkflow:
    """Recovery commands against a real repository."""

    def invoke(self, runner, args):
        result = runner.invoke(app, args)
        assert result.exit_code == 0, result.output
        return result

    def build_history(self, runner, workdir, db_path=None):
        """init, checkpoint 'start', add work, move to interview, checkpoint 'second'."""
        self.invoke(runner, ["init"])
        self.invoke(runner, ["checkpoint", "-n", "start"])

        repo = open_repo(workdir, db_path)
        add_phase(repo, 1, PhaseStatus.IN_PROGRESS, ("completed", "in_progress"), project_id=PROJECT)
        repo.close()

        (workdir / "README.md").write_text("two\n")
        self.invoke(runner, ["navigate", "--stage", "interview"])
        self.invoke(runner, ["checkpoint", "-n", "second"])

    def test_rollback_keeps_pipeline_state(self, runner, real_workdir):
        """Rolling back reverts files but not stage, phases, tasks or checkpoints."""
        self.build_history(runner, real_workdir)
        before = pipeline_state(real_workdir)
        assert before[0] == Stage.INTERVIEW

        self.invoke(runner, ["checkpoint", "--rollback", "start", "--yes"])

        assert (real_workdir / "README.md").read_text() == "one\n"
        assert pipeline_state(real_workdir) == before
        listed = self.invoke(runner, ["checkpoint", "--list"])
        assert "Found 2 checkpoint(s)" in listed.output
        assert not any("state.db" in path for path in tracked_files(real_workdir))

    def test_resume_from_checkpoint_keeps_pipeline_state(self, runner, real_workdir):
        """resume --checkpoint restores files and resumes at the stored stage."""
        self.build_history(runner, real_workdir)
        self.invoke(runner, ["checkpoint", "--rollback", "start", "--yes"])
        before = pipeline_state(real_workdir)

        result = self.invoke(runner, ["resume", "--checkpoint", "second", "--yes"])

        assert (real_workdir / "README.md").read_text() == "two\n"
        assert "Restored from:" in result.output
        assert pipeline_state(real_workdir) == before

    def test_in_tree_database_survives_rollback(self, runner, real_workdir, monkeypatch):
        """A database kept inside the project is excluded and outlives a reset."""
        db_path = real_workdir / ".pipekeeper" / "state.db"
        monkeypatch.setenv("PIPEKEEPER_DB_PATH", str(db_path))
        self.build_history(runner, real_workdir, db_path)
        before = pipeline_state(real_workdir, db_path)

        self.invoke(runner, ["checkpoint", "--rollback", "start", "--yes"])

        assert tracked_files(real_workdir) == ["README.md"]
        assert pipeline_state(real_workdir, db_path) == before
        assert stored_stage(real_workdir, db_path) == Stage.INTERVIEW
