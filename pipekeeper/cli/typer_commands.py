"""
Pipekeeper CLI - Typer Commands

Entry points for the recovery workflow:
  init        register the project in the state database
  checkpoint  create, list or restore checkpoints
  rollback    pick a checkpoint interactively and restore it
  navigate    move between pipeline stages
  resume      continue after an interruption
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import NoReturn

import typer
from rich.markup import escape

from pipekeeper.cli.display import (
    RESTART_KEEPS,
    RESTART_LOSES,
    RESTART_NOTHING,
    ROLLBACK_KEEPS,
    ROLLBACK_LOSES,
    confirm_destructive,
    console,
    print_error,
    select_checkpoint,
    show_checkpoint_created,
    show_checkpoint_table,
    show_consequences,
    show_navigation_history,
    show_navigation_options,
    show_navigation_result,
    show_resume_hints,
    show_resume_result,
    show_resume_summary,
)
from pipekeeper.config import PipekeeperConfig, load_config
from pipekeeper.exceptions import PipekeeperError, ProjectNotFoundError, VCSError
from pipekeeper.logging import configure_console_logging
from pipekeeper.persistence import PipekeeperRepository
from pipekeeper.recovery import (
    CheckpointManager,
    PrerequisiteRegistry,
    ResumeController,
    ResumeOptions,
    StageNavigator,
)
from pipekeeper.state import Stage, next_action
from pipekeeper.vcs import GitManager

logger = logging.getLogger(__name__)

# Typer app for CLI
app = typer.Typer(
    name="pipekeeper",
    help="Pipeline state and recovery: checkpoints, rollback, stage navigation and resume",
    add_completion=False,
    no_args_is_help=True,
)


@dataclass
class Services:
    """Everything a command needs, wired for one project directory."""

    config: PipekeeperConfig
    repo: PipekeeperRepository
    git: GitManager
    checkpoints: CheckpointManager
    navigator: StageNavigator
    resumer: ResumeController


@contextmanager
def open_services() -> Generator[Services, None, None]:
    """Load config and open the state database for the working directory."""
    config = load_config()
    repo = PipekeeperRepository(config.database_path)
    try:
        repo.initialize()
        git = GitManager(config.project_dir, timeout=config.vcs_timeout_seconds)
        _keep_database_untracked(config, git)
        checkpoints = CheckpointManager(repo, git)
        navigator = StageNavigator(
            repo,
            git,
            PrerequisiteRegistry(repo, enabled=config.enforce_prerequisites),
        )
        yield Services(
            config=config,
            repo=repo,
            git=git,
            checkpoints=checkpoints,
            navigator=navigator,
            resumer=ResumeController(repo, checkpoints, navigator),
        )
    finally:
        repo.close()


def _keep_database_untracked(config: PipekeeperConfig, git: GitManager) -> None:
    """Exclude a database kept inside the project from commits and resets."""
    if config.database_in_project and git.is_repository():
        git.exclude(config.database_path)


def _require_project(services: Services, project_id: str) -> None:
    try:
        services.repo.get_project(project_id)
    except ProjectNotFoundError as e:
        raise ProjectNotFoundError(
            f"project not found: {project_id}. Please run 'pipekeeper init' first"
        ) from e


def _fail(error: PipekeeperError) -> NoReturn:
    logger.debug(f"Command failed: {error!r}")
    print_error(str(error))
    raise typer.Exit(1)


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """
    Pipeline state and recovery.

    Tracks a project through init, interview, design, plan, review, develop
    and complete, with git-backed checkpoints.
    """
    configure_console_logging(verbose)


@app.command()
def init(
    name: str = typer.Option(None, "--name", help="Project display name (defaults to the directory name)"),
) -> None:
    """Register the current directory as a project."""
    try:
        with open_services() as services:
            project_id = services.config.default_project_id
            try:
                project = services.repo.get_project(project_id)
                console.print(
                    f"[yellow]Project '{escape(project.id)}' already initialized "
                    f"(stage: {project.current_stage})[/yellow]"
                )
            except ProjectNotFoundError:
                project = services.repo.get_or_create_project(project_id, name)
                console.print(f"[green]Initialized project '{escape(project.id)}'[/green]")

            if services.git.is_repository():
                console.print("[dim]Git repository already initialized[/dim]")
            else:
                services.git.initialize()
                _keep_database_untracked(services.config, services.git)
                console.print("[green]Initialized git repository[/green]")

            console.print(f"\n[bold]Next:[/bold] {next_action(Stage.INTERVIEW)}")
    except PipekeeperError as e:
        _fail(e)


@app.command()
def checkpoint(
    name: str = typer.Option(None, "--name", "-n", help="Checkpoint name"),
    list_all: bool = typer.Option(False, "--list", "-l", help="List all checkpoints"),
    rollback_to: str = typer.Option(None, "--rollback", "-r", help="Roll back to a checkpoint (by name or ID)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Create, list, or roll back to checkpoints."""
    try:
        with open_services() as services:
            project_id = services.config.default_project_id
            _require_project(services, project_id)

            if rollback_to:
                _restore_checkpoint(services, project_id, rollback_to, yes)
            elif list_all:
                _list_checkpoints(services, project_id)
            else:
                _create_checkpoint(services, project_id, name)
    except PipekeeperError as e:
        _fail(e)


def _create_checkpoint(services: Services, project_id: str, name: str | None) -> None:
    if not name:
        name = f"checkpoint-{datetime.now().strftime('%Y%m%d-%H%M%S')}"

    if not services.git.is_repository():
        raise VCSError("not in a git repository. Checkpoints require git to track state")

    if services.git.has_uncommitted_changes():
        console.print("[dim]Committing current changes...[/dim]")
        services.git.commit_all(
            f"pipekeeper checkpoint: {name}",
            {
                "type": "checkpoint",
                "project_id": project_id,
                "created_at": datetime.now().astimezone().isoformat(timespec="seconds"),
            },
        )

    show_checkpoint_created(services.checkpoints.create_checkpoint(project_id, name))


def _list_checkpoints(services: Services, project_id: str) -> None:
    checkpoints = services.checkpoints.list_checkpoints(project_id)
    if not checkpoints:
        console.print("[yellow]No checkpoints found.[/yellow]")
        console.print("[dim]Use 'pipekeeper checkpoint --name <name>' to create one[/dim]")
        return

    console.print(f"\n[bold]Found {len(checkpoints)} checkpoint(s)[/bold]\n")
    show_checkpoint_table(checkpoints)


def _restore_checkpoint(services: Services, project_id: str, id_or_name: str, yes: bool) -> None:
    target = services.checkpoints.find_checkpoint(project_id, id_or_name)

    show_consequences(
        f"This will reset your working directory to checkpoint '{target.name}' ({target.vcs_tag})",
        ROLLBACK_LOSES,
        ROLLBACK_KEEPS,
    )
    if not yes and not confirm_destructive():
        console.print("[dim]Rollback cancelled.[/dim]")
        return

    services.checkpoints.rollback(target.id)
    console.print(f"[green]Rolled back to checkpoint '{escape(target.name)}'[/green]")


@app.command()
def rollback(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Choose a checkpoint and roll the working tree back to it."""
    try:
        with open_services() as services:
            project_id = services.config.default_project_id
            _require_project(services, project_id)

            checkpoints = services.checkpoints.list_checkpoints(project_id)
            if not checkpoints:
                console.print("[yellow]No checkpoints found.[/yellow]")
                return

            console.print("\n[bold]Available checkpoints:[/bold]")
            show_checkpoint_table(checkpoints)

            target = select_checkpoint(checkpoints)
            if target is None:
                return

            show_consequences(
                f"You are about to roll back to '{target.name}'",
                ROLLBACK_LOSES,
                ROLLBACK_KEEPS,
            )
            if not yes and not confirm_destructive():
                console.print("[dim]Rollback cancelled.[/dim]")
                return

            services.checkpoints.rollback(target.id)
            console.print("[green]Rollback complete![/green]")
    except PipekeeperError as e:
        _fail(e)


@app.command()
def navigate(
    stage: str = typer.Option(None, "--stage", help="Target stage (init, interview, design, plan, review, develop, complete)"),
    project: str = typer.Option(None, "--project", help="Project ID (defaults to current directory)"),
    list_options: bool = typer.Option(False, "--list", help="List available navigation options"),
    history: bool = typer.Option(False, "--history", help="Show recorded stage moves"),
) -> None:
    """Move between pipeline stages."""
    try:
        with open_services() as services:
            project_id = project or services.config.default_project_id

            if history:
                show_navigation_history(services.navigator.get_navigation_history(project_id))
                return

            if list_options or not stage:
                if not stage and not list_options:
                    console.print("[dim]No target stage specified.[/dim]\n")
                show_navigation_options(services.navigator.get_navigation_options(project_id))
                return

            target = Stage.parse(stage)
            console.print(f"[dim]Navigating to {target} stage...[/dim]")
            show_navigation_result(services.navigator.navigate_to_stage(project_id, target))
    except PipekeeperError as e:
        _fail(e)


@app.command()
def resume(
    from_checkpoint: str = typer.Option(None, "--checkpoint", help="Resume from a checkpoint (ID or name)"),
    restart_stage: bool = typer.Option(False, "--restart-stage", help="Restart the current stage from the beginning"),
    stage: str = typer.Option(None, "--stage", help="Resume at a specific stage"),
    model: str = typer.Option(None, "--model", help="Model to use when resuming"),
    project: str = typer.Option(None, "--project", help="Project ID (defaults to current directory)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
) -> None:
    """Resume work from where it left off."""
    try:
        target_stage = Stage.parse(stage) if stage else None

        with open_services() as services:
            project_id = project or services.config.default_project_id

            info = services.resumer.detect_incomplete_work(project_id)
            show_resume_summary(info.summary)

            if not info.has_incomplete_work:
                console.print("[green]No incomplete work detected.[/green]")
                return

            checkpoint_id = None
            if from_checkpoint:
                checkpoint_id = services.checkpoints.find_checkpoint(project_id, from_checkpoint).id
            elif not restart_stage and target_stage is None:
                show_resume_hints(services.resumer.list_available_checkpoints(project_id))

            if checkpoint_id:
                show_consequences(
                    f"Resuming from checkpoint '{from_checkpoint}' resets the working directory",
                    ROLLBACK_LOSES,
                    ROLLBACK_KEEPS,
                )
            resets_work = restart_stage and (target_stage or info.current_stage) == Stage.DEVELOP
            if resets_work:
                show_consequences(
                    f"Restarting the {Stage.DEVELOP} stage",
                    RESTART_LOSES,
                    RESTART_KEEPS,
                )
            elif restart_stage:
                console.print(f"[dim]{RESTART_NOTHING}[/dim]")
            if (checkpoint_id or resets_work) and not yes and not confirm_destructive():
                console.print("[dim]Resume cancelled.[/dim]")
                return

            result = services.resumer.resume(
                ResumeOptions(
                    project_id=project_id,
                    from_checkpoint=checkpoint_id,
                    restart_stage=restart_stage,
                    stage=target_stage,
                    selected_model=model or services.config.default_model or None,
                )
            )
            show_resume_result(result)
    except PipekeeperError as e:
        _fail(e)


def run() -> None:
    """Entry point wrapper that invokes the Typer app."""
    app()


if __name__ == "__main__":
    run()
