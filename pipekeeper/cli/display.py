"""
Pipekeeper CLI - Rendering

Rich output for checkpoints, navigation and resume results.
All user-supplied text is escaped before it reaches rich markup.
"""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from pipekeeper.persistence import Checkpoint, NavigationEvent
from pipekeeper.recovery import NavigationOptions, NavigationResult, ResumeResult

console = Console()

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# What a working-tree rollback discards and keeps
ROLLBACK_LOSES = [
    "Uncommitted changes",
    "Commits made after this checkpoint",
]
ROLLBACK_KEEPS = [
    "Pipeline state database (stage, phases, tasks)",
    "Checkpoint history",
]
RESTART_LOSES = [
    "Progress on in-progress phases and tasks (reset to not started)",
]
RESTART_KEEPS = [
    "Completed and blocked phases and tasks",
    "Interview data, architecture and DevPlan",
]
RESTART_NOTHING = "Only the develop stage has progress to reset; nothing will be lost."


def print_error(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def show_checkpoint_created(checkpoint: Checkpoint) -> None:
    """Display confirmation for a new checkpoint."""
    console.print(
        Panel.fit(
            f"[bold]{escape(checkpoint.name)}[/bold]\n"
            f"[dim]ID: {escape(checkpoint.id)}[/dim]\n"
            f"[dim]Git Tag: {escape(checkpoint.vcs_tag)}[/dim]\n"
            f"[dim]Created: {checkpoint.created_at.strftime(TIME_FORMAT)}[/dim]",
            title="[bold green]Checkpoint created[/bold green]",
            border_style="green",
        )
    )
    console.print("[dim]Use 'pipekeeper checkpoint --rollback <name>' to restore it[/dim]")


def show_checkpoint_table(checkpoints: list[Checkpoint]) -> None:
    """Numbered table of checkpoints, newest first."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", style="dim", width=3)
    table.add_column("Name", style="cyan")
    table.add_column("Git Tag", style="dim")
    table.add_column("Type", width=8)
    table.add_column("Created", style="dim")

    for i, cp in enumerate(checkpoints, 1):
        table.add_row(
            str(i),
            escape(cp.name),
            escape(cp.vcs_tag),
            escape(cp.metadata.get("type", "-")),
            cp.created_at.strftime(TIME_FORMAT),
        )

    console.print(table)


def show_consequences(title: str, loses: list[str], keeps: list[str]) -> None:
    """List what a destructive operation discards and what it keeps."""
    lines = [f"[bold yellow]{escape(title)}[/bold yellow]", "", "[bold]Will be lost:[/bold]"]
    lines += [f"  [red]-[/red] {escape(item)}" for item in loses]
    lines += ["", "[bold]Will be preserved:[/bold]"]
    lines += [f"  [green]+[/green] {escape(item)}" for item in keeps]
    console.print(Panel("\n".join(lines), border_style="yellow", title="[bold]Warning[/bold]"))


def confirm_destructive() -> bool:
    """Require the operator to type 'yes'."""
    answer = Prompt.ask("Type 'yes' to continue", default="no")
    return answer.strip().lower() == "yes"


def select_checkpoint(checkpoints: list[Checkpoint]) -> Checkpoint | None:
    """
    Prompt for a checkpoint by number.

    Returns:
        Selected checkpoint, or None if the operator quits
    """
    while True:
        choice = Prompt.ask("Select checkpoint number to roll back to (or 'q' to quit)")

        if choice.strip().lower() in ("q", "quit"):
            return None

        try:
            idx = int(choice)
            if 1 <= idx <= len(checkpoints):
                return checkpoints[idx - 1]
            console.print(f"[red]Invalid selection. Choose 1-{len(checkpoints)}[/red]")
        except ValueError:
            console.print("[red]Enter a number or q to quit[/red]")


def show_navigation_result(result: NavigationResult) -> None:
    console.print(f"[bold green]Navigated[/bold green] {result.from_stage} -> [bold]{result.to_stage}[/bold]")

    if result.preserved_work:
        console.print("\n[bold]Preserved work:[/bold]")
        for item in result.preserved_work:
            console.print(f"  • {escape(item)}")

    if result.regenerated_artifacts:
        console.print("\n[bold]Will need regeneration (if modified):[/bold]")
        for item in result.regenerated_artifacts:
            console.print(f"  • {escape(item)}")

    console.print(f"\n[bold]Next:[/bold] {escape(result.next_action)}")


def show_navigation_options(options: NavigationOptions) -> None:
    console.print(f"[bold]Current stage:[/bold] [cyan]{options.current_stage}[/cyan]")

    if options.next_stage is not None:
        console.print(f"[bold]Next stage:[/bold] {options.next_stage}")

    if options.can_go_back:
        console.print("[bold]Can go back to:[/bold]")
        for stage in options.can_go_back:
            console.print(f"  • {stage}")

    console.print("\n[dim]Usage: pipekeeper navigate --stage <stage-name>[/dim]")


def show_navigation_history(events: list[NavigationEvent]) -> None:
    if not events:
        console.print("[dim]No navigation history recorded.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", style="dim", width=3)
    table.add_column("From")
    table.add_column("To", style="cyan")
    table.add_column("When", style="dim")
    table.add_column("Reason")

    for i, event in enumerate(events, 1):
        table.add_row(
            str(i),
            str(event.from_stage),
            str(event.to_stage),
            event.created_at.strftime(TIME_FORMAT),
            escape(event.reason or "-"),
        )

    console.print(table)


def show_resume_summary(summary: str) -> None:
    console.print(
        Panel(
            escape(summary.rstrip()),
            title="[bold cyan]Project Status[/bold cyan]",
            border_style="cyan",
        )
    )


def show_resume_hints(checkpoints: list[Checkpoint]) -> None:
    """Explain the resume flags when none were given."""
    console.print("[bold]Resume options:[/bold]")
    console.print("  • Continue from current state (default)")
    if checkpoints:
        console.print("  • Resume from checkpoint (use --checkpoint <id or name>)")
        for i, cp in enumerate(checkpoints, 1):
            console.print(
                f"      {i}. {escape(cp.name)} [dim](ID: {escape(cp.id)}) - "
                f"{cp.created_at.strftime('%Y-%m-%d %H:%M')}[/dim]"
            )
    console.print("  • Restart current stage (use --restart-stage)")
    console.print("  • Jump to specific stage (use --stage <name>)")
    console.print()


def show_resume_result(result: ResumeResult) -> None:
    lines = [f"[bold]Stage:[/bold] {result.stage}"]
    if result.phase_id:
        lines.append(f"[bold]Phase:[/bold] {escape(result.phase_id)}")
    if result.restored_from != "current":
        lines.append(f"[bold]Restored from:[/bold] {escape(result.restored_from)}")
    if result.model_selection:
        lines.append(f"[bold]Model:[/bold] {escape(result.model_selection)}")
    lines.append("")
    lines.append(f"[bold]Next:[/bold] {escape(result.next_action)}")

    console.print(
        Panel(
            "\n".join(lines),
            title="[bold green]Resume complete[/bold green]",
            border_style="green",
        )
    )
