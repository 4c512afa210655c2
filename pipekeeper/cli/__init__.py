"""
Pipekeeper CLI components.

- typer_commands.py: CLI entry points (init, checkpoint, rollback, navigate, resume)
- display.py: rich rendering and confirmation prompts
"""

from pipekeeper.cli.typer_commands import (
    app,
    checkpoint,
    init,
    navigate,
    resume,
    rollback,
    run,
)

__all__ = [
    "app",
    "run",
    "init",
    "checkpoint",
    "rollback",
    "navigate",
    "resume",
]
