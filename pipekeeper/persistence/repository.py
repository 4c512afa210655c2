"""
Pipekeeper Repository - Database access layer

Provides all database operations for the pipeline state store.
Single connection per repository instance, with context manager support.

Error contract:
- Lookups of a keyed entity raise a NotFoundError subclass when absent
- Any SQLite failure is wrapped in PersistenceError

Concurrency:
- SQLite in WAL mode; one repository per CLI invocation
- No locking beyond what SQLite itself provides
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from pipekeeper.exceptions import (
    CheckpointNotFoundError,
    NotFoundError,
    PersistenceError,
    PhaseNotFoundError,
    ProjectNotFoundError,
    TaskNotFoundError,
)
from pipekeeper.persistence.models import (
    Architecture,
    Blocker,
    Checkpoint,
    InterviewData,
    NavigationEvent,
    Phase,
    PhaseProgress,
    PhaseStatus,
    ProgressStats,
    # Models
    Project,
    Task,
    TaskStatus,
    # Helpers
    now_iso,
    to_json,
)
from pipekeeper.state import Stage

logger = logging.getLogger(__name__)


class PipekeeperRepository:
    """
    Repository for all pipeline state persistence operations.

    Usage:
        repo = PipekeeperRepository(config.database_path)
        repo.initialize()

        project = repo.get_or_create_project("myproject")
        repo.update_project_stage(project.id, Stage.INTERVIEW)

        # Use in context manager for auto-cleanup
        with PipekeeperRepository(path) as repo:
            ...
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._initialized = False

    def __enter__(self) -> PipekeeperRepository:
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get database connection, initializing if needed."""
        if self._conn is None:
            self.initialize()
        return self._conn  # type: ignore

    def initialize(self) -> None:
        """
        Initialize database connection and schema.

        Creates database file and parent directories if they don't exist.
        Applies schema if not already present.
        """
        if self._initialized and self._conn:
            return

        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(
                self.db_path,
                isolation_level=None,  # Autocommit mode, we use explicit transactions
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA synchronous=NORMAL")

            self._apply_schema()
        except (sqlite3.Error, OSError) as e:
            self.close()
            raise PersistenceError(f"failed to open state store: {e}", {"path": str(self.db_path)}) from e

        self._initialized = True
        logger.info(f"Initialized state database at {self.db_path}")

    def _apply_schema(self) -> None:
        """Apply the database schema from schema.sql."""
        schema_path = Path(__file__).parent / "schema.sql"

        if not schema_path.exists():
            logger.error(f"Schema file not found: {schema_path}")
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        with open(schema_path) as f:
            schema_sql = f.read()

        # CREATE IF NOT EXISTS makes this idempotent
        self._conn.executescript(schema_sql)  # type: ignore
        logger.debug("Database schema applied")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._initialized = False

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """
        Execute operations in a transaction.

        Usage:
            with repo.transaction() as cursor:
                cursor.execute(...)
        """
        cursor = self.conn.cursor()
        try:
            cursor.execute("BEGIN")
            yield cursor
            cursor.execute("COMMIT")
        except Exception:
            cursor.execute("ROLLBACK")
            raise
        finally:
            cursor.close()

    @contextmanager
    def _guard(self, action: str) -> Generator[None, None, None]:
        """Wrap SQLite failures as PersistenceError("failed to <action>: ...")."""
        try:
            yield
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to {action}: {e}") from e

    def _execute(self, action: str, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._guard(action):
            cursor = self.conn.cursor()
            cursor.execute(sql, params)
            return cursor

    # =========================================================================
    # PROJECT OPERATIONS
    # =========================================================================

    def create_project(self, project: Project) -> Project:
        """Insert a new project row."""
        self._execute(
            "create project",
            """INSERT INTO projects (id, name, created_at, current_stage, current_phase_id)
               VALUES (?, ?, ?, ?, ?)""",
            project.to_row(),
        )
        logger.info(f"Created project {project.id} at stage {project.current_stage}")
        return project

    def get_or_create_project(self, project_id: str, name: str | None = None) -> Project:
        """
        Get existing project by ID or create a new one at the INIT stage.

        Args:
            project_id: Project identifier (usually the directory name)
            name: Display name, defaults to the identifier
        """
        try:
            return self.get_project(project_id)
        except ProjectNotFoundError:
            return self.create_project(Project(id=project_id, name=name or project_id))

    def get_project(self, project_id: str) -> Project:
        """Get project by ID."""
        cursor = self._execute(
            "get project",
            """SELECT id, name, created_at, current_stage, current_phase_id
               FROM projects WHERE id = ?""",
            (project_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise ProjectNotFoundError(f"project not found: {project_id}")
        return Project.from_row(row)

    def list_projects(self) -> list[Project]:
        """List all projects, oldest first."""
        cursor = self._execute(
            "list projects",
            """SELECT id, name, created_at, current_stage, current_phase_id
               FROM projects ORDER BY created_at""",
        )
        return [Project.from_row(row) for row in cursor.fetchall()]

    def update_project_stage(self, project_id: str, stage: Stage) -> None:
        """Set the current stage of a project."""
        stage = Stage.parse(stage)
        cursor = self._execute(
            "update project stage",
            "UPDATE projects SET current_stage = ? WHERE id = ?",
            (stage.value, project_id),
        )
        if cursor.rowcount == 0:
            raise ProjectNotFoundError(f"project not found: {project_id}")
        logger.debug(f"Project {project_id} stage -> {stage}")

    def update_project_phase(self, project_id: str, phase_id: str | None) -> None:
        """Set the current phase of a project."""
        cursor = self._execute(
            "update project phase",
            "UPDATE projects SET current_phase_id = ? WHERE id = ?",
            (phase_id, project_id),
        )
        if cursor.rowcount == 0:
            raise ProjectNotFoundError(f"project not found: {project_id}")

    # =========================================================================
    # ARTIFACT OPERATIONS (interview data, architecture)
    # =========================================================================

    def save_interview_data(
        self,
        project_id: str,
        data: dict[str, Any],
        completed_at: datetime | None = None,
    ) -> None:
        """Save (or replace) the interview data document for a project."""
        self._execute(
            "save interview data",
            """INSERT INTO interview_data (project_id, data, completed_at)
               VALUES (?, ?, ?)
               ON CONFLICT(project_id) DO UPDATE SET
                   data = excluded.data,
                   completed_at = excluded.completed_at""",
            (project_id, to_json(data), completed_at.isoformat() if completed_at else None),
        )

    def get_interview_data(self, project_id: str) -> InterviewData:
        """Get the interview data document for a project."""
        cursor = self._execute(
            "get interview data",
            "SELECT project_id, data, completed_at FROM interview_data WHERE project_id = ?",
            (project_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"interview data not found for project: {project_id}")
        return InterviewData.from_row(row)

    def save_architecture(self, project_id: str, content: str) -> None:
        """Save (or replace) the architecture document for a project."""
        self._execute(
            "save architecture",
            """INSERT INTO architectures (project_id, content, created_at)
               VALUES (?, ?, ?)
               ON CONFLICT(project_id) DO UPDATE SET
                   content = excluded.content,
                   created_at = excluded.created_at""",
            (project_id, content, now_iso()),
        )

    def get_architecture(self, project_id: str) -> Architecture:
        """Get the architecture document for a project."""
        cursor = self._execute(
            "get architecture",
            "SELECT project_id, content, created_at FROM architectures WHERE project_id = ?",
            (project_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"architecture not found for project: {project_id}")
        return Architecture.from_row(row)

    # =========================================================================
    # PHASE OPERATIONS
    # =========================================================================

    _PHASE_COLUMNS = (
        "id, project_id, number, title, content, status, created_at, started_at, completed_at"
    )

    def save_phase(self, phase: Phase) -> Phase:
        """Insert or update a phase."""
        self._execute(
            "save phase",
            f"""INSERT INTO phases ({self._PHASE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    number = excluded.number,
                    title = excluded.title,
                    content = excluded.content,
                    status = excluded.status,
                    started_at = excluded.started_at,
                    completed_at = excluded.completed_at""",
            phase.to_row(),
        )
        return phase

    def get_phase(self, phase_id: str) -> Phase:
        """Get phase by ID."""
        cursor = self._execute(
            "get phase",
            f"SELECT {self._PHASE_COLUMNS} FROM phases WHERE id = ?",
            (phase_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise PhaseNotFoundError(f"phase not found: {phase_id}")
        return Phase.from_row(row)

    def list_phases(self, project_id: str) -> list[Phase]:
        """List phases for a project in phase-number order."""
        cursor = self._execute(
            "list phases",
            f"SELECT {self._PHASE_COLUMNS} FROM phases WHERE project_id = ? ORDER BY number",
            (project_id,),
        )
        return [Phase.from_row(row) for row in cursor.fetchall()]

    def update_phase_status(self, phase_id: str, status: PhaseStatus) -> None:
        """
        Update the status of a phase.

        Stamps started_at on first IN_PROGRESS and completed_at on COMPLETED.
        """
        status = PhaseStatus(status)
        now = now_iso()
        if status == PhaseStatus.IN_PROGRESS:
            sql = "UPDATE phases SET status = ?, started_at = COALESCE(started_at, ?) WHERE id = ?"
            params: tuple = (status.value, now, phase_id)
        elif status == PhaseStatus.COMPLETED:
            sql = "UPDATE phases SET status = ?, completed_at = ? WHERE id = ?"
            params = (status.value, now, phase_id)
        else:
            sql = "UPDATE phases SET status = ? WHERE id = ?"
            params = (status.value, phase_id)

        cursor = self._execute("update phase status", sql, params)
        if cursor.rowcount == 0:
            raise PhaseNotFoundError(f"phase not found: {phase_id}")

    # =========================================================================
    # TASK OPERATIONS
    # =========================================================================

    _TASK_COLUMNS = "id, phase_id, number, description, status, started_at, completed_at"

    def save_task(self, task: Task) -> Task:
        """Insert or update a task."""
        self._execute(
            "save task",
            f"""INSERT INTO tasks ({self._TASK_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    number = excluded.number,
                    description = excluded.description,
                    status = excluded.status,
                    started_at = excluded.started_at,
                    completed_at = excluded.completed_at""",
            task.to_row(),
        )
        return task

    def get_task(self, task_id: str) -> Task:
        """Get task by ID."""
        cursor = self._execute(
            "get task",
            f"SELECT {self._TASK_COLUMNS} FROM tasks WHERE id = ?",
            (task_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise TaskNotFoundError(f"task not found: {task_id}")
        return Task.from_row(row)

    def list_tasks(self, phase_id: str) -> list[Task]:
        """List tasks for a phase in task-number order."""
        cursor = self._execute(
            "list tasks",
            f"SELECT {self._TASK_COLUMNS} FROM tasks WHERE phase_id = ? ORDER BY number",
            (phase_id,),
        )
        return [Task.from_row(row) for row in cursor.fetchall()]

    def list_tasks_by_project(self, project_id: str) -> list[Task]:
        """List every task of every phase of a project in one query."""
        cursor = self._execute(
            "list tasks for project",
            """SELECT t.id, t.phase_id, t.number, t.description, t.status,
                      t.started_at, t.completed_at
               FROM tasks t
               JOIN phases p ON t.phase_id = p.id
               WHERE p.project_id = ?
               ORDER BY p.number, t.number""",
            (project_id,),
        )
        return [Task.from_row(row) for row in cursor.fetchall()]

    def update_task_status(self, task_id: str, status: TaskStatus) -> None:
        """
        Update the status of a task.

        Stamps started_at on first IN_PROGRESS and completed_at on COMPLETED.
        """
        status = TaskStatus(status)
        now = now_iso()
        if status == TaskStatus.IN_PROGRESS:
            sql = "UPDATE tasks SET status = ?, started_at = COALESCE(started_at, ?) WHERE id = ?"
            params: tuple = (status.value, now, task_id)
        elif status == TaskStatus.COMPLETED:
            sql = "UPDATE tasks SET status = ?, completed_at = ? WHERE id = ?"
            params = (status.value, now, task_id)
        else:
            sql = "UPDATE tasks SET status = ? WHERE id = ?"
            params = (status.value, task_id)

        cursor = self._execute("update task status", sql, params)
        if cursor.rowcount == 0:
            raise TaskNotFoundError(f"task not found: {task_id}")

    # =========================================================================
    # CHECKPOINT OPERATIONS
    # =========================================================================

    _CHECKPOINT_COLUMNS = "id, project_id, name, git_tag, created_at, metadata"

    def save_checkpoint(self, checkpoint: Checkpoint) -> Checkpoint:
        """
        Insert a checkpoint record.

        Checkpoints are immutable: saving an existing ID fails.
        """
        self._execute(
            "save checkpoint",
            f"INSERT INTO checkpoints ({self._CHECKPOINT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
            checkpoint.to_row(),
        )
        return checkpoint

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint:
        """Get checkpoint by ID."""
        cursor = self._execute(
            "get checkpoint",
            f"SELECT {self._CHECKPOINT_COLUMNS} FROM checkpoints WHERE id = ?",
            (checkpoint_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise CheckpointNotFoundError(f"checkpoint not found: {checkpoint_id}")
        return Checkpoint.from_row(row)

    def list_checkpoints(self, project_id: str) -> list[Checkpoint]:
        """List checkpoints for a project, newest first."""
        cursor = self._execute(
            "list checkpoints",
            f"""SELECT {self._CHECKPOINT_COLUMNS} FROM checkpoints
                WHERE project_id = ?
                ORDER BY created_at DESC, id DESC""",
            (project_id,),
        )
        return [Checkpoint.from_row(row) for row in cursor.fetchall()]

    # =========================================================================
    # BLOCKER OPERATIONS
    # =========================================================================

    def save_blocker(self, blocker: Blocker) -> Blocker:
        """Insert or update a blocker."""
        self._execute(
            "save blocker",
            """INSERT INTO blockers (id, task_id, description, resolution, created_at, resolved_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   description = excluded.description,
                   resolution = excluded.resolution,
                   resolved_at = excluded.resolved_at""",
            blocker.to_row(),
        )
        return blocker

    def resolve_blocker(self, blocker_id: str, resolution: str) -> None:
        """Mark a blocker as resolved."""
        cursor = self._execute(
            "resolve blocker",
            "UPDATE blockers SET resolution = ?, resolved_at = ? WHERE id = ?",
            (resolution, now_iso(), blocker_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"blocker not found: {blocker_id}")

    def list_active_blockers(self, project_id: str) -> list[Blocker]:
        """List unresolved blockers across all tasks of a project."""
        cursor = self._execute(
            "list active blockers",
            """SELECT b.id, b.task_id, b.description, b.resolution, b.created_at, b.resolved_at
               FROM blockers b
               JOIN tasks t ON b.task_id = t.id
               JOIN phases p ON t.phase_id = p.id
               WHERE p.project_id = ? AND b.resolved_at IS NULL
               ORDER BY b.created_at DESC""",
            (project_id,),
        )
        return [Blocker.from_row(row) for row in cursor.fetchall()]

    # =========================================================================
    # NAVIGATION HISTORY
    # =========================================================================

    def record_navigation(
        self,
        project_id: str,
        from_stage: Stage,
        to_stage: Stage,
        reason: str | None = None,
    ) -> NavigationEvent:
        """Append a stage move to the navigation history."""
        event = NavigationEvent(
            project_id=project_id,
            from_stage=Stage.parse(from_stage),
            to_stage=Stage.parse(to_stage),
            reason=reason,
        )
        cursor = self._execute(
            "record navigation",
            """INSERT INTO navigation_history (project_id, from_stage, to_stage, created_at, reason)
               VALUES (?, ?, ?, ?, ?)""",
            (
                event.project_id,
                event.from_stage.value,
                event.to_stage.value,
                event.created_at.isoformat(),
                event.reason,
            ),
        )
        event.id = cursor.lastrowid
        return event

    def list_navigation_history(self, project_id: str) -> list[NavigationEvent]:
        """List navigation events for a project, oldest first."""
        cursor = self._execute(
            "list navigation history",
            """SELECT id, project_id, from_stage, to_stage, created_at, reason
               FROM navigation_history
               WHERE project_id = ?
               ORDER BY id""",
            (project_id,),
        )
        return [NavigationEvent.from_row(row) for row in cursor.fetchall()]

    # =========================================================================
    # KEY/VALUE CONFIG
    # =========================================================================

    def set_config(self, key: str, value: str) -> None:
        """Set a key/value entry."""
        self._execute(
            "set config",
            """INSERT INTO config (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET
                   value = excluded.value,
                   updated_at = excluded.updated_at""",
            (key, value, now_iso()),
        )

    def get_config(self, key: str) -> str:
        """Get a key/value entry."""
        cursor = self._execute("get config", "SELECT value FROM config WHERE key = ?", (key,))
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"config key not found: {key}")
        return row[0]

    # =========================================================================
    # PROGRESS
    # =========================================================================

    def calculate_progress(self, project_id: str) -> ProgressStats:
        """
        Calculate overall project progress.

        Remaining time is estimated from the average elapsed time per
        completed task.
        """
        project = self.get_project(project_id)
        elapsed = datetime.now() - project.created_at

        stats = ProgressStats(
            current_stage=project.current_stage,
            current_phase_id=project.current_phase_id,
            started_at=project.created_at,
            elapsed=elapsed,
        )

        phases = self.list_phases(project_id)
        stats.total_phases = len(phases)
        for phase in phases:
            if phase.status == PhaseStatus.COMPLETED:
                stats.completed_phases += 1
            elif phase.status == PhaseStatus.IN_PROGRESS:
                stats.in_progress_phases += 1
            elif phase.status == PhaseStatus.BLOCKED:
                stats.blocked_phases += 1
            else:
                stats.pending_phases += 1

        tasks = self.list_tasks_by_project(project_id)
        stats.total_tasks = len(tasks)
        for task in tasks:
            if task.status == TaskStatus.COMPLETED:
                stats.completed_tasks += 1
            elif task.status == TaskStatus.IN_PROGRESS:
                stats.in_progress_tasks += 1
            elif task.status == TaskStatus.BLOCKED:
                stats.blocked_tasks += 1
            elif task.status == TaskStatus.SKIPPED:
                stats.skipped_tasks += 1
            else:
                stats.pending_tasks += 1

        if stats.total_tasks > 0:
            stats.completion_percentage = stats.completed_tasks / stats.total_tasks * 100

        if stats.completed_tasks > 0:
            per_task = elapsed / stats.completed_tasks
            stats.estimated_remaining = per_task * (stats.total_tasks - stats.completed_tasks)

        return stats

    def get_phase_progress(self, phase_id: str) -> PhaseProgress:
        """Calculate progress for a single phase."""
        phase = self.get_phase(phase_id)
        tasks = self.list_tasks(phase_id)

        progress = PhaseProgress(
            phase_id=phase.id,
            phase_number=phase.number,
            phase_title=phase.title,
            status=phase.status,
            total_tasks=len(tasks),
        )
        for task in tasks:
            if task.status == TaskStatus.COMPLETED:
                progress.completed_tasks += 1
            elif task.status == TaskStatus.IN_PROGRESS:
                progress.in_progress_tasks += 1
            elif task.status == TaskStatus.BLOCKED:
                progress.blocked_tasks += 1

        if progress.total_tasks > 0:
            progress.percentage = progress.completed_tasks / progress.total_tasks * 100

        return progress
