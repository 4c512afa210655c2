"""
Checkpoint Manager

A checkpoint is a named recovery point: an annotated tag in the snapshot
store plus an immutable row in the state database.

Guarantees:
- Two checkpoints created with the same name get distinct IDs and tags
- Rollback reverts the working tree only; stage, phase and task rows
  are left exactly as they were
- Checkpoint history is append-only (delete is a no-op)
- A tag whose database row could not be written is deleted again, or
  logged for manual cleanup if that fails too
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any

from pipekeeper.exceptions import (
    CheckpointNotFoundError,
    InvalidCheckpointError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    VCSError,
)
from pipekeeper.logging import (
    EVENT_CHECKPOINT_CREATED,
    EVENT_CHECKPOINT_ORPHANED,
    EVENT_ROLLBACK,
    log_recovery_event,
)
from pipekeeper.persistence import Checkpoint, PipekeeperRepository
from pipekeeper.vcs import SnapshotStore

logger = logging.getLogger(__name__)

CHECKPOINT_TYPE_MANUAL = "manual"
CHECKPOINT_TYPE_AUTO = "auto"

_stamp_lock = threading.Lock()
_last_stamp = 0


def _unique_stamp() -> int:
    """Nanosecond timestamp, strictly increasing within this process."""
    global _last_stamp
    with _stamp_lock:
        stamp = max(time.time_ns(), _last_stamp + 1)
        _last_stamp = stamp
        return stamp


def sanitize_tag_name(name: str) -> str:
    """
    Reduce a checkpoint name to a tag-safe token.

    Spaces become dashes; ASCII letters, digits, dash and underscore are
    kept; everything else is dropped.
    """
    chars = []
    for ch in name:
        if ch == " ":
            chars.append("-")
        elif ch.isascii() and (ch.isalnum() or ch in "-_"):
            chars.append(ch)
    return "".join(chars)


class CheckpointManager:
    """
    Create, enumerate and roll back checkpoints.

    Usage:
        manager = CheckpointManager(repo, GitManager(project_dir))
        cp = manager.create_checkpoint("myproject", "before refactor")
        ...
        manager.rollback(cp.id)
    """

    def __init__(self, repo: PipekeeperRepository, snapshots: SnapshotStore):
        self.repo = repo
        self.snapshots = snapshots

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_checkpoint(
        self,
        project_id: str,
        name: str,
        metadata: dict[str, Any] | None = None,
    ) -> Checkpoint:
        """
        Tag the current history head and record a checkpoint.

        Args:
            project_id: Project the checkpoint belongs to
            name: Human-readable name (need not be unique)
            metadata: Extra keys, layered over the defaults

        Returns:
            The stored Checkpoint

        Raises:
            ValidationError: If the name is empty
            VCSError: If the tag could not be created (nothing is stored)
            PersistenceError: If the row could not be written after tagging
        """
        if not name or not name.strip():
            raise ValidationError("checkpoint name cannot be empty")

        stamp = _unique_stamp()
        checkpoint_id = f"checkpoint-{project_id}-{stamp}"
        tag_name = f"checkpoint-{sanitize_tag_name(name)}-{stamp}"
        created_at = datetime.now()

        full_metadata = {
            "type": CHECKPOINT_TYPE_MANUAL,
            "project_id": project_id,
            "created_at": created_at.astimezone().isoformat(timespec="seconds"),
        }
        for key, value in (metadata or {}).items():
            full_metadata[str(key)] = str(value)

        try:
            self.snapshots.create(tag_name, f"Checkpoint: {name}")
        except VCSError as e:
            raise VCSError(
                f"failed to create git tag: {e.message}",
                command=e.command,
                output=e.output,
                returncode=e.returncode,
            ) from e

        checkpoint = Checkpoint(
            id=checkpoint_id,
            project_id=project_id,
            name=name,
            vcs_tag=tag_name,
            created_at=created_at,
            metadata=full_metadata,
        )

        try:
            self.repo.save_checkpoint(checkpoint)
        except PersistenceError as e:
            self._discard_orphaned_tag(project_id, tag_name, e)
            raise PersistenceError(
                f"failed to save checkpoint: {e.message}",
                {"checkpoint_id": checkpoint_id, "tag": tag_name},
            ) from e

        logger.info(f"Created checkpoint {checkpoint_id} ({name}) tagged {tag_name}")
        log_recovery_event(
            EVENT_CHECKPOINT_CREATED,
            project_id=project_id,
            checkpoint_id=checkpoint_id,
            vcs_tag=tag_name,
            details={"name": name, "type": full_metadata["type"]},
        )
        return checkpoint

    def _discard_orphaned_tag(self, project_id: str, tag_name: str, cause: Exception) -> None:
        """Delete a tag whose checkpoint row was never written."""
        try:
            self.snapshots.delete(tag_name)
            logger.warning(f"Removed tag {tag_name} after failed checkpoint write: {cause}")
        except VCSError as e:
            logger.error(
                f"Orphaned tag {tag_name} has no checkpoint record; delete it manually: {e}"
            )
            log_recovery_event(
                EVENT_CHECKPOINT_ORPHANED,
                project_id=project_id,
                level=logging.ERROR,
                vcs_tag=tag_name,
                error=str(cause),
                details={"cleanup_error": str(e)},
            )

    def create_auto_checkpoint(self, project_id: str, phase_id: str) -> Checkpoint:
        """
        Checkpoint the completion of a phase.

        The name is ``phase-<number>-<title>``.
        """
        phase = self.repo.get_phase(phase_id)
        name = f"phase-{phase.number}-{phase.title}"
        metadata = {
            "type": CHECKPOINT_TYPE_AUTO,
            "phase_id": phase_id,
            "phase": str(phase.number),
            "title": phase.title,
        }
        return self.create_checkpoint(project_id, name, metadata)

    # =========================================================================
    # READ
    # =========================================================================

    def list_checkpoints(self, project_id: str) -> list[Checkpoint]:
        """List checkpoints for a project, newest first."""
        return self.repo.list_checkpoints(project_id)

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint:
        return self.repo.get_checkpoint(checkpoint_id)

    def get_checkpoint_history(self, project_id: str) -> list[Checkpoint]:
        """Every checkpoint ever created for the project (nothing is ever removed)."""
        return self.repo.list_checkpoints(project_id)

    def find_checkpoint(self, project_id: str, id_or_name: str) -> Checkpoint:
        """
        Look up a checkpoint by ID, falling back to the newest one with that name.

        Raises:
            CheckpointNotFoundError: If neither matches
        """
        try:
            checkpoint = self.repo.get_checkpoint(id_or_name)
            if checkpoint.project_id == project_id:
                return checkpoint
        except CheckpointNotFoundError:
            pass

        for checkpoint in self.repo.list_checkpoints(project_id):
            if checkpoint.name == id_or_name:
                return checkpoint

        raise CheckpointNotFoundError(
            f"checkpoint not found: {id_or_name}",
            {"project_id": project_id},
        )

    # =========================================================================
    # ROLLBACK
    # =========================================================================

    def rollback(self, checkpoint_id: str) -> Checkpoint:
        """
        Hard-reset the working tree to a checkpoint's tag.

        The state database is not touched: stage, phase and task rows keep
        recording how far the project got.

        Returns:
            The checkpoint rolled back to
        """
        checkpoint = self.repo.get_checkpoint(checkpoint_id)

        try:
            self.snapshots.restore(checkpoint.vcs_tag)
        except VCSError as e:
            log_recovery_event(
                EVENT_ROLLBACK,
                project_id=checkpoint.project_id,
                level=logging.ERROR,
                checkpoint_id=checkpoint.id,
                vcs_tag=checkpoint.vcs_tag,
                error=str(e),
            )
            raise VCSError(
                f"failed to reset git to tag {checkpoint.vcs_tag}: {e.message}",
                command=e.command,
                output=e.output,
                returncode=e.returncode,
            ) from e

        logger.info(f"Rolled back {checkpoint.project_id} to {checkpoint.id} ({checkpoint.vcs_tag})")
        log_recovery_event(
            EVENT_ROLLBACK,
            project_id=checkpoint.project_id,
            checkpoint_id=checkpoint.id,
            vcs_tag=checkpoint.vcs_tag,
            details={"name": checkpoint.name},
        )
        return checkpoint

    def rollback_to_latest(self, project_id: str) -> Checkpoint:
        """
        Roll back to the most recently created checkpoint.

        Raises:
            NotFoundError: If the project has no checkpoints
        """
        checkpoints = self.repo.list_checkpoints(project_id)
        if not checkpoints:
            raise NotFoundError(f"no checkpoints found for project {project_id}")

        latest = max(checkpoints, key=lambda cp: cp.created_at)
        return self.rollback(latest.id)

    # =========================================================================
    # VALIDATE / DELETE
    # =========================================================================

    def validate_checkpoint(self, checkpoint_id: str, verify_snapshot: bool = False) -> Checkpoint:
        """
        Check that a checkpoint can be rolled back to.

        Args:
            checkpoint_id: Checkpoint to check
            verify_snapshot: Also confirm the tag still exists in version control

        Raises:
            CheckpointNotFoundError: If the record is missing
            InvalidCheckpointError: If it has no tag, or the tag is gone
        """
        checkpoint = self.repo.get_checkpoint(checkpoint_id)

        if not checkpoint.vcs_tag:
            raise InvalidCheckpointError(
                "checkpoint has no git tag",
                {"checkpoint_id": checkpoint_id},
            )

        if verify_snapshot and not self.snapshots.exists(checkpoint.vcs_tag):
            raise InvalidCheckpointError(
                f"git tag {checkpoint.vcs_tag} no longer exists",
                {"checkpoint_id": checkpoint_id},
            )

        return checkpoint

    def delete_checkpoint(self, checkpoint_id: str) -> None:
        """Keep checkpoint history append-only: always succeeds, removes nothing."""
        logger.debug(f"delete_checkpoint({checkpoint_id}) ignored; checkpoints are never removed")
