"""
Snapshot Store Interface

A snapshot is a named point in the project's version-control history.
Restoring one reverts the working tree only; pipeline state in the
database is never touched at this layer.
"""

from abc import ABC, abstractmethod


class SnapshotStore(ABC):
    """Create, restore and enumerate named working-tree snapshots."""

    @abstractmethod
    def create(self, name: str, message: str) -> None:
        """Create a snapshot of the current history head."""

    @abstractmethod
    def restore(self, name: str) -> None:
        """Hard-reset the working tree to a snapshot."""

    @abstractmethod
    def list(self) -> list[str]:
        """Return every snapshot name."""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove a snapshot. Used only to undo a half-created checkpoint."""

    def exists(self, name: str) -> bool:
        """Check whether a snapshot with this name exists."""
        return name in self.list()

    def commit_all(self, message: str, metadata: dict[str, str] | None = None) -> None:
        """Record every working-tree change. No-op for stores without commits."""
        return None
