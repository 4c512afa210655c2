"""
Version control adapters.

- SnapshotStore: interface the recovery layer depends on
- GitManager: git CLI implementation with a per-call deadline
"""

from pipekeeper.vcs.base import SnapshotStore
from pipekeeper.vcs.git import GitManager

__all__ = [
    "SnapshotStore",
    "GitManager",
]
