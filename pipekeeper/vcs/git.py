"""
Git Operations

Wraps the git binary for checkpoint snapshots:
- Annotated tags as snapshots
- Hard reset to a tag for rollback
- Commit-all for stage navigation markers

Every call runs with a deadline so a hung git process cannot hang
the command that invoked it.
"""

import logging
import subprocess
from pathlib import Path

from pipekeeper.exceptions import ValidationError, VCSError
from pipekeeper.vcs.base import SnapshotStore

logger = logging.getLogger(__name__)

# Porcelain status prefixes that indicate an unresolved merge
CONFLICT_PREFIXES = ("UU ", "AA ", "DD ", "AU ", "UA ", "DU ", "UD ")


class GitManager(SnapshotStore):
    """
    Git operations via the git CLI.

    Snapshots are annotated tags; restoring one is ``git reset --hard <tag>``.
    """

    def __init__(self, repo_path: str | Path = ".", timeout: int = 60):
        """
        Initialize git operations.

        Args:
            repo_path: Working tree the commands run in
            timeout: Seconds before any single git invocation is abandoned
        """
        self.repo_path = Path(repo_path)
        self.timeout = timeout

    def _run_git(
        self,
        args: list[str],
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a git command with the configured deadline."""
        cmd = ["git"] + args

        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_path,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise VCSError("git CLI not found", command=cmd) from e
        except subprocess.TimeoutExpired as e:
            output = e.output if isinstance(e.output, str) else ""
            raise VCSError(
                f"git command timed out after {self.timeout}s",
                command=cmd,
                output=output,
            ) from e

        if check and result.returncode != 0:
            raise VCSError(
                f"git {args[0]} failed",
                command=cmd,
                output=result.stdout or "",
                returncode=result.returncode,
            )

        return result

    # Repository

    def is_repository(self) -> bool:
        """Check if the working directory is inside a git repository."""
        result = self._run_git(["rev-parse", "--git-dir"], check=False)
        if result.returncode == 0:
            return True
        if result.returncode == 128:
            return False
        raise VCSError(
            "failed to check if directory is a repository",
            command=["git", "rev-parse", "--git-dir"],
            output=result.stdout or "",
            returncode=result.returncode,
        )

    def initialize(self) -> None:
        """Initialize a new repository."""
        self._run_git(["init"])

    def get_status(self) -> str:
        """Return ``git status --porcelain`` output."""
        return self._run_git(["status", "--porcelain"]).stdout

    def has_uncommitted_changes(self) -> bool:
        """Check for staged, unstaged or untracked changes."""
        return self.get_status().strip() != ""

    def get_changed_files(self) -> list[str]:
        """List paths with uncommitted changes."""
        files = []
        for line in self.get_status().splitlines():
            if len(line) > 3:
                files.append(line[3:].strip())
        return files

    def detect_conflicts(self) -> list[str]:
        """List paths with unresolved merge conflicts."""
        return [
            line[3:].strip()
            for line in self.get_status().splitlines()
            if line.startswith(CONFLICT_PREFIXES)
        ]

    def get_current_branch(self) -> str:
        """Return the current branch name."""
        return self._run_git(["rev-parse", "--abbrev-ref", "HEAD"]).stdout.strip()

    def exclude(self, path: str | Path) -> bool:
        """
        Keep a file and its siblings with the same prefix out of commits.

        Appends an anchored pattern such as ``/data/state.db*`` to
        ``.git/info/exclude``, which also covers SQLite's ``-wal`` and
        ``-shm`` files.

        Returns:
            True if a pattern was added, False if the path lies outside the
            working tree or is already excluded
        """
        top = Path(self._run_git(["rev-parse", "--show-toplevel"]).stdout.strip()).resolve()
        try:
            relative = Path(path).resolve().relative_to(top)
        except ValueError:
            return False

        pattern = f"/{relative.as_posix()}*"
        exclude_file = Path(self._run_git(["rev-parse", "--git-path", "info/exclude"]).stdout.strip())
        if not exclude_file.is_absolute():
            exclude_file = self.repo_path / exclude_file

        try:
            existing = exclude_file.read_text() if exclude_file.exists() else ""
            if pattern in existing.splitlines():
                return False
            exclude_file.parent.mkdir(parents=True, exist_ok=True)
            with open(exclude_file, "a") as f:
                if existing and not existing.endswith("\n"):
                    f.write("\n")
                f.write(pattern + "\n")
        except OSError as e:
            raise VCSError(f"failed to update {exclude_file}: {e}") from e

        logger.info(f"Excluded {pattern} from git")
        return True

    # Commits

    def commit_all(self, message: str, metadata: dict[str, str] | None = None) -> None:
        """
        Stage everything and commit.

        Metadata is appended to the message as ``key: value`` lines.
        Does nothing when the tree is clean.
        """
        if not message:
            raise ValidationError("commit message cannot be empty")

        if not self.has_uncommitted_changes():
            logger.debug("Working tree clean, nothing to commit")
            return

        full_message = message
        if metadata:
            lines = "\n".join(f"{key}: {value}" for key, value in metadata.items())
            full_message = f"{message}\n\n{lines}"

        self._run_git(["add", "-A"])
        self._run_git(["commit", "-m", full_message])
        logger.info(f"Committed working tree: {message.splitlines()[0]}")

    # Snapshots (tags)

    def create(self, name: str, message: str) -> None:
        """Create an annotated tag at HEAD."""
        if not name:
            raise ValidationError("tag name cannot be empty")

        args = ["tag", "-a", name, "-m", message or name]
        self._run_git(args)
        logger.info(f"Created tag {name}")

    def restore(self, name: str) -> None:
        """Hard-reset the working tree to a tag."""
        if not name:
            raise ValidationError("tag name cannot be empty")

        self._run_git(["reset", "--hard", name])
        logger.info(f"Reset working tree to tag {name}")

    def list(self) -> list[str]:
        """List all tags."""
        output = self._run_git(["tag", "-l"]).stdout.strip()
        if not output:
            return []
        return output.splitlines()

    def exists(self, name: str) -> bool:
        """Check whether a tag exists."""
        result = self._run_git(["rev-parse", "-q", "--verify", f"refs/tags/{name}"], check=False)
        return result.returncode == 0

    def delete(self, name: str) -> None:
        """Delete a tag."""
        self._run_git(["tag", "-d", name])
        logger.info(f"Deleted tag {name}")
