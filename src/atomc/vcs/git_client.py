"""
Git client implementation for atomc.

This module wraps the Git operations the diff and apply engines rely on.
Every command runs in the repository root, captures raw bytes and decodes
them strictly as UTF-8, so that the three failure modes (launch failure,
unexpected exit status, undecodable output) surface as distinct
exception types carrying the command line and captured stderr.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Sequence


logger = logging.getLogger(__name__)
# Attach a null handler to avoid logging errors when the root logger is not
# configured. Logs will propagate to the root when configured by the CLI.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False

# Paths in diff headers must match the raw paths status and plans use.
_DIFF = ("-c", "core.quotePath=false", "diff")


class GitError(Exception):
    """Base class for failures of a Git invocation."""

    def __init__(self, message: str, cmd: str) -> None:
        super().__init__(message)
        self.cmd = cmd


class GitCommandError(GitError):
    """Raised when a Git command exits with an unexpected status."""

    def __init__(self, cmd: str, stderr: str, returncode: int) -> None:
        super().__init__(f"git command failed: {cmd}", cmd)
        self.stderr = stderr
        self.returncode = returncode


class GitIOError(GitError):
    """Raised when the Git process cannot be launched."""

    def __init__(self, cmd: str, reason: str) -> None:
        super().__init__(f"git command io error: {cmd}: {reason}", cmd)
        self.reason = reason


class GitDecodeError(GitError):
    """Raised when Git output is not valid UTF-8."""

    def __init__(self, cmd: str) -> None:
        super().__init__(f"git output was not utf-8: {cmd}", cmd)


class GitClient:
    """Client for interacting with a Git repository."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def is_repo(path: Path) -> bool:
        """Return True if the given path is the root of a Git working tree."""
        return (Path(path) / ".git").exists()

    @staticmethod
    def find_repo_root(start: Path) -> Optional[Path]:
        """Find the root of the Git repository starting from ``start``.

        Walk upwards until a ``.git`` entry is found or the filesystem
        root is reached.
        """
        current = Path(start).resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                return None
            current = current.parent

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------
    def _run(
        self,
        args: Sequence[str],
        paths: Sequence[str] = (),
        allow_changes_exit: bool = False,
    ) -> str:
        """Run a Git command in the repository root and return its stdout.

        Parameters
        ----------
        args : Sequence[str]
            Arguments passed to ``git``.
        paths : Sequence[str]
            Extra path arguments appended after ``args``.
        allow_changes_exit : bool
            Treat exit status 1 as success. ``git diff`` uses it to signal
            that changes are present.

        Raises
        ------
        GitIOError
            If the process cannot be started.
        GitCommandError
            If the command exits with an unexpected status.
        GitDecodeError
            If stdout is not valid UTF-8.
        """
        full_cmd = ["git", *args, *paths]
        cmd_string = " ".join(full_cmd)
        logger.debug("Executing Git command: %s", cmd_string)
        try:
            result = subprocess.run(
                full_cmd,
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Failed to launch Git command %s: %s", cmd_string, exc)
            raise GitIOError(cmd_string, str(exc)) from exc

        ok = result.returncode == 0 or (allow_changes_exit and result.returncode == 1)
        if not ok:
            stderr = result.stderr.decode("utf-8", errors="replace")
            logger.error(
                "Git command failed: %s\nEXIT: %s\nSTDERR: %s",
                cmd_string,
                result.returncode,
                stderr,
            )
            raise GitCommandError(cmd_string, stderr, result.returncode)

        try:
            return result.stdout.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.error("Git output of %s was not valid UTF-8", cmd_string)
            raise GitDecodeError(cmd_string) from exc

    # ------------------------------------------------------------------
    # Diffs and status
    # ------------------------------------------------------------------
    def diff_worktree(self) -> str:
        """Diff of the working tree against the index."""
        return self._run(list(_DIFF), allow_changes_exit=True)

    def diff_staged(self) -> str:
        """Diff of the index against HEAD."""
        return self._run([*_DIFF, "--staged"], allow_changes_exit=True)

    def diff_untracked(self, path: str) -> str:
        """Diff an untracked file against an empty file."""
        return self._run(
            [*_DIFF, "--no-index", "--", "/dev/null"],
            paths=[path],
            allow_changes_exit=True,
        )

    def list_untracked_files(self) -> List[str]:
        """Return untracked paths in the order ``git status`` reports them."""
        output = self._run(["status", "--porcelain=v1", "-z", "--untracked-files=all"])
        untracked = []
        for entry in output.split("\0"):
            if entry.startswith("?? "):
                untracked.append(entry[3:])
        return untracked

    def list_staged_files(self) -> List[str]:
        """Return the names of all files currently staged in the index."""
        output = self._run(
            ["diff", "--staged", "--name-only", "-z"], allow_changes_exit=True
        )
        return [entry for entry in output.split("\0") if entry]

    # ------------------------------------------------------------------
    # Staging and committing
    # ------------------------------------------------------------------
    def reset_paths(self, paths: Iterable[str]) -> None:
        """Unstage the given paths, leaving the working tree untouched."""
        paths = list(paths)
        if paths:
            self._run(["reset", "-q", "--"], paths=paths)

    def add_paths(self, paths: Iterable[str]) -> None:
        """Stage the given paths."""
        paths = list(paths)
        if paths:
            self._run(["add", "--"], paths=paths)

    def commit(self, subject: str, paragraphs: Sequence[str] = ()) -> None:
        """Create a commit from the index.

        Each entry of ``paragraphs`` is passed as its own ``-m`` argument,
        so Git separates them with blank lines.
        """
        args = ["commit", "-m", subject]
        for paragraph in paragraphs:
            args.extend(["-m", paragraph])
        self._run(args)

    def head_commit(self) -> str:
        """Resolve HEAD to a full commit hash."""
        return self._run(["rev-parse", "HEAD"]).strip()
