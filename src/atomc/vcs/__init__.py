"""
Version control system (VCS) integration.

This package contains the :class:`GitClient` used to compute diffs,
stage files, and create commits, together with the structured error
types raised when a Git invocation fails.
"""

from .git_client import (  # noqa: F401
    GitClient,
    GitCommandError,
    GitDecodeError,
    GitError,
    GitIOError,
)
