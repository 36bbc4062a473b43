"""
Diff computation for atomc.

This module produces the unified diff text a commit plan is built
against. The text is assembled from up to three kinds of parts (working
tree changes, staged changes, and untracked files diffed against an
empty file) and is later fingerprinted by :mod:`atomc.diff.hash_guard`
so that the apply engine can detect drift.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional, Set, Tuple

from atomc.diff.hash_guard import fingerprint
from atomc.vcs.git_client import GitClient


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False

DIFF_HEADER_PREFIX = "diff --git "
NULL_DEVICE = "/dev/null"


class DiffMode(str, Enum):
    """Which pending changes a diff covers."""

    WORKTREE = "worktree"
    STAGED = "staged"
    ALL = "all"


@dataclass(frozen=True)
class DiffSnapshot:
    """Diff text captured at one point in time together with how it was produced."""

    text: str
    mode: DiffMode
    include_untracked: bool
    token: str = field(init=False)
    files: FrozenSet[str] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "token", fingerprint(self.text))
        object.__setattr__(self, "files", frozenset(diff_files(self.text)))


def _push_if_non_empty(parts: List[str], diff: str) -> None:
    if diff.strip():
        parts.append(diff)


def compute_diff(repo: Path, mode: DiffMode, include_untracked: bool) -> str:
    """Compute the diff text for ``repo`` in the requested mode.

    In ``all`` mode the working tree part comes first, then the staged
    part. Untracked files, when requested, are appended afterwards in the
    order the status scan reports them. Blank parts are dropped and the
    remaining parts are joined with a newline.

    Raises
    ------
    atomc.vcs.git_client.GitError
        Any of its subclasses, propagated unchanged from the Git layer.
    """
    client = GitClient(repo)
    mode = DiffMode(mode)
    parts: List[str] = []

    if mode is DiffMode.WORKTREE:
        _push_if_non_empty(parts, client.diff_worktree())
    elif mode is DiffMode.STAGED:
        _push_if_non_empty(parts, client.diff_staged())
    else:
        worktree = client.diff_worktree()
        staged = client.diff_staged()
        _push_if_non_empty(parts, worktree)
        _push_if_non_empty(parts, staged)

    if include_untracked:
        for path in client.list_untracked_files():
            _push_if_non_empty(parts, client.diff_untracked(path))

    logger.debug(
        "Computed %s diff for %s (untracked=%s, %d part(s))",
        mode.value,
        repo,
        include_untracked,
        len(parts),
    )
    return "\n".join(parts)


def capture_snapshot(repo: Path, mode: DiffMode, include_untracked: bool) -> DiffSnapshot:
    """Compute the diff for ``repo`` and wrap it in an immutable snapshot."""
    mode = DiffMode(mode)
    return DiffSnapshot(
        text=compute_diff(repo, mode, include_untracked),
        mode=mode,
        include_untracked=include_untracked,
    )


_C_ESCAPES = {"a": "\a", "b": "\b", "t": "\t", "n": "\n", "v": "\v", "f": "\f", "r": "\r", '"': '"', "\\": "\\"}


def _unquote_c_path(token: str) -> str:
    """Decode a path git wrapped in double quotes with C-style escapes.

    Octal escapes are raw bytes, so the result is re-decoded as UTF-8.
    """
    body = token[1:-1] if len(token) >= 2 and token.endswith('"') else token[1:]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            if nxt in "01234567":
                out.append(int(body[i + 1:i + 4], 8) & 0xFF)
                i += 4
                continue
            out.extend(_C_ESCAPES.get(nxt, nxt).encode("utf-8"))
            i += 2
            continue
        out.extend(ch.encode("utf-8"))
        i += 1
    return out.decode("utf-8", errors="replace")


def _read_quoted(text: str) -> int:
    """Return the index just past the quoted token that opens ``text``."""
    i = 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
        elif text[i] == '"':
            return i + 1
        else:
            i += 1
    return len(text)


def _split_header(rest: str) -> Tuple[Optional[str], Optional[str]]:
    if rest.startswith('"'):
        end = _read_quoted(rest)
        return rest[:end], rest[end:].strip() or None
    if ' "b/' in rest:
        a_path, b_path = rest.rsplit(' "b/', 1)
        return a_path, '"b/' + b_path
    if " b/" in rest:
        a_path, b_path = rest.rsplit(" b/", 1)
        return a_path, "b/" + b_path
    tokens = rest.split()
    return (tokens[0] if tokens else None), (tokens[1] if len(tokens) > 1 else None)


def _normalize_diff_path(a_path: Optional[str], b_path: Optional[str]) -> Optional[str]:
    candidate = b_path or a_path
    if not candidate:
        return None
    if candidate.startswith('"'):
        candidate = _unquote_c_path(candidate)
    if candidate.startswith(("a/", "b/")):
        stripped = candidate[2:]
    else:
        stripped = candidate
    if not stripped or stripped == NULL_DEVICE:
        return None
    return stripped


def diff_files(diff: str) -> Set[str]:
    """Return the set of files touched by ``diff``.

    File identity comes from ``diff --git a/X b/X`` headers. The
    post-image path is preferred, quoted paths are decoded, and the
    null-device sentinel is ignored.
    """
    files: Set[str] = set()
    for line in diff.splitlines():
        if not line.startswith(DIFF_HEADER_PREFIX):
            continue
        a_path, b_path = _split_header(line[len(DIFF_HEADER_PREFIX):])
        path = _normalize_diff_path(a_path, b_path)
        if path is not None:
            files.add(path)
    return files
