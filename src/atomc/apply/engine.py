"""
Sequential apply engine for commit plans.

:func:`apply_plan` turns a validated plan into real commits, one unit at a
time and in plan order. Before every unit it confirms that the repository
still produces the expected diff: the one the plan was built against for
the first unit, and for later units the diff left behind by the previous
commit. It then stages exactly the unit's files, checks the index holds
nothing else, and commits.

Routine failures (drift, a file outside the snapshot, an unexpected index
state, a failing Git command) are returned in the :class:`ApplyOutcome`
rather than raised. Commits created before a failure stay in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from atomc.diff.diff_engine import DiffMode, compute_diff, diff_files
from atomc.diff.hash_guard import fingerprint
from atomc.plan.models import ApplyResult, ApplyStatus, CommitUnit, ErrorDetail, InputSource
from atomc.vcs.git_client import (
    GitClient,
    GitCommandError,
    GitDecodeError,
    GitError,
    GitIOError,
)


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False

ASSISTED_BY_PREFIX = "Assisted by: "


class ApplyErrorKind(str, Enum):
    DIFF_HASH_MISMATCH = "diff_hash_mismatch"
    HUNKS_NOT_SUPPORTED = "hunks_not_supported"
    PLAN_FILE_MISSING = "plan_file_missing"
    STAGED_FILES_MISMATCH = "staged_files_mismatch"
    STAGED_DIFF_EMPTY = "staged_diff_empty"
    GIT_COMMAND_FAILED = "git_command_failed"
    GIT_IO_ERROR = "git_io_error"
    GIT_OUTPUT_NOT_UTF8 = "git_output_not_utf8"


@dataclass
class ApplyFailure:
    """Structured description of why an apply run stopped."""

    kind: ApplyErrorKind
    message: str
    unit_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_error_detail(self) -> ErrorDetail:
        details = dict(self.details)
        if self.unit_id is not None:
            details["id"] = self.unit_id
        return ErrorDetail(code=self.kind.value, message=self.message, details=details)

    @classmethod
    def from_git_error(cls, error: GitError, unit_id: Optional[str] = None) -> "ApplyFailure":
        details: Dict[str, Any] = {"cmd": error.cmd}
        if isinstance(error, GitCommandError):
            kind = ApplyErrorKind.GIT_COMMAND_FAILED
            details["stderr"] = error.stderr
            details["exit_code"] = error.returncode
        elif isinstance(error, GitIOError):
            kind = ApplyErrorKind.GIT_IO_ERROR
            details["error"] = error.reason
        elif isinstance(error, GitDecodeError):
            kind = ApplyErrorKind.GIT_OUTPUT_NOT_UTF8
        else:
            kind = ApplyErrorKind.GIT_COMMAND_FAILED
        return cls(kind=kind, message=str(error), unit_id=unit_id, details=details)


@dataclass
class ApplyRequest:
    """Everything :func:`apply_plan` needs to commit a plan.

    ``source`` records whether ``diff`` was computed from ``repo`` (and can
    therefore be recomputed for verification) or was handed in by the
    caller. ``expected_diff_hash`` defaults to the fingerprint of ``diff``.
    """

    repo: Path
    plan: List[CommitUnit]
    diff: str
    source: InputSource = InputSource.REPO
    diff_mode: DiffMode = DiffMode.ALL
    include_untracked: bool = False
    expected_diff_hash: Optional[str] = None
    cleanup_on_error: bool = False
    assisted_by: Optional[str] = None


@dataclass
class ApplyOutcome:
    """Per-unit results of an apply run plus the failure that stopped it, if any.

    ``results`` holds one entry per plan unit: ``applied`` for committed
    units, ``failed`` for the unit being processed when the run stopped,
    and ``skipped`` for the units after it.
    """

    results: List[ApplyResult]
    error: Optional[ApplyFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def applied(self) -> List[ApplyResult]:
        return [r for r in self.results if r.status is ApplyStatus.APPLIED]


class _UnitAborted(Exception):
    def __init__(self, failure: ApplyFailure) -> None:
        super().__init__(failure.message)
        self.failure = failure


def _live_fingerprint(request: ApplyRequest, unit_id: Optional[str]) -> str:
    try:
        current = compute_diff(request.repo, request.diff_mode, request.include_untracked)
    except GitError as exc:
        raise _UnitAborted(ApplyFailure.from_git_error(exc, unit_id)) from exc
    return fingerprint(current)


def _verify_diff_hash(request: ApplyRequest, expected: str, unit_id: Optional[str]) -> None:
    if request.source is InputSource.DIFF:
        return
    actual = _live_fingerprint(request, unit_id)
    if actual != expected:
        logger.error("Diff hash mismatch: expected %s, actual %s", expected, actual)
        raise _UnitAborted(
            ApplyFailure(
                kind=ApplyErrorKind.DIFF_HASH_MISMATCH,
                message=f"diff hash mismatch: expected {expected}, actual {actual}",
                unit_id=unit_id,
                details={"expected": expected, "actual": actual},
            )
        )


def _check_unit_against_snapshot(unit: CommitUnit, snapshot_files: Set[str]) -> None:
    if unit.hunks:
        raise _UnitAborted(
            ApplyFailure(
                kind=ApplyErrorKind.HUNKS_NOT_SUPPORTED,
                message=f"plan includes unsupported hunks for commit {unit.id}",
                unit_id=unit.id,
                details={"hunks": [h.to_dict() for h in unit.hunks]},
            )
        )
    for path in unit.files:
        if path not in snapshot_files:
            raise _UnitAborted(
                ApplyFailure(
                    kind=ApplyErrorKind.PLAN_FILE_MISSING,
                    message=f"plan file not found in diff for commit {unit.id}: {path}",
                    unit_id=unit.id,
                    details={"file": path, "diff_files": sorted(snapshot_files)},
                )
            )


def _verify_staged_files(client: GitClient, unit: CommitUnit) -> None:
    staged = client.list_staged_files()
    if not staged:
        raise _UnitAborted(
            ApplyFailure(
                kind=ApplyErrorKind.STAGED_DIFF_EMPTY,
                message=f"staged diff is empty for commit {unit.id}",
                unit_id=unit.id,
                details={"expected": list(unit.files), "actual": []},
            )
        )
    unexpected = sorted(set(staged) - set(unit.files))
    if unexpected:
        raise _UnitAborted(
            ApplyFailure(
                kind=ApplyErrorKind.STAGED_FILES_MISMATCH,
                message=f"staged files do not match plan for commit {unit.id}",
                unit_id=unit.id,
                details={
                    "expected": list(unit.files),
                    "actual": staged,
                    "unexpected": unexpected,
                },
            )
        )


def commit_paragraphs(unit: CommitUnit, assisted_by: Optional[str] = None) -> List[str]:
    """Return the message paragraphs that follow the subject line."""
    paragraphs = list(unit.body)
    if assisted_by:
        paragraphs.append(f"{ASSISTED_BY_PREFIX}{assisted_by}")
    return paragraphs


def _apply_unit(
    client: GitClient,
    request: ApplyRequest,
    unit: CommitUnit,
    snapshot_files: Set[str],
) -> str:
    try:
        _check_unit_against_snapshot(unit, snapshot_files)
        try:
            # reset first so earlier partial staging of these paths is discarded
            client.reset_paths(unit.files)
            client.add_paths(unit.files)
            _verify_staged_files(client, unit)
            client.commit(unit.subject(), commit_paragraphs(unit, request.assisted_by))
            return client.head_commit()
        except GitError as exc:
            raise _UnitAborted(ApplyFailure.from_git_error(exc, unit.id)) from exc
    except _UnitAborted:
        if request.cleanup_on_error:
            try:
                client.reset_paths(unit.files)
            except GitError as cleanup_exc:
                logger.warning("Cleanup after failed commit %s did not complete: %s", unit.id, cleanup_exc)
        raise


def apply_plan(request: ApplyRequest) -> ApplyOutcome:
    """Apply every unit of ``request.plan`` in order.

    Returns
    -------
    ApplyOutcome
        Results for all units and, if the run stopped early, the failure.
        The run stops at the first failure; earlier commits are kept.
    """
    expected = request.expected_diff_hash or fingerprint(request.diff)
    snapshot_files = diff_files(request.diff)
    client = GitClient(request.repo)
    results: List[ApplyResult] = []

    if request.source is InputSource.DIFF:
        logger.warning(
            "Diff was supplied by the caller; skipping repository drift verification for %s",
            request.repo,
        )

    first_id = request.plan[0].id if request.plan else None
    try:
        _verify_diff_hash(request, expected, first_id)
    except _UnitAborted as aborted:
        return _stop(request.plan, results, 0, aborted.failure)

    for index, unit in enumerate(request.plan):
        try:
            _verify_diff_hash(request, expected, unit.id)
            commit_hash = _apply_unit(client, request, unit, snapshot_files)
        except _UnitAborted as aborted:
            return _stop(request.plan, results, index, aborted.failure)
        logger.info("Applied commit %s as %s: %s", unit.id, commit_hash, unit.subject())
        results.append(ApplyResult(id=unit.id, status=ApplyStatus.APPLIED, commit_hash=commit_hash))

        next_index = index + 1
        if request.source is InputSource.REPO and next_index < len(request.plan):
            # the commit just made is the only expected change to the diff
            try:
                expected = _live_fingerprint(request, request.plan[next_index].id)
            except _UnitAborted as aborted:
                return _stop(request.plan, results, next_index, aborted.failure)

    return ApplyOutcome(results=results)


def _stop(
    plan: List[CommitUnit],
    results: List[ApplyResult],
    index: int,
    failure: ApplyFailure,
) -> ApplyOutcome:
    logger.error("Apply stopped at commit %d of %d: %s", index + 1, len(plan), failure.message)
    if index < len(plan):
        results.append(
            ApplyResult(
                id=plan[index].id,
                status=ApplyStatus.FAILED,
                error=failure.to_error_detail(),
            )
        )
        results.extend(
            ApplyResult(id=unit.id, status=ApplyStatus.SKIPPED) for unit in plan[index + 1:]
        )
    return ApplyOutcome(results=results, error=failure)


def planned_results(plan: List[CommitUnit]) -> List[ApplyResult]:
    """Results for a dry run: every unit ``planned``, nothing touched."""
    return [ApplyResult(id=unit.id, status=ApplyStatus.PLANNED) for unit in plan]
