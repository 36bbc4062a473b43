"""
Data models for commit plans and apply results.

The :class:`CommitUnit` represents one planned atomic commit: its
Conventional Commit type, optional scope, summary, body lines, and the
exact files it must contain. A :class:`CommitPlan` is the ordered list of
units produced by a plan generator, and :class:`CommitApplyResponse`
pairs a plan with one :class:`ApplyResult` per unit.

The ``from_dict`` constructors expect payloads that already passed the
schema stage in :mod:`atomc.plan.schema`; they do not re-check shapes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from atomc.diff.diff_engine import DiffMode

SCHEMA_VERSION = "v1"


class CommitType(str, Enum):
    FEAT = "feat"
    FIX = "fix"
    REFACTOR = "refactor"
    STYLE = "style"
    DOCS = "docs"
    TEST = "test"
    CHORE = "chore"
    BUILD = "build"
    PERF = "perf"
    CI = "ci"


class InputSource(str, Enum):
    """Where the diff behind a plan came from."""

    REPO = "repo"
    DIFF = "diff"


class ApplyStatus(str, Enum):
    PLANNED = "planned"
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class Hunk:
    file: str
    header: str
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Hunk":
        return cls(file=data["file"], header=data["header"], id=data.get("id"))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"file": self.file, "header": self.header}
        if self.id is not None:
            out["id"] = self.id
        return out


@dataclass
class CommitUnit:
    """Representation of one planned commit.

    Attributes
    ----------
    id : str
        Identifier of the unit within its plan.
    type : CommitType
        The Conventional Commit type.
    scope : Optional[str]
        Kebab-case scope, or ``None`` for a global change.
    summary : str
        Subject summary, 50 to 72 characters.
    body : List[str]
        One to three body lines, each written as its own paragraph.
    files : List[str]
        Repository-relative paths the commit must contain.
    hunks : List[Hunk]
        Reserved for partial-file staging; must be empty at apply time.
    """

    id: str
    type: CommitType
    summary: str
    body: List[str]
    files: List[str]
    scope: Optional[str] = None
    hunks: List[Hunk] = field(default_factory=list)

    def subject(self) -> str:
        """Return the commit subject line for this unit."""
        if self.scope is not None:
            return f"{self.type.value}[{self.scope}]: {self.summary}"
        return f"{self.type.value}: {self.summary}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitUnit":
        return cls(
            id=data["id"],
            type=CommitType(data["type"]),
            scope=data.get("scope"),
            summary=data["summary"],
            body=list(data["body"]),
            files=list(data["files"]),
            hunks=[Hunk.from_dict(h) for h in data.get("hunks", [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "scope": self.scope,
            "summary": self.summary,
            "body": list(self.body),
            "files": list(self.files),
            "hunks": [h.to_dict() for h in self.hunks],
        }


@dataclass
class PlanWarning:
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanWarning":
        return cls(code=data["code"], message=data["message"], details=data.get("details"))

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


@dataclass
class InputMeta:
    source: InputSource
    diff_mode: Optional[DiffMode] = None
    include_untracked: Optional[bool] = None
    diff_hash: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InputMeta":
        mode = data.get("diff_mode")
        return cls(
            source=InputSource(data["source"]),
            diff_mode=DiffMode(mode) if mode is not None else None,
            include_untracked=data.get("include_untracked"),
            diff_hash=data.get("diff_hash"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "diff_mode": self.diff_mode.value if self.diff_mode is not None else None,
            "include_untracked": self.include_untracked,
            "diff_hash": self.diff_hash,
        }


@dataclass
class ErrorDetail:
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorDetail":
        return cls(code=data["code"], message=data["message"], details=data.get("details"))

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


@dataclass
class ApplyResult:
    id: str
    status: ApplyStatus
    commit_hash: Optional[str] = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApplyResult":
        error = data.get("error")
        return cls(
            id=data["id"],
            status=ApplyStatus(data["status"]),
            commit_hash=data.get("commit_hash"),
            error=ErrorDetail.from_dict(error) if error is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "commit_hash": self.commit_hash,
            "error": self.error.to_dict() if self.error is not None else None,
        }


def _plan_fields_to_dict(
    schema_version: str,
    request_id: Optional[str],
    warnings: Optional[List[PlanWarning]],
    input_meta: Optional[InputMeta],
    plan: List[CommitUnit],
) -> Dict[str, Any]:
    out: Dict[str, Any] = {"schema_version": schema_version}
    if request_id is not None:
        out["request_id"] = request_id
    if warnings:
        out["warnings"] = [w.to_dict() for w in warnings]
    if input_meta is not None:
        out["input"] = input_meta.to_dict()
    out["plan"] = [unit.to_dict() for unit in plan]
    return out


@dataclass
class CommitPlan:
    """Ordered list of commit units plus request metadata."""

    plan: List[CommitUnit]
    schema_version: str = SCHEMA_VERSION
    request_id: Optional[str] = None
    warnings: Optional[List[PlanWarning]] = None
    input: Optional[InputMeta] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommitPlan":
        warnings = data.get("warnings")
        input_meta = data.get("input")
        return cls(
            schema_version=data["schema_version"],
            request_id=data.get("request_id"),
            warnings=[PlanWarning.from_dict(w) for w in warnings] if warnings is not None else None,
            input=InputMeta.from_dict(input_meta) if input_meta is not None else None,
            plan=[CommitUnit.from_dict(unit) for unit in data["plan"]],
        )

    def to_dict(self) -> Dict[str, Any]:
        return _plan_fields_to_dict(
            self.schema_version, self.request_id, self.warnings, self.input, self.plan
        )


@dataclass
class CommitApplyResponse:
    """A plan together with the per-unit outcome of applying it."""

    plan: List[CommitUnit]
    results: List[ApplyResult]
    schema_version: str = SCHEMA_VERSION
    request_id: Optional[str] = None
    warnings: Optional[List[PlanWarning]] = None
    input: Optional[InputMeta] = None

    @classmethod
    def from_plan(cls, plan: CommitPlan, results: List[ApplyResult]) -> "CommitApplyResponse":
        return cls(
            plan=plan.plan,
            results=results,
            schema_version=plan.schema_version,
            request_id=plan.request_id,
            warnings=plan.warnings,
            input=plan.input,
        )

    def to_dict(self) -> Dict[str, Any]:
        out = _plan_fields_to_dict(
            self.schema_version, self.request_id, self.warnings, self.input, self.plan
        )
        out["results"] = [result.to_dict() for result in self.results]
        return out


@dataclass
class ErrorResponse:
    error: ErrorDetail
    schema_version: str = SCHEMA_VERSION
    request_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"schema_version": self.schema_version}
        if self.request_id is not None:
            out["request_id"] = self.request_id
        out["error"] = self.error.to_dict()
        return out
