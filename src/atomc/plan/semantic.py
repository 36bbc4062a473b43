"""
Semantic validation for commit plans beyond JSON Schema checks.

These rules run over already-parsed :class:`~atomc.plan.models.CommitUnit`
objects, independent of where the plan came from. Violations are
accumulated across every unit; a single error rejects the whole plan,
while warnings are reported alongside an accepted plan.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Set

from atomc.plan.models import CommitUnit

SUMMARY_MIN_CHARS = 50
SUMMARY_MAX_CHARS = 72
BODY_MIN_LINES = 1
BODY_MAX_LINES = 3

_KEBAB_CASE = re.compile(r"[a-z0-9-]+")


class ScopePolicy(str, Enum):
    """How to treat a commit unit without a scope."""

    REQUIRE = "require"
    WARN = "warn"
    ALLOW = "allow"


class ViolationKind(str, Enum):
    EMPTY_ID = "empty_id"
    DUPLICATE_ID = "duplicate_id"
    SUMMARY_LENGTH = "summary_length"
    BODY_LINE_COUNT = "body_line_count"
    BODY_LINE_EMPTY = "body_line_empty"
    SCOPE_EMPTY = "scope_empty"
    SCOPE_MISSING = "scope_missing"
    SCOPE_INVALID = "scope_invalid"


_MESSAGES = {
    ViolationKind.EMPTY_ID: "commit {id} has empty id",
    ViolationKind.DUPLICATE_ID: "commit {id} reuses an id already present in the plan",
    ViolationKind.SUMMARY_LENGTH: "commit {id} summary length {value} outside 50-72 chars",
    ViolationKind.BODY_LINE_COUNT: "commit {id} has {value} body lines (expected 1-3)",
    ViolationKind.BODY_LINE_EMPTY: "commit {id} body line {value} is empty",
    ViolationKind.SCOPE_EMPTY: "commit {id} scope is empty",
    ViolationKind.SCOPE_MISSING: "commit {id} scope is missing",
    ViolationKind.SCOPE_INVALID: "commit {id} scope is not kebab-case",
}


@dataclass(frozen=True)
class SemanticViolation:
    """One rule broken by one commit unit.

    ``value`` carries the measured length, line count, or body line index
    for the kinds where one applies.
    """

    kind: ViolationKind
    unit_id: str
    value: Optional[int] = None

    @property
    def message(self) -> str:
        return _MESSAGES[self.kind].format(id=self.unit_id, value=self.value)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "id": self.unit_id, "value": self.value}


@dataclass
class SemanticReport:
    accepted: bool
    errors: List[SemanticViolation] = field(default_factory=list)
    warnings: List[SemanticViolation] = field(default_factory=list)


def is_kebab_case(value: str) -> bool:
    """Return True for lowercase ASCII letters, digits and inner hyphens."""
    if not value or value.startswith("-") or value.endswith("-"):
        return False
    return _KEBAB_CASE.fullmatch(value) is not None


def _check_unit(
    unit: CommitUnit,
    scope_policy: ScopePolicy,
    seen_ids: Set[str],
    errors: List[SemanticViolation],
    warnings: List[SemanticViolation],
) -> None:
    uid = unit.id
    if not uid.strip():
        errors.append(SemanticViolation(ViolationKind.EMPTY_ID, uid))
    elif uid in seen_ids:
        errors.append(SemanticViolation(ViolationKind.DUPLICATE_ID, uid))
    seen_ids.add(uid)

    # len() counts code points, matching the schema's maxLength semantics
    summary_len = len(unit.summary)
    if not SUMMARY_MIN_CHARS <= summary_len <= SUMMARY_MAX_CHARS:
        errors.append(SemanticViolation(ViolationKind.SUMMARY_LENGTH, uid, summary_len))

    body_len = len(unit.body)
    if not BODY_MIN_LINES <= body_len <= BODY_MAX_LINES:
        errors.append(SemanticViolation(ViolationKind.BODY_LINE_COUNT, uid, body_len))

    for index, line in enumerate(unit.body):
        if not line.strip():
            errors.append(SemanticViolation(ViolationKind.BODY_LINE_EMPTY, uid, index))

    scope = unit.scope
    if scope is None:
        if scope_policy is ScopePolicy.REQUIRE:
            errors.append(SemanticViolation(ViolationKind.SCOPE_MISSING, uid))
        elif scope_policy is ScopePolicy.WARN:
            warnings.append(SemanticViolation(ViolationKind.SCOPE_MISSING, uid))
    elif not scope.strip():
        errors.append(SemanticViolation(ViolationKind.SCOPE_EMPTY, uid))
    elif not is_kebab_case(scope):
        errors.append(SemanticViolation(ViolationKind.SCOPE_INVALID, uid))


def validate_commit_units(
    units: Iterable[CommitUnit],
    scope_policy: ScopePolicy = ScopePolicy.WARN,
) -> SemanticReport:
    """Validate every unit and report accumulated errors and warnings.

    The plan is accepted only when no unit produced an error.
    """
    scope_policy = ScopePolicy(scope_policy)
    errors: List[SemanticViolation] = []
    warnings: List[SemanticViolation] = []
    seen_ids: Set[str] = set()
    for unit in units:
        _check_unit(unit, scope_policy, seen_ids, errors, warnings)
    return SemanticReport(accepted=not errors, errors=errors, warnings=warnings)
