"""
Commit plan models and validation.

:mod:`atomc.plan.models` holds the wire-level data classes,
:mod:`atomc.plan.schema` the JSON Schema stage, and
:mod:`atomc.plan.semantic` the policy checks run on parsed units.
"""

from .models import (  # noqa: F401
    SCHEMA_VERSION,
    ApplyResult,
    ApplyStatus,
    CommitApplyResponse,
    CommitPlan,
    CommitType,
    CommitUnit,
    ErrorDetail,
    ErrorResponse,
    InputMeta,
    InputSource,
    PlanWarning,
)
from .schema import SchemaKind, SchemaRegistry, validate_schema  # noqa: F401
from .semantic import ScopePolicy, validate_commit_units  # noqa: F401
