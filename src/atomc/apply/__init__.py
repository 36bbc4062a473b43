"""
Plan application.

See :mod:`atomc.apply.engine` for the staging, verification, and commit
loop.
"""

from .engine import (  # noqa: F401
    ApplyErrorKind,
    ApplyFailure,
    ApplyOutcome,
    ApplyRequest,
    apply_plan,
    planned_results,
)
