"""
Diff capture and fingerprinting.

See :mod:`atomc.diff.diff_engine` for diff computation and parsing, and
:mod:`atomc.diff.hash_guard` for the drift-detection fingerprint.
"""

from .diff_engine import (  # noqa: F401
    DiffMode,
    DiffSnapshot,
    capture_snapshot,
    compute_diff,
    diff_files,
)
from .hash_guard import fingerprint  # noqa: F401
