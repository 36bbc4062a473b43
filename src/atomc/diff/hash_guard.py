"""Content fingerprints used to detect drift between a diff snapshot and the repository."""

from __future__ import annotations

import hashlib

HASH_SCHEME = "sha256"


def fingerprint(text: str) -> str:
    """Return a stable ``"<scheme>:<hex>"`` token for the given diff text.

    Two tokens are equal exactly when the UTF-8 bytes of the inputs are
    equal. The token only detects accidental drift; it makes no security
    claim.
    """
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"{HASH_SCHEME}:{digest}"
