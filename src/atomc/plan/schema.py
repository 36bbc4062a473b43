"""
JSON Schema validation for plan, apply, and error payloads.

The three wire formats are described by JSON Schema 2020-12 documents
shipped under ``atomc/schemas/v1``. A :class:`SchemaRegistry` loads and
compiles each document at most once and hands out the compiled
validator on every later call. Validation collects every structural
violation rather than stopping at the first one.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas" / "v1"


class SchemaKind(str, Enum):
    COMMIT_PLAN = "commit-plan"
    COMMIT_APPLY = "commit-apply"
    ERROR_RESPONSE = "error"

    @property
    def filename(self) -> str:
        return f"{self.value}.json"


class SchemaLoadError(Exception):
    """Raised when a schema document cannot be read or is not a valid schema."""

    pass


@dataclass(frozen=True)
class SchemaViolation:
    """A single structural problem found in a payload.

    ``location`` is a slash-separated path into the payload (``/`` for
    the document root).
    """

    location: str
    reason: str

    def __str__(self) -> str:
        return f"{self.location}: {self.reason}"

    def to_dict(self) -> Dict[str, str]:
        return {"location": self.location, "reason": self.reason}


@dataclass
class SchemaValidationResult:
    ok: bool
    violations: List[SchemaViolation] = field(default_factory=list)


class SchemaRegistry:
    """Memoised registry of compiled schema validators keyed by :class:`SchemaKind`."""

    def __init__(self, schema_dir: Optional[Path] = None) -> None:
        self.schema_dir = Path(schema_dir) if schema_dir is not None else SCHEMA_DIR
        self._validators: Dict[SchemaKind, jsonschema.Draft202012Validator] = {}
        self._lock = threading.Lock()

    def _compile(self, kind: SchemaKind) -> jsonschema.Draft202012Validator:
        path = self.schema_dir / kind.filename
        try:
            schema = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load schema %s: %s", path, exc)
            raise SchemaLoadError(f"Failed to load schema {path.name}: {exc}") from exc
        try:
            jsonschema.Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as exc:
            logger.error("Schema %s is invalid: %s", path, exc.message)
            raise SchemaLoadError(f"Invalid schema {path.name}: {exc.message}") from exc
        logger.debug("Compiled schema %s", path)
        return jsonschema.Draft202012Validator(schema)

    def validator_for(self, kind: SchemaKind) -> jsonschema.Draft202012Validator:
        """Return the compiled validator for ``kind``, compiling it on first use."""
        kind = SchemaKind(kind)
        with self._lock:
            validator = self._validators.get(kind)
            if validator is None:
                validator = self._compile(kind)
                self._validators[kind] = validator
            return validator

    def validate(self, kind: SchemaKind, instance: Any) -> SchemaValidationResult:
        """Validate ``instance`` and return ALL violations, not just the first."""
        validator = self.validator_for(kind)
        violations = [
            SchemaViolation(location=_location(error.absolute_path), reason=error.message)
            for error in validator.iter_errors(instance)
        ]
        violations.sort(key=lambda v: (v.location, v.reason))
        return SchemaValidationResult(ok=not violations, violations=violations)


def _location(path) -> str:
    parts = [str(part) for part in path]
    return "/" + "/".join(parts) if parts else "/"


default_registry = SchemaRegistry()


def validate_schema(
    kind: SchemaKind,
    instance: Any,
    registry: Optional[SchemaRegistry] = None,
) -> SchemaValidationResult:
    """Validate ``instance`` against the schema for ``kind``.

    Uses ``registry`` when given, otherwise the module's default registry.
    """
    return (registry or default_registry).validate(kind, instance)
