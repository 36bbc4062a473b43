"""
Configuration loader for atomc.

Settings are resolved from four layers, later layers winning:

1. built-in defaults (:class:`ResolvedConfig`),
2. a JSON configuration file,
3. ``LOCAL_COMMIT_*`` environment variables,
4. overrides passed by the CLI.

The configuration file is taken from the ``--config`` option, else from
``$LOCAL_COMMIT_AGENT_CONFIG``, else from the per-user default location.
An explicitly named file must exist; the default file is optional.

If a file is malformed or a value has the wrong type, a
:class:`ConfigError` is raised naming the offending key.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from atomc.diff.diff_engine import DiffMode
from atomc.plan.semantic import ScopePolicy


logger = logging.getLogger(__name__)
# Attach a null handler to avoid "No handler" warnings or logging errors in
# environments where the root logger may be closed. When the CLI configures
# logging, root handlers are added and messages become visible.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False

CONFIG_PATH_ENV = "LOCAL_COMMIT_AGENT_CONFIG"
ENV_PREFIX = "LOCAL_COMMIT_"
CONFIG_FILENAME = "config.json"

RUNTIME_OLLAMA = "ollama"
RUNTIME_LLAMA_CPP = "llama.cpp"
_RUNTIME_ALIASES = {
    "ollama": RUNTIME_OLLAMA,
    "llama.cpp": RUNTIME_LLAMA_CPP,
    "llama_cpp": RUNTIME_LLAMA_CPP,
    "llamacpp": RUNTIME_LLAMA_CPP,
}
_TRUE_VALUES = {"true", "1", "yes", "y"}
_FALSE_VALUES = {"false", "0", "no", "n"}


class ConfigError(Exception):
    """Raised when configuration cannot be read or contains invalid values."""

    pass


@dataclass
class ResolvedConfig:
    model: str = "deepseek-coder"
    runtime: str = RUNTIME_OLLAMA
    ollama_url: str = "http://localhost:11434"
    max_tokens: int = 2048
    temperature: float = 0.2
    llm_timeout_secs: int = 60
    max_diff_bytes: int = 2_000_000
    diff_mode: DiffMode = DiffMode.ALL
    include_untracked: bool = True
    log_diff: bool = False
    scope_policy: ScopePolicy = ScopePolicy.WARN


_FIELD_NAMES = [f.name for f in fields(ResolvedConfig)]


def _get_config_directory() -> Path:
    """Return the per-user directory holding ``config.json``."""
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "atomc"
    return home / ".config" / "atomc"


def default_config_path() -> Path:
    return _get_config_directory() / CONFIG_FILENAME


# ---------------------------------------------------------------------------
# Value coercion shared by the file and environment layers
# ---------------------------------------------------------------------------
def _parse_runtime(value: Any) -> str:
    if isinstance(value, str) and value.lower() in _RUNTIME_ALIASES:
        return _RUNTIME_ALIASES[value.lower()]
    raise ValueError(f"unknown runtime {value!r}")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_non_negative_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, str):
        value = int(value.strip())
    if not isinstance(value, int) or value < 0:
        raise ValueError(f"not a non-negative integer: {value!r}")
    return value


def _parse_positive_int(value: Any) -> int:
    value = _parse_non_negative_int(value)
    if value == 0:
        raise ValueError("must be greater than zero")
    return value


def _parse_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, str):
        return float(value.strip())
    if not isinstance(value, (int, float)):
        raise ValueError(f"not a number: {value!r}")
    return float(value)


def _parse_str(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"not a string: {value!r}")
    return value


_PARSERS = {
    "model": _parse_str,
    "runtime": _parse_runtime,
    "ollama_url": _parse_str,
    "max_tokens": _parse_non_negative_int,
    "temperature": _parse_float,
    "llm_timeout_secs": _parse_positive_int,
    "max_diff_bytes": _parse_non_negative_int,
    "diff_mode": DiffMode,
    "include_untracked": _parse_bool,
    "log_diff": _parse_bool,
    "scope_policy": ScopePolicy,
}


def _coerce(key: str, value: Any, origin: str) -> Any:
    try:
        return _PARSERS[key](value)
    except ValueError as exc:
        raise ConfigError(f"Invalid value for '{key}' in {origin}: {exc}") from exc


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------
def load_config_file(path: Path, required: bool) -> Dict[str, Any]:
    """Read and validate a JSON configuration file.

    Returns an empty mapping when ``path`` does not exist and the file is
    not ``required``.
    """
    if not path.exists():
        if required:
            logger.error("Configuration file '%s' does not exist", path)
            raise ConfigError(f"Config file not found: {path}")
        logger.debug("No configuration file at %s; using defaults", path)
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read or parse configuration file: %s", exc)
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in _PARSERS:
            logger.warning("Ignoring unknown configuration key '%s' in %s", key, path)
            continue
        values[key] = _coerce(key, value, str(path))
    logger.debug("Loaded configuration from: %s", path)
    return values


def load_env_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect ``LOCAL_COMMIT_<KEY>`` overrides from the environment."""
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for key in _FIELD_NAMES:
        env_key = ENV_PREFIX + key.upper()
        if env_key in environ:
            values[key] = _coerce(key, environ[env_key], f"environment variable {env_key}")
    return values


def resolve_config(
    cli_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ResolvedConfig:
    """Resolve the effective configuration.

    Parameters
    ----------
    cli_path : Path, optional
        Config file named on the command line.
    overrides : Mapping, optional
        CLI values; ``None`` entries are ignored.
    environ : Mapping, optional
        Environment to read instead of ``os.environ``.

    Raises
    ------
    ConfigError
        If an explicit config file is missing, or any layer holds an
        invalid value.
    """
    environ = os.environ if environ is None else environ
    env_path = environ.get(CONFIG_PATH_ENV)
    if cli_path is not None:
        path, required = Path(cli_path), True
    elif env_path:
        path, required = Path(env_path), True
    else:
        path, required = default_config_path(), False

    resolved = ResolvedConfig()
    resolved = replace(resolved, **load_config_file(path, required))
    resolved = replace(resolved, **load_env_config(environ))
    cli_values = {
        key: _coerce(key, value, "command line")
        for key, value in (overrides or {}).items()
        if value is not None
    }
    resolved = replace(resolved, **cli_values)
    logger.debug("Resolved configuration: %s", resolved)
    return resolved
