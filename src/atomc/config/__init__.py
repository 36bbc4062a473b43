"""
Configuration loading for atomc.

Resolves settings from defaults, a JSON config file, environment
variables and CLI overrides. See :mod:`atomc.config.loader` for details.
"""

from .loader import ConfigError, ResolvedConfig, resolve_config  # noqa: F401
