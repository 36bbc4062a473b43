"""
Top-level package for atomc.

atomc plans a set of atomic commits for a Git diff with a local LLM and
applies them one by one, refusing to commit when the repository has
drifted from the diff the plan was built against. The command line entry
point lives in :mod:`atomc.cli`.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
