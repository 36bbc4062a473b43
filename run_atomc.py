#!/usr/bin/env python
"""
Thin wrapper script to invoke the atomc CLI.

Running ``python run_atomc.py`` is equivalent to running the ``atomc``
console script installed via ``pyproject.toml``.
"""

from atomc.cli import main


if __name__ == "__main__":
    main(prog_name="atomc")
