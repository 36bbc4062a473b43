import os
import subprocess
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch, tmp_path):
    """Keep user-level configuration out of every test.

    ``LOCAL_COMMIT_*`` variables are cleared and the home directory is
    pointed at an empty temporary directory, so the default config file
    never exists unless a test writes one.
    """
    for key in list(os.environ):
        if key.startswith("LOCAL_COMMIT_"):
            monkeypatch.delenv(key, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))
    # git must not pick up the developer's global identity or hooks
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=repo,
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    return result.stdout


@pytest.fixture
def make_repo(tmp_path):
    """Factory creating an initialised repository with one commit."""
    counter = {"n": 0}

    def _make(files=None):
        counter["n"] += 1
        repo = tmp_path / f"repo{counter['n']}"
        repo.mkdir()
        git(repo, "init", "-q")
        git(repo, "config", "user.email", "atomc@example.com")
        git(repo, "config", "user.name", "atomc tests")
        git(repo, "config", "commit.gpgsign", "false")
        for name, content in (files or {"README.md": "hello\n"}).items():
            path = repo / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        git(repo, "add", "-A")
        git(repo, "commit", "-q", "-m", "initial")
        return repo

    return _make


@pytest.fixture
def run_git():
    """Expose the ``git`` helper to tests."""
    return git


SUMMARY = "add installation notes to the readme for new contributors"


def unit_dict(**overrides):
    unit = {
        "id": "c1",
        "type": "docs",
        "scope": "readme",
        "summary": SUMMARY,
        "body": ["Explain how to install the tool locally.", "Mention the supported platforms."],
        "files": ["README.md"],
        "hunks": [],
    }
    unit.update(overrides)
    return unit


def plan_dict(*units, **overrides):
    plan = {"schema_version": "v1", "plan": list(units) or [unit_dict()]}
    plan.update(overrides)
    return plan


@pytest.fixture
def make_unit():
    """Factory for a schema-valid commit unit payload."""
    return unit_dict


@pytest.fixture
def make_plan():
    """Factory for a schema-valid commit plan payload."""
    return plan_dict
