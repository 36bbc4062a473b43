import unittest
from pathlib import Path
from unittest.mock import patch

import pytest

from atomc.apply.engine import (
    ApplyErrorKind,
    ApplyRequest,
    apply_plan,
    commit_paragraphs,
    planned_results,
)
from atomc.diff.diff_engine import DiffMode, compute_diff
from atomc.plan.models import ApplyStatus, CommitType, CommitUnit, Hunk, InputSource
from atomc.vcs.git_client import GitClient, GitCommandError

SUMMARY = "add installation notes to the readme for new contributors"


def unit(uid="c1", files=("README.md",), **overrides):
    fields = dict(
        id=uid,
        type=CommitType.DOCS,
        scope="readme",
        summary=SUMMARY,
        body=["Explain local installation.", "Mention supported platforms."],
        files=list(files),
    )
    fields.update(overrides)
    return CommitUnit(**fields)


def request_for(repo, plan, **overrides):
    diff = compute_diff(repo, DiffMode.ALL, include_untracked=True)
    fields = dict(repo=repo, plan=plan, diff=diff, diff_mode=DiffMode.ALL, include_untracked=True)
    fields.update(overrides)
    return ApplyRequest(**fields)


def head_subject(run_git, repo):
    return run_git(repo, "log", "-1", "--format=%s").strip()


def commit_count(run_git, repo):
    return int(run_git(repo, "rev-list", "--count", "HEAD").strip())


def test_applies_single_unit(make_repo, run_git):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")

    outcome = apply_plan(request_for(repo, [unit()]))

    assert outcome.ok
    assert len(outcome.results) == 1
    result = outcome.results[0]
    assert result.status is ApplyStatus.APPLIED
    assert result.commit_hash
    assert result.commit_hash == run_git(repo, "rev-parse", "HEAD").strip()
    assert head_subject(run_git, repo) == f"docs[readme]: {SUMMARY}"
    body = run_git(repo, "log", "-1", "--format=%b").strip()
    assert body == "Explain local installation.\n\nMention supported platforms."


def test_applies_units_in_order(make_repo, run_git):
    repo = make_repo({"a.py": "a\n", "b.py": "b\n"})
    (repo / "a.py").write_text("a2\n", encoding="utf-8")
    (repo / "b.py").write_text("b2\n", encoding="utf-8")
    (repo / "c.py").write_text("c\n", encoding="utf-8")

    plan = [unit("first", files=["a.py"]), unit("second", files=["b.py", "c.py"], scope=None)]
    outcome = apply_plan(request_for(repo, plan))

    assert outcome.ok
    assert [r.status for r in outcome.results] == [ApplyStatus.APPLIED, ApplyStatus.APPLIED]
    assert head_subject(run_git, repo) == f"docs: {SUMMARY}"
    assert run_git(repo, "show", "--name-only", "--format=", "HEAD").split() == ["b.py", "c.py"]
    assert run_git(repo, "status", "--porcelain").strip() == ""


def test_drift_aborts_before_any_commit(make_repo, run_git):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")
    request = request_for(repo, [unit()])
    (repo / "README.md").write_text("hello\nsomething else\n", encoding="utf-8")

    outcome = apply_plan(request)

    assert not outcome.ok
    assert outcome.error.kind is ApplyErrorKind.DIFF_HASH_MISMATCH
    assert outcome.error.details["expected"] != outcome.error.details["actual"]
    assert outcome.results[0].status is ApplyStatus.FAILED
    assert outcome.results[0].error.code == "diff_hash_mismatch"
    assert commit_count(run_git, repo) == 1


def test_expected_hash_override_is_used(make_repo):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")

    outcome = apply_plan(request_for(repo, [unit()], expected_diff_hash="sha256:00"))

    assert outcome.error.kind is ApplyErrorKind.DIFF_HASH_MISMATCH
    assert outcome.error.details["expected"] == "sha256:00"


def test_file_missing_from_diff_is_rejected_before_staging(make_repo, run_git):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")

    outcome = apply_plan(request_for(repo, [unit(files=["README.md", "ghost.py"])]))

    assert outcome.error.kind is ApplyErrorKind.PLAN_FILE_MISSING
    assert outcome.error.details["file"] == "ghost.py"
    assert outcome.error.unit_id == "c1"
    assert commit_count(run_git, repo) == 1
    assert GitClient(repo).list_staged_files() == []


def test_unrelated_staged_file_aborts_and_cleanup_unstages_plan_files(make_repo, run_git):
    repo = make_repo({"README.md": "hello\n", "extra.txt": "x\n"})
    (repo / "extra.txt").write_text("x\ny\n", encoding="utf-8")
    run_git(repo, "add", "extra.txt")
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")

    outcome = apply_plan(request_for(repo, [unit()], cleanup_on_error=True))

    assert outcome.error.kind is ApplyErrorKind.STAGED_FILES_MISMATCH
    assert outcome.error.details["unexpected"] == ["extra.txt"]
    assert GitClient(repo).list_staged_files() == ["extra.txt"]
    assert commit_count(run_git, repo) == 1


def test_without_cleanup_plan_files_stay_staged(make_repo, run_git):
    repo = make_repo({"README.md": "hello\n", "extra.txt": "x\n"})
    (repo / "extra.txt").write_text("x\ny\n", encoding="utf-8")
    run_git(repo, "add", "extra.txt")
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")

    outcome = apply_plan(request_for(repo, [unit()]))

    assert outcome.error.kind is ApplyErrorKind.STAGED_FILES_MISMATCH
    assert sorted(GitClient(repo).list_staged_files()) == ["README.md", "extra.txt"]


def test_partial_failure_keeps_earlier_commits(make_repo, run_git):
    repo = make_repo({"a.py": "a\n", "b.py": "b\n"})
    (repo / "a.py").write_text("a2\n", encoding="utf-8")
    (repo / "b.py").write_text("b2\n", encoding="utf-8")

    plan = [unit("one", files=["a.py"]), unit("two", files=["missing.py"]), unit("three", files=["b.py"])]
    outcome = apply_plan(request_for(repo, plan))

    assert [(r.id, r.status) for r in outcome.results] == [
        ("one", ApplyStatus.APPLIED),
        ("two", ApplyStatus.FAILED),
        ("three", ApplyStatus.SKIPPED),
    ]
    assert [r.id for r in outcome.applied] == ["one"]
    assert outcome.results[1].error.details["id"] == "two"
    assert commit_count(run_git, repo) == 2


def test_hunks_are_not_supported(make_repo, run_git):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")
    hunky = unit(hunks=[Hunk(file="README.md", header="@@ -1 +1,2 @@")])

    outcome = apply_plan(request_for(repo, [hunky]))

    assert outcome.error.kind is ApplyErrorKind.HUNKS_NOT_SUPPORTED
    assert commit_count(run_git, repo) == 1


def test_assisted_by_trailer(make_repo, run_git):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")

    outcome = apply_plan(request_for(repo, [unit()], assisted_by="deepseek-coder"))

    assert outcome.ok
    message = run_git(repo, "log", "-1", "--format=%B").strip()
    assert message.endswith("\n\nAssisted by: deepseek-coder")


def test_supplied_diff_skips_drift_verification(make_repo, run_git):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")
    diff = compute_diff(repo, DiffMode.ALL, include_untracked=True)
    # later edits do not matter when the caller supplied the diff
    (repo / "README.md").write_text("hello\nsomething else\n", encoding="utf-8")

    outcome = apply_plan(ApplyRequest(repo=repo, plan=[unit()], diff=diff, source=InputSource.DIFF))

    assert outcome.ok
    assert commit_count(run_git, repo) == 2


def test_git_failure_is_reported_not_raised(make_repo):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")
    request = request_for(repo, [unit()])
    error = GitCommandError("git commit -m x", "hook rejected", 1)

    with patch.object(GitClient, "commit", side_effect=error):
        outcome = apply_plan(request)

    assert outcome.error.kind is ApplyErrorKind.GIT_COMMAND_FAILED
    assert outcome.error.details == {"cmd": "git commit -m x", "stderr": "hook rejected", "exit_code": 1}


def test_cleanup_failure_keeps_original_error(make_repo):
    repo = make_repo()
    (repo / "README.md").write_text("hello\nworld\n", encoding="utf-8")
    request = request_for(repo, [unit()], cleanup_on_error=True)
    commit_error = GitCommandError("git commit -m x", "hook rejected", 1)
    cleanup_error = GitCommandError("git reset -q -- README.md", "index.lock exists", 128)

    with patch.object(GitClient, "commit", side_effect=commit_error):
        with patch.object(GitClient, "reset_paths", side_effect=[None, cleanup_error]) as reset:
            outcome = apply_plan(request)

    assert reset.call_count == 2
    assert outcome.error.kind is ApplyErrorKind.GIT_COMMAND_FAILED
    assert outcome.error.details["stderr"] == "hook rejected"
    assert [r.status for r in outcome.results] == [ApplyStatus.FAILED]


def test_non_ascii_paths_are_applied(make_repo, run_git):
    repo = make_repo({"café.txt": "one\n"})
    (repo / "café.txt").write_text("one\ntwo\n", encoding="utf-8")
    (repo / "naïve notes.md").write_text("new\n", encoding="utf-8")

    outcome = apply_plan(request_for(repo, [unit(files=["café.txt", "naïve notes.md"])]))

    assert outcome.ok, outcome.error
    assert outcome.results[0].status is ApplyStatus.APPLIED
    assert run_git(repo, "status", "--porcelain").strip() == ""


class TestHelpers(unittest.TestCase):
    def test_commit_paragraphs(self) -> None:
        self.assertEqual(commit_paragraphs(unit(body=["one"])), ["one"])
        self.assertEqual(commit_paragraphs(unit(body=["one"]), "model"), ["one", "Assisted by: model"])

    def test_planned_results(self) -> None:
        results = planned_results([unit("a"), unit("b")])
        self.assertEqual([r.status for r in results], [ApplyStatus.PLANNED, ApplyStatus.PLANNED])
        self.assertTrue(all(r.commit_hash is None for r in results))

    def test_empty_plan_with_clean_repo(self) -> None:
        with patch("atomc.apply.engine.compute_diff", return_value=""):
            outcome = apply_plan(ApplyRequest(repo=Path("/repo"), plan=[], diff=""))
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.results, [])


if __name__ == "__main__":
    unittest.main()
