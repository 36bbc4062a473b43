import pytest

from atomc.diff.diff_engine import (
    DiffMode,
    DiffSnapshot,
    capture_snapshot,
    compute_diff,
    diff_files,
)
from atomc.diff.hash_guard import fingerprint
from atomc.vcs.git_client import GitCommandError


@pytest.fixture
def mixed_repo(make_repo, run_git):
    """Repository with one unstaged, one staged and one untracked change."""
    repo = make_repo({"tracked.txt": "one\n", "staged.txt": "one\n"})
    (repo / "tracked.txt").write_text("one\ntwo\n", encoding="utf-8")
    (repo / "staged.txt").write_text("one\nstaged\n", encoding="utf-8")
    run_git(repo, "add", "staged.txt")
    (repo / "untracked.txt").write_text("new\n", encoding="utf-8")
    return repo


def test_worktree_mode_includes_unstaged_only(mixed_repo):
    diff = compute_diff(mixed_repo, DiffMode.WORKTREE, include_untracked=False)
    assert diff_files(diff) == {"tracked.txt"}


def test_staged_mode_includes_staged_only(mixed_repo):
    diff = compute_diff(mixed_repo, DiffMode.STAGED, include_untracked=False)
    assert diff_files(diff) == {"staged.txt"}


def test_all_mode_with_untracked_includes_everything(mixed_repo):
    diff = compute_diff(mixed_repo, DiffMode.ALL, include_untracked=True)
    assert diff_files(diff) == {"tracked.txt", "staged.txt", "untracked.txt"}
    # worktree part first, then staged, then untracked
    assert diff.index("tracked.txt") < diff.index("staged.txt") < diff.index("untracked.txt")


def test_all_mode_without_untracked(mixed_repo):
    diff = compute_diff(mixed_repo, DiffMode.ALL, include_untracked=False)
    assert diff_files(diff) == {"tracked.txt", "staged.txt"}


def test_untracked_files_in_new_directories_are_listed(make_repo):
    repo = make_repo()
    (repo / "pkg").mkdir()
    (repo / "pkg" / "mod.py").write_text("x = 1\n", encoding="utf-8")
    diff = compute_diff(repo, DiffMode.WORKTREE, include_untracked=True)
    assert diff_files(diff) == {"pkg/mod.py"}


def test_clean_repository_gives_empty_diff(make_repo):
    repo = make_repo()
    assert compute_diff(repo, DiffMode.ALL, include_untracked=True) == ""


def test_diff_is_stable_between_calls(mixed_repo):
    first = compute_diff(mixed_repo, DiffMode.ALL, include_untracked=True)
    second = compute_diff(mixed_repo, DiffMode.ALL, include_untracked=True)
    assert fingerprint(first) == fingerprint(second)


def test_non_repository_raises_git_error(tmp_path):
    plain = tmp_path / "plain"
    plain.mkdir()
    with pytest.raises(GitCommandError):
        compute_diff(plain, DiffMode.WORKTREE, include_untracked=False)


def test_capture_snapshot_records_token_and_files(mixed_repo):
    snapshot = capture_snapshot(mixed_repo, "staged", include_untracked=False)
    assert snapshot.mode is DiffMode.STAGED
    assert snapshot.token == fingerprint(snapshot.text)
    assert snapshot.files == frozenset({"staged.txt"})


def test_snapshot_is_immutable():
    snapshot = DiffSnapshot(text="", mode=DiffMode.ALL, include_untracked=False)
    with pytest.raises(AttributeError):
        snapshot.text = "changed"


class TestDiffFiles:
    def test_prefers_post_image_path_for_renames(self):
        diff = "diff --git a/old/name.py b/new/name.py\nsimilarity index 100%\n"
        assert diff_files(diff) == {"new/name.py"}

    def test_ignores_null_device(self):
        assert diff_files("diff --git a/gone.txt /dev/null\n") == set()

    def test_paths_with_spaces(self):
        diff = "diff --git a/my file.txt b/my file.txt\n"
        assert diff_files(diff) == {"my file.txt"}

    def test_decodes_quoted_non_ascii_paths(self):
        diff = 'diff --git "a/caf\\303\\251.txt" "b/caf\\303\\251.txt"\n'
        assert diff_files(diff) == {"café.txt"}

    def test_decodes_quoted_escapes(self):
        diff = 'diff --git "a/say \\"hi\\"\\tnow.txt" "b/say \\"hi\\"\\tnow.txt"\n'
        assert diff_files(diff) == {'say "hi"\tnow.txt'}

    def test_quoted_post_image_after_plain_pre_image(self):
        assert diff_files('diff --git a/plain.txt "b/caf\\303\\251.txt"\n') == {"café.txt"}

    def test_ignores_non_header_lines(self):
        diff = (
            "diff --git a/x.py b/x.py\n"
            "--- a/x.py\n"
            "+++ b/x.py\n"
            "@@ -1 +1 @@\n"
            "-diff --git a/fake b/fake\n"
        )
        assert diff_files(diff) == {"x.py"}

    def test_empty_diff(self):
        assert diff_files("") == set()
