"""Tests for churn_heatmap.git_metrics functions.

Integration tests build a throwaway repo (git_repo fixture) with known
history. API convention: module functions take (repo, filepath) positional
args; GitHistoryProvider binds the repo.
"""

# pylint: disable=missing-class-docstring,missing-function-docstring,too-few-public-methods

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from churn_heatmap.git_metrics import (
    GitHistoryProvider,
    _git,
    content_identity,
    content_lines,
    file_touch_count,
    git_index_path,
    git_toplevel,
    is_tracked,
    line_touch_count,
    parse_extra_args,
)
from churn_heatmap.models import GitQueryError


need_git: pytest.MarkDecorator = pytest.mark.skipif(
    shutil.which("git") is None, reason="git CLI not available"
)


# ---------------------------------------------------------------------------
# _git helper (mocked subprocess)
# ---------------------------------------------------------------------------


def _completed(rc: int, stdout: str = "", stderr: str = "") -> MagicMock:
    r = MagicMock(spec=subprocess.CompletedProcess)
    r.returncode = rc
    r.stdout = stdout
    r.stderr = stderr
    return r


class TestGitHelper:
    def test_returns_stdout(self) -> None:
        with patch("subprocess.run", return_value=_completed(0, "abc\n")):
            assert _git(["rev-parse", "HEAD"], cwd=".") == "abc\n"

    def test_nonzero_raises(self) -> None:
        with patch("subprocess.run", return_value=_completed(128, "", "fatal: nope")):
            with pytest.raises(GitQueryError, match="fatal: nope"):
                _git(["log"], cwd=".")

    def test_timeout_raises(self) -> None:
        with patch("subprocess.run",
                   side_effect=subprocess.TimeoutExpired(["git"], 30)):
            with pytest.raises(GitQueryError):
                _git(["log"], cwd=".")

    def test_missing_git_raises(self) -> None:
        with patch("subprocess.run", side_effect=FileNotFoundError("git")):
            with pytest.raises(GitQueryError):
                _git(["log"], cwd=".")

    def test_is_tracked_fails_closed(self) -> None:
        with patch("subprocess.run", side_effect=OSError("boom")):
            assert is_tracked(".", "a.py") is False

    def test_line_count_ignores_blank_lines(self) -> None:
        with patch("subprocess.run", return_value=_completed(0, "a1\nb2\n\nc3\n")) as run:
            assert line_touch_count("/r", "a.py", 7, ["--since=1.year"]) == 3
        argv = run.call_args[0][0]
        assert argv[:4] == ["git", "log", "--no-patch", "-L7,7:a.py"]
        assert argv[-1] == "--since=1.year"

    def test_file_count_filter_before_pathspec(self) -> None:
        with patch("subprocess.run", return_value=_completed(0, "a1\nb2\n")) as run:
            assert file_touch_count("/r", "a.py", ["--author=alice"]) == 2
        argv = run.call_args[0][0]
        assert argv[-3:] == ["--author=alice", "--", "a.py"]

    def test_empty_hash_raises(self) -> None:
        with patch("subprocess.run", return_value=_completed(0, "\n")):
            with pytest.raises(GitQueryError):
                content_identity("/r", "a.py")

    def test_identity_is_head_blob(self) -> None:
        with patch("subprocess.run", return_value=_completed(0, "abc123\n")) as run:
            assert content_identity("/r", "a.py") == "abc123"
        assert run.call_args[0][0] == ["git", "rev-parse", "HEAD:a.py"]

    def test_binary_blob_has_no_lines(self) -> None:
        blob = _completed(0)
        blob.stdout = b"\x89PNG\xff\xfe\x00"
        with patch("subprocess.run", return_value=blob) as run:
            assert content_lines("/r", "abc123") is None
        assert run.call_args[0][0] == ["git", "cat-file", "blob", "abc123"]
        assert run.call_args[1]["text"] is False

    def test_blob_failure_raises(self) -> None:
        failed = _completed(128)
        failed.stderr = b"fatal: Not a valid object name"
        with patch("subprocess.run", return_value=failed):
            with pytest.raises(GitQueryError, match="Not a valid object"):
                content_lines("/r", "deadbeef")


class TestParseExtraArgs:
    def test_none_and_empty(self) -> None:
        assert parse_extra_args(None) == []
        assert parse_extra_args("") == []

    def test_shell_quoting(self) -> None:
        assert parse_extra_args("--since=1.year --author='Jane Doe'") == [
            "--since=1.year", "--author=Jane Doe",
        ]

    def test_provider_accepts_list(self) -> None:
        p = GitHistoryProvider("/r", ["--no-merges"])
        assert p.extra_args == ["--no-merges"]

    def test_provider_parses_string(self) -> None:
        p = GitHistoryProvider("/r", "--no-merges --since=2.weeks")
        assert p.extra_args == ["--no-merges", "--since=2.weeks"]


# ---------------------------------------------------------------------------
# Real repository
# ---------------------------------------------------------------------------


@need_git
class TestRealRepo:
    def test_toplevel(self, git_repo: Path) -> None:
        assert Path(git_toplevel(git_repo)).resolve() == git_repo.resolve()

    def test_toplevel_outside_repo(self, tmp_path: Path) -> None:
        outside = tmp_path / "plain"
        outside.mkdir()
        with patch.dict("os.environ", {"GIT_CEILING_DIRECTORIES": str(tmp_path)}):
            with pytest.raises(GitQueryError):
                git_toplevel(outside)

    def test_index_path(self, git_repo: Path) -> None:
        assert git_index_path(git_repo).resolve() == (git_repo / ".git" / "index").resolve()

    def test_is_tracked(self, git_repo: Path) -> None:
        (git_repo / "scratch.py").write_text("x\ny\n")
        assert is_tracked(git_repo, "app.py")
        assert not is_tracked(git_repo, "scratch.py")
        assert not is_tracked(git_repo, "missing.py")

    def test_content_identity_is_blob_sha(self, git_repo: Path) -> None:
        head_blob = subprocess.run(
            ["git", "rev-parse", "HEAD:app.py"], cwd=git_repo,
            capture_output=True, text=True, check=True,
        ).stdout.strip()
        assert content_identity(git_repo, "app.py") == head_blob

    def test_content_identity_ignores_uncommitted_edits(self, git_repo: Path,
                                                        commit) -> None:
        before = content_identity(git_repo, "app.py")
        (git_repo / "app.py").write_text("A\nBB\nC\n")
        assert content_identity(git_repo, "app.py") == before
        commit(git_repo, "app.py", "A\nBB\nC\n", "c4")
        assert content_identity(git_repo, "app.py") != before

    def test_staged_only_file_is_untracked(self, git_repo: Path) -> None:
        (git_repo / "new.py").write_text("x\ny\n")
        subprocess.run(["git", "add", "new.py"], cwd=git_repo, check=True)
        assert not is_tracked(git_repo, "new.py")

    def test_content_lines_reads_committed_blob(self, git_repo: Path) -> None:
        (git_repo / "app.py").write_text("dirty\n")
        sha = content_identity(git_repo, "app.py")
        assert content_lines(git_repo, sha) == ["a", "BB", "C"]
        assert GitHistoryProvider(git_repo).content_lines("app.py", sha) == ["a", "BB", "C"]

    def test_line_touch_counts(self, git_repo: Path) -> None:
        counts = [line_touch_count(git_repo, "app.py", n) for n in (1, 2, 3)]
        assert counts == [1, 3, 2]

    def test_file_touch_count(self, git_repo: Path) -> None:
        assert file_touch_count(git_repo, "app.py") == 3
        assert file_touch_count(git_repo, "notes.txt") == 1

    def test_extra_args_filter(self, git_repo: Path) -> None:
        assert file_touch_count(git_repo, "app.py", ["--max-count=1"]) == 1

    def test_line_past_end_fails(self, git_repo: Path) -> None:
        with pytest.raises(GitQueryError):
            line_touch_count(git_repo, "app.py", 99)

    def test_provider(self, git_repo: Path) -> None:
        p = GitHistoryProvider(git_repo)
        assert p.is_tracked("notes.txt")
        assert p.line_touch_count("notes.txt", 2) == 1
        assert p.file_touch_count("notes.txt") == 1
        assert len(str(p.content_identity("notes.txt"))) >= 40
