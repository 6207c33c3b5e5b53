"""Shared fixtures: a throwaway git repository with known history."""

# pylint: disable=missing-function-docstring

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

_GIT_CONFIG_ARGS = [
    "-c", "user.name=Heatmap Test",
    "-c", "user.email=heatmap@example.com",
    "-c", "commit.gpgsign=false",
    "-c", "init.defaultBranch=main",
]


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *_GIT_CONFIG_ARGS, *args],
        cwd=str(repo), capture_output=True, text=True, check=True,
    )
    return result.stdout


def _commit_file(repo: Path, rel: str, text: str, message: str) -> None:
    f = repo / rel
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_text(text)
    _git(repo, "add", rel)
    _git(repo, "commit", "-q", "-m", message)


@pytest.fixture()
def commit() -> Callable[[Path, str, str, str], None]:
    """commit(repo, rel_path, text, message)"""
    return _commit_file


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    """Repo with known history.

    app.py     c1: a/b/c, c2: line 2 -> B, c3: line 2 -> BB and line 3 -> C
               line churn [1, 3, 2], file churn 3
    notes.txt  one commit, 2 lines
    one.txt    single line
    """
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _commit_file(repo, "app.py", "a\nb\nc\n", "c1")
    _commit_file(repo, "notes.txt", "x\ny\n", "notes")
    _commit_file(repo, "one.txt", "only\n", "one")
    _commit_file(repo, "app.py", "a\nB\nc\n", "c2")
    _commit_file(repo, "app.py", "a\nBB\nC\n", "c3")
    return repo
