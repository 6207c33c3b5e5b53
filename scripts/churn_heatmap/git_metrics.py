"""Git-derived churn queries for the heatmap.

Answers content-identity, membership, and per-line / per-file touch counts
via subprocess + git CLI. Zero external dependencies beyond Python stdlib.

  - Every query is a blocking subprocess call; callers treat each as
    individually recoverable.
  - Identity and line text both come from the blob at HEAD, the same
    content git log -L numbers its lines against.
  - extra_args is an opaque history filter (e.g. --since, --author) passed
    through to git log for both line and file counts.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Protocol

from .models import ContentIdentity, GitQueryError

log = logging.getLogger(__name__)

_GIT_TIMEOUT = 30  # seconds per query


class ChangeHistoryProvider(Protocol):
    """What the core needs from version-control history."""

    def is_tracked(self, path: str) -> bool:
        ...

    def content_identity(self, path: str) -> ContentIdentity:
        ...

    def content_lines(self, path: str, identity: ContentIdentity) -> list[str] | None:
        ...

    def line_touch_count(self, path: str, line_number: int) -> int:
        ...

    def file_touch_count(self, path: str) -> int:
        ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(args: list[str], cwd: str | Path, text: bool) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(
            ["git"] + args,
            cwd=str(cwd),
            capture_output=True,
            text=text,
            timeout=_GIT_TIMEOUT,
            check=False,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as exc:
        raise GitQueryError(f"git {' '.join(args)}: {exc}") from exc
    if result.returncode != 0:
        stderr = result.stderr
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", "replace")
        raise GitQueryError(
            f"git {' '.join(args)} exited {result.returncode}: "
            f"{stderr.strip()}"
        )
    return result


def _git(args: list[str], cwd: str | Path) -> str:
    """Run a git command, return stdout. Raises GitQueryError on failure."""
    return _run(args, cwd, text=True).stdout


def _git_bytes(args: list[str], cwd: str | Path) -> bytes:
    """Like _git, but stdout is returned undecoded (blob contents)."""
    return _run(args, cwd, text=False).stdout


def _count_lines(out: str) -> int:
    """Count non-empty output lines (one abbreviated SHA per commit)."""
    return sum(1 for line in out.splitlines() if line.strip())


def git_toplevel(path: str | Path) -> str:
    """Repository root containing path. Raises GitQueryError outside a repo."""
    return _git(["rev-parse", "--show-toplevel"], cwd=path).strip()


def git_index_path(repo: str | Path) -> Path:
    """Path to the repository's index file (watched for changes)."""
    git_dir = _git(["rev-parse", "--git-dir"], cwd=repo).strip()
    p = Path(git_dir)
    if not p.is_absolute():
        p = Path(repo) / p
    return p / "index"


def parse_extra_args(extra: str | None) -> list[str]:
    """Split a user-supplied git filter string into argv items."""
    if not extra:
        return []
    return shlex.split(extra)


# ---------------------------------------------------------------------------
# Per-file queries
# ---------------------------------------------------------------------------


def is_tracked(repo: str | Path, filepath: str) -> bool:
    """Whether filepath exists at HEAD. Fails closed on any query error.

    Files that are only staged have no history yet and count as untracked.
    """
    try:
        _git(["cat-file", "-e", f"HEAD:{filepath}"], cwd=repo)
    except GitQueryError:
        return False
    return True


def content_identity(repo: str | Path, filepath: str) -> str:
    """Blob SHA of the file at HEAD."""
    sha = _git(["rev-parse", f"HEAD:{filepath}"], cwd=repo).strip()
    if not sha:
        raise GitQueryError(f"git rev-parse gave no blob for {filepath}")
    return sha


def content_lines(repo: str | Path, identity: str) -> list[str] | None:
    """Text lines of the blob identity, or None if it is not UTF-8 text."""
    data = _git_bytes(["cat-file", "blob", identity], cwd=repo)
    try:
        return data.decode("utf-8").splitlines()
    except UnicodeDecodeError:
        log.debug("Blob %s is not UTF-8 text", identity)
        return None


def line_touch_count(repo: str | Path, filepath: str, line_number: int,
                     extra_args: list[str] | None = None) -> int:
    """Distinct commits whose diff touched line_number (1-based)."""
    out = _git(
        ["log", "--no-patch", f"-L{line_number},{line_number}:{filepath}",
         "--pretty=%h"] + (extra_args or []),
        cwd=repo,
    )
    return _count_lines(out)


def file_touch_count(repo: str | Path, filepath: str,
                     extra_args: list[str] | None = None) -> int:
    """Distinct commits touching filepath as a whole."""
    out = _git(
        ["log", "--pretty=%h"] + (extra_args or []) + ["--", filepath],
        cwd=repo,
    )
    return _count_lines(out)


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


class GitHistoryProvider:
    """ChangeHistoryProvider backed by the git CLI for one repository."""

    def __init__(self, repo: str | Path, extra_args: str | list[str] | None = None):
        self.repo = str(repo)
        if isinstance(extra_args, list):
            self.extra_args = list(extra_args)
        else:
            self.extra_args = parse_extra_args(extra_args)

    def is_tracked(self, path: str) -> bool:
        return is_tracked(self.repo, path)

    def content_identity(self, path: str) -> ContentIdentity:
        return content_identity(self.repo, path)

    def content_lines(self, path: str, identity: ContentIdentity) -> list[str] | None:
        if isinstance(identity, bytes):
            identity = identity.hex()
        return content_lines(self.repo, identity)

    def line_touch_count(self, path: str, line_number: int) -> int:
        return line_touch_count(self.repo, path, line_number, self.extra_args)

    def file_touch_count(self, path: str) -> int:
        return file_touch_count(self.repo, path, self.extra_args)
