"""Candidate file discovery for the heatmap.

Uses git ls-files (respects .gitignore, tracked files only), falling back
to a filesystem walk outside a git checkout. Include/exclude globs are
matched with fnmatch against repo-relative POSIX paths.
"""

from __future__ import annotations

import logging
import os
import subprocess
from fnmatch import fnmatch
from pathlib import Path

log = logging.getLogger(__name__)

_SKIP_DIRS = ("node_modules", "__pycache__", ".git", "venv", ".venv")


def _matches(rel_path: str, globs: list[str]) -> bool:
    name = rel_path.rsplit("/", 1)[-1]
    return any(fnmatch(rel_path, g) or fnmatch(name, g) for g in globs)


def _candidates(repo: str) -> list[str]:
    try:
        result = subprocess.run(
            ["git", "ls-files", "--cached"],
            capture_output=True,
            text=True,
            check=True,
            cwd=repo,
        )
        return result.stdout.strip().splitlines()
    except (subprocess.CalledProcessError, FileNotFoundError):
        log.debug("git ls-files failed in %s, walking filesystem", repo)

    candidates: list[str] = []
    for root, dirs, filenames in os.walk(repo):
        dirs[:] = [d for d in dirs if not d.startswith(".") and d not in _SKIP_DIRS]
        for fn in filenames:
            rel = os.path.relpath(os.path.join(root, fn), repo)
            candidates.append(Path(rel).as_posix())
    return candidates


def discover_files(repo: str, include: list[str] | None = None,
                   exclude: list[str] | None = None) -> list[str]:
    """Repo-relative paths of existing files matching include, not exclude.

    Args:
        repo: Repository root path.
        include: Globs a file must match (None or empty = everything).
        exclude: Globs that remove a file (e.g. 'vendor/*').
    """
    files: list[str] = []
    for rel_path in _candidates(repo):
        if not os.path.isfile(os.path.join(repo, rel_path)):
            continue
        if include and not _matches(rel_path, include):
            continue
        if exclude and _matches(rel_path, exclude):
            continue
        files.append(rel_path)
    return sorted(files)


class GitFileDiscovery:
    """FileDiscovery over a repository with fixed include/exclude globs."""

    def __init__(self, repo: str, include: list[str] | None = None,
                 exclude: list[str] | None = None):
        self.repo = repo
        self.include = list(include or [])
        self.exclude = list(exclude or [])

    def discover(self) -> list[str]:
        return discover_files(self.repo, self.include, self.exclude)
