"""Churn computer -- one file's per-line and whole-file churn.

A profile is assembled only once every line and the whole-file count have
been gathered. Any query failure drops the whole file for this cycle; the
caller keeps whatever profile the cache already holds.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

from .git_metrics import ChangeHistoryProvider
from .models import ContentIdentity, FileChurnProfile, GitQueryError, HeatmapCancelled

log = logging.getLogger(__name__)

# Files with fewer lines are skipped entirely
MIN_LINES = 2

ProgressCallback = Callable[[str, int], None]


class CancelToken:
    """Cooperative cancellation flag checked between files and lines."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Raise HeatmapCancelled if cancellation was requested."""
        if self._event.is_set():
            raise HeatmapCancelled("heatmap generation cancelled")


def read_lines(path: str | Path) -> list[str] | None:
    """Read a text file as lines, or None if unreadable / not text."""
    try:
        return Path(path).read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        log.debug("Cannot read %s: %s", path, exc)
        return None


def compute_file_churn(
    provider: ChangeHistoryProvider,
    path: str,
    lines: Sequence[str],
    identity: ContentIdentity,
    cancel: CancelToken | None = None,
    progress: ProgressCallback | None = None,
) -> FileChurnProfile | None:
    """Build the churn profile for a tracked file.

    identity must be captured before this call so the stored profile
    describes the content the line counts were taken against.

    Returns None if the file has fewer than MIN_LINES lines or any history
    query fails. Raises HeatmapCancelled at a line checkpoint.
    """
    line_count = len(lines)
    if line_count < MIN_LINES:
        log.debug("Skipping %s: %d line(s)", path, line_count)
        return None

    line_churn: list[int] = []
    try:
        for line_number in range(1, line_count + 1):
            if cancel is not None:
                cancel.check()
            if progress is not None:
                progress(path, line_number)
            line_churn.append(provider.line_touch_count(path, line_number))
        overall = provider.file_touch_count(path)
    except GitQueryError as exc:
        log.warning("Churn query failed for %s, skipping file: %s", path, exc)
        return None

    if not line_churn:
        return None
    return FileChurnProfile.build(identity, line_churn, overall)
