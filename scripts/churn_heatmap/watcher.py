"""Polling watcher on .git/index.

Calls a trigger (normally HeatmapOrchestrator.generate_heatmap) whenever the
index file's mtime or size changes. Triggers that land while a cycle is
running are dropped by the orchestrator's single-flight guard.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


def _signature(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


class GitIndexWatcher:
    """Background thread polling one index file."""

    def __init__(self, index_path: str | Path, trigger: Callable[[], Any],
                 interval: float = 2.0):
        self.index_path = Path(index_path)
        self.trigger = trigger
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last = _signature(self.index_path)

    def poll(self) -> bool:
        """Check once; fire the trigger if the index changed."""
        current = _signature(self.index_path)
        if current == self._last:
            return False
        self._last = current
        log.debug("%s changed, regenerating heatmap", self.index_path)
        self.trigger()
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.poll()
            except Exception:  # pylint: disable=broad-except
                # the next index change starts a fresh cycle
                log.exception("Heatmap regeneration failed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="git-index-watcher", daemon=True)
        self._thread.start()
        log.info("Watching %s every %.1fs", self.index_path, self.interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def wait(self) -> None:
        """Block until stop() is called (or KeyboardInterrupt)."""
        while not self._stop.wait(0.5):
            pass
