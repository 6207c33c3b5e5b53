"""Heatmap orchestrator -- one generate_heatmap() cycle at a time.

    IDLE -> COLLECTING -> COMPUTING -> RANKING -> DONE | NO_DATA -> IDLE
                 \\____________\\_____________-> CANCELLED -> IDLE

Each cycle works on a staged copy of the cache. The copy is persisted,
ranked, and only then swapped in together with its rankings, so readers
see either the previous cycle's (cache, rankings) pair or the new one.
Cancellation and cycle-fatal errors discard the staged copy.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .cache import ChurnCache
from .churn import MIN_LINES, CancelToken, ProgressCallback, compute_file_churn
from .git_metrics import ChangeHistoryProvider
from .models import (
    ContentIdentity,
    CycleReport,
    FileDiscovery,
    GitQueryError,
    HeatmapCancelled,
    HeatmapState,
    Outcome,
    Presenter,
    RankingIndex,
    StateStore,
)
from .ranking import build_rankings

log = logging.getLogger(__name__)


@dataclass
class _PendingFile:
    path: str
    lines: list[str]
    identity: ContentIdentity


class HeatmapOrchestrator:
    """Sequences discovery, staleness, computation, merge, and ranking."""

    def __init__(
        self,
        repo: str | Path,
        provider: ChangeHistoryProvider,
        discovery: FileDiscovery,
        store: StateStore,
        workspace: str | None = None,
        presenters: Sequence[Presenter] = (),
        prune_missing: bool = False,
        progress: ProgressCallback | None = None,
    ):
        self.repo = Path(repo)
        self.provider = provider
        self.discovery = discovery
        self.store = store
        self.workspace = workspace or str(self.repo)
        self.presenters = list(presenters)
        self.prune_missing = prune_missing
        self.progress = progress
        self.cancel_token = CancelToken()

        self._busy = threading.Lock()
        self._cancel_lock = threading.Lock()
        self._view_lock = threading.Lock()
        self._state = HeatmapState.IDLE
        self._cache: ChurnCache | None = None
        self._rankings = RankingIndex()
        self.last_report: CycleReport | None = None

    # -- read accessors -----------------------------------------------------

    @property
    def state(self) -> HeatmapState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    @property
    def cache(self) -> ChurnCache:
        """Current cache (loaded from the store on first access)."""
        self._ensure_loaded()
        with self._view_lock:
            assert self._cache is not None
            return self._cache

    @property
    def rankings(self) -> RankingIndex:
        """Rankings built from exactly the current cache."""
        self._ensure_loaded()
        with self._view_lock:
            return self._rankings

    def snapshot(self) -> tuple[ChurnCache, RankingIndex]:
        """Consistent (cache, rankings) pair."""
        self._ensure_loaded()
        with self._view_lock:
            assert self._cache is not None
            return self._cache, self._rankings

    def cancel(self) -> None:
        """Ask a running cycle to stop at its next file/line checkpoint."""
        with self._cancel_lock:
            if self.busy:
                log.info("Heatmap generation cancel requested")
                self.cancel_token.cancel()

    # -- entry point --------------------------------------------------------

    def generate_heatmap(self) -> Outcome:
        """Run one cycle. Returns Outcome.BUSY if a cycle is already running."""
        # cancel() sees either an idle orchestrator or this cycle's fresh token
        with self._cancel_lock:
            if not self._busy.acquire(blocking=False):
                log.debug("Heatmap generation already in progress, dropping request")
                return Outcome.BUSY
            self.cancel_token.reset()
        try:
            return self._run_cycle()
        finally:
            self._state = HeatmapState.IDLE
            with self._cancel_lock:
                self._busy.release()

    # -- cycle --------------------------------------------------------------

    def _ensure_loaded(self) -> None:
        with self._view_lock:
            if self._cache is not None:
                return
            cache = ChurnCache.load(self.store, self.workspace)
            self._cache = cache
            self._rankings = build_rankings(cache)
            log.debug("Loaded churn cache for %s (%d files)",
                      self.workspace, len(cache))

    def _run_cycle(self) -> Outcome:
        start = time.monotonic()
        report = CycleReport()
        self.last_report = report
        self._ensure_loaded()
        staged = self.cache.copy()

        try:
            self._state = HeatmapState.COLLECTING
            log.info("Collecting files for heatmap in %s", self.repo)
            paths = self.discovery.discover()
            report.discovered = len(paths)
            pending = self._collect(paths, staged, report)
            report.stale = len(pending)

            self._state = HeatmapState.COMPUTING
            total_lines = sum(len(p.lines) for p in pending)
            log.info("Building heatmap for %d file(s), %d line(s)",
                     len(pending), total_lines)
            for item in pending:
                self.cancel_token.check()
                profile = compute_file_churn(
                    self.provider, item.path, item.lines, item.identity,
                    cancel=self.cancel_token, progress=self._report_progress,
                )
                if profile is None:
                    report.failed.append(item.path)
                    continue
                staged.merge(item.path, profile)
                report.computed += 1
        except HeatmapCancelled:
            log.info("User canceled heatmap generation")
            self._state = HeatmapState.CANCELLED
            report.outcome = Outcome.CANCELLED
            report.duration_ms = int((time.monotonic() - start) * 1000)
            return Outcome.CANCELLED

        if self.prune_missing:
            report.pruned = len(staged.prune(paths))

        if report.computed or report.pruned:
            staged.save(self.store, self.workspace)

        self._state = HeatmapState.RANKING
        rankings = build_rankings(staged)
        with self._view_lock:
            self._cache = staged
            self._rankings = rankings

        report.duration_ms = int((time.monotonic() - start) * 1000)
        if rankings.is_empty:
            self._state = HeatmapState.NO_DATA
            report.outcome = Outcome.NO_DATA
            log.warning("Insufficient data to build a heatmap for %s", self.repo)
            for presenter in self.presenters:
                presenter.clear()
            return Outcome.NO_DATA

        self._state = HeatmapState.DONE
        report.outcome = Outcome.DONE
        log.info("Heatmap done: %d computed, %d failed, %d cached file(s), %dms",
                 report.computed, len(report.failed), len(staged),
                 report.duration_ms)
        for presenter in self.presenters:
            presenter.render(rankings, staged)
        return Outcome.DONE

    def _collect(self, paths: list[str], cache: ChurnCache,
                 report: CycleReport) -> list[_PendingFile]:
        """Tracked, readable, multi-line, stale files with their identity."""
        pending: list[_PendingFile] = []
        for path in paths:
            self.cancel_token.check()
            if not self.provider.is_tracked(path):
                report.skipped += 1
                continue
            try:
                identity = self.provider.content_identity(path)
                if not cache.is_stale(path, identity):
                    continue
                lines = self.provider.content_lines(path, identity)
            except GitQueryError as exc:
                log.warning("Cannot read %s at HEAD, skipping: %s", path, exc)
                report.failed.append(path)
                continue
            if lines is None or len(lines) < MIN_LINES:
                report.skipped += 1
                continue
            pending.append(_PendingFile(path, lines, identity))
        return pending

    def _report_progress(self, path: str, line_number: int) -> None:
        log.debug("%s:%d", path, line_number)
        if self.progress is not None:
            self.progress(path, line_number)
