"""Tests for churn_heatmap.watcher -- .git/index polling."""

# pylint: disable=missing-class-docstring,missing-function-docstring

from __future__ import annotations

import os
import threading
from pathlib import Path

from churn_heatmap.watcher import GitIndexWatcher


def _touch(path: Path, content: bytes, mtime_ns: int) -> None:
    path.write_bytes(content)
    os.utime(path, ns=(mtime_ns, mtime_ns))


class TestPoll:
    def test_unchanged_does_not_fire(self, tmp_path: Path) -> None:
        index = tmp_path / "index"
        _touch(index, b"v1", 1_000_000_000)
        calls: list[int] = []
        w = GitIndexWatcher(index, lambda: calls.append(1))
        assert not w.poll()
        assert calls == []

    def test_change_fires_once(self, tmp_path: Path) -> None:
        index = tmp_path / "index"
        _touch(index, b"v1", 1_000_000_000)
        calls: list[int] = []
        w = GitIndexWatcher(index, lambda: calls.append(1))
        _touch(index, b"v2-longer", 2_000_000_000)
        assert w.poll()
        assert not w.poll()
        assert calls == [1]

    def test_created_later(self, tmp_path: Path) -> None:
        index = tmp_path / "index"
        calls: list[int] = []
        w = GitIndexWatcher(index, lambda: calls.append(1))
        assert not w.poll()
        _touch(index, b"v1", 1_000_000_000)
        assert w.poll()
        assert calls == [1]


class TestThread:
    def test_background_trigger(self, tmp_path: Path) -> None:
        index = tmp_path / "index"
        _touch(index, b"v1", 1_000_000_000)
        fired = threading.Event()
        w = GitIndexWatcher(index, fired.set, interval=0.01)
        w.start()
        try:
            _touch(index, b"v2-longer", 2_000_000_000)
            assert fired.wait(5)
        finally:
            w.stop(timeout=5)

    def test_stop_ends_wait(self, tmp_path: Path) -> None:
        w = GitIndexWatcher(tmp_path / "index", lambda: None, interval=0.01)
        w.start()
        threading.Timer(0.05, w.stop).start()
        w.wait()

    def test_failing_trigger_keeps_watching(self, tmp_path: Path) -> None:
        index = tmp_path / "index"
        _touch(index, b"v1", 1_000_000_000)
        calls: list[int] = []
        first = threading.Event()
        second = threading.Event()

        def trigger() -> None:
            calls.append(1)
            if len(calls) == 1:
                first.set()
                raise OSError("database is locked")
            second.set()

        w = GitIndexWatcher(index, trigger, interval=0.01)
        w.start()
        try:
            _touch(index, b"v2-longer", 2_000_000_000)
            assert first.wait(5)
            _touch(index, b"v3-longer-still", 3_000_000_000)
            assert second.wait(5)
            assert w._thread is not None and w._thread.is_alive()  # pylint: disable=protected-access
        finally:
            w.stop(timeout=5)
        assert len(calls) == 2
