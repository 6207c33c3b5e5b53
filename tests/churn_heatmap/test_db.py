"""Tests for churn_heatmap.db schema, lifecycle, and workspace state."""

# pylint: disable=missing-class-docstring,missing-function-docstring,redefined-outer-name

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest

from churn_heatmap.cache import ChurnCache
from churn_heatmap.db import (
    SqliteStateStore,
    db_exists,
    db_path,
    get_state,
    init_db,
    latest_run,
    record_run,
    reset_db,
    set_state,
)
from churn_heatmap.models import CycleReport, FileChurnProfile, Outcome


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def db(tmp_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """Fresh heatmap.db in a temp directory."""
    conn = init_db(hot_zone=str(tmp_path))
    yield conn
    conn.close()


# ---------------------------------------------------------------------------
# Schema / lifecycle
# ---------------------------------------------------------------------------


class TestSchema:
    def test_init_creates_tables(self, db: sqlite3.Connection) -> None:
        tables = {
            row[0]
            for row in db.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            ).fetchall()
        }
        assert {"workspace_state", "run_meta"}.issubset(tables)

    def test_init_idempotent(self, db: sqlite3.Connection, tmp_path: Path) -> None:
        set_state(db, "/repo", {"version": 1, "profiles": {}})
        conn2 = init_db(hot_zone=str(tmp_path))
        assert get_state(conn2, "/repo") == {"version": 1, "profiles": {}}
        conn2.close()


class TestLifecycle:
    def test_db_path_explicit(self, tmp_path: Path) -> None:
        assert db_path(str(tmp_path)) == tmp_path / "heatmap.db"

    def test_db_path_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HEATMAP_HOT_ZONE", str(tmp_path / "hz"))
        assert db_path() == tmp_path / "hz" / "heatmap.db"

    def test_exists_and_reset(self, tmp_path: Path) -> None:
        hz = str(tmp_path / "hz")
        assert not db_exists(hz)
        init_db(hz).close()
        assert db_exists(hz)
        assert reset_db(hz)
        assert not db_exists(hz)
        assert not reset_db(hz)


# ---------------------------------------------------------------------------
# workspace_state
# ---------------------------------------------------------------------------


class TestWorkspaceState:
    def test_missing_is_none(self, db: sqlite3.Connection) -> None:
        assert get_state(db, "/repo") is None

    def test_set_get_round_trip(self, db: sqlite3.Connection) -> None:
        blob = {"version": 1, "profiles": {"a.py": {"identity": "x"}}}
        set_state(db, "/repo", blob)
        assert get_state(db, "/repo") == blob

    def test_set_replaces(self, db: sqlite3.Connection) -> None:
        set_state(db, "/repo", {"a": 1})
        set_state(db, "/repo", {"b": 2})
        assert get_state(db, "/repo") == {"b": 2}

    def test_corrupt_blob_reads_empty(self, db: sqlite3.Connection) -> None:
        db.execute(
            "INSERT INTO workspace_state (workspace, blob, updated_at) VALUES (?, ?, ?)",
            ("/repo", "{not json", "now"),
        )
        db.commit()
        assert get_state(db, "/repo") == {}

    def test_store_round_trips_cache(self, db: sqlite3.Connection) -> None:
        store = SqliteStateStore(db)
        cache = ChurnCache()
        cache.merge("a.py", FileChurnProfile.build("sha1", [5, 12, 3], 20))
        cache.merge("b.py", FileChurnProfile.build(b"\x00\x01", [1, 1], 2))
        cache.save(store, "/repo")
        restored = ChurnCache.load(store, "/repo")
        assert restored.items() == cache.items()

    def test_store_first_use_initialises(self, db: sqlite3.Connection) -> None:
        cache = ChurnCache.load(SqliteStateStore(db), "/repo")
        assert len(cache) == 0
        assert get_state(db, "/repo") == {"version": 1, "profiles": {}}


# ---------------------------------------------------------------------------
# run_meta
# ---------------------------------------------------------------------------


class TestRunMeta:
    def test_record_and_latest(self, db: sqlite3.Connection) -> None:
        report = CycleReport(outcome=Outcome.DONE, computed=3, failed=["x.py"],
                             duration_ms=42)
        run_id = record_run(db, "/repo", report)
        run = latest_run(db, "/repo")
        assert run is not None
        assert run["id"] == run_id
        assert run["outcome"] == "done"
        assert run["computed"] == 3
        assert run["failed"] == 1
        assert run["duration_ms"] == 42

    def test_latest_none(self, db: sqlite3.Connection) -> None:
        assert latest_run(db, "/repo") is None

    def test_retention(self, db: sqlite3.Connection) -> None:
        for _ in range(15):
            record_run(db, "/repo", CycleReport())
        record_run(db, "/other", CycleReport(outcome=Outcome.NO_DATA))
        count = db.execute(
            "SELECT COUNT(*) FROM run_meta WHERE workspace = ?", ("/repo",),
        ).fetchone()[0]
        assert count == 10
        other = latest_run(db, "/other")
        assert other is not None and other["outcome"] == "no_data"
