"""heatmap.db schema, lifecycle, and workspace state storage.

SQLite DB at $HEATMAP_HOT_ZONE/heatmap.db. Never synced to git, never
tracked, fully rebuildable from source + git.

Schema:
  - workspace_state: opaque JSON cache blob per workspace (repo root)
  - run_meta: one row per completed heatmap cycle

Retention: last 10 runs per workspace. Older runs auto-deleted.
Recovery: delete heatmap.db entirely (churn_heatmap reset).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Any

from .models import CycleReport

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """
PRAGMA journal_mode = WAL;
PRAGMA synchronous = NORMAL;
PRAGMA temp_store = MEMORY;

-- Cache blob per workspace (opaque to the DB)
CREATE TABLE IF NOT EXISTS workspace_state (
    workspace   TEXT PRIMARY KEY,
    blob        TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

-- Completed heatmap cycles
CREATE TABLE IF NOT EXISTS run_meta (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    workspace   TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    outcome     TEXT NOT NULL,
    computed    INTEGER,
    failed      INTEGER,
    duration_ms INTEGER
);

CREATE INDEX IF NOT EXISTS idx_run_workspace ON run_meta(workspace, id DESC);
"""

# Maximum number of runs to retain per workspace
_MAX_RUNS = 10

DB_NAME = "heatmap.db"


# ---------------------------------------------------------------------------
# Database lifecycle
# ---------------------------------------------------------------------------


def _resolve_db_path(hot_zone: str | None = None) -> Path:
    """Resolve heatmap.db path from HEATMAP_HOT_ZONE or explicit path."""
    if hot_zone:
        return Path(hot_zone) / DB_NAME

    env_hz = os.environ.get("HEATMAP_HOT_ZONE", "")
    if env_hz:
        return Path(env_hz) / DB_NAME

    # Fallback: /dev/shm/churn_heatmap or /tmp/churn_heatmap
    base = "/dev/shm/churn_heatmap" if Path("/dev/shm").exists() else "/tmp/churn_heatmap"
    return Path(base) / DB_NAME


def init_db(hot_zone: str | None = None) -> sqlite3.Connection:
    """Initialise heatmap.db, creating schema if needed.

    Returns an open connection. The caller is responsible for closing it.
    """
    resolved = _resolve_db_path(hot_zone)
    resolved.parent.mkdir(parents=True, exist_ok=True)

    # check_same_thread=False: the index watcher runs cycles off the main thread
    conn = sqlite3.connect(str(resolved), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.executescript(_SCHEMA)
    log.debug("heatmap.db initialised at %s", resolved)
    return conn


def db_path(hot_zone: str | None = None) -> Path:
    """Return the resolved heatmap.db path (may not exist yet)."""
    return _resolve_db_path(hot_zone)


def db_exists(hot_zone: str | None = None) -> bool:
    return _resolve_db_path(hot_zone).exists()


def reset_db(hot_zone: str | None = None) -> bool:
    """Delete heatmap.db entirely. Returns True if a file was removed."""
    p = _resolve_db_path(hot_zone)
    if not p.exists():
        return False
    p.unlink()
    for suffix in ("-wal", "-shm"):
        side = p.with_name(p.name + suffix)
        if side.exists():
            side.unlink()
    log.info("Deleted heatmap.db at %s", p)
    return True


# ---------------------------------------------------------------------------
# workspace_state
# ---------------------------------------------------------------------------


def get_state(conn: sqlite3.Connection, workspace: str) -> dict[str, Any] | None:
    """Stored blob for workspace, or None on first use."""
    row = conn.execute(
        "SELECT blob FROM workspace_state WHERE workspace = ?", (workspace,),
    ).fetchone()
    if not row:
        return None
    try:
        blob = json.loads(row["blob"])
    except json.JSONDecodeError:
        log.warning("Corrupt cache blob for %s, starting empty", workspace)
        return {}
    return blob if isinstance(blob, dict) else {}


def set_state(conn: sqlite3.Connection, workspace: str,
              blob: dict[str, Any]) -> None:
    """Insert or replace the blob for workspace. Commits."""
    conn.execute(
        """INSERT INTO workspace_state (workspace, blob, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(workspace) DO UPDATE SET
            blob=excluded.blob, updated_at=excluded.updated_at
        """,
        (workspace, json.dumps(blob, separators=(",", ":")),
         time.strftime("%Y-%m-%dT%H:%M:%S")),
    )
    conn.commit()


class SqliteStateStore:
    """StateStore over an open heatmap.db connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_state(self, workspace: str) -> dict[str, Any] | None:
        return get_state(self.conn, workspace)

    def set_state(self, workspace: str, blob: dict[str, Any]) -> None:
        set_state(self.conn, workspace, blob)


# ---------------------------------------------------------------------------
# run_meta
# ---------------------------------------------------------------------------


def record_run(conn: sqlite3.Connection, workspace: str,
               report: CycleReport) -> int:
    """Record a finished cycle, prune old runs beyond retention.

    Returns the new run id.
    """
    cur = conn.execute(
        """INSERT INTO run_meta
            (workspace, finished_at, outcome, computed, failed, duration_ms)
        VALUES (?, ?, ?, ?, ?, ?)""",
        (workspace, time.strftime("%Y-%m-%dT%H:%M:%S"), report.outcome.value,
         report.computed, len(report.failed), report.duration_ms),
    )
    run_id = cur.lastrowid
    assert run_id is not None

    conn.execute(
        """DELETE FROM run_meta WHERE workspace = ? AND id NOT IN (
            SELECT id FROM run_meta WHERE workspace = ? ORDER BY id DESC LIMIT ?
        )""",
        (workspace, workspace, _MAX_RUNS),
    )
    conn.commit()
    return run_id


def latest_run(conn: sqlite3.Connection, workspace: str) -> dict[str, Any] | None:
    """Most recent run row for workspace as a dict, or None."""
    row = conn.execute(
        "SELECT * FROM run_meta WHERE workspace = ? ORDER BY id DESC LIMIT 1",
        (workspace,),
    ).fetchone()
    return dict(row) if row else None
