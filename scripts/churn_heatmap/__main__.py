"""CLI entry point for the churn heatmap.

Usage:
  python -m churn_heatmap generate [path]        # Incremental heatmap build
  python -m churn_heatmap generate --json        # JSON cycle summary
  python -m churn_heatmap lines --top=N          # Hottest individual lines
  python -m churn_heatmap files --top=N          # Hottest whole files
  python -m churn_heatmap show FILE              # File with colored churn gutter
  python -m churn_heatmap watch [path]           # Regenerate on .git/index change
  python -m churn_heatmap reset                  # Delete heatmap.db
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sqlite3
import subprocess
import sys
from pathlib import Path

from churn_heatmap.cache import ChurnCache
from churn_heatmap.churn import read_lines
from churn_heatmap.config import HeatmapConfig, load_config
from churn_heatmap.db import (
    SqliteStateStore,
    db_exists,
    db_path,
    get_state,
    init_db,
    latest_run,
    record_run,
    reset_db,
)
from churn_heatmap.discovery import GitFileDiscovery
from churn_heatmap.git_metrics import GitHistoryProvider, git_index_path
from churn_heatmap.models import GitQueryError, Outcome, RankingIndex
from churn_heatmap.orchestrator import HeatmapOrchestrator
from churn_heatmap.ranking import build_rankings, rank_summary
from churn_heatmap.temperature import temperature
from churn_heatmap.watcher import GitIndexWatcher

log = logging.getLogger(__name__)

NO_DATA_MESSAGE = (
    "Couldn't gather sufficient data to generate a heatmap with current "
    "settings. File matching settings or extra git command args may be too "
    "strict."
)

_RESET = "\x1b[0m"

# ---------------------------------------------------------------------------
# Path / config resolution
# ---------------------------------------------------------------------------


def _resolve_repo(path: str | None) -> str:
    """Resolve the target repository root.

    Uses the given path, or REPO_ROOT env, or git rev-parse.
    """
    if path:
        return str(Path(path).resolve())

    repo_root = os.environ.get("REPO_ROOT", "")
    if repo_root:
        return repo_root

    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()
    except (subprocess.CalledProcessError, FileNotFoundError):
        return os.getcwd()


def _config_from_args(repo: str, args: argparse.Namespace) -> HeatmapConfig:
    cfg = load_config(repo)
    return cfg.with_overrides(
        include=getattr(args, "include", None),
        exclude=getattr(args, "exclude", None),
        extra_git_args=getattr(args, "git_args", None),
        prune_missing=True if getattr(args, "prune", False) else None,
        hot_zone=args.hot_zone,
        watch_interval=getattr(args, "interval", None),
    )


def _build_orchestrator(repo: str, cfg: HeatmapConfig, conn: sqlite3.Connection,
                        presenters: list | None = None) -> HeatmapOrchestrator:
    return HeatmapOrchestrator(
        repo=repo,
        provider=GitHistoryProvider(repo, cfg.extra_git_args),
        discovery=GitFileDiscovery(repo, cfg.include, cfg.effective_exclude),
        store=SqliteStateStore(conn),
        workspace=cfg.workspace_key(repo),
        presenters=presenters or [],
        prune_missing=cfg.prune_missing,
    )


def _load_snapshot(hot_zone: str | None,
                   workspace: str) -> tuple[ChurnCache, RankingIndex] | None:
    """Read-only view of the persisted cache, or None if nothing is stored."""
    if not db_exists(hot_zone):
        print("No heatmap.db — run 'churn_heatmap generate' first.", file=sys.stderr)
        return None
    conn = init_db(hot_zone)
    try:
        cache = ChurnCache.from_dict(get_state(conn, workspace))
    finally:
        conn.close()
    rankings = build_rankings(cache)
    if rankings.is_empty:
        print(NO_DATA_MESSAGE, file=sys.stderr)
        return None
    return cache, rankings


# ---------------------------------------------------------------------------
# Presenters
# ---------------------------------------------------------------------------


class TerminalPresenter:
    """Prints a short ranking after each cycle (used by watch)."""

    def __init__(self, top_n: int = 5, stream=None):
        self.top_n = top_n
        self.stream = stream if stream is not None else sys.stdout

    def clear(self) -> None:
        print(NO_DATA_MESSAGE, file=self.stream)

    def render(self, rankings: RankingIndex, cache: ChurnCache) -> None:
        print(f"Heatmap: {len(cache)} files", file=self.stream)
        _print_lines(rankings, self.top_n, stream=self.stream)


def _print_lines(rankings: RankingIndex, top_n: int, stream=None) -> None:
    out = stream if stream is not None else sys.stdout
    max_line = rankings.max_line_churn
    for h in rankings.top_lines(top_n):
        swatch = _swatch(h.churn, max_line)
        print(f"  {swatch} {h.churn:>5}  {h.path}:{h.line_number}", file=out)


def _swatch(value: int, maximum: int) -> str:
    if maximum <= 0:
        return "  "
    return f"{temperature(value, maximum).to_ansi_bg()}  {_RESET}"


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


def cmd_generate(args: argparse.Namespace) -> int:
    """Execute churn_heatmap generate."""
    repo = _resolve_repo(args.path)
    cfg = _config_from_args(repo, args)
    conn = init_db(cfg.hot_zone)
    try:
        orchestrator = _build_orchestrator(repo, cfg, conn)
        outcome = orchestrator.generate_heatmap()
        report = orchestrator.last_report
        if report is not None:
            record_run(conn, cfg.workspace_key(repo), report)
        rankings = orchestrator.rankings
    finally:
        conn.close()

    if args.json:
        output = report.to_dict() if report is not None else {"outcome": outcome.value}
        output["repo"] = repo
        output["files_cached"] = len(rankings.by_hotspot)
        output["max_line_churn"] = rankings.max_line_churn
        output["max_overall_churn"] = rankings.max_overall_churn
        print(json.dumps(output))
    elif outcome is Outcome.NO_DATA:
        print(NO_DATA_MESSAGE, file=sys.stderr)
    elif outcome is Outcome.DONE and report is not None:
        print(f"Heatmap for {repo}", file=sys.stderr)
        print(f"  Files: {report.discovered} discovered, {report.stale} stale, "
              f"{report.computed} recomputed", file=sys.stderr)
        if report.failed:
            print(f"  Failed: {len(report.failed)} (see --verbose)", file=sys.stderr)
        print(f"  Duration: {report.duration_ms / 1000:.1f}s", file=sys.stderr)
        print(f"  Hottest line churn: {rankings.max_line_churn}, "
              f"hottest file churn: {rankings.max_overall_churn}", file=sys.stderr)

    return 0 if outcome is Outcome.DONE else 1


# ---------------------------------------------------------------------------
# lines / files
# ---------------------------------------------------------------------------


def cmd_lines(args: argparse.Namespace) -> int:
    """Hottest individual lines across the cache."""
    repo = _resolve_repo(args.path)
    cfg = _config_from_args(repo, args)
    snap = _load_snapshot(cfg.hot_zone, cfg.workspace_key(repo))
    if snap is None:
        return 1
    _, rankings = snap
    if args.json:
        print(json.dumps(rank_summary(rankings, args.top)["lines"], indent=2))
        return 0
    print(f"Hottest lines (max churn {rankings.max_line_churn}):")
    _print_lines(rankings, args.top)
    return 0


def cmd_files(args: argparse.Namespace) -> int:
    """Hottest whole files across the cache."""
    repo = _resolve_repo(args.path)
    cfg = _config_from_args(repo, args)
    snap = _load_snapshot(cfg.hot_zone, cfg.workspace_key(repo))
    if snap is None:
        return 1
    _, rankings = snap
    summary = rank_summary(rankings, args.top)
    if args.json:
        print(json.dumps(summary["files"], indent=2))
        return 0
    max_file = rankings.max_overall_churn
    print(f"Hottest files (max churn {max_file}):")
    for item in summary["files"]:
        swatch = _swatch(item["overall_churn"], max_file)
        print(f"  {swatch} {item['overall_churn']:>5}  {item['path']}"
              f"  (hottest L{item['hottest_line']}: {item['hottest_line_churn']})")
    conn = init_db(cfg.hot_zone)
    run = latest_run(conn, cfg.workspace_key(repo))
    conn.close()
    if run:
        print(f"\nLast run: {run['finished_at']} ({run['outcome']})")
    return 0


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


def cmd_show(args: argparse.Namespace) -> int:
    """Print a file with a per-line churn gutter colored by temperature."""
    repo = _resolve_repo(args.repo)
    target = Path(args.file)
    abs_path = target if target.is_absolute() else Path.cwd() / target
    try:
        rel = abs_path.resolve().relative_to(Path(repo).resolve()).as_posix()
    except ValueError:
        print(f"{args.file} is outside {repo}", file=sys.stderr)
        return 1

    cfg = _config_from_args(repo, args)
    snap = _load_snapshot(cfg.hot_zone, cfg.workspace_key(repo))
    if snap is None:
        return 1
    cache, rankings = snap
    profile = cache.get(rel)
    if profile is None:
        print(f"No heatmap data for {rel}", file=sys.stderr)
        return 1
    lines = read_lines(abs_path)
    if lines is None:
        print(f"Cannot read {rel}", file=sys.stderr)
        return 1
    if len(lines) != profile.line_count:
        print(f"Warning: {rel} changed since the last heatmap; "
              f"run 'churn_heatmap generate'", file=sys.stderr)

    max_line = rankings.max_line_churn
    for i, text in enumerate(lines):
        if i >= profile.line_count:
            print(f"{'':>5}  {text}")
            continue
        churn = profile.line_churn[i]
        if args.no_color or max_line <= 0:
            print(f"{churn:>5}  {text}")
        else:
            bg = temperature(churn, max_line).to_ansi_bg()
            print(f"{bg}{churn:>5}{_RESET}  {text}")
    return 0


# ---------------------------------------------------------------------------
# watch / reset
# ---------------------------------------------------------------------------


def cmd_watch(args: argparse.Namespace) -> int:
    """Generate once, then regenerate whenever .git/index changes."""
    repo = _resolve_repo(args.path)
    cfg = _config_from_args(repo, args)
    try:
        index = git_index_path(repo)
    except GitQueryError as exc:
        print(f"Not a git repository: {exc}", file=sys.stderr)
        return 1

    conn = init_db(cfg.hot_zone)
    orchestrator = _build_orchestrator(
        repo, cfg, conn, presenters=[TerminalPresenter(top_n=args.top)])
    orchestrator.generate_heatmap()
    watcher = GitIndexWatcher(index, orchestrator.generate_heatmap, cfg.watch_interval)
    watcher.start()
    try:
        watcher.wait()
    except KeyboardInterrupt:
        orchestrator.cancel()
    finally:
        watcher.stop(timeout=cfg.watch_interval * 2)
        conn.close()
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    """Delete heatmap.db."""
    if reset_db(args.hot_zone):
        print(f"Deleted {db_path(args.hot_zone)}", file=sys.stderr)
    else:
        print(f"No heatmap.db found at {db_path(args.hot_zone)}", file=sys.stderr)
    return 0


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def _add_filter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--include", action="append", default=[],
                   help="Only files matching glob (repeatable)")
    p.add_argument("--exclude", action="append", default=[],
                   help="Exclude files matching glob (repeatable)")
    p.add_argument("--git-args", dest="git_args", default=None,
                   help="Extra git log filter, e.g. '--since=1.year'")
    p.add_argument("--prune", action="store_true",
                   help="Drop cached files no longer discovered")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="churn_heatmap",
        description="Per-line git churn heatmap",
    )
    parser.add_argument(
        "--hot-zone",
        dest="hot_zone",
        help="heatmap.db directory (default: $HEATMAP_HOT_ZONE or /dev/shm/churn_heatmap)",
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")

    sub = parser.add_subparsers(dest="command")

    gen = sub.add_parser("generate", help="Build or refresh the heatmap")
    gen.add_argument("path", nargs="?", help="Repository (default: git root of cwd)")
    gen.add_argument("--json", action="store_true", help="JSON output")
    _add_filter_args(gen)

    for name, helptext in (("lines", "Hottest individual lines"),
                           ("files", "Hottest whole files")):
        p = sub.add_parser(name, help=helptext)
        p.add_argument("path", nargs="?", help="Repository (default: git root of cwd)")
        p.add_argument("--top", type=int, default=10,
                       help="Number of results (default: 10)")
        p.add_argument("--json", action="store_true", help="JSON output")
        p.add_argument("--git-args", dest="git_args", default=None,
                       help="History filter the heatmap was generated with")

    show = sub.add_parser("show", help="Print a file with its churn gutter")
    show.add_argument("file", help="File to show")
    show.add_argument("--repo", default=None, help="Repository (default: git root of cwd)")
    show.add_argument("--no-color", dest="no_color", action="store_true",
                      help="Plain numbers, no ANSI colors")
    show.add_argument("--git-args", dest="git_args", default=None,
                      help="History filter the heatmap was generated with")

    watch = sub.add_parser("watch", help="Regenerate when .git/index changes")
    watch.add_argument("path", nargs="?", help="Repository (default: git root of cwd)")
    watch.add_argument("--interval", type=float, default=None,
                       help="Seconds between polls (default: 2)")
    watch.add_argument("--top", type=int, default=5,
                       help="Lines printed after each run (default: 5)")
    _add_filter_args(watch)

    sub.add_parser("reset", help="Delete heatmap.db for recovery")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for churn_heatmap."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    if args.command == "generate":
        return cmd_generate(args)
    if args.command == "lines":
        return cmd_lines(args)
    if args.command == "files":
        return cmd_files(args)
    if args.command == "show":
        return cmd_show(args)
    if args.command == "watch":
        return cmd_watch(args)
    if args.command == "reset":
        return cmd_reset(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
