"""Ranking builder -- hottest lines and hottest files.

Full rebuild on every call. sorted() is stable, so entries with equal keys
keep the cache's iteration order and repeated builds do not jitter.
"""

from __future__ import annotations

from .cache import ChurnCache
from .models import RankedEntry, RankingIndex


def build_rankings(cache: ChurnCache) -> RankingIndex:
    """Derive by-hotspot and by-overall views from the cache.

    An empty cache gives an empty index (the "insufficient data" signal).
    """
    entries = [RankedEntry(path=p, profile=prof) for p, prof in cache.items()]
    if not entries:
        return RankingIndex()
    by_hotspot = sorted(entries, key=lambda e: e.profile.hottest_line_value,
                        reverse=True)
    by_overall = sorted(entries, key=lambda e: e.profile.overall_churn,
                        reverse=True)
    return RankingIndex(by_hotspot=tuple(by_hotspot), by_overall=tuple(by_overall))


def rank_summary(rankings: RankingIndex, top_n: int = 10) -> dict:
    """Report dict for CLI text and --json output."""
    max_line = rankings.max_line_churn
    max_file = rankings.max_overall_churn
    return {
        "lines": [
            {
                "path": h.path,
                "line": h.line_number,
                "churn": h.churn,
                "fraction": round(h.churn / max_line, 4) if max_line else 0.0,
            }
            for h in rankings.top_lines(top_n)
        ],
        "files": [
            {
                "path": e.path,
                "overall_churn": e.profile.overall_churn,
                "hottest_line": e.profile.hottest_line_index,
                "hottest_line_churn": e.profile.hottest_line_value,
                "fraction": (round(e.profile.overall_churn / max_file, 4)
                             if max_file else 0.0),
            }
            for e in rankings.by_overall[:top_n]
        ],
        "total_files": len(rankings.by_hotspot),
        "max_line_churn": max_line,
        "max_overall_churn": max_file,
    }
