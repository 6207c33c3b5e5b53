"""Churn heatmap -- per-line git churn as an incrementally updated cache.

For every tracked file, counts the commits that touched each line and the
file as a whole, caches the result keyed by content identity, and ranks
the hottest lines and files. Zero external dependencies beyond Python
stdlib + git CLI.

Modules:
  - models: Data classes (FileChurnProfile, RankingIndex, CycleReport) and errors
  - git_metrics: Change history queries via subprocess + git
  - churn: Per-file churn computation, cancellation token
  - cache: Incremental cache controller (staleness, merge, persistence)
  - ranking: Hottest-lines / hottest-files views
  - temperature: Churn fraction -> blue/green/red color
  - orchestrator: Single-flight generate_heatmap() cycle
  - db: heatmap.db schema and workspace state storage
  - discovery, config, watcher: collaborators used by the CLI
"""

from __future__ import annotations
