"""Heatmap configuration.

Precedence (lowest first): defaults, .heatmap/heatmap.conf in the repo,
environment (HEATMAP_HOT_ZONE, HEATMAP_GIT_ARGS), CLI flags.

Config file format: sections of one value per line, # comments and blank
lines ignored.

    [include]
    src/*.py

    [exclude]
    enabled = true
    tests/fixtures/*

    [git]
    args = --since=1.year --no-merges

    [cache]
    prune = false
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

from .git_metrics import parse_extra_args

log = logging.getLogger(__name__)

CONFIG_RELPATH = Path(".heatmap") / "heatmap.conf"

DEFAULT_INCLUDE = ["*"]

# Generated or vendored files whose history says nothing about defects
DEFAULT_EXCLUDE = [
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "uv.lock",
    "Cargo.lock",
    "go.sum",
    "node_modules/*",
    "vendor/*",
    "dist/*",
    "build/*",
]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(value: str, default: bool) -> bool:
    v = value.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    log.warning("Ignoring non-boolean config value %r", value)
    return default


@dataclass
class HeatmapConfig:
    include: list[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE))
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE))
    enable_exclude: bool = True
    extra_git_args: str = ""
    prune_missing: bool = False
    hot_zone: str | None = None
    watch_interval: float = 2.0   # seconds between .git/index polls

    @property
    def effective_exclude(self) -> list[str]:
        return list(self.exclude) if self.enable_exclude else []

    def workspace_key(self, repo: str | Path) -> str:
        """Persistence key for repo's cache under the current history filter.

        Churn counted with one set of git log args is not valid under another,
        so each filter gets its own cache.
        """
        args = parse_extra_args(self.extra_git_args)
        if not args:
            return str(repo)
        return f"{repo}\0{' '.join(args)}"

    def with_overrides(
        self,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
        extra_git_args: str | None = None,
        prune_missing: bool | None = None,
        hot_zone: str | None = None,
        watch_interval: float | None = None,
    ) -> HeatmapConfig:
        """Copy with CLI overrides applied. CLI excludes add to config ones."""
        cfg = replace(self)
        if include:
            cfg.include = list(include)
        if exclude:
            cfg.exclude = list(self.exclude) + list(exclude)
        if extra_git_args is not None:
            cfg.extra_git_args = extra_git_args
        if prune_missing is not None:
            cfg.prune_missing = prune_missing
        if hot_zone:
            cfg.hot_zone = hot_zone
        if watch_interval is not None:
            cfg.watch_interval = watch_interval
        return cfg


def parse_config_text(text: str, base: HeatmapConfig | None = None) -> HeatmapConfig:
    """Apply a heatmap.conf body on top of base (defaults if None)."""
    cfg = replace(base) if base is not None else HeatmapConfig()
    include: list[str] = []
    exclude: list[str] = []
    section = ""
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("["):
            section = line.strip("[]").strip().lower()
            continue
        key, sep, value = line.partition("=")
        key = key.strip().lower()
        value = value.strip()
        if section == "include":
            include.append(line)
        elif section == "exclude":
            if sep and key == "enabled":
                cfg.enable_exclude = _parse_bool(value, cfg.enable_exclude)
            else:
                exclude.append(line)
        elif section == "git" and sep and key == "args":
            cfg.extra_git_args = value
        elif section == "cache" and sep and key == "prune":
            cfg.prune_missing = _parse_bool(value, cfg.prune_missing)
        elif section == "watch" and sep and key == "interval":
            try:
                cfg.watch_interval = float(value)
            except ValueError:
                log.warning("Ignoring invalid watch interval %r", value)
        else:
            log.debug("Ignoring config line %r in section [%s]", line, section)
    if include:
        cfg.include = include
    if exclude:
        cfg.exclude = list(cfg.exclude) + exclude
    return cfg


def load_config(repo: str | Path) -> HeatmapConfig:
    """Defaults + repo config file + environment."""
    cfg = HeatmapConfig()
    conf = Path(repo) / CONFIG_RELPATH
    if conf.exists():
        cfg = parse_config_text(conf.read_text(encoding="utf-8"), cfg)

    env_args = os.environ.get("HEATMAP_GIT_ARGS")
    if env_args is not None:
        cfg.extra_git_args = env_args
    env_hz = os.environ.get("HEATMAP_HOT_ZONE", "")
    if env_hz:
        cfg.hot_zone = env_hz
    return cfg
