"""Incremental cache controller.

Owns the path -> FileChurnProfile mapping and is its only writer.
Entries are replaced whole; there is no field-level merge.

Persisted blob shape (opaque to the store):
    {"version": 1, "profiles": {path: FileChurnProfile.to_dict(), ...}}
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from .models import (
    ContentIdentity,
    FileChurnProfile,
    InvalidProfileError,
    StateStore,
)

log = logging.getLogger(__name__)

CACHE_VERSION = 1


class ChurnCache:
    """Repository churn cache with staleness checks."""

    def __init__(self, profiles: dict[str, FileChurnProfile] | None = None):
        self._profiles: dict[str, FileChurnProfile] = dict(profiles or {})

    # -- staleness / merge --------------------------------------------------

    def is_stale(self, path: str, current_identity: ContentIdentity) -> bool:
        """True iff there is no entry for path or its identity differs."""
        profile = self._profiles.get(path)
        if profile is None:
            return True
        return profile.content_identity != current_identity

    def merge(self, path: str, profile: FileChurnProfile) -> None:
        """Replace any existing entry for path."""
        self._profiles[path] = profile

    def copy(self) -> ChurnCache:
        """Shallow copy; profiles are shared, never mutated in place."""
        return ChurnCache(self._profiles)

    def prune(self, keep_paths: Iterable[str]) -> list[str]:
        """Drop entries not in keep_paths. Returns the removed paths."""
        keep = set(keep_paths)
        removed = sorted(p for p in self._profiles if p not in keep)
        for p in removed:
            del self._profiles[p]
        if removed:
            log.info("Pruned %d vanished file(s) from churn cache", len(removed))
        return removed

    # -- read access --------------------------------------------------------

    def get(self, path: str) -> FileChurnProfile | None:
        return self._profiles.get(path)

    def paths(self) -> list[str]:
        return list(self._profiles)

    def items(self) -> list[tuple[str, FileChurnProfile]]:
        return list(self._profiles.items())

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, path: object) -> bool:
        return path in self._profiles

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._profiles))

    # -- persistence --------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": CACHE_VERSION,
            "profiles": {p: prof.to_dict() for p, prof in self._profiles.items()},
        }

    @classmethod
    def from_dict(cls, blob: dict[str, Any] | None) -> ChurnCache:
        """Rebuild from a persisted blob. Invalid records are dropped."""
        if not blob:
            return cls()
        if blob.get("version") != CACHE_VERSION:
            log.warning("Discarding churn cache with unknown version %r",
                        blob.get("version"))
            return cls()
        profiles: dict[str, FileChurnProfile] = {}
        for path, record in (blob.get("profiles") or {}).items():
            try:
                profiles[path] = FileChurnProfile.from_dict(record)
            except InvalidProfileError as exc:
                log.warning("Dropping invalid cache entry for %s: %s", path, exc)
        return cls(profiles)

    @classmethod
    def load(cls, store: StateStore, workspace: str) -> ChurnCache:
        """Load the cache for workspace, initialising an empty one first use."""
        blob = store.get_state(workspace)
        if blob is None:
            cache = cls()
            store.set_state(workspace, cache.to_dict())
            return cache
        return cls.from_dict(blob)

    def save(self, store: StateStore, workspace: str) -> None:
        store.set_state(workspace, self.to_dict())
