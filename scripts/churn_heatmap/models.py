"""Data models for the churn heatmap.

Zero external dependencies -- pure Python dataclasses.

  - FileChurnProfile: per-line + whole-file churn for one tracked file
  - RankedEntry / RankingIndex: derived views, never persisted
  - CycleReport: counters for one generate_heatmap() cycle
  - Outcome / HeatmapState: orchestrator results and states
  - Protocols for the collaborators the core consumes
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, Union

if TYPE_CHECKING:
    from .cache import ChurnCache

ContentIdentity = Union[str, bytes]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class HeatmapError(Exception):
    """Base class for churn heatmap errors."""


class GitQueryError(HeatmapError):
    """A change-history query failed (git exited non-zero, timed out, ...)."""


class InvalidProfileError(HeatmapError):
    """A churn profile violates its invariants."""


class HeatmapCancelled(HeatmapError):
    """Raised at a cancellation checkpoint inside a cycle."""


class TemperatureError(HeatmapError, ValueError):
    """A churn fraction outside [0, 1] reached the temperature mapper."""


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


def hottest_line(line_churn: Sequence[int]) -> tuple[int, int]:
    """Return (max value, 1-based index of its first occurrence).

    Raises ValueError on an empty sequence.
    """
    if not line_churn:
        raise ValueError("hottest_line() of an empty churn sequence")
    best_index = 0
    for i, value in enumerate(line_churn):
        if value > line_churn[best_index]:
            best_index = i
    return line_churn[best_index], best_index + 1


@dataclass
class FileChurnProfile:
    """Churn for a single tracked file at one content identity.

    Maps to one entry of the persisted cache blob.
    """

    content_identity: ContentIdentity
    line_churn: list[int]
    hottest_line_value: int
    hottest_line_index: int       # 1-based
    overall_churn: int            # Commits touching the whole file

    @classmethod
    def build(cls, content_identity: ContentIdentity,
              line_churn: Sequence[int], overall_churn: int) -> FileChurnProfile:
        """Assemble a profile, deriving the hottest line fields."""
        value, index = hottest_line(line_churn)
        profile = cls(
            content_identity=content_identity,
            line_churn=list(line_churn),
            hottest_line_value=value,
            hottest_line_index=index,
            overall_churn=overall_churn,
        )
        profile.validate()
        return profile

    @property
    def line_count(self) -> int:
        return len(self.line_churn)

    def validate(self) -> None:
        """Raise InvalidProfileError unless every invariant holds."""
        if not isinstance(self.content_identity, (str, bytes)):
            raise InvalidProfileError(
                f"content identity must be str or bytes, got "
                f"{type(self.content_identity).__name__}")
        if not self.line_churn:
            raise InvalidProfileError("line churn is empty")
        if any(not isinstance(v, int) or v < 0 for v in self.line_churn):
            raise InvalidProfileError("line churn values must be non-negative ints")
        if not isinstance(self.overall_churn, int) or self.overall_churn < 0:
            raise InvalidProfileError("overall churn must be a non-negative int")
        value, index = hottest_line(self.line_churn)
        if (self.hottest_line_value, self.hottest_line_index) != (value, index):
            raise InvalidProfileError(
                f"hottest line is ({value}, {index}), profile says "
                f"({self.hottest_line_value}, {self.hottest_line_index})")

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dict. Bytes identities become hex."""
        if isinstance(self.content_identity, bytes):
            identity, kind = self.content_identity.hex(), "bytes"
        else:
            identity, kind = self.content_identity, "str"
        return {
            "identity": identity,
            "identity_kind": kind,
            "line_churn": list(self.line_churn),
            "hottest_line_value": self.hottest_line_value,
            "hottest_line_index": self.hottest_line_index,
            "overall_churn": self.overall_churn,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FileChurnProfile:
        """Reconstruct from a persisted dict, validating invariants."""
        try:
            identity: ContentIdentity = d["identity"]
            if d.get("identity_kind", "str") == "bytes":
                identity = bytes.fromhex(str(identity))
            profile = cls(
                content_identity=identity,
                line_churn=[int(v) for v in d["line_churn"]],
                hottest_line_value=int(d["hottest_line_value"]),
                hottest_line_index=int(d["hottest_line_index"]),
                overall_churn=int(d["overall_churn"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidProfileError(f"malformed profile record: {exc}") from exc
        profile.validate()
        return profile


# ---------------------------------------------------------------------------
# Rankings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RankedEntry:
    path: str
    profile: FileChurnProfile


@dataclass(frozen=True)
class LineHotspot:
    """A single line, flattened out of a profile for reports."""

    path: str
    line_number: int              # 1-based
    churn: int


@dataclass(frozen=True)
class RankingIndex:
    """The two derived views. Computed, not stored."""

    by_hotspot: tuple[RankedEntry, ...] = ()
    by_overall: tuple[RankedEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.by_hotspot

    @property
    def max_line_churn(self) -> int:
        """Denominator for per-line temperatures (0 when empty)."""
        return self.by_hotspot[0].profile.hottest_line_value if self.by_hotspot else 0

    @property
    def max_overall_churn(self) -> int:
        """Denominator for whole-file temperatures (0 when empty)."""
        return self.by_overall[0].profile.overall_churn if self.by_overall else 0

    def top_lines(self, top_n: int = 10) -> list[LineHotspot]:
        """Hottest individual lines across every ranked file."""
        lines = [
            LineHotspot(path=e.path, line_number=i + 1, churn=c)
            for e in self.by_hotspot
            for i, c in enumerate(e.profile.line_churn)
        ]
        lines.sort(key=lambda h: h.churn, reverse=True)
        return lines[:top_n]


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class Outcome(enum.Enum):
    DONE = "done"
    NO_DATA = "no_data"
    CANCELLED = "cancelled"
    BUSY = "busy"                 # Dropped: another cycle was running


class HeatmapState(enum.Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    COMPUTING = "computing"
    RANKING = "ranking"
    DONE = "done"
    NO_DATA = "no_data"
    CANCELLED = "cancelled"


@dataclass
class CycleReport:
    """Counters for one heatmap cycle."""

    outcome: Outcome = Outcome.DONE
    discovered: int = 0
    stale: int = 0
    computed: int = 0
    failed: list[str] = field(default_factory=list)
    skipped: int = 0              # Untracked, unreadable, or < 2 lines
    pruned: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "discovered": self.discovered,
            "stale": self.stale,
            "computed": self.computed,
            "failed": list(self.failed),
            "skipped": self.skipped,
            "pruned": self.pruned,
            "duration_ms": self.duration_ms,
        }


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class FileDiscovery(Protocol):
    def discover(self) -> list[str]:
        """Candidate file paths, relative to the repository root."""
        ...


class StateStore(Protocol):
    def get_state(self, workspace: str) -> dict[str, Any] | None:
        ...

    def set_state(self, workspace: str, blob: dict[str, Any]) -> None:
        ...


class Presenter(Protocol):
    def clear(self) -> None:
        ...

    def render(self, rankings: RankingIndex, cache: ChurnCache) -> None:
        ...
