"""Core domain models for memory curation.

These are pure data structures. Drafts and their parameters are frozen:
stages never mutate a draft, they emit a replacement built with
``with_params`` or ``with_members``.
"""

import hashlib
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from memory_curation.domain.types import DayCategory
from memory_curation.telemetry import CurationTelemetry


def normalize_members(members: Iterable[int]) -> Tuple[int, ...]:
    """Sorted, deduplicated member ids."""
    return tuple(sorted(set(int(m) for m in members)))


def fingerprint(members: Iterable[int]) -> str:
    """Stable hash of the sorted, deduplicated member-id set."""
    joined = ",".join(str(m) for m in normalize_members(members))
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TimeRange:
    """Capture time window of a draft."""
    start: datetime
    end: datetime

    def is_valid(self, min_valid_year: int) -> bool:
        if self.end < self.start:
            return False
        return self.start.year >= min_valid_year and self.end.year >= min_valid_year


@dataclass(frozen=True)
class SubStoryRef:
    """Back-reference from a sub-story to its container, resolved by fingerprint."""
    algorithm: str
    fingerprint: str
    priority: int = 0


@dataclass(frozen=True)
class SubStoryEntry:
    """Summary of a nested draft, stored on its container."""
    algorithm: str
    priority: int
    score: float
    member_count: int
    fingerprint: str
    classification: Optional[str] = None


@dataclass(frozen=True)
class DaySegment:
    """Per-day summary an upstream strategy attaches to a multi-day draft."""
    score: float = 0.0
    category: str = DayCategory.PERIPHERAL.value
    duration: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.category, DayCategory):
            object.__setattr__(self, "category", self.category.value)
        if self.category not in {c.value for c in DayCategory}:
            raise ValueError(f"Unknown day category: {self.category!r}")


@dataclass(frozen=True)
class MemberSelectionResult:
    """Curated member list plus write-only selection diagnostics."""
    member_ids: Tuple[int, ...] = ()
    telemetry: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return len(self.member_ids) == 0


@dataclass(frozen=True)
class DraftParams:
    """Typed annotations accumulated on a draft across stages."""
    score: Optional[float] = None
    classification: Optional[str] = None
    time_range: Optional[TimeRange] = None
    quality_avg: Optional[float] = None
    faces_count: Optional[int] = None

    # Nesting annotations
    has_sub_stories: bool = False
    sub_stories: Tuple[SubStoryEntry, ...] = ()
    is_sub_story: bool = False
    sub_story_priority: Optional[int] = None
    sub_story_of: Optional[SubStoryRef] = None

    # Day key (YYYY-MM-DD) -> segment, for drafts spanning several days
    day_segments: Mapping[str, DaySegment] = field(default_factory=dict)

    member_selection: Optional[MemberSelectionResult] = None

    # Upstream annotations (POI labels, storyline, ...)
    extras: Mapping[str, Any] = field(default_factory=dict)

    def merge(self, **changes) -> "DraftParams":
        return replace(self, **changes)


@dataclass(frozen=True)
class ClusterDraft:
    """Candidate memory cluster produced by an upstream strategy."""
    algorithm: str
    members: Tuple[int, ...]
    params: DraftParams = field(default_factory=DraftParams)
    centroid: Optional[Tuple[float, float]] = None
    cover_media_id: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "members", tuple(int(m) for m in self.members))

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.members)

    @property
    def unique_members(self) -> frozenset:
        return frozenset(self.members)

    @property
    def size(self) -> int:
        return len(self.unique_members)

    @property
    def score(self) -> float:
        """Draft score, 0.0 when the producing strategy left it unset."""
        if self.params.score is None:
            return 0.0
        return float(self.params.score)

    def with_params(self, **changes) -> "ClusterDraft":
        """Return a copy with the given parameter fields replaced."""
        return replace(self, params=self.params.merge(**changes))

    def with_members(self, members: Iterable[int]) -> "ClusterDraft":
        return replace(self, members=tuple(members))

    def is_sub_story_of(self, other: "ClusterDraft") -> bool:
        """True when this draft carries a back-reference to ``other``."""
        ref = self.params.sub_story_of
        if not self.params.is_sub_story or ref is None:
            return False
        return ref.algorithm == other.algorithm and ref.fingerprint == other.fingerprint


@dataclass(frozen=True)
class MediaRecord:
    """Pre-resolved media metadata as delivered by the lookup collaborator."""
    id: int
    created_at: datetime
    taken_at: Optional[datetime] = None
    gps_lat: Optional[float] = None
    gps_lon: Optional[float] = None
    phash: Optional[str] = None
    burst_id: Optional[str] = None
    person_ids: Optional[Tuple[str, ...]] = None
    has_faces: bool = False
    faces_count: int = 0
    is_video: bool = False
    quality_score: Optional[float] = None
    no_show: bool = False
    low_quality: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    is_panorama: Optional[bool] = None
    scene_tags: Tuple[str, ...] = ()

    @property
    def timestamp(self) -> datetime:
        """Capture time, falling back to the record creation time."""
        return self.taken_at if self.taken_at is not None else self.created_at

    @property
    def has_gps(self) -> bool:
        return self.gps_lat is not None and self.gps_lon is not None


@dataclass
class CurationResult:
    """
    Output of one curation pass.

    ``drafts`` are the consolidated drafts carrying their curated members;
    ``dropped_empty`` lists fingerprints of drafts whose selection was empty.
    """
    drafts: List[ClusterDraft]
    input_count: int
    consolidated_count: int
    dropped_empty: List[str] = field(default_factory=list)
    run_id: Optional[str] = None
    telemetry: Optional[CurationTelemetry] = None

    @property
    def kept_count(self) -> int:
        return len(self.drafts)
