"""Rejection counters and distribution summaries for member selection."""

from collections import Counter
from typing import Dict, List, Optional

import numpy as np

from memory_curation.selection.candidates import Candidate
from memory_curation.selection.metrics import SimilarityMetrics

REASON_NO_SHOW = "no_show"
REASON_QUALITY = "quality"
REASON_BURST = "burst"
REASON_DAY_QUOTA = "day_quota"
REASON_TIME_SLOT = "slot"
REASON_SPACING = "spacing"
REASON_STAYPOINT = "staypoint"
REASON_NEAR_DUPLICATE = "near_duplicate"
REASON_YEAR = "year"
REASON_BUCKET = "bucket"
REASON_SIMILARITY = "similarity"
REASON_PEOPLE = "people"

ALL_REASONS = [
    REASON_NO_SHOW, REASON_QUALITY, REASON_BURST, REASON_DAY_QUOTA, REASON_TIME_SLOT,
    REASON_SPACING, REASON_STAYPOINT, REASON_NEAR_DUPLICATE, REASON_YEAR, REASON_BUCKET,
    REASON_SIMILARITY, REASON_PEOPLE,
]


class SelectionTelemetry:
    """Collects rejection reasons during one greedy or diversifier pass."""

    def __init__(self):
        self._reasons: Counter = Counter()
        self.replacements = 0

    def count(self, reason: str, amount: int = 1) -> None:
        self._reasons[reason] += amount

    def reason_counts(self) -> Dict[str, int]:
        return dict(self._reasons)

    def merge(self, other: "SelectionTelemetry") -> None:
        self._reasons.update(other._reasons)
        self.replacements += other.replacements


def empty_rejections() -> Dict[str, int]:
    return {reason: 0 for reason in ALL_REASONS}


def distribution(selected: List[Candidate]) -> Dict[str, Dict[str, int]]:
    """Histograms of the selected members per day, year, bucket and staypoint."""
    return {
        "per_day": dict(sorted(Counter(c.day for c in selected).items())),
        "per_year": dict(sorted(Counter(str(c.year) for c in selected).items())),
        "per_bucket": dict(sorted(Counter(c.bucket for c in selected).items())),
        "per_staypoint": dict(sorted(Counter(c.staypoint for c in selected if c.staypoint).items())),
    }


def pacing_metrics(selected: List[Candidate], metrics: SimilarityMetrics) -> Dict[str, Optional[Dict]]:
    """Time gaps and pHash distances between consecutive selected members."""
    gaps = [metrics.seconds_between(a, b) for a, b in zip(selected, selected[1:])]
    distances = [d for d in (metrics.hamming(a, b) for a, b in zip(selected, selected[1:])) if d is not None]
    return {
        "time_gaps": _summary(gaps),
        "phash_distances": _summary(distances),
    }


def _summary(samples: List[float]) -> Optional[Dict[str, float]]:
    if not samples:
        return None
    values = np.asarray(samples, dtype=float)
    return {
        "count": int(values.size),
        "min": float(values.min()),
        "max": float(values.max()),
        "mean": float(values.mean()),
        "median": float(np.median(values)),
    }
