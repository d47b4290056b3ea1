"""Pairwise similarity metrics with caches scoped to one selection call."""

from typing import Dict, Optional, Tuple, TYPE_CHECKING

import numpy as np

from memory_curation.utils.geo import haversine_meters

if TYPE_CHECKING:
    from memory_curation.selection.candidates import Candidate

PHASH_HEX_CHARS = 16
PHASH_BITS = PHASH_HEX_CHARS * 4
GEO_NORMALIZATION_METERS = 5_000.0
NEUTRAL_DISTANCE = 0.5


class SimilarityMetrics:
    """
    Memoised distances between candidates.

    One instance lives for exactly one ``select()`` call; nothing here is
    shared between calls or threads.
    """

    def __init__(self, time_span_seconds: float = 0.0):
        self.time_span_seconds = time_span_seconds
        self._phash_cache: Dict[str, Optional[np.ndarray]] = {}
        self._hamming_cache: Dict[Tuple[int, int], Optional[int]] = {}
        self._distance_cache: Dict[Tuple[int, int], float] = {}

    def phash_bits(self, phash: Optional[str]) -> Optional[np.ndarray]:
        """Decode the first 16 hex characters of a pHash into 64 bits."""
        if not phash:
            return None
        if phash not in self._phash_cache:
            self._phash_cache[phash] = decode_phash(phash)
        return self._phash_cache[phash]

    def hamming(self, a: "Candidate", b: "Candidate") -> Optional[int]:
        """Hamming distance, None when either side lacks a pHash."""
        if a.phash_bits is None or b.phash_bits is None:
            return None
        key = _pair_key(a.media_id, b.media_id)
        if key not in self._hamming_cache:
            self._hamming_cache[key] = hamming_distance(a.phash_bits, b.phash_bits)
        return self._hamming_cache[key]

    def distance(self, a: "Candidate", b: "Candidate") -> float:
        """Mean of normalised time, pHash, geo and person distances, each in [0, 1]."""
        key = _pair_key(a.media_id, b.media_id)
        if key in self._distance_cache:
            return self._distance_cache[key]

        parts = [
            self._time_distance(a, b),
            self._phash_distance(a, b),
            self._geo_distance(a, b),
            self._person_distance(a, b),
        ]
        value = float(np.mean(parts))
        self._distance_cache[key] = value
        return value

    def seconds_between(self, a: "Candidate", b: "Candidate") -> float:
        return abs((a.timestamp - b.timestamp).total_seconds())

    def _time_distance(self, a: "Candidate", b: "Candidate") -> float:
        if self.time_span_seconds <= 0:
            return 0.0
        return min(1.0, self.seconds_between(a, b) / self.time_span_seconds)

    def _phash_distance(self, a: "Candidate", b: "Candidate") -> float:
        bits = self.hamming(a, b)
        if bits is None:
            return NEUTRAL_DISTANCE
        return min(1.0, bits / PHASH_BITS)

    @staticmethod
    def _geo_distance(a: "Candidate", b: "Candidate") -> float:
        if a.gps is None or b.gps is None:
            return NEUTRAL_DISTANCE
        meters = haversine_meters(a.gps[0], a.gps[1], b.gps[0], b.gps[1])
        return min(1.0, meters / GEO_NORMALIZATION_METERS)

    @staticmethod
    def _person_distance(a: "Candidate", b: "Candidate") -> float:
        if not a.person_ids or not b.person_ids:
            return NEUTRAL_DISTANCE
        left, right = set(a.person_ids), set(b.person_ids)
        return 1.0 - len(left & right) / len(left | right)


def decode_phash(phash: str) -> Optional[np.ndarray]:
    """Hex pHash -> uint8 bit vector; None if the prefix is not valid hex."""
    prefix = phash.strip().lower()[:PHASH_HEX_CHARS]
    try:
        raw = bytes.fromhex(prefix if len(prefix) % 2 == 0 else prefix[:-1])
    except ValueError:
        return None
    if not raw:
        return None
    return np.unpackbits(np.frombuffer(raw, dtype=np.uint8))


def hamming_distance(a: np.ndarray, b: np.ndarray) -> int:
    """Differing bits over the shared length plus the length difference."""
    n = min(len(a), len(b))
    return int(np.count_nonzero(a[:n] != b[:n])) + abs(len(a) - len(b))


def _pair_key(a: int, b: int) -> Tuple[int, int]:
    return (a, b) if a <= b else (b, a)
