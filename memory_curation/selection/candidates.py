"""Candidate construction for member selection."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from memory_curation.domain.models import ClusterDraft, MediaRecord
from memory_curation.domain.types import MotifBucket
from memory_curation.selection.metrics import SimilarityMetrics
from memory_curation.selection.policy import SelectionPolicy
from memory_curation.utils.geo import haversine_meters

logger = logging.getLogger(__name__)

STAYPOINT_MERGE_METERS = 120.0
VIDEO_HEAVY_SHARE = 0.5
PANORAMA_RATIO = 2.2
GROUP_SHOT_FACES = 3

FOOD_TAGS = {
    'food', 'meal', 'cuisine', 'dish', 'dining', 'restaurant', 'kitchen', 'coffee',
    'drink', 'dessert', 'breakfast', 'lunch', 'dinner', 'brunch',
}
LANDMARK_TAGS = {
    'landmark', 'monument', 'castle', 'temple', 'bridge', 'tower', 'cathedral',
    'church', 'palace', 'statue', 'architecture', 'skyline', 'historic', 'museum',
}
NIGHT_TAGS = {'night', 'evening', 'dusk', 'aurora', 'milky way', 'city lights'}
INDOOR_TAGS = {
    'indoor', 'interior', 'room', 'kitchen', 'living room', 'office', 'restaurant',
    'cafe', 'bar', 'museum', 'library', 'store', 'shop', 'gallery', 'hall',
}
LANDMARK_LABEL_KEYWORDS = (
    'museum', 'park', 'castle', 'cathedral', 'temple', 'monument', 'bridge',
    'square', 'tower', 'palace',
)


@dataclass
class Candidate:
    """One media item enriched for selection."""
    media_id: int
    timestamp: datetime
    day: str
    year: int
    score: float
    quality: float
    bucket: str
    slot: Optional[str] = None
    staypoint: Optional[str] = None
    phash_bits: Optional[np.ndarray] = None
    burst_id: Optional[str] = None
    gps: Optional[Tuple[float, float]] = None
    person_ids: Tuple[str, ...] = ()
    is_video: bool = False
    order: int = 0

    @property
    def person_signature(self) -> frozenset:
        return frozenset(self.person_ids)


@dataclass
class CandidatePool:
    """Output of candidate construction."""
    eligible: List[Candidate]
    considered: int
    drops: Dict[str, int]


def build_candidates(
    member_ids: Iterable[int],
    media_map: Mapping[int, MediaRecord],
    quality_scores: Mapping[int, float],
    policy: SelectionPolicy,
    draft: ClusterDraft,
    metrics: SimilarityMetrics,
) -> CandidatePool:
    """
    Resolve members, apply eligibility gates and compute scores.

    Unresolved ids are skipped silently. The returned candidates are burst
    collapsed and sorted by score desc, timestamp asc, id asc.
    """
    resolved: List[MediaRecord] = []
    for media_id in dict.fromkeys(member_ids):
        media = media_map.get(media_id)
        if media is not None:
            resolved.append(media)

    drops = {"no_show": 0, "quality": 0, "burst": 0}
    video_heavy = bool(resolved) and (
        sum(1 for m in resolved if m.is_video) / len(resolved) >= VIDEO_HEAVY_SHARE
    )

    candidates: List[Candidate] = []
    for media in resolved:
        if media.no_show or media.low_quality:
            drops["no_show"] += 1
            continue

        quality = quality_scores.get(media.id, media.quality_score)
        quality = float(quality) if quality is not None else 0.0
        if quality < policy.quality_floor:
            drops["quality"] += 1
            continue

        candidates.append(_make_candidate(media, quality, policy, draft, metrics, video_heavy))

    _assign_staypoints(candidates)
    eligible = collapse_bursts(candidates, drops)
    eligible.sort(key=lambda c: (-c.score, c.timestamp, c.media_id))
    for position, candidate in enumerate(eligible):
        candidate.order = position

    return CandidatePool(eligible=eligible, considered=len(resolved), drops=drops)


def collapse_bursts(candidates: List[Candidate], drops: Dict[str, int]) -> List[Candidate]:
    """Keep the top-scoring member of each burst; count the rest as burst drops."""
    best: Dict[str, Candidate] = {}
    for candidate in candidates:
        if candidate.burst_id is None:
            continue
        current = best.get(candidate.burst_id)
        if current is None or _burst_key(candidate) < _burst_key(current):
            best[candidate.burst_id] = candidate

    survivors = []
    for candidate in candidates:
        if candidate.burst_id is not None and best[candidate.burst_id] is not candidate:
            drops["burst"] += 1
            continue
        survivors.append(candidate)
    return survivors


def _burst_key(candidate: Candidate):
    return (-candidate.score, candidate.timestamp, candidate.media_id)


def _make_candidate(
    media: MediaRecord,
    quality: float,
    policy: SelectionPolicy,
    draft: ClusterDraft,
    metrics: SimilarityMetrics,
    video_heavy: bool,
) -> Candidate:
    timestamp = media.timestamp
    day = timestamp.strftime('%Y-%m-%d')

    score = quality
    if media.is_video:
        score += policy.video_bonus
        if video_heavy and policy.video_heavy_bonus is not None:
            score += policy.video_heavy_bonus
    if media.has_faces:
        score += policy.face_bonus
    if is_likely_selfie(media):
        score -= policy.selfie_penalty

    slot = None
    if policy.time_slot_hours is not None:
        slot = f"{day}#{int(timestamp.hour // policy.time_slot_hours)}"

    return Candidate(
        media_id=media.id,
        timestamp=timestamp,
        day=day,
        year=timestamp.year,
        score=max(0.0, score),
        quality=quality,
        bucket=derive_bucket(media, draft).value,
        slot=slot,
        phash_bits=metrics.phash_bits(media.phash),
        burst_id=media.burst_id,
        gps=(media.gps_lat, media.gps_lon) if media.has_gps else None,
        person_ids=tuple(media.person_ids or ()),
        is_video=media.is_video,
    )


def is_likely_selfie(media: MediaRecord) -> bool:
    return media.person_ids is not None and len(media.person_ids) == 1 and media.has_faces


def _assign_staypoints(candidates: List[Candidate]) -> None:
    """Attach each GPS candidate to the first staypoint centre within range."""
    centres: List[Tuple[str, float, float]] = []
    for candidate in candidates:
        if candidate.gps is None:
            continue
        lat, lon = candidate.gps
        for staypoint_id, c_lat, c_lon in centres:
            if haversine_meters(lat, lon, c_lat, c_lon) <= STAYPOINT_MERGE_METERS:
                candidate.staypoint = staypoint_id
                break
        else:
            staypoint_id = f"sp{len(centres)}"
            centres.append((staypoint_id, lat, lon))
            candidate.staypoint = staypoint_id


def derive_bucket(media: MediaRecord, draft: ClusterDraft) -> MotifBucket:
    """Coarse scene bucket used for per-bucket caps."""
    tags = {t.lower() for t in media.scene_tags}
    extras = draft.params.extras
    poi_category = str(extras.get('poi_category') or '').lower()
    poi_label = str(extras.get('poi_label') or '').lower()

    if _is_panorama(media):
        return MotifBucket.PANORAMA
    if media.faces_count >= GROUP_SHOT_FACES:
        return MotifBucket.PERSON_GROUP
    if poi_category == 'food' or tags & FOOD_TAGS:
        return MotifBucket.FOOD

    night = bool(tags & NIGHT_TAGS) or (
        media.taken_at is not None and (media.taken_at.hour >= 21 or media.taken_at.hour <= 5)
    )
    if poi_category == 'landmark' and not night:
        return MotifBucket.LANDMARK
    if night:
        return MotifBucket.NIGHT
    if tags & LANDMARK_TAGS or any(k in poi_label for k in LANDMARK_LABEL_KEYWORDS):
        return MotifBucket.LANDMARK
    if tags & INDOOR_TAGS:
        return MotifBucket.INDOOR
    return MotifBucket.OUTDOOR


def _is_panorama(media: MediaRecord) -> bool:
    if media.is_panorama is not None:
        return media.is_panorama
    if not media.width or not media.height:
        return False
    return media.width / media.height >= PANORAMA_RATIO
