"""Greedy pass: hard pacing and cap rules over score-ordered candidates."""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from memory_curation.selection.candidates import Candidate
from memory_curation.selection.metrics import SimilarityMetrics
from memory_curation.selection.policy import SLOT_CAP, SelectionPolicy
from memory_curation.selection.telemetry import (
    REASON_DAY_QUOTA,
    REASON_NEAR_DUPLICATE,
    REASON_PEOPLE,
    REASON_SPACING,
    REASON_STAYPOINT,
    REASON_TIME_SLOT,
    SelectionTelemetry,
)

logger = logging.getLogger(__name__)


class HardRules:
    """
    Pacing and balance rules shared by the greedy pass and the diversifier.

    Every check compares one candidate against the members chosen so far.
    Per-day spacing is derived once from the full candidate list.
    """

    def __init__(self, policy: SelectionPolicy, metrics: SimilarityMetrics, candidates: List[Candidate]):
        self.policy = policy
        self.metrics = metrics
        self.day_spacing = self._day_spacing(candidates)

    def slot_full(self, candidate: Candidate, slot_counts: Counter) -> bool:
        if self.policy.time_slot_hours is None or candidate.slot is None:
            return False
        return slot_counts[candidate.slot] >= SLOT_CAP

    def violates_spacing(self, candidate: Candidate, selected: List[Candidate]) -> bool:
        global_spacing = self.policy.min_spacing_seconds
        same_day_spacing = max(global_spacing, self.day_spacing.get(candidate.day, 0.0))
        if same_day_spacing <= 0:
            return False

        for other in selected:
            gap = self.metrics.seconds_between(candidate, other)
            required = same_day_spacing if other.day == candidate.day else global_spacing
            if gap < required:
                return True
        return False

    def near_duplicate_of(self, candidate: Candidate, selected: List[Candidate]) -> Optional[Candidate]:
        threshold = self.policy.phash_min_hamming
        if threshold <= 0 or candidate.phash_bits is None:
            return None
        for other in selected:
            distance = self.metrics.hamming(candidate, other)
            if distance is not None and distance < threshold:
                return other
        return None

    def people_blocked(self, candidate: Candidate, selected: List[Candidate]) -> bool:
        """
        True when every person on the candidate already fills their share.

        A person may appear on at most ``ceil(people_balance_weight * n)`` of
        the first n picks (at least 1). Important people are never blocked;
        fallback people are admitted when nobody else on the photo fits.
        """
        policy = self.policy
        persons = set(candidate.person_ids)
        if not policy.enable_people_balance or not persons:
            return False
        if persons & set(policy.important_person_ids):
            return False

        counts = Counter(p for other in selected for p in set(other.person_ids))
        limit = max(1, math.ceil((len(selected) + 1) * policy.people_balance_weight))
        if any(counts[person] + 1 <= limit for person in persons):
            return False
        return not (persons & set(policy.fallback_person_ids))

    def _day_spacing(self, candidates: List[Candidate]) -> Dict[str, float]:
        """
        Per-day spacing derived from the day's span and its cap.

        A day with cap k is split into k + 1 intervals; picks on that day
        must be at least one interval apart. Days without a cap get none.
        """
        if not self.policy.has_day_caps:
            return {}

        bounds: Dict[str, list] = {}
        for candidate in candidates:
            ts = candidate.timestamp
            if candidate.day not in bounds:
                bounds[candidate.day] = [ts, ts]
            else:
                bounds[candidate.day][0] = min(bounds[candidate.day][0], ts)
                bounds[candidate.day][1] = max(bounds[candidate.day][1], ts)

        spacing = {}
        for day, (first, last) in bounds.items():
            cap = self.policy.day_cap(day)
            if cap:
                spacing[day] = (last - first).total_seconds() / (cap + 1)
        return spacing


@dataclass
class GreedyOutcome:
    """Members admitted by one greedy attempt."""
    selected: List[Candidate]
    collector: SelectionTelemetry
    near_duplicates: Set[int] = field(default_factory=set)


class GreedySelector:
    """
    Admit candidates one at a time under a fixed policy.

    Each round takes the remaining candidate with the best effective score.
    The effective score is the candidate score minus ``repeat_penalty`` when
    the candidate shows exactly the people of the previous pick. Checks then
    run in order: day cap, time slot, spacing, staypoint, people balance,
    near-duplicate.
    """

    def __init__(self, policy: SelectionPolicy, metrics: SimilarityMetrics):
        self.policy = policy
        self.metrics = metrics

    def run(self, candidates: List[Candidate]) -> GreedyOutcome:
        policy = self.policy
        rules = HardRules(policy, self.metrics, candidates)
        collector = SelectionTelemetry()
        pool = list(candidates)
        selected: List[Candidate] = []
        near_duplicates: Set[int] = set()

        day_counts: Counter = Counter()
        slot_counts: Counter = Counter()
        staypoint_counts: Counter = Counter()
        previous: Optional[Candidate] = None

        while pool and len(selected) < policy.target_total:
            candidate = pool.pop(self._next_index(pool, previous))

            day_cap = policy.day_cap(candidate.day)
            if day_cap is not None and day_counts[candidate.day] >= day_cap:
                collector.count(REASON_DAY_QUOTA)
                continue

            if rules.slot_full(candidate, slot_counts):
                collector.count(REASON_TIME_SLOT)
                continue

            if rules.violates_spacing(candidate, selected):
                collector.count(REASON_SPACING)
                continue

            if policy.max_per_staypoint is not None and candidate.staypoint is not None:
                if staypoint_counts[candidate.staypoint] >= policy.max_per_staypoint:
                    collector.count(REASON_STAYPOINT)
                    continue

            if rules.people_blocked(candidate, selected):
                collector.count(REASON_PEOPLE)
                continue

            duplicate_of = rules.near_duplicate_of(candidate, selected)
            if duplicate_of is not None:
                collector.count(REASON_NEAR_DUPLICATE)
                if candidate.score <= duplicate_of.score:
                    near_duplicates.add(candidate.media_id)
                    continue
                selected.remove(duplicate_of)
                day_counts[duplicate_of.day] -= 1
                if duplicate_of.slot is not None:
                    slot_counts[duplicate_of.slot] -= 1
                if duplicate_of.staypoint is not None:
                    staypoint_counts[duplicate_of.staypoint] -= 1
                near_duplicates.add(duplicate_of.media_id)
                collector.replacements += 1

            selected.append(candidate)
            day_counts[candidate.day] += 1
            if candidate.slot is not None:
                slot_counts[candidate.slot] += 1
            if candidate.staypoint is not None:
                staypoint_counts[candidate.staypoint] += 1
            previous = candidate

        return GreedyOutcome(selected=selected, collector=collector, near_duplicates=near_duplicates)

    def _next_index(self, pool: List[Candidate], previous: Optional[Candidate]) -> int:
        """Index of the best effective score; pool order breaks ties."""
        penalty = self.policy.repeat_penalty
        if penalty <= 0 or previous is None or not previous.person_ids:
            return 0

        signature = previous.person_signature
        best_index = 0
        best_score = None
        for index, candidate in enumerate(pool):
            score = candidate.score
            if candidate.person_ids and candidate.person_signature == signature:
                score -= penalty
            if best_score is None or score > best_score:
                best_index, best_score = index, score
        return best_index
