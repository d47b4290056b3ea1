"""Max-min diversifier: fills the remaining slots with the most distinct candidates."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from memory_curation.selection.candidates import Candidate
from memory_curation.selection.greedy import HardRules
from memory_curation.selection.metrics import SimilarityMetrics
from memory_curation.selection.policy import SelectionPolicy
from memory_curation.selection.telemetry import (
    REASON_BUCKET,
    REASON_SIMILARITY,
    REASON_YEAR,
    SelectionTelemetry,
)

logger = logging.getLogger(__name__)


@dataclass
class DiversifierOutcome:
    added: List[Candidate]
    collector: SelectionTelemetry
    report: Dict = field(default_factory=dict)


class Diversifier:
    """
    Add candidates that are far from everything already chosen.

    Each iteration scores every remaining candidate with
    ``lambda * relevance + (1 - lambda) * min_distance`` and takes the best,
    where relevance is the score relative to the best eligible score and
    min_distance is the smallest combined distance to the chosen set.
    Candidates more similar than ``mmr_similarity_cap`` to a chosen item are
    dropped; similarities under ``mmr_similarity_floor`` count as none.

    A pick must also pass the greedy pass's hard rules against the chosen
    set, so filling never undoes its day, slot, spacing, staypoint, people
    or near-duplicate limits. Year and bucket caps apply here only.
    """

    def __init__(self, policy: SelectionPolicy, metrics: SimilarityMetrics):
        self.policy = policy
        self.metrics = metrics

    def run(
        self,
        eligible: List[Candidate],
        selected: List[Candidate],
        excluded: Set[int],
    ) -> DiversifierOutcome:
        policy = self.policy
        collector = SelectionTelemetry()
        slots = policy.target_total - len(selected)

        chosen_ids = {c.media_id for c in selected}
        pool = [c for c in eligible if c.media_id not in chosen_ids and c.media_id not in excluded]
        pool = pool[:policy.mmr_max_candidates]
        report = {
            "lambda": policy.mmr_lambda,
            "similarity_floor": policy.mmr_similarity_floor,
            "similarity_cap": policy.mmr_similarity_cap,
            "max_considered": policy.mmr_max_candidates,
            "pool_size": len(pool),
            "rule_skipped": 0,
            "selected": [],
            "iterations": [],
        }
        if slots <= 0 or not pool:
            return DiversifierOutcome(added=[], collector=collector, report=report)

        best_score = max((c.score for c in eligible), default=0.0)
        rules = HardRules(policy, self.metrics, eligible)
        current = list(selected)
        counts = {
            "day": Counter(c.day for c in current),
            "slot": Counter(c.slot for c in current if c.slot is not None),
            "staypoint": Counter(c.staypoint for c in current if c.staypoint is not None),
            "year": Counter(c.year for c in current),
            "bucket": Counter(c.bucket for c in current),
        }
        added: List[Candidate] = []

        while pool and len(added) < slots:
            best: Optional[Candidate] = None
            best_value = 0.0
            best_distance = 0.0
            survivors = []

            for candidate in pool:
                if self._breaks_hard_rule(candidate, current, counts, rules):
                    report["rule_skipped"] += 1
                    continue
                if rules.people_blocked(candidate, current):
                    # the share limit grows with the selection, so keep it for later rounds
                    survivors.append(candidate)
                    continue
                reason = self._cap_reason(candidate, counts)
                if reason is not None:
                    collector.count(reason)
                    continue

                min_distance = min((self.metrics.distance(candidate, c) for c in current), default=1.0)
                similarity = 1.0 - min_distance
                if similarity > policy.mmr_similarity_cap:
                    collector.count(REASON_SIMILARITY)
                    continue
                if similarity < policy.mmr_similarity_floor:
                    min_distance = 1.0

                survivors.append(candidate)
                relevance = candidate.score / best_score if best_score > 0 else 0.0
                value = policy.mmr_lambda * relevance + (1.0 - policy.mmr_lambda) * min_distance
                if best is None or value > best_value:
                    best, best_value, best_distance = candidate, value, min_distance

            if best is None:
                break

            pool = [c for c in survivors if c is not best]
            current.append(best)
            added.append(best)
            counts["day"][best.day] += 1
            if best.slot is not None:
                counts["slot"][best.slot] += 1
            if best.staypoint is not None:
                counts["staypoint"][best.staypoint] += 1
            counts["year"][best.year] += 1
            counts["bucket"][best.bucket] += 1
            report["iterations"].append({
                "id": best.media_id,
                "value": round(best_value, 6),
                "min_distance": round(best_distance, 6),
            })

        report["selected"] = [c.media_id for c in added]
        logger.debug(f"Diversifier added {len(added)} of {slots} open slots")
        return DiversifierOutcome(added=added, collector=collector, report=report)

    def _cap_reason(self, candidate: Candidate, counts: Dict[str, Counter]) -> Optional[str]:
        """Rejection reason if adding the candidate would break a year or bucket cap."""
        policy = self.policy
        if policy.max_per_year is not None and counts["year"][candidate.year] >= policy.max_per_year:
            return REASON_YEAR
        if policy.max_per_bucket is not None and counts["bucket"][candidate.bucket] >= policy.max_per_bucket:
            return REASON_BUCKET
        return None

    def _breaks_hard_rule(
        self,
        candidate: Candidate,
        current: List[Candidate],
        counts: Dict[str, Counter],
        rules: HardRules,
    ) -> bool:
        """Greedy rules; the greedy pass already counted these rejections."""
        policy = self.policy
        day_cap = policy.day_cap(candidate.day)
        if day_cap is not None and counts["day"][candidate.day] >= day_cap:
            return True
        if rules.slot_full(candidate, counts["slot"]):
            return True
        if rules.violates_spacing(candidate, current):
            return True
        if policy.max_per_staypoint is not None and candidate.staypoint is not None:
            if counts["staypoint"][candidate.staypoint] >= policy.max_per_staypoint:
                return True
        return rules.near_duplicate_of(candidate, current) is not None
