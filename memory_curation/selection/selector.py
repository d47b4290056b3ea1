"""Policy driven member selection for one cluster."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from memory_curation.config import ConfigurationError
from memory_curation.domain.models import ClusterDraft, MediaRecord, MemberSelectionResult
from memory_curation.selection.candidates import build_candidates
from memory_curation.selection.diversifier import Diversifier
from memory_curation.selection.greedy import GreedyOutcome, GreedySelector
from memory_curation.selection.metrics import SimilarityMetrics
from memory_curation.selection.policy import SelectionPolicy, relaxation_steps
from memory_curation.selection.telemetry import distribution, empty_rejections, pacing_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberSelectionContext:
    """Everything one ``select()`` call needs besides the member ids."""
    draft: ClusterDraft
    policy: SelectionPolicy
    media_map: Mapping[int, MediaRecord]
    quality_scores: Mapping[int, float] = field(default_factory=dict)


class PolicyDrivenMemberSelector:
    """
    Pick a bounded, paced, diverse and quality-ranked subset of a cluster.

    Steps:
        1. Build candidates (eligibility gates, scoring, pHash decoding)
        2. Collapse bursts to their best member
        3. Greedy pass, relaxing the policy until the minimum is met
        4. Diversifier fills the remaining slots up to the target
        5. Order the result by capture time

    The selector keeps no state between calls; all caches live in a
    SimilarityMetrics instance created per call.
    """

    def select(
        self,
        algorithm: str,
        member_ids: Iterable[int],
        context: Optional[MemberSelectionContext] = None
    ) -> MemberSelectionResult:
        if context is None:
            raise ConfigurationError("MemberSelectionContext is required for policy driven selection.")

        policy = context.policy
        member_ids = list(member_ids)
        timestamps = [
            context.media_map[i].timestamp for i in member_ids if i in context.media_map
        ]
        span = (max(timestamps) - min(timestamps)).total_seconds() if timestamps else 0.0
        metrics = SimilarityMetrics(time_span_seconds=span)

        pool = build_candidates(
            member_ids, context.media_map, context.quality_scores, policy, context.draft, metrics
        )
        eligible = pool.eligible

        telemetry: Dict = {
            "algorithm": algorithm,
            "counts": {
                "considered": pool.considered,
                "eligible": len(eligible),
                "greedy": 0,
                "diversified": 0,
                "selected": 0,
            },
            "rejections": empty_rejections(),
            "policy": policy.snapshot(),
        }
        telemetry["rejections"].update(pool.drops)

        if not eligible:
            logger.debug(f"{algorithm}: no eligible members out of {len(member_ids)}")
            return MemberSelectionResult(member_ids=(), telemetry=telemetry)

        outcome, applied, relaxations = self._greedy_with_relaxation(eligible, policy, metrics)
        if relaxations:
            telemetry["relaxations"] = relaxations
            telemetry["policy"] = applied.snapshot()

        diversifier = Diversifier(applied, metrics)
        diversified = diversifier.run(eligible, outcome.selected, outcome.near_duplicates)

        for collector in (outcome.collector, diversified.collector):
            for reason, amount in collector.reason_counts().items():
                telemetry["rejections"][reason] += amount

        selected = outcome.selected + diversified.added
        selected.sort(key=lambda c: (c.timestamp, c.media_id))

        telemetry["counts"]["greedy"] = len(outcome.selected)
        telemetry["counts"]["diversified"] = len(diversified.added)
        telemetry["counts"]["selected"] = len(selected)
        telemetry["replacements"] = outcome.collector.replacements
        telemetry["mmr"] = diversified.report
        telemetry["metrics"] = pacing_metrics(selected, metrics)
        telemetry["distribution"] = distribution(selected)

        logger.debug(
            f"{algorithm}: considered={pool.considered} eligible={len(eligible)} "
            f"greedy={len(outcome.selected)} diversified={len(diversified.added)}"
        )
        return MemberSelectionResult(member_ids=tuple(c.media_id for c in selected), telemetry=telemetry)

    @staticmethod
    def _greedy_with_relaxation(eligible, policy: SelectionPolicy, metrics: SimilarityMetrics):
        """
        Run the greedy pass under progressively relaxed policies.

        Returns the accepted outcome, the policy it ran under and the list
        of attempts that fell short of the minimum.
        """
        steps = relaxation_steps(policy)
        relaxations: List[Dict] = []
        candidate_policy = policy
        outcome: Optional[GreedyOutcome] = None

        for index, (name, transform) in enumerate(steps):
            candidate_policy = transform(candidate_policy)
            outcome = GreedySelector(candidate_policy, metrics).run(eligible)

            is_last = index == len(steps) - 1
            if len(outcome.selected) >= policy.minimum_total or is_last:
                break

            relaxations.append({
                "step": index,
                "name": name,
                "members": len(outcome.selected),
                "policy": candidate_policy.snapshot(),
            })

        return outcome, candidate_policy, relaxations
