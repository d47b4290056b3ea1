"""Overlap resolver stage - group-aware pass over the remaining overlapping drafts."""

import logging
from typing import Any, Dict, List

from memory_curation.config import ConfigurationError
from memory_curation.consolidation.base import BaseStage, StageMetadata, jaccard
from memory_curation.consolidation.registry import register_stage
from memory_curation.domain.models import ClusterDraft

logger = logging.getLogger(__name__)


@register_stage
class OverlapResolverStage(BaseStage):
    """
    Reject the lower-priority draft of an over-threshold pair.

    A pair is over threshold when its overlap reaches ``merge_threshold`` and
    either reaches ``drop_threshold`` or both drafts belong to the same group.
    Sub-stories of the surviving draft are kept.
    """

    def __init__(self):
        self._metadata = StageMetadata(
            name="overlap_resolver",
            display_name="Resolve Overlaps",
            description="Drop lower-priority drafts that overlap a sibling or overlap heavily.",
            depends_on=["nesting_resolver"],
            config_schema={
                "type": "object",
                "properties": {
                    "keep_order": {
                        "type": "array",
                        "items": {"type": "string"},
                        "default": []
                    },
                    "groups": {
                        "type": "object",
                        "default": {},
                        "description": "Algorithm -> group; unmapped algorithms form their own group"
                    },
                    "merge_threshold": {"type": "number", "default": 0.5},
                    "drop_threshold": {"type": "number", "default": 0.8}
                }
            }
        )

    def _run(self, drafts: List[ClusterDraft], config: dict, counters: Dict[str, Any]) -> List[ClusterDraft]:
        keep_order = self._read_names(config, "keep_order")
        groups = self._read_mapping(config, "groups")
        merge_threshold = self._read_threshold(config, "merge_threshold", 0.5)
        drop_threshold = self._read_threshold(config, "drop_threshold", 0.8)
        if drop_threshold < merge_threshold:
            raise ConfigurationError(
                f"overlap_resolver.drop_threshold ({drop_threshold}) must be >= merge_threshold ({merge_threshold})"
            )

        def group_of(draft: ClusterDraft) -> str:
            return groups.get(draft.algorithm, draft.algorithm)

        order = sorted(
            range(len(drafts)),
            key=lambda i: (self.keep_rank(keep_order, drafts[i].algorithm), -drafts[i].score, -drafts[i].size, i),
        )

        accepted: List[int] = []
        rejected = 0
        for index in order:
            candidate = drafts[index]
            conflict = None
            for kept in accepted:
                other = drafts[kept]
                overlap = jaccard(candidate.unique_members, other.unique_members)
                if overlap < merge_threshold:
                    continue
                if overlap < drop_threshold and group_of(candidate) != group_of(other):
                    continue
                if self.is_protected(candidate, other):
                    continue
                conflict = other
                break

            if conflict is not None:
                rejected += 1
                logger.debug(
                    f"Overlap: {candidate.algorithm}/{candidate.fingerprint[:8]} "
                    f"loses to {conflict.algorithm}/{conflict.fingerprint[:8]}"
                )
                continue
            accepted.append(index)

        counters["rejected"] = rejected
        keep = set(accepted)
        return [draft for i, draft in enumerate(drafts) if i in keep]
