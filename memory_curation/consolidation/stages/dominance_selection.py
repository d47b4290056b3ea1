"""Dominance selection stage - decides which strategy owns an overlapping window."""

import logging
from typing import Any, Dict, List

from memory_curation.consolidation.base import BaseStage, StageMetadata, jaccard
from memory_curation.consolidation.registry import register_stage
from memory_curation.domain.models import ClusterDraft

logger = logging.getLogger(__name__)

DEFAULT_CLASSIFICATION_PRIORITY = {
    "vacation": 30,
    "short_trip": 20,
    "day_trip": 10,
}


@register_stage
class DominanceSelectionStage(BaseStage):
    """
    Resolve overlapping, non-identical drafts.

    Drafts are ranked by keep-order of their algorithm, classification
    priority, score and member count. Walking that ranking, a draft is
    rejected when its overlap with an already accepted draft reaches
    ``merge_threshold``, unless it is a sub-story of that draft.
    """

    def __init__(self):
        self._metadata = StageMetadata(
            name="dominance_selection",
            display_name="Dominance Selection",
            description="Keep the dominant draft among overlapping candidates.",
            depends_on=["duplicate_collapse"],
            config_schema={
                "type": "object",
                "properties": {
                    "keep_order": {
                        "type": "array",
                        "items": {"type": "string"},
                        "default": [],
                        "description": "Algorithms from most to least important"
                    },
                    "merge_threshold": {
                        "type": "number",
                        "default": 0.9,
                        "exclusiveMinimum": 0,
                        "maximum": 1,
                        "description": "Jaccard overlap at which the lower-ranked draft is rejected"
                    },
                    "classification_priority": {
                        "type": "object",
                        "default": DEFAULT_CLASSIFICATION_PRIORITY,
                        "description": "Classification -> priority, higher wins"
                    }
                }
            }
        )

    def _run(self, drafts: List[ClusterDraft], config: dict, counters: Dict[str, Any]) -> List[ClusterDraft]:
        keep_order = self._read_names(config, "keep_order")
        threshold = self._read_threshold(config, "merge_threshold", 0.9)
        classification_priority = self._read_mapping(
            config, "classification_priority", DEFAULT_CLASSIFICATION_PRIORITY
        )

        def rank(index: int):
            draft = drafts[index]
            return (
                self.keep_rank(keep_order, draft.algorithm),
                -classification_priority.get(draft.params.classification, 0),
                -draft.score,
                -draft.size,
                index,
            )

        accepted: List[int] = []
        protected = 0
        for index in sorted(range(len(drafts)), key=rank):
            candidate = drafts[index]
            dominated_by = None
            for kept in accepted:
                other = drafts[kept]
                if jaccard(candidate.unique_members, other.unique_members) < threshold:
                    continue
                if self.is_protected(candidate, other):
                    protected += 1
                    continue
                dominated_by = other
                break

            if dominated_by is not None:
                logger.debug(
                    f"Dominance: {candidate.algorithm}/{candidate.fingerprint[:8]} "
                    f"rejected by {dominated_by.algorithm}/{dominated_by.fingerprint[:8]}"
                )
                continue
            accepted.append(index)

        counters["protected_sub_stories"] = protected
        keep = set(accepted)
        return [draft for i, draft in enumerate(drafts) if i in keep]
