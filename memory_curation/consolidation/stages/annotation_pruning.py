"""Annotation pruning stage - annotation-only drafts must add enough unseen members."""

import logging
from typing import Any, Dict, List

from memory_curation.config import ConfigurationError
from memory_curation.consolidation.base import BaseStage, StageMetadata
from memory_curation.consolidation.registry import register_stage
from memory_curation.domain.models import ClusterDraft

logger = logging.getLogger(__name__)


@register_stage
class AnnotationPruningStage(BaseStage):
    """Drop annotation-only drafts whose unique-member share is too low."""

    def __init__(self):
        self._metadata = StageMetadata(
            name="annotation_pruning",
            display_name="Prune Annotations",
            description="Drop annotation-only drafts that mostly repeat members of other drafts.",
            depends_on=["overlap_resolver"],
            config_schema={
                "type": "object",
                "properties": {
                    "annotation_algorithms": {
                        "type": "array",
                        "items": {"type": "string"},
                        "default": []
                    },
                    "min_unique_share": {
                        "type": "object",
                        "default": {},
                        "description": "Algorithm -> minimum share of unclaimed members; unset rejects all"
                    }
                }
            }
        )

    def _run(self, drafts: List[ClusterDraft], config: dict, counters: Dict[str, Any]) -> List[ClusterDraft]:
        annotation_algorithms = set(self._read_names(config, "annotation_algorithms"))
        min_share = self._read_mapping(config, "min_unique_share")
        for algorithm, share in min_share.items():
            if isinstance(share, bool) or not isinstance(share, (int, float)) or not 0.0 <= share <= 1.0:
                raise ConfigurationError(f"annotation_pruning.min_unique_share[{algorithm}] must be within [0, 1]")

        if not annotation_algorithms:
            counters["pruned"] = 0
            return drafts

        claimed = set()
        for draft in drafts:
            if draft.algorithm not in annotation_algorithms:
                claimed.update(draft.unique_members)

        keep = []
        pruned = 0
        for draft in drafts:
            if draft.algorithm not in annotation_algorithms:
                keep.append(draft)
                continue

            members = draft.unique_members
            share = len(members - claimed) / len(members) if members else 0.0
            minimum = min_share.get(draft.algorithm)
            if minimum is None or share < minimum:
                pruned += 1
                logger.debug(f"Annotation {draft.algorithm}/{draft.fingerprint[:8]} pruned (share={share:.2f})")
                continue

            claimed.update(members)
            keep.append(draft)

        counters["pruned"] = pruned
        return keep
