"""Per-media cap stage - bounds how many drafts of one group may claim a photo."""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Tuple

from memory_curation.consolidation.base import BaseStage, StageMetadata
from memory_curation.consolidation.registry import register_stage
from memory_curation.domain.models import ClusterDraft

logger = logging.getLogger(__name__)


@register_stage
class PerMediaCapStage(BaseStage):
    """
    Enforce ``max_per_media`` claims per media id within each semantic group.

    Drafts are processed by keep-order rank, then score. A draft that would
    push any member over the cap is dropped whole. Cover preservation: when
    the draft's own cover image is the only blocked member and an accepted
    holder does not use that image as its cover, the most recently accepted
    such holder is evicted and the draft takes its place. Sub-stories neither
    count towards nor are limited by the cap.
    """

    def __init__(self):
        self._metadata = StageMetadata(
            name="per_media_cap",
            display_name="Per-Media Cap",
            description="Limit the number of drafts per group that may contain the same media.",
            depends_on=["annotation_pruning"],
            config_schema={
                "type": "object",
                "properties": {
                    "max_per_media": {
                        "type": "integer",
                        "default": 0,
                        "description": "Claims per media id and group; 0 disables the cap"
                    },
                    "groups": {"type": "object", "default": {}},
                    "default_group": {"type": "string", "default": "default"},
                    "keep_order": {
                        "type": "array",
                        "items": {"type": "string"},
                        "default": []
                    }
                }
            }
        )

    def _run(self, drafts: List[ClusterDraft], config: dict, counters: Dict[str, Any]) -> List[ClusterDraft]:
        cap = self._read_int(config, "max_per_media", 0)
        groups = self._read_mapping(config, "groups")
        default_group = str(config.get("default_group", "default"))
        keep_order = self._read_names(config, "keep_order")

        counters["blocked_candidates"] = 0
        counters["reassigned_slots"] = 0
        if cap <= 0:
            return drafts

        capped = [i for i, d in enumerate(drafts) if not d.params.is_sub_story]
        capped.sort(key=lambda i: (self.keep_rank(keep_order, drafts[i].algorithm), -drafts[i].score, i))

        usage: Dict[Tuple[str, int], List[int]] = defaultdict(list)
        accepted: List[int] = []

        def release(index: int, group: str) -> None:
            for member in drafts[index].unique_members:
                usage[(group, member)].remove(index)
            accepted.remove(index)

        for index in capped:
            draft = drafts[index]
            group = groups.get(draft.algorithm, default_group)
            blocked = sorted(m for m in draft.unique_members if len(usage[(group, m)]) >= cap)

            if blocked:
                cover = draft.cover_media_id
                holders = []
                if blocked == [cover]:
                    holders = [h for h in usage[(group, cover)] if drafts[h].cover_media_id != cover]
                if not holders:
                    counters["blocked_candidates"] += 1
                    logger.debug(f"Cap: {draft.algorithm}/{draft.fingerprint[:8]} blocked on {blocked}")
                    continue

                evicted = max(holders, key=accepted.index)
                release(evicted, group)
                counters["reassigned_slots"] += 1
                logger.debug(
                    f"Cap: cover {cover} of {draft.algorithm} evicts "
                    f"{drafts[evicted].algorithm}/{drafts[evicted].fingerprint[:8]}"
                )

            for member in draft.unique_members:
                usage[(group, member)].append(index)
            accepted.append(index)

        keep = set(accepted)
        return [d for i, d in enumerate(drafts) if i in keep or d.params.is_sub_story]
