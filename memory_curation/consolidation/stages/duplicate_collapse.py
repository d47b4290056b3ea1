"""Duplicate collapse stage - one survivor per fingerprint among interchangeable algorithms."""

import logging
from typing import Any, Dict, List

from memory_curation.consolidation.base import BaseStage, StageMetadata
from memory_curation.consolidation.registry import register_stage
from memory_curation.domain.models import ClusterDraft

logger = logging.getLogger(__name__)


@register_stage
class DuplicateCollapseStage(BaseStage):
    """
    Collapse drafts with identical member sets.

    Only drafts whose algorithm is in ``algorithms`` take part. Within one
    fingerprint group the highest score wins; on equal scores the draft seen
    first in the input wins. The survivor takes the slot of the group's
    first-seen draft.
    """

    def __init__(self):
        self._metadata = StageMetadata(
            name="duplicate_collapse",
            display_name="Collapse Duplicates",
            description="Keep the best draft per member fingerprint for interchangeable algorithms.",
            depends_on=["filter_normalization"],
            config_schema={
                "type": "object",
                "properties": {
                    "algorithms": {
                        "type": "array",
                        "items": {"type": "string"},
                        "default": [],
                        "description": "Algorithms whose drafts are interchangeable"
                    }
                }
            }
        )

    def _run(self, drafts: List[ClusterDraft], config: dict, counters: Dict[str, Any]) -> List[ClusterDraft]:
        algorithms = set(self._read_names(config, "algorithms"))

        # fingerprint -> slot index in output
        slots: Dict[str, int] = {}
        output: List[ClusterDraft] = []
        collapsed = 0

        for draft in drafts:
            if draft.algorithm not in algorithms:
                output.append(draft)
                continue

            key = draft.fingerprint
            if key not in slots:
                slots[key] = len(output)
                output.append(draft)
                continue

            collapsed += 1
            current = output[slots[key]]
            if draft.score > current.score:
                logger.debug(f"Duplicate {key[:8]}: {draft.algorithm}@{draft.score} replaces {current.score}")
                output[slots[key]] = draft

        counters["collapsed"] = collapsed
        return output
