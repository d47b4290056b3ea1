"""Filter normalization stage - drops undersized, low-scoring or undated drafts."""

import logging
from typing import Any, Dict, List

from memory_curation.consolidation.base import BaseStage, StageMetadata
from memory_curation.consolidation.registry import register_stage
from memory_curation.domain.models import ClusterDraft, normalize_members

logger = logging.getLogger(__name__)


@register_stage
class FilterNormalizationStage(BaseStage):
    """
    Drop drafts that fail the basic quality gates and normalise the rest.

    Checks run in a fixed order so each drop has exactly one reason:
        1. time validity (only when require_valid_time is set)
        2. deduplicated member count
        3. score
    """

    def __init__(self):
        self._metadata = StageMetadata(
            name="filter_normalization",
            display_name="Filter & Normalize",
            description="Drop drafts below score/size gates or without a valid time range.",
            depends_on=[],
            config_schema={
                "type": "object",
                "properties": {
                    "min_score": {
                        "type": "number",
                        "default": 0.0,
                        "description": "Drafts scoring below this are dropped"
                    },
                    "min_size": {
                        "type": "integer",
                        "default": 1,
                        "minimum": 0,
                        "description": "Minimum number of distinct members"
                    },
                    "require_valid_time": {
                        "type": "boolean",
                        "default": False,
                        "description": "Drop drafts without a usable time range"
                    },
                    "min_valid_year": {
                        "type": "integer",
                        "default": 1990,
                        "description": "Earliest accepted year for a time range"
                    }
                }
            }
        )

    def _run(self, drafts: List[ClusterDraft], config: dict, counters: Dict[str, Any]) -> List[ClusterDraft]:
        min_score = float(config.get("min_score", 0.0))
        min_size = self._read_int(config, "min_size", 1)
        require_valid_time = bool(config.get("require_valid_time", False))
        min_valid_year = self._read_int(config, "min_valid_year", 1990)

        reasons = {"time": 0, "size": 0, "score": 0}
        survivors = []

        for draft in drafts:
            members = normalize_members(draft.members)

            if require_valid_time:
                time_range = draft.params.time_range
                if time_range is None or not time_range.is_valid(min_valid_year):
                    reasons["time"] += 1
                    continue

            if len(members) < min_size:
                reasons["size"] += 1
                continue

            if draft.score < min_score:
                reasons["score"] += 1
                continue

            survivors.append(draft.with_members(members))

        counters["reasons"] = reasons
        logger.debug(f"Filter drop reasons: {reasons}")
        return survivors
