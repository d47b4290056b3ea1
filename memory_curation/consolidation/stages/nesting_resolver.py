"""Nesting resolver stage - links sub-stories to the container drafts holding them."""

import logging
from typing import Any, Dict, List, Optional

from memory_curation.consolidation.base import BaseStage, StageMetadata
from memory_curation.consolidation.registry import register_stage
from memory_curation.domain.models import ClusterDraft, SubStoryEntry, SubStoryRef

logger = logging.getLogger(__name__)


@register_stage
class NestingResolverStage(BaseStage):
    """
    Annotate (near-)contained drafts as sub-stories of container drafts.

    Purely additive: no draft is removed or moved. A draft B nested in a
    container A gets ``is_sub_story``, ``sub_story_priority`` and a
    fingerprint back-reference ``sub_story_of``. A gets ``has_sub_stories``
    and a sorted ``sub_stories`` summary list.
    """

    def __init__(self):
        self._metadata = StageMetadata(
            name="nesting_resolver",
            display_name="Resolve Nesting",
            description="Annotate drafts contained in container drafts as sub-stories.",
            depends_on=["dominance_selection"],
            config_schema={
                "type": "object",
                "properties": {
                    "container_algorithms": {
                        "type": "array",
                        "items": {"type": "string"},
                        "default": [],
                        "description": "Algorithms whose drafts may hold sub-stories"
                    },
                    "containment_threshold": {
                        "type": "number",
                        "default": 1.0,
                        "exclusiveMinimum": 0,
                        "maximum": 1,
                        "description": "Share of the child's members that must lie in the container"
                    },
                    "keep_order": {
                        "type": "array",
                        "items": {"type": "string"},
                        "default": [],
                        "description": "Algorithm order used for sub-story priority"
                    }
                }
            }
        )

    def _run(self, drafts: List[ClusterDraft], config: dict, counters: Dict[str, Any]) -> List[ClusterDraft]:
        containers = set(self._read_names(config, "container_algorithms"))
        threshold = self._read_threshold(config, "containment_threshold", 1.0)
        priorities = self.priority_map(self._read_names(config, "keep_order"))

        if not containers:
            counters["nested"] = 0
            return drafts

        parent_of: Dict[int, int] = {}
        for child_index, child in enumerate(drafts):
            parent = self._find_container(child_index, child, drafts, containers, threshold)
            if parent is not None:
                parent_of[child_index] = parent

        children_of: Dict[int, List[int]] = {}
        for child_index, parent_index in parent_of.items():
            children_of.setdefault(parent_index, []).append(child_index)

        result = list(drafts)
        for child_index, parent_index in parent_of.items():
            parent = drafts[parent_index]
            child = drafts[child_index]
            priority = priorities.get(child.algorithm, 0)
            result[child_index] = child.with_params(
                is_sub_story=True,
                sub_story_priority=priority,
                sub_story_of=SubStoryRef(
                    algorithm=parent.algorithm,
                    fingerprint=parent.fingerprint,
                    priority=priorities.get(parent.algorithm, 0),
                ),
            )

        for parent_index, child_indices in children_of.items():
            parent = result[parent_index]
            entries = list(parent.params.sub_stories)
            known = {entry.fingerprint for entry in entries}
            for child_index in child_indices:
                child = drafts[child_index]
                if child.fingerprint in known:
                    continue
                entries.append(SubStoryEntry(
                    algorithm=child.algorithm,
                    priority=priorities.get(child.algorithm, 0),
                    score=child.score,
                    member_count=child.size,
                    fingerprint=child.fingerprint,
                    classification=child.params.classification,
                ))
            entries.sort(key=lambda e: (-e.priority, -e.score, -e.member_count, e.fingerprint))
            result[parent_index] = parent.with_params(has_sub_stories=True, sub_stories=tuple(entries))

        counters["nested"] = len(parent_of)
        counters["containers"] = len(children_of)
        logger.debug(f"Nesting: {len(parent_of)} sub-stories in {len(children_of)} containers")
        return result

    @staticmethod
    def _find_container(
        child_index: int,
        child: ClusterDraft,
        drafts: List[ClusterDraft],
        containers: set,
        threshold: float,
    ) -> Optional[int]:
        """Smallest container holding the child; first in input order on ties."""
        child_members = child.unique_members
        if not child_members:
            return None

        best: Optional[int] = None
        for index, candidate in enumerate(drafts):
            if index == child_index or candidate.algorithm not in containers:
                continue
            if candidate.size <= child.size:
                continue
            contained = len(child_members & candidate.unique_members) / len(child_members)
            if contained < threshold:
                continue
            if best is None or candidate.size < drafts[best].size:
                best = index
        return best
