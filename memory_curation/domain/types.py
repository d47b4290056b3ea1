"""Type definitions and enums for the curation pipeline."""

from enum import Enum
from typing import Callable, Optional


class ConsolidationStageName(str, Enum):
    """Registered consolidation stages, in execution order."""
    FILTER_NORMALIZATION = "filter_normalization"
    DUPLICATE_COLLAPSE = "duplicate_collapse"
    DOMINANCE_SELECTION = "dominance_selection"
    NESTING_RESOLVER = "nesting_resolver"
    OVERLAP_RESOLVER = "overlap_resolver"
    ANNOTATION_PRUNING = "annotation_pruning"
    PER_MEDIA_CAP = "per_media_cap"


DEFAULT_STAGE_ORDER = [stage.value for stage in ConsolidationStageName]


class DayCategory(str, Enum):
    """Day classification used for per-day quota adjustments."""
    CORE = "core"
    PERIPHERAL = "peripheral"


class MotifBucket(str, Enum):
    """Scene buckets used to spread selections across motifs."""
    PERSON_GROUP = "person_group"
    LANDMARK = "landmark"
    FOOD = "food"
    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    NIGHT = "night"
    PANORAMA = "panorama"


# Type alias for progress callbacks: (stage name, progress 0..1, message)
ProgressCallback = Callable[[str, float, Optional[str]], None]
