"""Domain models for memory curation.

This layer contains pure data structures with no business logic dependencies.
"""

from memory_curation.domain.models import (
    ClusterDraft,
    CurationResult,
    DaySegment,
    DraftParams,
    MediaRecord,
    MemberSelectionResult,
    SubStoryEntry,
    SubStoryRef,
    TimeRange,
    fingerprint,
    normalize_members,
)
from memory_curation.domain.types import (
    ConsolidationStageName,
    DayCategory,
    MotifBucket,
    DEFAULT_STAGE_ORDER,
)

__all__ = [
    'ClusterDraft',
    'CurationResult',
    'DaySegment',
    'DraftParams',
    'MediaRecord',
    'MemberSelectionResult',
    'SubStoryEntry',
    'SubStoryRef',
    'TimeRange',
    'fingerprint',
    'normalize_members',
    'ConsolidationStageName',
    'DayCategory',
    'MotifBucket',
    'DEFAULT_STAGE_ORDER',
]
