"""Import all stages to register them with the global registry."""

from memory_curation.consolidation.stages.filter_normalization import FilterNormalizationStage
from memory_curation.consolidation.stages.duplicate_collapse import DuplicateCollapseStage
from memory_curation.consolidation.stages.dominance_selection import DominanceSelectionStage
from memory_curation.consolidation.stages.nesting_resolver import NestingResolverStage
from memory_curation.consolidation.stages.overlap_resolver import OverlapResolverStage
from memory_curation.consolidation.stages.annotation_pruning import AnnotationPruningStage
from memory_curation.consolidation.stages.per_media_cap import PerMediaCapStage

__all__ = [
    'FilterNormalizationStage',
    'DuplicateCollapseStage',
    'DominanceSelectionStage',
    'NestingResolverStage',
    'OverlapResolverStage',
    'AnnotationPruningStage',
    'PerMediaCapStage',
]
