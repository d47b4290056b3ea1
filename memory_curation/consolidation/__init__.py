"""Consolidation pipeline: ordered stages over the full draft list.

Usage:
    from memory_curation.consolidation import ConsolidationContext, ConsolidationExecutor, get_registry
    import memory_curation.consolidation.stages.all_stages  # registers stages

    context = ConsolidationContext(drafts=drafts)
    result = ConsolidationExecutor(get_registry()).execute(context, DEFAULT_STAGE_ORDER, config)
"""

from memory_curation.consolidation.base import BaseStage, StageMetadata
from memory_curation.consolidation.config import ConsolidationConfig
from memory_curation.consolidation.context import ConsolidationContext
from memory_curation.consolidation.executor import ConsolidationExecutor, ConsolidationResult, StageResult
from memory_curation.consolidation.registry import StageRegistry, get_registry, register_stage

__all__ = [
    'BaseStage',
    'StageMetadata',
    'ConsolidationConfig',
    'ConsolidationContext',
    'ConsolidationExecutor',
    'ConsolidationResult',
    'StageResult',
    'StageRegistry',
    'get_registry',
    'register_stage',
]
