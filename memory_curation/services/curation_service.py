"""Curation service - runs consolidation, then member selection per draft.

Pure business logic with no I/O beyond the media lookup collaborator.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional
from uuid import uuid4

import memory_curation.consolidation.stages.all_stages  # noqa: F401  (registers stages)
from memory_curation.config import CurationSettings
from memory_curation.consolidation.config import ConsolidationConfig
from memory_curation.consolidation.context import ConsolidationContext
from memory_curation.consolidation.executor import ConsolidationExecutor
from memory_curation.consolidation.registry import StageRegistry, get_registry
from memory_curation.domain.models import ClusterDraft, CurationResult, MediaRecord
from memory_curation.domain.types import ProgressCallback
from memory_curation.logging_config import (
    log_curation_end,
    log_curation_start,
    log_selection_counts,
    log_stage_counts,
)
from memory_curation.selection.lookup import MemberMediaLookup
from memory_curation.selection.provider import SelectionPolicyProvider
from memory_curation.selection.selector import MemberSelectionContext, PolicyDrivenMemberSelector
from memory_curation.telemetry import CurationTelemetry, TimingTracker

logger = logging.getLogger(__name__)


class CurationService:
    """
    Memory curation service.

    Orchestrates one curation pass: the consolidation stages over the full
    draft list, then policy driven member selection for every surviving
    draft. Drafts whose selection comes back empty are dropped.
    """

    def __init__(
        self,
        settings: CurationSettings,
        lookup: MemberMediaLookup,
        provider: Optional[SelectionPolicyProvider] = None,
        registry: Optional[StageRegistry] = None,
        selector: Optional[PolicyDrivenMemberSelector] = None
    ):
        self._settings = settings
        self._lookup = lookup
        self._provider = provider or SelectionPolicyProvider.from_settings(settings.selection)
        self._executor = ConsolidationExecutor(registry or get_registry())
        self._selector = selector or PolicyDrivenMemberSelector()

        logger.info("CurationService initialized")

    def curate(
        self,
        drafts: List[ClusterDraft],
        progress_callback: Optional[ProgressCallback] = None,
        quality_scores: Optional[Dict[int, float]] = None
    ) -> CurationResult:
        """
        Run a full curation pass.

        Args:
            drafts: Raw drafts from the upstream strategies
            progress_callback: Optional (stage, progress, message) callback
            quality_scores: Optional per-media quality overrides

        Returns:
            CurationResult with the curated drafts and timing telemetry
        """
        run_id = uuid4().hex[:8]
        telemetry = CurationTelemetry(run_id=run_id)
        start_time = time.time()
        stage_names = self._settings.consolidation.stages
        log_curation_start(logger, run_id, len(drafts), self._executor.execution_order(stage_names))

        context = ConsolidationContext(drafts=list(drafts))
        config = ConsolidationConfig.from_settings(self._settings.consolidation, progress_callback)

        with TimingTracker(telemetry, "consolidation", items=max(1, len(drafts))):
            outcome = self._executor.execute(context, stage_names, config)

        for stage_result in outcome.stage_results:
            telemetry.record_stage(
                stage_result.stage_name,
                stage_result.duration_ms,
                context.stage_telemetry.get(stage_result.stage_name),
            )
        log_stage_counts(logger, context.stage_telemetry)

        if not outcome.success:
            raise RuntimeError(outcome.error_message)

        consolidated = context.drafts
        self._notify(progress_callback, "member_selection", 0.0, f"{len(consolidated)} drafts")

        with TimingTracker(telemetry, "member_selection", items=max(1, len(consolidated))):
            curated = self._select_all(consolidated, quality_scores or {})

        kept: List[ClusterDraft] = []
        dropped: List[str] = []
        for source, draft in zip(consolidated, curated):
            log_selection_counts(logger, draft.algorithm, source.fingerprint, draft.params.member_selection.telemetry)
            if draft.params.member_selection.is_empty and self._settings.service.drop_empty_clusters:
                logger.info(f"Dropping {source.algorithm}/{source.fingerprint[:8]}: no members selected")
                dropped.append(source.fingerprint)
                continue
            kept.append(draft)

        self._notify(progress_callback, "member_selection", 1.0, f"{len(kept)} drafts kept")

        telemetry.total_duration_sec = time.time() - start_time
        telemetry.metadata.update({
            'input_drafts': len(drafts),
            'consolidated_drafts': len(consolidated),
            'kept_drafts': len(kept),
            'dropped_empty': len(dropped),
        })
        log_curation_end(logger, run_id, len(kept), len(drafts) - len(kept), telemetry.total_duration_sec)

        return CurationResult(
            drafts=kept,
            input_count=len(drafts),
            consolidated_count=len(consolidated),
            dropped_empty=dropped,
            run_id=run_id,
            telemetry=telemetry
        )

    def curate_draft(
        self,
        draft: ClusterDraft,
        media_map: Dict[int, MediaRecord],
        quality_scores: Optional[Dict[int, float]] = None
    ) -> ClusterDraft:
        """
        Select members for one draft and return the enriched replacement.

        Drafts carrying day segments get per-day quotas derived from them.
        """
        policy = self._provider.for_algorithm(draft.algorithm).with_day_context(draft.params.day_segments)
        context = MemberSelectionContext(
            draft=draft,
            policy=policy,
            media_map=media_map,
            quality_scores=quality_scores or {},
        )
        result = self._selector.select(draft.algorithm, draft.members, context)
        return draft.with_members(result.member_ids).with_params(member_selection=result)

    def _select_all(self, drafts: List[ClusterDraft], quality_scores: Dict[int, float]) -> List[ClusterDraft]:
        all_ids = sorted({m for draft in drafts for m in draft.members})
        media_map = self._lookup.find_by_ids(all_ids)
        missing = len(all_ids) - len(media_map)
        if missing:
            logger.warning(f"{missing} of {len(all_ids)} member ids could not be resolved")

        max_workers = self._settings.service.max_workers
        if max_workers <= 1 or len(drafts) <= 1:
            return [self.curate_draft(d, media_map, quality_scores) for d in drafts]

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(lambda d: self.curate_draft(d, media_map, quality_scores), drafts))

    def _notify(
        self,
        callback: Optional[ProgressCallback],
        stage: str,
        progress: float,
        detail: str = None
    ):
        """Helper to call progress callback."""
        if callback:
            callback(stage, progress, detail)
