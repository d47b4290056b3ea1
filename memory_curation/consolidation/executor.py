"""Consolidation executor - runs stages in order against the full draft list."""

import logging
import time
from dataclasses import dataclass, field
from typing import Generator, Optional

from memory_curation.consolidation.base import ConsolidationStage
from memory_curation.consolidation.builder import ConsolidationBuilder
from memory_curation.consolidation.config import ConsolidationConfig
from memory_curation.consolidation.context import ConsolidationContext
from memory_curation.consolidation.registry import StageRegistry

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    """Result of executing a single stage."""
    stage_name: str
    success: bool
    duration_ms: int
    input_count: int = 0
    output_count: int = 0
    error_message: Optional[str] = None


@dataclass
class ConsolidationResult:
    """Result of executing the full stage sequence."""
    success: bool
    stage_results: list[StageResult] = field(default_factory=list)
    total_duration_ms: int = 0
    error_message: Optional[str] = None

    @property
    def failed_stage(self) -> Optional[str]:
        """Name of the first failed stage, if any."""
        for result in self.stage_results:
            if not result.success:
                return result.stage_name
        return None


class ConsolidationExecutor:
    """Executes consolidation stages strictly in sequence with progress reporting."""

    def __init__(self, registry: StageRegistry):
        self._registry = registry
        self._builder = ConsolidationBuilder(registry)

    def execute(
        self,
        context: ConsolidationContext,
        stage_names: list[str],
        config: ConsolidationConfig = None
    ) -> ConsolidationResult:
        """
        Execute the consolidation stages.

        Args:
            context: Context holding the input drafts
            stage_names: Stage names to execute
            config: Consolidation configuration

        Returns:
            ConsolidationResult with success status and timing info
        """
        stream = self.execute_streaming(context, stage_names, config)
        try:
            while True:
                next(stream)
        except StopIteration as stop:
            return stop.value

    def execute_streaming(
        self,
        context: ConsolidationContext,
        stage_names: list[str],
        config: ConsolidationConfig = None
    ) -> Generator[StageResult, None, ConsolidationResult]:
        """
        Execute stages with streaming results.

        Yields StageResult after each stage completes.
        Returns final ConsolidationResult.
        """
        if config is None:
            config = ConsolidationConfig()

        unknown = self._builder.validate_plan(stage_names)
        if unknown:
            raise KeyError("; ".join(unknown))

        context.on_progress = config.progress_callback

        stages = self._builder.build(stage_names)
        logger.info(f"Consolidation stages: {[s.metadata.name for s in stages]}")

        stage_results = []
        start_time = time.time()
        success = True
        error_message = None

        for stage in stages:
            stage_result = self._execute_stage(stage, context, config)
            stage_results.append(stage_result)
            yield stage_result

            if not stage_result.success:
                success = False
                error_message = f"Stage '{stage.metadata.name}' failed: {stage_result.error_message}"
                logger.error(error_message)
                if config.fail_fast:
                    break

        return ConsolidationResult(
            success=success,
            stage_results=stage_results,
            total_duration_ms=int((time.time() - start_time) * 1000),
            error_message=error_message
        )

    def _execute_stage(
        self,
        stage: ConsolidationStage,
        context: ConsolidationContext,
        config: ConsolidationConfig
    ) -> StageResult:
        """Execute a single stage."""
        stage_name = stage.metadata.name
        stage_config = config.get_stage_config(stage_name)
        start_time = time.time()

        validation_errors = stage.validate(context)
        if validation_errors:
            return StageResult(
                stage_name=stage_name,
                success=False,
                duration_ms=0,
                error_message=f"Validation failed: {'; '.join(validation_errors)}"
            )

        input_count = len(context.drafts)
        stage.process(context, stage_config)
        duration_ms = int((time.time() - start_time) * 1000)

        logger.info(f"{stage_name}: {input_count} -> {len(context.drafts)} drafts ({duration_ms}ms)")
        return StageResult(
            stage_name=stage_name,
            success=True,
            duration_ms=duration_ms,
            input_count=input_count,
            output_count=len(context.drafts)
        )

    def execution_order(self, stage_names: list[str]) -> list[str]:
        """Stage names in the order they will run."""
        return self._builder.get_execution_order(stage_names)
