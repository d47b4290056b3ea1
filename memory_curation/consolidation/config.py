"""Consolidation run configuration."""

from dataclasses import dataclass, field
from typing import Callable

from memory_curation.config import ConsolidationSettings


@dataclass
class ConsolidationConfig:
    """Configuration for consolidation execution."""

    fail_fast: bool = True
    stage_configs: dict[str, dict] = field(default_factory=dict)
    progress_callback: Callable[[str, float, str], None] = None

    def get_stage_config(self, stage_name: str) -> dict:
        """Get configuration for a specific stage."""
        return self.stage_configs.get(stage_name, {})

    @classmethod
    def from_settings(cls, settings: ConsolidationSettings, progress_callback=None) -> "ConsolidationConfig":
        return cls(
            fail_fast=settings.fail_fast,
            stage_configs=dict(settings.stage_configs),
            progress_callback=progress_callback,
        )
