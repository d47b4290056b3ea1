"""Consolidation context - shared state passed through all stages."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from memory_curation.domain.models import ClusterDraft


@dataclass
class ConsolidationContext:
    """Container that every stage reads from and writes to."""

    # Current draft list, replaced by each stage
    drafts: List[ClusterDraft] = field(default_factory=list)

    # Per-stage counters, write-only diagnostics
    stage_telemetry: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    # Progress callback
    on_progress: Optional[Callable[[str, float, str], None]] = None

    def report_progress(self, stage_name: str, progress: float, message: str = "") -> None:
        """Report progress if callback is set."""
        if self.on_progress is not None:
            self.on_progress(stage_name, progress, message)
