"""
Timing telemetry for curation passes.

One ``CurationTelemetry`` record per pass collects phase timings, the
consolidation stage counters and headline counts.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class PhaseTiming:
    """Wall time of one phase of a pass."""
    name: str
    duration_sec: float
    items: int = 1
    sec_per_item: float = field(init=False)

    def __post_init__(self):
        self.sec_per_item = self.duration_sec / self.items if self.items > 0 else 0.0


@dataclass
class CurationTelemetry:
    """Everything measured during one curation pass."""
    run_id: str
    total_duration_sec: float = 0.0
    timings: List[PhaseTiming] = field(default_factory=list)
    stage_counters: Dict[str, dict] = field(default_factory=dict)
    stage_durations_ms: Dict[str, int] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def record_phase(self, name: str, duration_sec: float, items: int = 1) -> PhaseTiming:
        timing = PhaseTiming(name, duration_sec, items)
        self.timings.append(timing)
        return timing

    def record_stage(self, stage_name: str, duration_ms: int, counters: Optional[dict] = None) -> None:
        self.stage_durations_ms[stage_name] = duration_ms
        if counters is not None:
            self.stage_counters[stage_name] = dict(counters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'total_duration_sec': self.total_duration_sec,
            'timings': [asdict(t) for t in self.timings],
            'stage_counters': self.stage_counters,
            'stage_durations_ms': self.stage_durations_ms,
            'metadata': self.metadata,
        }

    def export_json(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=str))
        logger.info(f"Curation telemetry for run {self.run_id} written to {path}")

    def get_summary(self) -> Dict[str, Any]:
        """Short view for logs and dashboards."""
        slowest_stage = None
        if self.stage_durations_ms:
            slowest_stage = max(self.stage_durations_ms, key=self.stage_durations_ms.get)
        return {
            'run_id': self.run_id,
            'total_duration': f"{self.total_duration_sec:.2f}s",
            'phases': [t.name for t in self.timings],
            'slowest_phase': max(self.timings, key=lambda t: t.duration_sec).name if self.timings else None,
            'slowest_stage': slowest_stage,
        }


class TimingTracker:
    """
    Context manager that records a phase timing on exit.

    Usage:
        telemetry = CurationTelemetry(run_id="abc123")

        with TimingTracker(telemetry, "member_selection", items=len(drafts)):
            ...
    """

    def __init__(self, telemetry: CurationTelemetry, name: str, items: int = 1):
        self.telemetry = telemetry
        self.name = name
        self.items = items
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        timing = self.telemetry.record_phase(self.name, time.perf_counter() - self._started, self.items)
        logger.debug(f"[TIMING] {self.name}: {timing.duration_sec:.3f}s ({timing.sec_per_item:.4f}s per item)")
        return False
