"""
Log helpers for curation passes.

Root logger setup lives in ``memory_curation.config.setup_logging``; this
module only formats the pass-level summaries the service writes.
"""

import logging
from typing import Dict, List

BANNER = "=" * 80


def log_curation_start(logger: logging.Logger, run_id: str, draft_count: int, stages: List[str]) -> None:
    """Banner for the start of a pass."""
    logger.info(BANNER)
    logger.info(f"CURATION START run={run_id} drafts={draft_count}")
    logger.info(f"Stages: {' -> '.join(stages)}")
    logger.info(BANNER)


def log_stage_counts(logger: logging.Logger, stage_telemetry: Dict[str, dict]) -> None:
    """One line per stage: drafts in, drafts out, and any stage-specific counters."""
    for stage_name, counters in stage_telemetry.items():
        extra = {k: v for k, v in counters.items() if k not in ("pre_count", "post_count", "dropped")}
        suffix = f" {extra}" if extra else ""
        logger.info(
            f"  {stage_name:22s}: {counters.get('pre_count', 0):4d} -> {counters.get('post_count', 0):4d}{suffix}"
        )


def log_selection_counts(logger: logging.Logger, algorithm: str, fingerprint: str, telemetry: dict) -> None:
    """Per-draft selection counts at DEBUG."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    counts = telemetry.get("counts", {})
    relaxed = len(telemetry.get("relaxations", []))
    logger.debug(
        f"  {algorithm}/{fingerprint[:8]}: eligible={counts.get('eligible', 0)} "
        f"selected={counts.get('selected', 0)} relaxations={relaxed}"
    )


def log_curation_end(logger: logging.Logger, run_id: str, kept: int, dropped: int, duration_sec: float) -> None:
    """Banner for the end of a pass."""
    logger.info(BANNER)
    logger.info(f"CURATION COMPLETE run={run_id} kept={kept} dropped={dropped} ({duration_sec:.2f}s)")
    logger.info(BANNER)
