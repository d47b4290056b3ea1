"""Shared fixtures for curation tests."""

from datetime import datetime, timedelta

import pytest

import memory_curation.consolidation.stages.all_stages  # noqa: F401
from memory_curation.consolidation.context import ConsolidationContext
from memory_curation.domain.models import ClusterDraft, DraftParams, MediaRecord, TimeRange

BASE_TIME = datetime(2023, 7, 14, 9, 0, 0)


@pytest.fixture
def make_draft():
    """Factory for drafts: make_draft('primary', [1, 2, 3], score=0.9)."""
    def _make(algorithm, members, score=None, cover=None, time_range=None, **params):
        return ClusterDraft(
            algorithm=algorithm,
            members=tuple(members),
            params=DraftParams(score=score, time_range=time_range, **params),
            cover_media_id=cover,
        )
    return _make


@pytest.fixture
def make_media():
    """Factory for media records, timestamped in minutes after BASE_TIME."""
    def _make(media_id, minutes=0, quality=0.8, **fields):
        fields.setdefault("taken_at", BASE_TIME + timedelta(minutes=minutes))
        return MediaRecord(
            id=media_id,
            created_at=BASE_TIME - timedelta(days=30),
            quality_score=quality,
            **fields
        )
    return _make


@pytest.fixture
def valid_range():
    return TimeRange(start=datetime(2023, 7, 1), end=datetime(2023, 7, 10))


@pytest.fixture
def run_stage():
    """Run one stage against a draft list; returns (surviving drafts, counters)."""
    def _run(stage, drafts, config=None):
        context = ConsolidationContext(drafts=list(drafts))
        stage.process(context, config or {})
        return context.drafts, context.stage_telemetry[stage.metadata.name]
    return _run
