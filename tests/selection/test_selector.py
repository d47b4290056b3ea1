"""Tests for PolicyDrivenMemberSelector."""

from datetime import datetime

import pytest

from memory_curation.config import ConfigurationError
from memory_curation.selection.candidates import build_candidates
from memory_curation.selection.diversifier import Diversifier
from memory_curation.selection.metrics import SimilarityMetrics
from memory_curation.selection.policy import SelectionPolicy
from memory_curation.selection.selector import MemberSelectionContext, PolicyDrivenMemberSelector


@pytest.fixture
def selector():
    return PolicyDrivenMemberSelector()


@pytest.fixture
def select(selector, make_draft):
    """Run selection over media records: select(records, policy, quality_scores=None, member_ids=None)."""
    def _select(records, policy, quality_scores=None, member_ids=None, draft=None):
        media_map = {m.id: m for m in records}
        ids = list(member_ids) if member_ids is not None else list(media_map)
        context = MemberSelectionContext(
            draft=draft or make_draft("event", ids),
            policy=policy,
            media_map=media_map,
            quality_scores=quality_scores or {},
        )
        return selector.select("event", ids, context)
    return _select


def evenly_spaced(make_media, count, step_minutes, quality=0.8):
    return [make_media(i + 1, minutes=i * step_minutes, quality=quality) for i in range(count)]


class TestSelectorBasics:
    """Context handling, determinism and ordering."""

    def test_missing_context(self, selector):
        with pytest.raises(ConfigurationError):
            selector.select("event", [1, 2, 3])

    def test_deterministic(self, select, make_media):
        """Identical inputs give identical members and counts."""
        records = [make_media(i, minutes=i * 7, quality=0.5 + (i % 3) * 0.1) for i in range(1, 13)]
        policy = SelectionPolicy(target_total=6, minimum_total=3, min_spacing_seconds=600)

        first = select(records, policy)
        second = select(records, policy)

        assert first.member_ids == second.member_ids
        assert first.telemetry["counts"] == second.telemetry["counts"]

    def test_result_ordered_by_capture_time(self, select, make_media):
        records = [
            make_media(1, minutes=30, quality=0.9),
            make_media(2, minutes=0, quality=0.5),
            make_media(3, minutes=15, quality=0.7),
        ]
        policy = SelectionPolicy(target_total=3, minimum_total=1)

        result = select(records, policy)

        assert result.member_ids == (2, 3, 1)

    def test_created_at_fallback(self, select, make_media):
        """A record without taken_at sorts by its creation time."""
        records = [make_media(1, minutes=0), make_media(2, taken_at=None)]
        policy = SelectionPolicy(target_total=2, minimum_total=1)

        result = select(records, policy)

        assert result.member_ids == (2, 1)

    def test_unresolved_ids_skipped(self, select, make_media):
        records = [make_media(1), make_media(2, minutes=10)]
        policy = SelectionPolicy(target_total=5, minimum_total=1)

        result = select(records, policy, member_ids=[1, 2, 999])

        assert set(result.member_ids) == {1, 2}
        assert result.telemetry["counts"]["considered"] == 2

    def test_duplicate_member_ids(self, select, make_media):
        records = [make_media(1), make_media(2, minutes=10)]
        policy = SelectionPolicy(target_total=5, minimum_total=1)

        result = select(records, policy, member_ids=[1, 2, 1])

        assert result.member_ids == (1, 2)

    def test_telemetry_keys(self, select, make_media):
        policy = SelectionPolicy(target_total=3, minimum_total=1)

        telemetry = select(evenly_spaced(make_media, 4, 10), policy).telemetry

        for key in ("algorithm", "counts", "rejections", "policy", "replacements", "mmr", "metrics", "distribution"):
            assert key in telemetry
        assert "relaxations" not in telemetry
        assert telemetry["algorithm"] == "event"
        assert telemetry["distribution"]["per_day"] == {"2023-07-14": 3}

    def test_never_exceeds_target(self, select, make_media):
        policy = SelectionPolicy(target_total=4, minimum_total=1)

        result = select(evenly_spaced(make_media, 12, 5), policy)

        assert len(result.member_ids) == 4


class TestEligibility:
    """Gates applied before the greedy pass."""

    def test_quality_floor(self, select, make_media):
        records = [make_media(1, quality=0.9), make_media(2, minutes=10, quality=0.2)]
        policy = SelectionPolicy(target_total=5, minimum_total=1, quality_floor=0.5)

        result = select(records, policy)

        assert result.member_ids == (1,)
        assert result.telemetry["rejections"]["quality"] == 1

    def test_quality_override(self, select, make_media):
        records = [make_media(1, quality=0.9), make_media(2, minutes=10, quality=0.9)]
        policy = SelectionPolicy(target_total=5, minimum_total=1, quality_floor=0.5)

        result = select(records, policy, quality_scores={2: 0.1})

        assert result.member_ids == (1,)

    def test_no_show_excluded(self, select, make_media):
        records = [make_media(1), make_media(2, minutes=10, no_show=True), make_media(3, minutes=20, low_quality=True)]
        policy = SelectionPolicy(target_total=5, minimum_total=1)

        result = select(records, policy)

        assert result.member_ids == (1,)
        assert result.telemetry["rejections"]["no_show"] == 2

    def test_nothing_eligible(self, select, make_media):
        records = [make_media(1, no_show=True)]
        policy = SelectionPolicy(target_total=5, minimum_total=1)

        result = select(records, policy)

        assert result.is_empty
        assert result.telemetry["counts"]["eligible"] == 0

    def test_burst_collapsed_to_best(self, select, make_media):
        records = [
            make_media(1, minutes=0, quality=0.6, burst_id="b1"),
            make_media(2, minutes=0, quality=0.9, burst_id="b1"),
            make_media(3, minutes=0, quality=0.7, burst_id="b1"),
            make_media(4, minutes=30, quality=0.5),
        ]
        policy = SelectionPolicy(target_total=5, minimum_total=1)

        result = select(records, policy)

        assert result.member_ids == (2, 4)
        assert result.telemetry["rejections"]["burst"] == 2


class TestScoring:
    """Bonus and penalty adjustments."""

    def test_video_bonus(self, select, make_media):
        records = [make_media(1, quality=0.8), make_media(2, minutes=10, quality=0.5, is_video=True)]
        policy = SelectionPolicy(target_total=1, minimum_total=1, video_bonus=0.4)

        assert select(records, policy).member_ids == (2,)

    def test_selfie_penalty(self, select, make_media):
        records = [
            make_media(1, quality=0.9, has_faces=True, person_ids=("p1",)),
            make_media(2, minutes=10, quality=0.6),
        ]
        policy = SelectionPolicy(target_total=1, minimum_total=1, selfie_penalty=0.5)

        assert select(records, policy).member_ids == (2,)

    def test_repeat_penalty_varies_people(self, select, make_media):
        records = [
            make_media(1, minutes=0, quality=0.9, person_ids=("p1", "p2")),
            make_media(2, minutes=10, quality=0.85, person_ids=("p2", "p1")),
            make_media(3, minutes=20, quality=0.8, person_ids=("p3",)),
        ]
        policy = SelectionPolicy(target_total=2, minimum_total=2, repeat_penalty=0.2)

        assert select(records, policy).member_ids == (1, 3)


class TestGreedyRules:
    """Hard rules of the greedy pass."""

    def test_spacing_with_relaxation(self, select, make_media):
        """Ten photos five minutes apart: 1800s admits two, the relaxed 1080s admits three."""
        records = evenly_spaced(make_media, 10, 5)
        policy = SelectionPolicy(target_total=10, minimum_total=4, min_spacing_seconds=1800)

        result = select(records, policy)
        relaxations = result.telemetry["relaxations"]

        assert relaxations[0]["name"] == "baseline"
        assert relaxations[0]["members"] == 2
        assert relaxations[0]["policy"]["min_spacing_seconds"] == 1800
        assert relaxations[1]["name"] == "spacing"
        assert relaxations[1]["members"] == 3
        assert relaxations[1]["policy"]["min_spacing_seconds"] == 1080
        assert result.telemetry["counts"]["greedy"] == 3
        assert result.telemetry["policy"]["min_spacing_seconds"] == 1080

    def test_spacing_met_without_relaxation(self, select, make_media):
        records = evenly_spaced(make_media, 10, 5)
        policy = SelectionPolicy(target_total=10, minimum_total=2, min_spacing_seconds=1800)

        result = select(records, policy)

        assert "relaxations" not in result.telemetry
        assert result.telemetry["counts"]["greedy"] == 2
        assert result.telemetry["rejections"]["spacing"] == 8

    def test_final_members_respect_spacing(self, select, make_media):
        """Open slots stay empty rather than admitting photos the spacing rule rejected."""
        records = evenly_spaced(make_media, 10, 5)
        policy = SelectionPolicy(target_total=12, minimum_total=1, min_spacing_seconds=1800)
        taken = {m.id: m.taken_at for m in records}

        result = select(records, policy)
        times = [taken[i] for i in result.member_ids]
        gaps = [(b - a).total_seconds() for a, b in zip(times, times[1:])]

        assert result.member_ids == (1, 7)
        assert all(gap >= 1800 for gap in gaps)
        assert result.telemetry["counts"]["diversified"] == 0
        assert result.telemetry["mmr"]["rule_skipped"] == 8

    def test_final_members_respect_hamming(self, select, make_media):
        records = [
            make_media(1, minutes=0, phash="ffffffffffffffff"),
            make_media(2, minutes=2, phash="ffffffffffffffff"),
        ]
        policy = SelectionPolicy(target_total=12, minimum_total=1, phash_min_hamming=10, min_spacing_seconds=600)

        result = select(records, policy)

        assert result.member_ids == (1,)

    def test_final_members_respect_slot_cap(self, select, make_media):
        records = evenly_spaced(make_media, 6, 20)
        policy = SelectionPolicy(target_total=6, minimum_total=1, time_slot_hours=4)

        result = select(records, policy)

        assert len(result.member_ids) <= 2
        assert result.telemetry["counts"]["diversified"] == 0

    def test_day_cap_limits_selection(self, select, make_media):
        records = evenly_spaced(make_media, 6, 10)
        capped = SelectionPolicy(target_total=5, minimum_total=1, max_per_day=1)
        uncapped = SelectionPolicy(target_total=5, minimum_total=1)

        capped_result = select(records, capped)
        uncapped_result = select(records, uncapped)

        assert len(capped_result.member_ids) == 1
        assert len(uncapped_result.member_ids) == 5

    def test_time_slot_cap(self, select, make_media):
        records = evenly_spaced(make_media, 5, 5)
        policy = SelectionPolicy(target_total=5, minimum_total=1, time_slot_hours=1)

        result = select(records, policy)

        assert result.telemetry["counts"]["greedy"] == 2
        assert result.telemetry["rejections"]["slot"] == 3

    def test_staypoint_cap(self, select, make_media):
        records = [make_media(i, minutes=i * 10, gps_lat=48.8584, gps_lon=2.2945) for i in range(1, 5)]
        policy = SelectionPolicy(target_total=4, minimum_total=1, max_per_staypoint=1)

        result = select(records, policy)

        assert len(result.member_ids) == 1
        assert result.telemetry["distribution"]["per_staypoint"] == {"sp0": 1}

    def test_near_duplicates_excluded(self, select, make_media):
        records = [
            make_media(1, minutes=0, quality=0.9, phash="ffffffffffffffff"),
            make_media(2, minutes=10, quality=0.7, phash="fffffffffffffffe"),
            make_media(3, minutes=20, quality=0.6, phash="0000000000000000"),
        ]
        policy = SelectionPolicy(target_total=3, minimum_total=1, phash_min_hamming=10)

        result = select(records, policy)

        assert result.member_ids == (1, 3)
        assert result.telemetry["rejections"]["near_duplicate"] == 1
        assert result.telemetry["metrics"]["phash_distances"]["min"] == 64

    def test_missing_phash_never_duplicate(self, select, make_media):
        records = [make_media(1, phash=None), make_media(2, minutes=10, phash=None)]
        policy = SelectionPolicy(target_total=2, minimum_total=2, phash_min_hamming=10)

        result = select(records, policy)

        assert result.member_ids == (1, 2)
        assert result.telemetry["rejections"]["near_duplicate"] == 0
        assert result.telemetry["metrics"]["phash_distances"] is None

    def test_greedy_count_never_above_target(self, select, make_media):
        records = evenly_spaced(make_media, 8, 60)
        policy = SelectionPolicy(target_total=3, minimum_total=3, min_spacing_seconds=60)

        result = select(records, policy)

        assert result.telemetry["counts"]["greedy"] == 3
        assert result.telemetry["counts"]["diversified"] == 0


class TestPeopleBalance:
    """Share limit per person across the picks."""

    def records(self, make_media):
        return [
            make_media(1, minutes=0, quality=0.9, person_ids=("ana",)),
            make_media(2, minutes=10, quality=0.85, person_ids=("ana",)),
            make_media(3, minutes=20, quality=0.8, person_ids=("ana",)),
            make_media(4, minutes=30, quality=0.7, person_ids=("ben",)),
        ]

    def test_disabled_by_default(self, select, make_media):
        policy = SelectionPolicy(target_total=4, minimum_total=1)

        result = select(self.records(make_media), policy)

        assert result.member_ids == (1, 2, 3, 4)
        assert result.telemetry["rejections"]["people"] == 0

    def test_dominant_person_limited(self, select, make_media):
        """After one pick of ana the limit is ceil(2 * 0.5) = 1, so ben goes in before her second photo."""
        policy = SelectionPolicy(target_total=4, minimum_total=1, enable_people_balance=True)

        result = select(self.records(make_media), policy)
        telemetry = result.telemetry

        assert telemetry["counts"]["greedy"] == 2
        assert telemetry["rejections"]["people"] == 2
        assert result.member_ids == (1, 2, 4)
        assert sum(1 for i in result.member_ids if i != 4) <= 2

    def test_important_person_exempt(self, select, make_media):
        policy = SelectionPolicy(
            target_total=4, minimum_total=1, enable_people_balance=True, important_person_ids=("ana",)
        )

        result = select(self.records(make_media), policy)

        assert result.member_ids == (1, 2, 3, 4)
        assert result.telemetry["rejections"]["people"] == 0

    def test_fallback_person_admitted(self, select, make_media):
        policy = SelectionPolicy(
            target_total=4, minimum_total=1, enable_people_balance=True, fallback_person_ids=("ana",)
        )

        result = select(self.records(make_media), policy)

        assert result.telemetry["counts"]["greedy"] == 4
        assert result.telemetry["rejections"]["people"] == 0

    def test_person_less_photos_pass(self, select, make_media):
        records = [make_media(i, minutes=i * 10) for i in range(1, 4)]
        policy = SelectionPolicy(target_total=3, minimum_total=1, enable_people_balance=True)

        assert select(records, policy).member_ids == (1, 2, 3)


class TestDiversifier:
    """Fill phase behaviour, run directly against a chosen set."""

    def run(self, make_draft, records, policy, selected_ids):
        media_map = {m.id: m for m in records}
        timestamps = [m.timestamp for m in records]
        metrics = SimilarityMetrics(time_span_seconds=(max(timestamps) - min(timestamps)).total_seconds())
        pool = build_candidates(list(media_map), media_map, {}, policy, make_draft("event", list(media_map)), metrics)
        selected = [c for c in pool.eligible if c.media_id in selected_ids]
        return Diversifier(policy, metrics).run(pool.eligible, selected, set())

    def spread(self, make_media):
        return [make_media(i + 1, minutes=m) for i, m in enumerate((0, 10, 20, 240))]

    def test_farthest_candidate_first(self, make_draft, make_media):
        policy = SelectionPolicy(target_total=3, minimum_total=1)

        outcome = self.run(make_draft, self.spread(make_media), policy, {1})

        assert outcome.report["selected"] == [4, 3]
        assert len(outcome.report["iterations"]) == 2
        assert outcome.report["lambda"] == 0.75
        assert outcome.report["pool_size"] == 3

    def test_hard_rules_rechecked(self, make_draft, make_media):
        policy = SelectionPolicy(target_total=4, minimum_total=1, min_spacing_seconds=1800)

        outcome = self.run(make_draft, self.spread(make_media), policy, {1})

        assert outcome.report["selected"] == [4]
        assert outcome.report["rule_skipped"] == 2
        assert outcome.collector.reason_counts().get("spacing", 0) == 0

    def test_year_cap(self, make_draft, make_media):
        records = [
            make_media(1, taken_at=datetime(2021, 5, 1, 12)),
            make_media(2, taken_at=datetime(2021, 6, 1, 12)),
            make_media(3, taken_at=datetime(2022, 5, 1, 12)),
        ]
        policy = SelectionPolicy(target_total=3, minimum_total=1, max_per_year=1)

        outcome = self.run(make_draft, records, policy, {1})

        assert [c.media_id for c in outcome.added] == [3]
        assert outcome.collector.reason_counts()["year"] == 1

    def test_no_open_slots(self, make_draft, make_media):
        policy = SelectionPolicy(target_total=1, minimum_total=1)

        outcome = self.run(make_draft, self.spread(make_media), policy, {1})

        assert outcome.added == []
        assert outcome.report["selected"] == []
