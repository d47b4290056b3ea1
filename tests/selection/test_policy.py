"""Tests for selection policies, relaxation and the policy provider."""

import pytest

from memory_curation.config import ConfigurationError, SelectionSettings
from memory_curation.domain.models import DaySegment
from memory_curation.domain.types import DayCategory
from memory_curation.selection.policy import SelectionPolicy, relaxation_steps
from memory_curation.selection.provider import SelectionPolicyProvider


def apply_steps(policy):
    """Cumulatively apply every relaxation step, returning (name, policy) pairs."""
    applied = []
    current = policy
    for name, transform in relaxation_steps(policy):
        current = transform(current)
        applied.append((name, current))
    return applied


class TestSelectionPolicyValidation:
    """Construction-time validation."""

    def test_minimum_above_target(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=5)

    def test_non_positive_target(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=0, minimum_total=0)

    def test_negative_spacing(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, min_spacing_seconds=-1)

    def test_lambda_out_of_range(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, mmr_lambda=1.5)

    def test_similarity_floor_above_cap(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, mmr_similarity_floor=0.8, mmr_similarity_cap=0.5)

    def test_time_slot_bounds(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, time_slot_hours=25)

    def test_zero_cap_rejected(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, max_per_day=0)

    def test_unknown_day_category(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, day_categories={"2023-07-14": "weekend"})

    def test_bool_is_not_an_integer(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=True, minimum_total=1)

    def test_people_balance_weight_bounds(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, people_balance_weight=0)
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, people_balance_weight=1.5)

    def test_people_balance_flag_must_be_bool(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicy(target_total=4, minimum_total=2, enable_people_balance="yes")

    def test_person_ids_normalized(self):
        policy = SelectionPolicy(target_total=4, minimum_total=2, important_person_ids=[7, "ana"])

        assert policy.important_person_ids == ("7", "ana")
        assert policy.fallback_person_ids == ()


class TestSelectionPolicyMutators:
    """Tests for the immutable with_* helpers."""

    def test_with_min_spacing_returns_copy(self):
        policy = SelectionPolicy(target_total=4, minimum_total=2, min_spacing_seconds=600)

        relaxed = policy.with_min_spacing(300)

        assert relaxed.min_spacing_seconds == 300
        assert policy.min_spacing_seconds == 600

    def test_without_caps_keeps_pacing(self):
        policy = SelectionPolicy(
            target_total=4, minimum_total=2,
            max_per_day=2, max_per_staypoint=1, max_per_year=3, max_per_bucket=1,
            time_slot_hours=3, day_quotas={"2023-07-14": 1},
            min_spacing_seconds=600, phash_min_hamming=10,
        )

        uncapped = policy.without_caps()

        assert uncapped.max_per_day is None
        assert uncapped.max_per_staypoint is None
        assert uncapped.max_per_year is None
        assert uncapped.max_per_bucket is None
        assert uncapped.time_slot_hours is None
        assert uncapped.day_quotas == {}
        assert uncapped.min_spacing_seconds == 600
        assert uncapped.phash_min_hamming == 10

    def test_day_cap_with_quota_and_category(self):
        policy = SelectionPolicy(
            target_total=10, minimum_total=2, max_per_day=3,
            day_quotas={"2023-07-15": 5},
            day_categories={"2023-07-14": "core", "2023-07-16": "peripheral"},
        )

        assert policy.day_cap("2023-07-14") == 4
        assert policy.day_cap("2023-07-15") == 5
        assert policy.day_cap("2023-07-16") == 2
        assert policy.day_cap("2023-07-17") == 3

    def test_peripheral_day_keeps_one(self):
        policy = SelectionPolicy(
            target_total=10, minimum_total=2, max_per_day=1,
            day_categories={"2023-07-14": "peripheral"},
        )
        assert policy.day_cap("2023-07-14") == 1

    def test_day_cap_none_without_caps(self):
        policy = SelectionPolicy(target_total=10, minimum_total=2)
        assert policy.day_cap("2023-07-14") is None
        assert not policy.has_day_caps

    def test_without_caps_disables_people_balance(self):
        policy = SelectionPolicy(target_total=4, minimum_total=2, enable_people_balance=True)

        assert not policy.without_caps().enable_people_balance
        assert policy.enable_people_balance

    def test_explicit_quota_is_final(self):
        policy = SelectionPolicy(
            target_total=10, minimum_total=2, max_per_day=3,
            day_quotas={"2023-07-14": 2, "2023-07-15": 0},
            day_categories={"2023-07-14": "core", "2023-07-15": "peripheral"},
        )

        assert policy.day_cap("2023-07-14") == 2
        assert policy.day_cap("2023-07-15") == 0

    def test_snapshot_is_plain_dict(self):
        policy = SelectionPolicy(target_total=10, minimum_total=2, day_quotas={"2023-07-14": 1})

        snapshot = policy.snapshot()

        assert snapshot["target_total"] == 10
        assert snapshot["day_quotas"] == {"2023-07-14": 1}


class TestDayContext:
    """Per-day quotas derived from a draft's day segments."""

    def test_empty_segments_keep_policy(self):
        policy = SelectionPolicy(target_total=6, minimum_total=1)

        assert policy.with_day_context({}) is policy

    def test_core_and_peripheral_quotas(self):
        """Twelve over two days: core gets 6 + 1, peripheral 6 - 1 held to its hard cap of 2."""
        policy = SelectionPolicy(target_total=12, minimum_total=1, max_per_staypoint=5)
        segments = {
            "2023-07-14": DaySegment(score=0.9, category="core"),
            "2023-07-15": DaySegment(score=0.3, category="peripheral"),
        }

        derived = policy.with_day_context(segments)

        assert derived.day_quotas == {"2023-07-14": 7, "2023-07-15": 2}
        assert derived.day_categories == {"2023-07-14": "core", "2023-07-15": "peripheral"}
        assert derived.day_cap("2023-07-15") == 2
        assert derived.max_per_staypoint == 3
        assert policy.day_quotas == {}

    def test_quotas_trimmed_to_target(self):
        """Quotas summing above the target lose picks on the weakest peripheral day first."""
        policy = SelectionPolicy(target_total=6, minimum_total=1)
        segments = {
            "2023-07-14": DaySegment(score=0.9, category="core"),
            "2023-07-15": DaySegment(score=0.8, category="core"),
            "2023-07-16": DaySegment(score=0.2, category="peripheral"),
        }

        derived = policy.with_day_context(segments)

        assert derived.day_quotas == {"2023-07-14": 3, "2023-07-15": 3, "2023-07-16": 0}

    def test_max_per_day_bounds_base(self):
        policy = SelectionPolicy(target_total=12, minimum_total=1, max_per_day=2)
        segments = {"2023-07-14": DaySegment(score=0.5, category="core")}

        assert policy.with_day_context(segments).day_quotas == {"2023-07-14": 3}

    def test_segment_category_validated(self):
        with pytest.raises(ValueError):
            DaySegment(category="weekend")
        assert DaySegment(category=DayCategory.CORE).category == "core"


class TestRelaxationSteps:
    """Tests for the relaxation schedule."""

    def test_step_names(self):
        policy = SelectionPolicy(target_total=10, minimum_total=2)
        assert [name for name, _ in relaxation_steps(policy)] == ["baseline", "spacing", "hamming", "caps"]

    def test_staypoint_step_when_relaxed_cap_larger(self):
        policy = SelectionPolicy(target_total=10, minimum_total=2, max_per_staypoint=1, relaxed_max_per_staypoint=3)

        steps = apply_steps(policy)

        assert [name for name, _ in steps] == ["baseline", "spacing", "hamming", "staypoint", "caps"]
        assert dict(steps)["staypoint"].max_per_staypoint == 3

    def test_spacing_and_hamming_relax(self):
        policy = SelectionPolicy(target_total=10, minimum_total=2, min_spacing_seconds=1800, phash_min_hamming=12)

        steps = dict(apply_steps(policy))

        assert steps["baseline"].min_spacing_seconds == 1800
        assert steps["spacing"].min_spacing_seconds == 1080
        assert steps["spacing"].phash_min_hamming == 12
        assert steps["hamming"].phash_min_hamming == 9

    def test_floors_applied(self):
        policy = SelectionPolicy(target_total=10, minimum_total=2, min_spacing_seconds=30, phash_min_hamming=9)

        steps = dict(apply_steps(policy))

        assert steps["spacing"].min_spacing_seconds == 25
        assert steps["hamming"].phash_min_hamming == 8

    def test_never_tightens(self):
        """Values already below the floor are left alone."""
        policy = SelectionPolicy(target_total=10, minimum_total=2, min_spacing_seconds=10, phash_min_hamming=0)

        for _, relaxed in apply_steps(policy):
            assert relaxed.min_spacing_seconds <= 10
            assert relaxed.phash_min_hamming == 0

    def test_caps_step_removes_caps(self):
        policy = SelectionPolicy(target_total=10, minimum_total=2, max_per_day=2, min_spacing_seconds=600)

        final = apply_steps(policy)[-1][1]

        assert final.max_per_day is None
        assert final.min_spacing_seconds == 360


class TestSelectionPolicyProvider:
    """Tests for profile resolution."""

    PROFILES = {
        "default": {"target_total": 12, "minimum_total": 4},
        "vacation": {"target_total": 30, "minimum_total": 10, "max_per_day": 6, "time_slot_hours": 3},
    }

    def test_algorithm_mapping(self):
        provider = SelectionPolicyProvider(self.PROFILES, "default", {"vacation_trip": "vacation"})

        assert provider.for_algorithm("vacation_trip").profile_key == "vacation"
        assert provider.for_algorithm("vacation_trip").target_total == 30
        assert provider.for_algorithm("unknown").profile_key == "default"

    def test_int_promoted_for_float_fields(self):
        provider = SelectionPolicyProvider(self.PROFILES, "default")
        assert provider.for_algorithm("x").mmr_lambda == 0.75
        assert isinstance(provider._policies["vacation"].time_slot_hours, float)

    def test_missing_default_profile(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicyProvider(self.PROFILES, "missing")

    def test_unknown_mapped_profile(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicyProvider(self.PROFILES, "default", {"trip": "missing"})

    def test_unknown_keys_rejected(self):
        profiles = {"default": {"target_total": 12, "minimum_total": 4, "max_per_week": 2}}
        with pytest.raises(ConfigurationError):
            SelectionPolicyProvider(profiles, "default")

    def test_missing_totals_rejected(self):
        with pytest.raises(ConfigurationError):
            SelectionPolicyProvider({"default": {"target_total": 12}}, "default")

    def test_minimum_clamped_to_target(self):
        profiles = {"default": {"target_total": 5, "minimum_total": 8}}

        provider = SelectionPolicyProvider(profiles, "default")

        assert provider.for_algorithm("any").minimum_total == 5

    def test_invalid_profile_fails_at_construction(self):
        profiles = {**self.PROFILES, "broken": {"target_total": 5, "minimum_total": 2, "mmr_lambda": 3}}
        with pytest.raises(ConfigurationError):
            SelectionPolicyProvider(profiles, "default")

    def test_from_settings(self):
        settings = SelectionSettings(
            default_profile="default", profiles=self.PROFILES, algorithm_profiles={"trip": "vacation"}
        )

        provider = SelectionPolicyProvider.from_settings(settings)

        assert sorted(provider.profile_names()) == ["default", "vacation"]
        assert provider.profile_for("trip") == "vacation"

    def test_people_balance_keys(self):
        profiles = {"default": {
            "target_total": 12, "minimum_total": 4, "enable_people_balance": True,
            "people_balance_weight": 1, "important_person_ids": ["ana"],
        }}

        policy = SelectionPolicyProvider(profiles, "default").for_algorithm("any")

        assert policy.enable_people_balance
        assert policy.people_balance_weight == 1.0
        assert policy.important_person_ids == ("ana",)

    def test_person_ids_must_be_list(self):
        profiles = {"default": {"target_total": 12, "minimum_total": 4, "important_person_ids": "ana"}}
        with pytest.raises(ConfigurationError):
            SelectionPolicyProvider(profiles, "default")
