"""Resolves the selection policy for a producing algorithm."""

import logging
from typing import Any, Dict, Mapping, Optional

from memory_curation.config import ConfigurationError, SelectionSettings
from memory_curation.selection.policy import SelectionPolicy

logger = logging.getLogger(__name__)

MMR_DEFAULTS = {
    "mmr_lambda": 0.75,
    "mmr_similarity_floor": 0.35,
    "mmr_similarity_cap": 0.9,
    "mmr_max_candidates": 120,
}

INT_FIELDS = {
    "target_total", "minimum_total", "max_per_day", "max_per_staypoint",
    "relaxed_max_per_staypoint", "max_per_year", "max_per_bucket",
    "min_spacing_seconds", "phash_min_hamming", "mmr_max_candidates",
    "core_day_bonus", "peripheral_day_penalty",
}
FLOAT_FIELDS = {
    "time_slot_hours", "quality_floor", "video_bonus", "face_bonus", "selfie_penalty",
    "video_heavy_bonus", "repeat_penalty", "mmr_lambda", "mmr_similarity_floor",
    "mmr_similarity_cap", "people_balance_weight",
}
BOOL_FIELDS = {"enable_people_balance"}
LIST_FIELDS = {"important_person_ids", "fallback_person_ids"}
MAPPING_FIELDS = {"day_quotas", "day_categories"}


class SelectionPolicyProvider:
    """
    Builds one SelectionPolicy per profile and maps algorithms onto them.

    Every profile is built and validated in the constructor, so a broken
    profile fails at startup rather than on the first draft that needs it.
    """

    def __init__(
        self,
        profiles: Mapping[str, Mapping[str, Any]],
        default_profile: str,
        algorithm_profiles: Optional[Mapping[str, str]] = None
    ):
        if default_profile not in profiles:
            raise ConfigurationError(
                f"Default selection profile '{default_profile}' not found. Available: {sorted(profiles)}"
            )

        self._default_profile = default_profile
        self._algorithm_profiles = dict(algorithm_profiles or {})
        for algorithm, profile in self._algorithm_profiles.items():
            if profile not in profiles:
                raise ConfigurationError(
                    f"Algorithm '{algorithm}' maps to unknown selection profile '{profile}'"
                )

        self._policies: Dict[str, SelectionPolicy] = {
            name: self._build_policy(name, values) for name, values in profiles.items()
        }
        logger.debug(f"Selection profiles loaded: {sorted(self._policies)}")

    @classmethod
    def from_settings(cls, settings: SelectionSettings) -> "SelectionPolicyProvider":
        return cls(settings.profiles, settings.default_profile, settings.algorithm_profiles)

    def for_algorithm(self, algorithm: str) -> SelectionPolicy:
        """Policy for the algorithm's mapped profile, or the default profile."""
        return self._policies[self.profile_for(algorithm)]

    def profile_for(self, algorithm: str) -> str:
        return self._algorithm_profiles.get(algorithm, self._default_profile)

    def profile_names(self) -> list[str]:
        return list(self._policies.keys())

    @staticmethod
    def _build_policy(name: str, values: Mapping[str, Any]) -> SelectionPolicy:
        if not isinstance(values, Mapping):
            raise ConfigurationError(f"Selection profile '{name}' must be a mapping")

        unknown = set(values) - INT_FIELDS - FLOAT_FIELDS - BOOL_FIELDS - LIST_FIELDS - MAPPING_FIELDS
        if unknown:
            raise ConfigurationError(f"Selection profile '{name}' has unknown keys: {sorted(unknown)}")

        if "target_total" not in values or "minimum_total" not in values:
            raise ConfigurationError(f"Selection profile '{name}' needs target_total and minimum_total")

        kwargs: Dict[str, Any] = dict(MMR_DEFAULTS)
        for key, value in values.items():
            if value is None:
                kwargs[key] = None
            elif key in FLOAT_FIELDS and isinstance(value, int) and not isinstance(value, bool):
                kwargs[key] = float(value)
            elif key in MAPPING_FIELDS:
                if not isinstance(value, Mapping):
                    raise ConfigurationError(f"Selection profile '{name}': {key} must be a mapping")
                kwargs[key] = dict(value)
            elif key in LIST_FIELDS:
                if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
                    raise ConfigurationError(f"Selection profile '{name}': {key} must be a list")
                kwargs[key] = tuple(value)
            else:
                kwargs[key] = value

        target = kwargs["target_total"]
        minimum = kwargs["minimum_total"]
        if isinstance(target, int) and isinstance(minimum, int) and minimum > target:
            logger.warning(f"Profile '{name}': minimum_total {minimum} clamped to target_total {target}")
            kwargs["minimum_total"] = target

        return SelectionPolicy(profile_key=name, **kwargs)
