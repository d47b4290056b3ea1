"""Selection policy - immutable per-profile parameters for member curation."""

import math
from dataclasses import asdict, dataclass, field, replace
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from memory_curation.config import ConfigurationError
from memory_curation.domain.models import DaySegment
from memory_curation.domain.types import DayCategory

# Time-slot cap is fixed: at most this many picks per slot and day
SLOT_CAP = 2

SPACING_RELAX_FACTOR = 0.6
SPACING_RELAX_FLOOR = 25
HAMMING_RELAX_FACTOR = 0.75
HAMMING_RELAX_FLOOR = 8

# Share of the target the peripheral days may hold together
PERIPHERAL_RATIO = 0.35
PERIPHERAL_RATIO_HIGH = 0.4
PERIPHERAL_RATIO_LOW = 0.3


@dataclass(frozen=True)
class SelectionPolicy:
    """
    Parameters of one selection profile.

    Instances are immutable; every ``with_*`` method returns a new policy.
    Validation runs at construction and raises ConfigurationError.
    """
    target_total: int
    minimum_total: int
    profile_key: str = "default"

    # Caps (None = unlimited)
    max_per_day: Optional[int] = None
    max_per_staypoint: Optional[int] = None
    relaxed_max_per_staypoint: Optional[int] = None
    max_per_year: Optional[int] = None
    max_per_bucket: Optional[int] = None

    # Pacing
    time_slot_hours: Optional[float] = None
    min_spacing_seconds: int = 0
    phash_min_hamming: int = 0

    # Scoring
    quality_floor: float = 0.0
    video_bonus: float = 0.0
    face_bonus: float = 0.0
    selfie_penalty: float = 0.0
    video_heavy_bonus: Optional[float] = None
    repeat_penalty: float = 0.0

    # Diversification
    mmr_lambda: float = 0.75
    mmr_similarity_floor: float = 0.35
    mmr_similarity_cap: float = 0.9
    mmr_max_candidates: int = 120

    # People balance
    enable_people_balance: bool = False
    people_balance_weight: float = 0.5
    important_person_ids: Tuple[str, ...] = ()
    fallback_person_ids: Tuple[str, ...] = ()

    # Day context
    day_quotas: Mapping[str, int] = field(default_factory=dict)
    day_categories: Mapping[str, str] = field(default_factory=dict)
    core_day_bonus: int = 1
    peripheral_day_penalty: int = 1

    def __post_init__(self):
        self._require_int("target_total", minimum=1)
        self._require_int("minimum_total", minimum=1)
        if self.minimum_total > self.target_total:
            raise ConfigurationError(
                f"minimum_total ({self.minimum_total}) must not exceed target_total ({self.target_total})"
            )

        for name in ("max_per_day", "max_per_staypoint", "relaxed_max_per_staypoint",
                     "max_per_year", "max_per_bucket"):
            if getattr(self, name) is not None:
                self._require_int(name, minimum=1)

        self._require_int("min_spacing_seconds", minimum=0)
        self._require_int("phash_min_hamming", minimum=0)
        self._require_int("mmr_max_candidates", minimum=1)
        self._require_int("core_day_bonus", minimum=0)
        self._require_int("peripheral_day_penalty", minimum=0)

        if self.time_slot_hours is not None:
            self._require_number("time_slot_hours")
            if self.time_slot_hours <= 0 or self.time_slot_hours > 24:
                raise ConfigurationError(f"time_slot_hours must be within (0, 24], got {self.time_slot_hours}")

        for name in ("quality_floor", "video_bonus", "face_bonus", "selfie_penalty", "repeat_penalty"):
            self._require_number(name, minimum=0.0)
        if self.video_heavy_bonus is not None:
            self._require_number("video_heavy_bonus", minimum=0.0)

        for name in ("mmr_lambda", "mmr_similarity_floor", "mmr_similarity_cap"):
            self._require_number(name, minimum=0.0)
            if getattr(self, name) > 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {getattr(self, name)}")
        if self.mmr_similarity_floor > self.mmr_similarity_cap:
            raise ConfigurationError("mmr_similarity_floor must not exceed mmr_similarity_cap")

        if not isinstance(self.enable_people_balance, bool):
            raise ConfigurationError(f"enable_people_balance must be a boolean, got {self.enable_people_balance!r}")
        self._require_number("people_balance_weight")
        if self.people_balance_weight <= 0 or self.people_balance_weight > 1:
            raise ConfigurationError(f"people_balance_weight must be within (0, 1], got {self.people_balance_weight}")
        object.__setattr__(self, "important_person_ids", tuple(str(p) for p in self.important_person_ids or ()))
        object.__setattr__(self, "fallback_person_ids", tuple(str(p) for p in self.fallback_person_ids or ()))

        for day, quota in self.day_quotas.items():
            if isinstance(quota, bool) or not isinstance(quota, int) or quota < 0:
                raise ConfigurationError(f"day_quotas[{day}] must be a non-negative integer, got {quota!r}")
        valid_categories = {c.value for c in DayCategory}
        for day, category in self.day_categories.items():
            if category not in valid_categories:
                raise ConfigurationError(f"day_categories[{day}] must be one of {sorted(valid_categories)}")

    def _require_int(self, name: str, minimum: int) -> None:
        value = getattr(self, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        if value < minimum:
            raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")

    def _require_number(self, name: str, minimum: Optional[float] = None) -> None:
        value = getattr(self, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            raise ConfigurationError(f"{name} must be a number, got {value!r}")
        if minimum is not None and value < minimum:
            raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def with_min_spacing(self, seconds: int) -> "SelectionPolicy":
        return replace(self, min_spacing_seconds=int(seconds))

    def with_phash_min_hamming(self, bits: int) -> "SelectionPolicy":
        return replace(self, phash_min_hamming=int(bits))

    def with_max_per_staypoint(self, cap: Optional[int]) -> "SelectionPolicy":
        return replace(self, max_per_staypoint=cap)

    def without_caps(self) -> "SelectionPolicy":
        """Drop every count cap and the people balance; pacing and near-duplicate rules stay."""
        return replace(
            self,
            max_per_day=None,
            max_per_staypoint=None,
            relaxed_max_per_staypoint=None,
            max_per_year=None,
            max_per_bucket=None,
            time_slot_hours=None,
            day_quotas={},
            enable_people_balance=False,
        )

    def with_day_context(self, segments: Mapping[str, DaySegment]) -> "SelectionPolicy":
        """
        Derive per-day quotas from a draft's own day segments.

        Every day starts from ``ceil(target_total / days)`` (bounded by
        ``max_per_day``). Core days gain ``core_day_bonus`` and keep at
        least 1; peripheral days lose ``peripheral_day_penalty`` and are held
        to a hard cap of 2 (1 when the target is small). The peripheral days
        together may hold 30-40% of the target depending on how many days are
        peripheral. Quotas summing above the target are trimmed from the
        lowest-scoring peripheral days first, then core days. The staypoint
        cap shrinks to half the largest day quota.
        """
        if not segments:
            return self

        day_count = len(segments)
        target = self.target_total
        base_cap = math.ceil(target / day_count)
        if self.max_per_day is not None:
            base_cap = min(base_cap, self.max_per_day)
        base_cap = max(1, base_cap)

        peripheral_days = [d for d, s in segments.items() if s.category == DayCategory.PERIPHERAL.value]
        peripheral_limit = None
        peripheral_hard_cap = None
        if peripheral_days:
            share = len(peripheral_days) / day_count
            ratio = PERIPHERAL_RATIO
            if share >= 0.6:
                ratio = PERIPHERAL_RATIO_HIGH
            elif share <= 0.25:
                ratio = PERIPHERAL_RATIO_LOW
            peripheral_limit = min(target, max(len(peripheral_days), int(math.floor(target * ratio))))
            peripheral_hard_cap = 2 if target >= len(peripheral_days) * 2 else 1

        quotas: Dict[str, int] = {}
        minimums: Dict[str, int] = {}
        for day, segment in segments.items():
            if segment.category == DayCategory.PERIPHERAL.value:
                quotas[day] = min(max(0, base_cap - self.peripheral_day_penalty), peripheral_hard_cap)
                minimums[day] = 0
            else:
                quotas[day] = max(1, base_cap + self.core_day_bonus)
                minimums[day] = 1

        if peripheral_limit is not None:
            _trim_peripheral(quotas, peripheral_days, peripheral_limit)

        current = sum(quotas.values())
        floor = max(sum(minimums.values()), self.minimum_total)
        goal = min(target, current)
        if goal < floor:
            goal = min(current, floor)
        if current > goal:
            _rebalance(quotas, segments, minimums, current - goal)

        policy = replace(
            self,
            day_quotas=quotas,
            day_categories={day: segment.category for day, segment in segments.items()},
        )
        if policy.max_per_staypoint is not None and quotas:
            staypoint_cap = max(1, max(quotas.values()) // 2)
            if staypoint_cap < policy.max_per_staypoint:
                policy = policy.with_max_per_staypoint(staypoint_cap)
        return policy

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def has_day_caps(self) -> bool:
        return self.max_per_day is not None or bool(self.day_quotas)

    def day_cap(self, day: str) -> Optional[int]:
        """
        Effective cap for one day key.

        An explicit day quota is final. Otherwise ``max_per_day`` applies,
        adjusted by the day's category.
        """
        if day in self.day_quotas:
            return self.day_quotas[day]
        base = self.max_per_day
        if base is None:
            return None
        category = self.day_categories.get(day)
        if category == DayCategory.CORE.value:
            return base + self.core_day_bonus
        if category == DayCategory.PERIPHERAL.value:
            return max(1, base - self.peripheral_day_penalty)
        return base

    def snapshot(self) -> Dict:
        """Plain-dict view for telemetry."""
        data = asdict(self)
        data["day_quotas"] = dict(self.day_quotas)
        data["day_categories"] = dict(self.day_categories)
        data["important_person_ids"] = list(self.important_person_ids)
        data["fallback_person_ids"] = list(self.fallback_person_ids)
        return data


def _trim_peripheral(quotas: Dict[str, int], peripheral_days: List[str], limit: int) -> None:
    """Shave one pick at a time off the largest peripheral quotas until they fit the limit."""
    overflow = sum(quotas[d] for d in peripheral_days) - limit
    while overflow > 0:
        reduced = False
        for day in sorted(peripheral_days, key=lambda d: (-quotas[d], d)):
            if overflow == 0:
                break
            if quotas[day] > 0:
                quotas[day] -= 1
                overflow -= 1
                reduced = True
        if not reduced:
            break


def _rebalance(
    quotas: Dict[str, int],
    segments: Mapping[str, DaySegment],
    minimums: Dict[str, int],
    excess: int,
) -> None:
    """Remove excess quota from the weakest peripheral days, then the weakest core days."""
    for category in (DayCategory.PERIPHERAL.value, DayCategory.CORE.value):
        days = sorted((d for d, s in segments.items() if s.category == category), key=lambda d: (segments[d].score, d))
        for day in days:
            if excess <= 0:
                return
            room = quotas[day] - minimums[day]
            if room <= 0:
                continue
            reduction = min(room, excess)
            quotas[day] -= reduction
            excess -= reduction


PolicyTransform = Callable[[SelectionPolicy], SelectionPolicy]


def _relax_spacing(policy: SelectionPolicy) -> SelectionPolicy:
    current = policy.min_spacing_seconds
    relaxed = max(SPACING_RELAX_FLOOR, int(math.floor(current * SPACING_RELAX_FACTOR)))
    return policy.with_min_spacing(min(current, relaxed))


def _relax_hamming(policy: SelectionPolicy) -> SelectionPolicy:
    current = policy.phash_min_hamming
    relaxed = max(HAMMING_RELAX_FLOOR, int(math.floor(current * HAMMING_RELAX_FACTOR)))
    return policy.with_phash_min_hamming(min(current, relaxed))


def _relax_staypoint(policy: SelectionPolicy) -> SelectionPolicy:
    return policy.with_max_per_staypoint(policy.relaxed_max_per_staypoint)


def relaxation_steps(policy: SelectionPolicy) -> List[Tuple[str, PolicyTransform]]:
    """
    Ordered relaxation transforms, applied cumulatively.

    The staypoint step only appears when the policy defines a larger
    relaxed staypoint cap.
    """
    steps: List[Tuple[str, PolicyTransform]] = [
        ("baseline", lambda p: p),
        ("spacing", _relax_spacing),
        ("hamming", _relax_hamming),
    ]
    if (
        policy.max_per_staypoint is not None
        and policy.relaxed_max_per_staypoint is not None
        and policy.relaxed_max_per_staypoint > policy.max_per_staypoint
    ):
        steps.append(("staypoint", _relax_staypoint))
    steps.append(("caps", SelectionPolicy.without_caps))
    return steps
