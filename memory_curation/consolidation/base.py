"""Consolidation stage protocol, metadata and shared helpers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, TYPE_CHECKING

from memory_curation.config import ConfigurationError
from memory_curation.domain.models import ClusterDraft

if TYPE_CHECKING:
    from memory_curation.consolidation.context import ConsolidationContext


@dataclass
class StageMetadata:
    """Metadata describing a consolidation stage for discovery and validation."""

    name: str
    display_name: str
    description: str

    depends_on: list[str] = field(default_factory=list)
    config_schema: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "depends_on": self.depends_on,
            "config_schema": self.config_schema,
        }


class ConsolidationStage(Protocol):
    """Protocol defining the interface for all consolidation stages."""

    @property
    def metadata(self) -> StageMetadata:
        """Return stage metadata for discovery and validation."""
        ...

    def process(self, context: "ConsolidationContext", config: dict) -> None:
        """
        Run this stage against the full draft list.

        Reads ``context.drafts`` and replaces it with the stage output.

        Args:
            context: Shared consolidation context
            config: Stage-specific configuration dictionary
        """
        ...

    def validate(self, context: "ConsolidationContext") -> list[str]:
        """Return validation errors (empty if the stage can run)."""
        ...


def jaccard(a: frozenset, b: frozenset) -> float:
    """Overlap ratio of two member sets."""
    if not a and not b:
        return 0.0
    union = len(a | b)
    return len(a & b) / union if union else 0.0


class BaseStage(ABC):
    """
    Base class for consolidation stages.

    Subclasses implement ``_run`` which maps the incoming draft list to the
    surviving list. ``process`` takes care of counters and progress.
    """

    _metadata: StageMetadata

    @property
    def metadata(self) -> StageMetadata:
        return self._metadata

    def validate(self, context: "ConsolidationContext") -> list[str]:
        if context.drafts is None:
            return ["Missing required context key: drafts"]
        return []

    def process(self, context: "ConsolidationContext", config: dict) -> None:
        name = self._metadata.name
        drafts = list(context.drafts)
        counters: Dict[str, Any] = {"pre_count": len(drafts)}

        context.report_progress(name, 0.0, f"{len(drafts)} drafts")
        result = self._run(drafts, config, counters) if drafts else []

        counters["post_count"] = len(result)
        counters["dropped"] = len(drafts) - len(result)
        context.stage_telemetry[name] = counters
        context.drafts = result
        context.report_progress(name, 1.0, f"{len(drafts)} -> {len(result)} drafts")

    @abstractmethod
    def _run(self, drafts: List[ClusterDraft], config: dict, counters: Dict[str, Any]) -> List[ClusterDraft]:
        """Return the surviving drafts; may add stage-specific counters."""

    # ------------------------------------------------------------------
    # Config readers
    # ------------------------------------------------------------------

    def _read_threshold(self, config: dict, key: str, default: float) -> float:
        """Read a ratio in (0, 1]."""
        value = config.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"{self._metadata.name}.{key} must be a number, got {value!r}")
        value = float(value)
        if value <= 0.0 or value > 1.0:
            raise ConfigurationError(f"{self._metadata.name}.{key} must be within (0, 1], got {value}")
        return value

    def _read_int(self, config: dict, key: str, default: int) -> int:
        value = config.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"{self._metadata.name}.{key} must be an integer, got {value!r}")
        return value

    def _read_names(self, config: dict, key: str) -> List[str]:
        value = config.get(key, [])
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) and v for v in value):
            raise ConfigurationError(f"{self._metadata.name}.{key} must be a list of names")
        return list(value)

    def _read_mapping(self, config: dict, key: str, default: Optional[dict] = None) -> dict:
        value = config.get(key, default if default is not None else {})
        if not isinstance(value, dict):
            raise ConfigurationError(f"{self._metadata.name}.{key} must be a mapping")
        return dict(value)

    # ------------------------------------------------------------------
    # Ranking helpers
    # ------------------------------------------------------------------

    @staticmethod
    def priority_map(keep_order: Iterable[str]) -> Dict[str, int]:
        """Algorithm -> priority, higher is more important."""
        order = list(keep_order)
        return {algorithm: len(order) - index for index, algorithm in enumerate(order)}

    @staticmethod
    def keep_rank(keep_order: List[str], algorithm: str) -> int:
        """Position in keep order; unlisted algorithms rank after all listed ones."""
        try:
            return keep_order.index(algorithm)
        except ValueError:
            return len(keep_order)

    @staticmethod
    def is_protected(candidate: ClusterDraft, accepted: ClusterDraft) -> bool:
        """A sub-story stays alongside the container it points at."""
        return candidate.is_sub_story_of(accepted)
