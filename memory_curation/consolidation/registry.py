"""Stage registry for discovering and managing consolidation stages."""

from typing import Type

from memory_curation.consolidation.base import ConsolidationStage, StageMetadata


class StageRegistry:
    """Registry for discovering and managing consolidation stages."""

    def __init__(self):
        self._stages: dict[str, ConsolidationStage] = {}

    def register(self, stage_class: Type[ConsolidationStage]) -> None:
        """Register a stage class."""
        instance = stage_class()
        self._stages[instance.metadata.name] = instance

    def register_instance(self, stage: ConsolidationStage) -> None:
        """Register a stage instance directly."""
        self._stages[stage.metadata.name] = stage

    def get(self, name: str) -> ConsolidationStage:
        """Get a stage by name."""
        if name not in self._stages:
            raise KeyError(f"Stage not found: {name}. Available: {list(self._stages.keys())}")
        return self._stages[name]

    def get_metadata(self, name: str) -> StageMetadata:
        return self.get(name).metadata

    def has_stage(self, name: str) -> bool:
        return name in self._stages


# Global registry instance
_global_registry: StageRegistry = None


def get_registry() -> StageRegistry:
    """Get the global stage registry, creating it if needed."""
    global _global_registry
    if _global_registry is None:
        _global_registry = StageRegistry()
    return _global_registry


def register_stage(stage_class: Type[ConsolidationStage]) -> Type[ConsolidationStage]:
    """Decorator to register a stage class with the global registry."""
    get_registry().register(stage_class)
    return stage_class
