"""Consolidation builder - orders stages along their dependency chain."""

from memory_curation.consolidation.base import ConsolidationStage
from memory_curation.consolidation.registry import StageRegistry


class ConsolidationBuilder:
    """Build an ordered stage list from stage names."""

    def __init__(self, registry: StageRegistry):
        self._registry = registry

    def build(self, stage_names: list[str]) -> list[ConsolidationStage]:
        """
        Build the ordered stage list.

        Duplicate names run once. Dependencies that are not requested are not
        added, but still decide the order of the stages that are.
        """
        ordered_names = self._topological_sort(list(dict.fromkeys(stage_names)))
        return [self._registry.get(name) for name in ordered_names]

    def _depth(self, name: str, seen: frozenset = frozenset()) -> int:
        """Length of the registered dependency chain above a stage."""
        if name in seen:
            raise ValueError(f"Circular dependency detected involving: {set(seen)}")
        deps = [d for d in self._registry.get(name).metadata.depends_on if self._registry.has_stage(d)]
        if not deps:
            return 0
        return 1 + max(self._depth(dep, seen | {name}) for dep in deps)

    def _topological_sort(self, stage_names: list[str]) -> list[str]:
        """Sort stages so upstream stages come first, even when the link between them is not requested."""
        in_degree: dict[str, int] = {name: 0 for name in stage_names}
        graph: dict[str, list[str]] = {name: [] for name in stage_names}

        for name in stage_names:
            stage = self._registry.get(name)
            for dep in stage.metadata.depends_on:
                if dep in stage_names:
                    graph[dep].append(name)
                    in_degree[name] += 1

        depth = {name: self._depth(name) for name in stage_names}
        queue = [name for name, degree in in_degree.items() if degree == 0]
        result = []

        while queue:
            queue.sort(key=lambda n: (depth[n], n))
            name = queue.pop(0)
            result.append(name)

            for dependent in graph[name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(stage_names):
            missing = set(stage_names) - set(result)
            raise ValueError(f"Circular dependency detected involving: {missing}")

        return result

    def validate_plan(self, stage_names: list[str]) -> list[str]:
        """Return error messages for unknown stages (empty if valid)."""
        return [f"Unknown stage: {name}" for name in stage_names if not self._registry.has_stage(name)]

    def get_execution_order(self, stage_names: list[str]) -> list[str]:
        return [s.metadata.name for s in self.build(stage_names)]
