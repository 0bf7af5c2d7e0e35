"""Conflict and dependency edges between capability providers."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Set


class ConflictDependencyRegistry:
    """
    Provider relationship graph owned by the manager.

    Conflicts are undirected: registering ``a`` against ``b`` records both
    directions. Dependencies are directed: ``a`` depends on ``{b, c}`` means
    ``a`` may only be admitted once ``b`` and ``c`` already are.
    """

    def __init__(self) -> None:
        self._conflicts: Dict[str, Set[str]] = {}
        self._dependencies: Dict[str, FrozenSet[str]] = {}

    def set_conflicts(self, provider_id: str, conflicting_ids: Iterable[str]) -> None:
        own = self._conflicts.setdefault(provider_id, set())
        for other in conflicting_ids:
            if other == provider_id:
                continue
            own.add(other)
            self._conflicts.setdefault(other, set()).add(provider_id)

    def set_dependencies(self, provider_id: str, dependency_ids: Iterable[str]) -> None:
        self._dependencies[provider_id] = frozenset(dependency_ids)

    def conflicts_of(self, provider_id: str) -> FrozenSet[str]:
        return frozenset(self._conflicts.get(provider_id, ()))

    def dependencies_of(self, provider_id: str) -> FrozenSet[str]:
        return self._dependencies.get(provider_id, frozenset())

    def conflicts_with_any(self, provider_id: str, selected_ids: Set[str]) -> bool:
        return not self._conflicts.get(provider_id, set()).isdisjoint(selected_ids)

    def dependencies_met(self, provider_id: str, selected_ids: Set[str]) -> bool:
        return self.dependencies_of(provider_id) <= selected_ids

    def remove(self, provider_id: str) -> None:
        """Drop a provider and every edge that mentions it."""
        self._conflicts.pop(provider_id, None)
        for conflicts in self._conflicts.values():
            conflicts.discard(provider_id)

        self._dependencies.pop(provider_id, None)
        for dependent, deps in list(self._dependencies.items()):
            if provider_id in deps:
                self._dependencies[dependent] = deps - {provider_id}

    def clear(self) -> None:
        self._conflicts.clear()
        self._dependencies.clear()
