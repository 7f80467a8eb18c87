"""
Holder for the current cluster + ranker model set.

A ``ModelSet`` is immutable. The trainer builds a complete new set and
``swap`` replaces the single reference, so a reader that took a snapshot
with ``current()`` always sees clusters and rankers from the same cycle.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping

from ..ranking.models import ClusterModel, RankerModel


@dataclass(frozen=True)
class ModelSet:
    version: int = 0
    clusters: Mapping[int, ClusterModel] = field(default_factory=lambda: MappingProxyType({}))
    rankers: Mapping[int, RankerModel] = field(default_factory=lambda: MappingProxyType({}))
    trained_at: datetime | None = None

    @classmethod
    def build(
        cls,
        version: int,
        clusters: dict[int, ClusterModel],
        rankers: dict[int, RankerModel],
        trained_at: datetime,
    ) -> "ModelSet":
        return cls(
            version=version,
            clusters=MappingProxyType(dict(clusters)),
            rankers=MappingProxyType(dict(rankers)),
            trained_at=trained_at,
        )

    @property
    def is_empty(self) -> bool:
        return not self.clusters


EMPTY_MODEL_SET = ModelSet()


class ModelRegistry:
    def __init__(self, initial: ModelSet = EMPTY_MODEL_SET) -> None:
        self._current = initial

    def current(self) -> ModelSet:
        return self._current

    def swap(self, new: ModelSet) -> ModelSet:
        """Install ``new`` and return the set it replaced."""
        previous = self._current
        self._current = new
        return previous


_registry: ModelRegistry | None = None


def get_registry() -> ModelRegistry:
    global _registry
    if _registry is None:
        _registry = ModelRegistry()
    return _registry


def reset_registry() -> None:
    """Drop all trained models (used by tests)."""
    global _registry
    _registry = None
