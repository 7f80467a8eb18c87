from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import numpy as np

from ..catalog.models import EntityType, Offer, Shop
from .features import FeatureVector


@dataclass(frozen=True)
class ClusterModel:
    """
    One behavioural user segment.

    ``centroid`` lives in the 4-d user-behaviour space and is used to assign
    users. ``item_centroid`` is the mean flattened feature vector of the
    entities the segment's members interacted with; candidates are scored
    against it.
    """

    cluster_id: int
    centroid: np.ndarray
    size: int
    trained_at: datetime
    item_centroid: np.ndarray | None = None


@dataclass(frozen=True)
class Stump:
    feature_index: int
    threshold: float
    prediction: float

    def predict(self, X: np.ndarray) -> np.ndarray:
        # Both branches carry the same value; the split is kept for inspection.
        return np.full(X.shape[0], self.prediction, dtype=float)


@dataclass(frozen=True)
class RankerModel:
    cluster_id: int
    stumps: tuple[Stump, ...]
    learning_rate: float
    trained_at: datetime
    n_examples: int


@dataclass
class RankedResult:
    entity_type: EntityType
    entity: Shop | Offer
    final_score: float
    sub_scores: dict[str, float]
    data_quality: float
    features: FeatureVector = field(default_factory=dict)
