"""
Minimal learn-to-rank ensemble.

Each cluster gets a short sequence of single-split stumps fitted to
residual relevance labels. A stump picks the (feature, threshold) split
with the lowest weighted Gini impurity, but predicts the mean residual of
the whole training set on both sides of the split.
"""
from __future__ import annotations

from datetime import datetime

import numpy as np

from ..training.config import DEFAULT_TRAINING_CONFIG, TrainingConfig
from .models import RankerModel, Stump

RELEVANCE_LABELS: dict[str, float] = {
    "view_product": 0.2,
    "view_shop": 0.2,
    "click_offer": 0.5,
    "add_to_favorites": 0.8,
    "purchase_product": 1.0,
}
DEFAULT_RELEVANCE = 0.1

TRAINING_BEHAVIORS: tuple[str, ...] = tuple(RELEVANCE_LABELS)


def relevance_label(behavior_type: str) -> float:
    return RELEVANCE_LABELS.get(behavior_type, DEFAULT_RELEVANCE)


def gini_impurity(labels: np.ndarray) -> float:
    """Gini impurity treating each distinct label value as a class."""
    if labels.size == 0:
        return 0.0
    _, counts = np.unique(labels, return_counts=True)
    p = counts / labels.size
    return float(1.0 - np.sum(p * p))


def _best_split_for_feature(values: np.ndarray, onehot: np.ndarray) -> tuple[float, float] | None:
    """Lowest weighted Gini over midpoints of consecutive distinct sorted values."""
    n = values.size
    order = np.argsort(values, kind="stable")
    sorted_values = values[order]
    boundaries = np.nonzero(sorted_values[1:] > sorted_values[:-1])[0] + 1
    if boundaries.size == 0:
        return None

    cumulative = np.cumsum(onehot[order], axis=0)
    total = cumulative[-1]

    left_counts = cumulative[boundaries - 1]
    right_counts = total - left_counts
    n_left = boundaries.astype(float)
    n_right = n - n_left

    gini_left = 1.0 - np.sum((left_counts / n_left[:, None]) ** 2, axis=1)
    gini_right = 1.0 - np.sum((right_counts / n_right[:, None]) ** 2, axis=1)
    weighted = (n_left * gini_left + n_right * gini_right) / n

    best = int(np.argmin(weighted))
    b = boundaries[best]
    threshold = (sorted_values[b - 1] + sorted_values[b]) / 2.0
    return float(weighted[best]), float(threshold)


def fit_stump(X: np.ndarray, y: np.ndarray) -> Stump:
    """
    Fit one stump to ``y``.

    Features are scanned in index order and the first strictly-better split
    wins. With no usable split (every feature constant) the stump splits on
    feature 0 at 0.5.
    """
    prediction = float(np.mean(y)) if y.size else 0.0
    best_feature, best_threshold, best_impurity = 0, 0.5, np.inf

    if y.size > 1:
        _, inverse = np.unique(y, return_inverse=True)
        onehot = np.eye(inverse.max() + 1)[inverse]
        for feature_index in range(X.shape[1]):
            split = _best_split_for_feature(X[:, feature_index], onehot)
            if split is None:
                continue
            impurity, threshold = split
            if impurity < best_impurity:
                best_feature, best_threshold, best_impurity = feature_index, threshold, impurity

    return Stump(feature_index=best_feature, threshold=best_threshold, prediction=prediction)


def fit_ensemble(
    X: np.ndarray,
    y: np.ndarray,
    cluster_id: int,
    trained_at: datetime,
    config: TrainingConfig = DEFAULT_TRAINING_CONFIG,
) -> RankerModel:
    residual = np.asarray(y, dtype=float).copy()
    stumps: list[Stump] = []
    for _ in range(config.n_stumps):
        stump = fit_stump(X, residual)
        stumps.append(stump)
        residual = residual - config.learning_rate * stump.predict(X)
    return RankerModel(
        cluster_id=cluster_id,
        stumps=tuple(stumps),
        learning_rate=config.learning_rate,
        trained_at=trained_at,
        n_examples=int(X.shape[0]),
    )


def predict_scores(X: np.ndarray, model: RankerModel) -> np.ndarray:
    """Sum of stump predictions, clamped to [0, 1]."""
    total = np.zeros(X.shape[0], dtype=float)
    for stump in model.stumps:
        total += stump.predict(X)
    return np.clip(total, 0.0, 1.0)
