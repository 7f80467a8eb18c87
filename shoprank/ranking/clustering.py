"""
Behavioural user clustering and the clustering re-ranking signal.

Users are embedded in a small behaviour space
``[events/100, mean score/10, distinct behaviour types/10, distinct categories/10]``
and segmented with k-means. A candidate is scored by how close its
flattened feature vector sits to the item centroid of the requesting
user's segment.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Mapping

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans
from sklearn.metrics.pairwise import cosine_similarity, euclidean_distances

from ..catalog.data_store import InMemoryDataStore
from ..errors import TrainingSkipped
from ..training.config import DEFAULT_TRAINING_CONFIG, TrainingConfig
from .config import DEFAULT_RANKING_CONFIG, RankingConfig
from .models import ClusterModel

logger = logging.getLogger(__name__)

BEHAVIOR_FEATURES = ["event_count", "mean_score", "distinct_types", "distinct_categories"]
_BEHAVIOR_SCALE = np.array([100.0, 10.0, 10.0, 10.0])


def user_behavior_vectors(events: pd.DataFrame) -> pd.DataFrame:
    """One normalised behaviour row per distinct user, indexed by ``user_id``."""
    if events.empty:
        return pd.DataFrame(columns=BEHAVIOR_FEATURES, dtype=float)

    grouped = events.groupby("user_id").agg(
        event_count=("behavior_type", "size"),
        mean_score=("score", "mean"),
        distinct_types=("behavior_type", "nunique"),
        distinct_categories=("category", "nunique"),
    )
    grouped = grouped[BEHAVIOR_FEATURES].astype(float).fillna(0.0)
    return grouped / _BEHAVIOR_SCALE


def user_embedding(
    store: InMemoryDataStore,
    user_id: str,
    now: datetime,
    config: TrainingConfig = DEFAULT_TRAINING_CONFIG,
) -> np.ndarray | None:
    """Behaviour vector for one user over the clustering window, or None without events."""
    events = store.events_frame(
        user_id=user_id,
        since=now - timedelta(days=config.clustering_window_days),
        limit=config.clustering_event_limit,
    )
    vectors = user_behavior_vectors(events)
    if vectors.empty:
        return None
    return vectors.iloc[0].to_numpy(dtype=float)


def fit_clusters(
    vectors: pd.DataFrame,
    trained_at: datetime,
    config: TrainingConfig = DEFAULT_TRAINING_CONFIG,
) -> tuple[pd.Series, dict[int, ClusterModel]]:
    """
    Run k-means++ over user behaviour vectors.

    Returns the per-user cluster labels and one ``ClusterModel`` per cluster
    (item centroids are filled in later by the trainer). Raises
    ``TrainingSkipped`` when there are fewer users than clusters.
    """
    if len(vectors) < config.n_clusters:
        raise TrainingSkipped(
            f"{len(vectors)} distinct users, need at least {config.n_clusters} to cluster"
        )

    km = KMeans(
        n_clusters=config.n_clusters,
        init="k-means++",
        max_iter=config.kmeans_max_iter,
        n_init=1,
        random_state=config.random_state,
    )
    labels = km.fit_predict(vectors.to_numpy(dtype=float))
    label_series = pd.Series(labels, index=vectors.index, name="cluster_id")

    clusters: dict[int, ClusterModel] = {}
    for cluster_id, centroid in enumerate(km.cluster_centers_):
        clusters[cluster_id] = ClusterModel(
            cluster_id=cluster_id,
            centroid=np.asarray(centroid, dtype=float),
            size=int((labels == cluster_id).sum()),
            trained_at=trained_at,
        )
    return label_series, clusters


def assign_cluster(embedding: np.ndarray | None, clusters: Mapping[int, ClusterModel]) -> int:
    """Nearest centroid by Euclidean distance; cluster 0 without an embedding or models."""
    if embedding is None or not clusters:
        return 0
    ids = sorted(clusters)
    centroids = np.vstack([clusters[i].centroid for i in ids])
    distances = euclidean_distances(embedding.reshape(1, -1), centroids).ravel()
    return ids[int(np.argmin(distances))]


def cluster_scores(
    X: np.ndarray,
    model: ClusterModel,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> np.ndarray:
    """Blend cosine similarity and exponential distance decay to the segment's item centroid."""
    if model.item_centroid is None:
        raise ValueError(f"cluster {model.cluster_id} has no item centroid")
    centroid = model.item_centroid.reshape(1, -1)
    similarity = cosine_similarity(X, centroid).ravel()
    distance = euclidean_distances(X, centroid).ravel()
    blended = (
        config.cluster_similarity_weight * similarity
        + config.cluster_distance_weight * np.exp(-distance / config.cluster_distance_scale)
    )
    return np.clip(blended, 0.0, 1.0)
