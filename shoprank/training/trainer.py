"""
Background model trainer.

One cycle rebuilds the behavioural clusters and the per-cluster ranker
ensembles from a rolling window of interactions, then installs both as one
new ``ModelSet``. A cycle that is skipped or fails leaves the previous set
in place. At most one cycle runs at a time.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import numpy as np
import pandas as pd

from ..catalog.candidates import candidate_for
from ..catalog.data_store import InMemoryDataStore, get_store
from ..catalog.models import Candidate, utcnow
from ..errors import TrainingSkipped
from ..ranking.clustering import assign_cluster, fit_clusters, user_behavior_vectors
from ..ranking.features import FeatureExtractor, FeatureVector, flatten_many
from ..ranking.learned import TRAINING_BEHAVIORS, fit_ensemble, relevance_label
from ..ranking.models import ClusterModel, RankerModel
from .config import DEFAULT_TRAINING_CONFIG, TrainingConfig
from .registry import ModelRegistry, ModelSet, get_registry

logger = logging.getLogger(__name__)


@dataclass
class TrainerState:
    last_trained_at: datetime | None = None
    last_attempt_at: datetime | None = None
    last_outcome: str | None = None
    running: bool = False
    cycles: int = 0


@dataclass
class TrainingExamples:
    X: np.ndarray
    y: np.ndarray
    clusters: np.ndarray


class ModelTrainer:
    def __init__(
        self,
        store: InMemoryDataStore | None = None,
        registry: ModelRegistry | None = None,
        config: TrainingConfig = DEFAULT_TRAINING_CONFIG,
    ) -> None:
        self._store = store
        self._registry = registry
        self.config = config
        self._state = TrainerState()
        self._lock = threading.Lock()

    @property
    def store(self) -> InMemoryDataStore:
        return self._store if self._store is not None else get_store()

    @property
    def registry(self) -> ModelRegistry:
        return self._registry if self._registry is not None else get_registry()

    @property
    def state(self) -> TrainerState:
        """A copy of the trainer state; mutating it has no effect."""
        return dataclasses.replace(self._state)

    # ── Scheduling ───────────────────────────────────────────────────────

    def next_train_at(self) -> datetime | None:
        last = self._state.last_attempt_at
        if last is None:
            return None
        return last + timedelta(hours=self.config.retrain_interval_hours)

    def is_due(self, now: datetime) -> bool:
        due_at = self.next_train_at()
        return due_at is None or now >= due_at

    def retrain_if_due(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        if not self.config.auto_retrain or not self.is_due(now):
            return False
        return self.retrain(now)

    def retrain(self, now: datetime | None = None) -> bool:
        """
        Run one training cycle unless another is already running.

        Returns False when the call was turned away by the single-flight
        guard. Skips and failures are recorded in the state, never raised.
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Training cycle already running, ignoring trigger")
            return False

        now = now or utcnow()
        try:
            self._state.running = True
            self._state.last_attempt_at = now
            self._state.cycles += 1
            try:
                model_set = self.train_cycle(now)
            except TrainingSkipped as exc:
                self._state.last_outcome = f"skipped: {exc}"
                logger.info("Training cycle skipped, keeping model set v%d: %s", self.registry.current().version, exc)
            except Exception:
                self._state.last_outcome = "failed"
                logger.warning(
                    "Training cycle failed, keeping model set v%d",
                    self.registry.current().version,
                    exc_info=True,
                )
            else:
                self.registry.swap(model_set)
                self._state.last_trained_at = now
                self._state.last_outcome = "trained"
                logger.info(
                    "Installed model set v%d: %d clusters, %d rankers",
                    model_set.version, len(model_set.clusters), len(model_set.rankers),
                )
        finally:
            self._state.running = False
            self._lock.release()
        return True

    # ── Training ─────────────────────────────────────────────────────────

    def train_cycle(self, now: datetime) -> ModelSet:
        """Build a complete new model set without installing it."""
        cfg = self.config
        logger.info("Starting training cycle at %s", now.isoformat())

        events = self.store.events_frame(
            since=now - timedelta(days=cfg.clustering_window_days),
            limit=cfg.clustering_event_limit,
        )
        if len(events) < cfg.min_clustering_events:
            raise TrainingSkipped(
                f"{len(events)} interaction events, need at least {cfg.min_clustering_events}"
            )

        behavior = user_behavior_vectors(events)
        labels, clusters = fit_clusters(behavior, now, cfg)

        examples = self.build_examples(now, behavior, labels, clusters)
        clusters = self._with_item_centroids(clusters, examples)
        rankers = self._fit_rankers(examples, now)

        version = self.registry.current().version + 1
        return ModelSet.build(version, clusters, rankers, now)

    def build_examples(
        self,
        now: datetime,
        behavior: pd.DataFrame,
        labels: pd.Series,
        clusters: dict[int, ClusterModel],
    ) -> TrainingExamples:
        """
        One labelled example per interaction in the ranker window, featurised
        as of ``now`` and tagged with the interacting user's cluster.
        """
        cfg = self.config
        events = self.store.events_frame(
            since=now - timedelta(days=cfg.ranker_window_days),
            behavior_types=TRAINING_BEHAVIORS,
            limit=cfg.ranker_event_limit,
        )
        events = events[events["target_type"].isin(["shop", "offer"]) & events["target_id"].notna()]

        extractor = FeatureExtractor(self.store)
        vectors: list[FeatureVector] = []
        y: list[float] = []
        cluster_ids: list[int] = []

        for (user_id, target_type), group in events.groupby(["user_id", "target_type"]):
            if user_id in labels.index:
                cluster_id = int(labels.at[user_id])
            else:
                embedding = behavior.loc[user_id].to_numpy() if user_id in behavior.index else None
                cluster_id = assign_cluster(embedding, clusters)

            candidates = self._candidates_for(target_type, group["target_id"].unique())
            if not candidates:
                continue
            by_id = dict(zip(
                [c.id for c in candidates],
                extractor.extract(candidates, user_id, None, now),
            ))
            for target_id, behavior_type in zip(group["target_id"], group["behavior_type"]):
                vector = by_id.get(target_id)
                if vector is None:
                    continue
                vectors.append(vector)
                y.append(relevance_label(behavior_type))
                cluster_ids.append(cluster_id)

        return TrainingExamples(
            X=flatten_many(vectors),
            y=np.asarray(y, dtype=float),
            clusters=np.asarray(cluster_ids, dtype=int),
        )

    def _candidates_for(self, target_type: str, target_ids: Any) -> list[Candidate]:
        candidates = (candidate_for(self.store, target_type, target_id) for target_id in target_ids)
        return [c for c in candidates if c is not None]

    @staticmethod
    def _with_item_centroids(
        clusters: dict[int, ClusterModel],
        examples: TrainingExamples,
    ) -> dict[int, ClusterModel]:
        updated: dict[int, ClusterModel] = {}
        for cluster_id, model in clusters.items():
            mask = examples.clusters == cluster_id
            if mask.any():
                model = dataclasses.replace(model, item_centroid=examples.X[mask].mean(axis=0))
            updated[cluster_id] = model
        return updated

    def _fit_rankers(self, examples: TrainingExamples, now: datetime) -> dict[int, RankerModel]:
        rankers: dict[int, RankerModel] = {}
        for cluster_id in np.unique(examples.clusters):
            mask = examples.clusters == cluster_id
            count = int(mask.sum())
            if count < self.config.min_cluster_examples:
                logger.info(
                    "Cluster %d has %d examples (< %d), no ranker this cycle",
                    cluster_id, count, self.config.min_cluster_examples,
                )
                continue
            rankers[int(cluster_id)] = fit_ensemble(
                examples.X[mask], examples.y[mask], int(cluster_id), now, self.config,
            )
        return rankers

    # ── Status ───────────────────────────────────────────────────────────

    def status(self) -> dict[str, Any]:
        models = self.registry.current()
        state = self.state
        next_at = self.next_train_at()
        return {
            "cluster_count": len(models.clusters),
            "ranker_count": len(models.rankers),
            "model_version": models.version,
            "last_trained_at": state.last_trained_at.isoformat() if state.last_trained_at else None,
            "last_attempt_at": state.last_attempt_at.isoformat() if state.last_attempt_at else None,
            "next_train_at": next_at.isoformat() if next_at else None,
            "interval_hours": self.config.retrain_interval_hours,
            "running": state.running,
            "last_outcome": state.last_outcome,
        }


_trainer: ModelTrainer | None = None


def get_trainer() -> ModelTrainer:
    global _trainer
    if _trainer is None:
        _trainer = ModelTrainer()
    return _trainer


def reset_trainer() -> None:
    global _trainer
    _trainer = None
