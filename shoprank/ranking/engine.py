from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

import numpy as np

from ..catalog.candidates import CandidateFilters, generate_offer_candidates, generate_shop_candidates
from ..catalog.data_store import InMemoryDataStore
from ..catalog.models import Candidate, EntityType, GeoPoint, utcnow
from ..errors import DataStoreUnavailableError, InvalidRankingRequestError, RankingUnavailableError
from ..training.config import DEFAULT_TRAINING_CONFIG, TrainingConfig
from ..training.registry import ModelRegistry, ModelSet
from .clustering import assign_cluster, cluster_scores, user_embedding
from .combiner import combine
from .config import DEFAULT_FEATURE_CONFIG, DEFAULT_RANKING_CONFIG, FeatureConfig, RankingConfig
from .features import FeatureExtractor, FeatureVector, flatten_many
from .learned import predict_scores
from .models import RankedResult
from .rule_based import rule_based_scores

logger = logging.getLogger(__name__)

Algorithm = Literal["hybrid", "rule_based"]


@dataclass
class RankingOutcome:
    results: list[RankedResult] = field(default_factory=list)
    total_candidates: int = 0
    model_version: int = 0
    cluster_id: int | None = None


class RankingEngine:
    """
    Candidate generation, feature extraction, the three scorers and the
    combiner, run once per request against one model-set snapshot.
    """

    def __init__(
        self,
        store: InMemoryDataStore,
        registry: ModelRegistry,
        ranking_config: RankingConfig = DEFAULT_RANKING_CONFIG,
        feature_config: FeatureConfig = DEFAULT_FEATURE_CONFIG,
        training_config: TrainingConfig = DEFAULT_TRAINING_CONFIG,
    ) -> None:
        self.store = store
        self.registry = registry
        self.config = ranking_config
        self.training_config = training_config
        self.extractor = FeatureExtractor(store, feature_config)

    def _validate(
        self,
        entity_type: EntityType | str,
        user_location: GeoPoint | None,
        filters: CandidateFilters,
        limit: int,
        algorithm: str,
    ) -> EntityType:
        try:
            entity = EntityType(entity_type)
        except ValueError:
            raise InvalidRankingRequestError(f"Unknown entity type: {entity_type!r}") from None
        if filters.max_distance_km is not None and user_location is None:
            raise InvalidRankingRequestError("max_distance_km requires a user location")
        if not 1 <= limit <= self.config.max_limit:
            raise InvalidRankingRequestError(f"limit must be between 1 and {self.config.max_limit}")
        if algorithm not in ("hybrid", "rule_based"):
            raise InvalidRankingRequestError(f"Unknown algorithm: {algorithm!r}")
        return entity

    def _candidates(
        self,
        entity_type: EntityType,
        filters: CandidateFilters,
        user_location: GeoPoint | None,
        now: datetime,
    ) -> list[Candidate]:
        if entity_type == EntityType.shop:
            return generate_shop_candidates(self.store, filters, user_location, self.config)
        return generate_offer_candidates(self.store, filters, now, user_location, self.config)

    def rank(
        self,
        entity_type: EntityType | str,
        user_id: str,
        user_location: GeoPoint | None = None,
        filters: CandidateFilters | None = None,
        limit: int | None = None,
        algorithm: Algorithm = "hybrid",
        now: datetime | None = None,
    ) -> RankingOutcome:
        filters = filters or CandidateFilters()
        limit = self.config.default_limit if limit is None else limit
        entity = self._validate(entity_type, user_location, filters, limit, algorithm)
        now = now or utcnow()

        # One snapshot for the whole request; a concurrent swap cannot mix cycles.
        models = self.registry.current()

        try:
            candidates = self._candidates(entity, filters, user_location, now)
            vectors = self.extractor.extract(candidates, user_id, user_location, now)
            embedding = None
            if algorithm == "hybrid" and not models.is_empty:
                embedding = user_embedding(self.store, user_id, now, self.training_config)
        except DataStoreUnavailableError as exc:
            logger.warning("Ranking %s for user %s failed on an upstream read: %s", entity.value, user_id, exc)
            raise RankingUnavailableError("Ranking temporarily unavailable") from exc

        outcome = RankingOutcome(total_candidates=len(candidates), model_version=models.version)
        if not candidates:
            return outcome

        rule = rule_based_scores(vectors, self.config)
        if algorithm == "rule_based":
            clustering, learned = list(rule), list(rule)
        else:
            cluster_id = assign_cluster(embedding, models.clusters)
            outcome.cluster_id = cluster_id
            X = flatten_many(vectors)
            clustering = self._clustering_scores(X, rule, models, cluster_id)
            learned = self._learned_scores(X, rule, models, cluster_id)

        results = []
        for candidate, vector, r, c, l in zip(candidates, vectors, rule, clustering, learned):
            final, quality = combine(r, c, l, vector, self.config)
            results.append(
                RankedResult(
                    entity_type=entity,
                    entity=candidate.entity,
                    final_score=final,
                    sub_scores={"rule_based": r, "clustering": c, "learned": l},
                    data_quality=quality,
                    features=vector,
                )
            )

        results.sort(key=lambda res: res.final_score, reverse=True)
        outcome.results = results[:limit]
        return outcome

    def _clustering_scores(
        self,
        X: np.ndarray,
        rule: list[float],
        models: ModelSet,
        cluster_id: int,
    ) -> list[float]:
        model = models.clusters.get(cluster_id)
        if model is None or model.item_centroid is None:
            logger.debug("No cluster model for cluster %s, using rule-based scores", cluster_id)
            return list(rule)
        try:
            return [float(s) for s in cluster_scores(X, model, self.config)]
        except Exception:
            logger.warning("Clustering scorer failed, falling back to rule-based scores", exc_info=True)
            return list(rule)

    def _learned_scores(
        self,
        X: np.ndarray,
        rule: list[float],
        models: ModelSet,
        cluster_id: int,
    ) -> list[float]:
        model = models.rankers.get(cluster_id)
        if model is None:
            logger.debug("No ranker for cluster %s, using rule-based scores", cluster_id)
            return list(rule)
        try:
            return [float(s) for s in predict_scores(X, model)]
        except Exception:
            logger.warning("Learned ranker failed, falling back to rule-based scores", exc_info=True)
            return list(rule)
