"""
Tunable constants for the ranking pipeline.

The data-quality tiers and blend triples were chosen empirically; they are
kept here so they can be adjusted without touching the scorers.
"""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RankingConfig:
    rule_weights: dict[str, float] = field(default_factory=lambda: {
        "rating": 0.25,
        "distance": 0.20,
        "price": 0.15,
        "popularity": 0.15,
        "recency": 0.10,
        "category": 0.10,
        "status": 0.05,
    })
    max_distance_km: float = 50.0
    max_age_days: float = 365.0

    # (min quality, (rule, cluster, learned)); first tier whose threshold is exceeded wins
    quality_tiers: tuple[tuple[float, tuple[float, float, float]], ...] = (
        (0.8, (0.2, 0.3, 0.5)),
        (0.5, (0.3, 0.35, 0.35)),
    )
    low_quality_weights: tuple[float, float, float] = (0.5, 0.25, 0.25)
    quality_rating_range: tuple[float, float] = (0.0, 5.0)
    quality_distance_range: tuple[float, float] = (0.0, 100.0)
    quality_popularity_range: tuple[float, float] = (0.0, 1.0)

    cluster_similarity_weight: float = 0.6
    cluster_distance_weight: float = 0.4
    cluster_distance_scale: float = 10.0

    candidate_pool_size: int = 100
    default_limit: int = 20
    max_limit: int = 100


@dataclass(frozen=True)
class FeatureConfig:
    popularity_window_days: int = 30
    shop_popularity_saturation: float = 100.0
    offer_popularity_saturation: float = 50.0
    interaction_weights: dict[str, float] = field(default_factory=lambda: {
        "view_product": 1.0,
        "view_shop": 1.0,
        "click_offer": 2.0,
        "add_to_favorites": 3.0,
        "purchase_product": 5.0,
    })
    interaction_normaliser: float = 10.0
    default_category_affinity: float = 0.5
    profile_weight_scale: float = 10.0


DEFAULT_RANKING_CONFIG = RankingConfig()
DEFAULT_FEATURE_CONFIG = FeatureConfig()
