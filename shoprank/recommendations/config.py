from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RecommendationConfig:
    result_limit: int = 20
    source_limit: int = 50

    neighbour_count: int = 5
    neighbour_pool: int = 100
    collaborative_window_days: int = 30
    collaborative_behaviors: tuple[str, ...] = ("view_product", "click_offer", "add_to_favorites")

    top_categories: int = 5
    content_confidence: float = 0.7

    default_max_distance_km: float = 10.0
    discount_saturation: float = 50.0
    product_location_confidence: float = 0.8
    offer_location_confidence: float = 0.9

    fallback_window_days: int = 30
    fallback_weights: dict[str, float] = field(default_factory=lambda: {
        "add_to_favorites": 3.0,
        "click_offer": 2.0,
        "view_product": 1.0,
        "view_shop": 1.0,
    })
    fallback_confidence: float = 0.5

    profile_initial_weight: float = 1.0
    profile_weight_step: float = 0.1
    profile_max_weight: float = 10.0


DEFAULT_RECOMMENDATION_CONFIG = RecommendationConfig()
