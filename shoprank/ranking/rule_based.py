from __future__ import annotations

from typing import Sequence

from .config import DEFAULT_RANKING_CONFIG, RankingConfig
from .features import FeatureVector


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def distance_score(distance_km: float, config: RankingConfig = DEFAULT_RANKING_CONFIG) -> float:
    return max(0.0, 1.0 - distance_km / config.max_distance_km)


def recency_score(age_days: float, config: RankingConfig = DEFAULT_RANKING_CONFIG) -> float:
    return max(0.0, 1.0 - age_days / config.max_age_days)


def rule_based_components(
    features: FeatureVector,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> dict[str, float | None]:
    """Per-dimension sub-scores in [0, 1]; ``None`` marks a dimension with no data."""
    rating = features.get("rating")
    price = features.get("price_fit")
    is_live = features.get("is_live") or 0.0
    # offers carry no is_active of their own; their is_live already folds in the shop's
    is_active = features.get("is_active", 1.0) or 0.0
    verified = features.get("verification") or 0.0

    return {
        "rating": _clamp((rating or 0.0) / 5.0),
        "distance": distance_score(features.get("distance_km") or 0.0, config),
        "price": _clamp(price) if price is not None else None,
        "popularity": _clamp(features.get("popularity") or 0.0),
        "recency": recency_score(features.get("age_days") or 0.0, config),
        "category": _clamp(features.get("category_affinity") or 0.0),
        "status": 0.5 * float(is_live > 0 and is_active > 0) + 0.5 * float(verified > 0),
    }


def rule_based_score(features: FeatureVector, config: RankingConfig = DEFAULT_RANKING_CONFIG) -> float:
    """
    Fixed weighted sum of the rule components, clamped to [0, 1].

    Dimensions without data drop out and the remaining weights are scaled
    up proportionally so they still sum to 1.
    """
    components = rule_based_components(features, config)
    total_weight = 0.0
    score = 0.0
    for name, value in components.items():
        if value is None:
            continue
        weight = config.rule_weights[name]
        total_weight += weight
        score += weight * value
    if total_weight <= 0:
        return 0.0
    return _clamp(score / total_weight)


def rule_based_scores(
    vectors: Sequence[FeatureVector],
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> list[float]:
    return [rule_based_score(v, config) for v in vectors]
