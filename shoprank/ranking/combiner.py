from __future__ import annotations

from .config import DEFAULT_RANKING_CONFIG, RankingConfig
from .features import FeatureVector


def _in_range(value: float | None, bounds: tuple[float, float]) -> float:
    if value is None:
        return 0.0
    lo, hi = bounds
    return 1.0 if lo <= value <= hi else 0.0


def data_quality(features: FeatureVector, config: RankingConfig = DEFAULT_RANKING_CONFIG) -> float:
    """
    Mean of four checks: share of features present and non-zero, and whether
    rating, distance and popularity fall inside their expected ranges.
    """
    if not features:
        return 0.0
    present = sum(1 for v in features.values() if v is not None and v != 0)
    completeness = present / len(features)
    checks = (
        completeness,
        _in_range(features.get("rating"), config.quality_rating_range),
        _in_range(features.get("distance_km"), config.quality_distance_range),
        _in_range(features.get("popularity"), config.quality_popularity_range),
    )
    return sum(checks) / len(checks)


def blend_weights(quality: float, config: RankingConfig = DEFAULT_RANKING_CONFIG) -> tuple[float, float, float]:
    """(rule, cluster, learned) weights for a data-quality score."""
    for threshold, weights in config.quality_tiers:
        if quality > threshold:
            return weights
    return config.low_quality_weights


def combine(
    rule_score: float,
    cluster_score: float,
    learned_score: float,
    features: FeatureVector,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> tuple[float, float]:
    """Return ``(final_score, data_quality)`` for one candidate."""
    quality = data_quality(features, config)
    w_rule, w_cluster, w_learned = blend_weights(quality, config)
    final = w_rule * rule_score + w_cluster * cluster_score + w_learned * learned_score
    return max(0.0, min(1.0, final)), quality
