from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..ab_testing.experiments import assign_variant, get_variant_weights
from ..catalog.data_store import InMemoryDataStore
from ..catalog.models import GeoPoint, utcnow
from ..errors import DataStoreUnavailableError, RankingUnavailableError
from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .models import Recommendation
from .sources import collaborative, content_based, location_based

logger = logging.getLogger(__name__)

EXPERIMENT_ID = "recommendation_blend"


@dataclass
class RecommendationResult:
    items: list[Recommendation] = field(default_factory=list)
    variant: str = "A"
    fallback: bool = False


def merge(
    sources: dict[str, list[Recommendation]],
    weights: dict[str, float],
    variant: str,
) -> list[Recommendation]:
    """
    Merge source lists keyed by (target type, target id).

    Scores and confidences add up as ``value × source weight`` (confidence
    capped at 1), source attributions are concatenated.
    """
    merged: dict[tuple[str, str], Recommendation] = {}
    for source_name, items in sources.items():
        weight = weights.get(source_name, 0.0)
        for item in items:
            key = (item.target_type, item.target_id)
            existing = merged.get(key)
            if existing is None:
                merged[key] = item.model_copy(update={
                    "score": item.score * weight,
                    "confidence": min(item.confidence * weight, 1.0),
                    "sources": list(item.sources),
                    "metadata": dict(item.metadata),
                    "variant": variant,
                })
                continue
            existing.score += item.score * weight
            existing.confidence = min(existing.confidence + item.confidence * weight, 1.0)
            existing.sources.extend([s for s in item.sources if s not in existing.sources])
            existing.metadata.update(item.metadata)

    return sorted(merged.values(), key=lambda r: r.score, reverse=True)


def popularity_fallback(
    store: InMemoryDataStore,
    now: datetime,
    limit: int,
    variant: str,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> list[Recommendation]:
    """Globally popular items over the fallback window, weighted by action type."""
    events = store.events_frame(
        behavior_types=list(config.fallback_weights),
        since=now - timedelta(days=config.fallback_window_days),
    )
    events = events[events["target_id"].notna() & events["target_type"].notna()]
    if events.empty:
        return []

    weighted = events.assign(weight=events["behavior_type"].map(config.fallback_weights))
    totals = weighted.groupby(["target_type", "target_id"])["weight"].sum()
    totals = totals.sort_values(ascending=False, kind="stable").head(limit)
    top = float(totals.iloc[0]) or 1.0

    return [
        Recommendation(
            target_id=target_id,
            target_type=target_type,
            score=float(total) / top,
            confidence=config.fallback_confidence,
            sources=["fallback"],
            variant=variant,
            metadata={"popularity": float(total)},
        )
        for (target_type, target_id), total in totals.items()
    ]


def recommend(
    store: InMemoryDataStore,
    user_id: str,
    user_location: GeoPoint | None = None,
    limit: int | None = None,
    now: datetime | None = None,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> RecommendationResult:
    """Hybrid recommendations for ``user_id``, falling back to global popularity on cold start."""
    now = now or utcnow()
    limit = config.result_limit if limit is None else limit
    variant = assign_variant(user_id, EXPERIMENT_ID)
    weights = get_variant_weights(variant, EXPERIMENT_ID)

    try:
        sources = {
            "collaborative": collaborative(store, user_id, now, config),
            "content": content_based(store, user_id, config),
            "location": location_based(store, user_id, user_location, now, config),
        }
        items = merge(sources, weights, variant)[:limit]
        if items:
            return RecommendationResult(items=items, variant=variant)

        logger.debug("No personalised recommendations for user %s, using popularity fallback", user_id)
        items = popularity_fallback(store, now, limit, variant, config)
    except DataStoreUnavailableError as exc:
        logger.warning("Recommendations for user %s failed on an upstream read: %s", user_id, exc)
        raise RankingUnavailableError("Ranking temporarily unavailable") from exc

    return RecommendationResult(items=items, variant=variant, fallback=True)
