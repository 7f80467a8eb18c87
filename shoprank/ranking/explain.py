"""
Per-user explanation of how one shop or offer is scored.

Combines the user's preference summary, their recent activity and the rule
components the item earns on each dimension, so a client can show why an
item lands where it does.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from ..catalog.candidates import candidate_for
from ..catalog.data_store import InMemoryDataStore
from ..catalog.models import EntityType, GeoPoint, UserProfile, utcnow
from ..errors import DataStoreUnavailableError, RankingUnavailableError
from .config import DEFAULT_FEATURE_CONFIG, DEFAULT_RANKING_CONFIG, FeatureConfig, RankingConfig
from .features import FeatureExtractor
from .rule_based import rule_based_components, rule_based_score

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_DAYS = 30
RECENT_ACTIVITY_LIMIT = 10
TOP_CATEGORIES = 5

ALGORITHM = "Hybrid ranking: rule-based, cluster-based and learned scores blended by data quality"

RANKING_FACTORS: dict[str, str] = {
    "rating": "Average rating and review history",
    "distance": "Distance from your current location",
    "price": "How well the price fits your usual price range",
    "popularity": "How popular this item is with other users",
    "recency": "How recently this item was added",
    "category": "How much you engage with this category",
    "status": "Whether the item is live and verified",
}


def preference_summary(profile: UserProfile | None) -> dict[str, Any] | None:
    if profile is None:
        return None
    top = sorted(profile.category_weights.items(), key=lambda kv: kv[1], reverse=True)[:TOP_CATEGORIES]
    return {
        "categories": [{"category": name, "weight": round(weight, 4)} for name, weight in top],
        "price_range": profile.price_range.model_dump(),
        "max_distance_km": profile.max_distance_km,
    }


def recent_activity(store: InMemoryDataStore, user_id: str, now: datetime) -> list[dict[str, Any]]:
    events = store.events_frame(
        user_id=user_id,
        since=now - timedelta(days=RECENT_ACTIVITY_DAYS),
        limit=RECENT_ACTIVITY_LIMIT,
    )
    return [
        {
            "behavior_type": row.behavior_type,
            "target_type": row.target_type,
            "created_at": row.created_at.isoformat(),
        }
        for row in events.itertuples(index=False)
    ]


def explain(
    store: InMemoryDataStore,
    user_id: str,
    entity_type: EntityType | str,
    item_id: str,
    user_location: GeoPoint | None = None,
    now: datetime | None = None,
    ranking_config: RankingConfig = DEFAULT_RANKING_CONFIG,
    feature_config: FeatureConfig = DEFAULT_FEATURE_CONFIG,
) -> dict[str, Any] | None:
    """
    Explain the ranking of ``item_id`` for ``user_id``.

    Returns ``None`` when the item does not exist. Each factor reports its
    rule component, its configured weight and its weighted contribution;
    a factor with no data has ``score`` ``None`` and contributes nothing.
    """
    now = now or utcnow()
    entity = EntityType(entity_type)
    try:
        candidate = candidate_for(store, entity, item_id)
        if candidate is None:
            return None
        [features] = FeatureExtractor(store, feature_config).extract([candidate], user_id, user_location, now)
        profile = store.get_profile(user_id)
        activity = recent_activity(store, user_id, now)
    except DataStoreUnavailableError as exc:
        logger.warning("Explaining %s %s for user %s failed on an upstream read: %s", entity.value, item_id, user_id, exc)
        raise RankingUnavailableError("Ranking temporarily unavailable") from exc

    components = rule_based_components(features, ranking_config)
    factors = []
    for name, value in components.items():
        weight = ranking_config.rule_weights[name]
        factors.append({
            "factor": name,
            "description": RANKING_FACTORS[name],
            "score": None if value is None else round(value, 4),
            "weight": weight,
            "contribution": 0.0 if value is None else round(weight * value, 4),
        })

    return {
        "item": {"id": candidate.id, "entity_type": entity.value, "category": candidate.category},
        "user_preferences": preference_summary(profile),
        "recent_activity": activity,
        "ranking_factors": factors,
        "rule_score": round(rule_based_score(features, ranking_config), 4),
        "features": {k: (None if v is None else round(v, 4)) for k, v in features.items()},
        "algorithm": ALGORITHM,
    }
