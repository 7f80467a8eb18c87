"""
The three independent recommendation sources.

Each returns a list of ``Recommendation`` sorted by score, or an empty list
when it has nothing to work with (no profile, no neighbours, no location).
"""
from __future__ import annotations

from datetime import datetime, timedelta

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from ..catalog.data_store import InMemoryDataStore
from ..catalog.models import GeoPoint
from ..ranking.features import price_fit
from ..ranking.geo import haversine_km
from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .models import Recommendation


def _top(items: list[Recommendation], limit: int) -> list[Recommendation]:
    return sorted(items, key=lambda r: r.score, reverse=True)[:limit]


def collaborative(
    store: InMemoryDataStore,
    user_id: str,
    now: datetime,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> list[Recommendation]:
    """
    Items the user's nearest neighbours (cosine similarity of profile
    embeddings) engaged with recently, excluding anything the user has
    already interacted with.
    """
    profile = store.get_profile(user_id)
    if profile is None or not profile.embedding:
        return []

    others = [
        p for p in store.profiles_with_embeddings(exclude_user_id=user_id, limit=config.neighbour_pool)
        if len(p.embedding) == len(profile.embedding)
    ]
    if not others:
        return []

    sims = cosine_similarity(
        np.asarray([profile.embedding], dtype=float),
        np.asarray([p.embedding for p in others], dtype=float),
    ).ravel()
    order = np.argsort(-sims, kind="stable")[: config.neighbour_count]
    neighbours = {others[i].user_id: float(sims[i]) for i in order if sims[i] > 0}
    if not neighbours:
        return []

    events = store.events_frame(
        user_ids=list(neighbours),
        behavior_types=config.collaborative_behaviors,
        since=now - timedelta(days=config.collaborative_window_days),
    )
    seen = set(store.events_frame(user_id=user_id)["target_id"].dropna())
    events = events[events["target_id"].notna() & ~events["target_id"].isin(seen)]
    if events.empty:
        return []

    events = events.assign(weighted=events["user_id"].map(neighbours) * events["score"])
    grouped = events.groupby(["target_type", "target_id"])["weighted"].agg(["sum", "size"])

    items = [
        Recommendation(
            target_id=target_id,
            target_type=target_type,
            score=float(row["sum"] / row["size"]),
            confidence=min(row["size"] / len(neighbours), 1.0),
            sources=["collaborative"],
            metadata={"interactions": int(row["size"])},
        )
        for (target_type, target_id), row in grouped.iterrows()
    ]
    return _top(items, config.source_limit)


def content_based(
    store: InMemoryDataStore,
    user_id: str,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> list[Recommendation]:
    """Active products in the user's strongest categories and price range."""
    profile = store.get_profile(user_id)
    if profile is None:
        return []

    weights = {c: w for c, w in profile.category_weights.items() if w > 0}
    if not weights:
        return []
    top_categories = sorted(weights, key=weights.get, reverse=True)[: config.top_categories]

    products = store.query_products(
        categories=top_categories,
        price_min=profile.price_range.min,
        price_max=profile.price_range.max,
    )

    items = []
    for product in products:
        shop = store.get_shop(product.shop_id)
        rating = shop.rating if shop is not None else 0.0
        live = 1.0 if shop is not None and shop.is_live else 0.0
        score = (
            weights[product.category] * 0.4
            + price_fit(product.price, profile.price_range) * 0.3
            + rating / 5.0 * 0.2
            + live * 0.1
        ) / 10.0
        items.append(
            Recommendation(
                target_id=product.id,
                target_type="product",
                score=score,
                confidence=config.content_confidence,
                sources=["content"],
                metadata={"category": product.category, "price": product.price},
            )
        )
    return _top(items, config.source_limit)


def location_based(
    store: InMemoryDataStore,
    user_id: str,
    user_location: GeoPoint | None,
    now: datetime,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> list[Recommendation]:
    """Nearby products (distance decay + shop rating) and offers (distance decay + discount)."""
    if user_location is None:
        return []

    profile = store.get_profile(user_id)
    max_distance = profile.max_distance_km if profile is not None else config.default_max_distance_km

    nearby: dict[str, tuple[float, float]] = {}
    for shop in store.query_shops():
        if shop.location is None:
            continue
        distance = haversine_km(user_location, shop.location)
        if distance <= max_distance:
            nearby[shop.id] = (max(0.0, 1.0 - distance / max_distance), shop.rating)
    if not nearby:
        return []

    items = []
    for product in store.query_products(shop_ids=list(nearby)):
        decay, rating = nearby[product.shop_id]
        items.append(
            Recommendation(
                target_id=product.id,
                target_type="product",
                score=0.6 * decay + 0.4 * rating / 5.0,
                confidence=config.product_location_confidence,
                sources=["location"],
                metadata={"shop_id": product.shop_id},
            )
        )
    for offer in store.query_offers(active_at=now, shop_ids=list(nearby)):
        decay, _ = nearby[offer.shop_id]
        items.append(
            Recommendation(
                target_id=offer.id,
                target_type="offer",
                score=0.4 * decay + 0.6 * min(offer.discount_value / config.discount_saturation, 1.0),
                confidence=config.offer_location_confidence,
                sources=["location"],
                metadata={"shop_id": offer.shop_id, "discount_value": offer.discount_value},
            )
        )
    return _top(items, config.source_limit)
