"""
Feature extraction for ranking candidates.

Each candidate becomes a ``FeatureVector``: a mapping from feature name to a
float, or ``None`` when the value is unknown (for example ``price_fit`` for
a user without a preference profile). Keys that do not apply to an entity
type are simply absent. ``flatten`` turns a vector into the fixed-order
numpy array the clustering and learned rankers consume.

All interaction-derived features for one request come from a single events
query, aggregated with pandas.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from ..catalog.data_store import InMemoryDataStore
from ..catalog.models import (
    CATEGORIES,
    CLICK_BEHAVIOR,
    PURCHASE_BEHAVIOR,
    Candidate,
    EntityType,
    GeoPoint,
    Offer,
    PriceRange,
    Shop,
    UserProfile,
)
from .config import DEFAULT_FEATURE_CONFIG, FeatureConfig
from .geo import distance_or_zero

FeatureVector = Dict[str, Optional[float]]

SHOP_FEATURE_KEYS: tuple[str, ...] = (
    "rating",
    "review_count",
    "is_live",
    "is_active",
    "distance_km",
    "age_days",
    "days_since_update",
    "popularity",
    "user_interaction",
    "category_affinity",
    "price_fit",
    "verification",
    "location_verified",
    "click_through_rate",
    "conversion_rate",
)

OFFER_FEATURE_KEYS: tuple[str, ...] = (
    "discount_value",
    "is_percentage",
    "days_remaining",
    "usage_rate",
    "rating",
    "review_count",
    "is_live",
    "distance_km",
    "product_price",
    "category_code",
    "age_days",
    "popularity",
    "user_interaction",
    "category_affinity",
    "price_fit",
    "click_through_rate",
    "conversion_rate",
    "verification",
    "location_verified",
)

# Shop keys first, then the offer-only keys, in declaration order.
FEATURE_KEYS: tuple[str, ...] = SHOP_FEATURE_KEYS + tuple(
    k for k in OFFER_FEATURE_KEYS if k not in SHOP_FEATURE_KEYS
)

_SECONDS_PER_DAY = 86400.0


def flatten(vector: FeatureVector) -> np.ndarray:
    """Map a feature vector onto ``FEATURE_KEYS`` order; absent or None becomes 0."""
    return np.array(
        [float(vector.get(key) or 0.0) for key in FEATURE_KEYS],
        dtype=float,
    )


def flatten_many(vectors: Sequence[FeatureVector]) -> np.ndarray:
    if not vectors:
        return np.zeros((0, len(FEATURE_KEYS)), dtype=float)
    return np.vstack([flatten(v) for v in vectors])


def price_fit(price: float, price_range: PriceRange) -> float:
    """1 at the middle of the user's price range, falling to 0 at its edges and outside it."""
    lo, hi = price_range.min, price_range.max
    if price < lo or price > hi:
        return 0.0
    if hi == lo:
        return 1.0
    norm = (price - lo) / (hi - lo)
    return 1.0 - 2.0 * abs(norm - 0.5)


def category_affinity(
    profile: UserProfile | None,
    category: str,
    config: FeatureConfig = DEFAULT_FEATURE_CONFIG,
) -> float:
    if profile is None:
        return config.default_category_affinity
    weight = profile.category_weights.get(category)
    if weight is None:
        return config.default_category_affinity
    return min(max(weight, 0.0) / config.profile_weight_scale, 1.0)


def category_code(category: str) -> float:
    try:
        index = CATEGORIES.index(category)
    except ValueError:
        index = CATEGORIES.index("Other")
    return index / len(CATEGORIES)


def _days_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / _SECONDS_PER_DAY


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


class _EventStats:
    """Per-target aggregates over one batched events query."""

    def __init__(
        self,
        events: pd.DataFrame,
        user_id: str | None,
        now: datetime,
        config: FeatureConfig,
    ) -> None:
        self.popularity_counts: pd.Series = pd.Series(dtype=float)
        self.behavior_counts: pd.DataFrame = pd.DataFrame()
        self.user_weights: pd.Series = pd.Series(dtype=float)
        if events.empty:
            return

        since = pd.Timestamp(now - timedelta(days=config.popularity_window_days))
        recent = events[events["created_at"] >= since]
        self.popularity_counts = recent.groupby("target_id").size()
        self.behavior_counts = (
            events.groupby(["target_id", "behavior_type"]).size().unstack(fill_value=0)
        )

        if user_id is not None:
            mine = events[events["user_id"] == user_id]
            if not mine.empty:
                weights = mine["behavior_type"].map(config.interaction_weights).fillna(0.0)
                self.user_weights = weights.groupby(mine["target_id"]).sum()

    def popularity(self, target_id: str) -> float:
        return float(self.popularity_counts.get(target_id, 0))

    def count(self, target_id: str, behavior_type: str) -> float:
        if target_id not in self.behavior_counts.index or behavior_type not in self.behavior_counts.columns:
            return 0.0
        return float(self.behavior_counts.at[target_id, behavior_type])

    def user_weight(self, target_id: str) -> float:
        return float(self.user_weights.get(target_id, 0.0))


class FeatureExtractor:
    """Builds feature vectors for candidates relative to a user and location."""

    def __init__(self, store: InMemoryDataStore, config: FeatureConfig = DEFAULT_FEATURE_CONFIG) -> None:
        self.store = store
        self.config = config

    def extract(
        self,
        candidates: Sequence[Candidate],
        user_id: str | None,
        user_location: GeoPoint | None,
        now: datetime,
    ) -> list[FeatureVector]:
        if not candidates:
            return []

        events = self.store.events_frame(target_ids=[c.id for c in candidates])
        stats = _EventStats(events, user_id, now, self.config)
        profile = self.store.get_profile(user_id) if user_id is not None else None
        shop_prices = self._mean_shop_prices(candidates) if profile is not None else {}

        vectors: list[FeatureVector] = []
        for candidate in candidates:
            if candidate.entity_type == EntityType.shop:
                vector = self._shop_features(candidate, user_location, now, profile, shop_prices)
                views = stats.count(candidate.id, "view_shop")
            else:
                vector = self._offer_features(candidate, user_location, now, profile)
                views = stats.count(candidate.id, "view_product")
            vector.update(self._behavior_features(candidate, stats, views))
            vectors.append(vector)
        return vectors

    def _mean_shop_prices(self, candidates: Sequence[Candidate]) -> dict[str, float]:
        shop_ids = [c.id for c in candidates if c.entity_type == EntityType.shop]
        if not shop_ids:
            return {}
        products = self.store.query_products(shop_ids=shop_ids)
        if not products:
            return {}
        df = pd.DataFrame([{"shop_id": p.shop_id, "price": p.price} for p in products])
        return df.groupby("shop_id")["price"].mean().to_dict()

    def _behavior_features(self, candidate: Candidate, stats: _EventStats, views: float) -> FeatureVector:
        cfg = self.config
        saturation = (
            cfg.shop_popularity_saturation
            if candidate.entity_type == EntityType.shop
            else cfg.offer_popularity_saturation
        )
        clicks = stats.count(candidate.id, CLICK_BEHAVIOR)
        purchases = stats.count(candidate.id, PURCHASE_BEHAVIOR)
        return {
            "popularity": min(stats.popularity(candidate.id) / saturation, 1.0),
            "user_interaction": min(stats.user_weight(candidate.id) / cfg.interaction_normaliser, 1.0),
            "click_through_rate": _ratio(clicks, views),
            "conversion_rate": _ratio(purchases, views + clicks),
        }

    def _shop_features(
        self,
        candidate: Candidate,
        user_location: GeoPoint | None,
        now: datetime,
        profile: UserProfile | None,
        shop_prices: dict[str, float],
    ) -> FeatureVector:
        shop: Shop = candidate.entity  # type: ignore[assignment]
        mean_price = shop_prices.get(shop.id)
        fit = price_fit(mean_price, profile.price_range) if profile is not None and mean_price is not None else None
        return {
            "rating": shop.rating,
            "review_count": float(shop.review_count),
            "is_live": float(shop.is_live),
            "is_active": float(shop.is_active),
            "distance_km": distance_or_zero(user_location, shop.location),
            "age_days": max(_days_between(now, shop.created_at), 0.0),
            "days_since_update": max(_days_between(now, shop.updated_at), 0.0),
            "category_affinity": category_affinity(profile, shop.category, self.config),
            "price_fit": fit,
            "verification": float(shop.verification_status == "approved"),
            "location_verified": float(shop.is_location_verified),
        }

    def _offer_features(
        self,
        candidate: Candidate,
        user_location: GeoPoint | None,
        now: datetime,
        profile: UserProfile | None,
    ) -> FeatureVector:
        offer: Offer = candidate.entity  # type: ignore[assignment]
        shop = candidate.shop
        product_price = candidate.product.price if candidate.product is not None else None
        fit = price_fit(product_price, profile.price_range) if profile is not None and product_price is not None else None
        return {
            "discount_value": offer.discount_value,
            "is_percentage": float(offer.discount_type == "Percentage"),
            "days_remaining": max(_days_between(offer.end_date, now), 0.0),
            "usage_rate": _ratio(offer.current_uses, offer.max_uses),
            "rating": shop.rating if shop is not None else None,
            "review_count": float(shop.review_count) if shop is not None else None,
            "is_live": float(shop.is_live and shop.is_active) if shop is not None else None,
            "distance_km": distance_or_zero(user_location, shop.location if shop is not None else None),
            "product_price": product_price,
            "category_code": category_code(offer.category),
            "age_days": max(_days_between(now, offer.created_at), 0.0),
            "category_affinity": category_affinity(profile, offer.category, self.config),
            "price_fit": fit,
            "verification": float(shop.verification_status == "approved") if shop is not None else None,
            "location_verified": float(shop.is_location_verified) if shop is not None else None,
        }
