"""
Preference profile upkeep driven by tracked interactions.

Every tracked event nudges the user's profile: the event's category gains
weight (new categories start at the initial weight) and the price range
widens to take in the event's price. The content source and the
``category_affinity``/``price_fit`` features read the result.
"""
from __future__ import annotations

import logging

from ..catalog.data_store import InMemoryDataStore
from ..catalog.models import InteractionEvent, PriceRange, UserProfile
from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig

logger = logging.getLogger(__name__)


def apply_event(
    profile: UserProfile | None,
    event: InteractionEvent,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> UserProfile:
    """Return ``profile`` (or a fresh one) updated with ``event``; the input is left untouched."""
    if profile is None:
        profile = UserProfile(user_id=event.user_id)

    weights = dict(profile.category_weights)
    if event.category:
        current = weights.get(event.category)
        if current is None:
            weights[event.category] = config.profile_initial_weight
        else:
            weights[event.category] = min(current + config.profile_weight_step, config.profile_max_weight)

    price_range = profile.price_range
    if event.price is not None:
        price_range = PriceRange(
            min=min(price_range.min, event.price),
            max=max(price_range.max, event.price),
        )

    return profile.model_copy(update={"category_weights": weights, "price_range": price_range})


def update_profile_from_event(
    store: InMemoryDataStore,
    event: InteractionEvent,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
) -> UserProfile:
    profile = store.update_profile(event.user_id, lambda current: apply_event(current, event, config))
    logger.debug(
        "Updated profile for user %s from %s (category=%s, price=%s)",
        event.user_id, event.behavior_type, event.category, event.price,
    )
    return profile
