from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..ranking.config import DEFAULT_RANKING_CONFIG, RankingConfig
from ..ranking.geo import haversine_km
from .data_store import InMemoryDataStore
from .models import Candidate, EntityType, GeoPoint, Shop


class CandidateFilters(BaseModel):
    category: str | None = None
    min_rating: float | None = Field(default=None, ge=0.0, le=5.0)
    min_discount: float | None = Field(default=None, ge=0.0)
    max_distance_km: float | None = Field(default=None, gt=0.0)


def _shop_is_eligible(shop: Shop | None) -> bool:
    return (
        shop is not None
        and shop.verification_status == "approved"
        and shop.is_active
        and shop.is_live
    )


def _within(shop: Shop | None, origin: GeoPoint | None, max_distance_km: float | None) -> bool:
    if max_distance_km is None:
        return True
    if shop is None or shop.location is None or origin is None:
        return False
    return haversine_km(origin, shop.location) <= max_distance_km


def generate_shop_candidates(
    store: InMemoryDataStore,
    filters: CandidateFilters,
    user_location: GeoPoint | None = None,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> list[Candidate]:
    """Approved, active, live shops matching the filters, at most ``candidate_pool_size``."""
    shops = store.query_shops(
        category=filters.category,
        min_rating=filters.min_rating,
        limit=config.candidate_pool_size,
    )
    return [
        Candidate(entity_type=EntityType.shop, entity=shop, shop=shop)
        for shop in shops
        if _within(shop, user_location, filters.max_distance_km)
    ]


def generate_offer_candidates(
    store: InMemoryDataStore,
    filters: CandidateFilters,
    now: datetime,
    user_location: GeoPoint | None = None,
    config: RankingConfig = DEFAULT_RANKING_CONFIG,
) -> list[Candidate]:
    """
    Active offers inside their validity window whose owning shop passes the
    shop eligibility checks.

    Validity is re-checked here so an offer past its ``end_date`` never
    reaches scoring, whatever the store returned.
    """
    offers = store.query_offers(
        active_at=now,
        category=filters.category,
        min_discount=filters.min_discount,
        limit=config.candidate_pool_size,
    )

    candidates: list[Candidate] = []
    for offer in offers:
        if not offer.is_valid_at(now):
            continue
        shop = store.get_shop(offer.shop_id)
        if not _shop_is_eligible(shop):
            continue
        if not _within(shop, user_location, filters.max_distance_km):
            continue
        candidates.append(
            Candidate(
                entity_type=EntityType.offer,
                entity=offer,
                shop=shop,
                product=store.get_product(offer.product_id),
            )
        )
    return candidates


def candidate_for(store: InMemoryDataStore, entity_type: EntityType | str, target_id: str) -> Candidate | None:
    """Look up one shop or offer by id without any eligibility checks."""
    if EntityType(entity_type) == EntityType.shop:
        shop = store.get_shop(target_id)
        if shop is None:
            return None
        return Candidate(entity_type=EntityType.shop, entity=shop, shop=shop)

    offer = store.get_offer(target_id)
    if offer is None:
        return None
    return Candidate(
        entity_type=EntityType.offer,
        entity=offer,
        shop=store.get_shop(offer.shop_id),
        product=store.get_product(offer.product_id),
    )
