"""
In-memory stand-in for the shop/offer/product, interaction-event and
user-profile stores.

The ranking engine only reads through the methods below; any persistent
implementation exposing the same methods can replace it. Reads raise
``DataStoreUnavailableError`` when the backing store cannot answer.
"""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Iterable, Sequence

import pandas as pd

from ..data_ingestion.config import DEFAULT_INGESTION_CONFIG, IngestionConfig
from ..data_ingestion.ingest import SeedTables, load_seed
from .models import InteractionEvent, Offer, Product, Shop, UserProfile

EVENT_COLUMNS = [
    "id",
    "user_id",
    "behavior_type",
    "target_id",
    "target_type",
    "score",
    "category",
    "price",
    "created_at",
]


class InMemoryDataStore:
    def __init__(
        self,
        shops: Iterable[Shop] = (),
        products: Iterable[Product] = (),
        offers: Iterable[Offer] = (),
        events: Iterable[InteractionEvent] = (),
        profiles: Iterable[UserProfile] = (),
    ) -> None:
        self._shops: dict[str, Shop] = {s.id: s for s in shops}
        self._products: dict[str, Product] = {p.id: p for p in products}
        self._offers: dict[str, Offer] = {o.id: o for o in offers}
        self._profiles: dict[str, UserProfile] = {p.user_id: p for p in profiles}
        self._events: list[InteractionEvent] = list(events)
        self._events_df: pd.DataFrame | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_seed(cls, tables: SeedTables) -> "InMemoryDataStore":
        return cls(
            shops=tables.shops,
            products=tables.products,
            offers=tables.offers,
            events=tables.interactions,
            profiles=tables.profiles,
        )

    # ── Catalog ──────────────────────────────────────────────────────────

    def query_shops(
        self,
        *,
        category: str | None = None,
        min_rating: float | None = None,
        verified_only: bool = True,
        active_only: bool = True,
        limit: int | None = None,
    ) -> list[Shop]:
        shops = list(self._shops.values())
        if verified_only:
            shops = [s for s in shops if s.verification_status == "approved"]
        if active_only:
            shops = [s for s in shops if s.is_active and s.is_live]
        if category:
            shops = [s for s in shops if s.category == category]
        if min_rating is not None:
            shops = [s for s in shops if s.rating >= min_rating]
        return shops[:limit] if limit is not None else shops

    def query_offers(
        self,
        *,
        active_at: datetime,
        category: str | None = None,
        min_discount: float | None = None,
        shop_ids: Sequence[str] | None = None,
        limit: int | None = None,
    ) -> list[Offer]:
        offers = [
            o for o in self._offers.values()
            if o.status == "active" and o.is_valid_at(active_at)
        ]
        if category:
            offers = [o for o in offers if o.category == category]
        if min_discount is not None:
            offers = [o for o in offers if o.discount_value >= min_discount]
        if shop_ids is not None:
            wanted = set(shop_ids)
            offers = [o for o in offers if o.shop_id in wanted]
        return offers[:limit] if limit is not None else offers

    def get_shop(self, shop_id: str) -> Shop | None:
        return self._shops.get(shop_id)

    def get_offer(self, offer_id: str) -> Offer | None:
        return self._offers.get(offer_id)

    def get_product(self, product_id: str | None) -> Product | None:
        if product_id is None:
            return None
        return self._products.get(product_id)

    def query_products(
        self,
        *,
        shop_ids: Sequence[str] | None = None,
        categories: Sequence[str] | None = None,
        price_min: float | None = None,
        price_max: float | None = None,
    ) -> list[Product]:
        products = [p for p in self._products.values() if p.status == "active"]
        if shop_ids is not None:
            wanted = set(shop_ids)
            products = [p for p in products if p.shop_id in wanted]
        if categories is not None:
            wanted_categories = set(categories)
            products = [p for p in products if p.category in wanted_categories]
        if price_min is not None:
            products = [p for p in products if p.price >= price_min]
        if price_max is not None:
            products = [p for p in products if p.price <= price_max]
        return products

    # ── Profiles ─────────────────────────────────────────────────────────

    def get_profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

    def profiles_with_embeddings(self, *, exclude_user_id: str | None = None, limit: int = 100) -> list[UserProfile]:
        profiles = [
            p for p in self._profiles.values()
            if p.embedding and p.user_id != exclude_user_id
        ]
        return profiles[:limit]

    def upsert_profile(self, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = profile

    def update_profile(
        self,
        user_id: str,
        update: Callable[[UserProfile | None], UserProfile],
    ) -> UserProfile:
        """Apply ``update`` to the stored profile (or ``None``) and store the result atomically."""
        with self._lock:
            profile = update(self._profiles.get(user_id))
            self._profiles[user_id] = profile
            return profile

    # ── Interaction events ───────────────────────────────────────────────

    def append_event(self, event: InteractionEvent) -> None:
        with self._lock:
            self._events.append(event)
            self._events_df = None

    def _frame(self) -> pd.DataFrame:
        with self._lock:
            if self._events_df is None:
                rows = [e.model_dump(include=set(EVENT_COLUMNS)) for e in self._events]
                df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
                df["created_at"] = pd.to_datetime(df["created_at"], utc=True)
                df["score"] = df["score"].astype(float)
                self._events_df = df
            return self._events_df

    def events_frame(
        self,
        *,
        user_id: str | None = None,
        user_ids: Sequence[str] | None = None,
        target_ids: Sequence[str] | None = None,
        target_type: str | None = None,
        behavior_types: Sequence[str] | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> pd.DataFrame:
        """Return matching events, newest first, as a DataFrame with ``EVENT_COLUMNS``."""
        df = self._frame()
        mask = pd.Series(True, index=df.index)

        if user_id is not None:
            mask &= df["user_id"] == user_id
        if user_ids is not None:
            mask &= df["user_id"].isin(list(user_ids))
        if target_ids is not None:
            mask &= df["target_id"].isin(list(target_ids))
        if target_type is not None:
            mask &= df["target_type"] == target_type
        if behavior_types is not None:
            mask &= df["behavior_type"].isin(list(behavior_types))
        if since is not None:
            mask &= df["created_at"] >= pd.Timestamp(since)

        result = df.loc[mask].sort_values("created_at", ascending=False)
        if limit is not None:
            result = result.head(limit)
        return result.reset_index(drop=True)

    def count_events(self) -> int:
        return len(self._events)


_store: InMemoryDataStore | None = None


def get_store() -> InMemoryDataStore:
    """Return the process-wide store, loading seed data on first call."""
    global _store
    if _store is None:
        _store = InMemoryDataStore.from_seed(load_seed())
    return _store


def set_store(store: InMemoryDataStore | None) -> None:
    """Replace the process-wide store (``None`` reloads seed data lazily)."""
    global _store
    _store = store


def reload_store(config: IngestionConfig = DEFAULT_INGESTION_CONFIG) -> InMemoryDataStore:
    """Load the seed tables ``config`` points at into a fresh process-wide store."""
    store = InMemoryDataStore.from_seed(load_seed(config))
    set_store(store)
    return store
