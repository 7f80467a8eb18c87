from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

import pandas as pd

from ..catalog.models import InteractionEvent, Offer, PriceRange, Product, Shop, UserProfile
from .config import DEFAULT_INGESTION_CONFIG, IngestionConfig

logger = logging.getLogger(__name__)

SHOP_COLUMNS: List[str] = [
    "id",
    "name",
    "category",
    "rating",
    "review_count",
    "latitude",
    "longitude",
    "is_live",
    "is_active",
    "verification_status",
    "is_location_verified",
    "created_at",
    "updated_at",
]

PRODUCT_COLUMNS: List[str] = ["id", "shop_id", "name", "category", "price", "status"]

OFFER_COLUMNS: List[str] = [
    "id",
    "shop_id",
    "product_id",
    "title",
    "category",
    "discount_type",
    "discount_value",
    "start_date",
    "end_date",
    "max_uses",
    "current_uses",
    "status",
    "created_at",
    "updated_at",
]

INTERACTION_COLUMNS: List[str] = [
    "id",
    "user_id",
    "behavior_type",
    "target_id",
    "target_type",
    "score",
    "category",
    "price",
    "time_of_day",
    "day_of_week",
    "latitude",
    "longitude",
    "session_id",
    "created_at",
]

PROFILE_COLUMNS: List[str] = [
    "user_id",
    "category_weights",
    "price_min",
    "price_max",
    "max_distance_km",
    "embedding",
]

_TIMESTAMP_COLUMNS = ("created_at", "updated_at", "start_date", "end_date")


@dataclass
class SeedTables:
    shops: list[Shop] = field(default_factory=list)
    products: list[Product] = field(default_factory=list)
    offers: list[Offer] = field(default_factory=list)
    interactions: list[InteractionEvent] = field(default_factory=list)
    profiles: list[UserProfile] = field(default_factory=list)


def _read_table(path: Path, columns: List[str]) -> list[dict[str, Any]]:
    """Read one CSV export into row dicts with NaN replaced by ``None``."""
    if not path.is_file():
        logger.info("Seed file %s not found, starting with an empty table", path)
        return []

    # Raw text everywhere; the catalog models do the type coercion.
    df = pd.read_csv(path, dtype=str)
    for col in columns:
        if col not in df.columns:
            df[col] = None
    df = df[columns]

    for col in _TIMESTAMP_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], utc=True, errors="coerce")

    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def _location(row: dict[str, Any]) -> dict[str, float] | None:
    lat, lon = row.pop("latitude", None), row.pop("longitude", None)
    if lat is None or lon is None:
        return None
    return {"latitude": float(lat), "longitude": float(lon)}


def _drop_missing(row: dict[str, Any]) -> dict[str, Any]:
    """Let model defaults apply to empty cells."""
    return {k: v for k, v in row.items() if v is not None}


def _parse_json(raw: Any, default: Any) -> Any:
    if raw is None:
        return default
    if isinstance(raw, (dict, list)):
        return raw
    try:
        return json.loads(str(raw))
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed JSON cell: %r", raw)
        return default


def _to_profile(row: dict[str, Any]) -> UserProfile:
    price_range = PriceRange(
        min=row["price_min"] if row.get("price_min") is not None else 0.0,
        max=row["price_max"] if row.get("price_max") is not None else 10000.0,
    )
    data: dict[str, Any] = {
        "user_id": row["user_id"],
        "category_weights": _parse_json(row.get("category_weights"), {}),
        "price_range": price_range,
        "embedding": _parse_json(row.get("embedding"), None),
    }
    if row.get("max_distance_km") is not None:
        data["max_distance_km"] = float(row["max_distance_km"])
    return UserProfile(**data)


def load_seed(config: IngestionConfig = DEFAULT_INGESTION_CONFIG) -> SeedTables:
    """
    Load every seed table the config points at.

    Missing files produce empty tables so the service can start without data.
    """
    shops = []
    for row in _read_table(config.shops_path, SHOP_COLUMNS):
        location = _location(row)
        shops.append(Shop(**_drop_missing(row), location=location))

    products = [Product(**_drop_missing(row)) for row in _read_table(config.products_path, PRODUCT_COLUMNS)]
    offers = [Offer(**_drop_missing(row)) for row in _read_table(config.offers_path, OFFER_COLUMNS)]

    interactions = []
    for row in _read_table(config.interactions_path, INTERACTION_COLUMNS):
        location = _location(row)
        for col in ("time_of_day", "day_of_week"):
            if row.get(col) is not None:
                row[col] = int(float(row[col]))
        interactions.append(InteractionEvent(**_drop_missing(row), location=location))

    profiles = [_to_profile(row) for row in _read_table(config.profiles_path, PROFILE_COLUMNS)]

    logger.info(
        "Loaded seed data: %d shops, %d products, %d offers, %d interactions, %d profiles",
        len(shops), len(products), len(offers), len(interactions), len(profiles),
    )
    return SeedTables(
        shops=shops,
        products=products,
        offers=offers,
        interactions=interactions,
        profiles=profiles,
    )


if __name__ == "__main__":
    tables = load_seed()
    print(
        f"Seed data: {len(tables.shops)} shops, {len(tables.offers)} offers, "
        f"{len(tables.interactions)} interactions"
    )
