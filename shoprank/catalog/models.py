from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, Field

CATEGORIES: list[str] = [
    "Food & Dining",
    "Electronics & Gadgets",
    "Fashion & Clothing",
    "Health & Beauty",
    "Home & Garden",
    "Sports & Fitness",
    "Books & Education",
    "Automotive",
    "Entertainment",
    "Services",
    "Other",
]

BehaviorType = Literal[
    "view_product",
    "view_shop",
    "search_query",
    "click_offer",
    "add_to_favorites",
    "remove_from_favorites",
    "share_product",
    "review_product",
    "purchase_product",
    "visit_shop",
]

TargetType = Literal["shop", "offer", "product", "search"]

CLICK_BEHAVIOR = "click_offer"
FAVORITE_BEHAVIOR = "add_to_favorites"
PURCHASE_BEHAVIOR = "purchase_product"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class EntityType(str, Enum):
    shop = "shop"
    offer = "offer"


class GeoPoint(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class Shop(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    category: str = "Other"
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    review_count: int = Field(default=0, ge=0)
    location: GeoPoint | None = None
    is_live: bool = True
    is_active: bool = True
    verification_status: Literal["pending", "approved", "rejected"] = "approved"
    is_location_verified: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class Product(BaseModel):
    id: str = Field(..., min_length=1)
    shop_id: str
    name: str = ""
    category: str = "Other"
    price: float = Field(default=0.0, ge=0.0)
    status: str = "active"


class Offer(BaseModel):
    id: str = Field(..., min_length=1)
    shop_id: str
    product_id: str | None = None
    title: str = ""
    category: str = "Other"
    discount_type: Literal["Percentage", "Fixed Amount"] = "Percentage"
    discount_value: float = Field(default=0.0, ge=0.0)
    start_date: UtcDatetime
    end_date: UtcDatetime
    max_uses: int = Field(default=0, ge=0)  # 0 means unlimited
    current_uses: int = Field(default=0, ge=0)
    status: str = "active"
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    def is_valid_at(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date


class InteractionEvent(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str = Field(..., min_length=1)
    behavior_type: BehaviorType
    target_id: str | None = None
    target_type: TargetType | None = None
    score: float = Field(default=1.0, ge=0.0, le=10.0)
    category: str | None = None
    price: float | None = None
    time_of_day: int | None = Field(default=None, ge=0, le=23)
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    location: GeoPoint | None = None
    session_id: str | None = None
    created_at: UtcDatetime = Field(default_factory=utcnow)


class PriceRange(BaseModel):
    min: float = 0.0
    max: float = 10000.0


class UserProfile(BaseModel):
    user_id: str = Field(..., min_length=1)
    category_weights: dict[str, float] = Field(default_factory=dict)
    price_range: PriceRange = Field(default_factory=PriceRange)
    max_distance_km: float = Field(default=10.0, gt=0.0)
    embedding: list[float] | None = None


@dataclass(frozen=True)
class Candidate:
    """A shop or offer eligible for ranking, with the rows it is scored against.

    For shops ``shop`` is the entity itself; for offers it is the owning shop.
    """

    entity_type: EntityType
    entity: Shop | Offer
    shop: Shop | None = None
    product: Product | None = None

    @property
    def id(self) -> str:
        return self.entity.id

    @property
    def category(self) -> str:
        return self.entity.category
