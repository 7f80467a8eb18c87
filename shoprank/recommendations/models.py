from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from ..catalog.candidates import CandidateFilters
from ..catalog.models import BehaviorType, EntityType, GeoPoint, TargetType


class Recommendation(BaseModel):
    target_id: str
    target_type: str
    score: float
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    sources: list[str] = Field(default_factory=list)
    variant: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# ── Ranking ──────────────────────────────────────────────────────────────


class RankRequest(BaseModel):
    location: GeoPoint | None = None
    filters: CandidateFilters = Field(default_factory=CandidateFilters)
    limit: int = Field(default=20, ge=1, le=100)


class ABRankRequest(RankRequest):
    entity_type: EntityType = EntityType.shop


class RankedItem(BaseModel):
    entity_type: EntityType
    entity: dict[str, Any]
    final_score: float
    sub_scores: dict[str, float]
    data_quality: float


class RankResponse(BaseModel):
    results: list[RankedItem]
    total_candidates: int
    model_version: int
    algorithm: Literal["hybrid", "rule_based"] = "hybrid"
    variant: str | None = None


# ── Recommendations ──────────────────────────────────────────────────────


class RecommendationRequest(BaseModel):
    location: GeoPoint | None = None
    limit: int = Field(default=20, ge=1, le=100)


class RecommendationResponse(BaseModel):
    recommendations: list[Recommendation]
    variant: str
    fallback: bool = False


# ── Interactions ─────────────────────────────────────────────────────────


class InteractionRequest(BaseModel):
    behavior_type: BehaviorType
    target_id: str | None = None
    target_type: TargetType | None = None
    score: float = Field(default=1.0, ge=0.0, le=10.0)
    category: str | None = None
    price: float | None = Field(default=None, ge=0.0)
    location: GeoPoint | None = None
    session_id: str | None = None


class InteractionResponse(BaseModel):
    status: str
    event_id: str


class LoginRequest(BaseModel):
    username: str
    password: str
