from __future__ import annotations

import os
import time

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .ab_testing.experiments import (
    EXPERIMENTS,
    assign_variant,
    get_variant_algorithm,
    get_variant_stats,
    record_variant_request,
)
from .analytics.aggregator import compute_analytics
from .analytics.metrics import ranking_metrics
from .analytics.store import get_events, record_event
from .auth.dependencies import require_admin, require_user
from .auth.users import authenticate
from .catalog.data_store import get_store
from .catalog.models import CATEGORIES, EntityType, GeoPoint, InteractionEvent, utcnow
from .errors import InvalidRankingRequestError, RankingUnavailableError
from .ranking.engine import RankingEngine, RankingOutcome
from .ranking.explain import explain
from .recommendations.hybrid import recommend
from .recommendations.models import (
    ABRankRequest,
    InteractionRequest,
    InteractionResponse,
    LoginRequest,
    RankedItem,
    RankRequest,
    RankResponse,
    RecommendationRequest,
    RecommendationResponse,
)
from .recommendations.profiles import update_profile_from_event
from .training.registry import get_registry
from .training.trainer import get_trainer

app = FastAPI(title="Shop & Offer Ranking API", version="1.0.0")
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "shoprank-secret-change-in-production"),
)


@app.exception_handler(RankingUnavailableError)
def ranking_unavailable_handler(request: Request, exc: RankingUnavailableError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": "Ranking temporarily unavailable"})


@app.exception_handler(InvalidRankingRequestError)
def invalid_request_handler(request: Request, exc: InvalidRankingRequestError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _engine() -> RankingEngine:
    return RankingEngine(get_store(), get_registry())


def _to_response(outcome: RankingOutcome, algorithm: str, variant: str | None = None) -> RankResponse:
    return RankResponse(
        results=[
            RankedItem(
                entity_type=r.entity_type,
                entity=r.entity.model_dump(mode="json"),
                final_score=round(r.final_score, 4),
                sub_scores={k: round(v, 4) for k, v in r.sub_scores.items()},
                data_quality=round(r.data_quality, 4),
            )
            for r in outcome.results
        ],
        total_candidates=outcome.total_candidates,
        model_version=outcome.model_version,
        algorithm=algorithm,
        variant=variant,
    )


def _rank(
    entity_type: EntityType,
    body: RankRequest,
    user: dict,
    background_tasks: BackgroundTasks,
    algorithm: str = "hybrid",
    variant: str | None = None,
) -> RankResponse:
    start_time = time.time()
    outcome = _engine().rank(
        entity_type,
        user["user_id"],
        user_location=body.location,
        filters=body.filters,
        limit=body.limit,
        algorithm=algorithm,
    )
    response = _to_response(outcome, algorithm, variant)

    scores = [r.final_score for r in outcome.results]
    record_event("rank", {
        "entity_type": entity_type.value,
        "algorithm": algorithm,
        "variant": variant,
        "total_candidates": outcome.total_candidates,
        "results_returned": len(scores),
        "mean_score": sum(scores) / len(scores) if scores else 0.0,
        "model_version": outcome.model_version,
        "response_time_ms": round((time.time() - start_time) * 1000, 1),
    })
    background_tasks.add_task(get_trainer().retrain_if_due)
    return response


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metadata")
def metadata() -> dict:
    return {
        "categories": CATEGORIES,
        "entity_types": [e.value for e in EntityType],
        "experiments": EXPERIMENTS,
    }


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    user = authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session["user"] = user
    return {"status": "ok", "user": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── Ranking endpoints ────────────────────────────────────────────────────


@app.post("/rank/shops", response_model=RankResponse)
def rank_shops(
    body: RankRequest,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_user),
) -> RankResponse:
    return _rank(EntityType.shop, body, user, background_tasks)


@app.post("/rank/offers", response_model=RankResponse)
def rank_offers(
    body: RankRequest,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_user),
) -> RankResponse:
    return _rank(EntityType.offer, body, user, background_tasks)


@app.post("/rank/ab-test", response_model=RankResponse)
def rank_ab_test(
    body: ABRankRequest,
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_user),
) -> RankResponse:
    variant = assign_variant(user["user_id"], "ranking_algorithm")
    algorithm = get_variant_algorithm(variant)
    response = _rank(body.entity_type, body, user, background_tasks, algorithm, variant)
    record_variant_request("ranking_algorithm", variant, [r.final_score for r in response.results])
    return response


@app.get("/rank/metrics")
def rank_metrics(
    target_type: EntityType | None = None,
    days: int = Query(default=7, ge=1, le=365),
    user: dict = Depends(require_user),
) -> dict:
    return ranking_metrics(
        get_store(),
        user["user_id"],
        target_type=target_type.value if target_type else None,
        days=days,
    )


@app.get("/rank/explanation")
def rank_explanation(
    item_id: str = Query(..., min_length=1),
    item_type: EntityType = EntityType.shop,
    latitude: float | None = Query(default=None, ge=-90.0, le=90.0),
    longitude: float | None = Query(default=None, ge=-180.0, le=180.0),
    user: dict = Depends(require_user),
) -> dict:
    if (latitude is None) != (longitude is None):
        raise InvalidRankingRequestError("latitude and longitude must be given together")
    location = GeoPoint(latitude=latitude, longitude=longitude) if latitude is not None else None
    explanation = explain(get_store(), user["user_id"], item_type, item_id, user_location=location)
    if explanation is None:
        raise HTTPException(status_code=404, detail=f"Unknown {item_type.value}: {item_id}")
    return explanation


# ── Recommendation & interaction endpoints ───────────────────────────────


@app.post("/recommendations", response_model=RecommendationResponse)
def recommendations(
    body: RecommendationRequest,
    user: dict = Depends(require_user),
) -> RecommendationResponse:
    start_time = time.time()
    result = recommend(get_store(), user["user_id"], body.location, body.limit)
    for item in result.items:
        item.score = round(item.score, 4)
        item.confidence = round(item.confidence, 4)

    scores = [item.score for item in result.items]
    record_variant_request("recommendation_blend", result.variant, scores)
    record_event("recommend", {
        "variant": result.variant,
        "fallback": result.fallback,
        "results_returned": len(scores),
        "mean_score": sum(scores) / len(scores) if scores else 0.0,
        "response_time_ms": round((time.time() - start_time) * 1000, 1),
    })
    return RecommendationResponse(
        recommendations=result.items,
        variant=result.variant,
        fallback=result.fallback,
    )


@app.post("/interactions", response_model=InteractionResponse)
def interactions(
    body: InteractionRequest,
    user: dict = Depends(require_user),
) -> InteractionResponse:
    now = utcnow()
    event = InteractionEvent(
        user_id=user["user_id"],
        time_of_day=now.hour,
        day_of_week=now.weekday(),
        created_at=now,
        **body.model_dump(),
    )
    store = get_store()
    store.append_event(event)
    update_profile_from_event(store, event)
    return InteractionResponse(status="recorded", event_id=event.id)


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.post("/admin/retrain")
def admin_retrain(
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_admin),
) -> dict:
    trainer = get_trainer()
    if trainer.state.running:
        return {"status": "already_running"}
    background_tasks.add_task(trainer.retrain)
    return {"status": "scheduled"}


@app.get("/admin/model-status")
def admin_model_status(user: dict = Depends(require_admin)) -> dict:
    return get_trainer().status()


@app.get("/analytics")
def analytics(user: dict = Depends(require_admin)) -> dict:
    return compute_analytics(get_events())


@app.get("/ab-test/results")
def ab_test_results(user: dict = Depends(require_admin)) -> dict:
    stats = get_variant_stats()
    results = {}
    for experiment_id, variants in stats.items():
        a, b = variants["A"], variants["B"]
        diff = abs(a["avg_score"] - b["avg_score"])
        winner = None
        if a["requests"] and b["requests"] and diff >= 0.05:
            winner = "A" if a["avg_score"] > b["avg_score"] else "B"
        results[experiment_id] = {
            "experiment": EXPERIMENTS[experiment_id],
            "variant_stats": variants,
            "winner": winner,
        }
    return results
