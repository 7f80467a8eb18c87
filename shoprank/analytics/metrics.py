"""
Offline ranking quality metrics computed from a user's recent interactions.

Interactions are taken newest first as the "served" order and each gets the
relevance label the learned ranker trains on. Positive interactions
(click, favorite, purchase) count as relevant.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import numpy as np

from ..catalog.data_store import InMemoryDataStore
from ..catalog.models import CLICK_BEHAVIOR, FAVORITE_BEHAVIOR, PURCHASE_BEHAVIOR, utcnow
from ..ranking.learned import relevance_label

RELEVANT_BEHAVIORS = (CLICK_BEHAVIOR, FAVORITE_BEHAVIOR, PURCHASE_BEHAVIOR)
RECALL_AT = 20


def ndcg(relevances: list[float]) -> float:
    if not relevances:
        return 0.0
    rel = np.asarray(relevances, dtype=float)
    discounts = 1.0 / np.log2(np.arange(2, rel.size + 2))
    dcg = float(np.sum(rel * discounts))
    idcg = float(np.sum(np.sort(rel)[::-1] * discounts))
    return dcg / idcg if idcg > 0 else 0.0


def f1(precision: float, recall: float) -> float:
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def ranking_metrics(
    store: InMemoryDataStore,
    user_id: str,
    target_type: str | None = None,
    days: int = 7,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or utcnow()
    events = store.events_frame(
        user_id=user_id,
        target_type=target_type,
        since=now - timedelta(days=days),
    )
    behaviors = events["behavior_type"].tolist()
    relevant = sum(1 for b in behaviors if b in RELEVANT_BEHAVIORS)

    precision = relevant / len(behaviors) if behaviors else 0.0
    recall = min(relevant / RECALL_AT, 1.0)
    return {
        "user_id": user_id,
        "target_type": target_type,
        "days": days,
        "interactions": len(behaviors),
        "ndcg": round(ndcg([relevance_label(b) for b in behaviors]), 4),
        "precision": round(precision, 4),
        "recall": round(recall, 4),
        "f1": round(f1(precision, recall), 4),
    }
