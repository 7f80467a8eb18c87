"""
A/B Testing Framework
=====================

Two experiments run side by side, both keyed on the same deterministic
user bucket.

* **recommendation_blend** decides how the hybrid recommender weighs its
  three sources.

  * Variant A (control): ``0.3 × collaborative + 0.4 × content + 0.3 × location``
  * Variant B (treatment): ``0.4 × collaborative + 0.3 × content + 0.3 × location``

* **ranking_algorithm** compares plain rule-based ranking (A, control)
  with the full rule + clustering + learned blend (B, treatment).

How variant assignment works
----------------------------
The user identifier is hashed with 32-bit FNV-1a over its UTF-8 bytes and
the bucket is ``hash mod 2`` (0 → A, 1 → B). The same identifier always
lands in the same bucket, across requests and process restarts, with no
session state involved.

Per-variant request counts and mean result scores are kept in memory for
the ``/ab-test/results`` report.
"""

from __future__ import annotations

import threading
from typing import Any

# ---------------------------------------------------------------------------
# Experiment definitions
# ---------------------------------------------------------------------------

VARIANTS = ("A", "B")

EXPERIMENTS: dict[str, dict] = {
    "recommendation_blend": {
        "name": "Hybrid Recommendation Blend",
        "description": "Test whether weighting collaborative filtering higher improves engagement",
        "variants": {
            "A": {
                "label": "Content-heavy (control)",
                "weights": {"collaborative": 0.3, "content": 0.4, "location": 0.3},
            },
            "B": {
                "label": "Collaborative-heavy (treatment)",
                "weights": {"collaborative": 0.4, "content": 0.3, "location": 0.3},
            },
        },
        "active": True,
    },
    "ranking_algorithm": {
        "name": "Rule-based vs Learned Ranking",
        "description": "Compare deterministic rule-based ranking against the clustered learn-to-rank blend",
        "variants": {
            "A": {"label": "Rule-based (control)", "algorithm": "rule_based"},
            "B": {"label": "Hybrid ML (treatment)", "algorithm": "hybrid"},
        },
        "active": True,
    },
}

# ---------------------------------------------------------------------------
# Variant assignment
# ---------------------------------------------------------------------------

_FNV_OFFSET_BASIS = 0x811C9DC5
_FNV_PRIME = 0x01000193


def fnv1a_32(value: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 encoding of ``value``."""
    h = _FNV_OFFSET_BASIS
    for byte in value.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


def assign_variant(user_id: str, experiment_id: str = "recommendation_blend") -> str:
    """Return the stable A/B bucket for ``user_id``; inactive experiments always serve A."""
    experiment = EXPERIMENTS.get(experiment_id)
    if not experiment or not experiment["active"]:
        return "A"
    return VARIANTS[fnv1a_32(user_id) % len(VARIANTS)]


def get_variant_weights(
    variant: str, experiment_id: str = "recommendation_blend",
) -> dict[str, float]:
    """Return the source weights for the given variant."""
    experiment = EXPERIMENTS.get(experiment_id, {})
    variants = experiment.get("variants", {})
    default = {"collaborative": 0.3, "content": 0.4, "location": 0.3}
    return variants.get(variant, variants.get("A", {})).get("weights", default)


def get_variant_algorithm(variant: str) -> str:
    variants = EXPERIMENTS["ranking_algorithm"]["variants"]
    return variants.get(variant, variants["A"])["algorithm"]


# ---------------------------------------------------------------------------
# Per-variant stats
# ---------------------------------------------------------------------------

_stats_lock = threading.Lock()
_variant_stats: dict[str, dict[str, dict[str, float]]] = {}


def _empty_stats() -> dict[str, float]:
    return {"requests": 0, "results": 0, "score_sum": 0.0}


def record_variant_request(experiment_id: str, variant: str, scores: list[float]) -> None:
    """Count one request served under ``variant`` and the scores it returned."""
    if variant not in VARIANTS:
        return
    with _stats_lock:
        per_experiment = _variant_stats.setdefault(
            experiment_id, {v: _empty_stats() for v in VARIANTS},
        )
        s = per_experiment[variant]
        s["requests"] += 1
        s["results"] += len(scores)
        s["score_sum"] += sum(scores)


def get_variant_stats() -> dict[str, Any]:
    """Per experiment and variant: request count, result count and mean score."""
    result: dict[str, Any] = {}
    with _stats_lock:
        for experiment_id in EXPERIMENTS:
            per_experiment = _variant_stats.get(experiment_id, {})
            result[experiment_id] = {}
            for v in VARIANTS:
                s = per_experiment.get(v, _empty_stats())
                result[experiment_id][v] = {
                    "requests": int(s["requests"]),
                    "results": int(s["results"]),
                    "avg_score": round(s["score_sum"] / s["results"], 4) if s["results"] else 0.0,
                }
    return result


def clear_variant_stats() -> None:
    with _stats_lock:
        _variant_stats.clear()
