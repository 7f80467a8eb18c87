from __future__ import annotations

from collections import Counter
from typing import Any


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    rankings = [e for e in events if e["type"] == "rank"]
    recommendations = [e for e in events if e["type"] == "recommend"]
    served = rankings + recommendations
    total = len(served)

    # Average response time
    times = [e["response_time_ms"] for e in served if "response_time_ms" in e]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Ranking requests per entity type and algorithm
    entity_counter: Counter[str] = Counter(e.get("entity_type", "unknown") for e in rankings)
    algorithm_counter: Counter[str] = Counter(e.get("algorithm", "unknown") for e in rankings)

    # Variant split
    variant_counter: Counter[str] = Counter(e.get("variant") or "none" for e in served)

    # Mean score of returned results
    scored = [e for e in served if e.get("results_returned")]
    avg_score = (
        round(sum(e.get("mean_score", 0.0) for e in scored) / len(scored), 4) if scored else 0.0
    )

    empty = sum(1 for e in served if not e.get("results_returned"))
    fallbacks = sum(1 for e in recommendations if e.get("fallback"))

    # Model versions that served traffic
    version_counter: Counter[int] = Counter(
        e["model_version"] for e in rankings if "model_version" in e
    )

    return {
        "total_requests": total,
        "total_rankings": len(rankings),
        "total_recommendations": len(recommendations),
        "avg_response_time_ms": avg_time,
        "avg_result_score": avg_score,
        "rankings_by_entity_type": dict(entity_counter),
        "rankings_by_algorithm": dict(algorithm_counter),
        "requests_by_variant": dict(variant_counter),
        "model_versions": {str(v): c for v, c in sorted(version_counter.items())},
        "empty_result_rate": round(empty / total * 100, 1) if total else 0.0,
        "fallback_rate": (
            round(fallbacks / len(recommendations) * 100, 1) if recommendations else 0.0
        ),
    }
