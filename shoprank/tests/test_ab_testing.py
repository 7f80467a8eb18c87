from __future__ import annotations

from fastapi.testclient import TestClient

from factories import make_shop
from shoprank.ab_testing.experiments import (
    assign_variant,
    fnv1a_32,
    get_variant_algorithm,
    get_variant_stats,
    get_variant_weights,
    record_variant_request,
)
from shoprank.app import app

client = TestClient(app)


def _login_user(c):
    c.post("/auth/login", json={"username": "user", "password": "user123"})


def _login_admin(c):
    c.post("/auth/login", json={"username": "admin", "password": "admin123"})


def test_fnv1a_known_values():
    assert fnv1a_32("") == 0x811C9DC5
    assert fnv1a_32("a") == 0xE40C292C


def test_assignment_is_deterministic():
    for user_id in ("u-demo", "u-admin", "someone@example.com", "42"):
        first = assign_variant(user_id)
        assert first in ("A", "B")
        assert all(assign_variant(user_id) == first for _ in range(10))
        assert first == ("A", "B")[fnv1a_32(user_id) % 2]


def test_assignment_is_roughly_balanced():
    variants = [assign_variant(f"user-{i}") for i in range(1000)]
    share_a = variants.count("A") / len(variants)
    assert 0.4 < share_a < 0.6


def test_unknown_experiment_serves_control():
    assert assign_variant("u-demo", "no_such_experiment") == "A"


def test_variant_weights():
    assert get_variant_weights("A") == {"collaborative": 0.3, "content": 0.4, "location": 0.3}
    assert get_variant_weights("B") == {"collaborative": 0.4, "content": 0.3, "location": 0.3}
    assert get_variant_weights("Z") == get_variant_weights("A")


def test_variant_algorithms():
    assert get_variant_algorithm("A") == "rule_based"
    assert get_variant_algorithm("B") == "hybrid"


def test_variant_stats_average_scores():
    record_variant_request("recommendation_blend", "A", [0.2, 0.4])
    record_variant_request("recommendation_blend", "A", [0.6])
    record_variant_request("recommendation_blend", "C", [1.0])

    stats = get_variant_stats()["recommendation_blend"]
    assert stats["A"] == {"requests": 2, "results": 3, "avg_score": 0.4}
    assert stats["B"] == {"requests": 0, "results": 0, "avg_score": 0.0}


# ── Endpoints ────────────────────────────────────────────────────────────


def test_rank_ab_test_uses_the_users_bucket(install_store):
    install_store(shops=[make_shop("s1"), make_shop("s2", rating=2.0)])
    _login_user(client)
    resp = client.post("/rank/ab-test", json={"entity_type": "shop"})
    assert resp.status_code == 200
    body = resp.json()

    expected_variant = assign_variant("u-demo", "ranking_algorithm")
    assert body["variant"] == expected_variant
    assert body["algorithm"] == get_variant_algorithm(expected_variant)
    assert len(body["results"]) == 2

    stats = get_variant_stats()["ranking_algorithm"][expected_variant]
    assert stats["requests"] == 1
    assert stats["results"] == 2


def test_rank_ab_test_rejects_unknown_entity():
    _login_user(client)
    resp = client.post("/rank/ab-test", json={"entity_type": "product"})
    assert resp.status_code == 422


def test_ab_test_results_endpoint():
    record_variant_request("recommendation_blend", "A", [0.9])
    record_variant_request("recommendation_blend", "B", [0.5])
    _login_admin(client)
    resp = client.get("/ab-test/results")
    assert resp.status_code == 200
    body = resp.json()

    assert set(body) == {"recommendation_blend", "ranking_algorithm"}
    blend = body["recommendation_blend"]
    assert blend["winner"] == "A"
    assert blend["variant_stats"]["B"]["avg_score"] == 0.5
    assert body["ranking_algorithm"]["winner"] is None


def test_ab_test_results_no_winner_within_margin():
    record_variant_request("recommendation_blend", "A", [0.52])
    record_variant_request("recommendation_blend", "B", [0.50])
    _login_admin(client)
    body = client.get("/ab-test/results").json()
    assert body["recommendation_blend"]["winner"] is None
