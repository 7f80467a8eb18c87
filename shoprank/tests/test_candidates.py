from __future__ import annotations

from datetime import timedelta

from factories import NOW, ORIGIN, make_offer, make_product, make_shop, north_of
from shoprank.catalog.candidates import (
    CandidateFilters,
    candidate_for,
    generate_offer_candidates,
    generate_shop_candidates,
)
from shoprank.catalog.data_store import InMemoryDataStore
from shoprank.catalog.models import EntityType


def _ids(candidates):
    return sorted(c.id for c in candidates)


# ── Shops ────────────────────────────────────────────────────────────────


def test_shop_candidates_require_approved_active_live():
    store = InMemoryDataStore(shops=[
        make_shop("ok"),
        make_shop("pending", verification_status="pending"),
        make_shop("inactive", is_active=False),
        make_shop("offline", is_live=False),
    ])
    candidates = generate_shop_candidates(store, CandidateFilters())
    assert _ids(candidates) == ["ok"]
    assert candidates[0].entity_type == EntityType.shop
    assert candidates[0].shop is candidates[0].entity


def test_shop_candidates_category_and_rating_filters():
    store = InMemoryDataStore(shops=[
        make_shop("a", category="Automotive", rating=4.5),
        make_shop("b", category="Automotive", rating=2.0),
        make_shop("c", category="Services", rating=5.0),
    ])
    filters = CandidateFilters(category="Automotive", min_rating=3.0)
    assert _ids(generate_shop_candidates(store, filters)) == ["a"]


def test_shop_candidates_max_distance():
    store = InMemoryDataStore(shops=[
        make_shop("near", location=north_of(ORIGIN, 1.0)),
        make_shop("far", location=north_of(ORIGIN, 30.0)),
        make_shop("unknown", location=None),
    ])
    filters = CandidateFilters(max_distance_km=5.0)
    assert _ids(generate_shop_candidates(store, filters, ORIGIN)) == ["near"]


def test_shop_candidate_pool_is_bounded():
    store = InMemoryDataStore(shops=[make_shop(f"s{i}") for i in range(150)])
    assert len(generate_shop_candidates(store, CandidateFilters())) == 100


# ── Offers ───────────────────────────────────────────────────────────────


def test_expired_offer_never_a_candidate():
    shop = make_shop("s1")
    store = InMemoryDataStore(shops=[shop], offers=[
        make_offer("live", "s1"),
        make_offer("expired", "s1", end_date=NOW - timedelta(seconds=1)),
        make_offer("future", "s1", start_date=NOW + timedelta(days=1), end_date=NOW + timedelta(days=3)),
    ])
    for filters in (
        CandidateFilters(),
        CandidateFilters(category="Food & Dining"),
        CandidateFilters(min_discount=0.0),
        CandidateFilters(max_distance_km=100.0),
    ):
        ids = _ids(generate_offer_candidates(store, filters, NOW, ORIGIN))
        assert "expired" not in ids
        assert "future" not in ids
        assert ids == ["live"]


def test_offer_candidates_require_eligible_shop():
    store = InMemoryDataStore(
        shops=[make_shop("good"), make_shop("bad", verification_status="rejected"), make_shop("closed", is_live=False)],
        offers=[
            make_offer("o-good", "good"),
            make_offer("o-bad", "bad"),
            make_offer("o-closed", "closed"),
            make_offer("o-orphan", "missing"),
        ],
    )
    assert _ids(generate_offer_candidates(store, CandidateFilters(), NOW)) == ["o-good"]


def test_offer_candidates_filters_and_product():
    store = InMemoryDataStore(
        shops=[make_shop("s1")],
        products=[make_product("p1", "s1")],
        offers=[
            make_offer("big", "s1", discount_value=40.0, product_id="p1"),
            make_offer("small", "s1", discount_value=5.0),
            make_offer("inactive", "s1", discount_value=50.0, status="paused"),
        ],
    )
    candidates = generate_offer_candidates(store, CandidateFilters(min_discount=10.0), NOW)
    assert _ids(candidates) == ["big"]
    assert candidates[0].product.id == "p1"
    assert candidates[0].shop.id == "s1"


# ── Single lookups ───────────────────────────────────────────────────────


def test_candidate_for_looks_up_without_eligibility_checks():
    store = InMemoryDataStore(
        shops=[make_shop("s1", is_live=False)],
        products=[make_product("p1")],
        offers=[make_offer("o1", product_id="p1")],
    )
    shop = candidate_for(store, "shop", "s1")
    assert shop.entity_type == EntityType.shop
    assert shop.shop is shop.entity

    offer = candidate_for(store, EntityType.offer, "o1")
    assert offer.shop.id == "s1"
    assert offer.product.id == "p1"

    assert candidate_for(store, "shop", "missing") is None
    assert candidate_for(store, "offer", "s1") is None
