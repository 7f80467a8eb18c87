from __future__ import annotations

from unittest.mock import patch

import numpy as np
import pytest

from factories import NOW, ORIGIN, make_event, make_offer, make_product, make_profile, make_shop, north_of
from shoprank.catalog.data_store import InMemoryDataStore
from shoprank.catalog.models import CATEGORIES, Candidate, EntityType, PriceRange
from shoprank.ranking.features import (
    FEATURE_KEYS,
    OFFER_FEATURE_KEYS,
    SHOP_FEATURE_KEYS,
    FeatureExtractor,
    category_affinity,
    category_code,
    flatten,
    price_fit,
)


def _shop_candidate(shop):
    return Candidate(entity_type=EntityType.shop, entity=shop, shop=shop)


def _offer_candidate(offer, shop, product=None):
    return Candidate(entity_type=EntityType.offer, entity=offer, shop=shop, product=product)


# ── Pure helpers ─────────────────────────────────────────────────────────


def test_price_fit_peaks_at_middle_of_range():
    rng = PriceRange(min=0.0, max=100.0)
    assert price_fit(50.0, rng) == pytest.approx(1.0)
    assert price_fit(25.0, rng) == pytest.approx(0.5)
    assert price_fit(0.0, rng) == pytest.approx(0.0)


def test_price_fit_outside_range_is_zero():
    rng = PriceRange(min=10.0, max=20.0)
    assert price_fit(5.0, rng) == 0.0
    assert price_fit(25.0, rng) == 0.0


def test_price_fit_zero_width_range():
    assert price_fit(10.0, PriceRange(min=10.0, max=10.0)) == 1.0


def test_category_affinity_defaults_and_caps():
    assert category_affinity(None, "Automotive") == 0.5
    profile = make_profile(category_weights={"Automotive": 4.0, "Services": 25.0})
    assert category_affinity(profile, "Automotive") == pytest.approx(0.4)
    assert category_affinity(profile, "Services") == 1.0
    assert category_affinity(profile, "Entertainment") == 0.5


def test_category_code_uses_fixed_category_list():
    assert category_code(CATEGORIES[0]) == 0.0
    assert category_code("Services") == pytest.approx(CATEGORIES.index("Services") / len(CATEGORIES))
    assert category_code("Not a category") == category_code("Other")


def test_feature_keys_cover_both_entity_types_once():
    assert len(FEATURE_KEYS) == len(set(FEATURE_KEYS))
    assert set(SHOP_FEATURE_KEYS) | set(OFFER_FEATURE_KEYS) == set(FEATURE_KEYS)
    assert FEATURE_KEYS[: len(SHOP_FEATURE_KEYS)] == SHOP_FEATURE_KEYS


def test_flatten_uses_fixed_order_and_zero_for_missing():
    vec = flatten({"rating": 4.0, "price_fit": None, "discount_value": 15.0})
    assert vec.shape == (len(FEATURE_KEYS),)
    assert vec[FEATURE_KEYS.index("rating")] == 4.0
    assert vec[FEATURE_KEYS.index("price_fit")] == 0.0
    assert vec[FEATURE_KEYS.index("discount_value")] == 15.0
    assert np.count_nonzero(vec) == 2


# ── Extraction ───────────────────────────────────────────────────────────


def test_shop_features_basic_fields():
    shop = make_shop("s1", rating=4.5, review_count=12, location=north_of(ORIGIN, 3.0))
    store = InMemoryDataStore(shops=[shop])
    [vec] = FeatureExtractor(store).extract([_shop_candidate(shop)], "u1", ORIGIN, NOW)

    assert set(vec) == set(SHOP_FEATURE_KEYS)
    assert vec["rating"] == 4.5
    assert vec["review_count"] == 12.0
    assert vec["distance_km"] == pytest.approx(3.0, rel=1e-3)
    assert vec["age_days"] == pytest.approx(100.0)
    assert vec["days_since_update"] == pytest.approx(10.0)
    assert vec["verification"] == 1.0
    assert vec["category_affinity"] == 0.5
    # no profile, so price fit is unknown rather than zero
    assert vec["price_fit"] is None


def test_distance_is_zero_without_user_location():
    shop = make_shop("s1")
    store = InMemoryDataStore(shops=[shop])
    [vec] = FeatureExtractor(store).extract([_shop_candidate(shop)], "u1", None, NOW)
    assert vec["distance_km"] == 0.0


def test_popularity_counts_only_recent_events():
    shop = make_shop("s1")
    events = [make_event(f"u{i}", "view_shop", "s1", days_ago=2) for i in range(30)]
    events += [make_event("old", "view_shop", "s1", days_ago=45) for _ in range(20)]
    store = InMemoryDataStore(shops=[shop], events=events)

    [vec] = FeatureExtractor(store).extract([_shop_candidate(shop)], "u1", None, NOW)
    assert vec["popularity"] == pytest.approx(30 / 100)


def test_offer_popularity_uses_offer_saturation():
    shop = make_shop("s1")
    offer = make_offer("o1", "s1")
    events = [make_event(f"u{i}", "view_product", "o1", "offer") for i in range(60)]
    store = InMemoryDataStore(shops=[shop], offers=[offer], events=events)

    [vec] = FeatureExtractor(store).extract([_offer_candidate(offer, shop)], "u1", None, NOW)
    assert vec["popularity"] == 1.0


def test_user_interaction_weights_actions_and_caps():
    shop_a, shop_b = make_shop("a"), make_shop("b")
    events = [
        make_event("u1", "view_shop", "a"),
        make_event("u1", "click_offer", "a"),
        make_event("u1", "add_to_favorites", "a"),
        make_event("u1", "purchase_product", "b"),
        make_event("u1", "purchase_product", "b"),
        make_event("u1", "purchase_product", "b"),
        make_event("someone-else", "purchase_product", "a"),
    ]
    store = InMemoryDataStore(shops=[shop_a, shop_b], events=events)

    vec_a, vec_b = FeatureExtractor(store).extract(
        [_shop_candidate(shop_a), _shop_candidate(shop_b)], "u1", None, NOW,
    )
    assert vec_a["user_interaction"] == pytest.approx((1 + 2 + 3) / 10)
    assert vec_b["user_interaction"] == 1.0


def test_click_through_and_conversion_rates():
    shop = make_shop("s1")
    events = (
        [make_event(f"v{i}", "view_shop", "s1") for i in range(8)]
        + [make_event(f"c{i}", "click_offer", "s1") for i in range(2)]
        + [make_event("p", "purchase_product", "s1")]
    )
    store = InMemoryDataStore(shops=[shop], events=events)

    [vec] = FeatureExtractor(store).extract([_shop_candidate(shop)], "u1", None, NOW)
    assert vec["click_through_rate"] == pytest.approx(2 / 8)
    assert vec["conversion_rate"] == pytest.approx(1 / 10)


def test_rates_are_zero_without_events():
    shop = make_shop("s1")
    store = InMemoryDataStore(shops=[shop])
    [vec] = FeatureExtractor(store).extract([_shop_candidate(shop)], "u1", None, NOW)
    assert vec["click_through_rate"] == 0.0
    assert vec["conversion_rate"] == 0.0
    assert vec["popularity"] == 0.0
    assert vec["user_interaction"] == 0.0


def test_shop_price_fit_uses_mean_product_price():
    shop = make_shop("s1")
    products = [make_product("p1", "s1", price=400.0), make_product("p2", "s1", price=600.0)]
    profile = make_profile("u1", price_range=PriceRange(min=0.0, max=1000.0))
    store = InMemoryDataStore(shops=[shop], products=products, profiles=[profile])

    [vec] = FeatureExtractor(store).extract([_shop_candidate(shop)], "u1", None, NOW)
    assert vec["price_fit"] == pytest.approx(1.0)


def test_offer_features():
    shop = make_shop("s1", rating=3.0, location=north_of(ORIGIN, 1.0))
    product = make_product("p1", "s1", price=250.0)
    offer = make_offer(
        "o1", "s1", product_id="p1", discount_type="Fixed Amount",
        discount_value=30.0, max_uses=10, current_uses=4, category="Services",
    )
    profile = make_profile("u1", category_weights={"Services": 6.0})
    store = InMemoryDataStore(shops=[shop], products=[product], offers=[offer], profiles=[profile])

    [vec] = FeatureExtractor(store).extract([_offer_candidate(offer, shop, product)], "u1", ORIGIN, NOW)
    assert set(vec) == set(OFFER_FEATURE_KEYS)
    assert vec["discount_value"] == 30.0
    assert vec["is_percentage"] == 0.0
    assert vec["days_remaining"] == pytest.approx(5.0)
    assert vec["usage_rate"] == pytest.approx(0.4)
    assert vec["rating"] == 3.0
    assert vec["product_price"] == 250.0
    assert vec["price_fit"] == pytest.approx(0.5)
    assert vec["category_affinity"] == pytest.approx(0.6)
    assert vec["distance_km"] == pytest.approx(1.0, rel=1e-3)


def test_unlimited_offer_has_zero_usage_rate():
    shop = make_shop("s1")
    offer = make_offer("o1", "s1", max_uses=0, current_uses=7)
    store = InMemoryDataStore(shops=[shop], offers=[offer])
    [vec] = FeatureExtractor(store).extract([_offer_candidate(offer, shop)], None, None, NOW)
    assert vec["usage_rate"] == 0.0


def test_extract_reads_events_once_per_request():
    shops = [make_shop(f"s{i}") for i in range(5)]
    store = InMemoryDataStore(shops=shops)
    with patch.object(store, "events_frame", wraps=store.events_frame) as spy:
        FeatureExtractor(store).extract([_shop_candidate(s) for s in shops], "u1", None, NOW)
    assert spy.call_count == 1


def test_extract_empty_candidates():
    assert FeatureExtractor(InMemoryDataStore()).extract([], "u1", None, NOW) == []
