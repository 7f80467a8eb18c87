from pathlib import Path

from shoprank.catalog.data_store import get_store, reload_store
from shoprank.data_ingestion.config import IngestionConfig
from shoprank.data_ingestion.ingest import load_seed

SHOPS_CSV = """id,name,category,rating,review_count,latitude,longitude,is_live,is_active,verification_status,created_at
s1,Corner Deli,Food & Dining,4.5,120,12.97,77.59,true,true,approved,2026-01-01T09:00:00Z
s2,Spare Parts,Automotive,,,,,false,true,pending,2026-02-01T09:00:00Z
"""

OFFERS_CSV = """id,shop_id,product_id,title,category,discount_type,discount_value,start_date,end_date,status
o1,s1,p1,Lunch deal,Food & Dining,Percentage,15,2026-03-01,2026-04-01,active
"""

INTERACTIONS_CSV = """id,user_id,behavior_type,target_id,target_type,score,time_of_day,day_of_week,latitude,longitude,created_at
e1,u1,view_shop,s1,shop,1,14,2,12.97,77.59,2026-03-10T14:00:00Z
e2,u1,click_offer,o1,offer,2,,,,,2026-03-11T08:30:00Z
"""

PROFILES_CSV = """user_id,category_weights,price_min,price_max,max_distance_km,embedding
u1,"{""Food & Dining"": 3.5}",10,200,5,"[0.1, 0.2, 0.3]"
u2,not-json,,,,
"""


def _write_seed(root: Path) -> IngestionConfig:
    root.mkdir(parents=True, exist_ok=True)
    (root / "shops.csv").write_text(SHOPS_CSV)
    (root / "offers.csv").write_text(OFFERS_CSV)
    (root / "interactions.csv").write_text(INTERACTIONS_CSV)
    (root / "profiles.csv").write_text(PROFILES_CSV)
    return IngestionConfig(data_dir=root)


def test_load_seed_parses_every_table(tmp_path: Path):
    tables = load_seed(_write_seed(tmp_path))

    assert [s.id for s in tables.shops] == ["s1", "s2"]
    deli, parts = tables.shops
    assert deli.rating == 4.5
    assert deli.location.latitude == 12.97
    assert deli.created_at.tzinfo is not None
    assert parts.location is None
    assert parts.is_live is False
    assert parts.rating == 0.0
    assert parts.verification_status == "pending"

    [offer] = tables.offers
    assert offer.discount_value == 15.0
    assert offer.product_id == "p1"

    first, second = tables.interactions
    assert first.location is not None
    assert first.time_of_day == 14
    assert second.location is None
    assert second.time_of_day is None


def test_load_seed_profiles(tmp_path: Path):
    tables = load_seed(_write_seed(tmp_path))
    good, bad = tables.profiles
    assert good.category_weights == {"Food & Dining": 3.5}
    assert (good.price_range.min, good.price_range.max) == (10.0, 200.0)
    assert good.max_distance_km == 5.0
    assert good.embedding == [0.1, 0.2, 0.3]
    # malformed JSON falls back to defaults
    assert bad.category_weights == {}
    assert bad.embedding is None
    assert bad.max_distance_km == 10.0


def test_missing_files_give_empty_tables(tmp_path: Path):
    tables = load_seed(IngestionConfig(data_dir=tmp_path / "nothing-here"))
    assert tables.shops == []
    assert tables.products == []
    assert tables.offers == []
    assert tables.interactions == []
    assert tables.profiles == []


def test_reload_store_installs_seed_data(tmp_path: Path):
    store = reload_store(_write_seed(tmp_path))
    assert get_store() is store
    assert store.get_shop("s1").name == "Corner Deli"
    assert store.count_events() == 2
    assert store.get_profile("u1") is not None
