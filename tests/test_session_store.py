from pricescout.decoder import decode_analysis
from pricescout.models import MarketComparison, PriceEntryCreate
from pricescout.session_store import ResearchSessionStore

from conftest import SAMPLE_ANALYSIS, fenced


def _comparison(vendor="Croma", product="Laptop", location="Mumbai", low=100.0, high=200.0):
    return MarketComparison(
        product_name=product,
        location=location,
        vendor_name=vendor,
        price_range={"min": low, "max": high},
    )


def test_entries_are_added_newest_first_and_deleted():
    store = ResearchSessionStore()
    first = store.add_entry("s1", PriceEntryCreate(location="Pune", product_name="Chair", price=1500))
    second = store.add_entry("s1", PriceEntryCreate(location="Pune", product_name="Desk", price=7000))
    assert [entry.id for entry in store.snapshot("s1").entries] == [second.id, first.id]

    assert store.delete_entry("s1", first.id) is True
    assert store.delete_entry("s1", first.id) is False
    assert store.clear_entries("s1") == 1
    assert store.snapshot("s1").entries == []


def test_favorites_deduplicate_on_vendor_product_location():
    store = ResearchSessionStore()
    assert store.add_favorite("s1", _comparison()) is True
    assert store.add_favorite("s1", _comparison(low=1.0, high=2.0)) is False
    assert store.add_favorite("s1", _comparison(location="Thane")) is True
    assert len(store.snapshot("s1").favorites) == 2


def test_remove_favorite_by_index():
    store = ResearchSessionStore()
    store.add_favorite("s1", _comparison(vendor="A"))
    store.add_favorite("s1", _comparison(vendor="B"))
    assert store.remove_favorite("s1", 5) is None
    assert store.remove_favorite("s1", 0).vendor_name == "A"
    assert [item.vendor_name for item in store.snapshot("s1").favorites] == ["B"]
    assert store.clear_favorites("s1") == 1


def test_snapshot_is_independent_of_store():
    store = ResearchSessionStore()
    store.add_favorite("s1", _comparison())
    store.set_analysis("s1", decode_analysis(fenced(SAMPLE_ANALYSIS)), "Mumbai")

    snapshot = store.snapshot("s1")
    snapshot.favorites.clear()
    snapshot.analysis.market_comparisons.clear()

    fresh = store.snapshot("s1")
    assert len(fresh.favorites) == 1
    assert len(fresh.analysis.market_comparisons) == 2
    assert fresh.analysis_location == "Mumbai"


def test_sessions_are_isolated():
    store = ResearchSessionStore()
    store.add_favorite("s1", _comparison())
    assert store.snapshot("s2").favorites == []


def test_oldest_sessions_are_pruned():
    store = ResearchSessionStore(max_sessions=2)
    store.add_favorite("a", _comparison())
    store.add_favorite("b", _comparison())
    store.add_favorite("a", _comparison(vendor="Other"))
    store.ensure_session("c")
    assert len(store.snapshot("a").favorites) == 2
    # "b" was the least recently touched and was dropped, so it comes back empty.
    assert store.snapshot("b").favorites == []


def test_reads_and_removals_do_not_create_sessions():
    store = ResearchSessionStore(max_sessions=1)
    store.add_favorite("a", _comparison())
    for session_id in ("x", "y", "z"):
        assert store.snapshot(session_id).favorites == []
        assert store.delete_entry(session_id, "missing") is False
        assert store.remove_favorite(session_id, 0) is None
        assert store.clear_entries(session_id) == 0
        assert store.clear_favorites(session_id) == 0
    assert store.find_session("x") is None
    assert len(store.snapshot("a").favorites) == 1
