from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from starsync.store import SQLiteRecordStore, build_match_expression
from starsync.store.sqlite_store import format_timestamp


def test_upsert_is_idempotent(record_store, item_factory) -> None:
    item = item_factory(1)
    first = record_store.upsert(item)
    second = record_store.upsert(item)

    assert record_store.count() == 1
    assert first.row_id == second.row_id
    assert second.to_item() == item
    assert second.first_synced_at == first.first_synced_at
    assert second.last_synced_at > first.last_synced_at


def test_upsert_overwrites_fields_in_place(record_store, item_factory) -> None:
    record_store.upsert(item_factory(7, name="oldname", description="legacy parser"))
    updated = record_store.upsert(item_factory(7, name="freshname", description="modern parser", stars=99))

    assert record_store.count() == 1
    assert updated.name == "freshname"
    assert updated.stars == 99
    assert record_store.search("oldname", 10) == []
    assert [r.record.item_id for r in record_store.search("freshname", 10)] == ["7"]
    assert [r.record.item_id for r in record_store.search("parser", 10)] == ["7"]


def test_search_reads_its_own_writes(record_store, item_factory) -> None:
    record_store.upsert(item_factory("abc", name="effervescent"))
    results = record_store.search("effervescent", 5)
    assert len(results) == 1
    assert results[0].record.item_id == "abc"
    assert results[0].rank > 0


def test_name_match_outranks_description_match(record_store, item_factory) -> None:
    record_store.upsert(item_factory("desc", name="toolkit", description="helpers for the effect system"))
    record_store.upsert(item_factory("name", name="effect", description="a small library"))

    results = record_store.search("effect", 10)

    assert [r.record.item_id for r in results] == ["name", "desc"]
    assert results[0].rank > results[1].rank


def test_prefix_matching_finds_longer_words(record_store, item_factory) -> None:
    record_store.upsert(item_factory(1, name="effector", description="state manager"))
    assert [r.record.item_id for r in record_store.search("eff", 10)] == ["1"]


def test_prefix_matching_can_be_disabled(sqlite_manager, store_path, item_factory) -> None:
    store = SQLiteRecordStore(sqlite_manager, store_path, prefix_match=False)
    store.upsert(item_factory(1, name="effector"))
    assert store.search("eff", 10) == []
    assert len(store.search("effector", 10)) == 1


def test_all_terms_must_match(record_store, item_factory) -> None:
    record_store.upsert(item_factory(1, name="fast json", description="parser"))
    record_store.upsert(item_factory(2, name="fast yaml", description="parser"))
    assert [r.record.item_id for r in record_store.search("fast json", 10)] == ["1"]


def test_owner_is_searchable(record_store, item_factory) -> None:
    record_store.upsert(item_factory(1, owner="pallets"))
    assert [r.record.item_id for r in record_store.search("pallets", 10)] == ["1"]


def test_diacritics_are_folded(record_store, item_factory) -> None:
    record_store.upsert(item_factory(1, name="café-toolkit"))
    assert [r.record.item_id for r in record_store.search("cafe", 10)] == ["1"]


def test_equal_rank_prefers_most_recently_synced(record_store, item_factory) -> None:
    record_store.upsert(item_factory("older", name="twin", description="same words"))
    record_store.upsert(item_factory("newer", name="twin", description="same words"))

    results = record_store.search("twin", 10)

    assert [r.record.item_id for r in results] == ["newer", "older"]
    assert results[0].rank == results[1].rank


def test_equal_rank_and_sync_time_orders_by_item_id(sqlite_manager, store_path, item_factory) -> None:
    fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
    store = SQLiteRecordStore(sqlite_manager, store_path, clock=lambda: fixed)
    for item_id in ("b", "c", "a"):
        store.upsert(item_factory(item_id, name="twin", description="same words"))

    assert [r.record.item_id for r in store.search("twin", 10)] == ["a", "b", "c"]


def test_search_is_deterministic(record_store, item_factory) -> None:
    for index in range(12):
        record_store.upsert(item_factory(index, name=f"widget {index}", description="widget widget" * (index % 3)))
    first = [(r.record.item_id, r.rank) for r in record_store.search("widget", 50)]
    second = [(r.record.item_id, r.rank) for r in record_store.search("widget", 50)]
    assert first == second
    assert len(first) == 12


def test_search_respects_limit(record_store, item_factory) -> None:
    for index in range(5):
        record_store.upsert(item_factory(index, name="common"))
    assert len(record_store.search("common", 3)) == 3
    assert record_store.search("common", 0) == []


@pytest.mark.parametrize(
    "query",
    ['c++ "quoted', "NOT AND OR", "name:effect", "(unbalanced", "star*", "-minus ^caret"],
)
def test_operator_characters_are_plain_text(record_store, item_factory, query) -> None:
    record_store.upsert(item_factory(1, name="effect"))
    record_store.search(query, 10)


def test_punctuation_only_query_matches_nothing(record_store, item_factory) -> None:
    record_store.upsert(item_factory(1))
    assert record_store.search("!!!", 10) == []


def test_clear_empties_records_and_index(record_store, item_factory) -> None:
    record_store.upsert(item_factory(1, name="gone"))
    record_store.clear()
    assert record_store.count() == 0
    assert record_store.search("gone", 10) == []
    assert record_store.get("1") is None


def test_build_match_expression() -> None:
    assert build_match_expression("foo-bar") == '"foo"* "bar"*'
    assert build_match_expression("  Foo  ", prefix=False) == '"Foo"'
    assert build_match_expression("'; DROP TABLE records; --") == '"DROP"* "TABLE"* "records"*'
    assert build_match_expression("...") is None


def test_format_timestamp_normalises_to_utc() -> None:
    naive = datetime(2024, 5, 1, 8, 30)
    assert format_timestamp(naive) == "2024-05-01T08:30:00.000000+00:00"


def test_concurrent_upserts_of_one_id_never_mix_versions(record_store, item_factory) -> None:
    versions = [
        item_factory(
            42,
            name=f"variant{n:02d}",
            description=f"release{n:02d} notes",
            owner=f"owner{n:02d}",
            stars=n,
        )
        for n in range(16)
    ]
    barrier = threading.Barrier(len(versions))

    def apply(item):
        barrier.wait()
        return record_store.upsert(item)

    with ThreadPoolExecutor(max_workers=len(versions)) as executor:
        returned = list(executor.map(apply, versions))

    assert record_store.count() == 1
    assert len({record.row_id for record in returned}) == 1
    stored = record_store.get("42")
    matching = [item for item in versions if item == stored.to_item()]
    assert len(matching) == 1
    winner = matching[0]
    assert stored.stars == winner.stars

    conn = record_store.manager.connect(record_store.db_path)
    fts_rows = conn.execute(
        "SELECT name, description, owner FROM records_fts WHERE rowid = ?", (stored.row_id,)
    ).fetchall()
    assert [tuple(row) for row in fts_rows] == [(winner.name, winner.description, winner.owner)]
    assert conn.execute("SELECT COUNT(*) FROM records_fts").fetchone()[0] == 1
    for item in versions:
        hits = record_store.search(item.name, 5)
        assert len(hits) == (1 if item is winner else 0)
