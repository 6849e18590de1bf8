from __future__ import annotations

import pytest

from pantry.errors import (
    ConcurrentUpdateError,
    DocumentNotFoundError,
    IndexUnavailableError,
    StoreError,
)
from pantry.schema import PURCHASE_AGGREGATES, PURCHASE_HISTORY


def _doc(**kw):
    doc = {"branch": "Cochin", "description": "Salt", "descriptionNorm": "salt", "totalStock": 1}
    doc.update(kw)
    return doc


def test_insert_get_and_find(store):
    doc_id = store.insert(PURCHASE_AGGREGATES, _doc())
    doc = store.get(PURCHASE_AGGREGATES, doc_id)

    assert doc["id"] == doc_id
    assert doc["version"] == 0
    assert doc["date"]
    assert store.find(PURCHASE_AGGREGATES, {"branch": "Cochin", "descriptionNorm": "salt"}) == [doc]
    assert store.find(PURCHASE_AGGREGATES, {"branch": "Whitefield"}) == []


def test_find_orders_newest_first(store):
    a = store.insert(PURCHASE_AGGREGATES, _doc(date="2026-01-01T00:00:00+00:00"))
    b = store.insert(PURCHASE_AGGREGATES, _doc(date="2026-05-01T00:00:00+00:00"))
    c = store.insert(PURCHASE_AGGREGATES, _doc(date="2026-03-01T00:00:00+00:00"))
    assert [d["id"] for d in store.find(PURCHASE_AGGREGATES, {"branch": "Cochin"})] == [b, c, a]


def test_update_merges_fields_and_bumps_version(store):
    doc_id = store.insert(PURCHASE_AGGREGATES, _doc())
    assert store.update(PURCHASE_AGGREGATES, doc_id, {"totalStock": 5}, expected_version=0) == 1

    doc = store.get(PURCHASE_AGGREGATES, doc_id)
    assert doc["totalStock"] == 5
    assert doc["description"] == "Salt"
    assert doc["version"] == 1


def test_stale_version_is_rejected(store):
    doc_id = store.insert(PURCHASE_AGGREGATES, _doc())
    seen = store.get(PURCHASE_AGGREGATES, doc_id)

    store.update(PURCHASE_AGGREGATES, doc_id, {"totalStock": 2}, expected_version=seen["version"])
    with pytest.raises(ConcurrentUpdateError):
        store.update(PURCHASE_AGGREGATES, doc_id, {"totalStock": 3}, expected_version=seen["version"])

    assert store.get(PURCHASE_AGGREGATES, doc_id)["totalStock"] == 2


def test_filter_on_unindexed_field(store):
    with pytest.raises(IndexUnavailableError) as exc:
        store.find(PURCHASE_AGGREGATES, {"vendor": "X"})
    assert exc.value.field == "vendor"
    assert isinstance(exc.value, StoreError)


def test_missing_documents(store):
    with pytest.raises(DocumentNotFoundError):
        store.get(PURCHASE_AGGREGATES, 42)
    with pytest.raises(DocumentNotFoundError):
        store.delete(PURCHASE_AGGREGATES, 42)
    with pytest.raises(DocumentNotFoundError):
        store.update(PURCHASE_AGGREGATES, 42, {"qty": 1})


def test_unknown_collection(store):
    with pytest.raises(StoreError, match="Unknown collection"):
        store.find("StockEntries")


def test_transaction_rolls_back_on_error(store):
    keep = store.insert(PURCHASE_AGGREGATES, _doc())
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert(PURCHASE_HISTORY, _doc(action="purchase"))
            store.delete(PURCHASE_AGGREGATES, keep)
            raise RuntimeError("boom")

    assert store.count(PURCHASE_HISTORY) == 0
    assert store.get(PURCHASE_AGGREGATES, keep)["id"] == keep


def test_nested_transactions_commit_once(store):
    with store.transaction():
        store.insert(PURCHASE_AGGREGATES, _doc())
        with store.transaction():
            store.insert(PURCHASE_HISTORY, _doc())
    assert store.count(PURCHASE_AGGREGATES) == 1
    assert store.count(PURCHASE_HISTORY) == 1


def test_sqlite_errors_become_store_errors(store):
    store.conn.close()
    with pytest.raises(StoreError):
        store.find(PURCHASE_AGGREGATES)


def test_find_limit_keeps_newest(store):
    for month in range(1, 6):
        store.insert(PURCHASE_HISTORY, _doc(date=f"2026-0{month}-01T00:00:00+00:00"))
    found = store.find(PURCHASE_HISTORY, {"branch": "Cochin"}, limit=2)
    assert [d["date"][:7] for d in found] == ["2026-05", "2026-04"]
    assert len(store.find(PURCHASE_HISTORY, {"branch": "Cochin"})) == 5
