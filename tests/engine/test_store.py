from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from pymongo.errors import DuplicateKeyError

from hyperlocal.config import GlobalConfig
from hyperlocal.engine.store import MongoStore, SQLiteStore, build_store


def _artifact(artifact_id: str, slug: str, **extra) -> dict:
    record = {
        "id": artifact_id,
        "slug": slug,
        "job": "daily-brief",
        "entity_id": "sodermalm",
        "period_key": "2026-02-21",
        "headline": "Headline",
        "body": "Body",
        "metadata": {"sources": ["grounded"], "count": 2},
        "status": "published",
        "created_at": "2026-02-21T05:00:00+00:00",
    }
    record.update(extra)
    return record


def test_insert_if_absent_is_idempotent_on_slug(store: SQLiteStore) -> None:
    assert store.insert_if_absent("artifacts", _artifact("a1", "sodermalm-brief"), "slug") is True
    assert store.insert_if_absent("artifacts", _artifact("a2", "sodermalm-brief"), "slug") is False
    assert [row["id"] for row in store.query("artifacts")] == ["a1"]


def test_query_filters_order_and_limit(store: SQLiteStore) -> None:
    store.insert_if_absent("artifacts", _artifact("a1", "s1", created_at="2026-02-21T05:00:00+00:00"), "id")
    store.insert_if_absent("artifacts", _artifact("a2", "s2", created_at="2026-02-22T05:00:00+00:00"), "id")
    store.insert_if_absent(
        "artifacts", _artifact("a3", "s3", status="draft", created_at="2026-02-23T05:00:00+00:00"), "id"
    )

    published = store.query("artifacts", {"status": "published"}, order_by="-created_at")
    assert [row["id"] for row in published] == ["a2", "a1"]
    recent = store.query("artifacts", {"created_at__gte": "2026-02-22"}, order_by="created_at", limit=1)
    assert [row["id"] for row in recent] == ["a2"]
    assert [row["id"] for row in store.query("artifacts", {"id__in": ["a1", "a3"]}, order_by="id")] == ["a1", "a3"]
    assert store.query("artifacts", {"id__in": []}) == []
    assert len(store.query("artifacts", {"scheduled_for": None})) == 3


def test_json_and_bool_columns_round_trip(seeded_store: SQLiteStore) -> None:
    seeded_store.insert_if_absent("artifacts", _artifact("a1", "s1"), "id")
    assert seeded_store.get("artifacts", "a1")["metadata"] == {"sources": ["grounded"], "count": 2}
    assert seeded_store.get("entities", "sodermalm")["active"] is True


def test_update_patch(store: SQLiteStore) -> None:
    store.insert_if_absent("artifacts", _artifact("a1", "s1"), "id")
    assert store.update("artifacts", "a1", {"status": "archived"}) is True
    assert store.get("artifacts", "a1")["status"] == "archived"
    assert store.update("artifacts", "missing", {"status": "archived"}) is False


def test_update_with_guard(store: SQLiteStore) -> None:
    store.insert_if_absent("artifacts", _artifact("a1", "s1", status="scheduled"), "id")
    assert store.update("artifacts", "a1", {"status": "published"}, where={"status": "pending"}) is False
    assert store.get("artifacts", "a1")["status"] == "scheduled"
    assert store.update("artifacts", "a1", {"status": "published"}, where={"status": "scheduled"}) is True
    assert store.get("artifacts", "a1")["status"] == "published"
    with pytest.raises(ValueError):
        store.update("artifacts", "a1", {"status": "archived"}, where={"nope": 1})


def test_rejects_unknown_tables_columns_and_operators(store: SQLiteStore) -> None:
    with pytest.raises(ValueError):
        store.query("users")
    with pytest.raises(ValueError):
        store.query("artifacts", {"nope": 1})
    with pytest.raises(ValueError):
        store.query("artifacts", {"status__like": "pub%"})
    with pytest.raises(ValueError):
        store.insert_if_absent("artifacts", _artifact("a1", "s1"), "headline")
    with pytest.raises(ValueError):
        store.insert_if_absent("artifacts", _artifact("", "s1"), "id")


def test_build_store_resolves_relative_sqlite_path(tmp_path) -> None:
    config = GlobalConfig(storage={"backend": "sqlite", "sqlite_path": "data/test.db"})
    backend = build_store(config, project_root=tmp_path)
    try:
        assert isinstance(backend, SQLiteStore)
        assert backend.path == (tmp_path / "data" / "test.db").resolve()
    finally:
        backend.close()


def test_mongo_store_maps_ids_and_duplicates() -> None:
    client = MagicMock()
    collection = client.__getitem__.return_value.__getitem__.return_value
    store = MongoStore(client=client, database="hyperlocal")

    assert store.insert_if_absent("artifacts", _artifact("a1", "s1"), "slug") is True
    document = collection.insert_one.call_args.args[0]
    assert document["_id"] == "a1" and "id" not in document

    collection.insert_one.side_effect = DuplicateKeyError("duplicate slug")
    assert store.insert_if_absent("artifacts", _artifact("a2", "s1"), "slug") is False


def test_mongo_store_translates_filters() -> None:
    client = MagicMock()
    collection = client.__getitem__.return_value.__getitem__.return_value
    collection.find.return_value.sort.return_value.limit.return_value = [{"_id": "a1", "status": "scheduled"}]
    store = MongoStore(client=client)

    rows = store.query(
        "artifacts",
        {"status": "scheduled", "scheduled_for__lte": "2026-02-21", "id__in": ("a1",)},
        order_by="-scheduled_for",
        limit=5,
    )

    assert rows == [{"id": "a1", "status": "scheduled"}]
    collection.find.assert_called_once_with(
        {"status": "scheduled", "scheduled_for": {"$lte": "2026-02-21"}, "_id": {"$in": ["a1"]}}
    )
    store.close()
    client.close.assert_not_called()


def test_mongo_store_guarded_update() -> None:
    client = MagicMock()
    collection = client.__getitem__.return_value.__getitem__.return_value
    collection.update_one.return_value.matched_count = 0
    store = MongoStore(client=client)

    assert store.update("artifacts", "a1", {"status": "published"}, where={"status": "scheduled"}) is False
    collection.update_one.assert_called_once_with(
        {"status": "scheduled", "_id": "a1"}, {"$set": {"status": "published"}}
    )
