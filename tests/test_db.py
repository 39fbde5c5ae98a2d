"""Tests for homebase.data.db — KeyValueStore and EntityStore (SQLite storage)."""

import json

import pytest

from homebase.core.errors import StorageError
from homebase.data.db import EntityStore, KeyValueStore
from homebase.data.models import Collection


class TestKeyValueStore:
    def test_missing_key_is_none(self, kv_store):
        assert kv_store.get_item("appliances") is None

    def test_set_and_get(self, kv_store):
        kv_store.set_item("appliances", "[]")
        assert kv_store.get_item("appliances") == "[]"

    def test_set_overwrites(self, kv_store):
        kv_store.set_item("api_status", "a")
        kv_store.set_item("api_status", "b")
        assert kv_store.get_item("api_status") == "b"

    def test_remove(self, kv_store):
        kv_store.set_item("api_status", "a")
        kv_store.remove_item("api_status")
        assert kv_store.get_item("api_status") is None

    def test_remove_missing_is_noop(self, kv_store):
        kv_store.remove_item("nothing")

    def test_keys_are_namespaced(self, kv_store):
        assert kv_store.key_for("appliances") == "homebase_appliances"
        assert kv_store.key_for("api_status") == "homebase_api_status"

    def test_namespaces_are_isolated(self, tmp_path):
        path = str(tmp_path / "shared.db")
        first = KeyValueStore(db_path=path, namespace="one")
        second = KeyValueStore(db_path=path, namespace="two")
        first.set_item("appliances", "[1]")
        assert second.get_item("appliances") is None

    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "homebase.db")
        KeyValueStore(db_path=path, namespace="homebase").set_item("contacts", "[]")
        assert KeyValueStore(db_path=path, namespace="homebase").get_item("contacts") == "[]"

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "homebase.db"
        KeyValueStore(db_path=str(path), namespace="homebase")
        assert path.exists()

    def test_unopenable_path_raises_storage_error(self, tmp_path):
        # A directory where the database file should be
        path = tmp_path / "is-a-dir"
        path.mkdir()
        with pytest.raises(StorageError):
            KeyValueStore(db_path=str(path), namespace="homebase")


class TestEntityStoreCreateAndList:
    def test_empty_collection(self, entity_store):
        assert entity_store.list(Collection.APPLIANCES) == []

    def test_create_assigns_id_and_timestamp(self, entity_store):
        record = entity_store.create(Collection.CONTACTS, {"contactName": "Anna"})
        assert record["id"]
        assert record["createdAt"].endswith("Z")
        assert record["contactName"] == "Anna"
        assert "updatedAt" not in record

    def test_appliances_get_updated_at(self, entity_store):
        record = entity_store.create(Collection.APPLIANCES, {"name": "Fridge"})
        assert record["updatedAt"] == record["createdAt"]

    def test_ids_are_unique(self, entity_store):
        a = entity_store.create(Collection.CONTACTS, {"contactName": "A"})
        b = entity_store.create(Collection.CONTACTS, {"contactName": "B"})
        assert a["id"] != b["id"]

    def test_list_in_insertion_order(self, entity_store):
        entity_store.create(Collection.CONTACTS, {"contactName": "A"})
        entity_store.create(Collection.CONTACTS, {"contactName": "B"})
        names = [r["contactName"] for r in entity_store.list(Collection.CONTACTS)]
        assert names == ["A", "B"]

    def test_collections_are_separate(self, entity_store):
        entity_store.create(Collection.CONTACTS, {"contactName": "A"})
        assert entity_store.list(Collection.MAINTENANCE) == []

    def test_stored_under_namespaced_key(self, entity_store, kv_store):
        entity_store.create(Collection.MAINTENANCE, {"taskName": "Descale"})
        stored = json.loads(kv_store.get_item("maintenance"))
        assert stored[0]["taskName"] == "Descale"

    def test_survives_new_store_instance(self, entity_store, kv_store):
        created = entity_store.create(Collection.APPLIANCES, {"name": "Fridge"})
        assert EntityStore(kv_store).get(Collection.APPLIANCES, created["id"]) == created


class TestEntityStoreGetAndUpdate:
    def test_get_missing(self, entity_store):
        assert entity_store.get(Collection.APPLIANCES, "nope") is None

    def test_update_merges(self, entity_store):
        created = entity_store.create(Collection.CONTACTS, {"contactName": "A", "phone": "1"})
        updated = entity_store.update(Collection.CONTACTS, created["id"], {"phone": "2"})
        assert updated["phone"] == "2"
        assert updated["contactName"] == "A"
        assert entity_store.get(Collection.CONTACTS, created["id"])["phone"] == "2"

    def test_update_cannot_change_id(self, entity_store):
        created = entity_store.create(Collection.CONTACTS, {"contactName": "A"})
        updated = entity_store.update(Collection.CONTACTS, created["id"], {"id": "other"})
        assert updated["id"] == created["id"]

    def test_update_missing_returns_none(self, entity_store):
        assert entity_store.update(Collection.CONTACTS, "nope", {"phone": "2"}) is None

    def test_update_refreshes_appliance_updated_at(self, entity_store, kv_store):
        created = entity_store.create(Collection.APPLIANCES, {"name": "Fridge"})
        records = json.loads(kv_store.get_item("appliances"))
        records[0]["updatedAt"] = "2000-01-01T00:00:00.000Z"
        kv_store.set_item("appliances", json.dumps(records))

        updated = entity_store.update(Collection.APPLIANCES, created["id"], {"name": "Freezer"})
        assert updated["updatedAt"] != "2000-01-01T00:00:00.000Z"


class TestEntityStoreDelete:
    def test_delete(self, entity_store):
        created = entity_store.create(Collection.CONTACTS, {"contactName": "A"})
        assert entity_store.delete(Collection.CONTACTS, created["id"]) is True
        assert entity_store.list(Collection.CONTACTS) == []

    def test_delete_missing(self, entity_store):
        assert entity_store.delete(Collection.CONTACTS, "nope") is False

    def test_delete_appliance_cascades(self, entity_store):
        fridge = entity_store.create(Collection.APPLIANCES, {"name": "Fridge"})
        oven = entity_store.create(Collection.APPLIANCES, {"name": "Oven"})
        entity_store.create(Collection.MAINTENANCE, {"applianceId": fridge["id"], "taskName": "Defrost"})
        entity_store.create(Collection.MAINTENANCE, {"applianceId": oven["id"], "taskName": "Clean"})
        entity_store.create(Collection.CONTACTS, {"applianceId": fridge["id"], "contactName": "A"})

        assert entity_store.delete(Collection.APPLIANCES, fridge["id"]) is True

        assert [a["name"] for a in entity_store.list(Collection.APPLIANCES)] == ["Oven"]
        tasks = entity_store.list(Collection.MAINTENANCE)
        assert [t["taskName"] for t in tasks] == ["Clean"]
        assert entity_store.list(Collection.CONTACTS) == []

    def test_delete_missing_appliance_keeps_children(self, entity_store):
        entity_store.create(Collection.CONTACTS, {"applianceId": "ghost", "contactName": "A"})
        assert entity_store.delete_appliance("ghost") is False
        assert len(entity_store.list(Collection.CONTACTS)) == 1


class TestEntityStoreCorruption:
    def test_invalid_json_raises(self, entity_store, kv_store):
        kv_store.set_item("appliances", "{broken")
        with pytest.raises(StorageError):
            entity_store.list(Collection.APPLIANCES)

    def test_non_list_raises(self, entity_store, kv_store):
        kv_store.set_item("contacts", json.dumps({"id": "1"}))
        with pytest.raises(StorageError):
            entity_store.list(Collection.CONTACTS)

    def test_create_on_corrupt_collection_raises(self, entity_store, kv_store):
        kv_store.set_item("contacts", "nope")
        with pytest.raises(StorageError):
            entity_store.create(Collection.CONTACTS, {"contactName": "A"})
