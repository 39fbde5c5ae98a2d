"""
HomeBase Gear Guard — Local Fallback Store.

When the remote API is unreachable, records live here instead. Each
collection is one namespaced durable key holding a JSON array of records,
kept in a small SQLite key-value table so it survives restarts.

Every operation is synchronous and rewrites the whole collection: the store
has exactly one writer (the local user).
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from homebase.core.errors import StorageError
from homebase.data.models import Collection

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class KeyValueStore:
    """SQLite-backed durable string storage under namespaced keys."""

    def __init__(self, db_path: str | None = None, namespace: str | None = None) -> None:
        if db_path is None or namespace is None:
            from homebase.config import settings
            db_path = db_path or settings.LOCAL_STORE_PATH
            namespace = namespace or settings.STORAGE_NAMESPACE

        self._db_path = db_path
        self._namespace = namespace
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._db_path)

    def _init_db(self) -> None:
        """Create the key-value table if it doesn't exist."""
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key   TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open local store at {self._db_path}: {exc}") from exc
        logger.debug("Key-value table initialized at %s", self._db_path)

    def key_for(self, name: str) -> str:
        """Namespaced key, e.g. 'appliances' -> 'homebase_appliances'."""
        return f"{self._namespace}_{name}"

    def get_item(self, name: str) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (self.key_for(name),)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot read '{name}' from local store: {exc}") from exc
        return None if row is None else row[0]

    def set_item(self, name: str, value: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (self.key_for(name), value),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot write '{name}' to local store: {exc}") from exc

    def remove_item(self, name: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (self.key_for(name),))
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot remove '{name}' from local store: {exc}") from exc


class EntityStore:
    """Per-collection CRUD over JSON records kept in a KeyValueStore."""

    def __init__(self, kv: KeyValueStore | None = None) -> None:
        self._kv = kv or KeyValueStore()

    def _load(self, collection: Collection) -> list[Record]:
        raw = self._kv.get_item(collection.value)
        if raw is None:
            return []
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageError(f"Local '{collection.value}' data is corrupt: {exc}") from exc
        if not isinstance(records, list):
            raise StorageError(f"Local '{collection.value}' data is not a list")
        return records

    def _save(self, collection: Collection, records: list[Record]) -> None:
        self._kv.set_item(collection.value, json.dumps(records))

    def list(self, collection: Collection) -> list[Record]:
        """Return every record in the collection, in insertion order."""
        return self._load(collection)

    def get(self, collection: Collection, record_id: str) -> Record | None:
        for record in self._load(collection):
            if record.get("id") == record_id:
                return record
        return None

    def create(self, collection: Collection, record: Record) -> Record:
        """Append a record with a fresh id and creation timestamp."""
        records = self._load(collection)
        now = _now_iso()
        new_record = {**record, "id": str(uuid.uuid4()), "createdAt": now}
        if collection is Collection.APPLIANCES:
            new_record["updatedAt"] = now
        records.append(new_record)
        self._save(collection, records)
        logger.info("Local %s record created: %s", collection.value, new_record["id"])
        return new_record

    def update(self, collection: Collection, record_id: str, patch: Record) -> Record | None:
        """Merge patch into the record. Returns None if the id is unknown."""
        records = self._load(collection)
        for index, record in enumerate(records):
            if record.get("id") != record_id:
                continue
            updated = {**record, **patch, "id": record_id}
            if collection is Collection.APPLIANCES:
                updated["updatedAt"] = _now_iso()
            records[index] = updated
            self._save(collection, records)
            logger.info("Local %s record updated: %s", collection.value, record_id)
            return updated
        return None

    def delete(self, collection: Collection, record_id: str) -> bool:
        """Remove a record. Returns False if the id is unknown."""
        if collection is Collection.APPLIANCES:
            return self.delete_appliance(record_id)

        records = self._load(collection)
        remaining = [r for r in records if r.get("id") != record_id]
        if len(remaining) == len(records):
            return False
        self._save(collection, remaining)
        logger.info("Local %s record deleted: %s", collection.value, record_id)
        return True

    def delete_appliance(self, appliance_id: str) -> bool:
        """Delete an appliance and every task and contact that references it.

        Children are removed first so no orphan survives an acknowledged
        parent deletion.
        """
        appliances = self._load(Collection.APPLIANCES)
        remaining = [a for a in appliances if a.get("id") != appliance_id]
        if len(remaining) == len(appliances):
            return False

        for child in (Collection.MAINTENANCE, Collection.CONTACTS):
            children = self._load(child)
            kept = [c for c in children if c.get("applianceId") != appliance_id]
            if len(kept) != len(children):
                self._save(child, kept)
                logger.info(
                    "Local cascade: removed %d %s record(s) of appliance %s",
                    len(children) - len(kept), child.value, appliance_id,
                )

        self._save(Collection.APPLIANCES, remaining)
        logger.info("Local appliances record deleted: %s", appliance_id)
        return True
