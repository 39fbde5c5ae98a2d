"""
HomeBase Gear Guard — Fallback Orchestrator.

Every CRUD call picks a tier per call:

1. Ask the AvailabilityTracker. A recent remote failure means PREFER_LOCAL,
   anything else (including "unknown") means PREFER_REMOTE.
2. PREFER_REMOTE: call the gateway. Success -> record_success() and return.
   Failure -> classify, record_failure(), and fall through to the local
   store so user data is never dropped. A 404 is the exception: the remote
   answered, so it is surfaced as NotFoundError instead.
3. PREFER_LOCAL: run the same operation against the EntityStore.

Tracker state is always updated after the gateway call settles and before
the orchestrator returns. Local writes made while degraded are not replayed
to the remote when it recovers.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from homebase.core.availability import AvailabilityTracker
from homebase.core.errors import (
    FieldError,
    NotFoundError,
    PersistenceError,
    StorageError,
    ValidationError,
    classify_remote_error,
)
from homebase.core.status import (
    MAX_HORIZON_DAYS,
    appliance_stats,
    horizon_end,
    parse_date,
    warranty_status,
)
from homebase.core.validation import (
    apply_derived,
    needs_current,
    validate_create,
    validate_update,
)
from homebase.data.db import EntityStore, KeyValueStore
from homebase.data.models import (
    Appliance,
    ApplianceStats,
    Collection,
    Contact,
    MaintenanceTask,
    UpcomingTask,
    WarrantyStatus,
)
from homebase.ports.remote_port import RemoteError, RemoteGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_MISSING = object()


class Mode(str, Enum):
    PREFER_REMOTE = "prefer_remote"
    PREFER_LOCAL = "prefer_local"


class FallbackOrchestrator:
    """Runs one logical operation against the remote API or the local store."""

    def __init__(
        self,
        gateway: RemoteGateway,
        store: EntityStore,
        tracker: AvailabilityTracker,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.tracker = tracker

    def initial_mode(self) -> Mode:
        if self.tracker.should_prefer_local():
            return Mode.PREFER_LOCAL
        return Mode.PREFER_REMOTE

    def is_fallback_mode(self) -> bool:
        return self.tracker.should_prefer_local()

    async def run(
        self,
        operation: str,
        remote: Callable[[], Awaitable[T]],
        local: Callable[[], T],
        *,
        collection: Collection,
        record_id: str = "",
        read_default: Any = _MISSING,
    ) -> T:
        """Execute remote-first with local fallback.

        Args:
            operation: Label for logs, e.g. "create".
            remote: Coroutine factory performing the gateway call(s).
            local: Same operation against the EntityStore.
            collection: Collection the operation targets.
            record_id: Target record, for single-record operations.
            read_default: For reads that must never fail: returned when the
                local store is also unusable. Operations without one surface
                a remote 404 as NotFoundError instead of falling back.
        """
        if self.initial_mode() is Mode.PREFER_REMOTE:
            try:
                result = await remote()
            except (ValidationError, NotFoundError):
                raise
            except RemoteError as exc:
                error = classify_remote_error(exc, collection.value, record_id)
                if isinstance(error, NotFoundError) and read_default is _MISSING:
                    self.tracker.record_success()
                    raise error from exc
                self.tracker.record_failure()
                logger.warning(
                    "%s %s: remote failed (%s), using local store",
                    operation, collection.value, type(error).__name__,
                )
            except Exception as exc:
                self.tracker.record_failure()
                logger.warning(
                    "%s %s: unexpected remote error (%s), using local store",
                    operation, collection.value, exc,
                )
            else:
                self.tracker.record_success()
                return result

        try:
            return local()
        except StorageError as exc:
            if read_default is not _MISSING:
                logger.error(
                    "%s %s: local store unusable, returning empty result: %s",
                    operation, collection.value, exc,
                )
                return read_default
            logger.error("%s %s failed on both tiers: %s", operation, collection.value, exc)
            raise PersistenceError(
                f"Could not {operation} {collection.value}: remote and local storage both failed"
            ) from exc


class EntityRepository(Generic[R]):
    """list/get/create/update/delete for one collection, tier-transparent."""

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        collection: Collection,
        record_type: type[R],
    ) -> None:
        self._orc = orchestrator
        self._collection = collection
        self._record_type = record_type

    @property
    def _gateway(self) -> RemoteGateway:
        return self._orc.gateway

    @property
    def _store(self) -> EntityStore:
        return self._orc.store

    @property
    def _path(self) -> str:
        return f"/{self._collection.value}"

    def _to_record(self, data: dict[str, Any]) -> R:
        return self._record_type.from_dict(data)

    def _local_sorted(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        # Newest first, like the backend's ORDER BY created_at DESC
        return sorted(records, key=lambda r: r.get("createdAt", ""), reverse=True)

    async def _list_raw(
        self,
        params: dict[str, Any] | None = None,
        local_filter: Callable[[dict[str, Any]], bool] | None = None,
    ) -> list[dict[str, Any]]:
        query = {k: v for k, v in (params or {}).items() if v is not None}

        async def remote() -> list[dict[str, Any]]:
            data = await self._gateway.get(self._path, params=query or None)
            if not isinstance(data, list):
                raise RemoteError(200, f"Expected a list of {self._collection.value}")
            return data

        def local() -> list[dict[str, Any]]:
            records = self._store.list(self._collection)
            if local_filter is not None:
                records = [r for r in records if local_filter(r)]
            return self._local_sorted(records)

        return await self._orc.run(
            "list", remote, local, collection=self._collection, read_default=[],
        )

    async def list(self) -> list[R]:
        return [self._to_record(r) for r in await self._list_raw()]

    async def get(self, record_id: str) -> R:
        async def remote() -> dict[str, Any]:
            return await self._gateway.get(f"{self._path}/{record_id}")

        def local() -> dict[str, Any]:
            record = self._store.get(self._collection, record_id)
            if record is None:
                raise NotFoundError(self._collection.value, record_id)
            return record

        data = await self._orc.run(
            "get", remote, local, collection=self._collection, record_id=record_id,
        )
        return self._to_record(data)

    async def create(self, data: dict[str, Any]) -> R:
        record = validate_create(self._collection, data)

        async def remote() -> dict[str, Any]:
            return await self._gateway.post(self._path, record)

        def local() -> dict[str, Any]:
            return self._store.create(self._collection, record)

        created = await self._orc.run("create", remote, local, collection=self._collection)
        logger.info("%s created: %s", self._collection.value, created.get("id"))
        return self._to_record(created)

    async def update(self, record_id: str, patch: dict[str, Any]) -> R:
        changes = validate_update(self._collection, patch)
        if not changes:
            raise ValidationError([FieldError(field="__root__", message="No fields to update")])
        path = f"{self._path}/{record_id}"

        async def remote() -> dict[str, Any]:
            current = None
            if needs_current(self._collection, changes):
                current = await self._gateway.get(path)
            return await self._gateway.put(path, apply_derived(self._collection, changes, current))

        def local() -> dict[str, Any]:
            current = self._store.get(self._collection, record_id)
            if current is None:
                raise NotFoundError(self._collection.value, record_id)
            body = apply_derived(self._collection, changes, current)
            return self._store.update(self._collection, record_id, body)

        updated = await self._orc.run(
            "update", remote, local, collection=self._collection, record_id=record_id,
        )
        logger.info("%s updated: %s", self._collection.value, record_id)
        return self._to_record(updated)

    async def delete(self, record_id: str) -> None:
        async def remote() -> None:
            await self._gateway.delete(f"{self._path}/{record_id}")

        def local() -> None:
            if not self._store.delete(self._collection, record_id):
                raise NotFoundError(self._collection.value, record_id)

        await self._orc.run(
            "delete", remote, local, collection=self._collection, record_id=record_id,
        )
        logger.info("%s deleted: %s", self._collection.value, record_id)


def _matches_search(record: dict[str, Any], search: str) -> bool:
    needle = search.lower()
    return any(
        needle in (record.get(key) or "").lower()
        for key in ("name", "brand", "model", "serialNumber")
    )


class ApplianceRepository(EntityRepository[Appliance]):
    """Appliances, with search, status filter and warranty stats.

    Deleting an appliance also deletes its tasks and contacts: the backend
    cascades through its foreign keys, the local store cascades explicitly.
    """

    def __init__(self, orchestrator: FallbackOrchestrator, soon_days: int = 30) -> None:
        super().__init__(orchestrator, Collection.APPLIANCES, Appliance)
        self._soon_days = soon_days

    async def list(
        self,
        search: str | None = None,
        status: str | WarrantyStatus | None = None,
        today: date | None = None,
    ) -> list[Appliance]:
        status_value = WarrantyStatus(status).value if status and status != "all" else None

        def keep(record: dict[str, Any]) -> bool:
            if search and not _matches_search(record, search):
                return False
            if status_value is not None:
                current = warranty_status(record["warrantyExpiry"], today, self._soon_days)
                return current.value == status_value
            return True

        raw = await self._list_raw(
            params={"search": search or None, "status": status_value}, local_filter=keep,
        )
        return [self._to_record(r) for r in raw]

    async def stats(self, today: date | None = None) -> ApplianceStats:
        async def remote() -> ApplianceStats:
            return ApplianceStats.from_dict(await self._gateway.get(f"{self._path}/stats"))

        def local() -> ApplianceStats:
            records = self._store.list(Collection.APPLIANCES)
            return appliance_stats(
                (r["warrantyExpiry"] for r in records), today, self._soon_days,
            )

        return await self._orc.run(
            "stats", remote, local, collection=self._collection, read_default=ApplianceStats(),
        )


class MaintenanceRepository(EntityRepository[MaintenanceTask]):
    """Maintenance tasks, with per-appliance listing and upcoming reminders."""

    def __init__(self, orchestrator: FallbackOrchestrator, horizon_days: int = 14) -> None:
        super().__init__(orchestrator, Collection.MAINTENANCE, MaintenanceTask)
        self._horizon_days = horizon_days

    async def list(self, appliance_id: str | None = None) -> list[MaintenanceTask]:
        raw = await self._list_raw(
            params={"applianceId": appliance_id},
            local_filter=(lambda r: r.get("applianceId") == appliance_id) if appliance_id else None,
        )
        return [self._to_record(r) for r in raw]

    async def upcoming(
        self, days: int | None = None, today: date | None = None,
    ) -> list[UpcomingTask]:
        """Incomplete tasks whose reminder falls within the next `days` days.

        `days` is clamped to 0..MAX_HORIZON_DAYS.
        """
        horizon = self._horizon_days if days is None else days
        horizon = max(0, min(horizon, MAX_HORIZON_DAYS))

        async def remote() -> list[dict[str, Any]]:
            data = await self._gateway.get(f"{self._path}/upcoming", params={"days": horizon})
            if not isinstance(data, list):
                raise RemoteError(200, "Expected a list of upcoming tasks")
            return data

        def local() -> list[dict[str, Any]]:
            start = today or date.today()
            end = horizon_end(start, horizon)
            names = {
                a["id"]: a.get("name", "")
                for a in self._store.list(Collection.APPLIANCES)
            }
            due = [
                {**t, "applianceName": names[t["applianceId"]]}
                for t in self._store.list(Collection.MAINTENANCE)
                if not t.get("completed")
                and t.get("applianceId") in names
                and start <= parse_date(t["reminderDate"]) <= end
            ]
            return sorted(due, key=lambda t: t["reminderDate"])

        raw = await self._orc.run(
            "upcoming", remote, local, collection=self._collection, read_default=[],
        )
        return [UpcomingTask.from_dict(t) for t in raw]

    async def set_completed(self, task_id: str, completed: bool = True) -> MaintenanceTask:
        return await self.update(task_id, {"completed": completed})


class ContactRepository(EntityRepository[Contact]):
    def __init__(self, orchestrator: FallbackOrchestrator) -> None:
        super().__init__(orchestrator, Collection.CONTACTS, Contact)

    async def list(self, appliance_id: str | None = None) -> list[Contact]:
        raw = await self._list_raw(
            params={"applianceId": appliance_id},
            local_filter=(lambda r: r.get("applianceId") == appliance_id) if appliance_id else None,
        )
        return [self._to_record(r) for r in raw]


class HomebaseService:
    """Façade handed to the UI: one repository per entity type plus mode signal."""

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        soon_days: int = 30,
        horizon_days: int = 14,
    ) -> None:
        self.orchestrator = orchestrator
        self.appliances = ApplianceRepository(orchestrator, soon_days)
        self.maintenance = MaintenanceRepository(orchestrator, horizon_days)
        self.contacts = ContactRepository(orchestrator)

    def is_fallback_mode(self) -> bool:
        """True while the last remote failure is inside the decay window."""
        return self.orchestrator.is_fallback_mode()

    def retry_remote(self) -> None:
        """Forget the recorded failure so the next call tries the remote again."""
        self.orchestrator.tracker.reset()


def create_service(
    gateway: RemoteGateway | None = None,
    kv: KeyValueStore | None = None,
) -> HomebaseService:
    """Wire the default gateway, local store and tracker from settings."""
    from homebase.config import settings

    if gateway is None:
        from homebase.adapters.http_gateway import HttpGateway
        gateway = HttpGateway()

    kv = kv or KeyValueStore()
    orchestrator = FallbackOrchestrator(
        gateway=gateway,
        store=EntityStore(kv),
        tracker=AvailabilityTracker(kv),
    )
    return HomebaseService(
        orchestrator,
        soon_days=settings.EXPIRING_SOON_DAYS,
        horizon_days=settings.UPCOMING_HORIZON_DAYS,
    )
