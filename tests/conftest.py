"""Shared test fixtures and configuration.

Sets up fake environment variables before any homebase import, and provides
a temp local store, a controllable clock and an in-memory fake of the REST
backend served through httpx.MockTransport.
"""

import os
import tempfile

# Patch env vars BEFORE any homebase imports
os.environ.setdefault("API_BASE_URL", "http://testserver/api")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("LOCAL_STORE_PATH", os.path.join(tempfile.gettempdir(), "homebase-test.db"))

import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest

BASE_URL = "http://testserver/api"


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _envelope(data, message="Success", status=200):
    return httpx.Response(status, json={"success": True, "message": message, "data": data})


def _error(message, status):
    return httpx.Response(status, json={"success": False, "message": message})


class FakeBackend:
    """Minimal stand-in for the Express/Postgres API.

    Set `down = True` to make every request fail at the transport level, or
    `fail_status` to answer every request with that HTTP status.
    """

    def __init__(self) -> None:
        self.data: dict[str, dict[str, dict]] = {
            "appliances": {}, "maintenance": {}, "contacts": {},
        }
        self.down = False
        self.fail_status: int | None = None
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("Connection refused", request=request)
        if self.fail_status is not None:
            return _error("Forced failure", self.fail_status)

        parts = request.url.path.split("/api/", 1)[1].strip("/").split("/")
        collection, rest = parts[0], parts[1:]
        if collection not in self.data:
            return _error("Route not found", 404)
        table = self.data[collection]

        if request.method == "GET" and not rest:
            rows = list(table.values())
            appliance_id = request.url.params.get("applianceId")
            if appliance_id:
                rows = [r for r in rows if r["applianceId"] == appliance_id]
            return _envelope(sorted(rows, key=lambda r: r["createdAt"], reverse=True))

        if request.method == "GET" and rest == ["stats"]:
            from homebase.core.status import appliance_stats

            stats = appliance_stats(r["warrantyExpiry"] for r in table.values())
            return _envelope({
                "total": stats.total,
                "active": stats.active,
                "expiringSoon": stats.expiring_soon,
                "expired": stats.expired,
            })

        if request.method == "GET" and rest == ["upcoming"]:
            from homebase.core.status import is_upcoming

            days = int(request.url.params.get("days", "14"))
            names = {a["id"]: a["name"] for a in self.data["appliances"].values()}
            rows = [
                {**t, "applianceName": names[t["applianceId"]]}
                for t in table.values()
                if not t["completed"] and is_upcoming(t["reminderDate"], horizon_days=days)
            ]
            return _envelope(sorted(rows, key=lambda r: r["reminderDate"]))

        if request.method == "POST" and not rest:
            body = json.loads(request.content)
            if collection != "appliances" and body.get("applianceId") not in self.data["appliances"]:
                return _error("Appliance not found", 404)
            now = datetime.now(timezone.utc).isoformat()
            record = {**body, "id": str(uuid.uuid4()), "createdAt": now, "updatedAt": now}
            if collection == "maintenance":
                record.setdefault("completed", False)
            table[record["id"]] = record
            return _envelope(record, status=201)

        record_id = rest[0]
        if record_id not in table:
            return _error("Not found", 404)

        if request.method == "GET":
            return _envelope(table[record_id])

        if request.method == "PUT":
            table[record_id] = {**table[record_id], **json.loads(request.content)}
            return _envelope(table[record_id])

        if request.method == "DELETE":
            del table[record_id]
            if collection == "appliances":
                # ON DELETE CASCADE
                for child in ("maintenance", "contacts"):
                    self.data[child] = {
                        k: v for k, v in self.data[child].items()
                        if v["applianceId"] != record_id
                    }
            return _envelope(None, message="Deleted")

        return _error("Method not allowed", 405)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store(tmp_path):
    """Return a KeyValueStore backed by a temp SQLite file."""
    from homebase.data.db import KeyValueStore
    return KeyValueStore(db_path=str(tmp_path / "homebase.db"), namespace="homebase")


@pytest.fixture
def entity_store(kv_store):
    from homebase.data.db import EntityStore
    return EntityStore(kv_store)


@pytest.fixture
def tracker(kv_store, clock):
    from homebase.core.availability import AvailabilityTracker
    return AvailabilityTracker(kv_store, decay_seconds=300, clock=clock)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def gateway(backend):
    from homebase.adapters.http_gateway import HttpGateway
    return HttpGateway(base_url=BASE_URL, timeout=5, transport=httpx.MockTransport(backend.handler))


@pytest.fixture
def service(gateway, entity_store, tracker):
    from homebase.core.orchestrator import FallbackOrchestrator, HomebaseService
    orchestrator = FallbackOrchestrator(gateway=gateway, store=entity_store, tracker=tracker)
    return HomebaseService(orchestrator, soon_days=30, horizon_days=14)


@pytest.fixture
def appliance_input():
    return {
        "name": "Kitchen fridge",
        "brand": "Bosch",
        "model": "KGN39",
        "serialNumber": "SN-123",
        "purchaseDate": "2024-01-15",
        "warrantyPeriodMonths": 24,
        "purchaseLocation": "MediaMarkt",
    }
