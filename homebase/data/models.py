"""
HomeBase Gear Guard — Data Models.

Appliances own maintenance tasks and contacts. The same records travel over
the REST API and sit in the local fallback store, both as camelCase JSON, so
every model converts to and from that wire shape.

Dates are plain "YYYY-MM-DD" strings end to end, never datetime objects.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any


class Collection(str, Enum):
    """Record collections, named after their REST resource path."""

    APPLIANCES = "appliances"
    MAINTENANCE = "maintenance"
    CONTACTS = "contacts"


class Frequency(str, Enum):
    """How often a maintenance task repeats."""

    ONE_TIME = "one-time"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BI_YEARLY = "bi-yearly"
    YEARLY = "yearly"


class WarrantyStatus(str, Enum):
    ACTIVE = "active"
    EXPIRING_SOON = "expiring-soon"
    EXPIRED = "expired"


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class _WireRecord:
    """Mixin: camelCase JSON <-> snake_case dataclass fields."""

    def to_dict(self) -> dict[str, Any]:
        return {_to_camel(f.name): getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        """Build a record from wire JSON. Unknown keys are ignored."""
        kwargs = {}
        for f in fields(cls):
            key = _to_camel(f.name)
            if key in data:
                kwargs[f.name] = data[key]
        return cls(**kwargs)


@dataclass
class Appliance(_WireRecord):
    """A household appliance under warranty.

    warranty_expiry is always purchase_date + warranty_period_months;
    it is recomputed on every write and never edited on its own.
    """

    id: str
    name: str
    brand: str
    model: str
    purchase_date: str                    # YYYY-MM-DD
    warranty_period_months: int
    warranty_expiry: str                  # YYYY-MM-DD, derived
    serial_number: str | None = None
    purchase_location: str | None = None
    manual_link: str | None = None
    receipt_link: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class MaintenanceTask(_WireRecord):
    """A scheduled service for one appliance.

    reminder_date is derived from date + frequency and is never earlier
    than date.
    """

    id: str
    appliance_id: str
    task_name: str
    date: str                             # YYYY-MM-DD
    frequency: str                        # a Frequency value
    service_provider_name: str
    service_provider_contact: str
    reminder_date: str                    # YYYY-MM-DD, derived
    completed: bool = False
    created_at: str = ""


@dataclass
class Contact(_WireRecord):
    """A person or company to call about an appliance."""

    id: str
    appliance_id: str
    contact_name: str
    phone: str | None = None
    email: str | None = None
    notes: str | None = None
    created_at: str = ""


@dataclass
class UpcomingTask(_WireRecord):
    """An incomplete task due soon, joined with its appliance's name."""

    id: str
    appliance_id: str
    task_name: str
    reminder_date: str
    frequency: str
    service_provider_name: str = ""
    service_provider_contact: str = ""
    completed: bool = False
    appliance_name: str = ""


@dataclass
class ApplianceStats:
    """Warranty status counts across all appliances."""

    total: int = 0
    active: int = 0
    expiring_soon: int = 0
    expired: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApplianceStats:
        return cls(
            total=int(data.get("total", 0)),
            active=int(data.get("active", 0)),
            expiring_soon=int(data.get("expiringSoon", 0)),
            expired=int(data.get("expired", 0)),
        )
