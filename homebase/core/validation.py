"""Input validation and derived-field computation.

Everything a user submits passes through these schemas before any I/O.
The output is the camelCase wire dict sent to the remote API or written to
the local store, with warrantyExpiry / reminderDate filled in. Clients never
set those two fields themselves: unknown keys are dropped.
"""

from __future__ import annotations

import re
import uuid
from typing import Annotated, Any, Optional
from urllib.parse import urlparse

import pydantic
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from homebase.core.errors import FieldError, ValidationError
from homebase.core.status import parse_date, reminder_date, warranty_expiry
from homebase.data.models import Collection, Frequency

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Optional text inputs: blank means "not given" and may clear a stored value
_CLEARABLE = {
    "serial_number", "purchase_location", "manual_link", "receipt_link",
    "phone", "email", "notes",
}


def _check_date(v: str) -> str:
    try:
        parse_date(v)
    except ValueError:
        raise ValueError("Invalid date format, expected YYYY-MM-DD")
    return v


def _check_url(v: str) -> str:
    parsed = urlparse(v)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL")
    return v


def _check_uuid(v: str) -> str:
    try:
        uuid.UUID(v)
    except ValueError:
        raise ValueError("Invalid appliance ID")
    return v


def _check_email(v: str) -> str:
    if not _EMAIL_RE.match(v):
        raise ValueError("Invalid email")
    return v


Name = Annotated[str, StringConstraints(min_length=1, max_length=255)]
ShortText = Annotated[str, StringConstraints(max_length=255)]
DateStr = Annotated[str, AfterValidator(_check_date)]
UrlStr = Annotated[str, AfterValidator(_check_url)]
ApplianceRef = Annotated[str, AfterValidator(_check_uuid)]
Phone = Annotated[str, StringConstraints(max_length=50)]
Email = Annotated[str, StringConstraints(max_length=255), AfterValidator(_check_email)]


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any, info) -> Any:
        if info.field_name in _CLEARABLE and isinstance(v, str) and not v.strip():
            return None
        return v


# ---------------------------------------------------------------------------
# Appliances
# ---------------------------------------------------------------------------


class ApplianceInput(_Schema):
    name: Name
    brand: Name
    model: Name
    serial_number: Optional[ShortText] = None
    purchase_date: DateStr
    warranty_period_months: int = Field(gt=0)
    purchase_location: Optional[ShortText] = None
    manual_link: Optional[UrlStr] = None
    receipt_link: Optional[UrlStr] = None


class ApplianceUpdate(_Schema):
    name: Optional[Name] = None
    brand: Optional[Name] = None
    model: Optional[Name] = None
    serial_number: Optional[ShortText] = None
    purchase_date: Optional[DateStr] = None
    warranty_period_months: Optional[int] = Field(default=None, gt=0)
    purchase_location: Optional[ShortText] = None
    manual_link: Optional[UrlStr] = None
    receipt_link: Optional[UrlStr] = None


# ---------------------------------------------------------------------------
# Maintenance tasks
# ---------------------------------------------------------------------------


class MaintenanceTaskInput(_Schema):
    appliance_id: ApplianceRef
    task_name: Name
    date: DateStr
    frequency: Frequency
    service_provider_name: Name
    service_provider_contact: Name
    completed: bool = False


class MaintenanceTaskUpdate(_Schema):
    appliance_id: Optional[ApplianceRef] = None
    task_name: Optional[Name] = None
    date: Optional[DateStr] = None
    frequency: Optional[Frequency] = None
    service_provider_name: Optional[Name] = None
    service_provider_contact: Optional[Name] = None
    completed: Optional[bool] = None


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class ContactInput(_Schema):
    appliance_id: ApplianceRef
    contact_name: Name
    phone: Optional[Phone] = None
    email: Optional[Email] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def phone_or_email(self) -> ContactInput:
        if not self.phone and not self.email:
            raise ValueError("Either phone or email is required")
        return self


class ContactUpdate(_Schema):
    appliance_id: Optional[ApplianceRef] = None
    contact_name: Optional[Name] = None
    phone: Optional[Phone] = None
    email: Optional[Email] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _field_errors(exc: pydantic.ValidationError) -> list[FieldError]:
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "__root__"
        message = err["msg"].removeprefix("Value error, ")
        errors.append(FieldError(field=loc, message=message))
    return errors


def _parse(schema: type[_Schema], data: dict[str, Any]) -> _Schema:
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(_field_errors(exc)) from exc


def _dump(model: _Schema, partial: bool) -> dict[str, Any]:
    data = model.model_dump(mode="json", by_alias=True, exclude_unset=partial)
    if partial:
        # A null only makes sense for fields that can be cleared
        clearable = {to_camel(name) for name in _CLEARABLE}
        data = {k: v for k, v in data.items() if v is not None or k in clearable}
    return data


_CREATE_SCHEMAS: dict[Collection, type[_Schema]] = {
    Collection.APPLIANCES: ApplianceInput,
    Collection.MAINTENANCE: MaintenanceTaskInput,
    Collection.CONTACTS: ContactInput,
}

_UPDATE_SCHEMAS: dict[Collection, type[_Schema]] = {
    Collection.APPLIANCES: ApplianceUpdate,
    Collection.MAINTENANCE: MaintenanceTaskUpdate,
    Collection.CONTACTS: ContactUpdate,
}

# derived field -> the two inputs it is computed from
_DERIVED: dict[Collection, tuple[str, str, str]] = {
    Collection.APPLIANCES: ("warrantyExpiry", "purchaseDate", "warrantyPeriodMonths"),
    Collection.MAINTENANCE: ("reminderDate", "date", "frequency"),
}


def _compute(collection: Collection, first: Any, second: Any) -> str:
    try:
        if collection is Collection.APPLIANCES:
            return warranty_expiry(first, second)
        return reminder_date(first, second)
    except (ValueError, OverflowError):
        # Past year 9999
        target = _DERIVED[collection][0]
        raise ValidationError([FieldError(field=target, message="Resulting date is out of range")])


def validate_create(collection: Collection, data: dict[str, Any]) -> dict[str, Any]:
    """Validate a new record and fill in its derived date, if it has one."""
    record = _dump(_parse(_CREATE_SCHEMAS[collection], data), partial=False)
    if collection in _DERIVED:
        target, first, second = _DERIVED[collection]
        record[target] = _compute(collection, record[first], record[second])
    return record


def validate_update(collection: Collection, patch: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial update. Only the fields given are returned."""
    return _dump(_parse(_UPDATE_SCHEMAS[collection], patch), partial=True)


def needs_current(collection: Collection, changes: dict[str, Any]) -> bool:
    """True when changes touch only one input of a derived date.

    The stored record then has to be read to recompute it.
    """
    if collection not in _DERIVED:
        return False
    _, first, second = _DERIVED[collection]
    return (first in changes) != (second in changes)


def apply_derived(
    collection: Collection,
    changes: dict[str, Any],
    current: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Recompute the derived date when either of its inputs changed."""
    if collection not in _DERIVED:
        return changes
    target, first, second = _DERIVED[collection]
    if first not in changes and second not in changes:
        return changes

    merged = {**(current or {}), **changes}
    if merged.get(first) is None or merged.get(second) is None:
        missing = first if merged.get(first) is None else second
        raise ValidationError([FieldError(field=missing, message=f"Required to compute {target}")])
    return {**changes, target: _compute(collection, merged[first], merged[second])}
