"""Tests for homebase.data.models — wire (camelCase) conversion."""

from homebase.data.models import (
    Appliance,
    ApplianceStats,
    Collection,
    Contact,
    MaintenanceTask,
    UpcomingTask,
)


class TestApplianceModel:
    def test_from_dict(self):
        appliance = Appliance.from_dict({
            "id": "a1",
            "name": "Fridge",
            "brand": "Bosch",
            "model": "KGN39",
            "purchaseDate": "2024-01-15",
            "warrantyPeriodMonths": 24,
            "warrantyExpiry": "2026-01-15",
            "manualLink": "https://example.com/manual.pdf",
            "createdAt": "2024-01-15T10:00:00.000Z",
        })
        assert appliance.purchase_date == "2024-01-15"
        assert appliance.warranty_period_months == 24
        assert appliance.manual_link == "https://example.com/manual.pdf"
        assert appliance.serial_number is None
        assert appliance.updated_at == ""

    def test_unknown_keys_ignored(self):
        appliance = Appliance.from_dict({
            "id": "a1", "name": "F", "brand": "B", "model": "M",
            "purchaseDate": "2024-01-15", "warrantyPeriodMonths": 1,
            "warrantyExpiry": "2024-02-15", "userId": "tenant-7",
        })
        assert appliance.id == "a1"

    def test_to_dict_uses_camel_case(self):
        appliance = Appliance(
            id="a1", name="F", brand="B", model="M", purchase_date="2024-01-15",
            warranty_period_months=12, warranty_expiry="2025-01-15",
        )
        data = appliance.to_dict()
        assert data["purchaseDate"] == "2024-01-15"
        assert data["warrantyExpiry"] == "2025-01-15"
        assert "purchase_date" not in data


class TestMaintenanceModel:
    def test_defaults(self):
        task = MaintenanceTask.from_dict({
            "id": "t1", "applianceId": "a1", "taskName": "Descale", "date": "2024-01-15",
            "frequency": "monthly", "serviceProviderName": "FixIt",
            "serviceProviderContact": "030", "reminderDate": "2024-02-15",
        })
        assert task.completed is False
        assert task.appliance_id == "a1"

    def test_upcoming_carries_appliance_name(self):
        task = UpcomingTask.from_dict({
            "id": "t1", "applianceId": "a1", "taskName": "Descale", "date": "2024-01-15",
            "frequency": "monthly", "reminderDate": "2024-02-15", "applianceName": "Kettle",
        })
        assert task.appliance_name == "Kettle"


class TestContactModel:
    def test_optional_fields(self):
        contact = Contact.from_dict({"id": "c1", "applianceId": "a1", "contactName": "Anna"})
        assert contact.phone is None
        assert contact.email is None


class TestStats:
    def test_from_wire(self):
        stats = ApplianceStats.from_dict({"total": "3", "active": 1, "expiringSoon": 1, "expired": 1})
        assert stats.total == 3
        assert stats.expiring_soon == 1

    def test_missing_keys_default_to_zero(self):
        assert ApplianceStats.from_dict({}) == ApplianceStats()


class TestCollection:
    def test_values_are_resource_paths(self):
        assert Collection("maintenance") is Collection.MAINTENANCE
        assert [c.value for c in Collection] == ["appliances", "maintenance", "contacts"]
