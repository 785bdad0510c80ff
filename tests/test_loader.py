#!/usr/bin/env python3
"""Tests for YAML snapshot loading and saving."""

from datetime import date, datetime, timezone

import pytest
import yaml

from fleetops import (
    Driver,
    GarageRecord,
    GarageRecordStatus,
    GarageRecordType,
    LaborCost,
    MovementReason,
    MovementType,
    PartMovement,
    PartUsage,
    RepairItem,
    RepairPart,
    Reservation,
    ReservationStatus,
    Snapshot,
    SnapshotError,
    SparePart,
    StockLevel,
    Vehicle,
    VehicleStatus,
    YamlSnapshotBackend,
)
from fleetops.loader import load_schema, snapshot_from_document, snapshot_to_document

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)

MINIMAL_DOCUMENT = """
version: 1
state:
  vehicles:
    - id: v1
      licensePlate: AB-123-CD
      brand: Renault
      model: Clio
      year: 2021
      status: active
  drivers:
    - id: d1
      firstName: Awa
      lastName: Diallo
      licenseNumber: LIC-1
      licenseExpiry: '2030-01-01'
      status: available
  reservations:
    - id: r1
      vehicleId: v1
      driverId: d1
      startDate: '2025-03-01T08:00:00'
      endDate: '2025-03-01T18:00:00+00:00'
      status: pending
"""


def full_snapshot() -> Snapshot:
    return Snapshot(
        vehicles=[
            Vehicle(
                license_plate="AB-123-CD",
                brand="Renault",
                model="Clio",
                year=2021,
                owner_name="Fleet Co",
                insurance=True,
                last_inspection_date=date(2024, 5, 10),
                id="v1",
                status=VehicleStatus.MAINTENANCE,
                registration_date=T0,
            )
        ],
        drivers=[
            Driver(
                first_name="Awa",
                last_name="Diallo",
                license_number="LIC-1",
                license_expiry=date(2030, 1, 1),
                email="awa@example.com",
                has_medical_certificate=True,
                id="d1",
            )
        ],
        reservations=[
            Reservation(
                vehicle_id="v1",
                driver_id="d1",
                start_date=T0,
                end_date=T0.replace(hour=18),
                status=ReservationStatus.REJECTED,
                purpose="Delivery",
                validated_by="dispatch",
                validated_at=T0,
                id="r1",
            )
        ],
        garage_records=[
            GarageRecord(
                vehicle_id="v1",
                record_type=GarageRecordType.REPAIR,
                description="Brake noise",
                repairs=[
                    RepairItem(
                        description="Brake pads",
                        labor_hours=1.5,
                        parts=[RepairPart(part_id="p1", quantity=2, unit_price=25.0)],
                        id="ri1",
                    )
                ],
                status=GarageRecordStatus.IN_PROGRESS,
                labor_cost=LaborCost(hours=1.5, rate_per_hour=60.0, total=90.0),
                customer_name="Fleet Co",
                created_at=T0,
                id="g1",
            )
        ],
        spare_parts=[
            SparePart(
                reference="BP-01",
                name="Brake pads",
                stock=StockLevel(current=8, minimum=3, optimal=20, location="A1"),
                retail_price=25.0,
                supplier_name="Parts Inc",
                usage=[PartUsage(date=T0, quantity=2, repair_id="ri1", vehicle_id="v1")],
                id="p1",
            )
        ],
        part_movements=[
            PartMovement(
                part_id="p1",
                movement_type=MovementType.OUT,
                quantity=2,
                reason=MovementReason.REPAIR,
                date=T0,
                reference="ri1",
                price=50.0,
                id="m1",
            )
        ],
    )


class TestLoadSchema:
    """Tests for load_schema function."""

    def test_returns_dict(self):
        assert isinstance(load_schema(), dict)

    def test_has_expected_structure(self):
        schema = load_schema()
        assert "version" in schema["properties"]
        assert "state" in schema["properties"]


class TestSnapshotDocument:
    """Tests for document serialization and parsing."""

    def test_layout(self):
        document = snapshot_to_document(full_snapshot(), 1)
        assert document["version"] == 1
        assert list(document["state"]) == [
            "vehicles",
            "drivers",
            "reservations",
            "garageRecords",
            "spareParts",
            "partMovements",
        ]

    def test_camel_case_keys(self):
        document = snapshot_to_document(full_snapshot(), 1)
        vehicle = document["state"]["vehicles"][0]
        assert vehicle["licensePlate"] == "AB-123-CD"
        assert vehicle["status"] == "maintenance"
        assert vehicle["owner"] == {"name": "Fleet Co"}
        assert vehicle["lastInspectionDate"] == "2024-05-10"
        assert "nextInspectionDate" not in vehicle

    def test_full_snapshot_survives_serialization(self):
        snapshot = full_snapshot()
        assert snapshot_from_document(snapshot_to_document(snapshot, 1), 1) == snapshot

    def test_parses_minimal_document(self):
        snapshot = snapshot_from_document(yaml.safe_load(MINIMAL_DOCUMENT), 1)
        assert snapshot.vehicles[0].status == VehicleStatus.ACTIVE
        assert snapshot.drivers[0].license_expiry == date(2030, 1, 1)
        assert snapshot.garage_records == []

    def test_naive_timestamps_are_utc(self):
        snapshot = snapshot_from_document(yaml.safe_load(MINIMAL_DOCUMENT), 1)
        assert snapshot.reservations[0].start_date == T0
        assert snapshot.reservations[0].start_date.tzinfo is not None

    def test_schema_violation(self):
        document = yaml.safe_load(MINIMAL_DOCUMENT)
        document["state"]["vehicles"][0]["status"] = "stolen"
        with pytest.raises(SnapshotError, match="state.vehicles.0.status"):
            snapshot_from_document(document, 1)

    def test_missing_required_field(self):
        document = yaml.safe_load(MINIMAL_DOCUMENT)
        del document["state"]["drivers"][0]["licenseNumber"]
        with pytest.raises(SnapshotError, match="licenseNumber"):
            snapshot_from_document(document, 1)

    def test_version_mismatch(self):
        document = yaml.safe_load(MINIMAL_DOCUMENT)
        with pytest.raises(SnapshotError, match="version"):
            snapshot_from_document(document, 2)

    def test_unparseable_date(self):
        document = yaml.safe_load(MINIMAL_DOCUMENT)
        document["state"]["drivers"][0]["licenseExpiry"] = "soon"
        with pytest.raises(SnapshotError):
            snapshot_from_document(document, 1)


class TestYamlSnapshotBackend:
    """Tests for the file-per-name YAML backend."""

    def test_path_for(self, tmp_path):
        backend = YamlSnapshotBackend(tmp_path)
        assert backend.path_for("fleet") == tmp_path / "fleet.yaml"

    def test_missing_file_returns_none(self, tmp_path):
        assert YamlSnapshotBackend(tmp_path).load("fleet") is None

    def test_save_then_load(self, tmp_path):
        backend = YamlSnapshotBackend(tmp_path / "nested")
        document = snapshot_to_document(full_snapshot(), 1)
        backend.save("fleet", document)
        assert backend.load("fleet") == document

    def test_timestamps_stay_strings(self, tmp_path):
        """Saved timestamps are quoted so they read back as strings."""
        backend = YamlSnapshotBackend(tmp_path)
        backend.save("fleet", snapshot_to_document(full_snapshot(), 1))
        loaded = backend.load("fleet")
        assert isinstance(loaded["state"]["reservations"][0]["startDate"], str)
        assert isinstance(loaded["state"]["drivers"][0]["licenseExpiry"], str)

    def test_invalid_yaml(self, tmp_path):
        backend = YamlSnapshotBackend(tmp_path)
        backend.path_for("fleet").write_text("state: [unclosed\n")
        with pytest.raises(SnapshotError, match="Failed to read"):
            backend.load("fleet")
