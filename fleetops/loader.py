"""YAML snapshot persistence for the fleet store."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dateutil.parser import isoparse
from jsonschema import ValidationError, validate

from .calculations import as_utc
from .driver import Driver
from .garage_record import GarageRecord, LaborCost, PartsCost, RepairItem, RepairPart
from .reservation import Reservation
from .spare_part import PartMovement, PartUsage, SparePart, StockLevel
from .status import (
    DriverStatus,
    GarageRecordStatus,
    GarageRecordType,
    MovementReason,
    MovementType,
    PartStatus,
    Priority,
    RepairStatus,
    ReservationStatus,
    SparePartStatus,
    VehicleStatus,
)
from .vehicle import Vehicle

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.yaml"


class SnapshotError(Exception):
    """A snapshot could not be read, written or understood."""


@dataclass
class Snapshot:
    """The full set of store collections."""

    vehicles: List[Vehicle] = field(default_factory=list)
    drivers: List[Driver] = field(default_factory=list)
    reservations: List[Reservation] = field(default_factory=list)
    garage_records: List[GarageRecord] = field(default_factory=list)
    spare_parts: List[SparePart] = field(default_factory=list)
    part_movements: List[PartMovement] = field(default_factory=list)


@lru_cache(maxsize=1)
def load_schema() -> dict:
    """Load the snapshot JSON schema from schema.yaml."""
    with open(SCHEMA_PATH) as f:
        return yaml.safe_load(f)


# =============================================================================
# Value helpers
# =============================================================================


def _put(d: Dict[str, Any], key: str, value: Any) -> None:
    """Set key only for non-None values, for cleaner YAML."""
    if value is not None:
        d[key] = value


def _iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _to_datetime(value: Any) -> Optional[datetime]:
    """Parse a timestamp. Naive values are taken as UTC."""
    if value is None or isinstance(value, date):
        return as_utc(value)
    return as_utc(isoparse(value))


def _to_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


# =============================================================================
# Serialization (camelCase keys)
# =============================================================================


def _vehicle_to_dict(vehicle: Vehicle) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": vehicle.id,
        "licensePlate": vehicle.license_plate,
        "brand": vehicle.brand,
        "model": vehicle.model,
        "year": vehicle.year,
        "status": vehicle.status.value,
        "documents": {
            "insurance": vehicle.insurance,
            "registration": vehicle.registration,
            "technicalInspection": vehicle.technical_inspection,
        },
    }
    owner: Dict[str, Any] = {}
    _put(owner, "name", vehicle.owner_name)
    _put(owner, "contact", vehicle.owner_contact)
    if owner:
        d["owner"] = owner
    _put(d, "lastInspectionDate", _iso(vehicle.last_inspection_date))
    _put(d, "nextInspectionDate", _iso(vehicle.next_inspection_date))
    _put(d, "registrationDate", _iso(vehicle.registration_date))
    return d


def _driver_to_dict(driver: Driver) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": driver.id,
        "firstName": driver.first_name,
        "lastName": driver.last_name,
        "licenseNumber": driver.license_number,
        "licenseExpiry": driver.license_expiry.isoformat(),
        "status": driver.status.value,
        "documents": {
            "licenseImage": driver.has_license_image,
            "medicalCertificate": driver.has_medical_certificate,
        },
    }
    contact: Dict[str, Any] = {}
    _put(contact, "phone", driver.phone)
    _put(contact, "email", driver.email)
    _put(contact, "address", driver.address)
    if contact:
        d["contact"] = contact
    _put(d, "assignedVehicleId", driver.assigned_vehicle_id)
    return d


def _reservation_to_dict(reservation: Reservation) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": reservation.id,
        "vehicleId": reservation.vehicle_id,
        "driverId": reservation.driver_id,
        "startDate": reservation.start_date.isoformat(),
        "endDate": reservation.end_date.isoformat(),
        "status": reservation.status.value,
    }
    _put(d, "purpose", reservation.purpose)
    _put(d, "notes", reservation.notes)
    _put(d, "validatedBy", reservation.validated_by)
    _put(d, "validatedAt", _iso(reservation.validated_at))
    return d


def _repair_to_dict(repair: RepairItem) -> Dict[str, Any]:
    parts = []
    for part in repair.parts:
        p: Dict[str, Any] = {
            "partId": part.part_id,
            "quantity": part.quantity,
            "unitPrice": part.unit_price,
            "status": part.status.value,
        }
        _put(p, "reservationDate", _iso(part.reserved_at))
        _put(p, "usageDate", _iso(part.used_at))
        parts.append(p)
    d: Dict[str, Any] = {
        "id": repair.id,
        "description": repair.description,
        "laborHours": repair.labor_hours,
        "cost": repair.cost,
        "parts": parts,
        "priority": repair.priority.value,
        "status": repair.status.value,
    }
    return d


def _garage_record_to_dict(record: GarageRecord) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": record.id,
        "vehicleId": record.vehicle_id,
        "type": record.record_type.value,
        "description": record.description,
        "status": record.status.value,
        "repairs": [_repair_to_dict(r) for r in record.repairs],
        "laborCost": {
            "hours": record.labor_cost.hours,
            "ratePerHour": record.labor_cost.rate_per_hour,
            "total": record.labor_cost.total,
        },
        "partsCost": {
            "subtotal": record.parts_cost.subtotal,
            "tax": record.parts_cost.tax,
            "total": record.parts_cost.total,
        },
        "cost": record.cost,
    }
    if record.customer_name is not None:
        d["customerInfo"] = {"name": record.customer_name}
    _put(d, "createdAt", _iso(record.created_at))
    _put(d, "completedDate", _iso(record.completed_date))
    return d


def _spare_part_to_dict(part: SparePart) -> Dict[str, Any]:
    stock: Dict[str, Any] = {
        "current": part.stock.current,
        "minimum": part.stock.minimum,
        "optimal": part.stock.optimal,
    }
    _put(stock, "location", part.stock.location)
    usage = []
    for u in part.usage:
        entry: Dict[str, Any] = {
            "date": u.date.isoformat(),
            "quantity": u.quantity,
            "repairId": u.repair_id,
        }
        _put(entry, "vehicleId", u.vehicle_id)
        usage.append(entry)
    d: Dict[str, Any] = {
        "id": part.id,
        "reference": part.reference,
        "name": part.name,
        "status": part.status.value,
        "stock": stock,
        "price": {"purchase": part.purchase_price, "retail": part.retail_price},
    }
    _put(d, "category", part.category)
    _put(d, "manufacturer", part.manufacturer)
    _put(d, "description", part.description)
    if part.supplier_name is not None:
        d["supplier"] = {"name": part.supplier_name}
    if usage:
        d["history"] = {"usage": usage}
    _put(d, "lastUsageDate", _iso(part.last_usage_date))
    _put(d, "createdAt", _iso(part.created_at))
    _put(d, "updatedAt", _iso(part.updated_at))
    return d


def _movement_to_dict(movement: PartMovement) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": movement.id,
        "partId": movement.part_id,
        "type": movement.movement_type.value,
        "quantity": movement.quantity,
        "reason": movement.reason.value,
        "price": movement.price,
    }
    _put(d, "date", _iso(movement.date))
    _put(d, "reference", movement.reference)
    _put(d, "notes", movement.notes)
    return d


def snapshot_to_document(snapshot: Snapshot, version: int) -> Dict[str, Any]:
    """Serialize a snapshot into the persisted document layout."""
    return {
        "version": version,
        "state": {
            "vehicles": [_vehicle_to_dict(v) for v in snapshot.vehicles],
            "drivers": [_driver_to_dict(d) for d in snapshot.drivers],
            "reservations": [_reservation_to_dict(r) for r in snapshot.reservations],
            "garageRecords": [_garage_record_to_dict(g) for g in snapshot.garage_records],
            "spareParts": [_spare_part_to_dict(p) for p in snapshot.spare_parts],
            "partMovements": [_movement_to_dict(m) for m in snapshot.part_movements],
        },
    }


# =============================================================================
# Parsing
# =============================================================================


def _parse_vehicle(dct: Dict[str, Any]) -> Vehicle:
    owner = dct.get("owner") or {}
    documents = dct.get("documents") or {}
    return Vehicle(
        license_plate=dct["licensePlate"],
        brand=dct["brand"],
        model=dct["model"],
        year=dct["year"],
        owner_name=owner.get("name"),
        owner_contact=owner.get("contact"),
        insurance=documents.get("insurance", False),
        registration=documents.get("registration", False),
        technical_inspection=documents.get("technicalInspection", False),
        last_inspection_date=_to_date(dct.get("lastInspectionDate")),
        next_inspection_date=_to_date(dct.get("nextInspectionDate")),
        id=dct["id"],
        status=VehicleStatus(dct["status"]),
        registration_date=_to_datetime(dct.get("registrationDate")),
    )


def _parse_driver(dct: Dict[str, Any]) -> Driver:
    contact = dct.get("contact") or {}
    documents = dct.get("documents") or {}
    return Driver(
        first_name=dct["firstName"],
        last_name=dct["lastName"],
        license_number=dct["licenseNumber"],
        license_expiry=_to_date(dct["licenseExpiry"]),
        phone=contact.get("phone"),
        email=contact.get("email"),
        address=contact.get("address"),
        has_license_image=documents.get("licenseImage", False),
        has_medical_certificate=documents.get("medicalCertificate", False),
        assigned_vehicle_id=dct.get("assignedVehicleId"),
        id=dct["id"],
        status=DriverStatus(dct["status"]),
    )


def _parse_reservation(dct: Dict[str, Any]) -> Reservation:
    return Reservation(
        vehicle_id=dct["vehicleId"],
        driver_id=dct["driverId"],
        start_date=_to_datetime(dct["startDate"]),
        end_date=_to_datetime(dct["endDate"]),
        status=ReservationStatus(dct["status"]),
        purpose=dct.get("purpose"),
        notes=dct.get("notes"),
        validated_by=dct.get("validatedBy"),
        validated_at=_to_datetime(dct.get("validatedAt")),
        id=dct["id"],
    )


def _parse_repair(dct: Dict[str, Any]) -> RepairItem:
    parts = [
        RepairPart(
            part_id=p["partId"],
            quantity=p["quantity"],
            unit_price=p.get("unitPrice", 0),
            status=PartStatus(p.get("status", PartStatus.PENDING.value)),
            reserved_at=_to_datetime(p.get("reservationDate")),
            used_at=_to_datetime(p.get("usageDate")),
        )
        for p in dct.get("parts") or []
    ]
    return RepairItem(
        description=dct.get("description", ""),
        labor_hours=dct.get("laborHours", 0),
        cost=dct.get("cost", 0),
        parts=parts,
        priority=Priority(dct.get("priority", Priority.MEDIUM.value)),
        status=RepairStatus(dct.get("status", RepairStatus.PENDING.value)),
        id=dct.get("id"),
    )


def _parse_garage_record(dct: Dict[str, Any]) -> GarageRecord:
    labor = dct.get("laborCost") or {}
    parts = dct.get("partsCost") or {}
    customer = dct.get("customerInfo") or {}
    return GarageRecord(
        vehicle_id=dct["vehicleId"],
        record_type=GarageRecordType(dct["type"]),
        description=dct.get("description", ""),
        repairs=[_parse_repair(r) for r in dct.get("repairs") or []],
        status=GarageRecordStatus(dct["status"]),
        labor_cost=LaborCost(
            hours=labor.get("hours", 0),
            rate_per_hour=labor.get("ratePerHour", LaborCost().rate_per_hour),
            total=labor.get("total", 0),
        ),
        parts_cost=PartsCost(
            subtotal=parts.get("subtotal", 0),
            tax=parts.get("tax", 0),
            total=parts.get("total", 0),
        ),
        cost=dct.get("cost", 0),
        customer_name=customer.get("name"),
        created_at=_to_datetime(dct.get("createdAt")),
        completed_date=_to_datetime(dct.get("completedDate")),
        id=dct["id"],
    )


def _parse_spare_part(dct: Dict[str, Any]) -> SparePart:
    stock = dct.get("stock") or {}
    price = dct.get("price") or {}
    supplier = dct.get("supplier") or {}
    history = dct.get("history") or {}
    usage = [
        PartUsage(
            date=_to_datetime(u["date"]),
            quantity=u["quantity"],
            repair_id=u["repairId"],
            vehicle_id=u.get("vehicleId"),
        )
        for u in history.get("usage") or []
    ]
    return SparePart(
        reference=dct["reference"],
        name=dct["name"],
        category=dct.get("category"),
        manufacturer=dct.get("manufacturer"),
        stock=StockLevel(
            current=stock.get("current", 0),
            minimum=stock.get("minimum", 0),
            optimal=stock.get("optimal", 0),
            location=stock.get("location"),
        ),
        purchase_price=price.get("purchase", 0),
        retail_price=price.get("retail", 0),
        description=dct.get("description"),
        supplier_name=supplier.get("name"),
        status=SparePartStatus(dct["status"]),
        usage=usage,
        last_usage_date=_to_datetime(dct.get("lastUsageDate")),
        created_at=_to_datetime(dct.get("createdAt")),
        updated_at=_to_datetime(dct.get("updatedAt")),
        id=dct["id"],
    )


def _parse_movement(dct: Dict[str, Any]) -> PartMovement:
    return PartMovement(
        part_id=dct["partId"],
        movement_type=MovementType(dct["type"]),
        quantity=dct["quantity"],
        reason=MovementReason(dct["reason"]),
        date=_to_datetime(dct.get("date")),
        reference=dct.get("reference"),
        price=dct.get("price", 0),
        notes=dct.get("notes"),
        id=dct["id"],
    )


def snapshot_from_document(document: Dict[str, Any], version: int) -> Snapshot:
    """
    Validate and parse a persisted document.

    Raises:
        SnapshotError: if the document does not match the schema, carries
            another schema version, or holds unparseable values
    """
    try:
        validate(instance=document, schema=load_schema())
    except ValidationError as e:
        location = ".".join(str(p) for p in e.path)
        raise SnapshotError(f"Invalid snapshot at '{location}': {e.message}") from e

    if document["version"] != version:
        raise SnapshotError(
            f"Snapshot version {document['version']} does not match expected version {version}"
        )

    state = document["state"]
    try:
        return Snapshot(
            vehicles=[_parse_vehicle(d) for d in state.get("vehicles") or []],
            drivers=[_parse_driver(d) for d in state.get("drivers") or []],
            reservations=[_parse_reservation(d) for d in state.get("reservations") or []],
            garage_records=[_parse_garage_record(d) for d in state.get("garageRecords") or []],
            spare_parts=[_parse_spare_part(d) for d in state.get("spareParts") or []],
            part_movements=[_parse_movement(d) for d in state.get("partMovements") or []],
        )
    except (KeyError, ValueError, TypeError) as e:
        raise SnapshotError(f"Unreadable snapshot value: {e}") from e


# =============================================================================
# Key-value backend
# =============================================================================


class YamlSnapshotBackend:
    """Stores one YAML document per storage name in a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}.yaml"

    def load(self, name: str) -> Optional[Dict[str, Any]]:
        """Read the raw document, or None when no snapshot exists yet."""
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            with open(path, "r") as fp:
                return yaml.load(fp, Loader=yaml.SafeLoader)
        except (OSError, yaml.YAMLError) as e:
            raise SnapshotError(f"Failed to read {path}: {e}") from e

    def save(self, name: str, document: Dict[str, Any]) -> None:
        """Write the document, replacing any previous snapshot."""
        path = self.path_for(name)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as fp:
                yaml.safe_dump(
                    document,
                    fp,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                    width=120,
                )
        except (OSError, yaml.YAMLError) as e:
            raise SnapshotError(f"Failed to write {path}: {e}") from e
        logger.debug("Saved snapshot %s", path)
