"""
Fleet operations state management.

This package keeps vehicles, drivers, reservations, garage interventions
and spare parts mutually consistent:
- Status enums: closed lifecycle states per entity
- Vehicle, Driver, Reservation, GarageRecord, SparePart: entity records
- calculations: derived statuses, garage costs, inspection urgency
- consistency: cascade rules applied on every mutation
- FleetStore: authoritative collections with snapshot persistence
- ReconciliationTask: periodic re-evaluation of time-dependent statuses
"""

from .status import (
    DriverStatus,
    GarageRecordStatus,
    GarageRecordType,
    InspectionStatus,
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
from .driver import Driver
from .reservation import Reservation
from .garage_record import GarageRecord, LaborCost, PartsCost, RepairItem, RepairPart
from .spare_part import PartMovement, PartUsage, SparePart, StockLevel
from .calculations import (
    as_utc,
    calc_cost_breakdown,
    calc_inspection_status,
    calc_next_inspection_date,
    calc_total_cost,
    count_by_status,
    derive_driver_status,
    derive_reservation_status,
    derive_spare_part_status,
)
from .consistency import CASCADE_RULES, Trigger, cascade, find_inconsistencies
from .loader import Snapshot, SnapshotError, YamlSnapshotBackend
from .store import FleetError, FleetStore, InsufficientStockError, SchedulingConflictError
from .reconcile import ReconciliationReport, ReconciliationTask, reconcile
from .config import Settings, configure_logging

__all__ = [
    "DriverStatus",
    "GarageRecordStatus",
    "GarageRecordType",
    "InspectionStatus",
    "MovementReason",
    "MovementType",
    "PartStatus",
    "Priority",
    "RepairStatus",
    "ReservationStatus",
    "SparePartStatus",
    "VehicleStatus",
    "Vehicle",
    "Driver",
    "Reservation",
    "GarageRecord",
    "LaborCost",
    "PartsCost",
    "RepairItem",
    "RepairPart",
    "PartMovement",
    "PartUsage",
    "SparePart",
    "StockLevel",
    "as_utc",
    "calc_cost_breakdown",
    "calc_inspection_status",
    "calc_next_inspection_date",
    "calc_total_cost",
    "count_by_status",
    "derive_driver_status",
    "derive_reservation_status",
    "derive_spare_part_status",
    "CASCADE_RULES",
    "Trigger",
    "cascade",
    "find_inconsistencies",
    "Snapshot",
    "SnapshotError",
    "YamlSnapshotBackend",
    "FleetError",
    "FleetStore",
    "InsufficientStockError",
    "SchedulingConflictError",
    "ReconciliationReport",
    "ReconciliationTask",
    "reconcile",
    "Settings",
    "configure_logging",
]
