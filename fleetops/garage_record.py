"""Garage intervention records and their repair line items."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .status import (
    GarageRecordStatus,
    GarageRecordType,
    PartStatus,
    Priority,
    RepairStatus,
)

DEFAULT_LABOR_RATE = 60.0


@dataclass
class RepairPart:
    """A spare part consumed by a repair item."""

    part_id: str
    quantity: int
    unit_price: float
    status: PartStatus = PartStatus.PENDING
    reserved_at: Optional[datetime] = None
    used_at: Optional[datetime] = None


@dataclass
class RepairItem:
    """One repair inside a garage record, with its own progress status."""

    description: str
    labor_hours: float = 0
    cost: float = 0
    parts: List[RepairPart] = field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    status: RepairStatus = RepairStatus.PENDING
    id: Optional[str] = None


@dataclass
class LaborCost:
    hours: float = 0
    rate_per_hour: float = DEFAULT_LABOR_RATE
    total: float = 0


@dataclass
class PartsCost:
    subtotal: float = 0
    tax: float = 0
    total: float = 0


@dataclass
class GarageRecord:
    """
    A diagnostic, repair or maintenance intervention on a vehicle.

    While a record is open (anything but COMPLETED) its vehicle is
    expected to stay in maintenance.
    """

    vehicle_id: str
    record_type: GarageRecordType
    description: str = ""
    repairs: List[RepairItem] = field(default_factory=list)
    status: GarageRecordStatus = GarageRecordStatus.PENDING
    labor_cost: LaborCost = field(default_factory=LaborCost)
    parts_cost: PartsCost = field(default_factory=PartsCost)
    cost: float = 0
    customer_name: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status != GarageRecordStatus.COMPLETED

    def get_repair(self, repair_id: str) -> Optional[RepairItem]:
        """Find a repair item by id."""
        for repair in self.repairs:
            if repair.id == repair_id:
                return repair
        return None
