"""Spare part inventory entities."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .status import MovementReason, MovementType, SparePartStatus


@dataclass
class StockLevel:
    current: int = 0
    minimum: int = 0
    optimal: int = 0
    location: Optional[str] = None


@dataclass
class PartUsage:
    """A confirmed consumption of a part by a repair."""

    date: datetime
    quantity: int
    repair_id: str
    vehicle_id: Optional[str] = None


@dataclass
class SparePart:
    """An inventory item. ``status`` is derived from the stock levels."""

    reference: str
    name: str
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    stock: StockLevel = field(default_factory=StockLevel)
    purchase_price: float = 0
    retail_price: float = 0
    description: Optional[str] = None
    supplier_name: Optional[str] = None
    status: SparePartStatus = SparePartStatus.AVAILABLE
    usage: List[PartUsage] = field(default_factory=list)
    last_usage_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[str] = None


@dataclass
class PartMovement:
    """A stock movement in or out of the inventory."""

    part_id: str
    movement_type: MovementType
    quantity: int
    reason: MovementReason
    date: Optional[datetime] = None
    reference: Optional[str] = None
    price: float = 0
    notes: Optional[str] = None
    id: Optional[str] = None
