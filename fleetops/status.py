"""Status and type enums for fleet entities."""

from enum import Enum


class VehicleStatus(Enum):
    """Vehicle lifecycle states."""

    PENDING_VALIDATION = "pending_validation"
    ACTIVE = "active"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"
    INACTIVE = "inactive"


class DriverStatus(Enum):
    """Driver availability. Always derived, never set directly."""

    AVAILABLE = "available"
    ON_DUTY = "on_duty"
    OFF_DUTY = "off_duty"


class ReservationStatus(Enum):
    """Reservation states. COMPLETED and REJECTED are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (ReservationStatus.COMPLETED, ReservationStatus.REJECTED)


class GarageRecordType(Enum):
    DIAGNOSTIC = "diagnostic"
    REPAIR = "repair"
    MAINTENANCE = "maintenance"


class GarageRecordStatus(Enum):
    """Aggregate state of a garage intervention."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    WAITING_PARTS = "waiting_parts"


class RepairStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    WAITING_PARTS = "waiting_parts"
    COMPLETED = "completed"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PartStatus(Enum):
    """State of a part line attached to a repair item."""

    PENDING = "pending"
    RESERVED = "reserved"
    USED = "used"
    RETURNED = "returned"


class SparePartStatus(Enum):
    AVAILABLE = "available"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    DISCONTINUED = "discontinued"


class MovementType(Enum):
    IN = "in"
    OUT = "out"


class MovementReason(Enum):
    PURCHASE = "purchase"
    REPAIR = "repair"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    LOSS = "loss"


class InspectionStatus(Enum):
    """Technical inspection urgency. Lower value = more urgent."""

    OVERDUE = 1
    DUE_SOON = 2
    OK = 3
    UNKNOWN = 4  # No inspection date recorded
