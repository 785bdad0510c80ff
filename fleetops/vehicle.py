"""Vehicle dataclass for fleet identification and lifecycle state."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from .status import VehicleStatus


@dataclass
class Vehicle:
    """A fleet vehicle with owner details and document flags."""

    license_plate: str
    brand: str
    model: str
    year: int
    owner_name: Optional[str] = None
    owner_contact: Optional[str] = None
    insurance: bool = False
    registration: bool = False
    technical_inspection: bool = False
    last_inspection_date: Optional[date] = None
    next_inspection_date: Optional[date] = None
    id: Optional[str] = None
    status: VehicleStatus = VehicleStatus.PENDING_VALIDATION
    registration_date: Optional[datetime] = None

    @property
    def name(self) -> str:
        """Human-readable vehicle name."""
        return f"{self.brand} {self.model} ({self.license_plate})"

    @property
    def has_all_documents(self) -> bool:
        return self.insurance and self.registration and self.technical_inspection
