"""Reservation dataclass linking a vehicle, a driver and a time window."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .status import ReservationStatus


@dataclass
class Reservation:
    """A booking of a vehicle by a driver between two instants."""

    vehicle_id: str
    driver_id: str
    start_date: datetime
    end_date: datetime
    status: ReservationStatus = ReservationStatus.PENDING
    purpose: Optional[str] = None
    notes: Optional[str] = None
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_active_at(self, now: datetime) -> bool:
        """Check if ``now`` falls inside the window (both ends inclusive)."""
        return self.start_date <= now <= self.end_date

    def overlaps(self, other: "Reservation") -> bool:
        return self.start_date <= other.end_date and other.start_date <= self.end_date
