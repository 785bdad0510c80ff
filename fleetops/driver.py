"""Driver dataclass."""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from .status import DriverStatus


@dataclass
class Driver:
    """
    A driver holding a license.

    ``status`` is maintained by the store from reservations and the
    license expiry; values passed in by callers are overwritten.
    """

    first_name: str
    last_name: str
    license_number: str
    license_expiry: date
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    has_license_image: bool = False
    has_medical_certificate: bool = False
    assigned_vehicle_id: Optional[str] = None
    id: Optional[str] = None
    status: DriverStatus = DriverStatus.AVAILABLE

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
