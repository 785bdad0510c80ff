"""Status derivations and cost, stock and inspection calculations."""

from collections import OrderedDict
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from .driver import Driver
from .garage_record import (
    DEFAULT_LABOR_RATE,
    GarageRecord,
    LaborCost,
    PartsCost,
    RepairItem,
)
from .reservation import Reservation
from .spare_part import SparePart
from .status import (
    DriverStatus,
    InspectionStatus,
    ReservationStatus,
    SparePartStatus,
)
from .vehicle import Vehicle


# =============================================================================
# Time
# =============================================================================


def as_utc(value: Optional[Union[date, datetime]]) -> Optional[datetime]:
    """Make a timestamp timezone-aware. Naive values and plain dates are taken as UTC."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Status derivation
# =============================================================================


def derive_driver_status(
    driver: Driver, reservations: Iterable[Reservation], now: datetime
) -> DriverStatus:
    """
    Compute a driver's status from reservations and license expiry.

    - ON_DUTY: an approved reservation for this driver spans ``now``
      (first match in collection order wins)
    - OFF_DUTY: license expired (from midnight UTC of the expiry date)
    - AVAILABLE: otherwise
    """
    for reservation in reservations:
        if (
            reservation.driver_id == driver.id
            and reservation.status == ReservationStatus.APPROVED
            and reservation.is_active_at(now)
        ):
            return DriverStatus.ON_DUTY
    if as_utc(driver.license_expiry) < now:
        return DriverStatus.OFF_DUTY
    return DriverStatus.AVAILABLE


def derive_reservation_status(
    reservation: Reservation, now: datetime
) -> ReservationStatus:
    """
    Promote an elapsed reservation to COMPLETED.

    Only ever moves toward COMPLETED. Terminal reservations (COMPLETED,
    REJECTED) keep their status, so a rejection is never rewritten as a
    completion once its window has passed.
    """
    if reservation.status.is_terminal:
        return reservation.status
    if now > reservation.end_date:
        return ReservationStatus.COMPLETED
    return reservation.status


def derive_spare_part_status(part: SparePart) -> SparePartStatus:
    """Stock status from current vs. minimum level. DISCONTINUED is sticky."""
    if part.status == SparePartStatus.DISCONTINUED:
        return SparePartStatus.DISCONTINUED
    if part.stock.current <= 0:
        return SparePartStatus.OUT_OF_STOCK
    if part.stock.current <= part.stock.minimum:
        return SparePartStatus.LOW_STOCK
    return SparePartStatus.AVAILABLE


# =============================================================================
# Garage costs
# =============================================================================


def calc_labor_cost(repair: RepairItem, rate_per_hour: float = DEFAULT_LABOR_RATE) -> float:
    return (repair.labor_hours or 0) * rate_per_hour


def calc_parts_cost(repair: RepairItem) -> float:
    return sum(part.quantity * part.unit_price for part in repair.parts)


def calc_repair_cost(repair: RepairItem, rate_per_hour: float = DEFAULT_LABOR_RATE) -> float:
    """Labor + parts + the repair's own extra cost."""
    return calc_labor_cost(repair, rate_per_hour) + calc_parts_cost(repair) + (repair.cost or 0)


def _labor_rate(record: GarageRecord) -> float:
    return record.labor_cost.rate_per_hour or DEFAULT_LABOR_RATE


def calc_total_cost(record: GarageRecord) -> float:
    """Total cost of an intervention: every repair plus additional costs."""
    rate = _labor_rate(record)
    repairs_cost = sum(calc_repair_cost(repair, rate) for repair in record.repairs)
    return repairs_cost + (record.cost or 0)


def calc_cost_breakdown(record: GarageRecord) -> Tuple[LaborCost, PartsCost]:
    """
    Recompute the labor and parts aggregates of a record.

    Labor hours are summed over repairs and priced at the record's rate.
    The parts subtotal sums every part line; the existing tax amount is
    kept and added to the total.
    """
    rate = _labor_rate(record)
    hours = sum(repair.labor_hours or 0 for repair in record.repairs)
    labor = LaborCost(hours=hours, rate_per_hour=rate, total=hours * rate)

    subtotal = sum(calc_parts_cost(repair) for repair in record.repairs)
    tax = record.parts_cost.tax or 0
    parts = PartsCost(subtotal=subtotal, tax=tax, total=subtotal + tax)
    return labor, parts


# =============================================================================
# Inspections
# =============================================================================


def calc_next_inspection_date(
    last_date: Optional[date], interval_months: Optional[float] = 12
) -> Optional[date]:
    """Calculate next inspection date: last + interval months."""
    if interval_months is None or last_date is None:
        return None
    months = int(interval_months)
    days = int((interval_months - months) * 30)
    return last_date + relativedelta(months=months, days=days)


def check_status(current: float, due: float, soon_threshold: float) -> InspectionStatus:
    """Determine status by comparing current value to due threshold."""
    if current >= due:
        return InspectionStatus.OVERDUE
    if current >= due - soon_threshold:
        return InspectionStatus.DUE_SOON
    return InspectionStatus.OK


def calc_inspection_status(
    vehicle: Vehicle, today: date, soon_days: int = 30
) -> InspectionStatus:
    """
    Technical inspection urgency for a vehicle.

    Uses ``next_inspection_date`` when set, else one year after
    ``last_inspection_date``. UNKNOWN when neither is recorded.
    """
    due = vehicle.next_inspection_date or calc_next_inspection_date(
        vehicle.last_inspection_date
    )
    if due is None:
        return InspectionStatus.UNKNOWN
    return check_status(today.toordinal(), due.toordinal(), soon_days)


# =============================================================================
# Analytics
# =============================================================================


def count_by_status(entities: Iterable) -> "OrderedDict":
    """Count entities per status, in order of first appearance."""
    counts: "OrderedDict" = OrderedDict()
    for entity in entities:
        counts[entity.status] = counts.get(entity.status, 0) + 1
    return counts
