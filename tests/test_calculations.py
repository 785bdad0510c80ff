#!/usr/bin/env python3
"""Tests for status derivations and cost/inspection calculations."""
import pytest
from datetime import date, datetime, timedelta, timezone

from fleetops import (
    Driver,
    DriverStatus,
    GarageRecord,
    GarageRecordType,
    InspectionStatus,
    LaborCost,
    PartsCost,
    RepairItem,
    RepairPart,
    Reservation,
    ReservationStatus,
    SparePart,
    SparePartStatus,
    StockLevel,
    Vehicle,
    calc_cost_breakdown,
    calc_inspection_status,
    calc_next_inspection_date,
    calc_total_cost,
    count_by_status,
    derive_driver_status,
    derive_reservation_status,
    derive_spare_part_status,
)
from fleetops.calculations import calc_repair_cost, check_status

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_driver(license_expiry=date(2030, 1, 1)) -> Driver:
    return Driver(
        first_name="Awa",
        last_name="Diallo",
        license_number="LIC-1",
        license_expiry=license_expiry,
        id="d1",
    )


def make_reservation(status, start, end, driver_id="d1") -> Reservation:
    return Reservation(
        vehicle_id="v1",
        driver_id=driver_id,
        start_date=start,
        end_date=end,
        status=status,
        id="r1",
    )


class TestDeriveDriverStatus:
    """Tests for derive_driver_status."""

    def test_expired_license_no_reservations(self):
        """Expired license with nothing booked is off duty."""
        driver = make_driver(license_expiry=date(2020, 1, 1))
        assert derive_driver_status(driver, [], NOW) == DriverStatus.OFF_DUTY

    def test_on_duty_takes_precedence_over_expired_license(self):
        driver = make_driver(license_expiry=date(2020, 1, 1))
        r = make_reservation(
            ReservationStatus.APPROVED, NOW - timedelta(hours=1), NOW + timedelta(hours=1)
        )
        assert derive_driver_status(driver, [r], NOW) == DriverStatus.ON_DUTY

    def test_valid_license_no_reservations(self):
        assert derive_driver_status(make_driver(), [], NOW) == DriverStatus.AVAILABLE

    def test_license_expires_at_midnight_of_expiry_date(self):
        """By noon on the expiry date the license is no longer valid."""
        driver = make_driver(license_expiry=NOW.date())
        assert derive_driver_status(driver, [], NOW) == DriverStatus.OFF_DUTY

    def test_license_valid_at_exactly_midnight(self):
        driver = make_driver(license_expiry=NOW.date())
        midnight = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert derive_driver_status(driver, [], midnight) == DriverStatus.AVAILABLE
        assert derive_driver_status(driver, [], midnight + timedelta(seconds=1)) == DriverStatus.OFF_DUTY

    def test_pending_reservation_does_not_count(self):
        r = make_reservation(
            ReservationStatus.PENDING, NOW - timedelta(hours=1), NOW + timedelta(hours=1)
        )
        assert derive_driver_status(make_driver(), [r], NOW) == DriverStatus.AVAILABLE

    def test_future_approved_reservation_does_not_count(self):
        r = make_reservation(
            ReservationStatus.APPROVED, NOW + timedelta(hours=1), NOW + timedelta(hours=2)
        )
        assert derive_driver_status(make_driver(), [r], NOW) == DriverStatus.AVAILABLE

    def test_other_drivers_reservation_ignored(self):
        r = make_reservation(
            ReservationStatus.APPROVED,
            NOW - timedelta(hours=1),
            NOW + timedelta(hours=1),
            driver_id="d2",
        )
        assert derive_driver_status(make_driver(), [r], NOW) == DriverStatus.AVAILABLE


class TestDeriveReservationStatus:
    """Tests for derive_reservation_status."""

    @pytest.mark.parametrize("status", [ReservationStatus.PENDING, ReservationStatus.APPROVED])
    def test_elapsed_becomes_completed(self, status):
        r = make_reservation(status, NOW - timedelta(hours=2), NOW - timedelta(hours=1))
        assert derive_reservation_status(r, NOW) == ReservationStatus.COMPLETED

    def test_running_keeps_status(self):
        r = make_reservation(
            ReservationStatus.APPROVED, NOW - timedelta(hours=1), NOW + timedelta(hours=1)
        )
        assert derive_reservation_status(r, NOW) == ReservationStatus.APPROVED

    def test_end_instant_is_not_elapsed(self):
        r = make_reservation(ReservationStatus.APPROVED, NOW - timedelta(hours=1), NOW)
        assert derive_reservation_status(r, NOW) == ReservationStatus.APPROVED

    def test_rejected_is_never_promoted(self):
        """A rejection stays a rejection once its window has passed."""
        r = make_reservation(
            ReservationStatus.REJECTED, NOW - timedelta(hours=2), NOW - timedelta(hours=1)
        )
        assert derive_reservation_status(r, NOW) == ReservationStatus.REJECTED

    def test_completed_stays_completed(self):
        r = make_reservation(
            ReservationStatus.COMPLETED, NOW + timedelta(hours=1), NOW + timedelta(hours=2)
        )
        assert derive_reservation_status(r, NOW) == ReservationStatus.COMPLETED


class TestDeriveSparePartStatus:
    """Tests for derive_spare_part_status."""

    def make_part(self, current, minimum=5, status=SparePartStatus.AVAILABLE) -> SparePart:
        return SparePart(
            reference="BP-01",
            name="Brake pads",
            stock=StockLevel(current=current, minimum=minimum, optimal=20),
            status=status,
        )

    def test_available(self):
        assert derive_spare_part_status(self.make_part(10)) == SparePartStatus.AVAILABLE

    def test_low_stock_at_minimum(self):
        assert derive_spare_part_status(self.make_part(5)) == SparePartStatus.LOW_STOCK

    def test_out_of_stock(self):
        assert derive_spare_part_status(self.make_part(0)) == SparePartStatus.OUT_OF_STOCK

    def test_discontinued_is_sticky(self):
        part = self.make_part(10, status=SparePartStatus.DISCONTINUED)
        assert derive_spare_part_status(part) == SparePartStatus.DISCONTINUED


class TestGarageCosts:
    """Tests for repair and record cost calculations."""

    def make_record(self, rate=50.0, extra=0, tax=0) -> GarageRecord:
        repairs = [
            RepairItem(
                description="Brake pads",
                labor_hours=2,
                cost=10,
                parts=[RepairPart(part_id="p1", quantity=2, unit_price=25.0)],
            ),
            RepairItem(description="Inspection", labor_hours=1),
        ]
        return GarageRecord(
            vehicle_id="v1",
            record_type=GarageRecordType.REPAIR,
            repairs=repairs,
            labor_cost=LaborCost(rate_per_hour=rate),
            parts_cost=PartsCost(tax=tax),
            cost=extra,
        )

    def test_repair_cost(self):
        """Labor + parts + extra cost."""
        record = self.make_record()
        assert calc_repair_cost(record.repairs[0], 50.0) == 2 * 50 + 2 * 25 + 10

    def test_total_cost_uses_record_rate(self):
        record = self.make_record(rate=50.0, extra=15)
        assert calc_total_cost(record) == (100 + 50 + 10) + 50 + 15

    def test_total_cost_default_rate(self):
        record = self.make_record(rate=0)
        assert calc_total_cost(record) == (120 + 50 + 10) + 60

    def test_empty_record(self):
        record = GarageRecord(vehicle_id="v1", record_type=GarageRecordType.DIAGNOSTIC)
        assert calc_total_cost(record) == 0

    def test_cost_breakdown(self):
        labor, parts = calc_cost_breakdown(self.make_record(rate=50.0, tax=5))
        assert labor.hours == 3
        assert labor.rate_per_hour == 50.0
        assert labor.total == 150
        assert parts.subtotal == 50
        assert parts.tax == 5
        assert parts.total == 55


class TestCalcNextInspectionDate:
    """Tests for calc_next_inspection_date."""

    def test_default_one_year(self):
        assert calc_next_inspection_date(date(2024, 5, 10)) == date(2025, 5, 10)

    def test_fractional_months(self):
        """Handles fractional months (converted to days)."""
        assert calc_next_inspection_date(date(2025, 1, 15), 7.5) == date(2025, 8, 30)

    def test_no_last_date(self):
        assert calc_next_inspection_date(None) is None

    def test_no_interval(self):
        assert calc_next_inspection_date(date(2025, 1, 15), None) is None


class TestCheckStatus:
    """Tests for check_status."""

    def test_overdue(self):
        assert check_status(100, 100, 10) == InspectionStatus.OVERDUE
        assert check_status(110, 100, 10) == InspectionStatus.OVERDUE

    def test_due_soon(self):
        assert check_status(90, 100, 10) == InspectionStatus.DUE_SOON

    def test_ok(self):
        assert check_status(89, 100, 10) == InspectionStatus.OK


class TestCalcInspectionStatus:
    """Tests for calc_inspection_status."""

    def make_vehicle(self, **kwargs) -> Vehicle:
        return Vehicle(license_plate="AB-123-CD", brand="Renault", model="Clio", year=2021, **kwargs)

    def test_unknown_without_dates(self):
        assert calc_inspection_status(self.make_vehicle(), date(2025, 1, 1)) == InspectionStatus.UNKNOWN

    def test_next_date_takes_precedence(self):
        vehicle = self.make_vehicle(
            last_inspection_date=date(2020, 1, 1),
            next_inspection_date=date(2025, 6, 1),
        )
        assert calc_inspection_status(vehicle, date(2025, 1, 1)) == InspectionStatus.OK

    def test_due_soon_from_last_date(self):
        vehicle = self.make_vehicle(last_inspection_date=date(2024, 1, 20))
        assert calc_inspection_status(vehicle, date(2025, 1, 1)) == InspectionStatus.DUE_SOON

    def test_overdue(self):
        vehicle = self.make_vehicle(next_inspection_date=date(2024, 12, 1))
        assert calc_inspection_status(vehicle, date(2025, 1, 1)) == InspectionStatus.OVERDUE


class TestCountByStatus:
    """Tests for count_by_status."""

    def test_counts_in_first_seen_order(self):
        reservations = [
            make_reservation(ReservationStatus.APPROVED, NOW, NOW),
            make_reservation(ReservationStatus.PENDING, NOW, NOW),
            make_reservation(ReservationStatus.APPROVED, NOW, NOW),
        ]
        counts = count_by_status(reservations)
        assert list(counts.items()) == [
            (ReservationStatus.APPROVED, 2),
            (ReservationStatus.PENDING, 1),
        ]

    def test_empty(self):
        assert count_by_status([]) == {}
