#!/usr/bin/env python3
"""
Unified CLI for fleet operations.

Commands:
  status              - Fleet overview and consistency check
  vehicles            - List vehicles
  drivers             - List drivers
  reservations        - List reservations
  garage              - List garage interventions with costs
  parts               - List spare parts inventory
  add-vehicle         - Register a vehicle
  set-vehicle-status  - Validate, deactivate or otherwise change a vehicle
  add-driver          - Register a driver
  reserve             - Create a reservation
  approve / reject    - Validate a reservation
  open-garage         - Open a garage intervention on a vehicle
  garage-status       - Move an intervention through its lifecycle
  reconcile           - Re-evaluate time-dependent statuses once
  watch               - Reconcile periodically until interrupted
"""

import argparse
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, List, Optional

from dateutil.parser import isoparse
from tabulate import tabulate

from fleetops import (
    Driver,
    FleetError,
    FleetStore,
    GarageRecord,
    GarageRecordStatus,
    GarageRecordType,
    LaborCost,
    Reservation,
    ReservationStatus,
    ReconciliationTask,
    Settings,
    Vehicle,
    VehicleStatus,
    YamlSnapshotBackend,
    as_utc,
    calc_inspection_status,
    calc_total_cost,
    configure_logging,
    count_by_status,
    find_inconsistencies,
    reconcile,
)
from fleetops.reconcile import plan_reconciliation

# =============================================================================
# Formatting helpers
# =============================================================================


def short_id(entity_id: Optional[str]) -> str:
    """First 8 characters of an id, for tables."""
    return entity_id[:8] if entity_id else "-"


def format_date(value) -> str:
    """Format a date or datetime for display."""
    if value is None:
        return "-"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    return value.isoformat()


def format_cost(cost: Optional[float]) -> str:
    """Format cost for display."""
    return f"{cost:,.2f}" if cost is not None else "-"


def format_status(status) -> str:
    return status.value.replace("_", " ") if status is not None else "-"


def truncate(text: Optional[str], max_len: int = 30) -> str:
    """Truncate text with ellipsis if too long."""
    if text is None:
        return "-"
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def parse_datetime(text: str) -> datetime:
    """Parse an ISO date/time; naive values are taken as UTC."""
    return as_utc(isoparse(text))


def resolve_id(candidates: Iterable[str], text: str) -> Optional[str]:
    """Match a full id or a unique id prefix."""
    candidates = list(candidates)
    if text in candidates:
        return text
    matches = [c for c in candidates if c.startswith(text)]
    if len(matches) == 1:
        return matches[0]
    return None


# =============================================================================
# Tables
# =============================================================================


def make_vehicle_table(vehicles: List[Vehicle], today: date) -> List[List[str]]:
    """Convert vehicles to table rows."""
    rows = []
    for vehicle in vehicles:
        rows.append(
            [
                short_id(vehicle.id),
                vehicle.license_plate,
                f"{vehicle.brand} {vehicle.model}",
                vehicle.year,
                format_status(vehicle.status),
                vehicle.owner_name or "-",
                calc_inspection_status(vehicle, today).name.replace("_", " "),
            ]
        )
    return rows


def make_driver_table(drivers: List[Driver]) -> List[List[str]]:
    rows = []
    for driver in drivers:
        rows.append(
            [
                short_id(driver.id),
                driver.full_name,
                driver.license_number,
                format_date(driver.license_expiry),
                format_status(driver.status),
            ]
        )
    return rows


def make_reservation_table(reservations: List[Reservation], store: FleetStore) -> List[List[str]]:
    """Convert reservations to table rows, resolving vehicle and driver names."""
    rows = []
    for reservation in reservations:
        vehicle = store.get_vehicle(reservation.vehicle_id)
        driver = store.get_driver(reservation.driver_id)
        rows.append(
            [
                short_id(reservation.id),
                vehicle.license_plate if vehicle else "unknown vehicle",
                driver.full_name if driver else "unknown driver",
                format_date(reservation.start_date),
                format_date(reservation.end_date),
                format_status(reservation.status),
                reservation.validated_by or "-",
            ]
        )
    return rows


def make_garage_table(records: List[GarageRecord], store: FleetStore) -> List[List[str]]:
    rows = []
    for record in records:
        vehicle = store.get_vehicle(record.vehicle_id)
        rows.append(
            [
                short_id(record.id),
                vehicle.license_plate if vehicle else "unknown vehicle",
                record.record_type.value,
                format_status(record.status),
                len(record.repairs),
                format_cost(calc_total_cost(record)),
                format_date(record.created_at),
                truncate(record.description),
            ]
        )
    return rows


def make_status_counts_table(entities) -> List[List[str]]:
    return [[format_status(status), count] for status, count in count_by_status(entities).items()]


# =============================================================================
# Store access
# =============================================================================


def open_store(args) -> FleetStore:
    backend = YamlSnapshotBackend(args.data_dir)
    store = FleetStore(backend=backend, storage_name=args.settings.storage_name)
    store.load()
    return store


def report_save(store: FleetStore) -> int:
    """Exit code after a mutation: 1 if the snapshot could not be written."""
    if store.error:
        print(f"Warning: changes not saved: {store.error}")
        return 1
    return 0


def find_or_report(candidates: Iterable[str], text: str, kind: str) -> Optional[str]:
    entity_id = resolve_id(candidates, text)
    if entity_id is None:
        print(f"Error: Unknown or ambiguous {kind} id '{text}'")
    return entity_id


# =============================================================================
# Listing commands
# =============================================================================


def cmd_status(store: FleetStore, args) -> int:
    """Fleet overview and consistency check."""
    now = store.now()
    vehicles = store.vehicles
    drivers = store.drivers
    reservations = store.reservations
    open_records = [r for r in store.garage_records if r.is_open]
    low_parts = [p for p in store.spare_parts if p.stock.current <= p.stock.minimum]

    print(f"As of: {format_date(now)}")
    print(f"Vehicles: {len(vehicles)} ({len(store.get_available_vehicles())} available)")
    print(f"Drivers: {len(drivers)}")
    print(f"Reservations: {len(reservations)}")
    print(f"Open garage records: {len(open_records)}")
    print(f"Parts at or below minimum stock: {len(low_parts)}")
    print()

    for title, entities in (
        ("VEHICLES", vehicles),
        ("DRIVERS", drivers),
        ("RESERVATIONS", reservations),
    ):
        if entities:
            print(f"{title}:")
            print(tabulate(make_status_counts_table(entities), headers=["Status", "Count"], tablefmt="simple"))
            print()

    problems = find_inconsistencies(store, now)
    if problems:
        print("INCONSISTENCIES:")
        for problem in problems:
            print(f"  {problem}")
        return 1
    print("No inconsistencies found.")
    return 0


def cmd_vehicles(store: FleetStore, args) -> int:
    vehicles = store.get_available_vehicles() if args.available else store.vehicles
    if not vehicles:
        print("No vehicles found.")
        return 0
    headers = ["Id", "Plate", "Vehicle", "Year", "Status", "Owner", "Inspection"]
    print(tabulate(make_vehicle_table(vehicles, store.now().date()), headers=headers, tablefmt="simple"))
    return 0


def cmd_drivers(store: FleetStore, args) -> int:
    drivers = store.drivers
    if not drivers:
        print("No drivers found.")
        return 0
    headers = ["Id", "Name", "License", "Expires", "Status"]
    print(tabulate(make_driver_table(drivers), headers=headers, tablefmt="simple"))
    return 0


def cmd_reservations(store: FleetStore, args) -> int:
    reservations = sorted(store.reservations, key=lambda r: r.start_date)
    if args.status:
        reservations = [r for r in reservations if r.status.value == args.status]
    if not reservations:
        print("No reservations found.")
        return 0
    headers = ["Id", "Vehicle", "Driver", "Start", "End", "Status", "Validated By"]
    print(tabulate(make_reservation_table(reservations, store), headers=headers, tablefmt="simple"))
    return 0


def cmd_garage(store: FleetStore, args) -> int:
    records = store.garage_records
    if args.type:
        records = [r for r in records if r.record_type.value == args.type]
    if args.status:
        records = [r for r in records if r.status.value == args.status]
    if not records:
        print("No garage records found.")
        return 0

    total = sum(calc_total_cost(r) for r in records)
    headers = ["Id", "Vehicle", "Type", "Status", "Repairs", "Total Cost", "Opened", "Description"]
    print(tabulate(make_garage_table(records, store), headers=headers, tablefmt="simple"))
    print()
    print(f"Total cost: {format_cost(total)}")
    return 0


def cmd_parts(store: FleetStore, args) -> int:
    parts = sorted(store.spare_parts, key=lambda p: p.name)
    if not parts:
        print("No spare parts found.")
        return 0
    rows = [
        [
            p.reference,
            truncate(p.name),
            p.stock.current,
            f"{p.stock.minimum} / {p.stock.optimal}",
            format_cost(p.retail_price),
            format_status(p.status),
        ]
        for p in parts
    ]
    headers = ["Reference", "Name", "Stock", "Min / Optimal", "Price", "Status"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))
    return 0


# =============================================================================
# Mutation commands
# =============================================================================


def cmd_add_vehicle(store: FleetStore, args) -> int:
    vehicle = store.add_vehicle(
        Vehicle(
            license_plate=args.license_plate,
            brand=args.brand,
            model=args.model,
            year=args.year,
            owner_name=args.owner,
            owner_contact=args.contact,
        )
    )
    print(f"Added vehicle {vehicle.name} as {vehicle.id} (pending validation)")
    return report_save(store)


def cmd_set_vehicle_status(store: FleetStore, args) -> int:
    vehicle_id = find_or_report([v.id for v in store.vehicles], args.vehicle_id, "vehicle")
    if vehicle_id is None:
        return 1
    rejected_before = {r.id for r in store.reservations if r.status == ReservationStatus.REJECTED}
    vehicle = store.update_vehicle(vehicle_id, status=VehicleStatus(args.status))
    print(f"Vehicle {vehicle.name} is now {format_status(vehicle.status)}")
    rejected = [
        r for r in store.reservations_for_vehicle(vehicle_id)
        if r.status == ReservationStatus.REJECTED and r.id not in rejected_before
    ]
    if rejected:
        print(f"Rejected {len(rejected)} reservation(s) for this vehicle")
    return report_save(store)


def cmd_add_driver(store: FleetStore, args) -> int:
    driver = store.add_driver(
        Driver(
            first_name=args.first_name,
            last_name=args.last_name,
            license_number=args.license_number,
            license_expiry=date.fromisoformat(args.license_expiry),
            phone=args.phone,
            email=args.email,
        )
    )
    print(f"Added driver {driver.full_name} as {driver.id} ({format_status(driver.status)})")
    return report_save(store)


def cmd_reserve(store: FleetStore, args) -> int:
    vehicle_id = find_or_report([v.id for v in store.vehicles], args.vehicle_id, "vehicle")
    driver_id = find_or_report([d.id for d in store.drivers], args.driver_id, "driver")
    if vehicle_id is None or driver_id is None:
        return 1

    start = parse_datetime(args.start)
    end = parse_datetime(args.end)
    if end <= start:
        print("Error: end must be after start")
        return 1

    reservation = store.add_reservation(
        Reservation(
            vehicle_id=vehicle_id,
            driver_id=driver_id,
            start_date=start,
            end_date=end,
            purpose=args.purpose,
        )
    )
    print(f"Created reservation {reservation.id} (pending)")
    return report_save(store)


def cmd_validate(store: FleetStore, args) -> int:
    """Approve or reject a reservation."""
    reservation_id = find_or_report(
        [r.id for r in store.reservations], args.reservation_id, "reservation"
    )
    if reservation_id is None:
        return 1
    if args.command == "approve":
        reservation = store.approve_reservation(reservation_id, validator=args.by)
    else:
        reservation = store.reject_reservation(reservation_id, validator=args.by)
    vehicle = store.get_vehicle(reservation.vehicle_id)
    print(f"Reservation {short_id(reservation.id)} is now {format_status(reservation.status)}")
    if vehicle:
        print(f"Vehicle {vehicle.name} is {format_status(vehicle.status)}")
    return report_save(store)


def cmd_open_garage(store: FleetStore, args) -> int:
    vehicle_id = find_or_report([v.id for v in store.vehicles], args.vehicle_id, "vehicle")
    if vehicle_id is None:
        return 1
    record = store.add_garage_record(
        GarageRecord(
            vehicle_id=vehicle_id,
            record_type=GarageRecordType(args.type),
            description=args.description or "",
            labor_cost=LaborCost(rate_per_hour=args.settings.labor_rate),
            customer_name=args.customer,
        )
    )
    print(f"Opened {record.record_type.value} record {record.id}; vehicle is in maintenance")
    return report_save(store)


def cmd_garage_status(store: FleetStore, args) -> int:
    record_id = find_or_report([r.id for r in store.garage_records], args.record_id, "garage record")
    if record_id is None:
        return 1
    record = store.update_garage_record(record_id, status=GarageRecordStatus(args.status))
    vehicle = store.get_vehicle(record.vehicle_id)
    print(f"Garage record {short_id(record.id)} is now {format_status(record.status)}")
    if vehicle:
        print(f"Vehicle {vehicle.name} is {format_status(vehicle.status)}")
    return report_save(store)


# =============================================================================
# Reconciliation commands
# =============================================================================


def cmd_reconcile(store: FleetStore, args) -> int:
    plan = plan_reconciliation(store)
    for reservation, status in plan:
        print(f"  Reservation {short_id(reservation.id)}: {format_status(reservation.status)} -> {format_status(status)}")

    if args.dry_run:
        print(f"{len(plan)} reservation(s) would change")
        print("(dry run - no changes made)")
        return 0

    report = reconcile(store)
    print(
        f"Completed {len(report.completed_reservations)} reservation(s), "
        f"updated {len(report.updated_drivers)} driver(s)"
    )
    return report_save(store)


def cmd_watch(store: FleetStore, args) -> int:
    interval = args.interval or args.settings.reconcile_interval
    task = ReconciliationTask(store, interval=interval)
    print(f"Reconciling every {interval:g}s (Ctrl-C to stop)")
    try:
        task.start()
        task.run()
    except KeyboardInterrupt:
        print()
    finally:
        task.stop()
        store.close()
    print(f"Stopped after {task.runs} run(s)")
    return report_save(store)


COMMANDS = {
    "status": cmd_status,
    "vehicles": cmd_vehicles,
    "drivers": cmd_drivers,
    "reservations": cmd_reservations,
    "garage": cmd_garage,
    "parts": cmd_parts,
    "add-vehicle": cmd_add_vehicle,
    "set-vehicle-status": cmd_set_vehicle_status,
    "add-driver": cmd_add_driver,
    "reserve": cmd_reserve,
    "approve": cmd_validate,
    "reject": cmd_validate,
    "open-garage": cmd_open_garage,
    "garage-status": cmd_garage_status,
    "reconcile": cmd_reconcile,
    "watch": cmd_watch,
}


# =============================================================================
# Main
# =============================================================================


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fleet operations manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s add-vehicle AB-123-CD Renault Clio 2021 --owner "Fleet Co"
  %(prog)s set-vehicle-status 3f2a active
  %(prog)s add-driver Awa Diallo LIC-0042 2027-06-30
  %(prog)s reserve 3f2a 91c0 2025-03-01T08:00 2025-03-01T18:00
  %(prog)s approve 7d1e --by dispatch
  %(prog)s open-garage 3f2a --type repair --description "Brake noise"
  %(prog)s reconcile --dry-run
  %(prog)s status
""",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=settings.data_dir,
        help=f"Directory holding the fleet snapshot (default: {settings.data_dir})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log store activity",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Fleet overview and consistency check")

    vehicles_parser = subparsers.add_parser("vehicles", help="List vehicles")
    vehicles_parser.add_argument(
        "--available",
        action="store_true",
        help="Only vehicles that can be reserved (active or pending validation)",
    )

    subparsers.add_parser("drivers", help="List drivers")

    reservations_parser = subparsers.add_parser("reservations", help="List reservations")
    reservations_parser.add_argument(
        "--status",
        choices=[s.value for s in ReservationStatus],
        help="Filter by status",
    )

    garage_parser = subparsers.add_parser("garage", help="List garage interventions")
    garage_parser.add_argument(
        "--type",
        choices=[t.value for t in GarageRecordType],
        help="Filter by intervention type",
    )
    garage_parser.add_argument(
        "--status",
        choices=[s.value for s in GarageRecordStatus],
        help="Filter by status",
    )

    subparsers.add_parser("parts", help="List spare parts inventory")

    add_vehicle_parser = subparsers.add_parser("add-vehicle", help="Register a vehicle")
    add_vehicle_parser.add_argument("license_plate", type=str)
    add_vehicle_parser.add_argument("brand", type=str)
    add_vehicle_parser.add_argument("model", type=str)
    add_vehicle_parser.add_argument("year", type=int)
    add_vehicle_parser.add_argument("--owner", type=str, help="Owner name")
    add_vehicle_parser.add_argument("--contact", type=str, help="Owner contact")

    vehicle_status_parser = subparsers.add_parser(
        "set-vehicle-status", help="Change a vehicle's status"
    )
    vehicle_status_parser.add_argument("vehicle_id", type=str, help="Vehicle id or unique prefix")
    vehicle_status_parser.add_argument("status", choices=[s.value for s in VehicleStatus])

    add_driver_parser = subparsers.add_parser("add-driver", help="Register a driver")
    add_driver_parser.add_argument("first_name", type=str)
    add_driver_parser.add_argument("last_name", type=str)
    add_driver_parser.add_argument("license_number", type=str)
    add_driver_parser.add_argument("license_expiry", type=str, help="YYYY-MM-DD")
    add_driver_parser.add_argument("--phone", type=str)
    add_driver_parser.add_argument("--email", type=str)

    reserve_parser = subparsers.add_parser("reserve", help="Create a reservation")
    reserve_parser.add_argument("vehicle_id", type=str, help="Vehicle id or unique prefix")
    reserve_parser.add_argument("driver_id", type=str, help="Driver id or unique prefix")
    reserve_parser.add_argument("start", type=str, help="Start (ISO date/time, UTC if no offset)")
    reserve_parser.add_argument("end", type=str, help="End (ISO date/time, UTC if no offset)")
    reserve_parser.add_argument("--purpose", type=str)

    for name, verb in (("approve", "Approve"), ("reject", "Reject")):
        validate_parser = subparsers.add_parser(name, help=f"{verb} a reservation")
        validate_parser.add_argument("reservation_id", type=str, help="Reservation id or unique prefix")
        validate_parser.add_argument("--by", type=str, help="Validator name")

    open_garage_parser = subparsers.add_parser("open-garage", help="Open a garage intervention")
    open_garage_parser.add_argument("vehicle_id", type=str, help="Vehicle id or unique prefix")
    open_garage_parser.add_argument(
        "--type",
        choices=[t.value for t in GarageRecordType],
        default=GarageRecordType.DIAGNOSTIC.value,
        help="Intervention type (default: diagnostic)",
    )
    open_garage_parser.add_argument("--description", type=str)
    open_garage_parser.add_argument("--customer", type=str, help="Customer name")

    garage_status_parser = subparsers.add_parser(
        "garage-status", help="Change a garage intervention's status"
    )
    garage_status_parser.add_argument("record_id", type=str, help="Record id or unique prefix")
    garage_status_parser.add_argument("status", choices=[s.value for s in GarageRecordStatus])

    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Re-evaluate time-dependent statuses once"
    )
    reconcile_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without saving",
    )

    watch_parser = subparsers.add_parser("watch", help="Reconcile periodically")
    watch_parser.add_argument(
        "--interval",
        type=float,
        help=f"Seconds between runs (default: {settings.reconcile_interval:g})",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    settings = Settings.from_env()
    args = build_parser(settings).parse_args(argv)
    args.settings = settings
    configure_logging("INFO" if args.verbose else settings.log_level)

    store = open_store(args)
    if store.error:
        print(f"Error: {store.error}")
        return 1

    try:
        return COMMANDS[args.command](store, args)
    except FleetError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
