"""
The fleet store: sole owner of every entity collection.

Every mutation follows the same path: build the new entity, ask the
consistency engine for cascade effects, commit entity and effects
together, re-derive affected driver statuses, persist a snapshot, then
notify listeners. Validation errors are raised before anything is
committed, so a mutation is applied entirely or not at all.

Mutations addressing an unknown id are no-ops and return None.
"""

import copy
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple
from uuid import uuid4

from .calculations import (
    as_utc,
    calc_cost_breakdown,
    derive_driver_status,
    derive_spare_part_status,
)
from .config import DEFAULT_STORAGE_NAME, SCHEMA_VERSION
from .consistency import RESERVATIONS, VEHICLES, Trigger, cascade
from .driver import Driver
from .garage_record import GarageRecord, RepairItem, RepairPart
from .loader import Snapshot, SnapshotError, snapshot_from_document, snapshot_to_document
from .reservation import Reservation
from .spare_part import PartMovement, PartUsage, SparePart
from .status import (
    GarageRecordStatus,
    MovementReason,
    MovementType,
    PartStatus,
    ReservationStatus,
    VehicleStatus,
)
from .vehicle import Vehicle

logger = logging.getLogger(__name__)

DRIVERS = "drivers"
GARAGE_RECORDS = "garage_records"
SPARE_PARTS = "spare_parts"
PART_MOVEMENTS = "part_movements"

AVAILABLE_VEHICLE_STATUSES = (VehicleStatus.ACTIVE, VehicleStatus.PENDING_VALIDATION)

# Fields that may change which entities a reservation conflicts with
_SCHEDULE_FIELDS = ("status", "start_date", "end_date", "driver_id", "vehicle_id")

_TIMESTAMP_FIELDS = ("start_date", "end_date", "validated_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class FleetError(Exception):
    """Base class for rejected store mutations."""


class SchedulingConflictError(FleetError):
    """An approved reservation would overlap another approved one."""


class InsufficientStockError(FleetError):
    """Not enough spare parts in stock for a movement out."""


class FleetStore:
    """In-memory fleet state with cascading status rules and snapshot persistence."""

    def __init__(
        self,
        backend=None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
        storage_name: str = DEFAULT_STORAGE_NAME,
        version: int = SCHEMA_VERSION,
    ):
        self._backend = backend
        self._clock = clock
        self._new_id = id_factory
        self.storage_name = storage_name
        self.version = version
        self.error: Optional[str] = None
        self.is_loading = False
        self._listeners: List[Callable[["FleetStore"], None]] = []
        self._reset(Snapshot())

    # =========================================================================
    # State and indexes
    # =========================================================================

    def _reset(self, snapshot: Snapshot) -> None:
        self._vehicles: Dict[str, Vehicle] = {v.id: v for v in snapshot.vehicles}
        self._drivers: Dict[str, Driver] = {d.id: d for d in snapshot.drivers}
        self._reservations: Dict[str, Reservation] = {}
        self._garage_records: Dict[str, GarageRecord] = {}
        self._spare_parts: Dict[str, SparePart] = {p.id: p for p in snapshot.spare_parts}
        self._part_movements: Dict[str, PartMovement] = {
            m.id: m for m in snapshot.part_movements
        }
        self._reservations_by_vehicle: Dict[str, List[str]] = defaultdict(list)
        self._reservations_by_driver: Dict[str, List[str]] = defaultdict(list)
        self._records_by_vehicle: Dict[str, List[str]] = defaultdict(list)
        for reservation in snapshot.reservations:
            self._put(RESERVATIONS, reservation)
        for record in snapshot.garage_records:
            self._put(GARAGE_RECORDS, record)

    def _collection(self, name: str) -> Dict[str, Any]:
        return {
            VEHICLES: self._vehicles,
            DRIVERS: self._drivers,
            RESERVATIONS: self._reservations,
            GARAGE_RECORDS: self._garage_records,
            SPARE_PARTS: self._spare_parts,
            PART_MOVEMENTS: self._part_movements,
        }[name]

    def _put(self, name: str, entity) -> None:
        """Store an entity, keeping the vehicle/driver indexes current."""
        collection = self._collection(name)
        previous = collection.get(entity.id)
        if name == RESERVATIONS:
            if previous is not None:
                self._reservations_by_vehicle[previous.vehicle_id].remove(entity.id)
                self._reservations_by_driver[previous.driver_id].remove(entity.id)
            self._reservations_by_vehicle[entity.vehicle_id].append(entity.id)
            self._reservations_by_driver[entity.driver_id].append(entity.id)
        elif name == GARAGE_RECORDS:
            if previous is not None:
                self._records_by_vehicle[previous.vehicle_id].remove(entity.id)
            self._records_by_vehicle[entity.vehicle_id].append(entity.id)
        collection[entity.id] = entity

    def _snapshot(self) -> Snapshot:
        return Snapshot(
            vehicles=list(self._vehicles.values()),
            drivers=list(self._drivers.values()),
            reservations=list(self._reservations.values()),
            garage_records=list(self._garage_records.values()),
            spare_parts=list(self._spare_parts.values()),
            part_movements=list(self._part_movements.values()),
        )

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def load(self) -> None:
        """
        Hydrate the store from the persistence backend.

        A missing snapshot leaves the store empty. A failing or invalid
        snapshot also leaves it empty and is reported through ``error``.
        """
        if self._backend is None:
            return
        self.is_loading = True
        self.error = None
        try:
            document = self._backend.load(self.storage_name)
            if document is None:
                logger.info("No snapshot named %s, starting empty", self.storage_name)
                self._reset(Snapshot())
            else:
                self._reset(snapshot_from_document(document, self.version))
                logger.info(
                    "Loaded %d vehicles, %d drivers, %d reservations",
                    len(self._vehicles),
                    len(self._drivers),
                    len(self._reservations),
                )
        except SnapshotError as e:
            self.error = str(e)
            logger.error("Could not load snapshot: %s", e)
            self._reset(Snapshot())
        finally:
            self.is_loading = False
        self._notify()

    def close(self) -> None:
        """Final flush of the current state."""
        self._persist()

    def subscribe(self, listener: Callable[["FleetStore"], None]) -> Callable[[], None]:
        """Register a listener called after every commit. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _persist(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.save(
                self.storage_name, snapshot_to_document(self._snapshot(), self.version)
            )
            self.error = None
        except SnapshotError as e:
            self.error = str(e)
            logger.error("Could not save snapshot: %s", e)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _commit(
        self,
        puts: Iterable[Tuple[str, Any]],
        effects: Iterable = (),
        driver_ids: Iterable[str] = (),
    ) -> None:
        """
        Apply entities and cascade effects, refresh drivers, persist, notify.

        Every new entity and driver status is computed before the first
        write, so a failing derivation leaves the store untouched.
        """
        staged: Dict[Tuple[str, str], Any] = {}
        for name, entity in puts:
            staged[(name, entity.id)] = entity
        for effect in effects:
            key = (effect.collection, effect.entity_id)
            current = staged.get(key) or self._collection(effect.collection).get(effect.entity_id)
            if current is None:
                continue
            staged[key] = replace(current, **effect.changes)

        staged_reservations = {
            entity_id: entity
            for (name, entity_id), entity in staged.items()
            if name == RESERVATIONS
        }
        affected_drivers: Set[str] = set(driver_ids)
        affected_drivers.update(r.driver_id for r in staged_reservations.values())
        reservations = dict(self._reservations)
        reservations.update(staged_reservations)
        drivers = self._stale_drivers(affected_drivers, reservations)

        for (name, _), entity in staged.items():
            self._put(name, entity)
        self._apply_drivers(drivers)
        self._persist()
        self._notify()

    # =========================================================================
    # Reads
    # =========================================================================

    @property
    def vehicles(self) -> List[Vehicle]:
        return copy.deepcopy(list(self._vehicles.values()))

    @property
    def drivers(self) -> List[Driver]:
        return copy.deepcopy(list(self._drivers.values()))

    @property
    def reservations(self) -> List[Reservation]:
        return copy.deepcopy(list(self._reservations.values()))

    @property
    def garage_records(self) -> List[GarageRecord]:
        return copy.deepcopy(list(self._garage_records.values()))

    @property
    def spare_parts(self) -> List[SparePart]:
        return copy.deepcopy(list(self._spare_parts.values()))

    @property
    def part_movements(self) -> List[PartMovement]:
        return copy.deepcopy(list(self._part_movements.values()))

    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        return copy.deepcopy(self._vehicles.get(vehicle_id))

    def get_driver(self, driver_id: str) -> Optional[Driver]:
        return copy.deepcopy(self._drivers.get(driver_id))

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        return copy.deepcopy(self._reservations.get(reservation_id))

    def get_garage_record(self, record_id: str) -> Optional[GarageRecord]:
        return copy.deepcopy(self._garage_records.get(record_id))

    def get_spare_part(self, part_id: str) -> Optional[SparePart]:
        return copy.deepcopy(self._spare_parts.get(part_id))

    def reservations_for_vehicle(self, vehicle_id: str) -> List[Reservation]:
        ids = self._reservations_by_vehicle.get(vehicle_id, [])
        return copy.deepcopy([self._reservations[i] for i in ids])

    def reservations_for_driver(self, driver_id: str) -> List[Reservation]:
        ids = self._reservations_by_driver.get(driver_id, [])
        return copy.deepcopy([self._reservations[i] for i in ids])

    def garage_records_for_vehicle(self, vehicle_id: str) -> List[GarageRecord]:
        ids = self._records_by_vehicle.get(vehicle_id, [])
        return copy.deepcopy([self._garage_records[i] for i in ids])

    def get_available_vehicles(self) -> List[Vehicle]:
        """Vehicles that can be offered for a new reservation."""
        return [v for v in self.vehicles if v.status in AVAILABLE_VEHICLE_STATUSES]

    # =========================================================================
    # Drivers (status is derived)
    # =========================================================================

    def _derived_driver(
        self, driver: Driver, reservations: Optional[Dict[str, Reservation]] = None
    ) -> Driver:
        if reservations is None:
            owned = [
                self._reservations[i] for i in self._reservations_by_driver.get(driver.id, [])
            ]
        else:
            owned = [r for r in reservations.values() if r.driver_id == driver.id]
        status = derive_driver_status(driver, owned, self.now())
        if status == driver.status:
            return driver
        return replace(driver, status=status)

    def _stale_drivers(
        self,
        driver_ids: Iterable[str],
        reservations: Optional[Dict[str, Reservation]] = None,
    ) -> List[Driver]:
        """Re-derived copies of the drivers whose stored status is out of date."""
        stale = []
        for driver_id in driver_ids:
            driver = self._drivers.get(driver_id)
            if driver is None:
                continue
            derived = self._derived_driver(driver, reservations)
            if derived is not driver:
                stale.append(derived)
        return stale

    def _apply_drivers(self, drivers: Iterable[Driver]) -> List[str]:
        changed = []
        for driver in drivers:
            self._drivers[driver.id] = driver
            changed.append(driver.id)
            logger.info("Driver %s is now %s", driver.full_name, driver.status.value)
        return changed

    def refresh_driver_statuses(self) -> List[str]:
        """Re-derive every driver's status. Returns the ids that changed."""
        changed = self._apply_drivers(self._stale_drivers(list(self._drivers)))
        if changed:
            self._persist()
            self._notify()
        return changed

    def add_driver(self, driver: Driver) -> Driver:
        stored = replace(copy.deepcopy(driver), id=self._new_id())
        stored = self._derived_driver(stored)
        self._commit([(DRIVERS, stored)])
        logger.info("Added driver %s (%s)", stored.full_name, stored.id)
        return copy.deepcopy(stored)

    def update_driver(self, driver_id: str, **changes) -> Optional[Driver]:
        """Update driver fields. ``id`` and ``status`` in ``changes`` are ignored."""
        current = self._drivers.get(driver_id)
        if current is None:
            logger.debug("update_driver: no driver %s", driver_id)
            return None
        changes.pop("id", None)
        changes.pop("status", None)
        updated = self._derived_driver(replace(current, **copy.deepcopy(changes)))
        self._commit([(DRIVERS, updated)])
        return copy.deepcopy(updated)

    # =========================================================================
    # Vehicles
    # =========================================================================

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        """Register a vehicle. New vehicles always await validation."""
        stored = replace(
            copy.deepcopy(vehicle),
            id=self._new_id(),
            status=VehicleStatus.PENDING_VALIDATION,
            registration_date=vehicle.registration_date or self.now(),
        )
        self._commit([(VEHICLES, stored)])
        logger.info("Added vehicle %s (%s)", stored.name, stored.id)
        return copy.deepcopy(stored)

    def update_vehicle(self, vehicle_id: str, **changes) -> Optional[Vehicle]:
        current = self._vehicles.get(vehicle_id)
        if current is None:
            logger.debug("update_vehicle: no vehicle %s", vehicle_id)
            return None
        changes.pop("id", None)
        updated = replace(current, **copy.deepcopy(changes))
        effects = cascade(Trigger.VEHICLE_UPDATED, self, updated, changes)
        self._commit([(VEHICLES, updated)], effects)
        return copy.deepcopy(updated)

    # =========================================================================
    # Reservations
    # =========================================================================

    def _check_schedule(self, reservation: Reservation) -> None:
        """Refuse an approved reservation overlapping another approved one."""
        if reservation.status != ReservationStatus.APPROVED:
            return
        candidates = set(self._reservations_by_driver.get(reservation.driver_id, []))
        candidates.update(self._reservations_by_vehicle.get(reservation.vehicle_id, []))
        candidates.discard(reservation.id)
        for other_id in candidates:
            other = self._reservations[other_id]
            if other.status == ReservationStatus.APPROVED and other.overlaps(reservation):
                logger.warning(
                    "Reservation %s conflicts with approved reservation %s",
                    reservation.id,
                    other.id,
                )
                raise SchedulingConflictError(
                    f"Reservation overlaps approved reservation {other.id} "
                    f"({other.start_date.isoformat()} - {other.end_date.isoformat()})"
                )

    def add_reservation(self, reservation: Reservation) -> Reservation:
        """
        Create a reservation.

        Raises:
            SchedulingConflictError: if created approved and overlapping
                another approved reservation of the same driver or vehicle
        """
        stored = replace(
            copy.deepcopy(reservation),
            id=self._new_id(),
            **{name: as_utc(getattr(reservation, name)) for name in _TIMESTAMP_FIELDS}
        )
        self._check_schedule(stored)
        effects = cascade(Trigger.RESERVATION_CREATED, self, stored)
        self._commit([(RESERVATIONS, stored)], effects, [stored.driver_id])
        logger.info("Added reservation %s (%s)", stored.id, stored.status.value)
        return copy.deepcopy(stored)

    def update_reservation(self, reservation_id: str, **changes) -> Optional[Reservation]:
        """
        Update a reservation and cascade its status to the vehicle.

        Naive timestamps in ``changes`` are taken as UTC.

        Raises:
            SchedulingConflictError: if the result is approved and overlaps
                another approved reservation of the same driver or vehicle
            FleetError: if an approved reservation is moved to another vehicle
        """
        current = self._reservations.get(reservation_id)
        if current is None:
            logger.debug("update_reservation: no reservation %s", reservation_id)
            return None
        changes.pop("id", None)
        if (
            current.status == ReservationStatus.APPROVED
            and changes.get("vehicle_id", current.vehicle_id) != current.vehicle_id
        ):
            raise FleetError(
                f"Approved reservation {current.id} cannot move to another vehicle; "
                "reject it and book again"
            )
        for name in _TIMESTAMP_FIELDS:
            if name in changes:
                changes[name] = as_utc(changes[name])
        updated = replace(current, **copy.deepcopy(changes))
        if any(name in changes for name in _SCHEDULE_FIELDS):
            self._check_schedule(updated)
        effects = cascade(Trigger.RESERVATION_UPDATED, self, updated, changes)
        self._commit(
            [(RESERVATIONS, updated)],
            effects,
            [current.driver_id, updated.driver_id],
        )
        if "status" in changes:
            logger.info("Reservation %s is now %s", updated.id, updated.status.value)
        return copy.deepcopy(updated)

    def approve_reservation(
        self, reservation_id: str, validator: Optional[str] = None
    ) -> Optional[Reservation]:
        return self.update_reservation(
            reservation_id,
            status=ReservationStatus.APPROVED,
            validated_by=validator,
            validated_at=self.now(),
        )

    def reject_reservation(
        self, reservation_id: str, validator: Optional[str] = None
    ) -> Optional[Reservation]:
        return self.update_reservation(
            reservation_id,
            status=ReservationStatus.REJECTED,
            validated_by=validator,
            validated_at=self.now(),
        )

    # =========================================================================
    # Garage records
    # =========================================================================

    def _with_repair_ids(self, record: GarageRecord) -> GarageRecord:
        repairs = [
            repair if repair.id else replace(repair, id=self._new_id())
            for repair in record.repairs
        ]
        return replace(record, repairs=repairs)

    def _with_costs(self, record: GarageRecord) -> GarageRecord:
        labor, parts = calc_cost_breakdown(record)
        return replace(record, labor_cost=labor, parts_cost=parts)

    def add_garage_record(self, record: GarageRecord) -> GarageRecord:
        """Open an intervention. Its vehicle goes into maintenance."""
        stored = replace(
            copy.deepcopy(record),
            id=self._new_id(),
            created_at=record.created_at or self.now(),
        )
        stored = self._with_costs(self._with_repair_ids(stored))
        effects = cascade(Trigger.GARAGE_RECORD_CREATED, self, stored)
        self._commit([(GARAGE_RECORDS, stored)], effects)
        logger.info("Opened garage record %s for vehicle %s", stored.id, stored.vehicle_id)
        return copy.deepcopy(stored)

    def update_garage_record(self, record_id: str, **changes) -> Optional[GarageRecord]:
        current = self._garage_records.get(record_id)
        if current is None:
            logger.debug("update_garage_record: no record %s", record_id)
            return None
        changes.pop("id", None)
        if (
            changes.get("status") == GarageRecordStatus.COMPLETED
            and changes.get("completed_date") is None
        ):
            changes["completed_date"] = self.now()
        updated = replace(current, **copy.deepcopy(changes))
        updated = self._with_costs(self._with_repair_ids(updated))
        effects = cascade(Trigger.GARAGE_RECORD_UPDATED, self, updated, changes)
        self._commit([(GARAGE_RECORDS, updated)], effects)
        return copy.deepcopy(updated)

    # =========================================================================
    # Spare parts and inventory movements
    # =========================================================================

    def add_spare_part(self, part: SparePart) -> SparePart:
        now = self.now()
        stored = replace(copy.deepcopy(part), id=self._new_id(), created_at=now, updated_at=now)
        stored = replace(stored, status=derive_spare_part_status(stored))
        self._commit([(SPARE_PARTS, stored)])
        return copy.deepcopy(stored)

    def update_spare_part(self, part_id: str, **changes) -> Optional[SparePart]:
        current = self._spare_parts.get(part_id)
        if current is None:
            logger.debug("update_spare_part: no part %s", part_id)
            return None
        changes.pop("id", None)
        changes["updated_at"] = self.now()
        updated = replace(current, **copy.deepcopy(changes))
        updated = replace(updated, status=derive_spare_part_status(updated))
        self._commit([(SPARE_PARTS, updated)])
        return copy.deepcopy(updated)

    def delete_spare_part(self, part_id: str) -> bool:
        """Remove a spare part. Returns False when it does not exist."""
        if part_id not in self._spare_parts:
            logger.debug("delete_spare_part: no part %s", part_id)
            return False
        del self._spare_parts[part_id]
        self._persist()
        self._notify()
        return True

    def _stock_change(
        self, part: SparePart, movement: PartMovement, now: datetime
    ) -> Tuple[SparePart, PartMovement]:
        """Apply a movement to a part's stock without committing."""
        delta = movement.quantity if movement.movement_type == MovementType.IN else -movement.quantity
        if part.stock.current + delta < 0:
            raise InsufficientStockError(
                f"Only {part.stock.current} of {part.reference} in stock, "
                f"{movement.quantity} requested"
            )
        stock = replace(part.stock, current=part.stock.current + delta)
        updated = replace(part, stock=stock, updated_at=now)
        updated = replace(updated, status=derive_spare_part_status(updated))
        stored = replace(movement, id=self._new_id(), date=movement.date or now)
        return updated, stored

    def add_part_movement(self, movement: PartMovement) -> Optional[PartMovement]:
        """
        Record a stock movement and apply it to the part's stock.

        Raises:
            InsufficientStockError: if an outgoing movement exceeds the stock
        """
        part = self._spare_parts.get(movement.part_id)
        if part is None:
            logger.debug("add_part_movement: no part %s", movement.part_id)
            return None
        updated, stored = self._stock_change(part, copy.deepcopy(movement), self.now())
        self._commit([(SPARE_PARTS, updated), (PART_MOVEMENTS, stored)])
        return copy.deepcopy(stored)

    def _find_repair(self, repair_id: str) -> Optional[Tuple[GarageRecord, RepairItem]]:
        for record in self._garage_records.values():
            repair = record.get_repair(repair_id)
            if repair is not None:
                return record, repair
        return None

    def reserve_parts(
        self, repair_id: str, parts: Iterable[Tuple[str, int]]
    ) -> Optional[GarageRecord]:
        """
        Take parts out of stock for a repair and mark them reserved.

        Unknown parts are skipped.

        Raises:
            InsufficientStockError: if any part lacks stock (nothing is committed)
        """
        located = self._find_repair(repair_id)
        if located is None:
            logger.debug("reserve_parts: no repair %s", repair_id)
            return None
        record, _ = located
        record = copy.deepcopy(record)
        repair = record.get_repair(repair_id)
        now = self.now()

        puts = []
        working: Dict[str, SparePart] = {}
        for part_id, quantity in parts:
            part = working.get(part_id) or self._spare_parts.get(part_id)
            if part is None:
                continue
            movement = PartMovement(
                part_id=part_id,
                movement_type=MovementType.OUT,
                quantity=quantity,
                reason=MovementReason.REPAIR,
                reference=repair_id,
                price=part.retail_price * quantity,
            )
            working[part_id], stored = self._stock_change(part, movement, now)
            puts.append((PART_MOVEMENTS, stored))

            line = next(
                (p for p in repair.parts if p.part_id == part_id and p.status == PartStatus.PENDING),
                None,
            )
            if line is None:
                line = RepairPart(part_id=part_id, quantity=quantity, unit_price=part.retail_price)
                repair.parts.append(line)
            line.status = PartStatus.RESERVED
            line.reserved_at = now

        puts.extend((SPARE_PARTS, part) for part in working.values())
        record = self._with_costs(record)
        self._commit([(GARAGE_RECORDS, record)] + puts)
        return copy.deepcopy(record)

    def confirm_parts_usage(
        self, repair_id: str, parts: Iterable[Tuple[str, int]]
    ) -> Optional[GarageRecord]:
        """Mark reserved parts as used and record the usage on each part."""
        located = self._find_repair(repair_id)
        if located is None:
            logger.debug("confirm_parts_usage: no repair %s", repair_id)
            return None
        record = copy.deepcopy(located[0])
        repair = record.get_repair(repair_id)
        now = self.now()

        working: Dict[str, SparePart] = {}
        for part_id, quantity in parts:
            line = next(
                (p for p in repair.parts if p.part_id == part_id and p.status == PartStatus.RESERVED),
                None,
            )
            if line is None:
                logger.debug("confirm_parts_usage: part %s not reserved for %s", part_id, repair_id)
                continue
            line.status = PartStatus.USED
            line.used_at = now
            part = working.get(part_id) or copy.deepcopy(self._spare_parts.get(part_id))
            if part is None:
                continue
            part.usage.append(
                PartUsage(date=now, quantity=quantity, repair_id=repair_id, vehicle_id=record.vehicle_id)
            )
            part.last_usage_date = now
            part.updated_at = now
            working[part_id] = part

        puts = [(GARAGE_RECORDS, record)]
        puts.extend((SPARE_PARTS, part) for part in working.values())
        self._commit(puts)
        return copy.deepcopy(record)

    def return_parts(
        self, repair_id: str, parts: Iterable[Tuple[str, int]]
    ) -> Optional[GarageRecord]:
        """Put reserved or used parts back into stock and mark them returned."""
        located = self._find_repair(repair_id)
        if located is None:
            logger.debug("return_parts: no repair %s", repair_id)
            return None
        record = copy.deepcopy(located[0])
        repair = record.get_repair(repair_id)
        now = self.now()

        puts = []
        working: Dict[str, SparePart] = {}
        for part_id, quantity in parts:
            line = next(
                (
                    p
                    for p in repair.parts
                    if p.part_id == part_id and p.status in (PartStatus.RESERVED, PartStatus.USED)
                ),
                None,
            )
            part = working.get(part_id) or self._spare_parts.get(part_id)
            if line is None or part is None:
                continue
            line.status = PartStatus.RETURNED
            movement = PartMovement(
                part_id=part_id,
                movement_type=MovementType.IN,
                quantity=quantity,
                reason=MovementReason.RETURN,
                reference=repair_id,
                price=part.retail_price * quantity,
            )
            working[part_id], stored = self._stock_change(part, movement, now)
            puts.append((PART_MOVEMENTS, stored))

        puts.extend((SPARE_PARTS, part) for part in working.values())
        self._commit([(GARAGE_RECORDS, record)] + puts)
        return copy.deepcopy(record)
