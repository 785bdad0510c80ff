"""
Cascade rules keeping vehicle, reservation and garage statuses consistent.

Each row of ``CASCADE_RULES`` reacts to one kind of store mutation and
produces ``Effect`` objects describing status changes on related
entities. The engine never writes: the store applies the effects in the
same commit as the triggering mutation. Effects are not fed back into
``cascade``, so propagation is a single level deep.

The ``view`` passed around is anything exposing the store's read API:
``get_vehicle``, ``reservations_for_vehicle``, ``garage_records_for_vehicle``,
``now`` and, for the audit, ``vehicles``, ``drivers`` and ``reservations``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .calculations import derive_driver_status
from .status import (
    GarageRecordStatus,
    ReservationStatus,
    VehicleStatus,
)

logger = logging.getLogger(__name__)

VEHICLES = "vehicles"
RESERVATIONS = "reservations"

# A reservation may only take a vehicle out of these states
OCCUPIABLE_STATUSES = (
    VehicleStatus.ACTIVE,
    VehicleStatus.PENDING_VALIDATION,
    VehicleStatus.IN_USE,
)


class Trigger(Enum):
    """Store mutations that can fire cascade rules."""

    RESERVATION_CREATED = "reservation_created"
    RESERVATION_UPDATED = "reservation_updated"
    VEHICLE_UPDATED = "vehicle_updated"
    GARAGE_RECORD_CREATED = "garage_record_created"
    GARAGE_RECORD_UPDATED = "garage_record_updated"


@dataclass(frozen=True)
class Effect:
    """A field change to apply to one entity of a store collection."""

    collection: str
    entity_id: str
    changes: Dict[str, Any]


@dataclass(frozen=True)
class CascadeRule:
    """One row of the cascade table."""

    trigger: Trigger
    description: str
    condition: Callable[[Any, Dict[str, Any]], bool]
    effect: Callable[[Any, Any], List[Effect]]


# =============================================================================
# Conditions
# =============================================================================


def _always(entity, changes) -> bool:
    return True


def _created_as(*statuses):
    def condition(entity, changes) -> bool:
        return entity.status in statuses

    return condition


def _status_becomes(*statuses):
    def condition(entity, changes) -> bool:
        return "status" in changes and changes["status"] in statuses

    return condition


# =============================================================================
# Effects
# =============================================================================


def _set_vehicle_status(view, vehicle_id: str, status: VehicleStatus) -> List[Effect]:
    return [Effect(VEHICLES, vehicle_id, {"status": status})]


def _occupy_vehicle(view, reservation) -> List[Effect]:
    vehicle = view.get_vehicle(reservation.vehicle_id)
    if vehicle is None or vehicle.status not in OCCUPIABLE_STATUSES:
        return []
    if vehicle.status == VehicleStatus.IN_USE:
        return []
    return _set_vehicle_status(view, vehicle.id, VehicleStatus.IN_USE)


def _release_vehicle(view, reservation) -> List[Effect]:
    vehicle = view.get_vehicle(reservation.vehicle_id)
    if vehicle is None or vehicle.status != VehicleStatus.IN_USE:
        return []
    now = view.now()
    still_held = any(
        other.status == ReservationStatus.APPROVED and other.is_active_at(now)
        for other in view.reservations_for_vehicle(vehicle.id)
        if other.id != reservation.id
    )
    if still_held:
        return []
    return _set_vehicle_status(view, vehicle.id, VehicleStatus.ACTIVE)


def _reject_reservations_of(view, vehicle_id: str) -> List[Effect]:
    return [
        Effect(RESERVATIONS, reservation.id, {"status": ReservationStatus.REJECTED})
        for reservation in view.reservations_for_vehicle(vehicle_id)
        if not reservation.is_terminal
    ]


def _reject_open_reservations(view, vehicle) -> List[Effect]:
    return _reject_reservations_of(view, vehicle.id)


def _enter_maintenance(view, record) -> List[Effect]:
    vehicle = view.get_vehicle(record.vehicle_id)
    if vehicle is None:
        return []
    effects = []
    if vehicle.status != VehicleStatus.MAINTENANCE:
        effects.extend(_set_vehicle_status(view, vehicle.id, VehicleStatus.MAINTENANCE))
    effects.extend(_reject_reservations_of(view, vehicle.id))
    return effects


def _leave_maintenance(view, record) -> List[Effect]:
    vehicle = view.get_vehicle(record.vehicle_id)
    if vehicle is None or vehicle.status != VehicleStatus.MAINTENANCE:
        return []
    others_open = any(
        other.is_open
        for other in view.garage_records_for_vehicle(vehicle.id)
        if other.id != record.id
    )
    if others_open:
        return []
    return _set_vehicle_status(view, vehicle.id, VehicleStatus.ACTIVE)


CASCADE_RULES = (
    CascadeRule(
        Trigger.RESERVATION_CREATED,
        "approved reservation puts its vehicle in use",
        _created_as(ReservationStatus.APPROVED),
        _occupy_vehicle,
    ),
    CascadeRule(
        Trigger.RESERVATION_UPDATED,
        "approving a reservation puts its vehicle in use",
        _status_becomes(ReservationStatus.APPROVED),
        _occupy_vehicle,
    ),
    CascadeRule(
        Trigger.RESERVATION_UPDATED,
        "completing or rejecting a reservation releases its vehicle",
        _status_becomes(ReservationStatus.COMPLETED, ReservationStatus.REJECTED),
        _release_vehicle,
    ),
    CascadeRule(
        Trigger.VEHICLE_UPDATED,
        "vehicle entering maintenance rejects its open reservations",
        _status_becomes(VehicleStatus.MAINTENANCE),
        _reject_open_reservations,
    ),
    CascadeRule(
        Trigger.GARAGE_RECORD_CREATED,
        "opening a garage record puts its vehicle in maintenance",
        _always,
        _enter_maintenance,
    ),
    CascadeRule(
        Trigger.GARAGE_RECORD_UPDATED,
        "completing a garage record returns its vehicle to service",
        _status_becomes(GarageRecordStatus.COMPLETED),
        _leave_maintenance,
    ),
)


def cascade(
    trigger: Trigger, view, entity, changes: Optional[Dict[str, Any]] = None
) -> List[Effect]:
    """
    Evaluate every rule registered for ``trigger`` once.

    ``entity`` is the entity as it will be after the mutation; ``changes``
    is the change set of an update (empty for creations). Related
    entities are looked up through ``view``; a missing one yields no
    effect.
    """
    changes = changes or {}
    effects: List[Effect] = []
    for rule in CASCADE_RULES:
        if rule.trigger is not trigger or not rule.condition(entity, changes):
            continue
        produced = rule.effect(view, entity)
        if produced:
            logger.debug(
                "Cascade '%s' on %s produced %d effect(s)",
                rule.description,
                entity.id,
                len(produced),
            )
        effects.extend(produced)
    return effects


# =============================================================================
# Audit
# =============================================================================


def find_inconsistencies(view, now: datetime) -> List[str]:
    """
    List every broken cross-entity invariant.

    - a vehicle in maintenance must have an open garage record
    - a vehicle in use must have an approved reservation spanning ``now``
    - a driver's stored status must equal its derived status
    """
    problems = []
    reservations = view.reservations

    for vehicle in view.vehicles:
        if vehicle.status == VehicleStatus.MAINTENANCE:
            records = view.garage_records_for_vehicle(vehicle.id)
            if not any(record.is_open for record in records):
                problems.append(
                    f"Vehicle {vehicle.name} is in maintenance without an open garage record"
                )
        elif vehicle.status == VehicleStatus.IN_USE:
            current = [
                r
                for r in view.reservations_for_vehicle(vehicle.id)
                if r.status == ReservationStatus.APPROVED and r.is_active_at(now)
            ]
            if not current:
                problems.append(
                    f"Vehicle {vehicle.name} is in use without a current approved reservation"
                )

    for driver in view.drivers:
        expected = derive_driver_status(driver, reservations, now)
        if driver.status != expected:
            problems.append(
                f"Driver {driver.full_name} is {driver.status.value}, expected {expected.value}"
            )

    for problem in problems:
        logger.warning(problem)
    return problems
