"""Periodic re-evaluation of time-dependent reservation and driver statuses."""

import logging
import sched
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .calculations import derive_reservation_status
from .config import DEFAULT_RECONCILE_INTERVAL
from .reservation import Reservation
from .status import ReservationStatus

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    """What a reconciliation pass changed."""

    completed_reservations: List[str] = field(default_factory=list)
    updated_drivers: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.completed_reservations or self.updated_drivers)


def plan_reconciliation(store) -> List[Tuple[Reservation, ReservationStatus]]:
    """Reservations whose stored status is stale, with the status they should have."""
    now = store.now()
    plan = []
    for reservation in store.reservations:
        status = derive_reservation_status(reservation, now)
        if status != reservation.status:
            plan.append((reservation, status))
    return plan


def reconcile(store) -> ReconciliationReport:
    """
    Run one reconciliation pass.

    Stale reservations are updated through the store so their cascades
    fire (an elapsed reservation releases its vehicle), then every
    driver status is re-derived. Running it again without the clock
    moving changes nothing.
    """
    report = ReconciliationReport()
    for reservation, status in plan_reconciliation(store):
        store.update_reservation(reservation.id, status=status)
        report.completed_reservations.append(reservation.id)
    report.updated_drivers = store.refresh_driver_statuses()
    if report.changed:
        logger.info(
            "Reconciled %d reservation(s), %d driver(s)",
            len(report.completed_reservations),
            len(report.updated_drivers),
        )
    return report


class ReconciliationTask:
    """
    Runs ``reconcile`` every ``interval`` seconds on a ``sched`` scheduler.

    Everything happens on the thread driving the scheduler, so two runs
    never overlap. ``start`` reconciles immediately; ``stop`` cancels the
    pending run and must be called before the store is discarded.
    """

    def __init__(
        self,
        store,
        interval: float = DEFAULT_RECONCILE_INTERVAL,
        scheduler: Optional[sched.scheduler] = None,
    ):
        self.store = store
        self.interval = interval
        self.scheduler = scheduler or sched.scheduler(time.monotonic, time.sleep)
        self.last_report: Optional[ReconciliationReport] = None
        self.runs = 0
        self._event = None
        self._stopped = True

    @property
    def running(self) -> bool:
        return not self._stopped

    def start(self) -> None:
        if self.running:
            return
        self._stopped = False
        self._tick()

    def stop(self) -> None:
        self._stopped = True
        if self._event is not None:
            self.scheduler.cancel(self._event)
            self._event = None

    def run(self) -> None:
        """Drive the scheduler until the task is stopped."""
        self.scheduler.run()

    def _tick(self) -> None:
        self._event = None
        self.last_report = reconcile(self.store)
        self.runs += 1
        logger.debug("Reconciliation run %d done", self.runs)
        if not self._stopped:
            self._event = self.scheduler.enter(self.interval, 0, self._tick)
