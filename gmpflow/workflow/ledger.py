"""
workflow/ledger.py - Shared equipment booking ledger.

Equipment is shared across concurrent sessions. A confirmed plan books its
time windows here; another session cannot book an overlapping window on the
same machine until the first releases it. Each machine has its own lock and
a booking takes the locks of all machines it touches in sorted id order, so
bookings are all-or-nothing and never deadlock.
"""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from gmpflow.core.enums import EquipmentStatus
from gmpflow.core.models import ProductionPlan
from gmpflow.errors import DoubleBooking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Booking:
    session_id: str
    plan_id: str
    equipment_id: str
    order_id: str
    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


class EquipmentBookingLedger:
    """Thread-safe record of which session holds which equipment windows."""

    def __init__(self):
        self._registry_lock = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._bookings: Dict[str, List[Booking]] = {}
        self._status: Dict[str, EquipmentStatus] = {}

    def _lock_for(self, equipment_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(equipment_id)
            if lock is None:
                lock = self._locks[equipment_id] = threading.Lock()
            return lock

    def _known_ids(self) -> List[str]:
        with self._registry_lock:
            return sorted(self._locks)

    def book(self, session_id: str, plan: ProductionPlan) -> List[Booking]:
        """
        Book every item of `plan` for `session_id`.

        Raises:
            DoubleBooking: If another session holds an overlapping window
        """
        equipment_ids = plan.equipment_ids
        with ExitStack() as stack:
            for equipment_id in equipment_ids:
                stack.enter_context(self._lock_for(equipment_id))

            for item in plan.items:
                for held in self._bookings.get(item.equipment_id, []):
                    if held.session_id == session_id:
                        continue
                    if held.overlaps(item.start, item.end):
                        raise DoubleBooking(
                            f"{item.equipment_id} is booked by session {held.session_id} "
                            f"from {held.start.isoformat()} to {held.end.isoformat()}",
                            equipment_id=item.equipment_id,
                            order_id=item.order_id,
                            held_by=held.session_id,
                        )

            created = []
            for equipment_id in equipment_ids:
                kept = [b for b in self._bookings.get(equipment_id, []) if b.session_id != session_id]
                self._bookings[equipment_id] = kept
            for item in plan.items:
                booking = Booking(
                    session_id=session_id,
                    plan_id=plan.plan_id,
                    equipment_id=item.equipment_id,
                    order_id=item.order_id,
                    start=item.start,
                    end=item.end,
                )
                self._bookings[item.equipment_id].append(booking)
                created.append(booking)

        logger.info(f"Session {session_id} booked {len(created)} windows on {len(equipment_ids)} machines")
        return created

    def release(self, session_id: str) -> int:
        """Drop every booking of a session; returns how many were released."""
        released = 0
        for equipment_id in self._known_ids():
            with self._lock_for(equipment_id):
                held = self._bookings.get(equipment_id, [])
                kept = [b for b in held if b.session_id != session_id]
                released += len(held) - len(kept)
                self._bookings[equipment_id] = kept
        if released:
            logger.info(f"Session {session_id} released {released} windows")
        return released

    def bookings_for(self, equipment_id: str) -> List[Booking]:
        with self._lock_for(equipment_id):
            return sorted(self._bookings.get(equipment_id, []), key=lambda b: (b.start, b.session_id))

    def set_status(self, equipment_id: str, status: EquipmentStatus) -> None:
        with self._lock_for(equipment_id):
            self._status[equipment_id] = status
        logger.info(f"{equipment_id} status set to {status.value}")

    def status_of(self, equipment_id: str) -> Optional[EquipmentStatus]:
        with self._lock_for(equipment_id):
            return self._status.get(equipment_id)


_shared_ledger: Optional[EquipmentBookingLedger] = None
_shared_lock = threading.Lock()


def get_shared_ledger() -> EquipmentBookingLedger:
    """Process-wide ledger used by sessions that are not given one."""
    global _shared_ledger
    with _shared_lock:
        if _shared_ledger is None:
            _shared_ledger = EquipmentBookingLedger()
        return _shared_ledger


def reset_shared_ledger() -> None:
    global _shared_ledger
    with _shared_lock:
        _shared_ledger = None
