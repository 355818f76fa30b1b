"""
SlotMatch — Waitlist Queue.

Per-barber queue of customers waiting for a slot. Ordering is always
priority (vip > high > normal), then join order. Positions are derived
from that ordering whenever they are read; the stored value is only the
position at join time.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable

from pydantic import BaseModel, field_validator, model_validator

from slotmatch.core.errors import DuplicateEntryError, EntryNotFoundError
from slotmatch.core.recurring_service import validate_hhmm
from slotmatch.data.models import (
    Priority,
    WaitlistEntry,
    WaitlistNotification,
    WaitlistStats,
    WaitlistStatus,
)

if TYPE_CHECKING:
    from slotmatch.ports.clock_port import ClockPort
    from slotmatch.ports.store_port import WaitlistStorePort

logger = logging.getLogger(__name__)

_OPEN = (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED)


class JoinWaitlistInput(BaseModel):
    """A customer's request to wait for a barber's slot.

    JSON example:
    {
        "barber_id": "b-42",
        "preferred_date": "2024-02-01",
        "preferred_time_start": "09:00",
        "preferred_time_end": "12:00",
        "flexible_date": false,
        "flexible_time": false
    }
    """
    barber_id: str
    preferred_date: date
    service_id: str | None = None
    preferred_time_start: str | None = None   # HH:MM
    preferred_time_end: str | None = None     # HH:MM
    flexible_date: bool = True
    flexible_time: bool = True
    notes: str | None = None

    @field_validator("preferred_time_start", "preferred_time_end")
    @classmethod
    def check_time(cls, v: str | None) -> str | None:
        return validate_hhmm(v)

    @model_validator(mode="after")
    def check_range(self) -> JoinWaitlistInput:
        start, end = self.preferred_time_start, self.preferred_time_end
        if start is not None and end is not None and end < start:
            raise ValueError(f"preferred_time_end {end} is before preferred_time_start {start}")
        return self


def ordered(entries: Iterable[WaitlistEntry]) -> list[WaitlistEntry]:
    """Sort by priority descending, then join order ascending."""
    return sorted(entries, key=lambda e: e.rank_key)


def position_among(entry: WaitlistEntry, waiting: Iterable[WaitlistEntry]) -> int:
    """1 + number of waiting entries ranked strictly ahead of entry."""
    return 1 + sum(
        1 for other in waiting
        if other.id != entry.id and other.rank_key < entry.rank_key
    )


def format_wait(days: int) -> str:
    if days == 0:
        return "Less than a day"
    if days == 1:
        return "1 day"
    return f"{days} days"


class WaitlistQueue:
    """Join, leave and rank entries on a barber's waitlist."""

    def __init__(self, store: WaitlistStorePort, clock: ClockPort) -> None:
        self._store = store
        self._clock = clock

    def _require(self, entry_id: int) -> WaitlistEntry:
        entry = self._store.get_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry

    def _with_positions(self, entries: list[WaitlistEntry]) -> list[WaitlistEntry]:
        waiting_by_barber: dict[str, list[WaitlistEntry]] = {}
        for entry in entries:
            if entry.barber_id not in waiting_by_barber:
                waiting_by_barber[entry.barber_id] = self._store.list_entries(
                    barber_id=entry.barber_id,
                )
            entry.position = position_among(entry, waiting_by_barber[entry.barber_id])
        return entries

    def join(self, customer_id: str, data: JoinWaitlistInput) -> WaitlistEntry:
        """Add the customer to the barber's queue at normal priority."""
        entry = self._store.add_waiting_entry(
            customer_id=customer_id,
            barber_id=data.barber_id,
            preferred_date=data.preferred_date,
            now=self._clock.now(),
            service_id=data.service_id,
            preferred_time_start=data.preferred_time_start,
            preferred_time_end=data.preferred_time_end,
            flexible_date=data.flexible_date,
            flexible_time=data.flexible_time,
            notes=data.notes,
        )
        if entry is None:
            raise DuplicateEntryError(
                f"Customer {customer_id} is already on the waitlist for barber {data.barber_id}"
            )
        return self._with_positions([entry])[0]

    def leave(self, entry_id: int) -> WaitlistEntry:
        """Cancel the entry. Booked or already-closed entries are left as they are."""
        self._require(entry_id)
        if not self._store.cancel_entry(entry_id, self._clock.now()):
            logger.info("Waitlist entry #%d already closed, leave ignored", entry_id)
        return self._require(entry_id)

    def position_of(self, entry_id: int) -> int:
        """Current 1-based rank among the barber's waiting entries."""
        entry = self._require(entry_id)
        return position_among(entry, self._store.list_entries(barber_id=entry.barber_id))

    def set_priority(self, entry_id: int, priority: Priority) -> WaitlistEntry:
        self._require(entry_id)
        self._store.set_priority(entry_id, priority, self._clock.now())
        logger.info("Waitlist entry #%d priority set to %s", entry_id, priority.value)
        return self._with_positions([self._require(entry_id)])[0]

    def list_for_barber(self, barber_id: str) -> list[WaitlistEntry]:
        """Open entries (waiting or holding an offer), in queue order."""
        entries = ordered(self._store.list_entries(barber_id=barber_id, statuses=_OPEN))
        return self._with_positions(entries)

    def list_for_customer(self, customer_id: str) -> list[WaitlistEntry]:
        """A customer's open entries across barbers, newest first."""
        entries = self._store.list_entries(customer_id=customer_id, statuses=_OPEN)
        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return self._with_positions(entries)

    def stats(self, barber_id: str) -> WaitlistStats:
        """Queue size, average time-to-booking and conversion for a barber."""
        entries = self._store.list_entries(barber_id=barber_id, statuses=())
        waiting = sum(1 for e in entries if e.status is WaitlistStatus.WAITING)
        booked = [e for e in entries if e.status is WaitlistStatus.BOOKED]

        average = timedelta()
        if booked:
            average = sum(
                (e.updated_at - e.created_at for e in booked), timedelta()
            ) / len(booked)
        days = round(average / timedelta(days=1))

        return WaitlistStats(
            total_waiting=waiting,
            average_wait_time=format_wait(days),
            conversion_rate=(len(booked) / len(entries) * 100) if entries else 0.0,
            active_waitlists=waiting,
        )

    def list_notifications(self, customer_id: str) -> list[WaitlistNotification]:
        return self._store.list_notifications(customer_id)

    def mark_notification_read(self, notification_id: int) -> bool:
        return self._store.mark_notification_read(notification_id)
