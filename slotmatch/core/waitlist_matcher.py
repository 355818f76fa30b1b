"""
SlotMatch — Waitlist Matcher.

When a barber's slot frees up, offer it to the best-ranked waiting customer
whose date and time preferences fit. At most one customer is offered any
given slot; the offer expires after a response window (see expiry_sweeper).
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING

from slotmatch.core.errors import (
    EntryNotFoundError,
    EntryNotWaitingError,
    InvalidSlotError,
    OfferNotActiveError,
)
from slotmatch.core.notifications import send_safely
from slotmatch.core.recurring_service import validate_hhmm
from slotmatch.core.waitlist_queue import ordered
from slotmatch.data.models import NotificationKind, WaitlistEntry

if TYPE_CHECKING:
    from slotmatch.ports.clock_port import ClockPort
    from slotmatch.ports.notification_port import NotificationPort
    from slotmatch.ports.store_port import WaitlistStorePort

logger = logging.getLogger(__name__)


def date_matches(entry: WaitlistEntry, available_date: date) -> bool:
    return entry.flexible_date or entry.preferred_date == available_date


def check_slot_time(slot_time: str) -> str:
    """Reject anything but zero-padded HH:MM before it is compared as text."""
    if slot_time is None:
        raise InvalidSlotError("Slot time is required")
    try:
        return validate_hhmm(slot_time)
    except ValueError as exc:
        raise InvalidSlotError(str(exc)) from exc


def time_matches(entry: WaitlistEntry, available_time: str) -> bool:
    """HH:MM strings compare correctly as text."""
    if entry.flexible_time or not entry.preferred_time_start:
        return True
    if available_time < entry.preferred_time_start:
        return False
    return not entry.preferred_time_end or available_time <= entry.preferred_time_end


class WaitlistMatcher:
    """Offers freed slots to waiting customers and resolves their answers."""

    def __init__(
        self,
        store: WaitlistStorePort,
        clock: ClockPort,
        notifier: NotificationPort | None = None,
        expiry_minutes: int | None = None,
    ) -> None:
        if expiry_minutes is None:
            from slotmatch.config import settings
            expiry_minutes = settings.WAITLIST_OFFER_EXPIRY_MINUTES

        self._store = store
        self._clock = clock
        self._notifier = notifier
        self._expiry_minutes = expiry_minutes

    def _require(self, entry_id: int) -> WaitlistEntry:
        entry = self._store.get_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        return entry

    async def match_slot(
        self, barber_id: str, available_date: date, available_time: str
    ) -> int | None:
        """Offer the slot to the first matching entry in queue order.

        Returns the notified entry id, or None if nobody on the waitlist
        wants this slot.
        """
        check_slot_time(available_time)
        candidates = [
            e for e in ordered(self._store.list_entries(barber_id=barber_id))
            if date_matches(e, available_date)
        ]
        for entry in candidates:
            if not time_matches(entry, available_time):
                continue
            if await self._offer(entry, available_date, available_time, self._expiry_minutes):
                logger.info(
                    "Slot %s %s for barber %s offered to waitlist entry #%d",
                    available_date, available_time, barber_id, entry.id,
                )
                return entry.id
            # Entry left the waiting state since we read it; try the next one.

        logger.info(
            "No waitlist match for barber %s slot %s %s (%d date candidates)",
            barber_id, available_date, available_time, len(candidates),
        )
        return None

    async def offer_slot(
        self,
        entry_id: int,
        slot_date: date,
        slot_time: str,
        expires_in_minutes: int | None = None,
    ) -> WaitlistEntry:
        """Barber-initiated offer of a specific slot to a specific entry."""
        check_slot_time(slot_time)
        entry = self._require(entry_id)
        minutes = expires_in_minutes if expires_in_minutes is not None else self._expiry_minutes
        if not await self._offer(entry, slot_date, slot_time, minutes):
            raise EntryNotWaitingError(f"Waitlist entry {entry_id} is not waiting")
        return self._require(entry_id)

    async def _offer(
        self, entry: WaitlistEntry, slot_date: date, slot_time: str, minutes: int
    ) -> bool:
        now = self._clock.now()
        expires_at = now + timedelta(minutes=minutes)
        if not self._store.mark_notified(entry.id, now, expires_at):
            logger.warning("Waitlist entry #%d is no longer waiting, offer skipped", entry.id)
            return False

        message = f"A slot is available on {slot_date} at {slot_time}!"
        try:
            self._store.add_notification(
                entry.id,
                NotificationKind.SLOT_AVAILABLE,
                message,
                now,
                slot_date=slot_date,
                slot_time=slot_time,
                expires_at=expires_at,
            )
        except Exception as exc:
            logger.warning("Could not record offer notice for entry %d: %s", entry.id, exc)
        await send_safely(
            self._notifier,
            entry.customer_id,
            message,
            {
                "type": NotificationKind.SLOT_AVAILABLE.value,
                "entry_id": entry.id,
                "barber_id": entry.barber_id,
                "date": slot_date.isoformat(),
                "time": slot_time,
                "expires_at": expires_at.isoformat(),
            },
        )
        return True

    def accept_offer(self, entry_id: int, booking_id: int) -> WaitlistEntry:
        """notified -> booked, linking the booking made from the offer."""
        self._require(entry_id)
        if not self._store.mark_booked(entry_id, booking_id, self._clock.now()):
            raise OfferNotActiveError(f"Waitlist entry {entry_id} has no open offer")
        logger.info("Waitlist entry #%d accepted offer, booking #%d", entry_id, booking_id)
        return self._require(entry_id)

    def decline_offer(self, entry_id: int) -> WaitlistEntry:
        """notified -> waiting, keeping the entry's original rank."""
        self._require(entry_id)
        if not self._store.revert_to_waiting(entry_id, self._clock.now()):
            raise OfferNotActiveError(f"Waitlist entry {entry_id} has no open offer")
        logger.info("Waitlist entry #%d declined offer", entry_id)
        return self._require(entry_id)
