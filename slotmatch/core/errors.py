"""Typed errors raised by the scheduling and waitlist services.

Validation and not-found errors are raised before any write. Infrastructure
failures surface as StoreError (see slotmatch.ports.store_port) so callers
can tell "your request is wrong" apart from "try again later".
"""

from __future__ import annotations


class SlotMatchError(Exception):
    """Base class for all domain errors."""


class ValidationError(SlotMatchError):
    """The request was rejected before anything was written."""


class InvalidScheduleError(ValidationError):
    """Schedule input is inconsistent (e.g. custom cadence without an interval)."""


class DuplicateEntryError(ValidationError):
    """Customer already has an open entry on this barber's waitlist."""


class OfferNotActiveError(ValidationError):
    """Accept/decline on an entry that no longer holds an offer."""


class EntryNotWaitingError(ValidationError):
    """A slot can only be offered to an entry that is still waiting."""


class InvalidSlotError(ValidationError):
    """Offered slot time is not a 24h HH:MM string."""


class NotFoundError(SlotMatchError):
    """Operation on an id that does not exist."""


class ScheduleNotFoundError(NotFoundError):
    def __init__(self, schedule_id: int) -> None:
        super().__init__(f"Recurring schedule {schedule_id} not found")
        self.schedule_id = schedule_id


class EntryNotFoundError(NotFoundError):
    def __init__(self, entry_id: int) -> None:
        super().__init__(f"Waitlist entry {entry_id} not found")
        self.entry_id = entry_id
