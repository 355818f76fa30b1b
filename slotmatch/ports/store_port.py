"""Store ports — abstract persistence interfaces.

Core modules depend on these protocols, never on a specific database.
Methods returning bool are conditional ("compare-and-swap") writes:
False means the row was not in the expected state and nothing changed.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Protocol

from slotmatch.data.models import (
    Booking,
    InstanceStatus,
    NotificationKind,
    Priority,
    RecurringBookingInstance,
    RecurringSchedule,
    WaitlistEntry,
    WaitlistNotification,
    WaitlistStatus,
)


class StoreError(Exception):
    """Raised when the persistence backend fails. Safe to retry."""


class ScheduleStorePort(Protocol):
    """Recurring schedules and their occurrence history."""

    def add_schedule(
        self,
        customer_id: str,
        barber_id: str,
        service_id: str,
        frequency: str,
        day_of_week: str,
        preferred_time: str,
        start_date: date,
        next_booking_date: date,
        now: datetime,
        end_date: date | None = None,
        custom_interval_days: int | None = None,
    ) -> RecurringSchedule: ...

    def get_schedule(self, schedule_id: int) -> RecurringSchedule | None: ...

    def update_schedule(
        self, schedule_id: int, fields: dict[str, Any], now: datetime
    ) -> bool: ...

    def list_for_customer(self, customer_id: str) -> list[RecurringSchedule]: ...

    def list_for_barber(self, barber_id: str) -> list[RecurringSchedule]: ...

    def get_due_schedules(self, target_date: date) -> list[RecurringSchedule]: ...

    def end_schedule(
        self, schedule_id: int, expected_next_date: date, now: datetime
    ) -> bool: ...

    def commit_occurrence(
        self,
        schedule_id: int,
        occurrence_date: date,
        next_date: date | None,
        status: InstanceStatus,
        now: datetime,
        booking_id: int | None = None,
        skipped_reason: str | None = None,
    ) -> bool: ...

    def list_instances(self, schedule_id: int) -> list[RecurringBookingInstance]: ...


class BookingPort(Protocol):
    """The booking aggregate, owned outside this package."""

    def create_booking(
        self,
        customer_id: str,
        barber_id: str,
        service_id: str,
        booking_date: date,
        booking_time: str,
        recurring_schedule_id: int | None = None,
    ) -> Booking: ...


class WaitlistStorePort(Protocol):
    """Waitlist entries and the offer notifications sent for them."""

    def add_waiting_entry(
        self,
        customer_id: str,
        barber_id: str,
        preferred_date: date,
        now: datetime,
        service_id: str | None = None,
        preferred_time_start: str | None = None,
        preferred_time_end: str | None = None,
        flexible_date: bool = True,
        flexible_time: bool = True,
        notes: str | None = None,
    ) -> WaitlistEntry | None: ...

    def get_entry(self, entry_id: int) -> WaitlistEntry | None: ...

    def list_entries(
        self,
        barber_id: str | None = None,
        customer_id: str | None = None,
        statuses: tuple[WaitlistStatus, ...] = (WaitlistStatus.WAITING,),
    ) -> list[WaitlistEntry]: ...

    def mark_notified(
        self, entry_id: int, notified_at: datetime, expires_at: datetime
    ) -> bool: ...

    def mark_booked(self, entry_id: int, booking_id: int, now: datetime) -> bool: ...

    def revert_to_waiting(
        self, entry_id: int, now: datetime, expired_before: datetime | None = None
    ) -> bool: ...

    def cancel_entry(self, entry_id: int, now: datetime) -> bool: ...

    def set_priority(self, entry_id: int, priority: Priority, now: datetime) -> bool: ...

    def list_expired_offers(self, now: datetime) -> list[WaitlistEntry]: ...

    def add_notification(
        self,
        entry_id: int,
        kind: NotificationKind,
        message: str,
        now: datetime,
        slot_date: date | None = None,
        slot_time: str | None = None,
        expires_at: datetime | None = None,
    ) -> WaitlistNotification: ...

    def list_notifications(
        self, customer_id: str, limit: int = 20
    ) -> list[WaitlistNotification]: ...

    def mark_notification_read(self, notification_id: int) -> bool: ...
