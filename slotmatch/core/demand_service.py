"""
SlotMatch — Demand Matching Service.

The single entry point the API/UI layer calls. Wires the recurring-schedule
lifecycle, the recurring processor, the waitlist queue, the matcher and the
expiry sweeper to the same stores, clock and notifier.

Interactive operations are synchronous except those that notify a customer.
The two *_tick methods are the batch entry points for whatever scheduler
drives them (see slotmatch.bot.job_runner).
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from slotmatch.core.expiry_sweeper import run_expiry_sweep_tick
from slotmatch.core.recurring_processor import run_processor_tick
from slotmatch.core.recurring_service import (
    CreateScheduleInput,
    RecurringScheduleService,
    UpdateScheduleInput,
)
from slotmatch.core.waitlist_matcher import WaitlistMatcher
from slotmatch.core.waitlist_queue import JoinWaitlistInput, WaitlistQueue

if TYPE_CHECKING:
    from slotmatch.data.models import (
        Priority,
        RecurringBookingInstance,
        RecurringSchedule,
        ScheduleStats,
        TickResult,
        WaitlistEntry,
        WaitlistNotification,
        WaitlistStats,
    )
    from slotmatch.ports.clock_port import ClockPort
    from slotmatch.ports.notification_port import NotificationPort
    from slotmatch.ports.store_port import BookingPort, ScheduleStorePort, WaitlistStorePort

logger = logging.getLogger(__name__)


class DemandMatchingService:
    """Facade over recurring bookings and the waitlist."""

    def __init__(
        self,
        schedules: ScheduleStorePort,
        bookings: BookingPort,
        waitlist: WaitlistStorePort,
        clock: ClockPort,
        notifier: NotificationPort | None = None,
        offer_expiry_minutes: int | None = None,
    ) -> None:
        self._schedule_store = schedules
        self._booking_port = bookings
        self._waitlist_store = waitlist
        self._clock = clock
        self._notifier = notifier

        self.recurring = RecurringScheduleService(schedules, clock)
        self.queue = WaitlistQueue(waitlist, clock)
        self.matcher = WaitlistMatcher(
            waitlist, clock, notifier, expiry_minutes=offer_expiry_minutes,
        )

    # -- recurring schedules --------------------------------------------------

    def create_schedule(self, customer_id: str, data: CreateScheduleInput) -> RecurringSchedule:
        return self.recurring.create(customer_id, data)

    def pause_schedule(self, schedule_id: int, until: date | None = None) -> RecurringSchedule:
        return self.recurring.pause(schedule_id, until)

    def resume_schedule(self, schedule_id: int) -> RecurringSchedule:
        return self.recurring.resume(schedule_id)

    def skip_next(self, schedule_id: int, reason: str | None = None) -> RecurringSchedule:
        return self.recurring.skip_next(schedule_id, reason)

    def cancel_schedule(self, schedule_id: int) -> RecurringSchedule:
        return self.recurring.cancel(schedule_id)

    def update_schedule(self, schedule_id: int, changes: UpdateScheduleInput) -> RecurringSchedule:
        return self.recurring.update(schedule_id, changes)

    def list_schedules_for_customer(self, customer_id: str) -> list[RecurringSchedule]:
        return self.recurring.list_for_customer(customer_id)

    def list_schedules_for_barber(self, barber_id: str) -> list[RecurringSchedule]:
        return self.recurring.list_for_barber(barber_id)

    def get_schedule_stats(self, customer_id: str) -> ScheduleStats:
        return self.recurring.stats(customer_id)

    def list_instances(self, schedule_id: int) -> list[RecurringBookingInstance]:
        return self.recurring.list_instances(schedule_id)

    async def run_processor_tick(self) -> TickResult:
        return await run_processor_tick(
            self._schedule_store, self._booking_port, self._clock, self._notifier,
        )

    # -- waitlist ------------------------------------------------------------

    def join_waitlist(self, customer_id: str, data: JoinWaitlistInput) -> WaitlistEntry:
        return self.queue.join(customer_id, data)

    def leave_waitlist(self, entry_id: int) -> WaitlistEntry:
        return self.queue.leave(entry_id)

    def get_position(self, entry_id: int) -> int:
        return self.queue.position_of(entry_id)

    def set_priority(self, entry_id: int, priority: Priority) -> WaitlistEntry:
        return self.queue.set_priority(entry_id, priority)

    def list_waitlist_for_barber(self, barber_id: str) -> list[WaitlistEntry]:
        return self.queue.list_for_barber(barber_id)

    def list_waitlist_for_customer(self, customer_id: str) -> list[WaitlistEntry]:
        return self.queue.list_for_customer(customer_id)

    def get_waitlist_stats(self, barber_id: str) -> WaitlistStats:
        return self.queue.stats(barber_id)

    def list_notifications(self, customer_id: str) -> list[WaitlistNotification]:
        return self.queue.list_notifications(customer_id)

    def mark_notification_read(self, notification_id: int) -> bool:
        return self.queue.mark_notification_read(notification_id)

    async def match_slot(
        self, barber_id: str, available_date: date, available_time: str
    ) -> int | None:
        return await self.matcher.match_slot(barber_id, available_date, available_time)

    async def offer_slot(
        self,
        entry_id: int,
        slot_date: date,
        slot_time: str,
        expires_in_minutes: int | None = None,
    ) -> WaitlistEntry:
        return await self.matcher.offer_slot(entry_id, slot_date, slot_time, expires_in_minutes)

    def accept_offer(self, entry_id: int, booking_id: int) -> WaitlistEntry:
        return self.matcher.accept_offer(entry_id, booking_id)

    def decline_offer(self, entry_id: int) -> WaitlistEntry:
        return self.matcher.decline_offer(entry_id)

    async def run_expiry_sweep_tick(self) -> TickResult:
        return await run_expiry_sweep_tick(self._waitlist_store, self._clock, self._notifier)


def create_service(notifier: NotificationPort | None = None) -> DemandMatchingService:
    """Build the service on the configured SQLite database and system clock."""
    from slotmatch.adapters.system_clock import SystemClock
    from slotmatch.config import settings
    from slotmatch.data.db import BookingDB, ScheduleDB, WaitlistDB

    service = DemandMatchingService(
        schedules=ScheduleDB(),
        bookings=BookingDB(),
        waitlist=WaitlistDB(),
        clock=SystemClock(settings.TIMEZONE),
        notifier=notifier,
    )
    logger.info("Demand matching service ready on %s", settings.DATABASE_PATH)
    return service
