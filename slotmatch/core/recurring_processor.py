"""
SlotMatch — Recurring Booking Processor.

Batch worker, run once a day: every active, unpaused schedule due on or
before today becomes a concrete booking, the occurrence is recorded, and
the schedule advances to its next date (or ends past end_date).

Best-effort, log-and-continue: a failing schedule is left untouched, so it
stays due and is retried on the next run.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from slotmatch.core.notifications import send_safely
from slotmatch.core.recurrence import next_occurrence
from slotmatch.data.models import InstanceStatus, TickFailure, TickResult

if TYPE_CHECKING:
    from slotmatch.data.models import Booking, RecurringSchedule
    from slotmatch.ports.clock_port import ClockPort
    from slotmatch.ports.notification_port import NotificationPort
    from slotmatch.ports.store_port import BookingPort, ScheduleStorePort

logger = logging.getLogger(__name__)


def advance_date(schedule: RecurringSchedule) -> date | None:
    """The occurrence after next_booking_date, or None past end_date."""
    next_date = next_occurrence(
        schedule.next_booking_date,
        schedule.frequency,
        schedule.day_of_week,
        schedule.custom_interval_days,
    )
    if schedule.end_date is not None and next_date > schedule.end_date:
        return None
    return next_date


async def run_processor_tick(
    schedules: ScheduleStorePort,
    bookings: BookingPort,
    clock: ClockPort,
    notifier: NotificationPort | None = None,
) -> TickResult:
    """Materialize every due schedule once.

    Returns which schedules succeeded, which failed (with the error), and
    which were skipped: another writer advanced them first, or their
    occurrence fell past end_date and the schedule was ended unbooked.
    """
    today = clock.now().date()
    result = TickResult()
    due = schedules.get_due_schedules(today)
    logger.info("Recurring processor: %d schedule(s) due on or before %s", len(due), today)

    for schedule in due:
        occurrence = schedule.next_booking_date
        if schedule.end_date is not None and occurrence > schedule.end_date:
            try:
                ended = schedules.end_schedule(schedule.id, occurrence, clock.now())
            except Exception as exc:
                logger.error("Failed to end recurring schedule %d: %s", schedule.id, exc)
                result.failed.append(TickFailure(item_id=schedule.id, error=str(exc)))
                continue
            if not ended:
                logger.warning(
                    "Recurring schedule %d changed while ending it, skipped", schedule.id,
                )
            result.skipped.append(schedule.id)
            continue

        try:
            booking = bookings.create_booking(
                customer_id=schedule.customer_id,
                barber_id=schedule.barber_id,
                service_id=schedule.service_id,
                booking_date=occurrence,
                booking_time=schedule.preferred_time,
                recurring_schedule_id=schedule.id,
            )
            next_date = advance_date(schedule)
            applied = schedules.commit_occurrence(
                schedule.id,
                occurrence_date=occurrence,
                next_date=next_date,
                status=InstanceStatus.CONFIRMED,
                now=clock.now(),
                booking_id=booking.id,
            )
        except Exception as exc:
            logger.error("Failed to process recurring schedule %d: %s", schedule.id, exc)
            result.failed.append(TickFailure(item_id=schedule.id, error=str(exc)))
            continue

        if not applied:
            logger.warning(
                "Recurring schedule %d changed while processing %s, skipped",
                schedule.id, occurrence,
            )
            result.skipped.append(schedule.id)
            continue

        result.succeeded.append(schedule.id)
        if next_date is None:
            logger.info("Recurring schedule %d reached its end date", schedule.id)
        await _notify_booked(notifier, schedule, booking, next_date)

    logger.info(
        "Recurring processor done: %d succeeded, %d failed, %d skipped",
        len(result.succeeded), len(result.failed), len(result.skipped),
    )
    return result


async def _notify_booked(
    notifier: NotificationPort | None,
    schedule: RecurringSchedule,
    booking: Booking,
    next_date: date | None,
) -> None:
    message = f"Your recurring appointment is booked for {booking.date} at {booking.time}."
    if next_date is None:
        message += " This was the last one in the series."
    await send_safely(
        notifier,
        schedule.customer_id,
        message,
        {
            "type": "recurring_booking_created",
            "schedule_id": schedule.id,
            "booking_id": booking.id,
            "date": booking.date.isoformat(),
            "time": booking.time,
            "next_date": next_date.isoformat() if next_date else None,
        },
    )
