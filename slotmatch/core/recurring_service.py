"""
SlotMatch — Recurring Schedule Lifecycle.

Create, pause, resume, skip, cancel and update a customer's repeating
appointment, plus the read-side queries the apps show (lists, history,
stats). Materializing due occurrences into bookings lives in
recurring_processor.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel, field_validator

from slotmatch.core.errors import InvalidScheduleError, ScheduleNotFoundError
from slotmatch.core.recurrence import first_occurrence, next_occurrence
from slotmatch.data.models import (
    DayOfWeek,
    Frequency,
    InstanceStatus,
    RecurringBookingInstance,
    RecurringSchedule,
    ScheduleStats,
)

if TYPE_CHECKING:
    from slotmatch.ports.clock_port import ClockPort
    from slotmatch.ports.store_port import ScheduleStorePort

logger = logging.getLogger(__name__)

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_hhmm(value: str | None) -> str | None:
    """Accept None or a 24h HH:MM string."""
    if value is not None and not _HHMM.match(value):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return value


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class CreateScheduleInput(BaseModel):
    """A customer's request for a repeating appointment.

    JSON example:
    {
        "barber_id": "b-42",
        "service_id": "fade",
        "frequency": "weekly",
        "day_of_week": "monday",
        "preferred_time": "10:00",
        "start_date": "2024-01-01"
    }
    """
    barber_id: str
    service_id: str
    frequency: Frequency
    day_of_week: DayOfWeek
    preferred_time: str          # HH:MM in 24h format
    start_date: date
    end_date: date | None = None
    custom_interval_days: int | None = None

    @field_validator("preferred_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return validate_hhmm(v)


class UpdateScheduleInput(BaseModel):
    """Partial update; only fields explicitly set are written."""
    frequency: Frequency | None = None
    day_of_week: DayOfWeek | None = None
    preferred_time: str | None = None
    end_date: date | None = None
    custom_interval_days: int | None = None

    @field_validator("preferred_time")
    @classmethod
    def check_time(cls, v: str | None) -> str | None:
        return validate_hhmm(v)


def _check_cadence(
    frequency: Frequency, custom_interval_days: int | None, strict: bool
) -> None:
    """Custom cadence needs a positive interval.

    With strict, an interval on any other cadence is rejected as well.
    """
    if frequency is Frequency.CUSTOM:
        if custom_interval_days is None:
            raise InvalidScheduleError("custom frequency requires custom_interval_days")
        if custom_interval_days < 1:
            raise InvalidScheduleError(
                f"custom_interval_days must be positive, got {custom_interval_days}"
            )
    elif strict and custom_interval_days is not None:
        raise InvalidScheduleError(
            f"custom_interval_days is only valid for custom frequency, not {frequency.value}"
        )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class RecurringScheduleService:
    """State transitions and queries over recurring schedules."""

    def __init__(
        self,
        store: ScheduleStorePort,
        clock: ClockPort,
        average_booking_price: float | None = None,
        discount_rate: float | None = None,
    ) -> None:
        if average_booking_price is None or discount_rate is None:
            from slotmatch.config import settings
            if average_booking_price is None:
                average_booking_price = settings.AVERAGE_BOOKING_PRICE
            if discount_rate is None:
                discount_rate = settings.RECURRING_DISCOUNT_RATE

        self._store = store
        self._clock = clock
        self._average_booking_price = average_booking_price
        self._discount_rate = discount_rate

    def _today(self) -> date:
        return self._clock.now().date()

    def _require(self, schedule_id: int) -> RecurringSchedule:
        schedule = self._store.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    def create(self, customer_id: str, data: CreateScheduleInput) -> RecurringSchedule:
        """Validate and persist a new schedule anchored on its first occurrence."""
        _check_cadence(data.frequency, data.custom_interval_days, strict=True)
        if data.end_date is not None and data.end_date < data.start_date:
            raise InvalidScheduleError(
                f"end_date {data.end_date} is before start_date {data.start_date}"
            )

        first = first_occurrence(data.start_date, data.day_of_week)
        return self._store.add_schedule(
            customer_id=customer_id,
            barber_id=data.barber_id,
            service_id=data.service_id,
            frequency=data.frequency,
            day_of_week=data.day_of_week,
            preferred_time=data.preferred_time,
            start_date=data.start_date,
            next_booking_date=first,
            now=self._clock.now(),
            end_date=data.end_date,
            custom_interval_days=data.custom_interval_days,
        )

    def pause(self, schedule_id: int, until: date | None = None) -> RecurringSchedule:
        """Stop materializing occurrences. next_booking_date is left alone."""
        self._require(schedule_id)
        self._store.update_schedule(
            schedule_id, {"is_paused": True, "paused_until": until}, self._clock.now(),
        )
        logger.info("Schedule #%d paused until %s", schedule_id, until or "further notice")
        return self._require(schedule_id)

    def resume(self, schedule_id: int) -> RecurringSchedule:
        """Unpause and re-anchor on the next matching weekday after today.

        Resuming on the schedule's own weekday lands a week out, so today's
        slot is never re-triggered. If that date is past end_date the
        schedule ends instead.
        """
        schedule = self._require(schedule_id)
        today = self._today()
        next_date = first_occurrence(today, schedule.day_of_week)
        if next_date == today:
            next_date += timedelta(days=7)

        fields = {"is_paused": False, "paused_until": None, "next_booking_date": next_date}
        if schedule.end_date is not None and next_date > schedule.end_date:
            fields.update(is_active=False, next_booking_date=None)

        self._store.update_schedule(schedule_id, fields, self._clock.now())
        if fields["next_booking_date"] is None:
            logger.info(
                "Schedule #%d resumed past its end date %s, ended",
                schedule_id, schedule.end_date,
            )
        else:
            logger.info("Schedule #%d resumed, next %s", schedule_id, next_date)
        return self._require(schedule_id)

    def skip_next(self, schedule_id: int, reason: str | None = None) -> RecurringSchedule:
        """Record the upcoming occurrence as skipped and move to the one after."""
        schedule = self._require(schedule_id)
        if not schedule.is_active or schedule.next_booking_date is None:
            raise InvalidScheduleError(f"Schedule {schedule_id} is not active")

        current = schedule.next_booking_date
        next_date: date | None = next_occurrence(
            current, schedule.frequency, schedule.day_of_week,
            schedule.custom_interval_days,
        )
        if schedule.end_date is not None and next_date > schedule.end_date:
            next_date = None

        applied = self._store.commit_occurrence(
            schedule_id,
            occurrence_date=current,
            next_date=next_date,
            status=InstanceStatus.SKIPPED,
            now=self._clock.now(),
            skipped_reason=reason,
        )
        if not applied:
            logger.warning(
                "Skip of schedule #%d on %s lost to a concurrent update",
                schedule_id, current,
            )
        return self._require(schedule_id)

    def cancel(self, schedule_id: int) -> RecurringSchedule:
        """Deactivate. next_booking_date is kept for display only."""
        self._require(schedule_id)
        self._store.update_schedule(schedule_id, {"is_active": False}, self._clock.now())
        logger.info("Schedule #%d cancelled", schedule_id)
        return self._require(schedule_id)

    def update(self, schedule_id: int, changes: UpdateScheduleInput) -> RecurringSchedule:
        """Write the whitelisted fields that were explicitly set.

        next_booking_date is NOT recomputed: after changing day_of_week or
        frequency the stored date stays as it was until the next processor
        advance applies the new cadence. An end_date moved before the
        stored next_booking_date ends the schedule.
        """
        schedule = self._require(schedule_id)
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            return schedule

        for name in ("frequency", "day_of_week", "preferred_time"):
            if name in fields and fields[name] is None:
                raise InvalidScheduleError(f"{name} cannot be cleared")

        frequency = fields.get("frequency", schedule.frequency)
        interval = fields.get("custom_interval_days", schedule.custom_interval_days)
        _check_cadence(frequency, interval, strict="custom_interval_days" in fields)

        end_date = fields.get("end_date", schedule.end_date)
        if end_date is not None and end_date < schedule.start_date:
            raise InvalidScheduleError(
                f"end_date {end_date} is before start_date {schedule.start_date}"
            )
        if (
            "end_date" in fields
            and end_date is not None
            and schedule.next_booking_date is not None
            and schedule.next_booking_date > end_date
        ):
            fields.update(is_active=False, next_booking_date=None)

        self._store.update_schedule(schedule_id, fields, self._clock.now())
        logger.info("Schedule #%d updated: %s", schedule_id, sorted(fields))
        return self._require(schedule_id)

    # -- queries ------------------------------------------------------------

    def get(self, schedule_id: int) -> RecurringSchedule:
        return self._require(schedule_id)

    def list_for_customer(self, customer_id: str) -> list[RecurringSchedule]:
        return self._store.list_for_customer(customer_id)

    def list_for_barber(self, barber_id: str) -> list[RecurringSchedule]:
        return self._store.list_for_barber(barber_id)

    def list_instances(self, schedule_id: int) -> list[RecurringBookingInstance]:
        self._require(schedule_id)
        return self._store.list_instances(schedule_id)

    def stats(self, customer_id: str) -> ScheduleStats:
        """Summary for the customer's recurring-bookings screen."""
        schedules = self._store.list_for_customer(customer_id)
        today = self._today()
        active = [s for s in schedules if s.is_active]
        total = sum(s.total_bookings_completed for s in schedules)
        upcoming = sum(
            1 for s in active
            if s.next_booking_date is not None and s.next_booking_date >= today
        )
        return ScheduleStats(
            active_schedules=len(active),
            total_bookings_completed=total,
            upcoming_instances=upcoming,
            saved_amount=total * self._average_booking_price * self._discount_rate,
        )
