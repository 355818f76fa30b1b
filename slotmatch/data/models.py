"""
SlotMatch — Data Models.

Recurring schedules and waitlist entries persist across worker restarts.
Bookings themselves belong to the booking aggregate; the Booking model here
is the minimal shape the recurring processor creates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class Frequency(Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class DayOfWeek(Enum):
    SUNDAY = "sunday"
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"

    @property
    def weekday(self) -> int:
        """Python weekday number (Monday == 0)."""
        return _PY_WEEKDAY[self]


_PY_WEEKDAY = {
    DayOfWeek.MONDAY: 0,
    DayOfWeek.TUESDAY: 1,
    DayOfWeek.WEDNESDAY: 2,
    DayOfWeek.THURSDAY: 3,
    DayOfWeek.FRIDAY: 4,
    DayOfWeek.SATURDAY: 5,
    DayOfWeek.SUNDAY: 6,
}


class InstanceStatus(Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class WaitlistStatus(Enum):
    WAITING = "waiting"
    NOTIFIED = "notified"
    BOOKED = "booked"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Priority(Enum):
    NORMAL = "normal"
    HIGH = "high"
    VIP = "vip"

    @property
    def rank(self) -> int:
        """Higher rank is served first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.NORMAL: 0, Priority.HIGH: 1, Priority.VIP: 2}


class NotificationKind(Enum):
    SLOT_AVAILABLE = "slot_available"
    EXPIRED = "expired"


@dataclass
class RecurringSchedule:
    """A customer's repeating appointment with one barber.

    next_booking_date is None only after the schedule ran past end_date.
    """

    id: int
    customer_id: str
    barber_id: str
    service_id: str
    frequency: Frequency
    day_of_week: DayOfWeek
    preferred_time: str               # HH:MM
    start_date: date
    next_booking_date: date | None
    end_date: date | None = None
    custom_interval_days: int | None = None
    is_active: bool = True
    is_paused: bool = False
    paused_until: date | None = None
    last_booking_date: date | None = None
    total_bookings_completed: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class RecurringBookingInstance:
    """Append-only history record of one occurrence."""

    id: int
    schedule_id: int
    scheduled_date: date
    status: InstanceStatus
    booking_id: int | None = None
    skipped_reason: str | None = None
    created_at: datetime | None = None


@dataclass
class Booking:
    """A concrete appointment on a barber's calendar."""

    id: int
    customer_id: str
    barber_id: str
    service_id: str
    date: date
    time: str                         # HH:MM
    status: str = "confirmed"
    is_recurring: bool = False
    recurring_schedule_id: int | None = None


@dataclass
class WaitlistEntry:
    """A customer's standing request for a slot with a barber.

    position is derived from (priority, created_at) at read time and is
    never trusted as stored truth.
    """

    id: int
    customer_id: str
    barber_id: str
    preferred_date: date
    created_at: datetime
    service_id: str | None = None
    preferred_time_start: str | None = None   # HH:MM
    preferred_time_end: str | None = None     # HH:MM
    flexible_date: bool = True
    flexible_time: bool = True
    notes: str | None = None
    priority: Priority = Priority.NORMAL
    status: WaitlistStatus = WaitlistStatus.WAITING
    position: int = 0
    notified_at: datetime | None = None
    expires_at: datetime | None = None
    booking_id: int | None = None
    updated_at: datetime | None = None

    @property
    def rank_key(self) -> tuple[int, datetime, int]:
        """Sort key: priority desc, then join order asc, then id."""
        return (-self.priority.rank, self.created_at, self.id)


@dataclass
class WaitlistNotification:
    """Record of an offer (or its expiry) sent to a waitlisted customer."""

    id: int
    entry_id: int
    kind: NotificationKind
    message: str
    slot_date: date | None = None
    slot_time: str | None = None
    expires_at: datetime | None = None
    read: bool = False
    created_at: datetime | None = None


@dataclass
class ScheduleStats:
    active_schedules: int
    total_bookings_completed: int
    upcoming_instances: int
    saved_amount: float


@dataclass
class WaitlistStats:
    total_waiting: int
    average_wait_time: str            # e.g. "Less than a day", "3 days"
    conversion_rate: float            # percent of entries that booked
    active_waitlists: int


@dataclass
class TickFailure:
    item_id: int
    error: str


@dataclass
class TickResult:
    """Outcome of one batch run: per-item success, failure, or lost race."""

    succeeded: list[int] = field(default_factory=list)
    failed: list[TickFailure] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
