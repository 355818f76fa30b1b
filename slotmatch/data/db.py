"""
SlotMatch — SQLite storage.

Recurring schedules, their occurrence history, bookings created from them,
and waitlist entries all persist here across worker restarts. Each class
implements one of the store ports; they may share a single database file.

Timestamps are stored as UTC ISO strings so SQL string comparison matches
chronological order. Dates are stored as ISO YYYY-MM-DD.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from slotmatch.data.models import (
    Booking,
    DayOfWeek,
    Frequency,
    InstanceStatus,
    NotificationKind,
    Priority,
    RecurringBookingInstance,
    RecurringSchedule,
    WaitlistEntry,
    WaitlistNotification,
    WaitlistStatus,
)
from slotmatch.ports.store_port import StoreError

logger = logging.getLogger(__name__)


def _ts(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(raw: str | None) -> datetime | None:
    return datetime.fromisoformat(raw) if raw else None


def _iso(d: date | None) -> str | None:
    return d.isoformat() if d is not None else None


def _parse_date(raw: str | None) -> date | None:
    return date.fromisoformat(raw) if raw else None


def _to_column(value: Any) -> Any:
    """Convert a model value to its on-disk representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return _ts(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class _SQLiteStore:
    """Connection handling shared by the SQLite-backed stores."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from slotmatch.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly in _transaction().
        conn = sqlite3.connect(self._db_path, isolation_level=None, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self, begin: str = "BEGIN") -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction; wrap driver errors in StoreError.

        Pass begin="BEGIN IMMEDIATE" to take the write lock up front when a
        read decides what gets written.
        """
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open database {self._db_path}: {exc}") from exc
        try:
            conn.execute(begin)
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StoreError(str(exc)) from exc
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        raise NotImplementedError


class ScheduleDB(_SQLiteStore):
    """SQLite-backed storage for recurring schedules and their instances."""

    _UPDATABLE = frozenset({
        "frequency",
        "day_of_week",
        "preferred_time",
        "end_date",
        "custom_interval_days",
        "is_active",
        "is_paused",
        "paused_until",
        "next_booking_date",
    })

    def _init_db(self) -> None:
        """Create the schedule tables if they don't exist."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recurring_schedules (
                    id                       INTEGER PRIMARY KEY AUTOINCREMENT,
                    customer_id              TEXT    NOT NULL,
                    barber_id                TEXT    NOT NULL,
                    service_id               TEXT    NOT NULL,
                    frequency                TEXT    NOT NULL,
                    day_of_week              TEXT    NOT NULL,
                    preferred_time           TEXT    NOT NULL,
                    start_date               TEXT    NOT NULL,
                    end_date                 TEXT,
                    custom_interval_days     INTEGER,
                    is_active                INTEGER NOT NULL DEFAULT 1,
                    is_paused                INTEGER NOT NULL DEFAULT 0,
                    paused_until             TEXT,
                    last_booking_date        TEXT,
                    next_booking_date        TEXT,
                    total_bookings_completed INTEGER NOT NULL DEFAULT 0,
                    created_at               TEXT    NOT NULL,
                    updated_at               TEXT    NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_schedules_due
                    ON recurring_schedules (is_active, is_paused, next_booking_date)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recurring_booking_instances (
                    id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    schedule_id    INTEGER NOT NULL REFERENCES recurring_schedules (id),
                    scheduled_date TEXT    NOT NULL,
                    status         TEXT    NOT NULL,
                    booking_id     INTEGER,
                    skipped_reason TEXT,
                    created_at     TEXT    NOT NULL
                )
            """)
        logger.debug("Schedule tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_schedule(row: sqlite3.Row) -> RecurringSchedule:
        return RecurringSchedule(
            id=row["id"],
            customer_id=row["customer_id"],
            barber_id=row["barber_id"],
            service_id=row["service_id"],
            frequency=Frequency(row["frequency"]),
            day_of_week=DayOfWeek(row["day_of_week"]),
            preferred_time=row["preferred_time"],
            start_date=_parse_date(row["start_date"]),
            end_date=_parse_date(row["end_date"]),
            custom_interval_days=row["custom_interval_days"],
            is_active=bool(row["is_active"]),
            is_paused=bool(row["is_paused"]),
            paused_until=_parse_date(row["paused_until"]),
            last_booking_date=_parse_date(row["last_booking_date"]),
            next_booking_date=_parse_date(row["next_booking_date"]),
            total_bookings_completed=row["total_bookings_completed"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_instance(row: sqlite3.Row) -> RecurringBookingInstance:
        return RecurringBookingInstance(
            id=row["id"],
            schedule_id=row["schedule_id"],
            scheduled_date=_parse_date(row["scheduled_date"]),
            status=InstanceStatus(row["status"]),
            booking_id=row["booking_id"],
            skipped_reason=row["skipped_reason"],
            created_at=_parse_ts(row["created_at"]),
        )

    def add_schedule(
        self,
        customer_id: str,
        barber_id: str,
        service_id: str,
        frequency: Frequency,
        day_of_week: DayOfWeek,
        preferred_time: str,
        start_date: date,
        next_booking_date: date,
        now: datetime,
        end_date: date | None = None,
        custom_interval_days: int | None = None,
    ) -> RecurringSchedule:
        """Insert a new active, unpaused schedule."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO recurring_schedules
                    (customer_id, barber_id, service_id, frequency, day_of_week,
                     preferred_time, start_date, end_date, custom_interval_days,
                     is_active, is_paused, next_booking_date,
                     total_bookings_completed, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, 0, ?, 0, ?, ?)
                """,
                (
                    customer_id, barber_id, service_id,
                    frequency.value, day_of_week.value, preferred_time,
                    _iso(start_date), _iso(end_date), custom_interval_days,
                    _iso(next_booking_date), _ts(now), _ts(now),
                ),
            )
            schedule_id = cursor.lastrowid
            row = conn.execute(
                "SELECT * FROM recurring_schedules WHERE id = ?", (schedule_id,)
            ).fetchone()

        logger.info(
            "Schedule added: #%d %s/%s %s on %s, first %s",
            schedule_id, customer_id, barber_id,
            frequency.value, day_of_week.value, next_booking_date,
        )
        return self._row_to_schedule(row)

    def get_schedule(self, schedule_id: int) -> RecurringSchedule | None:
        """Fetch a single schedule by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM recurring_schedules WHERE id = ?", (schedule_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_schedule(row)

    def update_schedule(
        self, schedule_id: int, fields: dict[str, Any], now: datetime
    ) -> bool:
        """Write the given columns. Returns False if the schedule doesn't exist."""
        unknown = set(fields) - self._UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update schedule columns: {sorted(unknown)}")

        assignments = [f"{name} = ?" for name in fields]
        params = [_to_column(v) for v in fields.values()]
        assignments.append("updated_at = ?")
        params.extend([_ts(now), schedule_id])

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE recurring_schedules SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
        return cursor.rowcount > 0

    def list_for_customer(self, customer_id: str) -> list[RecurringSchedule]:
        """All of a customer's schedules, newest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM recurring_schedules WHERE customer_id = ? "
                "ORDER BY created_at DESC, id DESC",
                (customer_id,),
            ).fetchall()
        return [self._row_to_schedule(r) for r in rows]

    def list_for_barber(self, barber_id: str) -> list[RecurringSchedule]:
        """A barber's active schedules, soonest occurrence first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM recurring_schedules WHERE barber_id = ? AND is_active = 1 "
                "ORDER BY next_booking_date, id",
                (barber_id,),
            ).fetchall()
        return [self._row_to_schedule(r) for r in rows]

    def get_due_schedules(self, target_date: date) -> list[RecurringSchedule]:
        """Active, unpaused schedules whose next occurrence is on or before target_date."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM recurring_schedules
                WHERE is_active = 1 AND is_paused = 0
                  AND next_booking_date IS NOT NULL AND next_booking_date <= ?
                ORDER BY next_booking_date, id
                """,
                (_iso(target_date),),
            ).fetchall()
        return [self._row_to_schedule(r) for r in rows]

    def end_schedule(
        self, schedule_id: int, expected_next_date: date, now: datetime
    ) -> bool:
        """Terminate a schedule whose next occurrence falls past end_date.

        Only applies if the schedule is still active with next_booking_date
        == expected_next_date.
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE recurring_schedules
                SET is_active = 0, next_booking_date = NULL, updated_at = ?
                WHERE id = ? AND is_active = 1 AND next_booking_date = ?
                """,
                (_ts(now), schedule_id, _iso(expected_next_date)),
            )
        ended = cursor.rowcount > 0
        if ended:
            logger.info("Schedule #%d ended: %s is past its end date", schedule_id, expected_next_date)
        return ended

    def commit_occurrence(
        self,
        schedule_id: int,
        occurrence_date: date,
        next_date: date | None,
        status: InstanceStatus,
        now: datetime,
        booking_id: int | None = None,
        skipped_reason: str | None = None,
    ) -> bool:
        """Record an occurrence and advance the schedule in one transaction.

        Only applies if the schedule is still active with next_booking_date
        == occurrence_date (and, for a confirmed booking, not paused).
        A None next_date terminates the schedule. Confirmed occurrences also
        set last_booking_date and bump total_bookings_completed.
        """
        completed = status is InstanceStatus.CONFIRMED
        query = """
            UPDATE recurring_schedules
            SET next_booking_date = ?,
                is_active = ?,
                last_booking_date = CASE WHEN ? THEN ? ELSE last_booking_date END,
                total_bookings_completed = total_bookings_completed + ?,
                updated_at = ?
            WHERE id = ? AND is_active = 1 AND next_booking_date = ?
        """
        if completed:
            query += " AND is_paused = 0"
        params = (
            _iso(next_date),
            int(next_date is not None),
            int(completed), _iso(occurrence_date),
            int(completed),
            _ts(now),
            schedule_id, _iso(occurrence_date),
        )

        with self._transaction("BEGIN IMMEDIATE") as conn:
            cursor = conn.execute(query, params)
            if cursor.rowcount == 0:
                return False
            conn.execute(
                """
                INSERT INTO recurring_booking_instances
                    (schedule_id, scheduled_date, status, booking_id,
                     skipped_reason, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    schedule_id, _iso(occurrence_date), status.value,
                    booking_id, skipped_reason, _ts(now),
                ),
            )

        logger.info(
            "Schedule #%d: %s occurrence %s, next %s",
            schedule_id, status.value, occurrence_date, next_date or "none (ended)",
        )
        return True

    def list_instances(self, schedule_id: int) -> list[RecurringBookingInstance]:
        """Occurrence history for a schedule, latest scheduled date first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM recurring_booking_instances WHERE schedule_id = ? "
                "ORDER BY scheduled_date DESC, id DESC",
                (schedule_id,),
            ).fetchall()
        return [self._row_to_instance(r) for r in rows]


class BookingDB(_SQLiteStore):
    """SQLite stand-in for the booking aggregate.

    A recurring booking is unique per (schedule, date): creating it twice
    returns the existing row, so a processor retry after a crash cannot
    double-book.
    """

    def _init_db(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bookings (
                    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                    customer_id           TEXT    NOT NULL,
                    barber_id             TEXT    NOT NULL,
                    service_id            TEXT    NOT NULL,
                    date                  TEXT    NOT NULL,
                    time                  TEXT    NOT NULL,
                    status                TEXT    NOT NULL DEFAULT 'confirmed',
                    is_recurring          INTEGER NOT NULL DEFAULT 0,
                    recurring_schedule_id INTEGER
                )
            """)
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_bookings_recurring_date
                    ON bookings (recurring_schedule_id, date)
            """)
        logger.debug("Bookings table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_booking(row: sqlite3.Row) -> Booking:
        return Booking(
            id=row["id"],
            customer_id=row["customer_id"],
            barber_id=row["barber_id"],
            service_id=row["service_id"],
            date=_parse_date(row["date"]),
            time=row["time"],
            status=row["status"],
            is_recurring=bool(row["is_recurring"]),
            recurring_schedule_id=row["recurring_schedule_id"],
        )

    def create_booking(
        self,
        customer_id: str,
        barber_id: str,
        service_id: str,
        booking_date: date,
        booking_time: str,
        recurring_schedule_id: int | None = None,
    ) -> Booking:
        """Insert a confirmed booking, or return the existing recurring one."""
        with self._transaction("BEGIN IMMEDIATE") as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO bookings
                    (customer_id, barber_id, service_id, date, time,
                     status, is_recurring, recurring_schedule_id)
                VALUES (?, ?, ?, ?, ?, 'confirmed', ?, ?)
                """,
                (
                    customer_id, barber_id, service_id,
                    _iso(booking_date), booking_time,
                    int(recurring_schedule_id is not None), recurring_schedule_id,
                ),
            )
            if cursor.rowcount:
                row = conn.execute(
                    "SELECT * FROM bookings WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM bookings WHERE recurring_schedule_id = ? AND date = ?",
                    (recurring_schedule_id, _iso(booking_date)),
                ).fetchone()
                logger.warning(
                    "Booking for schedule #%s on %s already exists (#%d)",
                    recurring_schedule_id, booking_date, row["id"],
                )
        return self._row_to_booking(row)

    def get_booking(self, booking_id: int) -> Booking | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM bookings WHERE id = ?", (booking_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_booking(row)


class WaitlistDB(_SQLiteStore):
    """SQLite-backed storage for waitlist entries and offer notifications."""

    def _init_db(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS waitlist (
                    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
                    customer_id          TEXT    NOT NULL,
                    barber_id            TEXT    NOT NULL,
                    service_id           TEXT,
                    preferred_date       TEXT    NOT NULL,
                    preferred_time_start TEXT,
                    preferred_time_end   TEXT,
                    flexible_date        INTEGER NOT NULL DEFAULT 1,
                    flexible_time        INTEGER NOT NULL DEFAULT 1,
                    notes                TEXT,
                    priority             TEXT    NOT NULL DEFAULT 'normal',
                    status               TEXT    NOT NULL DEFAULT 'waiting',
                    position             INTEGER NOT NULL DEFAULT 0,
                    notified_at          TEXT,
                    expires_at           TEXT,
                    booking_id           INTEGER,
                    created_at           TEXT    NOT NULL,
                    updated_at           TEXT    NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_waitlist_barber_status
                    ON waitlist (barber_id, status)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS waitlist_notifications (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    entry_id    INTEGER NOT NULL REFERENCES waitlist (id),
                    kind        TEXT    NOT NULL,
                    message     TEXT    NOT NULL,
                    slot_date   TEXT,
                    slot_time   TEXT,
                    expires_at  TEXT,
                    read        INTEGER NOT NULL DEFAULT 0,
                    created_at  TEXT    NOT NULL
                )
            """)
        logger.debug("Waitlist tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> WaitlistEntry:
        return WaitlistEntry(
            id=row["id"],
            customer_id=row["customer_id"],
            barber_id=row["barber_id"],
            service_id=row["service_id"],
            preferred_date=_parse_date(row["preferred_date"]),
            preferred_time_start=row["preferred_time_start"],
            preferred_time_end=row["preferred_time_end"],
            flexible_date=bool(row["flexible_date"]),
            flexible_time=bool(row["flexible_time"]),
            notes=row["notes"],
            priority=Priority(row["priority"]),
            status=WaitlistStatus(row["status"]),
            position=row["position"],
            notified_at=_parse_ts(row["notified_at"]),
            expires_at=_parse_ts(row["expires_at"]),
            booking_id=row["booking_id"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> WaitlistNotification:
        return WaitlistNotification(
            id=row["id"],
            entry_id=row["entry_id"],
            kind=NotificationKind(row["kind"]),
            message=row["message"],
            slot_date=_parse_date(row["slot_date"]),
            slot_time=row["slot_time"],
            expires_at=_parse_ts(row["expires_at"]),
            read=bool(row["read"]),
            created_at=_parse_ts(row["created_at"]),
        )

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
    ) -> WaitlistEntry | None:
        """Insert a waiting entry unless the customer already has an open one here.

        An entry holding an offer counts as open: it returns to waiting if the
        offer is declined or expires.

        The duplicate check, the position count and the insert run under one
        write lock. Returns None on duplicate.
        """
        with self._transaction("BEGIN IMMEDIATE") as conn:
            existing = conn.execute(
                "SELECT 1 FROM waitlist WHERE customer_id = ? AND barber_id = ? "
                "AND status IN ('waiting', 'notified')",
                (customer_id, barber_id),
            ).fetchone()
            if existing is not None:
                return None

            (waiting,) = conn.execute(
                "SELECT COUNT(*) FROM waitlist WHERE barber_id = ? AND status = 'waiting'",
                (barber_id,),
            ).fetchone()

            cursor = conn.execute(
                """
                INSERT INTO waitlist
                    (customer_id, barber_id, service_id, preferred_date,
                     preferred_time_start, preferred_time_end,
                     flexible_date, flexible_time, notes,
                     priority, status, position, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'normal', 'waiting', ?, ?, ?)
                """,
                (
                    customer_id, barber_id, service_id, _iso(preferred_date),
                    preferred_time_start, preferred_time_end,
                    int(flexible_date), int(flexible_time), notes,
                    waiting + 1, _ts(now), _ts(now),
                ),
            )
            row = conn.execute(
                "SELECT * FROM waitlist WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()

        entry = self._row_to_entry(row)
        logger.info(
            "Waitlist entry #%d: %s joined barber %s at position %d",
            entry.id, customer_id, barber_id, entry.position,
        )
        return entry

    def get_entry(self, entry_id: int) -> WaitlistEntry | None:
        """Fetch a single entry by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM waitlist WHERE id = ?", (entry_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def list_entries(
        self,
        barber_id: str | None = None,
        customer_id: str | None = None,
        statuses: tuple[WaitlistStatus, ...] = (WaitlistStatus.WAITING,),
    ) -> list[WaitlistEntry]:
        """Entries filtered by barber and/or customer, in join order."""
        conditions: list[str] = []
        params: list = []
        if barber_id is not None:
            conditions.append("barber_id = ?")
            params.append(barber_id)
        if customer_id is not None:
            conditions.append("customer_id = ?")
            params.append(customer_id)
        if statuses:
            conditions.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(s.value for s in statuses)

        query = "SELECT * FROM waitlist"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at, id"

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def mark_notified(
        self, entry_id: int, notified_at: datetime, expires_at: datetime
    ) -> bool:
        """waiting -> notified. False if the entry is no longer waiting."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE waitlist
                SET status = 'notified', notified_at = ?, expires_at = ?, updated_at = ?
                WHERE id = ? AND status = 'waiting'
                """,
                (_ts(notified_at), _ts(expires_at), _ts(notified_at), entry_id),
            )
        return cursor.rowcount > 0

    def mark_booked(self, entry_id: int, booking_id: int, now: datetime) -> bool:
        """notified -> booked. False if the offer is no longer open."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE waitlist
                SET status = 'booked', booking_id = ?, updated_at = ?
                WHERE id = ? AND status = 'notified'
                """,
                (booking_id, _ts(now), entry_id),
            )
        return cursor.rowcount > 0

    def revert_to_waiting(
        self, entry_id: int, now: datetime, expired_before: datetime | None = None
    ) -> bool:
        """notified -> waiting, clearing the offer timestamps.

        With expired_before, only applies if the offer expired before that
        instant.
        """
        query = """
            UPDATE waitlist
            SET status = 'waiting', notified_at = NULL, expires_at = NULL, updated_at = ?
            WHERE id = ? AND status = 'notified'
        """
        params: list = [_ts(now), entry_id]
        if expired_before is not None:
            query += " AND expires_at < ?"
            params.append(_ts(expired_before))

        with self._transaction() as conn:
            cursor = conn.execute(query, params)
        return cursor.rowcount > 0

    def cancel_entry(self, entry_id: int, now: datetime) -> bool:
        """waiting/notified -> cancelled. False if already closed."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE waitlist
                SET status = 'cancelled', notified_at = NULL, expires_at = NULL,
                    updated_at = ?
                WHERE id = ? AND status IN ('waiting', 'notified')
                """,
                (_ts(now), entry_id),
            )
        cancelled = cursor.rowcount > 0
        if cancelled:
            logger.info("Waitlist entry #%d cancelled", entry_id)
        return cancelled

    def set_priority(self, entry_id: int, priority: Priority, now: datetime) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE waitlist SET priority = ?, updated_at = ? WHERE id = ?",
                (priority.value, _ts(now), entry_id),
            )
        return cursor.rowcount > 0

    def list_expired_offers(self, now: datetime) -> list[WaitlistEntry]:
        """Notified entries whose response window closed before now."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM waitlist WHERE status = 'notified' AND expires_at < ? "
                "ORDER BY expires_at, id",
                (_ts(now),),
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def add_notification(
        self,
        entry_id: int,
        kind: NotificationKind,
        message: str,
        now: datetime,
        slot_date: date | None = None,
        slot_time: str | None = None,
        expires_at: datetime | None = None,
    ) -> WaitlistNotification:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO waitlist_notifications
                    (entry_id, kind, message, slot_date, slot_time,
                     expires_at, read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    entry_id, kind.value, message, _iso(slot_date), slot_time,
                    _ts(expires_at), _ts(now),
                ),
            )
            row = conn.execute(
                "SELECT * FROM waitlist_notifications WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return self._row_to_notification(row)

    def list_notifications(
        self, customer_id: str, limit: int = 20
    ) -> list[WaitlistNotification]:
        """A customer's most recent waitlist notifications, newest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT n.* FROM waitlist_notifications AS n
                JOIN waitlist AS w ON w.id = n.entry_id
                WHERE w.customer_id = ?
                ORDER BY n.created_at DESC, n.id DESC
                LIMIT ?
                """,
                (customer_id, limit),
            ).fetchall()
        return [self._row_to_notification(r) for r in rows]

    def mark_notification_read(self, notification_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE waitlist_notifications SET read = 1 WHERE id = ?",
                (notification_id,),
            )
        return cursor.rowcount > 0
