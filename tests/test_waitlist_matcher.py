"""Tests for slotmatch.core.waitlist_matcher — offering freed slots."""

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from slotmatch.core.errors import (
    EntryNotFoundError,
    EntryNotWaitingError,
    InvalidSlotError,
    OfferNotActiveError,
    ValidationError,
)
from slotmatch.core.waitlist_matcher import (
    WaitlistMatcher,
    check_slot_time,
    date_matches,
    time_matches,
)
from slotmatch.data.models import NotificationKind, Priority, WaitlistStatus
from slotmatch.ports.store_port import StoreError


@pytest.fixture
def matcher(waitlist_db, clock, notifier):
    return WaitlistMatcher(waitlist_db, clock, notifier, expiry_minutes=30)


def _join(waitlist_db, clock, customer, **kwargs):
    fields = dict(preferred_date=date(2024, 2, 1))
    fields.update(kwargs)
    entry = waitlist_db.add_waiting_entry(
        customer_id=customer, barber_id="barb-1", now=clock.now(), **fields,
    )
    clock.advance(minutes=1)
    return entry


class TestPreferenceMatching:
    def test_flexible_date_matches_any_day(self, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1")
        assert date_matches(entry, date(2024, 5, 5))

    def test_fixed_date_must_match(self, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1", flexible_date=False)
        assert date_matches(entry, date(2024, 2, 1))
        assert not date_matches(entry, date(2024, 2, 2))

    @pytest.mark.parametrize("slot,expected", [
        ("08:59", False), ("09:00", True), ("10:30", True), ("12:00", True), ("12:01", False),
    ])
    def test_time_window_is_inclusive(self, waitlist_db, clock, slot, expected):
        entry = _join(
            waitlist_db, clock, "cust-1", flexible_time=False,
            preferred_time_start="09:00", preferred_time_end="12:00",
        )
        assert time_matches(entry, slot) is expected

    def test_open_ended_window(self, waitlist_db, clock):
        entry = _join(
            waitlist_db, clock, "cust-1", flexible_time=False, preferred_time_start="15:00",
        )
        assert time_matches(entry, "19:00")
        assert not time_matches(entry, "14:00")

    def test_no_start_time_matches_everything(self, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1", flexible_time=False)
        assert time_matches(entry, "06:00")

    def test_flexible_time_ignores_window(self, waitlist_db, clock):
        entry = _join(
            waitlist_db, clock, "cust-1",
            preferred_time_start="09:00", preferred_time_end="10:00",
        )
        assert time_matches(entry, "18:00")


class TestMatchSlot:
    @pytest.mark.asyncio
    async def test_best_ranked_matching_entry_is_offered(self, matcher, waitlist_db, clock):
        # Earliest joiner only wants mornings; the slot is in the afternoon
        morning = _join(
            waitlist_db, clock, "cust-1", flexible_time=False,
            preferred_time_start="09:00", preferred_time_end="12:00",
        )
        anytime = _join(waitlist_db, clock, "cust-2")
        later = _join(waitlist_db, clock, "cust-3")

        offered = await matcher.match_slot("barb-1", date(2024, 2, 1), "15:00")

        assert offered == anytime.id
        statuses = {e.id: e.status for e in waitlist_db.list_entries(barber_id="barb-1", statuses=())}
        assert statuses == {
            morning.id: WaitlistStatus.WAITING,
            anytime.id: WaitlistStatus.NOTIFIED,
            later.id: WaitlistStatus.WAITING,
        }

    @pytest.mark.asyncio
    async def test_priority_beats_join_order(self, matcher, waitlist_db, clock):
        _join(waitlist_db, clock, "cust-1")
        vip = _join(waitlist_db, clock, "cust-2")
        waitlist_db.set_priority(vip.id, Priority.VIP, clock.now())

        assert await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00") == vip.id

    @pytest.mark.asyncio
    async def test_offer_window_and_record(self, matcher, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1")
        now = clock.now()

        await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00")

        offered = waitlist_db.get_entry(entry.id)
        assert offered.notified_at == now
        assert offered.expires_at == now + timedelta(minutes=30)

        [note] = waitlist_db.list_notifications("cust-1")
        assert note.kind is NotificationKind.SLOT_AVAILABLE
        assert note.slot_date == date(2024, 2, 1)
        assert note.slot_time == "10:00"
        assert note.expires_at == now + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_customer_is_messaged(self, matcher, waitlist_db, clock, notifier):
        entry = _join(waitlist_db, clock, "cust-1")

        await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00")

        notifier.notify.assert_awaited_once()
        user_id, message, payload = notifier.notify.call_args.args
        assert user_id == "cust-1"
        assert "2024-02-01" in message and "10:00" in message
        assert payload["type"] == "slot_available"
        assert payload["entry_id"] == entry.id

    @pytest.mark.asyncio
    async def test_only_one_customer_per_slot(self, matcher, waitlist_db, clock):
        for n in range(5):
            _join(waitlist_db, clock, f"cust-{n}")

        await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00")

        notified = waitlist_db.list_entries(barber_id="barb-1", statuses=(WaitlistStatus.NOTIFIED,))
        assert len(notified) == 1

    @pytest.mark.asyncio
    async def test_no_match(self, matcher, waitlist_db, clock, notifier):
        _join(waitlist_db, clock, "cust-1", flexible_date=False)

        assert await matcher.match_slot("barb-1", date(2024, 2, 2), "10:00") is None
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_barbers_queue_untouched(self, matcher, waitlist_db, clock):
        waitlist_db.add_waiting_entry(
            customer_id="cust-9", barber_id="barb-2",
            preferred_date=date(2024, 2, 1), now=clock.now(),
        )
        assert await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00") is None

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_offer(self, waitlist_db, clock):
        notifier = AsyncMock()
        notifier.notify = AsyncMock(side_effect=RuntimeError("telegram down"))
        matcher = WaitlistMatcher(waitlist_db, clock, notifier, expiry_minutes=30)
        entry = _join(waitlist_db, clock, "cust-1")

        assert await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00") == entry.id
        assert waitlist_db.get_entry(entry.id).status is WaitlistStatus.NOTIFIED

    @pytest.mark.asyncio
    async def test_stale_candidate_is_passed_over(self, waitlist_db, clock):
        first = _join(waitlist_db, clock, "cust-1")
        second = _join(waitlist_db, clock, "cust-2")

        class RacingStore:
            """Cancels the first entry between the read and the offer."""

            def __getattr__(self, name):
                return getattr(waitlist_db, name)

            def list_entries(self, **kwargs):
                entries = waitlist_db.list_entries(**kwargs)
                waitlist_db.cancel_entry(first.id, clock.now())
                return entries

        matcher = WaitlistMatcher(RacingStore(), clock, expiry_minutes=30)

        assert await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00") == second.id


class TestOfferSlot:
    @pytest.mark.asyncio
    async def test_direct_offer_with_custom_window(self, matcher, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1")

        offered = await matcher.offer_slot(entry.id, date(2024, 2, 3), "11:00", expires_in_minutes=60)

        assert offered.status is WaitlistStatus.NOTIFIED
        assert offered.expires_at == clock.now() + timedelta(minutes=60)

    @pytest.mark.asyncio
    async def test_offer_to_notified_entry_rejected(self, matcher, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1")
        await matcher.offer_slot(entry.id, date(2024, 2, 3), "11:00")

        with pytest.raises(EntryNotWaitingError):
            await matcher.offer_slot(entry.id, date(2024, 2, 3), "12:00")

    @pytest.mark.asyncio
    async def test_offer_to_missing_entry(self, matcher):
        with pytest.raises(EntryNotFoundError):
            await matcher.offer_slot(404, date(2024, 2, 3), "11:00")


class TestAnswers:
    @pytest.mark.asyncio
    async def test_accept_books_entry(self, matcher, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1")
        await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00")

        booked = matcher.accept_offer(entry.id, booking_id=55)

        assert booked.status is WaitlistStatus.BOOKED
        assert booked.booking_id == 55

    @pytest.mark.asyncio
    async def test_decline_returns_to_queue_with_rank(self, matcher, waitlist_db, clock):
        first = _join(waitlist_db, clock, "cust-1")
        _join(waitlist_db, clock, "cust-2")
        await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00")

        declined = matcher.decline_offer(first.id)

        assert declined.status is WaitlistStatus.WAITING
        assert declined.notified_at is None
        assert declined.expires_at is None
        assert declined.created_at == first.created_at
        # Still first in line for the next slot
        assert await matcher.match_slot("barb-1", date(2024, 2, 1), "11:00") == first.id

    def test_accept_without_offer(self, matcher, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1")
        with pytest.raises(OfferNotActiveError):
            matcher.accept_offer(entry.id, booking_id=1)

    @pytest.mark.asyncio
    async def test_decline_after_accept(self, matcher, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1")
        await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00")
        matcher.accept_offer(entry.id, booking_id=1)

        with pytest.raises(OfferNotActiveError):
            matcher.decline_offer(entry.id)
        assert waitlist_db.get_entry(entry.id).status is WaitlistStatus.BOOKED


class TestSlotTimeValidation:
    @pytest.mark.parametrize("slot", ["9:30", "24:00", "12:60", "noon", "", None])
    def test_malformed_times_rejected(self, slot):
        with pytest.raises(InvalidSlotError):
            check_slot_time(slot)

    def test_invalid_slot_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            check_slot_time("9:30")

    @pytest.mark.asyncio
    async def test_unpadded_time_rejected_before_any_write(
        self, matcher, waitlist_db, clock, notifier
    ):
        entry = _join(
            waitlist_db, clock, "cust-1", flexible_time=False,
            preferred_time_start="09:00", preferred_time_end="12:00",
        )

        with pytest.raises(InvalidSlotError):
            await matcher.match_slot("barb-1", date(2024, 2, 1), "9:30")

        assert waitlist_db.get_entry(entry.id).status is WaitlistStatus.WAITING
        assert waitlist_db.list_notifications("cust-1") == []
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_padded_time_inside_window_matches(self, matcher, waitlist_db, clock):
        entry = _join(
            waitlist_db, clock, "cust-1", flexible_time=False,
            preferred_time_start="09:00", preferred_time_end="12:00",
        )
        assert await matcher.match_slot("barb-1", date(2024, 2, 1), "09:30") == entry.id

    @pytest.mark.asyncio
    async def test_direct_offer_rejects_malformed_time(self, matcher, waitlist_db, clock):
        entry = _join(waitlist_db, clock, "cust-1")

        with pytest.raises(InvalidSlotError):
            await matcher.offer_slot(entry.id, date(2024, 2, 1), "7pm")

        assert waitlist_db.get_entry(entry.id).status is WaitlistStatus.WAITING


class TestOfferRecordFailure:
    @pytest.mark.asyncio
    async def test_offer_stands_when_inbox_record_fails(self, waitlist_db, clock, notifier):
        entry = _join(waitlist_db, clock, "cust-1")

        class BrokenInboxStore:
            def __getattr__(self, name):
                return getattr(waitlist_db, name)

            def add_notification(self, *args, **kwargs):
                raise StoreError("database is locked")

        matcher = WaitlistMatcher(BrokenInboxStore(), clock, notifier, expiry_minutes=30)

        assert await matcher.match_slot("barb-1", date(2024, 2, 1), "10:00") == entry.id
        assert waitlist_db.get_entry(entry.id).status is WaitlistStatus.NOTIFIED
        notifier.notify.assert_awaited_once()
