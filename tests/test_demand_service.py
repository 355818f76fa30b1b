"""End-to-end tests for slotmatch.core.demand_service over real SQLite stores."""

from datetime import date

import pytest

from slotmatch.core.demand_service import DemandMatchingService
from slotmatch.core.recurring_service import CreateScheduleInput
from slotmatch.core.waitlist_queue import JoinWaitlistInput
from slotmatch.data.models import InstanceStatus, Priority, WaitlistStatus


@pytest.fixture
def service(schedule_db, booking_db, waitlist_db, clock, notifier):
    return DemandMatchingService(
        schedules=schedule_db,
        bookings=booking_db,
        waitlist=waitlist_db,
        clock=clock,
        notifier=notifier,
        offer_expiry_minutes=30,
    )


@pytest.mark.asyncio
async def test_recurring_schedule_lifecycle(service, clock):
    schedule = service.create_schedule(
        "cust-1",
        CreateScheduleInput(
            barber_id="barb-1", service_id="fade", frequency="weekly",
            day_of_week="monday", preferred_time="10:00", start_date="2024-01-01",
        ),
    )

    result = await service.run_processor_tick()
    assert result.succeeded == [schedule.id]

    service.skip_next(schedule.id, reason="travel")
    assert service.list_schedules_for_customer("cust-1")[0].next_booking_date == date(2024, 1, 15)

    service.pause_schedule(schedule.id)
    clock.advance(days=14)
    assert (await service.run_processor_tick()).succeeded == []

    resumed = service.resume_schedule(schedule.id)
    assert resumed.next_booking_date == date(2024, 1, 22)

    statuses = [i.status for i in service.list_instances(schedule.id)]
    assert statuses == [InstanceStatus.SKIPPED, InstanceStatus.CONFIRMED]

    stats = service.get_schedule_stats("cust-1")
    assert stats.active_schedules == 1
    assert stats.total_bookings_completed == 1

    service.cancel_schedule(schedule.id)
    assert service.list_schedules_for_barber("barb-1") == []


@pytest.mark.asyncio
async def test_waitlist_offer_expire_and_rebook(service, clock, notifier):
    a = service.join_waitlist("cust-a", JoinWaitlistInput(barber_id="barb-1", preferred_date="2024-01-05"))
    clock.advance(minutes=1)
    b = service.join_waitlist("cust-b", JoinWaitlistInput(barber_id="barb-1", preferred_date="2024-01-05"))
    service.set_priority(b.id, Priority.HIGH)
    assert service.get_position(b.id) == 1

    offered = await service.match_slot("barb-1", date(2024, 1, 5), "10:00")
    assert offered == b.id

    clock.advance(minutes=45)
    sweep = await service.run_expiry_sweep_tick()
    assert sweep.succeeded == [b.id]
    assert [e.id for e in service.list_waitlist_for_barber("barb-1")] == [b.id, a.id]

    await service.offer_slot(a.id, date(2024, 1, 6), "12:00")
    booked = service.accept_offer(a.id, booking_id=900)
    assert booked.status is WaitlistStatus.BOOKED

    stats = service.get_waitlist_stats("barb-1")
    assert stats.total_waiting == 1
    assert stats.conversion_rate == pytest.approx(50.0)

    notes = service.list_notifications("cust-b")
    assert len(notes) == 2
    assert service.mark_notification_read(notes[0].id) is True
    assert notifier.notify.await_count == 3


@pytest.mark.asyncio
async def test_decline_and_leave(service, clock):
    entry = service.join_waitlist("cust-a", JoinWaitlistInput(barber_id="barb-1", preferred_date="2024-01-05"))
    await service.match_slot("barb-1", date(2024, 1, 5), "10:00")

    assert service.decline_offer(entry.id).status is WaitlistStatus.WAITING
    assert service.list_waitlist_for_customer("cust-a")[0].id == entry.id

    assert service.leave_waitlist(entry.id).status is WaitlistStatus.CANCELLED
    assert service.list_waitlist_for_customer("cust-a") == []
