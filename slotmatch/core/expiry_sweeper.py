"""
SlotMatch — Offer Expiry Sweeper.

Batch worker, run every minute: offers nobody answered in time go back to
waiting so the customer keeps their place in the queue.

Each revert is conditional on the entry still holding an expired offer, so
an accept or decline that lands first always wins.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from slotmatch.core.notifications import send_safely
from slotmatch.data.models import NotificationKind, TickFailure, TickResult

if TYPE_CHECKING:
    from slotmatch.ports.clock_port import ClockPort
    from slotmatch.ports.notification_port import NotificationPort
    from slotmatch.ports.store_port import WaitlistStorePort

logger = logging.getLogger(__name__)

_EXPIRED_MESSAGE = "Your slot offer expired. You are still on the waitlist."


async def run_expiry_sweep_tick(
    store: WaitlistStorePort,
    clock: ClockPort,
    notifier: NotificationPort | None = None,
) -> TickResult:
    """Revert every elapsed offer to waiting."""
    now = clock.now()
    result = TickResult()

    for entry in store.list_expired_offers(now):
        try:
            reverted = store.revert_to_waiting(entry.id, now, expired_before=now)
        except Exception as exc:
            logger.error("Failed to expire waitlist offer %d: %s", entry.id, exc)
            result.failed.append(TickFailure(item_id=entry.id, error=str(exc)))
            continue

        if not reverted:
            # Accepted or declined between the read and the write.
            result.skipped.append(entry.id)
            continue

        result.succeeded.append(entry.id)
        try:
            store.add_notification(entry.id, NotificationKind.EXPIRED, _EXPIRED_MESSAGE, now)
        except Exception as exc:
            logger.warning("Could not record expiry notice for entry %d: %s", entry.id, exc)
        await send_safely(
            notifier,
            entry.customer_id,
            _EXPIRED_MESSAGE,
            {
                "type": NotificationKind.EXPIRED.value,
                "entry_id": entry.id,
                "barber_id": entry.barber_id,
            },
        )

    if result.succeeded or result.failed:
        logger.info(
            "Expiry sweep: %d expired, %d failed, %d skipped",
            len(result.succeeded), len(result.failed), len(result.skipped),
        )
    return result
