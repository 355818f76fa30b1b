"""Fire-and-forget delivery through the NotificationPort."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from slotmatch.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


async def send_safely(
    notifier: NotificationPort | None,
    user_id: str,
    message: str,
    payload: dict[str, Any],
) -> bool:
    """Deliver a message; log and swallow delivery failures.

    The state change that triggered the message has already been committed
    and must stand whether or not the user hears about it.
    """
    if notifier is None:
        return False
    try:
        await notifier.notify(user_id, message, payload)
    except Exception as exc:
        logger.warning("Notification to %s failed: %s", user_id, exc)
        return False
    return True
