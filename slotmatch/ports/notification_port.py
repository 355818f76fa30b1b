"""Notification port — abstract interface for sending messages to users.

Core modules depend on this protocol, never on a specific messaging provider.
Delivery is fire-and-forget: callers log failures and carry on.
"""

from __future__ import annotations

from typing import Any, Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def notify(self, user_id: str, message: str, payload: dict[str, Any]) -> None: ...
