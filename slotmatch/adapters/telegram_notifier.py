"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
User ids are Telegram chat ids.
"""

from __future__ import annotations

import logging
from typing import Any

from telegram import Bot

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def notify(self, user_id: str, message: str, payload: dict[str, Any]) -> None:
        await self._bot.send_message(chat_id=user_id, text=message)
        logger.debug("Sent %s to %s", payload.get("type", "message"), user_id)
