"""Tests for the clock and Telegram notifier adapters and send_safely."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from slotmatch.adapters.system_clock import SystemClock
from slotmatch.adapters.telegram_notifier import TelegramNotifier
from slotmatch.core.notifications import send_safely


def test_system_clock_is_timezone_aware():
    now = SystemClock("Asia/Jerusalem").now()
    assert now.tzinfo is not None
    assert now.utcoffset() is not None


@pytest.mark.asyncio
async def test_telegram_notifier_sends_to_chat():
    bot = MagicMock()
    bot.send_message = AsyncMock()

    await TelegramNotifier(bot).notify("12345", "Hello", {"type": "slot_available"})

    bot.send_message.assert_awaited_once_with(chat_id="12345", text="Hello")


class TestSendSafely:
    @pytest.mark.asyncio
    async def test_delivered(self, notifier):
        assert await send_safely(notifier, "cust-1", "hi", {}) is True
        notifier.notify.assert_awaited_once_with("cust-1", "hi", {})

    @pytest.mark.asyncio
    async def test_no_notifier(self):
        assert await send_safely(None, "cust-1", "hi", {}) is False

    @pytest.mark.asyncio
    async def test_failure_swallowed(self):
        notifier = AsyncMock()
        notifier.notify = AsyncMock(side_effect=RuntimeError("boom"))
        assert await send_safely(notifier, "cust-1", "hi", {}) is False
