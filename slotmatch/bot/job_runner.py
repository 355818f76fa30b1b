"""
SlotMatch — Telegram job runner.

Hosts the two batch workers on the python-telegram-bot JobQueue and uses
the same bot to deliver customer notifications:

- Recurring processor: daily at PROCESSOR_RUN_HOUR (TIMEZONE).
- Offer expiry sweeper: every SWEEP_INTERVAL_SECONDS.
"""

from __future__ import annotations

import logging
from datetime import time as dt_time
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from telegram.ext import Application, ApplicationBuilder, ContextTypes

from slotmatch.config import settings

if TYPE_CHECKING:
    from slotmatch.core.demand_service import DemandMatchingService

logger = logging.getLogger(__name__)


def build_app() -> Application:
    """Create the Telegram application, the service, and register the jobs."""
    from slotmatch.adapters.telegram_notifier import TelegramNotifier
    from slotmatch.core.demand_service import create_service

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()
    service = create_service(notifier=TelegramNotifier(app.bot))
    app.bot_data["service"] = service

    register_jobs(app, service)
    return app


def register_jobs(app: Application, service: DemandMatchingService) -> None:
    """Schedule the recurring processor and the expiry sweeper."""
    tz = ZoneInfo(settings.TIMEZONE)
    run_time = dt_time(hour=settings.PROCESSOR_RUN_HOUR, minute=0, tzinfo=tz)

    async def _processor_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        result = await service.run_processor_tick()
        for failure in result.failed:
            logger.error(
                "Recurring schedule %d will be retried next run: %s",
                failure.item_id, failure.error,
            )

    async def _sweeper_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await service.run_expiry_sweep_tick()

    app.job_queue.run_daily(
        _processor_callback,
        time=run_time,
        name="recurring_processor",
    )
    app.job_queue.run_repeating(
        _sweeper_callback,
        interval=settings.SWEEP_INTERVAL_SECONDS,
        first=0,
        name="offer_expiry_sweeper",
    )

    logger.info(
        "Recurring processor scheduled at %02d:00 %s; expiry sweep every %ds",
        settings.PROCESSOR_RUN_HOUR,
        settings.TIMEZONE,
        settings.SWEEP_INTERVAL_SECONDS,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting SlotMatch workers...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
