"""Tests for slotmatch.bot.job_runner — JobQueue wiring."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from slotmatch.bot.job_runner import register_jobs
from slotmatch.data.models import TickFailure, TickResult


@pytest.fixture
def app():
    app = MagicMock()
    app.job_queue = MagicMock()
    return app


@pytest.fixture
def service():
    service = MagicMock()
    service.run_processor_tick = AsyncMock(return_value=TickResult())
    service.run_expiry_sweep_tick = AsyncMock(return_value=TickResult())
    return service


def test_jobs_registered(app, service):
    register_jobs(app, service)

    app.job_queue.run_daily.assert_called_once()
    daily_kwargs = app.job_queue.run_daily.call_args.kwargs
    assert daily_kwargs["name"] == "recurring_processor"
    assert daily_kwargs["time"].hour == 6
    assert daily_kwargs["time"].tzinfo is not None

    app.job_queue.run_repeating.assert_called_once()
    repeating_kwargs = app.job_queue.run_repeating.call_args.kwargs
    assert repeating_kwargs["name"] == "offer_expiry_sweeper"
    assert repeating_kwargs["interval"] == 60


@pytest.mark.asyncio
async def test_processor_callback_runs_tick(app, service):
    service.run_processor_tick.return_value = TickResult(
        succeeded=[1], failed=[TickFailure(item_id=2, error="locked")],
    )
    register_jobs(app, service)
    callback = app.job_queue.run_daily.call_args.args[0]

    await callback(MagicMock())

    service.run_processor_tick.assert_awaited_once()


@pytest.mark.asyncio
async def test_sweeper_callback_runs_tick(app, service):
    register_jobs(app, service)
    callback = app.job_queue.run_repeating.call_args.args[0]

    await callback(MagicMock())

    service.run_expiry_sweep_tick.assert_awaited_once()
