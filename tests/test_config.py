import asyncio
from unittest.mock import AsyncMock

import pytest

from app import main
from app.core.config import settings, validate_settings


def test_default_settings_are_valid():
    assert validate_settings() is True


def test_negative_sweep_interval_is_rejected(monkeypatch):
    monkeypatch.setattr(settings, "MEETING_EXPIRY_SWEEP_SECONDS", -1)
    with pytest.raises(ValueError, match="MEETING_EXPIRY_SWEEP_SECONDS"):
        validate_settings()


def test_zero_sweep_interval_disables_the_sweep():
    assert main.start_expiry_sweep(0) is None


@pytest.mark.asyncio
async def test_sweep_waits_for_its_interval(monkeypatch):
    expire = AsyncMock(return_value=0)
    monkeypatch.setattr(main.meeting_service, "expire_overdue_requests", expire)

    task = main.start_expiry_sweep(3600)
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    expire.assert_not_awaited()


@pytest.mark.asyncio
async def test_sweep_keeps_running_after_a_failure(monkeypatch):
    expire = AsyncMock(side_effect=[RuntimeError("mongo down"), 0, 0])
    monkeypatch.setattr(main.meeting_service, "expire_overdue_requests", expire)

    task = asyncio.create_task(main.expire_meetings_periodically(0.001))
    while expire.await_count < 2:
        await asyncio.sleep(0.001)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert expire.await_count >= 2
