"""Unit tests for the reservation countdown clock."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from src.services.reservation_clock import (
    EXPIRED_DISPLAY,
    ReservationClock,
    format_remaining,
)
from tests.helpers import FakeClock


def test_format_remaining():
    """Test M:SS formatting, clamped at zero."""
    assert format_remaining(timedelta(minutes=10)) == "10:00"
    assert format_remaining(timedelta(seconds=65)) == "1:05"
    assert format_remaining(timedelta(seconds=9.7)) == "0:09"
    assert format_remaining(timedelta(seconds=-30)) == "0:00"


def test_tick_updates_remaining():
    """Test ticks count down without firing early."""
    clock_source = FakeClock()
    on_expire = Mock()
    clock = ReservationClock(clock_source() + timedelta(seconds=600), on_expire, now=clock_source)

    clock_source.advance(61)
    remaining = clock.tick()

    assert remaining == timedelta(seconds=539)
    assert clock.time_remaining == "8:59"
    assert not clock.expired
    on_expire.assert_not_called()


def test_expiry_fires_exactly_once():
    """Test further ticks after expiry are no-ops."""
    clock_source = FakeClock()
    on_expire = Mock()
    clock = ReservationClock(clock_source() + timedelta(seconds=5), on_expire, now=clock_source)

    clock_source.advance(5)
    clock.tick()
    clock_source.advance(5)
    clock.tick()

    on_expire.assert_called_once_with()
    assert clock.expired
    assert clock.remaining == timedelta(0)
    assert clock.time_remaining == EXPIRED_DISPLAY


def test_past_expiry_never_shows_negative_time():
    """Test a clock created after the deadline reads zero."""
    clock_source = FakeClock()
    clock = ReservationClock(clock_source() - timedelta(seconds=30), Mock(), now=clock_source)

    assert clock.remaining == timedelta(0)
    assert clock.time_remaining == "0:00"


@pytest.mark.asyncio
async def test_past_expiry_fires_on_first_tick():
    """Test an already-lapsed hold expires as soon as the clock runs."""
    clock_source = FakeClock()
    on_expire = Mock()
    clock = ReservationClock(
        clock_source() - timedelta(seconds=1), on_expire, tick_interval=3600, now=clock_source
    )

    clock.start()
    await asyncio.sleep(0)

    on_expire.assert_called_once_with()
    assert not clock.running


@pytest.mark.asyncio
async def test_background_ticks_reach_expiry():
    """Test the running clock expires on its own in real time."""
    on_expire = Mock()
    expires_at = datetime.now(timezone.utc) + timedelta(milliseconds=50)

    async with ReservationClock(expires_at, on_expire, tick_interval=0.01) as clock:
        await asyncio.sleep(0.3)

    on_expire.assert_called_once_with()
    assert clock.expired


@pytest.mark.asyncio
async def test_stopped_clock_does_not_fire():
    """Test stop cancels pending expiry."""
    on_expire = Mock()
    expires_at = datetime.now(timezone.utc) + timedelta(milliseconds=50)
    clock = ReservationClock(expires_at, on_expire, tick_interval=0.01)

    clock.start()
    await asyncio.sleep(0)
    clock.stop()
    clock.stop()
    await asyncio.sleep(0.15)

    on_expire.assert_not_called()
    assert not clock.running
