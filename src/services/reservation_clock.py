"""Countdown for a held reservation.

One clock is created per reservation. While running it recomputes the time
left at a fixed interval and fires the expiry callback once when the hold
lapses, then stops itself.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from src.logging import get_logger

logger = get_logger(__name__)

EXPIRED_DISPLAY = "00:00"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_remaining(remaining: timedelta) -> str:
    """Format a duration as M:SS."""
    total_seconds = max(int(remaining.total_seconds()), 0)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes}:{seconds:02d}"


class ReservationClock:
    """Tracks remaining time-to-live of a reservation."""

    def __init__(
        self,
        expires_at: datetime,
        on_expire: Callable[[], None],
        tick_interval: float = 1.0,
        now: Callable[[], datetime] = utc_now,
    ):
        """Initialize reservation clock."""
        self.expires_at = expires_at
        self.on_expire = on_expire
        self.tick_interval = tick_interval
        self._now = now
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._expired = False
        self._remaining = max(expires_at - now(), timedelta(0))

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def running(self) -> bool:
        return self._running

    @property
    def remaining(self) -> timedelta:
        return self._remaining

    @property
    def time_remaining(self) -> str:
        """Remaining time for display; never negative."""
        if self._expired:
            return EXPIRED_DISPLAY
        return format_remaining(self._remaining)

    def start(self) -> None:
        """Start ticking in the background."""
        if self._running or self._expired:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(
            "reservation_clock_started",
            expires_at=self.expires_at.isoformat(),
            tick_interval=self.tick_interval,
        )

    def stop(self) -> None:
        """Stop ticking. Safe to call repeatedly."""
        self._running = False
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def tick(self) -> timedelta:
        """Recompute remaining time, firing expiry once it reaches zero."""
        if self._expired:
            return timedelta(0)

        remaining = self.expires_at - self._now()
        if remaining > timedelta(0):
            self._remaining = remaining
            return remaining

        self._remaining = timedelta(0)
        self._expired = True
        self.stop()
        logger.info("reservation_clock_expired", expires_at=self.expires_at.isoformat())
        self.on_expire()
        return self._remaining

    async def _run(self) -> None:
        """Tick immediately, then every interval, until stopped or expired."""
        while self._running:
            self.tick()
            if not self._running:
                break
            await asyncio.sleep(self.tick_interval)

    async def __aenter__(self) -> "ReservationClock":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()
