"""Shared test helpers."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from src.models.checkout import CheckoutStep
from src.models.reservation import Reservation

EVENT_ID = "evt-123"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def make_reservation(
    now: datetime,
    total_amount: str = "1000",
    quantity: int = 2,
    ticket_type_id: str | None = "GA",
    reservation_id: str = "res-1",
    hold_seconds: int = 600,
) -> Reservation:
    """Build a reservation as the events service would return it."""
    return Reservation(
        id=reservation_id,
        ticket_type_id=ticket_type_id,
        quantity=quantity,
        total_amount=Decimal(total_amount),
        created_at=now,
        expires_at=now + timedelta(seconds=hold_seconds),
    )


def assert_invariants(session) -> None:
    """Hold/intent invariants that must survive every transition."""
    holding = session.step in (CheckoutStep.ORDER_SUMMARY, CheckoutStep.PAYMENT)
    assert (session.reservation is not None) == holding
    if session.payment_intent is not None:
        assert session.reservation is not None
        assert session.reservation.total_amount > 0
    if not holding:
        assert session.clock is None
