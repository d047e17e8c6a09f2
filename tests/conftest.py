"""Pytest configuration and shared fixtures."""

import sys
from decimal import Decimal
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from unittest.mock import AsyncMock

from src.models.reservation import PaymentIntent, Registration
from src.models.ticket_type import TicketType
from tests.helpers import EVENT_ID, FakeClock, make_reservation


@pytest.fixture
def fake_clock():
    """Fixed, manually advanced clock."""
    return FakeClock()


@pytest.fixture
def ga_ticket():
    """General admission ticket: 500 per seat, 3 seats left."""
    return TicketType(id="GA", name="General Admission", price=Decimal("500"), capacity=3)


@pytest.fixture
def vip_ticket():
    """VIP ticket with plenty of seats."""
    return TicketType(id="VIP", name="VIP", price=Decimal("2500"), capacity=50)


@pytest.fixture
def free_ticket():
    """Free entry ticket."""
    return TicketType(id="FREE", name="Free Entry", price=Decimal("0"), capacity=100)


@pytest.fixture
def mock_gateway(fake_clock):
    """Reservation gateway mock that succeeds by default."""
    gateway = AsyncMock()
    gateway.reserve = AsyncMock(return_value=make_reservation(fake_clock()))
    gateway.cancel = AsyncMock(return_value=None)
    gateway.create_payment_intent = AsyncMock(
        return_value=PaymentIntent(id="pi_1", reservation_id="res-1", client_secret="pi_1_secret_x")
    )
    gateway.finalize = AsyncMock(
        return_value=Registration(id="reg-1", event_id=EVENT_ID, ticket_type_id="GA")
    )
    return gateway
