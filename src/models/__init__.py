"""Models package - Pydantic domain models."""

from .checkout import (
    CheckoutState,
    CheckoutStep,
    CheckoutView,
    Ended,
    OrderSummary,
    Payment,
    SessionOutcome,
    Success,
    TicketSelection,
)
from .errors import CheckoutError, CheckoutErrorKind
from .reservation import (
    PaymentIntent,
    PaymentStatus,
    Registration,
    RegistrationStatus,
    Reservation,
)
from .ticket_type import TicketType

__all__ = [
    "CheckoutError",
    "CheckoutErrorKind",
    "CheckoutState",
    "CheckoutStep",
    "CheckoutView",
    "Ended",
    "OrderSummary",
    "Payment",
    "PaymentIntent",
    "PaymentStatus",
    "Registration",
    "RegistrationStatus",
    "Reservation",
    "SessionOutcome",
    "Success",
    "TicketSelection",
    "TicketType",
]
