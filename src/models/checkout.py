"""Checkout session state.

The session state is a tagged union discriminated on ``step``. Each variant
carries only the data that is valid for that step, so a payment intent
without a reservation, or a reservation outside the summary/payment steps,
cannot be constructed.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.models.errors import CheckoutErrorKind
from src.models.reservation import PaymentIntent, Registration, Reservation


class CheckoutStep(str, Enum):
    """Checkout step enumeration."""

    TICKET_SELECTION = "TICKET_SELECTION"
    ORDER_SUMMARY = "ORDER_SUMMARY"
    PAYMENT = "PAYMENT"
    SUCCESS = "SUCCESS"
    ENDED = "ENDED"


class SessionOutcome(str, Enum):
    """How a session left the checkout flow."""

    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TicketSelection(BaseModel):
    """Choosing a ticket type and quantity; no hold exists."""

    model_config = ConfigDict(frozen=True)

    step: Literal[CheckoutStep.TICKET_SELECTION] = CheckoutStep.TICKET_SELECTION
    selected_ticket_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)


class OrderSummary(BaseModel):
    """Hold created; waiting for the buyer to proceed."""

    model_config = ConfigDict(frozen=True)

    step: Literal[CheckoutStep.ORDER_SUMMARY] = CheckoutStep.ORDER_SUMMARY
    selected_ticket_id: Optional[str] = None
    quantity: int = Field(ge=1)
    reservation: Reservation


class Payment(BaseModel):
    """Paid hold with a payment intent awaiting confirmation.

    ``payment_confirmed`` is set once the payment provider has taken the
    money. From then on only the events service may expire the hold.
    """

    model_config = ConfigDict(frozen=True)

    step: Literal[CheckoutStep.PAYMENT] = CheckoutStep.PAYMENT
    selected_ticket_id: Optional[str] = None
    quantity: int = Field(ge=1)
    reservation: Reservation
    payment_intent: PaymentIntent
    payment_confirmed: bool = False

    @model_validator(mode="after")
    def check_intent_belongs_to_paid_reservation(self) -> "Payment":
        """Reject intents for free holds or for another reservation."""
        if self.reservation.is_free:
            raise ValueError("free reservations do not take a payment intent")
        if self.payment_intent.reservation_id != self.reservation.id:
            raise ValueError(
                f"payment intent {self.payment_intent.id} belongs to reservation "
                f"{self.payment_intent.reservation_id}, not {self.reservation.id}"
            )
        return self


class Success(BaseModel):
    """Registration confirmed. Terminal."""

    model_config = ConfigDict(frozen=True)

    step: Literal[CheckoutStep.SUCCESS] = CheckoutStep.SUCCESS
    selected_ticket_id: Optional[str] = None
    quantity: int = Field(ge=1)
    registration: Registration


class Ended(BaseModel):
    """Session discarded without success. Terminal."""

    model_config = ConfigDict(frozen=True)

    step: Literal[CheckoutStep.ENDED] = CheckoutStep.ENDED
    outcome: SessionOutcome = SessionOutcome.CANCELLED


CheckoutState = Annotated[
    Union[TicketSelection, OrderSummary, Payment, Success, Ended],
    Field(discriminator="step"),
]


class CheckoutView(BaseModel):
    """Render-ready snapshot of a checkout session."""

    model_config = ConfigDict(frozen=True)

    step: CheckoutStep
    selected_ticket_id: Optional[str] = None
    quantity: int = 1
    reservation: Optional[Reservation] = None
    payment_intent: Optional[PaymentIntent] = None
    payment_confirmed: bool = False
    registration: Optional[Registration] = None
    time_remaining: str = ""
    error: Optional[str] = None
    error_kind: Optional[CheckoutErrorKind] = None
    processing: bool = False

    @property
    def ended(self) -> bool:
        return self.step in (CheckoutStep.SUCCESS, CheckoutStep.ENDED)
