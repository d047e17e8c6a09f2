"""Reservation, payment intent and registration models.

These mirror the payloads of the events service. Identifiers are accepted
under any of the names the service uses for them (``reservationId``, ``_id``,
``id``) so the same models parse reserve, checkout and finalize responses.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from src.models.ticket_type import ensure_utc


class Reservation(BaseModel):
    """Time-limited hold on ticket inventory owned by one checkout session."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "reservationId", "_id"))
    ticket_type_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ticket_type_id", "ticketTypeId")
    )
    quantity: int = Field(gt=0, description="Number of tickets held")
    total_amount: Decimal = Field(
        ge=0, validation_alias=AliasChoices("total_amount", "totalAmount")
    )
    currency: str = Field(default="INR", min_length=3, max_length=3)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        validation_alias=AliasChoices("created_at", "createdAt"),
    )
    expires_at: datetime = Field(validation_alias=AliasChoices("expires_at", "expiresAt"))

    @field_validator("created_at", "expires_at")
    @classmethod
    def normalize_times(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def is_free(self) -> bool:
        """Check if no payment is needed to finalize."""
        return self.total_amount == 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class PaymentIntent(BaseModel):
    """Payment handle created for a paid reservation."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "paymentIntentId"))
    reservation_id: str
    client_secret: Optional[str] = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("client_secret", "clientSecret"),
    )


class RegistrationStatus(str, Enum):
    """Registration status enumeration."""

    REGISTERED = "registered"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHECKED_IN = "checked-in"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status of a registration."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Registration(BaseModel):
    """Confirmed registration returned by finalize."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id", "registrationId"))
    event_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("event_id", "eventId")
    )
    ticket_type_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ticket_type_id", "ticketTypeId")
    )
    status: RegistrationStatus = RegistrationStatus.REGISTERED
    payment_status: Optional[PaymentStatus] = Field(
        default=None, validation_alias=AliasChoices("payment_status", "paymentStatus")
    )

    @field_validator("ticket_type_id", mode="before")
    @classmethod
    def flatten_ticket_type(cls, v):
        """Accept a populated ticket type object as well as a bare id."""
        if isinstance(v, dict):
            return v.get("_id") or v.get("id")
        return v
