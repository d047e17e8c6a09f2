"""Ticket type domain model."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps from the events service as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TicketType(BaseModel):
    """Snapshot of a purchasable ticket type, fetched before checkout starts."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str
    price: Decimal = Field(ge=0, description="Unit price")
    capacity: int = Field(ge=0, description="Seats still available")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    sales_start_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("sales_start_at", "salesStartAt")
    )
    sales_end_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("sales_end_at", "salesEndAt")
    )
    is_refundable: bool = Field(
        default=False, validation_alias=AliasChoices("is_refundable", "isRefundable")
    )

    @field_validator("sales_start_at", "sales_end_at")
    @classmethod
    def normalize_window(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def is_sold_out(self) -> bool:
        """Check if no seats remain."""
        return self.capacity <= 0

    @property
    def is_free(self) -> bool:
        return self.price == 0

    def is_on_sale(self, now: datetime) -> bool:
        """Check if now falls inside the sales window (open ends allowed)."""
        if self.sales_start_at and now < self.sales_start_at:
            return False
        if self.sales_end_at and now >= self.sales_end_at:
            return False
        return True

    def is_available(self, now: datetime) -> bool:
        """Check if the ticket type can be selected for a new reservation."""
        return not self.is_sold_out and self.is_on_sale(now)
