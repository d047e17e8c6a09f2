"""Checkout error taxonomy."""

from enum import Enum


class CheckoutErrorKind(str, Enum):
    """Why a checkout action failed."""

    VALIDATION = "VALIDATION"  # corrected locally, never sent
    CAPACITY = "CAPACITY"
    EXPIRED = "EXPIRED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    NETWORK = "NETWORK"  # retryable by re-invoking the same action
    UNAUTHORIZED = "UNAUTHORIZED"


class CheckoutError(Exception):
    """Failure of a checkout action, with a user-safe message."""

    def __init__(self, kind: CheckoutErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    @property
    def retryable(self) -> bool:
        """Whether re-invoking the same action may succeed."""
        return self.kind == CheckoutErrorKind.NETWORK
