"""Stripe payment confirmation for checkout payment intents."""

import asyncio

import stripe

from src.config.settings import Settings
from src.logging import get_logger
from src.models.errors import CheckoutError, CheckoutErrorKind
from src.models.reservation import PaymentIntent

logger = get_logger(__name__)

PAID_STATUSES = frozenset({"succeeded", "processing", "requires_capture"})


class StripePaymentConfirmer:
    """Confirms payment intents with Stripe using a fixed payment method.

    Intended for test mode and headless clients: the events service creates
    the intent, this confirms it with a test card, and the session then
    finalizes the registration.
    """

    def __init__(self, secret_key: str, payment_method: str = "pm_card_visa"):
        """Initialize Stripe confirmer."""
        stripe.api_key = secret_key
        self.payment_method = payment_method

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripePaymentConfirmer":
        return cls(settings.stripe_secret_key, settings.stripe_test_payment_method)

    async def confirm(self, payment_intent: PaymentIntent) -> str:
        """Confirm the intent and return its Stripe status.

        Raises:
            CheckoutError: PAYMENT_FAILED when Stripe declines or errors
        """
        try:
            # stripe-python blocks; keep the clock task ticking meanwhile
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.confirm,
                payment_intent.id,
                payment_method=self.payment_method,
            )
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or "Payment was declined"
            logger.warning(
                "stripe_confirm_failed",
                payment_intent_id=payment_intent.id,
                error=str(e),
            )
            raise CheckoutError(CheckoutErrorKind.PAYMENT_FAILED, message) from e

        status = intent.status
        if status not in PAID_STATUSES:
            logger.warning(
                "stripe_payment_incomplete",
                payment_intent_id=payment_intent.id,
                status=status,
            )
            raise CheckoutError(
                CheckoutErrorKind.PAYMENT_FAILED,
                f"Payment could not be completed (status: {status})",
            )

        logger.info("stripe_payment_confirmed", payment_intent_id=payment_intent.id, status=status)
        return status
