"""Unit tests for Stripe payment confirmation."""

import threading
from unittest.mock import Mock, patch

import pytest
import stripe

from src.models.errors import CheckoutError, CheckoutErrorKind
from src.models.reservation import PaymentIntent
from src.services.stripe_payment import StripePaymentConfirmer

INTENT = PaymentIntent(id="pi_1", reservation_id="res-1", client_secret="pi_1_secret_x")


@pytest.mark.asyncio
async def test_confirm_uses_configured_payment_method():
    """Test the intent is confirmed with the test card."""
    confirmer = StripePaymentConfirmer("sk_test_mock", payment_method="pm_card_visa")

    with patch("src.services.stripe_payment.stripe.PaymentIntent.confirm") as confirm:
        confirm.return_value = Mock(status="succeeded")
        status = await confirmer.confirm(INTENT)

    confirm.assert_called_once_with("pi_1", payment_method="pm_card_visa")
    assert status == "succeeded"
    assert stripe.api_key == "sk_test_mock"


@pytest.mark.asyncio
async def test_processing_counts_as_paid():
    """Test asynchronous payment methods are accepted."""
    confirmer = StripePaymentConfirmer("sk_test_mock")

    with patch("src.services.stripe_payment.stripe.PaymentIntent.confirm") as confirm:
        confirm.return_value = Mock(status="processing")
        status = await confirmer.confirm(INTENT)

    assert status == "processing"


@pytest.mark.asyncio
async def test_incomplete_payment_fails():
    """Test an intent still needing a payment method is a failure."""
    confirmer = StripePaymentConfirmer("sk_test_mock")

    with patch("src.services.stripe_payment.stripe.PaymentIntent.confirm") as confirm:
        confirm.return_value = Mock(status="requires_payment_method")
        with pytest.raises(CheckoutError) as exc_info:
            await confirmer.confirm(INTENT)

    assert exc_info.value.kind == CheckoutErrorKind.PAYMENT_FAILED
    assert "requires_payment_method" in exc_info.value.message


@pytest.mark.asyncio
async def test_stripe_error_becomes_payment_failed():
    """Test Stripe declines surface as PAYMENT_FAILED."""
    confirmer = StripePaymentConfirmer("sk_test_mock")

    with patch("src.services.stripe_payment.stripe.PaymentIntent.confirm") as confirm:
        confirm.side_effect = stripe.StripeError("Your card was declined.")
        with pytest.raises(CheckoutError) as exc_info:
            await confirmer.confirm(INTENT)

    assert exc_info.value.kind == CheckoutErrorKind.PAYMENT_FAILED
    assert isinstance(exc_info.value.__cause__, stripe.StripeError)


@pytest.mark.asyncio
async def test_confirm_runs_off_the_event_loop_thread():
    """Test the blocking Stripe request does not stall the loop."""
    confirmer = StripePaymentConfirmer("sk_test_mock")
    calling_threads = []

    def fake_confirm(*args, **kwargs):
        calling_threads.append(threading.get_ident())
        return Mock(status="succeeded")

    with patch("src.services.stripe_payment.stripe.PaymentIntent.confirm", side_effect=fake_confirm):
        await confirmer.confirm(INTENT)

    assert calling_threads
    assert calling_threads[0] != threading.get_ident()
