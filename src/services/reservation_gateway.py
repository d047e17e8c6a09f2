"""Reservation gateway: seat holds, payment intents and finalization.

``ReservationGateway`` is the capability set a checkout session needs from the
events service. ``HttpReservationGateway`` implements it over the service's
REST API and turns every failure into a ``CheckoutError`` with a kind the
session can act on (re-select on CAPACITY, retry on NETWORK, and so on).
"""

import re
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import httpx
from pydantic import ValidationError

from src.config.settings import Settings
from src.logging import get_logger
from src.models.errors import CheckoutError, CheckoutErrorKind
from src.models.reservation import PaymentIntent, Registration, Reservation

logger = get_logger(__name__)


class ReservationGateway(Protocol):
    """Operations a checkout session performs against the events service."""

    async def reserve(self, ticket_type_id: Optional[str], quantity: int) -> Reservation:
        ...

    async def cancel(self, reservation_id: str) -> None:
        ...

    async def create_payment_intent(self, reservation_id: str) -> PaymentIntent:
        ...

    async def finalize(
        self, reservation_id: str, payment_intent_id: Optional[str] = None
    ) -> Registration:
        ...


class GatewayOperation(str, Enum):
    """Gateway operations, used for error defaults and logging."""

    RESERVE = "reserve"
    CANCEL = "cancel"
    CHECKOUT = "checkout"
    FINALIZE = "finalize"


DEFAULT_MESSAGES = {
    GatewayOperation.RESERVE: "Failed to reserve tickets",
    GatewayOperation.CANCEL: "Failed to cancel reservation",
    GatewayOperation.CHECKOUT: "Payment initiation failed",
    GatewayOperation.FINALIZE: "Registration failed",
}

# Kind used when the service rejects a request without saying why
DEFAULT_KINDS = {
    GatewayOperation.RESERVE: CheckoutErrorKind.VALIDATION,
    GatewayOperation.CANCEL: CheckoutErrorKind.VALIDATION,
    GatewayOperation.CHECKOUT: CheckoutErrorKind.VALIDATION,
    GatewayOperation.FINALIZE: CheckoutErrorKind.PAYMENT_FAILED,
}

ERROR_CODES = {
    "SOLD_OUT": CheckoutErrorKind.CAPACITY,
    "CAPACITY_EXCEEDED": CheckoutErrorKind.CAPACITY,
    "RESERVATION_EXPIRED": CheckoutErrorKind.EXPIRED,
    "EXPIRED": CheckoutErrorKind.EXPIRED,
    "PAYMENT_FAILED": CheckoutErrorKind.PAYMENT_FAILED,
}

STATUS_KINDS = {
    402: CheckoutErrorKind.PAYMENT_FAILED,
    409: CheckoutErrorKind.CAPACITY,
    410: CheckoutErrorKind.EXPIRED,
    401: CheckoutErrorKind.UNAUTHORIZED,
    403: CheckoutErrorKind.UNAUTHORIZED,
}

CAPACITY_HINTS = ("sold out", "capacity", "not enough")
REMAINING_PATTERN = re.compile(r"\bonly \d+ (?:seats?|tickets?)\b", re.IGNORECASE)
EXPIRED_HINTS = ("expired",)

NETWORK_MESSAGE = "Could not reach the events service. Please check your connection and try again."
TIMEOUT_MESSAGE = "The events service took too long to respond. Please try again."
MALFORMED_MESSAGE = "Unexpected response from the events service. Please try again."


def classify_failure(
    operation: GatewayOperation, status_code: int, body: dict[str, Any]
) -> CheckoutError:
    """Map a rejected response to a checkout error."""
    message = body.get("message") or body.get("error") or DEFAULT_MESSAGES[operation]
    if not isinstance(message, str):
        message = DEFAULT_MESSAGES[operation]

    code = str(body.get("code") or "").upper()
    if code in ERROR_CODES:
        return CheckoutError(ERROR_CODES[code], message)

    if status_code in STATUS_KINDS:
        return CheckoutError(STATUS_KINDS[status_code], message)
    if status_code >= 500:
        return CheckoutError(CheckoutErrorKind.NETWORK, message)

    lowered = message.lower()
    if operation == GatewayOperation.RESERVE and (
        any(hint in lowered for hint in CAPACITY_HINTS) or REMAINING_PATTERN.search(message)
    ):
        return CheckoutError(CheckoutErrorKind.CAPACITY, message)
    if any(hint in lowered for hint in EXPIRED_HINTS):
        return CheckoutError(CheckoutErrorKind.EXPIRED, message)

    return CheckoutError(DEFAULT_KINDS[operation], message)


class HttpReservationGateway:
    """Reservation gateway for one event over the events service REST API."""

    def __init__(
        self,
        event_id: str,
        base_url: str,
        access_token: str = "",
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize HTTP reservation gateway.

        Args:
            event_id: Event every request is scoped to
            base_url: Events service base URL (e.g. https://events.example.com/v1)
            access_token: Static bearer token, used when no provider is given
            timeout_seconds: Per-request timeout
            client: Pre-built client; the gateway only closes clients it created
            token_provider: Returns the current bearer token per request
            on_unauthorized: Called when the service rejects the token
        """
        self.event_id = event_id
        self.access_token = access_token
        self.token_provider = token_provider
        self.on_unauthorized = on_unauthorized
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds
        )

    @classmethod
    def from_settings(
        cls, event_id: str, settings: Settings, **kwargs: Any
    ) -> "HttpReservationGateway":
        """Build a gateway from application settings."""
        return cls(
            event_id,
            base_url=settings.events_api_url,
            access_token=settings.access_token,
            timeout_seconds=settings.request_timeout_seconds,
            **kwargs,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpReservationGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def reserve(self, ticket_type_id: Optional[str], quantity: int) -> Reservation:
        """Place a hold on tickets."""
        payload: dict[str, Any] = {"quantity": quantity}
        if ticket_type_id:
            payload["ticketTypeId"] = ticket_type_id

        body = await self._post(
            GatewayOperation.RESERVE, f"/events/{self.event_id}/reserve", payload
        )
        data = body.get("data") or body
        return self._parse(GatewayOperation.RESERVE, Reservation, data)

    async def cancel(self, reservation_id: str) -> None:
        """Release a hold."""
        await self._post(
            GatewayOperation.CANCEL, f"/reservations/{reservation_id}/cancel", None
        )

    async def create_payment_intent(self, reservation_id: str) -> PaymentIntent:
        """Create a payment intent for a paid hold."""
        body = await self._post(
            GatewayOperation.CHECKOUT,
            f"/events/{self.event_id}/checkout",
            {"reservationId": reservation_id},
        )
        data = dict(body.get("data") or {})
        for key in ("paymentIntentId", "clientSecret"):
            if body.get(key):
                data[key] = body[key]

        if not data.get("paymentIntentId") and not data.get("id"):
            logger.warning(
                "payment_intent_missing",
                event_id=self.event_id,
                reservation_id=reservation_id,
            )
            raise CheckoutError(
                CheckoutErrorKind.PAYMENT_FAILED, DEFAULT_MESSAGES[GatewayOperation.CHECKOUT]
            )

        data["reservation_id"] = reservation_id
        return self._parse(GatewayOperation.CHECKOUT, PaymentIntent, data)

    async def finalize(
        self, reservation_id: str, payment_intent_id: Optional[str] = None
    ) -> Registration:
        """Convert a hold into a confirmed registration."""
        payload: dict[str, Any] = {"reservationId": reservation_id}
        if payment_intent_id:
            payload["paymentIntentId"] = payment_intent_id

        body = await self._post(
            GatewayOperation.FINALIZE, f"/events/{self.event_id}/finalize", payload
        )
        data = body.get("data") or body.get("registration") or {}
        if isinstance(data, dict) and isinstance(data.get("registration"), dict):
            data = data["registration"]
        return self._parse(GatewayOperation.FINALIZE, Registration, data)

    def _headers(self) -> dict[str, str]:
        token = self.token_provider() if self.token_provider else self.access_token
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def _post(
        self,
        operation: GatewayOperation,
        path: str,
        payload: Optional[dict[str, Any]],
    ) -> dict[str, Any]:
        """POST to the events service and return the decoded success body."""
        try:
            response = await self._client.post(path, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.warning("gateway_timeout", operation=operation.value, path=path, error=str(e))
            raise CheckoutError(CheckoutErrorKind.NETWORK, TIMEOUT_MESSAGE) from e
        except httpx.TransportError as e:
            logger.warning("gateway_transport_error", operation=operation.value, path=path, error=str(e))
            raise CheckoutError(CheckoutErrorKind.NETWORK, NETWORK_MESSAGE) from e

        body = self._decode(response)
        if response.is_success and body.get("success", True) is not False:
            logger.debug(
                "gateway_request_succeeded",
                operation=operation.value,
                path=path,
                status_code=response.status_code,
            )
            return body

        error = classify_failure(operation, response.status_code, body)
        logger.warning(
            "gateway_request_rejected",
            operation=operation.value,
            path=path,
            status_code=response.status_code,
            error_kind=error.kind.value,
            error=error.message,
        )
        if error.kind == CheckoutErrorKind.UNAUTHORIZED and self.on_unauthorized:
            self.on_unauthorized()
        raise error

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _parse(operation: GatewayOperation, model: type, data: Any):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(
                "gateway_response_invalid",
                operation=operation.value,
                model=model.__name__,
                error=str(e),
            )
            raise CheckoutError(CheckoutErrorKind.NETWORK, MALFORMED_MESSAGE) from e
