"""Checkout session state machine for event ticket registration.

A session walks one buyer from ticket selection to a confirmed registration:

    TICKET_SELECTION -> ORDER_SUMMARY -> PAYMENT -> SUCCESS

with ENDED (cancelled) reachable from any non-terminal step. ORDER_SUMMARY and
PAYMENT hold a server-side reservation; a ReservationClock counts it down and
an expiry drops the session back to TICKET_SELECTION.

Gateway calls run one at a time. ``processing`` is the only guard against
duplicate requests, and every call records the session epoch it started in
so a response arriving after cancellation is discarded instead of applied.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol, Sequence, TypeVar, Union

from src.config.settings import Settings
from src.logging import get_logger
from src.logging.audit import AuditLogger
from src.models.checkout import (
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
from src.models.errors import CheckoutError, CheckoutErrorKind
from src.models.reservation import PaymentIntent, Registration, Reservation
from src.models.ticket_type import TicketType
from src.services.reservation_clock import ReservationClock, utc_now
from src.services.reservation_gateway import ReservationGateway

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_PER_ORDER = 10
EXPIRED_MESSAGE = "Your reservation has expired. Please try again."


class PaymentConfirmer(Protocol):
    """Confirms a payment intent with the payment provider."""

    async def confirm(self, payment_intent: PaymentIntent) -> str:
        ...


class CheckoutSession:
    """One buyer's attempt to register for an event."""

    def __init__(
        self,
        event_id: str,
        ticket_types: Sequence[TicketType],
        gateway: ReservationGateway,
        max_per_order: int = DEFAULT_MAX_PER_ORDER,
        tick_interval: float = 1.0,
        now: Callable[[], datetime] = utc_now,
        on_ended: Optional[Callable[[SessionOutcome], None]] = None,
    ):
        """
        Initialize checkout session.

        Args:
            event_id: Event being registered for
            ticket_types: Ticket types on offer; empty for open registration
            gateway: Events service operations
            max_per_order: Upper bound on quantity regardless of capacity
            tick_interval: Seconds between reservation clock ticks
            now: Clock source, injectable for tests
            on_ended: Called once with the outcome when the session ends
        """
        self.event_id = event_id
        self.ticket_types = {ticket.id: ticket for ticket in ticket_types}
        self.gateway = gateway
        self.max_per_order = max_per_order
        self.tick_interval = tick_interval
        self.on_ended = on_ended
        self._now = now

        self._state: CheckoutState = TicketSelection(
            selected_ticket_id=self._default_ticket_id()
        )
        self._clock: Optional[ReservationClock] = None
        self._error: Optional[CheckoutError] = None
        self._processing = False
        self._expiry_pending = False
        self._epoch = 0

    @classmethod
    def from_settings(
        cls,
        event_id: str,
        ticket_types: Sequence[TicketType],
        gateway: ReservationGateway,
        settings: Settings,
        **kwargs,
    ) -> "CheckoutSession":
        """Build a session using configured limits and tick interval."""
        return cls(
            event_id,
            ticket_types,
            gateway,
            max_per_order=settings.max_tickets_per_order,
            tick_interval=settings.clock_tick_seconds,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Exposed state
    # ------------------------------------------------------------------

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def step(self) -> CheckoutStep:
        return self._state.step

    @property
    def selected_ticket_id(self) -> Optional[str]:
        return getattr(self._state, "selected_ticket_id", None)

    @property
    def quantity(self) -> int:
        return getattr(self._state, "quantity", 1)

    @property
    def reservation(self) -> Optional[Reservation]:
        return getattr(self._state, "reservation", None)

    @property
    def payment_intent(self) -> Optional[PaymentIntent]:
        return getattr(self._state, "payment_intent", None)

    @property
    def payment_confirmed(self) -> bool:
        return getattr(self._state, "payment_confirmed", False)

    @property
    def registration(self) -> Optional[Registration]:
        return getattr(self._state, "registration", None)

    @property
    def clock(self) -> Optional[ReservationClock]:
        return self._clock

    @property
    def time_remaining(self) -> str:
        """Formatted countdown of the active hold, empty when none."""
        if self._clock is None:
            return ""
        return self._clock.time_remaining

    @property
    def error(self) -> Optional[str]:
        return self._error.message if self._error else None

    @property
    def error_kind(self) -> Optional[CheckoutErrorKind]:
        return self._error.kind if self._error else None

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def ended(self) -> bool:
        return isinstance(self._state, (Success, Ended))

    def view(self) -> CheckoutView:
        """Snapshot of everything the checkout UI renders."""
        return CheckoutView(
            step=self.step,
            selected_ticket_id=self.selected_ticket_id,
            quantity=self.quantity,
            reservation=self.reservation,
            payment_intent=self.payment_intent,
            payment_confirmed=self.payment_confirmed,
            registration=self.registration,
            time_remaining=self.time_remaining,
            error=self.error,
            error_kind=self.error_kind,
            processing=self._processing,
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_ticket(self, ticket_type_id: str) -> None:
        """Choose a ticket type, re-clamping the quantity to its capacity."""
        state = self._state
        if not isinstance(state, TicketSelection) or self._processing:
            logger.debug("select_ticket_ignored", event_id=self.event_id, step=self.step.value)
            return

        ticket = self.ticket_types.get(ticket_type_id)
        if ticket is None:
            self._fail_locally("Please choose one of the available ticket types.")
            return
        if ticket.is_sold_out:
            self._fail_locally(f"{ticket.name} is sold out.")
            return
        if not ticket.is_on_sale(self._now()):
            self._fail_locally(f"{ticket.name} is not on sale right now.")
            return

        self._state = TicketSelection(
            selected_ticket_id=ticket.id,
            quantity=self._clamp_quantity(state.quantity, ticket),
        )
        self._error = None

    def set_quantity(self, quantity: int) -> int:
        """Set the quantity, clamped to 1..min(max per order, capacity)."""
        state = self._state
        if not isinstance(state, TicketSelection) or self._processing:
            return self.quantity

        ticket = self.ticket_types.get(state.selected_ticket_id) if state.selected_ticket_id else None
        clamped = self._clamp_quantity(quantity, ticket)
        if clamped != quantity:
            logger.debug(
                "quantity_clamped",
                event_id=self.event_id,
                requested=quantity,
                quantity=clamped,
            )
        self._state = TicketSelection(
            selected_ticket_id=state.selected_ticket_id,
            quantity=clamped,
        )
        return clamped

    # ------------------------------------------------------------------
    # Gateway-backed actions
    # ------------------------------------------------------------------

    async def reserve(self) -> None:
        """Place a hold on the selected tickets and start the countdown."""
        state = self._state
        if self._processing or not isinstance(state, TicketSelection):
            logger.debug("reserve_ignored", event_id=self.event_id, processing=self._processing)
            return
        if state.selected_ticket_id is None and self.ticket_types:
            self._fail_locally("Please select a ticket type.")
            return

        self._error = None
        epoch, reservation, error = await self._call(
            self.gateway.reserve(state.selected_ticket_id, state.quantity)
        )

        if epoch != self._epoch:
            if reservation is not None:
                await self._release(reservation, reason="stale_reserve_response")
            return

        if error is not None:
            self._error = error
            AuditLogger.log_reservation_rejected(
                event_id=self.event_id,
                ticket_type_id=state.selected_ticket_id,
                quantity=state.quantity,
                error_kind=error.kind.value,
                error=error.message,
            )
            return

        self._state = OrderSummary(
            selected_ticket_id=state.selected_ticket_id,
            quantity=state.quantity,
            reservation=reservation,
        )
        AuditLogger.log_reservation_created(
            event_id=self.event_id,
            reservation_id=reservation.id,
            ticket_type_id=reservation.ticket_type_id,
            quantity=reservation.quantity,
            total_amount=reservation.total_amount,
            expires_at=reservation.expires_at,
        )
        self._start_clock(reservation)

    async def proceed_to_payment(self) -> None:
        """Leave the order summary: finalize free holds, else create a payment intent."""
        state = self._state
        if self._processing or not isinstance(state, OrderSummary):
            logger.debug("proceed_to_payment_ignored", event_id=self.event_id, step=self.step.value)
            return
        if state.reservation.is_expired(self._now()):
            self._expire()
            return

        if state.reservation.is_free:
            await self._finalize(state, None)
            return

        self._error = None
        epoch, payment_intent, error = await self._call(
            self.gateway.create_payment_intent(state.reservation.id)
        )
        if epoch != self._epoch:
            return

        if error is not None:
            self._error = error
            logger.warning(
                "payment_intent_failed",
                event_id=self.event_id,
                reservation_id=state.reservation.id,
                error_kind=error.kind.value,
            )
        else:
            self._state = Payment(
                selected_ticket_id=state.selected_ticket_id,
                quantity=state.quantity,
                reservation=state.reservation,
                payment_intent=payment_intent,
            )
            AuditLogger.log_payment_intent_created(
                event_id=self.event_id,
                reservation_id=state.reservation.id,
                payment_intent_id=payment_intent.id,
                amount=state.reservation.total_amount,
            )
        self._apply_deferred_expiry()

    async def finalize(self, payment_intent_id: Optional[str] = None) -> None:
        """Turn the hold into a registration.

        In PAYMENT the intent id defaults to the session's own intent and must
        match it. A free hold may also be finalized straight from the order
        summary.
        """
        state = self._state
        if self._processing:
            return

        if isinstance(state, Payment):
            intent_id = payment_intent_id or state.payment_intent.id
            if intent_id != state.payment_intent.id:
                self._fail_locally("This payment does not belong to the current reservation.")
                return
        elif isinstance(state, OrderSummary) and state.reservation.is_free:
            intent_id = None
        else:
            logger.debug("finalize_ignored", event_id=self.event_id, step=self.step.value)
            return

        await self._finalize(state, intent_id, check_local_expiry=not self.payment_confirmed)

    async def complete_payment(self, confirmer: PaymentConfirmer) -> None:
        """Confirm the payment intent with the provider, then finalize.

        A payment that was already confirmed is not confirmed again; only the
        finalize step is retried.
        """
        state = self._state
        if self._processing or not isinstance(state, Payment):
            return
        if state.payment_confirmed:
            await self._finalize(state, state.payment_intent.id, check_local_expiry=False)
            return
        if state.reservation.is_expired(self._now()):
            self._expire()
            return

        self._error = None
        epoch, status, error = await self._call(confirmer.confirm(state.payment_intent))
        if epoch != self._epoch:
            return

        if error is not None:
            self._error = error
            self._apply_deferred_expiry()
            return

        AuditLogger.log_payment_confirmed(
            event_id=self.event_id,
            payment_intent_id=state.payment_intent.id,
            status=status,
        )
        # Money has moved; only the service may expire the hold from here on.
        self._stop_clock()
        self._expiry_pending = False
        state = state.model_copy(update={"payment_confirmed": True})
        self._state = state
        await self._finalize(state, state.payment_intent.id, check_local_expiry=False)

    async def cancel_session(self) -> None:
        """Abandon the session, releasing any active hold."""
        state = self._state
        if isinstance(state, (Success, Ended)):
            return

        reservation = getattr(state, "reservation", None)
        self._epoch += 1
        self._processing = False
        self._expiry_pending = False
        self._stop_clock()
        self._state = Ended(outcome=SessionOutcome.CANCELLED)
        self._error = None
        logger.info(
            "checkout_session_cancelled",
            event_id=self.event_id,
            from_step=state.step.value,
            reservation_id=reservation.id if reservation else None,
        )

        if reservation is not None:
            await self._release(reservation, reason="session_cancelled")
        self._notify_ended(SessionOutcome.CANCELLED)

    async def __aenter__(self) -> "CheckoutSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if not self.ended:
            await self.cancel_session()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _call(
        self, operation: Awaitable[T]
    ) -> tuple[int, Optional[T], Optional[CheckoutError]]:
        """Run one gateway call under the processing flag.

        Returns the epoch the call started in, its result and its error.
        """
        epoch = self._epoch
        self._processing = True
        try:
            return epoch, await operation, None
        except CheckoutError as e:
            return epoch, None, e
        finally:
            if epoch == self._epoch:
                self._processing = False
            else:
                logger.info("stale_response_discarded", event_id=self.event_id)

    async def _finalize(
        self,
        state: Union[OrderSummary, Payment],
        payment_intent_id: Optional[str],
        check_local_expiry: bool = True,
    ) -> None:
        reservation = state.reservation
        if check_local_expiry and reservation.is_expired(self._now()):
            self._expire()
            return

        self._error = None
        epoch, registration, error = await self._call(
            self.gateway.finalize(reservation.id, payment_intent_id)
        )
        if epoch != self._epoch:
            return

        if error is not None:
            self._error = error
            AuditLogger.log_registration_failed(
                event_id=self.event_id,
                reservation_id=reservation.id,
                error_kind=error.kind.value,
                error=error.message,
            )
            if error.kind == CheckoutErrorKind.EXPIRED:
                self._drop_hold(state)
                AuditLogger.log_reservation_expired(self.event_id, reservation.id)
            else:
                self._apply_deferred_expiry()
            return

        self._stop_clock()
        self._expiry_pending = False
        self._state = Success(
            selected_ticket_id=state.selected_ticket_id,
            quantity=state.quantity,
            registration=registration,
        )
        AuditLogger.log_registration_finalized(
            event_id=self.event_id,
            reservation_id=reservation.id,
            registration_id=registration.id,
            payment_intent_id=payment_intent_id,
        )
        self._notify_ended(SessionOutcome.COMPLETED)

    async def _release(self, reservation: Reservation, reason: str) -> None:
        """Cancel a hold, best effort."""
        try:
            await self.gateway.cancel(reservation.id)
        except CheckoutError as e:
            logger.warning(
                "reservation_cancel_failed",
                event_id=self.event_id,
                reservation_id=reservation.id,
                reason=reason,
                error=e.message,
            )
            AuditLogger.log_reservation_cancelled(
                self.event_id, reservation.id, reason, success=False, error=e.message
            )
            return
        AuditLogger.log_reservation_cancelled(self.event_id, reservation.id, reason)

    def _on_clock_expired(self) -> None:
        # Expiry during an in-flight call waits for the call to resolve.
        if self._processing:
            self._expiry_pending = True
            return
        self._expire()

    def _apply_deferred_expiry(self) -> None:
        if self._expiry_pending:
            self._expiry_pending = False
            self._expire()

    def _expire(self) -> None:
        """Drop an expired hold and return to ticket selection."""
        state = self._state
        if not isinstance(state, (OrderSummary, Payment)):
            return
        if isinstance(state, Payment) and state.payment_confirmed:
            logger.info(
                "local_expiry_skipped",
                event_id=self.event_id,
                reservation_id=state.reservation.id,
            )
            return
        self._drop_hold(state)
        self._error = CheckoutError(CheckoutErrorKind.EXPIRED, EXPIRED_MESSAGE)
        logger.info(
            "reservation_expired",
            event_id=self.event_id,
            reservation_id=state.reservation.id,
        )
        AuditLogger.log_reservation_expired(self.event_id, state.reservation.id)

    def _drop_hold(self, state: Union[OrderSummary, Payment]) -> None:
        self._stop_clock()
        self._expiry_pending = False
        self._state = TicketSelection(
            selected_ticket_id=state.selected_ticket_id,
            quantity=state.quantity,
        )

    def _start_clock(self, reservation: Reservation) -> None:
        self._stop_clock()
        self._clock = ReservationClock(
            reservation.expires_at,
            on_expire=self._on_clock_expired,
            tick_interval=self.tick_interval,
            now=self._now,
        )
        self._clock.start()

    def _stop_clock(self) -> None:
        if self._clock is not None:
            self._clock.stop()
            self._clock = None

    def _notify_ended(self, outcome: SessionOutcome) -> None:
        logger.info("checkout_session_ended", event_id=self.event_id, outcome=outcome.value)
        if self.on_ended:
            self.on_ended(outcome)

    def _fail_locally(self, message: str) -> None:
        self._error = CheckoutError(CheckoutErrorKind.VALIDATION, message)
        logger.info("checkout_validation_failed", event_id=self.event_id, error=message)

    def _default_ticket_id(self) -> Optional[str]:
        """Pre-select the only ticket type when there is exactly one."""
        if len(self.ticket_types) != 1:
            return None
        (ticket,) = self.ticket_types.values()
        return ticket.id if ticket.is_available(self._now()) else None

    def _clamp_quantity(self, quantity: int, ticket: Optional[TicketType]) -> int:
        upper = self.max_per_order
        if ticket is not None:
            upper = min(upper, ticket.capacity)
        return max(1, min(quantity, upper))
