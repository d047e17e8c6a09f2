"""Structured audit logging for checkout actions.

Provides an audit trail of every hold, payment and registration a checkout
session touches, so a support engineer can reconstruct what the client did.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from src.logging import get_logger

logger = get_logger(__name__)


class AuditEventType(str, Enum):
    """Types of auditable events."""

    # Holds
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_REJECTED = "reservation_rejected"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_EXPIRED = "reservation_expired"

    # Payment
    PAYMENT_INTENT_CREATED = "payment_intent_created"
    PAYMENT_CONFIRMED = "payment_confirmed"

    # Registration
    REGISTRATION_FINALIZED = "registration_finalized"
    REGISTRATION_FAILED = "registration_failed"


class AuditLogger:
    """Centralized audit logging service."""

    @staticmethod
    def log_event(
        event_type: AuditEventType,
        event_id: str,
        resource_type: str,
        resource_id: Optional[str],
        action: str,
        success: bool = True,
        metadata: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """
        Log an auditable event with structured context.

        Args:
            event_type: Type of audit event
            event_id: Event the checkout belongs to
            resource_type: Type of resource (reservation, payment_intent, registration)
            resource_id: ID of the affected resource, if one exists yet
            action: Human-readable action description
            success: Whether the action succeeded
            metadata: Additional context (amounts, quantities, etc.)
            error: Error message if action failed
        """
        audit_entry = {
            "event_type": event_type.value,
            "event_id": event_id,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "action": action,
            "success": success,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metadata": metadata or {},
        }

        if error:
            audit_entry["error"] = error

        logger.info(
            "audit_event",
            **audit_entry,
        )

    @staticmethod
    def log_reservation_created(
        event_id: str,
        reservation_id: str,
        ticket_type_id: Optional[str],
        quantity: int,
        total_amount: Decimal,
        expires_at: datetime,
    ) -> None:
        """Log a new seat hold."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_CREATED,
            event_id=event_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action=f"Reserved {quantity} ticket(s)",
            metadata={
                "ticket_type_id": ticket_type_id,
                "quantity": quantity,
                "total_amount": str(total_amount),
                "expires_at": expires_at.isoformat(),
            },
        )

    @staticmethod
    def log_reservation_rejected(
        event_id: str,
        ticket_type_id: Optional[str],
        quantity: int,
        error_kind: str,
        error: str,
    ) -> None:
        """Log a reserve attempt the service refused."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_REJECTED,
            event_id=event_id,
            resource_type="reservation",
            resource_id=None,
            action="Reservation rejected",
            success=False,
            metadata={
                "ticket_type_id": ticket_type_id,
                "quantity": quantity,
                "error_kind": error_kind,
            },
            error=error,
        )

    @staticmethod
    def log_reservation_cancelled(
        event_id: str,
        reservation_id: str,
        reason: str,
        success: bool = True,
        error: Optional[str] = None,
    ) -> None:
        """Log release of a hold."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_CANCELLED,
            event_id=event_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action="Reservation cancelled",
            success=success,
            metadata={"reason": reason},
            error=error,
        )

    @staticmethod
    def log_reservation_expired(event_id: str, reservation_id: str) -> None:
        """Log a hold that lapsed before checkout completed."""
        AuditLogger.log_event(
            event_type=AuditEventType.RESERVATION_EXPIRED,
            event_id=event_id,
            resource_type="reservation",
            resource_id=reservation_id,
            action="Reservation expired",
            success=False,
        )

    @staticmethod
    def log_payment_intent_created(
        event_id: str,
        reservation_id: str,
        payment_intent_id: str,
        amount: Decimal,
    ) -> None:
        """Log payment intent creation."""
        AuditLogger.log_event(
            event_type=AuditEventType.PAYMENT_INTENT_CREATED,
            event_id=event_id,
            resource_type="payment_intent",
            resource_id=payment_intent_id,
            action="Payment intent created",
            metadata={
                "reservation_id": reservation_id,
                "amount": str(amount),
            },
        )

    @staticmethod
    def log_payment_confirmed(
        event_id: str,
        payment_intent_id: str,
        status: str,
    ) -> None:
        """Log a payment confirmed with the provider."""
        AuditLogger.log_event(
            event_type=AuditEventType.PAYMENT_CONFIRMED,
            event_id=event_id,
            resource_type="payment_intent",
            resource_id=payment_intent_id,
            action="Payment confirmed",
            metadata={"status": status},
        )

    @staticmethod
    def log_registration_finalized(
        event_id: str,
        reservation_id: str,
        registration_id: str,
        payment_intent_id: Optional[str],
    ) -> None:
        """Log successful registration."""
        AuditLogger.log_event(
            event_type=AuditEventType.REGISTRATION_FINALIZED,
            event_id=event_id,
            resource_type="registration",
            resource_id=registration_id,
            action="Registration finalized",
            metadata={
                "reservation_id": reservation_id,
                "payment_intent_id": payment_intent_id,
            },
        )

    @staticmethod
    def log_registration_failed(
        event_id: str,
        reservation_id: str,
        error_kind: str,
        error: str,
    ) -> None:
        """Log a rejected finalize."""
        AuditLogger.log_event(
            event_type=AuditEventType.REGISTRATION_FAILED,
            event_id=event_id,
            resource_type="registration",
            resource_id=None,
            action="Registration failed",
            success=False,
            metadata={
                "reservation_id": reservation_id,
                "error_kind": error_kind,
            },
            error=error,
        )
