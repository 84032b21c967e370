"""PaymentTransaction aggregate: one processor payment intent for an order.

Three writers race on a transaction's status: client-triggered verification,
processor webhooks, and retries. They all go through the same transition
table, so whichever arrives last can only move the status forward.

State Machine:
    PENDING/PROCESSING → any other status
    SUCCEEDED → REFUNDED / PARTIALLY_REFUNDED
    PARTIALLY_REFUNDED → REFUNDED
    FAILED, CANCELLED, REFUNDED are final
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Dict, Float, Identifier, String

from checkout.domain import checkout
from checkout.payment.events import PaymentAuthorized, PaymentStatusChanged


class TransactionStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


_ANY_LATER = {
    TransactionStatus.PROCESSING,
    TransactionStatus.SUCCEEDED,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
    TransactionStatus.REFUNDED,
    TransactionStatus.PARTIALLY_REFUNDED,
}

_VALID_TRANSITIONS = {
    TransactionStatus.PENDING: _ANY_LATER,
    TransactionStatus.PROCESSING: _ANY_LATER - {TransactionStatus.PROCESSING},
    TransactionStatus.SUCCEEDED: {TransactionStatus.REFUNDED, TransactionStatus.PARTIALLY_REFUNDED},
    TransactionStatus.PARTIALLY_REFUNDED: {TransactionStatus.REFUNDED},
    TransactionStatus.FAILED: set(),  # Terminal
    TransactionStatus.CANCELLED: set(),  # Terminal
    TransactionStatus.REFUNDED: set(),  # Terminal
}

ACTIVE_STATUSES = frozenset({TransactionStatus.PENDING, TransactionStatus.PROCESSING})
# A new transaction may be opened for the order only after one of these
RETRYABLE_STATUSES = frozenset({TransactionStatus.FAILED, TransactionStatus.CANCELLED})

# Processor payment-intent status → stored status
_PROCESSOR_STATUS_MAP = {
    "succeeded": TransactionStatus.SUCCEEDED,
    "canceled": TransactionStatus.CANCELLED,
    "processing": TransactionStatus.PROCESSING,
    "requires_capture": TransactionStatus.SUCCEEDED,
    "requires_payment_method": TransactionStatus.FAILED,
}


def from_processor_status(processor_status: str) -> TransactionStatus:
    """Map a processor payment-intent status onto a transaction status.

    Statuses that still need customer action (``requires_action``,
    ``requires_confirmation``) mean nothing has settled yet and map to PENDING,
    which never overwrites a stored status.
    """
    if processor_status in ("requires_action", "requires_confirmation"):
        return TransactionStatus.PENDING
    return _PROCESSOR_STATUS_MAP.get(processor_status, TransactionStatus.FAILED)


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


@checkout.aggregate
class PaymentTransaction:
    order_id = Identifier(required=True)
    processor = String(max_length=50, default="stripe")
    payment_intent_id = String(required=True, max_length=255, unique=True)
    processor_transaction_id = String(max_length=255)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    status = String(
        choices=TransactionStatus,
        default=TransactionStatus.PENDING.value,
    )
    payment_method = Dict()
    processor_response = Dict()
    failure_reason = String(max_length=500)
    is_test_mode = Boolean(default=False)
    processed_at = DateTime()
    failed_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(
        cls,
        order_id: str,
        payment_intent_id: str,
        amount: float,
        currency: str,
        processor: str,
        is_test_mode: bool = False,
        payment_method_type: str = "card",
    ):
        """Record a freshly created payment intent as a pending transaction."""
        now = datetime.now(UTC)
        transaction = cls(
            order_id=order_id,
            processor=processor,
            payment_intent_id=payment_intent_id,
            amount=amount,
            currency=currency.upper(),
            payment_method={"type": payment_method_type},
            is_test_mode=is_test_mode,
            created_at=now,
            updated_at=now,
        )
        transaction.raise_(
            PaymentAuthorized(
                transaction_id=str(transaction.id),
                order_id=order_id,
                payment_intent_id=payment_intent_id,
                amount=amount,
                currency=transaction.currency,
                authorized_at=now,
            )
        )
        return transaction

    @property
    def current_status(self) -> TransactionStatus:
        return TransactionStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.current_status in ACTIVE_STATUSES

    def can_transition_to(self, target_status: TransactionStatus) -> bool:
        return can_transition(self.current_status, target_status)

    def _assert_can_transition(self, target_status: TransactionStatus) -> None:
        if not self.can_transition_to(target_status):
            raise ValidationError(
                {"status": [f"Cannot transition from {self.status} to {target_status.value}"]}
            )

    def record_status(
        self,
        target_status: TransactionStatus,
        processor_response: dict | None = None,
        failure_reason: str | None = None,
        processor_transaction_id: str | None = None,
    ) -> None:
        """Move to ``target_status`` with whatever the processor told us about it."""
        self._assert_can_transition(target_status)

        previous = self.status
        now = datetime.now(UTC)
        self.status = target_status.value
        self.updated_at = now
        if processor_response is not None:
            self.processor_response = processor_response
        if processor_transaction_id:
            self.processor_transaction_id = processor_transaction_id

        if target_status == TransactionStatus.SUCCEEDED:
            self.processed_at = now
            self.failure_reason = None
        elif target_status in RETRYABLE_STATUSES:
            self.failed_at = now
            self.failure_reason = (failure_reason or "Payment failed")[:500]

        self.raise_(
            PaymentStatusChanged(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                payment_intent_id=self.payment_intent_id,
                previous_status=previous,
                new_status=target_status.value,
                failure_reason=self.failure_reason,
                changed_at=now,
            )
        )
