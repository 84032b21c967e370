"""Webhook reconciliation: applying stored notifications to transactions.

Each handled notification type maps to a transaction status. The update goes
through the same transition table as verification, so a late or replayed
notification never drags a settled transaction backwards. A notification
that needs no action is still marked processed.
"""

from dataclasses import dataclass

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.order.order import Order
from checkout.payment.transaction import PaymentTransaction, TransactionStatus
from checkout.webhook.event import MAX_ERROR_LENGTH, WebhookEvent

_INTENT_EVENT_STATUSES = {
    "payment_intent.succeeded": TransactionStatus.SUCCEEDED,
    "payment_intent.payment_failed": TransactionStatus.FAILED,
    "payment_intent.processing": TransactionStatus.PROCESSING,
    "payment_intent.canceled": TransactionStatus.CANCELLED,
}
REFUND_EVENT = "charge.refunded"

HANDLED_EVENT_TYPES = frozenset(_INTENT_EVENT_STATUSES) | {REFUND_EVENT}


@dataclass(frozen=True)
class PaymentUpdate:
    """What a notification says about one payment intent."""

    payment_intent_id: str
    status: TransactionStatus
    failure_reason: str | None = None
    charge_id: str | None = None


def interpret(event_type: str, payload: dict) -> PaymentUpdate | None:
    """Translate a notification into a payment update, or None if it needs no action."""
    if event_type not in HANDLED_EVENT_TYPES:
        return None

    obj = (payload.get("data") or {}).get("object") or {}

    if event_type == REFUND_EVENT:
        payment_intent_id = obj.get("payment_intent")
        amount, amount_refunded = obj.get("amount"), obj.get("amount_refunded")
        refunded_in_full = bool(obj.get("refunded")) or (
            amount is not None and amount_refunded is not None and amount_refunded >= amount
        )
        status = TransactionStatus.REFUNDED if refunded_in_full else TransactionStatus.PARTIALLY_REFUNDED
        update = PaymentUpdate(payment_intent_id=payment_intent_id, status=status, charge_id=obj.get("id"))
    else:
        payment_intent_id = obj.get("id")
        error = obj.get("last_payment_error") or {}
        charge = obj.get("latest_charge")
        update = PaymentUpdate(
            payment_intent_id=payment_intent_id,
            status=_INTENT_EVENT_STATUSES[event_type],
            failure_reason=error.get("message"),
            charge_id=charge if isinstance(charge, str) else None,
        )

    if not update.payment_intent_id:
        raise ValidationError({"payload": [f"{event_type} notification carries no payment intent"]})
    return update


@checkout.command(part_of="WebhookEvent")
class ReconcileWebhookEvent:
    webhook_event_id = Identifier(required=True)


@checkout.command(part_of="WebhookEvent")
class RecordWebhookFailure:
    webhook_event_id = Identifier(required=True)
    error = String(required=True, max_length=MAX_ERROR_LENGTH)


@checkout.command_handler(part_of=WebhookEvent)
class ReconcileWebhookEventHandler:
    @handle(ReconcileWebhookEvent)
    def reconcile(self, command):
        repo = current_domain.repository_for(WebhookEvent)
        event = repo.get(command.webhook_event_id)
        if event.processed:
            return {"processed": True, "changed": False}

        update = interpret(event.event_type, event.payload or {})
        if update is None:
            event.mark_processed()
            repo.add(event)
            logger.info("webhook_event_ignored", event_id=event.event_id, event_type=event.event_type)
            return {"processed": True, "changed": False}

        transaction_repo = current_domain.repository_for(PaymentTransaction)
        transaction = transaction_repo.find_by_payment_intent(update.payment_intent_id)
        if transaction is None:
            raise ValidationError(
                {"payment_intent": [f"No payment transaction for {update.payment_intent_id}"]}
            )

        transaction, changed = transaction_repo.apply_status(
            str(transaction.id),
            update.status,
            processor_response=(event.payload.get("data") or {}).get("object"),
            failure_reason=update.failure_reason,
            processor_transaction_id=update.charge_id,
        )

        if transaction.current_status == TransactionStatus.SUCCEEDED:
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get(str(transaction.order_id))
            if order.confirm_payment():
                order_repo.add(order)

        event.mark_processed(str(transaction.id))
        repo.add(event)
        logger.info(
            "webhook_event_applied",
            event_id=event.event_id,
            event_type=event.event_type,
            transaction_id=str(transaction.id),
            status=transaction.status,
            changed=changed,
        )
        return {"processed": True, "changed": changed}

    @handle(RecordWebhookFailure)
    def record_failure(self, command):
        repo = current_domain.repository_for(WebhookEvent)
        event = repo.get(command.webhook_event_id)
        event.record_failure(command.error)
        repo.add(event)
        return event.processing_attempts
