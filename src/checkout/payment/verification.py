"""Payment verification: command and handler.

The client's word that a payment went through is never trusted. Verification
asks the processor for the payment intent's real status, writes it to the
transaction (forward moves only) and confirms the order on success.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.exceptions import IntegrityViolation
from checkout.gateway import get_gateway
from checkout.order.order import Order
from checkout.payment.transaction import (
    PaymentTransaction,
    TransactionStatus,
    from_processor_status,
)

SUCCESSFUL_STATUSES = frozenset({TransactionStatus.SUCCEEDED, TransactionStatus.PROCESSING})


@checkout.command(part_of="PaymentTransaction")
class VerifyPayment:
    payment_intent_id = String(required=True, max_length=255)
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    transaction_id = Identifier()


@checkout.command_handler(part_of=PaymentTransaction)
class VerifyPaymentHandler:
    @handle(VerifyPayment)
    def verify_payment(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get_for_owner(command.order_id, command.customer_id)

        repo = current_domain.repository_for(PaymentTransaction)
        if command.transaction_id:
            transaction = repo.get(command.transaction_id)
        else:
            transaction = repo.find_by_payment_intent(command.payment_intent_id)
            if transaction is None:
                raise IntegrityViolation(
                    "No payment transaction recorded for this payment intent",
                    payment_intent_id=command.payment_intent_id,
                )

        if transaction.payment_intent_id != command.payment_intent_id or str(transaction.order_id) != str(order.id):
            logger.warning(
                "payment_verification_mismatch",
                order_id=command.order_id,
                transaction_id=str(transaction.id),
                payment_intent_id=command.payment_intent_id,
            )
            raise IntegrityViolation(
                "Payment intent does not belong to this order",
                order_id=command.order_id,
                payment_intent_id=command.payment_intent_id,
            )

        snapshot = get_gateway().retrieve_payment(command.payment_intent_id)
        if snapshot.order_id and snapshot.order_id != str(order.id):
            raise IntegrityViolation(
                "Processor reports this payment for a different order",
                order_id=command.order_id,
                payment_intent_id=command.payment_intent_id,
            )

        transaction, changed = repo.apply_status(
            str(transaction.id),
            from_processor_status(snapshot.status),
            processor_response=snapshot.raw,
            failure_reason=snapshot.failure_reason,
            processor_transaction_id=snapshot.charge_id,
        )

        resolved = transaction.current_status
        if resolved == TransactionStatus.SUCCEEDED and order.confirm_payment():
            order_repo.add(order)

        logger.info(
            "payment_verified",
            order_id=command.order_id,
            transaction_id=str(transaction.id),
            processor_status=snapshot.status,
            status=resolved.value,
            changed=changed,
        )
        return {
            "success": resolved in SUCCESSFUL_STATUSES,
            "status": resolved.value,
            "message": f"Payment {resolved.value}",
            "transaction_id": str(transaction.id),
            "order_status": order.status,
        }
