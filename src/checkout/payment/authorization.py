"""Payment authorization: command and handler.

Creates (or re-uses) the processor payment intent for an order and records it
as a pending PaymentTransaction. The idempotency key sent to the processor is
``<order id>:<number of failed attempts>``: asking again while an attempt is
still open returns the same intent, while a retry after a failure opens a new
one.
"""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.gateway import get_gateway
from checkout.order.order import Order, OrderStatus
from checkout.payment.transaction import (
    RETRYABLE_STATUSES,
    PaymentTransaction,
    TransactionStatus,
)


@checkout.command(part_of="PaymentTransaction")
class CreateAuthorization:
    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(max_length=3)


@checkout.command_handler(part_of=PaymentTransaction)
class CreateAuthorizationHandler:
    @handle(CreateAuthorization)
    def create_authorization(self, command):
        if command.amount <= 0:
            raise ValidationError({"amount": ["Amount must be greater than zero"]})

        order = current_domain.repository_for(Order).get_for_owner(command.order_id, command.customer_id)
        if order.status != OrderStatus.PENDING.value:
            raise ValidationError({"order_id": [f"Order is already {order.status}"]})
        if round(command.amount, 2) != order.total_amount:
            raise ValidationError({"amount": [f"Amount does not match order total of {order.total_amount:.2f}"]})

        repo = current_domain.repository_for(PaymentTransaction)
        previous = repo.for_order(command.order_id)
        failed_attempts = sum(1 for txn in previous if txn.current_status in RETRYABLE_STATUSES)

        gateway = get_gateway()
        currency = command.currency or order.currency
        authorization = gateway.create_authorization(
            amount=order.total_amount,
            currency=currency,
            order_id=command.order_id,
            customer_id=command.customer_id,
            idempotency_key=f"{command.order_id}:{failed_attempts}",
        )

        transaction = repo.find_by_payment_intent(authorization.payment_intent_id)
        if transaction is None:
            # The processor no longer honours the old key; close out open attempts
            for stale in previous:
                if stale.is_active:
                    repo.apply_status(
                        str(stale.id),
                        TransactionStatus.CANCELLED,
                        failure_reason="Superseded by a newer payment attempt",
                    )

            transaction = PaymentTransaction.open(
                order_id=command.order_id,
                payment_intent_id=authorization.payment_intent_id,
                amount=order.total_amount,
                currency=currency,
                processor=gateway.name,
                is_test_mode=authorization.is_test_mode,
            )
            repo.add(transaction)
            logger.info(
                "payment_authorized",
                order_id=command.order_id,
                transaction_id=str(transaction.id),
                payment_intent_id=authorization.payment_intent_id,
                amount=order.total_amount,
            )
        else:
            logger.info(
                "payment_authorization_reused",
                order_id=command.order_id,
                transaction_id=str(transaction.id),
            )

        return {
            "client_secret": authorization.client_secret,
            "payment_intent_id": authorization.payment_intent_id,
            "transaction_id": str(transaction.id),
            "is_test_mode": authorization.is_test_mode,
        }
