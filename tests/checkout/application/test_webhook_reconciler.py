"""Application tests for webhook reception and reconciliation."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from checkout.order.order import Order, OrderStatus
from checkout.payment.transaction import PaymentTransaction, TransactionStatus
from checkout.webhook.event import WebhookEvent
from checkout.webhook.reception import RecordWebhookEvent
from checkout.webhook.reconciler import WebhookSignatureError, receive_webhook, reconcile


@pytest.fixture()
def authorized(place_order, authorize):
    order_id = place_order()
    return order_id, authorize(order_id)


@pytest.fixture()
def deliver(gateway):
    """Send a correctly signed notification body through the reconciler."""

    def _deliver(payload):
        return receive_webhook(payload, gateway.sign(payload))

    return _deliver


def _transaction(authorization):
    return current_domain.repository_for(PaymentTransaction).get(authorization["transaction_id"])


def _stored(event_id):
    return current_domain.repository_for(WebhookEvent).find_by_event_id(event_id)


class TestReception:
    def test_record_command_stores_the_body(self, webhook_payload):
        body = webhook_payload("payment_intent.succeeded", "pi_001", event_id="evt_cmd")
        command = RecordWebhookEvent(event_id="evt_cmd", event_type="payment_intent.succeeded", body=body.decode())

        first = current_domain.process(command, asynchronous=False)
        second = current_domain.process(command, asynchronous=False)

        assert first["created"] is True
        assert second == {"webhook_event_id": first["webhook_event_id"], "created": False, "processed": False}
        assert _stored("evt_cmd").payload["data"]["object"]["id"] == "pi_001"


class TestSignature:
    def test_bad_signature_is_rejected_before_storage(self, webhook_payload):
        payload = webhook_payload("payment_intent.succeeded", "pi_001", event_id="evt_bad")
        with pytest.raises(WebhookSignatureError):
            receive_webhook(payload, "not-a-signature")
        assert _stored("evt_bad") is None

    def test_missing_signature_is_rejected(self, webhook_payload):
        payload = webhook_payload("payment_intent.succeeded", "pi_001")
        with pytest.raises(WebhookSignatureError):
            receive_webhook(payload, "")

    def test_signed_garbage_is_a_validation_error(self, deliver):
        with pytest.raises(ValidationError):
            deliver(b"{not json")

    def test_body_without_event_id_is_a_validation_error(self, deliver):
        with pytest.raises(ValidationError):
            deliver(b'{"type": "payment_intent.succeeded"}')


class TestReconciliation:
    def test_succeeded_event_settles_transaction_and_order(self, authorized, deliver, webhook_payload):
        order_id, authorization = authorized
        payload = webhook_payload(
            "payment_intent.succeeded",
            authorization["payment_intent_id"],
            event_id="evt_ok",
            latest_charge="ch_123",
        )

        receipt = deliver(payload)

        assert receipt.processed is True
        assert receipt.duplicate is False
        transaction = _transaction(authorization)
        assert transaction.status == TransactionStatus.SUCCEEDED.value
        assert transaction.processor_transaction_id == "ch_123"
        assert current_domain.repository_for(Order).get(order_id).status == OrderStatus.CONFIRMED.value

        stored = _stored("evt_ok")
        assert stored.processed is True
        assert stored.payment_transaction_id == authorization["transaction_id"]
        assert stored.event_type == "payment_intent.succeeded"

    def test_failed_event_leaves_order_pending(self, authorized, deliver, webhook_payload):
        order_id, authorization = authorized
        payload = webhook_payload(
            "payment_intent.payment_failed",
            authorization["payment_intent_id"],
            last_payment_error={"message": "Card expired"},
        )
        deliver(payload)
        transaction = _transaction(authorization)
        assert transaction.status == TransactionStatus.FAILED.value
        assert transaction.failure_reason == "Card expired"
        assert current_domain.repository_for(Order).get(order_id).status == OrderStatus.PENDING.value

    def test_late_processing_event_does_not_regress(self, authorized, deliver, webhook_payload):
        _, authorization = authorized
        intent = authorization["payment_intent_id"]
        deliver(webhook_payload("payment_intent.succeeded", intent))
        receipt = deliver(webhook_payload("payment_intent.processing", intent))
        assert receipt.processed is True
        assert _transaction(authorization).status == TransactionStatus.SUCCEEDED.value

    def test_refund_after_success(self, authorized, deliver, webhook_payload):
        _, authorization = authorized
        intent = authorization["payment_intent_id"]
        deliver(webhook_payload("payment_intent.succeeded", intent))
        deliver(webhook_payload("charge.refunded", intent, amount=5319, amount_refunded=1000))
        assert _transaction(authorization).status == TransactionStatus.PARTIALLY_REFUNDED.value
        deliver(webhook_payload("charge.refunded", intent, amount=5319, amount_refunded=5319))
        assert _transaction(authorization).status == TransactionStatus.REFUNDED.value

    def test_unhandled_event_type_is_acknowledged(self, deliver, webhook_payload):
        receipt = deliver(webhook_payload("customer.created", "cus_001", event_id="evt_other"))
        assert receipt.processed is True
        assert _stored("evt_other").payment_transaction_id is None


class TestDuplicates:
    def test_redelivery_is_stored_once(self, authorized, deliver, webhook_payload):
        _, authorization = authorized
        payload = webhook_payload("payment_intent.succeeded", authorization["payment_intent_id"], event_id="evt_dup")

        first = deliver(payload)
        second = deliver(payload)

        assert first.duplicate is False
        assert second.duplicate is True
        assert second.processed is True
        assert second.webhook_event_id == first.webhook_event_id
        events = current_domain.repository_for(WebhookEvent).recent()
        assert [event.event_id for event in events] == ["evt_dup"]

    def test_replaying_a_sequence_reaches_the_same_state(self, authorized, deliver, webhook_payload):
        order_id, authorization = authorized
        intent = authorization["payment_intent_id"]
        sequence = [
            webhook_payload("payment_intent.processing", intent, event_id="evt_1"),
            webhook_payload("payment_intent.succeeded", intent, event_id="evt_2"),
            webhook_payload("payment_intent.processing", intent, event_id="evt_3"),
        ]

        for payload in sequence:
            deliver(payload)
        after_once = (_transaction(authorization).status, current_domain.repository_for(Order).get(order_id).status)

        for payload in sequence:
            deliver(payload)
        after_twice = (_transaction(authorization).status, current_domain.repository_for(Order).get(order_id).status)

        assert after_once == after_twice == ("succeeded", "confirmed")


class TestApplyFailures:
    def test_unknown_intent_is_kept_for_inspection(self, deliver, webhook_payload):
        receipt = deliver(webhook_payload("payment_intent.succeeded", "pi_unknown", event_id="evt_orphan"))

        assert receipt.processed is False
        stored = _stored("evt_orphan")
        assert stored.processed is False
        assert stored.processing_attempts == 1
        assert "pi_unknown" in stored.last_processing_error

    def test_redelivery_of_failed_event_tries_again(self, deliver, webhook_payload):
        payload = webhook_payload("payment_intent.succeeded", "pi_unknown", event_id="evt_orphan")
        deliver(payload)
        receipt = deliver(payload)
        assert receipt.duplicate is True
        assert receipt.processed is False
        assert _stored("evt_orphan").processing_attempts == 2

    def test_manual_retry_after_data_is_fixed(self, place_order, deliver, webhook_payload):
        receipt = deliver(webhook_payload("payment_intent.succeeded", "pi_late", event_id="evt_late"))
        order_id = place_order()
        transaction = PaymentTransaction.open(
            order_id=order_id,
            payment_intent_id="pi_late",
            amount=53.19,
            currency="USD",
            processor="fake",
        )
        current_domain.repository_for(PaymentTransaction).add(transaction)

        assert reconcile(receipt.webhook_event_id) is True
        assert _stored("evt_late").processed is True
        assert current_domain.repository_for(PaymentTransaction).get(str(transaction.id)).status == "succeeded"
