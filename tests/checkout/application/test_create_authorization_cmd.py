"""Application tests for payment authorization."""

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from checkout.gateway.port import GatewayUnavailable
from checkout.order.lifecycle import UpdateOrderStatus
from checkout.payment.authorization import CreateAuthorization
from checkout.payment.transaction import PaymentTransaction, TransactionStatus


def _transactions(order_id):
    return current_domain.repository_for(PaymentTransaction).for_order(order_id)


class TestCreateAuthorization:
    def test_returns_client_secret_and_ids(self, place_order, authorize):
        order_id = place_order()
        result = authorize(order_id)
        assert result["client_secret"].startswith(result["payment_intent_id"])
        assert result["transaction_id"]
        assert result["is_test_mode"] is True

    def test_records_pending_transaction(self, place_order, authorize):
        order_id = place_order()
        result = authorize(order_id)
        transaction = current_domain.repository_for(PaymentTransaction).get(result["transaction_id"])
        assert transaction.status == TransactionStatus.PENDING.value
        assert transaction.payment_intent_id == result["payment_intent_id"]
        assert str(transaction.order_id) == order_id
        assert transaction.amount == 53.19
        assert transaction.processor == "fake"

    def test_sends_order_total_to_processor(self, place_order, authorize, gateway):
        order_id = place_order()
        authorize(order_id)
        call = gateway.calls[-1]
        assert call["method"] == "create_authorization"
        assert call["amount"] == 53.19
        assert call["order_id"] == order_id
        assert call["idempotency_key"] == f"{order_id}:0"

    def test_repeat_request_reuses_open_attempt(self, place_order, authorize):
        order_id = place_order()
        first = authorize(order_id)
        second = authorize(order_id)
        assert second["transaction_id"] == first["transaction_id"]
        assert second["payment_intent_id"] == first["payment_intent_id"]
        assert len(_transactions(order_id)) == 1

    def test_retry_after_failure_opens_new_attempt(self, place_order, authorize):
        order_id = place_order()
        first = authorize(order_id)
        current_domain.repository_for(PaymentTransaction).apply_status(
            first["transaction_id"], TransactionStatus.FAILED, failure_reason="declined"
        )
        second = authorize(order_id)
        assert second["transaction_id"] != first["transaction_id"]
        assert second["payment_intent_id"] != first["payment_intent_id"]
        active = [txn for txn in _transactions(order_id) if txn.is_active]
        assert len(active) == 1

    def test_processor_outage_records_nothing(self, place_order, authorize, gateway):
        order_id = place_order()
        gateway.configure(available=False)
        with pytest.raises(GatewayUnavailable):
            authorize(order_id)
        assert _transactions(order_id) == []

    def test_other_customers_order_is_not_found(self, place_order, authorize):
        order_id = place_order()
        with pytest.raises(ObjectNotFoundError):
            authorize(order_id, customer_id="cust-999")

    def test_amount_must_match_order_total(self, place_order, authorize):
        order_id = place_order()
        with pytest.raises(ValidationError) as exc:
            authorize(order_id, amount=1.00)
        assert "amount" in exc.value.messages

    def test_amount_must_be_positive(self, place_order):
        order_id = place_order()
        command = CreateAuthorization(order_id=order_id, customer_id="cust-001", amount=0.0)
        with pytest.raises(ValidationError):
            current_domain.process(command, asynchronous=False)

    def test_confirmed_order_cannot_be_paid_again(self, place_order, authorize):
        order_id = place_order()
        current_domain.process(UpdateOrderStatus(order_id=order_id, status="confirmed"), asynchronous=False)
        with pytest.raises(ValidationError):
            authorize(order_id)
