"""Checkout session driven end to end against the fake processor."""

from unittest import mock

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from checkout.flow.cart import InMemoryCart
from checkout.flow.machine import (
    MISSING_FIELDS_MESSAGE,
    AwaitingPayment,
    EnteringShipping,
    PaymentFailed,
    PaymentStatus,
    PaymentSucceeded,
    Step,
)
from checkout.flow.session import EMPTY_CART_MESSAGE, UNEXPECTED_FAILURE_MESSAGE, CheckoutSession
from checkout.order.order import Order, OrderStatus
from checkout.payment.transaction import PaymentTransaction, TransactionStatus


@pytest.fixture()
def cart():
    cart = InMemoryCart()
    cart.add("prod-001", 2, 20.0)
    return cart


@pytest.fixture()
def session(cart, gateway):
    return CheckoutSession(customer_id="cust-001", cart=cart, gateway=gateway)


@pytest.fixture()
def address():
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "address": "12 Analytical Row",
        "city": "Portland",
        "state": "OR",
        "zip_code": "97201",
    }


def _transactions(order_id):
    return current_domain.repository_for(PaymentTransaction).for_order(order_id)


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestShippingStep:
    def test_complete_address_moves_to_payment(self, session, address):
        state = session.submit_shipping(address)

        assert isinstance(state, AwaitingPayment)
        assert session.step == Step.PAYMENT
        assert session.payment_status == PaymentStatus.IDLE

        order = _order(session.order_id)
        assert order.status == OrderStatus.PENDING.value
        assert order.total_amount == pytest.approx(53.19)
        transactions = _transactions(session.order_id)
        assert len(transactions) == 1
        assert transactions[0].status == TransactionStatus.PENDING.value
        assert transactions[0].payment_intent_id == state.payment.payment_intent_id

    def test_missing_fields_keep_the_customer_on_shipping(self, session, address):
        address["city"] = "  "
        del address["zip_code"]

        state = session.submit_shipping(address)

        assert isinstance(state, EnteringShipping)
        assert state.error == MISSING_FIELDS_MESSAGE
        assert set(state.missing_fields) == {"city", "zip_code"}
        assert current_domain.repository_for(Order).for_customer("cust-001") == []

    def test_empty_cart_is_refused(self, gateway, address):
        session = CheckoutSession(customer_id="cust-001", cart=InMemoryCart(), gateway=gateway)
        state = session.submit_shipping(address)
        assert isinstance(state, EnteringShipping)
        assert state.error == EMPTY_CART_MESSAGE

    def test_shipping_can_be_resubmitted_after_an_error(self, session, address):
        session.submit_shipping({})
        state = session.submit_shipping(address)
        assert isinstance(state, AwaitingPayment)


class TestAuthorizationFailure:
    def test_processor_outage_leaves_order_pending(self, session, gateway, address):
        gateway.configure(available=False)

        state = session.submit_shipping(address)

        assert isinstance(state, PaymentFailed)
        assert state.retryable is True
        assert session.step == Step.PAYMENT
        assert session.payment_status == PaymentStatus.FAILED
        assert _order(session.order_id).status == OrderStatus.PENDING.value
        assert not [t for t in _transactions(session.order_id) if t.status == TransactionStatus.SUCCEEDED.value]

    def test_retry_reuses_the_order(self, session, gateway, address):
        gateway.configure(available=False)
        session.submit_shipping(address)
        order_id = session.order_id

        gateway.configure(available=True)
        state = session.retry()

        assert isinstance(state, AwaitingPayment)
        assert session.order_id == order_id
        assert len(current_domain.repository_for(Order).for_customer("cust-001")) == 1


class TestPayment:
    def test_successful_payment_confirms_the_order(self, session, cart, address):
        session.submit_shipping(address)
        state = session.submit_payment({"payment_method": "pm_card_visa"})

        assert isinstance(state, PaymentSucceeded)
        assert state.verified_status == TransactionStatus.SUCCEEDED.value
        assert session.step == Step.CONFIRMATION
        assert session.redirect_to == f"/order-confirmation/{session.order_id}"
        assert cart.cleared is True
        assert _order(session.order_id).status == OrderStatus.CONFIRMED.value
        assert _transactions(session.order_id)[0].status == TransactionStatus.SUCCEEDED.value

    def test_declined_card_can_be_retried(self, session, gateway, cart, address):
        gateway.configure(should_succeed=False)
        session.submit_shipping(address)

        declined = session.submit_payment({})
        assert isinstance(declined, PaymentFailed)
        assert declined.reason == "Your card was declined."
        assert cart.cleared is False
        assert session.redirect_to is None

        gateway.configure(should_succeed=True)
        session.retry()
        state = session.submit_payment({})

        assert isinstance(state, PaymentSucceeded)
        assert _order(session.order_id).status == OrderStatus.CONFIRMED.value

    def test_processor_that_later_fails_does_not_confirm_the_order(self, session, gateway, cart, address):
        gateway.configure(settlement_status="requires_payment_method", failure_reason="Card reported stolen")
        session.submit_shipping(address)

        state = session.submit_payment({})

        # The customer already saw the success page
        assert isinstance(state, PaymentSucceeded)
        assert cart.cleared is True
        assert session.redirect_to == f"/order-confirmation/{session.order_id}"
        assert state.verified_status == TransactionStatus.FAILED.value

        transaction = _transactions(session.order_id)[0]
        assert transaction.status == TransactionStatus.FAILED.value
        assert transaction.failure_reason == "Card reported stolen"
        assert _order(session.order_id).status == OrderStatus.PENDING.value

    def test_verification_outage_is_recorded_on_success_state(self, session, gateway, address):
        session.submit_shipping(address)

        original = gateway.retrieve_payment

        def unavailable(payment_intent_id):
            gateway.configure(available=False)
            try:
                return original(payment_intent_id)
            finally:
                gateway.configure(available=True)

        gateway.retrieve_payment = unavailable
        state = session.submit_payment({})

        assert isinstance(state, PaymentSucceeded)
        assert state.verified_status is None
        assert state.verification_error == "Payment processor timed out"


class TestSessionGuards:
    def test_payment_before_shipping_is_refused(self, session):
        with pytest.raises(ValidationError) as exc:
            session.submit_payment({})
        assert "checkout" in exc.value.messages

    def test_overlapping_actions_are_refused(self, gateway, address):
        class ImpatientCart(InMemoryCart):
            def clear(self):
                super().clear()
                self.overlap = None
                try:
                    session.submit_payment({})
                except ValidationError as exc:
                    self.overlap = exc.messages

        cart = ImpatientCart()
        cart.add("prod-001", 1, 60.0)
        session = CheckoutSession(customer_id="cust-001", cart=cart, gateway=gateway)
        session.submit_shipping(address)
        session.submit_payment({})

        assert cart.overlap == {"checkout": ["A checkout step is already in progress"]}
        assert isinstance(session.state, PaymentSucceeded)


class TestUnexpectedFailures:
    def test_order_store_failure_returns_to_shipping(self, session, address):
        with mock.patch.object(Order, "place", side_effect=RuntimeError("store unavailable")):
            state = session.submit_shipping(address)

        assert isinstance(state, EnteringShipping)
        assert state.error == UNEXPECTED_FAILURE_MESSAGE

        assert isinstance(session.submit_shipping(address), AwaitingPayment)

    def test_authorization_crash_can_be_retried(self, session, gateway, address):
        with mock.patch.object(gateway, "create_authorization", side_effect=RuntimeError("boom")):
            state = session.submit_shipping(address)

        assert isinstance(state, PaymentFailed)
        assert state.retryable is True
        assert state.reason == UNEXPECTED_FAILURE_MESSAGE

        assert isinstance(session.retry(), AwaitingPayment)

    def test_confirmation_crash_can_be_retried(self, session, gateway, cart, address):
        session.submit_shipping(address)
        with mock.patch.object(gateway, "confirm_payment", side_effect=RuntimeError("boom")):
            state = session.submit_payment({})

        assert isinstance(state, PaymentFailed)
        assert state.retryable is True
        assert cart.cleared is False

        session.retry()
        assert isinstance(session.submit_payment({}), PaymentSucceeded)

    def test_verification_crash_is_recorded_without_leaving_success(self, session, gateway, address):
        session.submit_shipping(address)
        with mock.patch.object(gateway, "retrieve_payment", side_effect=RuntimeError("boom")):
            state = session.submit_payment({})

        assert isinstance(state, PaymentSucceeded)
        assert state.verification_error == UNEXPECTED_FAILURE_MESSAGE
        assert _order(session.order_id).status == OrderStatus.PENDING.value
