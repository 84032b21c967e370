import json
from uuid import uuid4

import pytest
from protean import current_domain

from checkout.gateway import reset_gateway, set_gateway
from checkout.gateway.fake_adapter import FakeGateway
from checkout.order.placement import PlaceOrder
from checkout.payment.authorization import CreateAuthorization

CUSTOMER_ID = "cust-001"

SHIPPING_ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "address": "12 Analytical Row",
    "city": "Portland",
    "state": "OR",
    "zip_code": "97201",
}

# 2 x 20.00 → subtotal 40.00, tax 3.20, shipping 9.99
CART_ITEMS = [{"product_id": "prod-001", "quantity": 2, "unit_price": 20.0}]
CART_TOTAL = 53.19


@pytest.fixture(scope="session")
def _checkout_domain():
    from checkout.domain import checkout

    return checkout


@pytest.fixture(scope="session", autouse=True)
def setup_db(_checkout_domain):
    from checkout.utils.db import drop_db, setup_db

    setup_db(_checkout_domain)

    yield

    drop_db(_checkout_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_checkout_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _checkout_domain.domain_context()
    ctx.push()

    yield

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()
    ctx.pop()


@pytest.fixture(autouse=True)
def gateway():
    """A fresh FakeGateway installed as the active gateway for every test."""
    fake = FakeGateway()
    set_gateway(fake)
    yield fake
    reset_gateway()


@pytest.fixture()
def place_order():
    def _place(customer_id=CUSTOMER_ID, items=None, shipping_address=None):
        command = PlaceOrder(
            customer_id=customer_id,
            items=json.dumps(items or CART_ITEMS),
            shipping_address=json.dumps(shipping_address or SHIPPING_ADDRESS),
        )
        return current_domain.process(command, asynchronous=False)

    return _place


@pytest.fixture()
def authorize():
    def _authorize(order_id, customer_id=CUSTOMER_ID, amount=CART_TOTAL):
        command = CreateAuthorization(order_id=order_id, customer_id=customer_id, amount=amount)
        return current_domain.process(command, asynchronous=False)

    return _authorize


@pytest.fixture()
def webhook_payload():
    """Build a signed-ready Stripe-shaped notification body."""

    def _build(event_type, payment_intent_id, event_id=None, **object_fields):
        if event_type.startswith("charge."):
            obj = {"id": f"ch_{uuid4().hex[:12]}", "object": "charge", "payment_intent": payment_intent_id}
        else:
            obj = {"id": payment_intent_id, "object": "payment_intent"}
        obj.update(object_fields)
        body = {
            "id": event_id or f"evt_{uuid4().hex[:16]}",
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }
        return json.dumps(body).encode("utf-8")

    return _build
