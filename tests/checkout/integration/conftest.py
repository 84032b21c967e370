import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers

from checkout.api import admin_router, checkout_router, register_checkout_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(checkout_router)
    app.include_router(admin_router)
    register_exception_handlers(app)
    register_checkout_exception_handlers(app)
    return TestClient(app)


@pytest.fixture()
def customer_headers():
    return {"X-Customer-Id": "cust-001"}


@pytest.fixture()
def order_body():
    return {
        "items": [{"product_id": "prod-001", "quantity": 2, "unit_price": 20.0}],
        "shipping_address": {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "address": "12 Analytical Row",
            "city": "Portland",
            "state": "OR",
            "zip_code": "97201",
        },
        "total_amount": 53.19,
    }


@pytest.fixture()
def api_order(client, customer_headers, order_body):
    """Place an order over HTTP and return its id."""
    response = client.post("/checkout/orders", json=order_body, headers=customer_headers)
    assert response.status_code == 201
    return response.json()["order_id"]


@pytest.fixture()
def api_payment(client, customer_headers, api_order):
    response = client.post(
        "/checkout/payments",
        json={"order_id": api_order, "amount": 53.19},
        headers=customer_headers,
    )
    assert response.status_code == 201
    return response.json()
