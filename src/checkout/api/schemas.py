"""Pydantic request/response schemas for the Checkout API.

These are external contracts (anti-corruption layer), separate from
internal Protean commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    product_id: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)


class ShippingAddressSchema(BaseModel):
    first_name: str
    last_name: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str = "US"
    phone: str | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    items: list[OrderItemSchema]
    shipping_address: ShippingAddressSchema
    total_amount: float | None = None
    currency: str = "USD"

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
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
            ]
        }
    }


class OrderIdResponse(BaseModel):
    order_id: str


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    status: str
    items: list[OrderItemSchema]
    shipping_address: ShippingAddressSchema
    subtotal: float
    tax: float
    shipping_cost: float
    total_amount: float
    currency: str
    created_at: datetime | None = None


class UpdateOrderStatusRequest(BaseModel):
    status: str


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class CreateAuthorizationRequest(BaseModel):
    order_id: str
    amount: float = Field(gt=0)
    currency: str | None = None


class AuthorizationResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    transaction_id: str
    is_test_mode: bool = False


class VerifyPaymentRequest(BaseModel):
    payment_intent_id: str
    order_id: str
    transaction_id: str | None = None


class VerificationResponse(BaseModel):
    success: bool
    status: str
    message: str
    transaction_id: str
    order_status: str


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Your card was declined."
    available: bool = True
    settlement_status: str | None = None


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    available: bool
    settlement_status: str | None = None


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
class WebhookReceiptResponse(BaseModel):
    received: bool = True
    event_id: str
    duplicate: bool
    processed: bool


# ---------------------------------------------------------------------------
# Back office
# ---------------------------------------------------------------------------
class TransactionSchema(BaseModel):
    transaction_id: str
    order_id: str
    processor: str
    payment_intent_id: str
    processor_transaction_id: str | None = None
    amount: float
    currency: str
    status: str
    failure_reason: str | None = None
    is_test_mode: bool = False
    created_at: datetime | None = None
    processed_at: datetime | None = None
    failed_at: datetime | None = None


class TransactionSummaryResponse(BaseModel):
    total_revenue: float
    succeeded: int
    pending: int
    failed: int


class WebhookEventSchema(BaseModel):
    webhook_event_id: str
    event_id: str
    event_type: str
    processor: str
    processed: bool
    processed_at: datetime | None = None
    processing_attempts: int
    last_processing_error: str | None = None
    payment_transaction_id: str | None = None
    received_at: datetime | None = None


class StatusResponse(BaseModel):
    status: str
