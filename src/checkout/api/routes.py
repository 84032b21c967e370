"""FastAPI routes for the Checkout domain: orders, payments and webhooks."""

import json
import os

from fastapi import APIRouter, Header, HTTPException, Request
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    AuthorizationResponse,
    ConfigureGatewayRequest,
    CreateAuthorizationRequest,
    GatewayConfigResponse,
    OrderIdResponse,
    OrderItemSchema,
    OrderResponse,
    PlaceOrderRequest,
    ShippingAddressSchema,
    VerificationResponse,
    VerifyPaymentRequest,
    WebhookReceiptResponse,
)
from checkout.gateway import get_gateway
from checkout.gateway.fake_adapter import FakeGateway
from checkout.order.order import Order
from checkout.order.placement import PlaceOrder
from checkout.payment.authorization import CreateAuthorization
from checkout.payment.verification import VerifyPayment
from checkout.webhook.reconciler import WebhookSignatureError, receive_webhook

checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


def order_response(order: Order) -> OrderResponse:
    address = order.shipping_address
    return OrderResponse(
        order_id=str(order.id),
        customer_id=str(order.customer_id),
        status=order.status,
        items=[
            OrderItemSchema(product_id=str(item.product_id), quantity=item.quantity, unit_price=item.unit_price)
            for item in order.items
        ],
        shipping_address=ShippingAddressSchema(
            first_name=address.first_name,
            last_name=address.last_name,
            address=address.address,
            city=address.city,
            state=address.state,
            zip_code=address.zip_code,
            country=address.country,
            phone=address.phone,
        ),
        subtotal=order.subtotal,
        tax=order.tax,
        shipping_cost=order.shipping_cost,
        total_amount=order.total_amount,
        currency=order.currency,
        created_at=order.created_at,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
@checkout_router.post("/orders", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest, x_customer_id: str = Header()) -> OrderIdResponse:
    """Create a pending order from the cart and shipping address."""
    command = PlaceOrder(
        customer_id=x_customer_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        shipping_address=json.dumps(body.shipping_address.model_dump()),
        total_amount=body.total_amount,
        currency=body.currency,
    )
    order_id = current_domain.process(command, asynchronous=False)
    return OrderIdResponse(order_id=order_id)


@checkout_router.get("/orders", response_model=list[OrderResponse])
async def list_orders(x_customer_id: str = Header()) -> list[OrderResponse]:
    """The customer's order history, newest first."""
    return [order_response(order) for order in current_domain.repository_for(Order).for_customer(x_customer_id)]


@checkout_router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, x_customer_id: str = Header()) -> OrderResponse:
    order = current_domain.repository_for(Order).get_for_owner(order_id, x_customer_id)
    return order_response(order)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
@checkout_router.post("/payments", status_code=201, response_model=AuthorizationResponse)
async def create_authorization(
    body: CreateAuthorizationRequest,
    x_customer_id: str = Header(),
) -> AuthorizationResponse:
    """Create the processor payment intent for an order."""
    command = CreateAuthorization(
        order_id=body.order_id,
        customer_id=x_customer_id,
        amount=body.amount,
        currency=body.currency,
    )
    result = current_domain.process(command, asynchronous=False)
    return AuthorizationResponse(**result)


@checkout_router.post("/payments/verify", response_model=VerificationResponse)
async def verify_payment(body: VerifyPaymentRequest, x_customer_id: str = Header()) -> VerificationResponse:
    """Ask the processor for a payment's real status and record it."""
    command = VerifyPayment(
        payment_intent_id=body.payment_intent_id,
        order_id=body.order_id,
        customer_id=x_customer_id,
        transaction_id=body.transaction_id,
    )
    result = current_domain.process(command, asynchronous=False)
    return VerificationResponse(**result)


@checkout_router.post("/payments/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        available=body.available,
        settlement_status=body.settlement_status,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        available=gateway.available,
        settlement_status=gateway.settlement_status,
    )


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
@checkout_router.post("/webhooks/stripe", response_model=WebhookReceiptResponse)
async def stripe_webhook(request: Request, stripe_signature: str = Header(default="")) -> WebhookReceiptResponse:
    """Receive a processor notification.

    Answers 200 once the notification is stored, even if applying it failed;
    the failure is kept on the stored event for the back office.
    """
    payload = await request.body()
    try:
        receipt = receive_webhook(payload, stripe_signature)
    except WebhookSignatureError:
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from None

    return WebhookReceiptResponse(
        event_id=receipt.event_id,
        duplicate=receipt.duplicate,
        processed=receipt.processed,
    )
