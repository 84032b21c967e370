"""Checkout session: runs the state machine against the real collaborators.

A session belongs to one customer and one cart. Each user action becomes a
machine event; the effects that come back are performed here (placing the
order, authorizing, confirming, verifying, clearing the cart) and their
outcomes are fed back in until the machine settles.
"""

import json
import os

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from checkout.domain import logger
from checkout.exceptions import IntegrityViolation
from checkout.flow.cart import Cart
from checkout.flow.machine import (
    AuthorizationFailed,
    AuthorizationReady,
    ClearCart,
    ConfirmationFailed,
    ConfirmationReported,
    ConfirmPayment,
    CreateOrder,
    EnteringShipping,
    OrderCreated,
    OrderCreationFailed,
    PaymentHandle,
    PaymentSubmitted,
    Redirect,
    RequestAuthorization,
    RetryRequested,
    ShippingSubmitted,
    VerificationFailed,
    VerificationReported,
    VerifyPayment,
    advance,
)
from checkout.gateway import get_gateway
from checkout.gateway.port import GatewayError, PaymentGateway
from checkout.order.placement import PlaceOrder
from checkout.order.pricing import price_cart
from checkout.payment.authorization import CreateAuthorization
from checkout.payment.verification import VerifyPayment as VerifyPaymentCommand

EMPTY_CART_MESSAGE = "Your cart is empty"
UNEXPECTED_FAILURE_MESSAGE = "Something went wrong, please try again"


def describe(exc: Exception) -> str:
    """Flatten a Protean error's messages into one line for the customer."""
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        return "; ".join(
            f"{field}: {', '.join(str(m) for m in errors) if isinstance(errors, list) else errors}"
            for field, errors in messages.items()
        )
    return str(messages or exc)


class CheckoutSession:
    def __init__(
        self,
        customer_id: str,
        cart: Cart,
        gateway: PaymentGateway | None = None,
        currency: str | None = None,
    ) -> None:
        self.customer_id = customer_id
        self.cart = cart
        self.gateway = gateway or get_gateway()
        self.currency = currency or os.environ.get("CHECKOUT_CURRENCY", "USD")
        self.state = EnteringShipping()
        self.redirect_to: str | None = None
        self._in_flight = False

    @property
    def step(self):
        return self.state.step

    @property
    def payment_status(self):
        return self.state.payment_status

    @property
    def order_id(self) -> str | None:
        return getattr(self.state, "order_id", None)

    # -------------------------------------------------------------------
    # User actions
    # -------------------------------------------------------------------
    def submit_shipping(self, shipping_address: dict):
        return self._dispatch(ShippingSubmitted(shipping_address=dict(shipping_address)))

    def submit_payment(self, payment_details: dict | None = None):
        return self._dispatch(PaymentSubmitted(payment_details=dict(payment_details or {})))

    def retry(self):
        return self._dispatch(RetryRequested())

    # -------------------------------------------------------------------
    # Machine driver
    # -------------------------------------------------------------------
    def _dispatch(self, event):
        if self._in_flight:
            raise ValidationError({"checkout": ["A checkout step is already in progress"]})

        self._in_flight = True
        try:
            pending = [event]
            while pending:
                current = pending.pop(0)
                transition = advance(self.state, current)
                logger.debug(
                    "checkout_transition",
                    customer_id=self.customer_id,
                    machine_event=type(current).__name__,
                    from_state=type(self.state).__name__,
                    to_state=type(transition.state).__name__,
                )
                self.state = transition.state
                for effect in transition.effects:
                    outcome = self._perform(effect)
                    if outcome is not None:
                        pending.append(outcome)
        finally:
            self._in_flight = False
        return self.state

    def _perform(self, effect):
        if isinstance(effect, CreateOrder):
            return self._create_order(effect)
        if isinstance(effect, RequestAuthorization):
            return self._request_authorization(effect)
        if isinstance(effect, ConfirmPayment):
            return self._confirm_payment(effect)
        if isinstance(effect, VerifyPayment):
            return self._verify_payment(effect)
        if isinstance(effect, ClearCart):
            self.cart.clear()
            return None
        if isinstance(effect, Redirect):
            self.redirect_to = effect.path
            return None
        raise TypeError(f"Unknown checkout effect: {effect!r}")

    def _create_order(self, effect: CreateOrder):
        lines = self.cart.lines()
        if not lines:
            return OrderCreationFailed(reason=EMPTY_CART_MESSAGE)

        pricing = price_cart(lines)
        command = PlaceOrder(
            customer_id=self.customer_id,
            items=json.dumps(
                [
                    {"product_id": line.product_id, "quantity": line.quantity, "unit_price": line.unit_price}
                    for line in lines
                ]
            ),
            shipping_address=json.dumps(effect.shipping_address),
            total_amount=float(pricing.total),
            currency=self.currency,
        )
        try:
            order_id = current_domain.process(command, asynchronous=False)
        except ValidationError as exc:
            logger.warning("checkout_order_rejected", customer_id=self.customer_id, error=describe(exc))
            return OrderCreationFailed(reason=describe(exc))
        except Exception:
            logger.error("checkout_order_failed", customer_id=self.customer_id, exc_info=True)
            return OrderCreationFailed(reason=UNEXPECTED_FAILURE_MESSAGE)
        return OrderCreated(order_id=order_id, total_amount=float(pricing.total))

    def _request_authorization(self, effect: RequestAuthorization):
        command = CreateAuthorization(
            order_id=effect.order_id,
            customer_id=self.customer_id,
            amount=effect.amount,
            currency=self.currency,
        )
        try:
            result = current_domain.process(command, asynchronous=False)
        except GatewayError as exc:
            return AuthorizationFailed(reason=str(exc), retryable=exc.retryable)
        except (ValidationError, ObjectNotFoundError) as exc:
            return AuthorizationFailed(reason=describe(exc), retryable=False)
        except Exception:
            logger.error("checkout_authorization_failed", order_id=effect.order_id, exc_info=True)
            return AuthorizationFailed(reason=UNEXPECTED_FAILURE_MESSAGE, retryable=True)
        return AuthorizationReady(
            payment=PaymentHandle(
                client_secret=result["client_secret"],
                payment_intent_id=result["payment_intent_id"],
                transaction_id=result["transaction_id"],
            )
        )

    def _confirm_payment(self, effect: ConfirmPayment):
        try:
            result = self.gateway.confirm_payment(effect.client_secret, effect.payment_details)
        except GatewayError as exc:
            return ConfirmationFailed(reason=str(exc), retryable=exc.retryable)
        except Exception:
            logger.error("checkout_confirmation_failed", customer_id=self.customer_id, exc_info=True)
            return ConfirmationFailed(reason=UNEXPECTED_FAILURE_MESSAGE, retryable=True)
        return ConfirmationReported(status=result.status, failure_reason=result.failure_reason)

    def _verify_payment(self, effect: VerifyPayment):
        command = VerifyPaymentCommand(
            payment_intent_id=effect.payment_intent_id,
            order_id=effect.order_id,
            customer_id=self.customer_id,
            transaction_id=effect.transaction_id,
        )
        try:
            result = current_domain.process(command, asynchronous=False)
        except GatewayError as exc:
            return VerificationFailed(reason=str(exc), retryable=exc.retryable)
        except (ValidationError, ObjectNotFoundError, IntegrityViolation) as exc:
            return VerificationFailed(reason=describe(exc), retryable=False)
        except Exception:
            logger.error("checkout_verification_failed", order_id=effect.order_id, exc_info=True)
            return VerificationFailed(reason=UNEXPECTED_FAILURE_MESSAGE, retryable=True)
        return VerificationReported(status=result["status"], success=result["success"], message=result["message"])
