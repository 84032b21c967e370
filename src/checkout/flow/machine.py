"""Checkout state machine.

Pure transitions from (state, event) to (next state, effects). Nothing here
touches storage or the processor: effects describe the work to be done and
``checkout.flow.session`` carries them out, feeding the outcome back in as
the next event.

Flow:
    EnteringShipping → PlacingOrder → Authorizing → AwaitingPayment
    AwaitingPayment → ConfirmingPayment → PaymentSucceeded (then verified)
    ConfirmingPayment → VerifyingPayment → PaymentSucceeded / PaymentFailed
    PaymentFailed → Authorizing (retry re-uses the order)
    PlacingOrder → EnteringShipping when the order cannot be created

PaymentSucceeded is final. A confirmation the client reports as successful
redirects immediately; the verification that follows is recorded on the
state but cannot take it back out of PaymentSucceeded.
"""

from dataclasses import dataclass, replace
from enum import Enum

from protean.exceptions import ValidationError

from checkout.gateway.port import SUBMITTED_STATUSES
from checkout.order.order import clean_address, missing_address_fields

# Processor statuses after which nothing is settled yet and the server must be asked
UNSETTLED_STATUSES = frozenset({"requires_action", "requires_confirmation"})

MISSING_FIELDS_MESSAGE = "Please fill in all required fields"


class Step(Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


class PaymentStatus(Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PaymentHandle:
    """What the client needs to confirm a payment, and what identifies it server side."""

    client_secret: str
    payment_intent_id: str
    transaction_id: str


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class EnteringShipping:
    step = Step.SHIPPING
    payment_status = PaymentStatus.IDLE

    error: str | None = None
    missing_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class PlacingOrder:
    step = Step.SHIPPING
    payment_status = PaymentStatus.PROCESSING

    shipping_address: dict


@dataclass(frozen=True)
class Authorizing:
    step = Step.PAYMENT
    payment_status = PaymentStatus.PROCESSING

    order_id: str
    amount: float


@dataclass(frozen=True)
class AwaitingPayment:
    step = Step.PAYMENT
    payment_status = PaymentStatus.IDLE

    order_id: str
    amount: float
    payment: PaymentHandle


@dataclass(frozen=True)
class ConfirmingPayment:
    step = Step.PAYMENT
    payment_status = PaymentStatus.PROCESSING

    order_id: str
    amount: float
    payment: PaymentHandle


@dataclass(frozen=True)
class VerifyingPayment:
    step = Step.PAYMENT
    payment_status = PaymentStatus.PROCESSING

    order_id: str
    amount: float
    payment: PaymentHandle


@dataclass(frozen=True)
class PaymentFailed:
    step = Step.PAYMENT
    payment_status = PaymentStatus.FAILED

    order_id: str
    amount: float
    reason: str
    retryable: bool = True
    payment: PaymentHandle | None = None


@dataclass(frozen=True)
class PaymentSucceeded:
    step = Step.CONFIRMATION
    payment_status = PaymentStatus.SUCCEEDED

    order_id: str
    payment: PaymentHandle
    verified_status: str | None = None
    verification_error: str | None = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ShippingSubmitted:
    shipping_address: dict


@dataclass(frozen=True)
class OrderCreated:
    order_id: str
    total_amount: float


@dataclass(frozen=True)
class OrderCreationFailed:
    reason: str


@dataclass(frozen=True)
class AuthorizationReady:
    payment: PaymentHandle


@dataclass(frozen=True)
class AuthorizationFailed:
    reason: str
    retryable: bool


@dataclass(frozen=True)
class PaymentSubmitted:
    payment_details: dict


@dataclass(frozen=True)
class ConfirmationReported:
    status: str
    failure_reason: str | None = None


@dataclass(frozen=True)
class ConfirmationFailed:
    reason: str
    retryable: bool


@dataclass(frozen=True)
class VerificationReported:
    status: str
    success: bool
    message: str


@dataclass(frozen=True)
class VerificationFailed:
    reason: str
    retryable: bool


@dataclass(frozen=True)
class RetryRequested:
    pass


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CreateOrder:
    shipping_address: dict


@dataclass(frozen=True)
class RequestAuthorization:
    order_id: str
    amount: float


@dataclass(frozen=True)
class ConfirmPayment:
    client_secret: str
    payment_details: dict


@dataclass(frozen=True)
class VerifyPayment:
    order_id: str
    payment_intent_id: str
    transaction_id: str


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class Redirect:
    path: str


@dataclass(frozen=True)
class Transition:
    state: object
    effects: tuple = ()


def confirmation_path(order_id: str) -> str:
    return f"/order-confirmation/{order_id}"


def _payment_succeeded(state, verified_status: str | None = None, verify: bool = False) -> Transition:
    effects = [ClearCart(), Redirect(confirmation_path(state.order_id))]
    if verify:
        effects.append(VerifyPayment(state.order_id, state.payment.payment_intent_id, state.payment.transaction_id))
    return Transition(
        PaymentSucceeded(order_id=state.order_id, payment=state.payment, verified_status=verified_status),
        tuple(effects),
    )


def _submit_shipping(state, event: ShippingSubmitted) -> Transition:
    missing = missing_address_fields(event.shipping_address)
    if missing:
        return Transition(EnteringShipping(error=MISSING_FIELDS_MESSAGE, missing_fields=tuple(missing)))
    address = clean_address(event.shipping_address)
    return Transition(PlacingOrder(shipping_address=address), (CreateOrder(address),))


def _order_created(state, event: OrderCreated) -> Transition:
    return Transition(
        Authorizing(order_id=event.order_id, amount=event.total_amount),
        (RequestAuthorization(event.order_id, event.total_amount),),
    )


def _order_failed(state, event: OrderCreationFailed) -> Transition:
    return Transition(EnteringShipping(error=event.reason))


def _authorization_ready(state: Authorizing, event: AuthorizationReady) -> Transition:
    return Transition(AwaitingPayment(order_id=state.order_id, amount=state.amount, payment=event.payment))


def _authorization_failed(state: Authorizing, event: AuthorizationFailed) -> Transition:
    return Transition(
        PaymentFailed(order_id=state.order_id, amount=state.amount, reason=event.reason, retryable=event.retryable)
    )


def _submit_payment(state: AwaitingPayment, event: PaymentSubmitted) -> Transition:
    return Transition(
        ConfirmingPayment(order_id=state.order_id, amount=state.amount, payment=state.payment),
        (ConfirmPayment(state.payment.client_secret, event.payment_details),),
    )


def _confirmation_reported(state: ConfirmingPayment, event: ConfirmationReported) -> Transition:
    if event.status in SUBMITTED_STATUSES:
        return _payment_succeeded(state, verify=True)
    if event.status in UNSETTLED_STATUSES:
        return Transition(
            VerifyingPayment(order_id=state.order_id, amount=state.amount, payment=state.payment),
            (VerifyPayment(state.order_id, state.payment.payment_intent_id, state.payment.transaction_id),),
        )
    return Transition(
        PaymentFailed(
            order_id=state.order_id,
            amount=state.amount,
            reason=event.failure_reason or "Payment failed",
            payment=state.payment,
        )
    )


def _confirmation_failed(state: ConfirmingPayment, event: ConfirmationFailed) -> Transition:
    return Transition(
        PaymentFailed(
            order_id=state.order_id,
            amount=state.amount,
            reason=event.reason,
            retryable=event.retryable,
            payment=state.payment,
        )
    )


def _verification_reported(state: VerifyingPayment, event: VerificationReported) -> Transition:
    if event.success:
        return _payment_succeeded(state, verified_status=event.status)
    return Transition(
        PaymentFailed(order_id=state.order_id, amount=state.amount, reason=event.message, payment=state.payment)
    )


def _verification_failed(state: VerifyingPayment, event: VerificationFailed) -> Transition:
    return Transition(
        PaymentFailed(
            order_id=state.order_id,
            amount=state.amount,
            reason=event.reason,
            retryable=event.retryable,
            payment=state.payment,
        )
    )


def _late_verification(state: PaymentSucceeded, event: VerificationReported) -> Transition:
    return Transition(replace(state, verified_status=event.status))


def _late_verification_failed(state: PaymentSucceeded, event: VerificationFailed) -> Transition:
    return Transition(replace(state, verification_error=event.reason))


def _retry(state: PaymentFailed, event: RetryRequested) -> Transition:
    return Transition(
        Authorizing(order_id=state.order_id, amount=state.amount),
        (RequestAuthorization(state.order_id, state.amount),),
    )


_TRANSITIONS = {
    (EnteringShipping, ShippingSubmitted): _submit_shipping,
    (PlacingOrder, OrderCreated): _order_created,
    (PlacingOrder, OrderCreationFailed): _order_failed,
    (Authorizing, AuthorizationReady): _authorization_ready,
    (Authorizing, AuthorizationFailed): _authorization_failed,
    (AwaitingPayment, PaymentSubmitted): _submit_payment,
    (ConfirmingPayment, ConfirmationReported): _confirmation_reported,
    (ConfirmingPayment, ConfirmationFailed): _confirmation_failed,
    (VerifyingPayment, VerificationReported): _verification_reported,
    (VerifyingPayment, VerificationFailed): _verification_failed,
    (PaymentSucceeded, VerificationReported): _late_verification,
    (PaymentSucceeded, VerificationFailed): _late_verification_failed,
    (PaymentFailed, RetryRequested): _retry,
}


def advance(state, event) -> Transition:
    """Apply ``event`` to ``state``. Events the state does not expect are refused."""
    handler = _TRANSITIONS.get((type(state), type(event)))
    if handler is None:
        raise ValidationError(
            {"checkout": [f"{type(event).__name__} is not expected while {type(state).__name__}"]}
        )
    return handler(state, event)
