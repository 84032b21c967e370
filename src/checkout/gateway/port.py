"""Payment gateway port (abstract interface).

Every processor adapter implements this contract so that order, verification
and webhook code never talk to a processor SDK directly. Amounts cross this
boundary in major units (dollars); adapters convert to whatever the processor
expects.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# Client-side confirmation outcomes the storefront treats as a successful
# submission. The authoritative outcome still comes from verification.
SUBMITTED_STATUSES = frozenset({"succeeded", "processing", "requires_capture"})


class GatewayError(Exception):
    """The processor could not complete a request."""

    retryable = False

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class GatewayUnavailable(GatewayError):
    """Network failure, timeout or rate limiting. Safe to retry."""

    retryable = True


class GatewayRejected(GatewayError):
    """The processor refused the request. Retrying it unchanged will not help."""


@dataclass(frozen=True)
class Authorization:
    """A payment intent created for an order, ready for client-side confirmation."""

    payment_intent_id: str
    client_secret: str
    status: str
    is_test_mode: bool = False


@dataclass(frozen=True)
class PaymentSnapshot:
    """The processor's current view of a payment intent."""

    payment_intent_id: str
    status: str
    amount: float | None = None
    currency: str | None = None
    order_id: str | None = None
    charge_id: str | None = None
    failure_reason: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of confirming a payment with the customer's payment details."""

    payment_intent_id: str
    status: str
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name: str = "gateway"

    @abstractmethod
    def create_authorization(
        self,
        amount: float,
        currency: str,
        order_id: str,
        customer_id: str,
        idempotency_key: str,
    ) -> Authorization:
        """Create a payment intent for an order and return its client secret."""
        ...

    @abstractmethod
    def retrieve_payment(self, payment_intent_id: str) -> PaymentSnapshot:
        """Fetch the authoritative state of a payment intent."""
        ...

    @abstractmethod
    def confirm_payment(self, client_secret: str, payment_details: dict) -> ConfirmationResult:
        """Confirm a payment intent with the customer's payment details.

        In a browser this is done by the processor's own widget. The server
        side adapter exists so the checkout flow can be driven end to end.
        """
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the processor."""
        ...
