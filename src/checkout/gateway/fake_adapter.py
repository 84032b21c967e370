"""Configurable fake payment gateway for development and testing.

Simulates a card processor in memory, modelled on Stripe's test mode:
payment intents with client secrets, confirmation that can succeed or be
declined, an outage switch, and HMAC-signed webhooks.

The processor's "truth" for each intent is kept in ``intents`` so tests can
make the client-side confirmation disagree with what the processor finally
settles on (``settlement_status``) or move an intent by hand (``set_status``).
"""

import hashlib
import hmac
from uuid import uuid4

from checkout.gateway.port import (
    Authorization,
    ConfirmationResult,
    GatewayRejected,
    GatewayUnavailable,
    PaymentGateway,
    PaymentSnapshot,
)

DEFAULT_WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway(PaymentGateway):
    """In-memory processor with switchable behaviour."""

    name = "fake"

    def __init__(self, webhook_secret: str = DEFAULT_WEBHOOK_SECRET) -> None:
        self.webhook_secret = webhook_secret
        self.should_succeed: bool = True
        self.failure_reason: str = "Your card was declined."
        self.available: bool = True
        self.settlement_status: str | None = None
        self.intents: dict[str, dict] = {}
        self.calls: list[dict] = []
        self._by_idempotency_key: dict[str, str] = {}

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Your card was declined.",
        available: bool = True,
        settlement_status: str | None = None,
    ) -> None:
        """Configure gateway behavior at runtime.

        ``settlement_status`` is what the processor records after a confirmation
        that looked successful to the client. ``None`` means it really succeeded.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.available = available
        self.settlement_status = settlement_status

    def _ensure_available(self) -> None:
        if not self.available:
            raise GatewayUnavailable("Payment processor timed out", code="timeout")

    def _intent(self, payment_intent_id: str) -> dict:
        try:
            return self.intents[payment_intent_id]
        except KeyError:
            raise GatewayRejected(
                f"No such payment_intent: '{payment_intent_id}'",
                code="resource_missing",
            ) from None

    def create_authorization(
        self,
        amount: float,
        currency: str,
        order_id: str,
        customer_id: str,
        idempotency_key: str,
    ) -> Authorization:
        self.calls.append(
            {
                "method": "create_authorization",
                "amount": amount,
                "currency": currency,
                "order_id": order_id,
                "customer_id": customer_id,
                "idempotency_key": idempotency_key,
            }
        )
        self._ensure_available()

        if idempotency_key in self._by_idempotency_key:
            intent = self.intents[self._by_idempotency_key[idempotency_key]]
        else:
            intent_id = f"pi_fake_{uuid4().hex[:16]}"
            intent = {
                "id": intent_id,
                "object": "payment_intent",
                "amount": int(round(amount * 100)),
                "currency": currency.lower(),
                "status": "requires_payment_method",
                "client_secret": f"{intent_id}_secret_{uuid4().hex[:12]}",
                "metadata": {"order_id": order_id, "user_id": customer_id},
                "latest_charge": None,
                "last_payment_error": None,
            }
            self.intents[intent_id] = intent
            self._by_idempotency_key[idempotency_key] = intent_id

        return Authorization(
            payment_intent_id=intent["id"],
            client_secret=intent["client_secret"],
            status=intent["status"],
            is_test_mode=True,
        )

    def retrieve_payment(self, payment_intent_id: str) -> PaymentSnapshot:
        self.calls.append({"method": "retrieve_payment", "payment_intent_id": payment_intent_id})
        self._ensure_available()

        intent = self._intent(payment_intent_id)
        error = intent["last_payment_error"]
        return PaymentSnapshot(
            payment_intent_id=intent["id"],
            status=intent["status"],
            amount=intent["amount"] / 100,
            currency=intent["currency"],
            order_id=intent["metadata"].get("order_id"),
            charge_id=intent["latest_charge"],
            failure_reason=error["message"] if error else None,
            raw=dict(intent),
        )

    def confirm_payment(self, client_secret: str, payment_details: dict) -> ConfirmationResult:
        self.calls.append(
            {
                "method": "confirm_payment",
                "client_secret": client_secret,
                "payment_details": payment_details,
            }
        )
        self._ensure_available()

        intent_id = client_secret.split("_secret_")[0]
        intent = self._intent(intent_id)
        if intent["client_secret"] != client_secret:
            raise GatewayRejected("Invalid client secret", code="invalid_request")

        if not self.should_succeed:
            self.set_status(intent_id, "requires_payment_method", failure_reason=self.failure_reason)
            return ConfirmationResult(
                payment_intent_id=intent_id,
                status="requires_payment_method",
                failure_reason=self.failure_reason,
            )

        intent["latest_charge"] = f"ch_fake_{uuid4().hex[:16]}"
        settled = self.settlement_status or "succeeded"
        self.set_status(
            intent_id,
            settled,
            failure_reason=self.failure_reason if settled == "requires_payment_method" else None,
        )
        return ConfirmationResult(payment_intent_id=intent_id, status="succeeded")

    def set_status(self, payment_intent_id: str, status: str, failure_reason: str | None = None) -> None:
        """Move an intent to ``status`` as the processor would."""
        intent = self._intent(payment_intent_id)
        intent["status"] = status
        intent["last_payment_error"] = {"message": failure_reason} if failure_reason else None

    def sign(self, payload: bytes) -> str:
        """Signature header value the fake processor would send with ``payload``."""
        return hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        if not signature:
            return False
        return hmac.compare_digest(self.sign(payload), signature)
