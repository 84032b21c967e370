"""Stripe payment gateway adapter.

Wraps the stripe-python SDK: PaymentIntents for authorization, retrieval and
confirmation, and Stripe's signing scheme for webhook verification. SDK
exceptions are translated into ``GatewayUnavailable`` (retry later) or
``GatewayRejected`` (do not retry) so callers never import ``stripe``.
"""

import json

import stripe
import structlog

from checkout.gateway.port import (
    Authorization,
    ConfirmationResult,
    GatewayRejected,
    GatewayUnavailable,
    PaymentGateway,
    PaymentSnapshot,
)

logger = structlog.get_logger(__name__)

_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def _to_cents(amount: float) -> int:
    return int(round(amount * 100))


def _as_dict(stripe_object) -> dict:
    return json.loads(str(stripe_object))


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    name = "stripe"

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        payment_method_types: list[str] | None = None,
        max_network_retries: int = 2,
        signature_tolerance: int = 300,
    ) -> None:
        if not api_key:
            raise ValueError("Stripe API key is required")
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.payment_method_types = payment_method_types
        self.signature_tolerance = signature_tolerance
        stripe.max_network_retries = max_network_retries

    @property
    def is_test_mode(self) -> bool:
        return self.api_key.startswith("sk_test_")

    def _translate(self, exc: stripe.StripeError, operation: str) -> Exception:
        code = getattr(exc, "code", None)
        message = exc.user_message or str(exc)
        if isinstance(exc, _TRANSIENT_ERRORS):
            logger.warning("stripe_unavailable", operation=operation, error=message)
            return GatewayUnavailable(message, code=code)
        logger.warning("stripe_rejected", operation=operation, error=message, code=code)
        return GatewayRejected(message, code=code)

    def create_authorization(
        self,
        amount: float,
        currency: str,
        order_id: str,
        customer_id: str,
        idempotency_key: str,
    ) -> Authorization:
        params = {
            "amount": _to_cents(amount),
            "currency": currency.lower(),
            "metadata": {"order_id": order_id, "user_id": customer_id},
        }
        if self.payment_method_types:
            params["payment_method_types"] = self.payment_method_types
        else:
            params["automatic_payment_methods"] = {"enabled": True}

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                idempotency_key=idempotency_key,
                **params,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc, "create_authorization") from exc

        return Authorization(
            payment_intent_id=intent["id"],
            client_secret=intent["client_secret"],
            status=intent["status"],
            is_test_mode=self.is_test_mode,
        )

    def retrieve_payment(self, payment_intent_id: str) -> PaymentSnapshot:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise self._translate(exc, "retrieve_payment") from exc

        raw = _as_dict(intent)
        charge = raw.get("latest_charge")
        if isinstance(charge, dict):
            charge = charge.get("id")
        error = raw.get("last_payment_error") or {}
        amount = raw.get("amount")
        return PaymentSnapshot(
            payment_intent_id=raw["id"],
            status=raw["status"],
            amount=amount / 100 if amount is not None else None,
            currency=raw.get("currency"),
            order_id=(raw.get("metadata") or {}).get("order_id"),
            charge_id=charge,
            failure_reason=error.get("message"),
            raw=raw,
        )

    def confirm_payment(self, client_secret: str, payment_details: dict) -> ConfirmationResult:
        payment_intent_id = client_secret.split("_secret_")[0]
        try:
            intent = stripe.PaymentIntent.confirm(
                payment_intent_id,
                api_key=self.api_key,
                **payment_details,
            )
        except stripe.CardError as exc:
            return ConfirmationResult(
                payment_intent_id=payment_intent_id,
                status="requires_payment_method",
                failure_reason=exc.user_message or str(exc),
            )
        except stripe.StripeError as exc:
            raise self._translate(exc, "confirm_payment") from exc

        raw = _as_dict(intent)
        error = raw.get("last_payment_error") or {}
        return ConfirmationResult(
            payment_intent_id=raw["id"],
            status=raw["status"],
            failure_reason=error.get("message"),
        )

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        if not signature or not self.webhook_secret:
            return False
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self.webhook_secret,
                tolerance=self.signature_tolerance,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError):
            return False
        return True
