"""Payment gateway factory.

The adapter is chosen by the PAYMENT_GATEWAY environment variable:
- ``fake`` (default): in-memory FakeGateway for development and tests
- ``stripe``: StripeGateway, configured from STRIPE_SECRET_KEY and
  STRIPE_WEBHOOK_SECRET

Tests swap implementations with set_gateway() / reset_gateway().
"""

import os

from checkout.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def build_gateway(adapter: str | None = None) -> PaymentGateway:
    """Construct the adapter named by ``adapter`` or PAYMENT_GATEWAY."""
    adapter = (adapter or os.environ.get("PAYMENT_GATEWAY", "fake")).lower()
    if adapter == "fake":
        from checkout.gateway.fake_adapter import DEFAULT_WEBHOOK_SECRET, FakeGateway

        return FakeGateway(webhook_secret=os.environ.get("STRIPE_WEBHOOK_SECRET", DEFAULT_WEBHOOK_SECRET))
    if adapter == "stripe":
        from checkout.gateway.stripe_adapter import StripeGateway

        return StripeGateway(
            api_key=os.environ.get("STRIPE_SECRET_KEY", ""),
            webhook_secret=os.environ.get("STRIPE_WEBHOOK_SECRET", ""),
        )
    raise ValueError(f"Unknown payment gateway: {adapter}")


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building it on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
