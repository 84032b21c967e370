"""Domain events for the PaymentTransaction aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="PaymentTransaction")
class PaymentAuthorized:
    """A payment intent was created with the processor for an order."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_intent_id = String(required=True)
    amount = Float(required=True)
    currency = String(max_length=3, default="USD")
    authorized_at = DateTime(required=True)


@checkout.event(part_of="PaymentTransaction")
class PaymentStatusChanged:
    """The stored status of a payment transaction moved forward."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_intent_id = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    failure_reason = String(max_length=500)
    changed_at = DateTime(required=True)
