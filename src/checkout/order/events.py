"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPlaced:
    """A customer submitted their cart and shipping address."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    item_count = Integer(required=True)
    total_amount = Float(required=True)
    currency = String(max_length=3, default="USD")
    placed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderStatusChanged:
    """The order moved through its fulfilment lifecycle."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)
