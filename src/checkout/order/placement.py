"""Order placement: command and handler."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.order.order import Order


@checkout.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {product_id, quantity, unit_price}
    shipping_address = Text(required=True)  # JSON: address dict
    total_amount = Float()  # what the customer was shown; checked against our pricing
    currency = String(max_length=3, default="USD")


@checkout.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        shipping_address = (
            json.loads(command.shipping_address)
            if isinstance(command.shipping_address, str)
            else command.shipping_address
        )

        order = Order.place(
            customer_id=command.customer_id,
            items_data=items_data,
            shipping_address=shipping_address,
            currency=command.currency or "USD",
        )
        if command.total_amount is not None and round(command.total_amount, 2) != order.total_amount:
            raise ValidationError(
                {"total_amount": [f"Expected {order.total_amount:.2f}, got {command.total_amount:.2f}"]}
            )

        current_domain.repository_for(Order).add(order)
        logger.info(
            "order_placed",
            order_id=str(order.id),
            customer_id=command.customer_id,
            total_amount=order.total_amount,
        )
        return str(order.id)
