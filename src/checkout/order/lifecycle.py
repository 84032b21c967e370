"""Order status updates: command and handler.

Used by fulfilment and back-office tooling. Payment-driven confirmation goes
through ``Order.confirm_payment`` instead.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.order.order import Order, OrderStatus


@checkout.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, choices=OrderStatus)


@checkout.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.change_status(OrderStatus(command.status))
        repo.add(order)
        logger.info("order_status_updated", order_id=command.order_id, status=command.status)
        return order.status
