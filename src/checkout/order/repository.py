"""Repository for the Order aggregate."""

from protean.exceptions import ObjectNotFoundError

from checkout.domain import checkout
from checkout.order.order import Order


@checkout.repository(part_of=Order)
class OrderRepository:
    def get_for_owner(self, order_id: str, customer_id: str) -> Order:
        """Load an order, hiding orders owned by someone else behind a not-found."""
        order = self.get(order_id)
        if not order.belongs_to(customer_id):
            raise ObjectNotFoundError(f"`Order` object with identifier {order_id} does not exist.")
        return order

    def for_customer(self, customer_id: str) -> list[Order]:
        orders = self._dao.query.filter(customer_id=customer_id).all().items
        return sorted(orders, key=lambda order: order.created_at, reverse=True)
