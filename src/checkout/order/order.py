"""Order aggregate: what the customer is buying and where it ships.

An order is created in PENDING the moment the shipping step is submitted and
only leaves PENDING once its payment is known to have succeeded. A failed or
cancelled payment leaves it PENDING so the customer can try again.

State Machine:
    PENDING → CONFIRMED → SHIPPED → DELIVERED
    PENDING → CANCELLED
    CONFIRMED → CANCELLED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from checkout.domain import checkout
from checkout.order.events import OrderPlaced, OrderStatusChanged
from checkout.order.pricing import CartLine, price_cart, to_cents


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

REQUIRED_ADDRESS_FIELDS = ("first_name", "last_name", "address", "city", "state", "zip_code")
OPTIONAL_ADDRESS_FIELDS = ("country", "phone")


def missing_address_fields(address: dict) -> list[str]:
    """Required shipping fields that are absent or blank once trimmed."""
    return [name for name in REQUIRED_ADDRESS_FIELDS if not str(address.get(name) or "").strip()]


def clean_address(address: dict) -> dict:
    """Known address fields, trimmed, with blanks dropped so defaults apply."""
    cleaned = {}
    for name in REQUIRED_ADDRESS_FIELDS + OPTIONAL_ADDRESS_FIELDS:
        value = str(address.get(name) or "").strip()
        if value:
            cleaned[name] = value
    return cleaned


@checkout.value_object(part_of="Order")
class ShippingAddress:
    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    address = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    zip_code = String(required=True, max_length=20)
    country = String(max_length=60, default="US")
    phone = String(max_length=30)


@checkout.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)


@checkout.aggregate
class Order:
    customer_id = Identifier(required=True)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    items = HasMany(OrderItem)
    shipping_address = ValueObject(ShippingAddress)
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def place(
        cls,
        customer_id: str,
        items_data: list[dict],
        shipping_address: dict,
        currency: str = "USD",
    ):
        """Create a pending order, pricing it from the submitted cart lines."""
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})

        missing = missing_address_fields(shipping_address)
        if missing:
            raise ValidationError({name: ["is required"] for name in missing})

        lines = [
            CartLine(
                product_id=item["product_id"],
                quantity=int(item["quantity"]),
                unit_price=float(item["unit_price"]),
            )
            for item in items_data
        ]
        pricing = price_cart(lines)

        now = datetime.now(UTC)
        order = cls(
            customer_id=customer_id,
            shipping_address=ShippingAddress(**clean_address(shipping_address)),
            subtotal=float(pricing.subtotal),
            tax=float(pricing.tax),
            shipping_cost=float(pricing.shipping),
            total_amount=float(pricing.total),
            currency=currency.upper(),
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            order.add_items(
                OrderItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=float(to_cents(line.unit_price)),
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_id=customer_id,
                item_count=sum(line.quantity for line in lines),
                total_amount=order.total_amount,
                currency=order.currency,
                placed_at=now,
            )
        )
        return order

    def belongs_to(self, customer_id: str) -> bool:
        return str(self.customer_id) == str(customer_id)

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def change_status(self, target_status: OrderStatus) -> None:
        """Move the order to ``target_status``, refusing moves the lifecycle forbids."""
        self._assert_can_transition(target_status)
        previous = self.status
        now = datetime.now(UTC)
        self.status = target_status.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=target_status.value,
                changed_at=now,
            )
        )

    def confirm_payment(self) -> bool:
        """Confirm the order after its payment succeeded.

        Safe to call repeatedly from verification and webhooks: an order that is
        already confirmed (or further along) is left alone. Returns whether the
        order changed.
        """
        if self.status != OrderStatus.PENDING.value:
            return False
        self.change_status(OrderStatus.CONFIRMED)
        return True
