"""Cart pricing: subtotal, tax, shipping and total.

Pure functions over cart lines. Arithmetic is done in ``Decimal`` and every
component is rounded to cents before being summed, so the total is always
exactly ``subtotal + tax + shipping``.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

TAX_RATE = Decimal("0.08")
FREE_SHIPPING_THRESHOLD = Decimal("50.00")
FLAT_SHIPPING = Decimal("9.99")

_CENT = Decimal("0.01")


def to_cents(value) -> Decimal:
    """Round any numeric value to a two-place Decimal."""
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartLine:
    """A product in the cart with its price snapshot."""

    product_id: str
    quantity: int
    unit_price: float

    @property
    def line_total(self) -> Decimal:
        return to_cents(to_cents(self.unit_price) * self.quantity)


@dataclass(frozen=True)
class Pricing:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax + self.shipping


def shipping_for(subtotal: Decimal) -> Decimal:
    """Orders above the threshold ship free, everything else pays the flat rate."""
    return Decimal("0.00") if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING


def price_cart(lines) -> Pricing:
    subtotal = to_cents(sum((line.line_total for line in lines), Decimal("0")))
    return Pricing(
        subtotal=subtotal,
        tax=to_cents(subtotal * TAX_RATE),
        shipping=shipping_for(subtotal),
    )
