"""Cart port used by the checkout session.

The cart itself lives elsewhere; checkout only reads its lines and clears it
once the payment has gone through.
"""

from abc import ABC, abstractmethod

from checkout.order.pricing import CartLine


class Cart(ABC):
    @abstractmethod
    def lines(self) -> list[CartLine]:
        """Products currently in the cart, with their price snapshots."""
        ...

    @abstractmethod
    def clear(self) -> None: ...


class InMemoryCart(Cart):
    """Cart held in process memory, for development and tests."""

    def __init__(self, lines: list[CartLine] | None = None) -> None:
        self._lines = list(lines or [])
        self.cleared = False

    def add(self, product_id: str, quantity: int, unit_price: float) -> None:
        self._lines.append(CartLine(product_id=product_id, quantity=quantity, unit_price=unit_price))

    def lines(self) -> list[CartLine]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines = []
        self.cleared = True
