"""Checkout bounded context: orders, payment transactions and processor webhooks.

Owns the path from a submitted shopping cart to a confirmed payment:
order creation, payment authorization through the processor, server-side
verification of the outcome, and reconciliation of asynchronous processor
notifications.
"""

import structlog
from protean.domain import Domain

checkout = Domain(name="checkout")

logger = structlog.get_logger(__name__)
