"""Domain events for the WebhookEvent aggregate."""

from protean.fields import DateTime, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="WebhookEvent")
class WebhookEventProcessed:
    """A processor notification was applied (or found to need no action)."""

    __version__ = 1

    webhook_event_id = Identifier(required=True)
    event_id = String(required=True)
    event_type = String(required=True)
    payment_transaction_id = Identifier()
    processed_at = DateTime(required=True)
