"""Webhook reception: command and handler.

Persists an authenticated processor notification before anything acts on
it. Returns whether the notification was new and whether it has already
been applied.
"""

import json

from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.webhook.event import WebhookEvent


@checkout.command(part_of="WebhookEvent")
class RecordWebhookEvent:
    event_id = String(required=True, max_length=255)
    event_type = String(required=True, max_length=100)
    body = Text(required=True)  # JSON: the notification body as received
    processor = String(max_length=50, default="stripe")


@checkout.command_handler(part_of=WebhookEvent)
class RecordWebhookEventHandler:
    @handle(RecordWebhookEvent)
    def record_webhook_event(self, command):
        payload = json.loads(command.body) if isinstance(command.body, str) else command.body
        event, created = current_domain.repository_for(WebhookEvent).record(
            event_id=command.event_id,
            event_type=command.event_type,
            payload=payload,
            processor=command.processor or "stripe",
        )
        if not created:
            logger.info(
                "webhook_event_redelivered",
                event_id=command.event_id,
                processed=event.processed,
            )
        return {
            "webhook_event_id": str(event.id),
            "created": created,
            "processed": bool(event.processed),
        }
