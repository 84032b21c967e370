"""Back-office webhook maintenance: commands and handler."""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from checkout.domain import checkout, logger
from checkout.webhook.event import WebhookEvent


@checkout.command(part_of="WebhookEvent")
class MarkWebhookEventProcessed:
    """Acknowledge an event by hand without applying it."""

    webhook_event_id = Identifier(required=True)


@checkout.command(part_of="WebhookEvent")
class DeleteWebhookEvent:
    webhook_event_id = Identifier(required=True)


@checkout.command_handler(part_of=WebhookEvent)
class WebhookAdministrationHandler:
    @handle(MarkWebhookEventProcessed)
    def mark_processed(self, command):
        repo = current_domain.repository_for(WebhookEvent)
        event = repo.get(command.webhook_event_id)
        event.mark_processed()
        repo.add(event)
        logger.info("webhook_event_marked_processed", event_id=event.event_id)

    @handle(DeleteWebhookEvent)
    def delete(self, command):
        repo = current_domain.repository_for(WebhookEvent)
        event = repo.get(command.webhook_event_id)
        repo.remove(event)
        logger.info("webhook_event_deleted", event_id=event.event_id)
