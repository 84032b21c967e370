"""Repository for the WebhookEvent aggregate."""

from protean.exceptions import ValidationError

from checkout.domain import checkout, logger
from checkout.webhook.event import WebhookEvent


@checkout.repository(part_of=WebhookEvent)
class WebhookEventRepository:
    def find_by_event_id(self, event_id: str) -> WebhookEvent | None:
        matches = self._dao.query.filter(event_id=event_id).all().items
        return matches[0] if matches else None

    def record(self, event_id: str, event_type: str, payload: dict, processor: str) -> tuple[WebhookEvent, bool]:
        """Store a notification unless it is already known.

        Returns the stored event and whether this call created it. The unique
        ``event_id`` settles concurrent deliveries of the same notification.
        """
        existing = self.find_by_event_id(event_id)
        if existing is not None:
            return existing, False

        event = WebhookEvent.receive(event_id, event_type, payload, processor)
        try:
            self.add(event)
        except ValidationError:
            existing = self.find_by_event_id(event_id)
            if existing is None:
                raise
            logger.info("webhook_event_insert_lost_race", event_id=event_id)
            return existing, False
        return event, True

    def recent(self, limit: int = 100) -> list[WebhookEvent]:
        return self._dao.query.order_by("-received_at").limit(limit).all().items

    def remove(self, event: WebhookEvent) -> None:
        self._dao.delete(event)
