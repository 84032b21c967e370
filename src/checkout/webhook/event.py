"""WebhookEvent aggregate: an inbox row per processor notification.

Events are stored before they are acted on, keyed by the processor's own
event id, so a redelivered notification is recognised and applied once.
Failed attempts stay unprocessed with the error and attempt count recorded
for the back office.
"""

from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, Dict, Identifier, Integer, String

from checkout.domain import checkout
from checkout.webhook.events import WebhookEventProcessed

MAX_ERROR_LENGTH = 1000


@checkout.aggregate
class WebhookEvent:
    event_id = String(required=True, max_length=255, unique=True)
    event_type = String(required=True, max_length=100)
    processor = String(max_length=50, default="stripe")
    payload = Dict()
    processed = Boolean(default=False)
    processed_at = DateTime()
    processing_attempts = Integer(default=0)
    last_processing_error = String(max_length=MAX_ERROR_LENGTH)
    payment_transaction_id = Identifier()
    received_at = DateTime()

    @classmethod
    def receive(cls, event_id: str, event_type: str, payload: dict, processor: str = "stripe"):
        return cls(
            event_id=event_id,
            event_type=event_type,
            processor=processor,
            payload=payload,
            received_at=datetime.now(UTC),
        )

    def mark_processed(self, payment_transaction_id: str | None = None) -> None:
        if self.processed:
            return
        now = datetime.now(UTC)
        self.processed = True
        self.processed_at = now
        self.last_processing_error = None
        if payment_transaction_id:
            self.payment_transaction_id = payment_transaction_id
        self.raise_(
            WebhookEventProcessed(
                webhook_event_id=str(self.id),
                event_id=self.event_id,
                event_type=self.event_type,
                payment_transaction_id=payment_transaction_id,
                processed_at=now,
            )
        )

    def record_failure(self, error: str) -> None:
        self.processing_attempts = (self.processing_attempts or 0) + 1
        self.last_processing_error = error[:MAX_ERROR_LENGTH]
