"""Webhook entry point: authenticate, store, then apply.

``receive_webhook`` is what the HTTP route calls with the raw request body.
The signature is checked before the body is parsed. Once the notification is
stored the caller should acknowledge it: failures while applying it are
recorded on the stored event instead of being returned to the processor.
"""

import json
from dataclasses import dataclass

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.domain import logger
from checkout.gateway import get_gateway
from checkout.webhook.event import MAX_ERROR_LENGTH
from checkout.webhook.reception import RecordWebhookEvent
from checkout.webhook.reconciliation import ReconcileWebhookEvent, RecordWebhookFailure


class WebhookSignatureError(Exception):
    """The notification could not be authenticated."""


@dataclass(frozen=True)
class WebhookReceipt:
    event_id: str
    webhook_event_id: str
    duplicate: bool
    processed: bool


def _parse(payload: bytes) -> dict:
    try:
        body = json.loads(payload)
    except ValueError:
        raise ValidationError({"payload": ["Webhook body is not valid JSON"]}) from None
    if not isinstance(body, dict) or not body.get("id") or not body.get("type"):
        raise ValidationError({"payload": ["Webhook body must carry an event id and type"]})
    return body


def reconcile(webhook_event_id: str) -> bool:
    """Apply a stored notification. Returns whether it ended up processed."""
    try:
        current_domain.process(ReconcileWebhookEvent(webhook_event_id=webhook_event_id), asynchronous=False)
    except Exception as exc:
        detail = exc.messages if isinstance(exc, ValidationError) else exc
        logger.warning(
            "webhook_event_failed",
            webhook_event_id=webhook_event_id,
            error=str(detail),
            exc_info=True,
        )
        current_domain.process(
            RecordWebhookFailure(
                webhook_event_id=webhook_event_id,
                error=f"{type(exc).__name__}: {detail}"[:MAX_ERROR_LENGTH],
            ),
            asynchronous=False,
        )
        return False
    return True


def receive_webhook(payload: bytes, signature: str) -> WebhookReceipt:
    gateway = get_gateway()
    if not gateway.verify_webhook_signature(payload, signature):
        logger.warning("webhook_signature_rejected", processor=gateway.name)
        raise WebhookSignatureError("Invalid webhook signature")

    body = _parse(payload)
    recorded = current_domain.process(
        RecordWebhookEvent(
            event_id=body["id"],
            event_type=body["type"],
            body=payload.decode("utf-8"),
            processor=gateway.name,
        ),
        asynchronous=False,
    )

    if recorded["processed"]:
        return WebhookReceipt(
            event_id=body["id"],
            webhook_event_id=recorded["webhook_event_id"],
            duplicate=True,
            processed=True,
        )

    processed = reconcile(recorded["webhook_event_id"])
    return WebhookReceipt(
        event_id=body["id"],
        webhook_event_id=recorded["webhook_event_id"],
        duplicate=not recorded["created"],
        processed=processed,
    )
