"""Back-office routes: payment transactions and stored webhook events."""

from fastapi import APIRouter
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    StatusResponse,
    TransactionSchema,
    TransactionSummaryResponse,
    UpdateOrderStatusRequest,
    WebhookEventSchema,
)
from checkout.order.lifecycle import UpdateOrderStatus
from checkout.payment.transaction import PaymentTransaction
from checkout.webhook.administration import DeleteWebhookEvent, MarkWebhookEventProcessed
from checkout.webhook.event import WebhookEvent
from checkout.webhook.reconciler import reconcile

admin_router = APIRouter(prefix="/admin", tags=["admin"])


def _transaction(txn: PaymentTransaction) -> TransactionSchema:
    return TransactionSchema(
        transaction_id=str(txn.id),
        order_id=str(txn.order_id),
        processor=txn.processor,
        payment_intent_id=txn.payment_intent_id,
        processor_transaction_id=txn.processor_transaction_id,
        amount=txn.amount,
        currency=txn.currency,
        status=txn.status,
        failure_reason=txn.failure_reason,
        is_test_mode=bool(txn.is_test_mode),
        created_at=txn.created_at,
        processed_at=txn.processed_at,
        failed_at=txn.failed_at,
    )


def _webhook_event(event: WebhookEvent) -> WebhookEventSchema:
    return WebhookEventSchema(
        webhook_event_id=str(event.id),
        event_id=event.event_id,
        event_type=event.event_type,
        processor=event.processor,
        processed=bool(event.processed),
        processed_at=event.processed_at,
        processing_attempts=event.processing_attempts or 0,
        last_processing_error=event.last_processing_error,
        payment_transaction_id=str(event.payment_transaction_id) if event.payment_transaction_id else None,
        received_at=event.received_at,
    )


@admin_router.get("/transactions", response_model=list[TransactionSchema])
async def list_transactions(status: str | None = None, q: str | None = None) -> list[TransactionSchema]:
    """Transactions newest first, optionally filtered by status and searched by processor ids."""
    repo = current_domain.repository_for(PaymentTransaction)
    return [_transaction(txn) for txn in repo.search(status=status, query=q)]


@admin_router.get("/transactions/summary", response_model=TransactionSummaryResponse)
async def transaction_summary() -> TransactionSummaryResponse:
    return TransactionSummaryResponse(**current_domain.repository_for(PaymentTransaction).summary())


@admin_router.get("/webhook-events", response_model=list[WebhookEventSchema])
async def list_webhook_events(limit: int = 100) -> list[WebhookEventSchema]:
    repo = current_domain.repository_for(WebhookEvent)
    return [_webhook_event(event) for event in repo.recent(limit=min(limit, 100))]


@admin_router.post("/webhook-events/{webhook_event_id}/processed", response_model=StatusResponse)
async def mark_webhook_event_processed(webhook_event_id: str) -> StatusResponse:
    current_domain.process(MarkWebhookEventProcessed(webhook_event_id=webhook_event_id), asynchronous=False)
    return StatusResponse(status="processed")


@admin_router.post("/webhook-events/{webhook_event_id}/retry", response_model=StatusResponse)
async def retry_webhook_event(webhook_event_id: str) -> StatusResponse:
    """Run reconciliation again for a stored event, e.g. after fixing the data it refers to."""
    # Unknown ids surface as 404 before anything is attempted
    current_domain.repository_for(WebhookEvent).get(webhook_event_id)
    processed = reconcile(webhook_event_id)
    return StatusResponse(status="processed" if processed else "failed")


@admin_router.delete("/webhook-events/{webhook_event_id}", status_code=204)
async def delete_webhook_event(webhook_event_id: str) -> None:
    current_domain.process(DeleteWebhookEvent(webhook_event_id=webhook_event_id), asynchronous=False)


@admin_router.put("/orders/{order_id}/status", response_model=StatusResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> StatusResponse:
    status = current_domain.process(
        UpdateOrderStatus(order_id=order_id, status=body.status),
        asynchronous=False,
    )
    return StatusResponse(status=status)
