"""Repository for the PaymentTransaction aggregate.

``apply_status`` is the only way status changes are written. It re-reads the
stored row, applies the transition table, and saves with Protean's version
check, so two writers cannot both act on the same stale status.
"""

from protean.exceptions import ExpectedVersionError

from checkout.domain import checkout, logger
from checkout.payment.transaction import PaymentTransaction, TransactionStatus

MAX_WRITE_ATTEMPTS = 3
SCAN_LIMIT = 10_000


@checkout.repository(part_of=PaymentTransaction)
class PaymentTransactionRepository:
    def find_by_payment_intent(self, payment_intent_id: str) -> PaymentTransaction | None:
        matches = self._dao.query.filter(payment_intent_id=payment_intent_id).all().items
        return matches[0] if matches else None

    def for_order(self, order_id: str) -> list[PaymentTransaction]:
        """Transactions for an order, newest first."""
        transactions = self._dao.query.filter(order_id=order_id).all().items
        return sorted(transactions, key=lambda txn: txn.created_at, reverse=True)

    def apply_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        processor_response: dict | None = None,
        failure_reason: str | None = None,
        processor_transaction_id: str | None = None,
    ) -> tuple[PaymentTransaction, bool]:
        """Advance a transaction to ``status`` if its lifecycle allows it.

        Returns the transaction as stored afterwards and whether this call
        changed it. Moves the lifecycle forbids (final states, going backwards,
        same status) are refused quietly.
        """
        for _ in range(MAX_WRITE_ATTEMPTS):
            transaction = self.get(transaction_id)
            if not transaction.can_transition_to(status):
                logger.info(
                    "payment_status_unchanged",
                    transaction_id=transaction_id,
                    stored_status=transaction.status,
                    offered_status=status.value,
                )
                return transaction, False

            transaction.record_status(
                status,
                processor_response=processor_response,
                failure_reason=failure_reason,
                processor_transaction_id=processor_transaction_id,
            )
            try:
                self.add(transaction)
            except ExpectedVersionError:
                logger.info("payment_status_write_conflict", transaction_id=transaction_id)
                continue
            return transaction, True

        raise ExpectedVersionError(
            f"PaymentTransaction {transaction_id} kept changing while writing {status.value}"
        )

    def search(self, status: str | None = None, query: str | None = None, limit: int = 100) -> list:
        """Back-office listing: newest first, filtered by status and processor ids."""
        queryset = self._dao.query.limit(SCAN_LIMIT)
        if status:
            queryset = queryset.filter(status=status)
        transactions = list(queryset.all().items)
        if query:
            needle = query.strip().lower()
            transactions = [
                txn
                for txn in transactions
                if needle in (txn.payment_intent_id or "").lower()
                or needle in (txn.processor_transaction_id or "").lower()
                or needle == str(txn.order_id).lower()
            ]
        transactions.sort(key=lambda txn: txn.created_at, reverse=True)
        return transactions[:limit]

    def summary(self) -> dict:
        """Revenue and counts for the back-office dashboard."""
        transactions = self._dao.query.limit(SCAN_LIMIT).all().items
        by_status: dict[str, int] = {}
        revenue = 0.0
        for txn in transactions:
            by_status[txn.status] = by_status.get(txn.status, 0) + 1
            if txn.status == TransactionStatus.SUCCEEDED.value:
                revenue += txn.amount
        return {
            "total_revenue": round(revenue, 2),
            "succeeded": by_status.get(TransactionStatus.SUCCEEDED.value, 0),
            "pending": by_status.get(TransactionStatus.PENDING.value, 0)
            + by_status.get(TransactionStatus.PROCESSING.value, 0),
            "failed": by_status.get(TransactionStatus.FAILED.value, 0),
        }
