"""
Post-creation status transitions.

- update_payment_status: manual override to any status, always dispatches
- refund: approved -> refunded only, then dispatches
- resend: no status change; re-dispatches with is_force defaulting to true

Status changes reset the notification flags before dispatching, so
notification_sent always describes the current status. A failed dispatch
never rolls the status change back; resend is the only operation that
raises on delivery failure.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from app import models
from app.exceptions import InvalidTransition, ValidationError
from app.services.dispatcher import DispatchResult, NotificationDispatcher, NotificationPolicy
from app.services.serializer import DeliveryAttributes
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)


def _status_patch(status: str, message: str) -> dict:
    patch = {
        "status": status,
        "response_message": message,
        "notification_sent": False,
        "notification_sent_at": None,
    }
    patch.update(models.milestone_patch(status))
    return patch


class LifecycleService:
    def __init__(
        self,
        store: TransactionStore,
        dispatcher: NotificationDispatcher,
        policy: Optional[NotificationPolicy] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.policy = policy or NotificationPolicy()

    async def update_payment_status(
        self, transaction_id: str, status: str
    ) -> Tuple[models.Transaction, DispatchResult]:
        if status not in models.STATUSES:
            raise ValidationError(f"Invalid status: {status}")

        previous = self.store.get(transaction_id).status
        txn = self.store.update(
            transaction_id, _status_patch(status, f"status changed manually from {previous}")
        )
        logger.info(f"Status override for {transaction_id}: {previous} -> {status}")
        return txn, await self.dispatcher.dispatch(txn)

    async def refund(self, transaction_id: str) -> Tuple[models.Transaction, DispatchResult]:
        txn = self.store.get(transaction_id)
        if txn.status != "approved":
            raise InvalidTransition(
                "Only approved payments can be refunded",
                {"transaction_id": transaction_id, "status": txn.status},
            )

        txn = self.store.update(transaction_id, _status_patch("refunded", "refunded"))
        logger.info(f"Payment refunded: {transaction_id}")
        return txn, await self.dispatcher.dispatch(txn)

    async def resend(
        self,
        transaction_id: str,
        destination: Optional[str] = None,
        is_force: bool = True,
        allow_commerce_pan_token: Optional[bool] = None,
        from_batch: Optional[bool] = None,
    ) -> Tuple[models.Transaction, DispatchResult]:
        """
        Re-deliver the current outcome.

        A destination override is persisted for later sends; attribute
        overrides apply to this delivery only.

        Raises:
            NotFoundError: unknown transaction
            DeliveryError: the destination could not be reached or refused it
        """
        txn = self.store.get(transaction_id)
        if destination:
            txn = self.store.update(transaction_id, {"notification_url": destination})

        attributes = DeliveryAttributes.from_transaction(txn).replace(
            is_force=is_force,
            allow_commerce_pan_token=allow_commerce_pan_token,
            from_batch=from_batch,
        )
        result = await self.dispatcher.dispatch(txn, attributes, destination=txn.notification_url)
        result.raise_for_failure()
        return txn, result

    def mark_notified(self, transaction_id: str) -> models.Transaction:
        self.store.get(transaction_id)
        return self.store.mark_notified(transaction_id)

    def mark_many_notified(self, transaction_ids: Iterable[str]) -> Tuple[int, int]:
        return self.store.mark_many_notified(transaction_ids)

    def pending_notifications(self, limit: int = 100) -> List[models.Transaction]:
        return self.store.pending_notifications(self.policy.statuses, limit)
