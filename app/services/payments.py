"""
Payment creation flow.

1. Decide the outcome from the amount
2. Persist the transaction with its delivery attributes and milestones
3. Dispatch a notification if the status qualifies under the policy

The record is committed before dispatch, so a delivery failure is reported
next to a successful create rather than undoing it.
"""
import logging
from typing import Optional, Tuple

from app import models
from app.schemas.requests import PaymentCreateRequest
from app.services.dispatcher import DispatchResult, NotificationDispatcher, NotificationPolicy
from app.services.outcome import decide
from app.services.serializer import DeliveryAttributes
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)


def build_transaction(request: PaymentCreateRequest, outcome) -> models.Transaction:
    attributes = DeliveryAttributes.from_wire(
        request.sqs_attributes.model_dump() if request.sqs_attributes else None
    )
    txn = models.Transaction(
        transaction_id=models.generate_transaction_id(),
        merchant_id=request.merchant.id,
        merchant_name=request.merchant.name,
        merchant_email=request.merchant.email,
        payer_name=request.payer.name,
        payer_email=request.payer.email,
        payer_document_type=request.payer.document_type,
        payer_document_number=request.payer.document_number,
        amount=request.amount,
        currency=request.currency,
        payment_methods=request.instruments(),
        status=outcome.status,
        response_code=outcome.response_code,
        response_message=outcome.detail,
        external_reference=request.external_reference,
        description=request.description,
        extra_metadata=request.metadata,
        notification_url=request.destination(),
        **attributes.as_dict(),
    )
    for field, value in models.milestone_patch(outcome.status).items():
        setattr(txn, field, value)
    return txn


async def create_payment(
    request: PaymentCreateRequest,
    store: TransactionStore,
    dispatcher: NotificationDispatcher,
    policy: NotificationPolicy,
) -> Tuple[models.Transaction, Optional[DispatchResult]]:
    instruments = request.instruments()
    outcome = decide(request.amount, instruments[0])

    txn = store.create(build_transaction(request, outcome))
    logger.info(f"Payment processed: {txn.transaction_id} - status: {txn.status}")

    result = None
    if policy.qualifies(txn.status):
        result = await dispatcher.dispatch(txn)
    return txn, result
