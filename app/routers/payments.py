import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_dispatcher, get_lifecycle, get_policy, get_store
from app.schemas.requests import PaymentCreateRequest, ResendRequest, Status, StatusUpdateRequest
from app.schemas.responses import ApiResponse, Pagination
from app.services.dispatcher import DispatchResult, NotificationDispatcher, NotificationPolicy
from app.services.lifecycle import LifecycleService
from app.services.payments import create_payment
from app.services.serializer import parse_flag, to_wire_format
from app.services.store import TransactionFilter, TransactionStore

router = APIRouter()


def _with_notification(txn, result: Optional[DispatchResult]) -> dict:
    data = to_wire_format(txn)
    data["notification"] = result.as_dict() if result else None
    if result and not result.success:
        data["notificationError"] = f"{result.error_kind}: {result.detail}"
    return data


@router.post("", status_code=201, response_model=ApiResponse)
async def create(
    request: PaymentCreateRequest,
    store: TransactionStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    policy: NotificationPolicy = Depends(get_policy),
):
    """
    Simulate a payment.

    - Amount suffix 00 approves, 99 rejects, 50 leaves it pending; anything
      else is random (80/15/5)
    - The record is always persisted
    - Qualifying outcomes are notified; `notificationSent` reports whether
      that delivery succeeded
    """
    txn, result = await create_payment(request, store, dispatcher, policy)
    return ApiResponse(data=_with_notification(txn, result))


@router.get("", response_model=ApiResponse)
def list_payments(
    merchant_id: Optional[str] = Query(default=None, alias="merchantId"),
    status: Optional[Status] = None,
    notification_sent: Optional[bool] = Query(default=None, alias="notificationSent"),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=500),
    skip: Optional[int] = Query(default=None, ge=0),
    store: TransactionStore = Depends(get_store),
):
    filters = TransactionFilter(
        merchant_id=merchant_id,
        status=status,
        notification_sent=notification_sent,
        start_date=start_date,
        end_date=end_date,
    )
    items, total = store.query(filters, page=page, limit=limit, skip=skip)
    offset = skip if skip is not None else (page - 1) * limit
    return ApiResponse(
        data=[to_wire_format(t) for t in items],
        pagination=Pagination(
            page=page,
            limit=limit,
            skip=offset,
            total=total,
            pages=math.ceil(total / limit),
        ),
    )


@router.get("/pending-notifications", response_model=ApiResponse)
def pending_notifications(
    limit: int = Query(default=100, ge=1, le=1000),
    lifecycle: LifecycleService = Depends(get_lifecycle),
):
    """Transactions in a notifiable status that have not been notified yet, oldest first."""
    items = lifecycle.pending_notifications(limit)
    return ApiResponse(data=[to_wire_format(t) for t in items], message=f"{len(items)} pending")


@router.get("/{transaction_id}", response_model=ApiResponse)
def get_payment(transaction_id: str, store: TransactionStore = Depends(get_store)):
    return ApiResponse(data=to_wire_format(store.get(transaction_id)))


@router.patch("/{transaction_id}/notified", response_model=ApiResponse)
def mark_notified(transaction_id: str, lifecycle: LifecycleService = Depends(get_lifecycle)):
    txn = lifecycle.mark_notified(transaction_id)
    return ApiResponse(data=to_wire_format(txn), message="Payment marked as notified")


@router.patch("/{transaction_id}/status", response_model=ApiResponse)
async def update_status(
    transaction_id: str,
    request: StatusUpdateRequest,
    lifecycle: LifecycleService = Depends(get_lifecycle),
):
    """Manual override to any status. Always notifies; a failed delivery does not undo the change."""
    txn, result = await lifecycle.update_payment_status(transaction_id, request.status)
    return ApiResponse(data=_with_notification(txn, result), message=f"Status set to {txn.status}")


@router.post("/{transaction_id}/refund", response_model=ApiResponse)
async def refund(transaction_id: str, lifecycle: LifecycleService = Depends(get_lifecycle)):
    txn, result = await lifecycle.refund(transaction_id)
    return ApiResponse(data=_with_notification(txn, result), message="Payment refunded")


@router.post("/{transaction_id}/resend-notification", response_model=ApiResponse)
async def resend_notification(
    transaction_id: str,
    request: Optional[ResendRequest] = None,
    lifecycle: LifecycleService = Depends(get_lifecycle),
):
    """
    Re-send the notification for a transaction.

    - `notificationUrl` overrides (and replaces) the stored destination
    - `is_force` defaults to "true"
    - 502 when the destination cannot be reached or refuses the delivery
    """
    request = request or ResendRequest()
    txn, result = await lifecycle.resend(
        transaction_id,
        destination=request.notification_url,
        is_force=parse_flag(request.is_force, "is_force"),
        allow_commerce_pan_token=(
            parse_flag(request.allow_commerce_pan_token, "allow_commerce_pan_token")
            if request.allow_commerce_pan_token is not None else None
        ),
        from_batch=(
            parse_flag(request.from_batch, "from_batch")
            if request.from_batch is not None else None
        ),
    )
    return ApiResponse(data=_with_notification(txn, result), message="Notification resent")
