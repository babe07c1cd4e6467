from typing import Optional

from fastapi import APIRouter, Depends

from app.dependencies import get_bulk_generator, get_lifecycle
from app.schemas.requests import (
    BulkApprovedRequest,
    BulkTestRequest,
    DuplicateScenarioRequest,
    MarkNotifiedRequest,
)
from app.schemas.responses import ApiResponse
from app.services.bulk import BulkGenerator
from app.services.lifecycle import LifecycleService
from app.services.serializer import DeliveryAttributes

router = APIRouter()


async def _run_bulk(request: BulkTestRequest, generator: BulkGenerator) -> ApiResponse:
    attributes = DeliveryAttributes.from_wire(
        request.sqs_attributes.model_dump() if request.sqs_attributes else None
    )
    report = await generator.generate(
        request.count,
        all_approved=request.all_approved,
        token_mode=request.token_mode,
        destination=request.notification_url,
        attributes=attributes,
    )
    return ApiResponse(
        data=report.model_dump(by_alias=True),
        message=(
            f"{report.created} payments created, "
            f"{report.notifications_sent} notifications sent"
        ),
    )


@router.post("/bulk/test", response_model=ApiResponse)
async def bulk_test(
    request: Optional[BulkTestRequest] = None,
    generator: BulkGenerator = Depends(get_bulk_generator),
):
    """
    Create N synthetic payments (default 25, max 10000) and notify each one
    whose status qualifies.

    Items run sequentially; a failure on one item is reported in `errors`
    and does not abort the batch.
    """
    return await _run_bulk(request or BulkTestRequest(), generator)


@router.post("/bulk/test-approved", response_model=ApiResponse)
async def bulk_test_approved(
    request: Optional[BulkApprovedRequest] = None,
    generator: BulkGenerator = Depends(get_bulk_generator),
):
    """Create N payments (default 50), all approved, every other one without tokens."""
    return await _run_bulk(request or BulkApprovedRequest(), generator)


@router.post("/bulk/test-duplicates", response_model=ApiResponse)
async def bulk_test_duplicates(
    request: Optional[DuplicateScenarioRequest] = None,
    generator: BulkGenerator = Depends(get_bulk_generator),
):
    """
    Duplicate-delivery fixture for downstream deduplication.

    Creates a small approved batch (default 10), notifies each once, then
    notifies the designated one (default the 5th) again with is_force=true.
    """
    request = request or DuplicateScenarioRequest()
    report = await generator.duplicate_scenario(
        request.count,
        duplicate_position=request.duplicate_position,
        destination=request.notification_url,
    )
    return ApiResponse(
        data=report.model_dump(by_alias=True),
        message=(
            f"{report.created} payments created, transaction "
            f"{report.duplicated_transaction_id} notified twice"
        ),
    )


@router.patch("/bulk/notified", response_model=ApiResponse)
def mark_many_notified(
    request: MarkNotifiedRequest,
    lifecycle: LifecycleService = Depends(get_lifecycle),
):
    matched, modified = lifecycle.mark_many_notified(request.transaction_ids)
    return ApiResponse(
        data={"matched": matched, "modified": modified},
        message=f"{modified} payments marked as notified",
    )
