from typing import Any, List, Optional

from pydantic import BaseModel

from app.schemas.common import CamelModel


class Pagination(BaseModel):
    page: int
    limit: int
    skip: int
    total: int
    pages: int


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None
    pagination: Optional[Pagination] = None
    message: Optional[str] = None


class ItemError(CamelModel):
    index: int
    transaction_id: Optional[str] = None
    stage: str  # "create" | "notification"
    error: str


class BulkReport(CamelModel):
    total_requested: int
    created: int = 0
    approved: int = 0
    rejected: int = 0
    pending: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    transaction_ids: List[str] = []
    errors: List[ItemError] = []
    processing_time_ms: int = 0


class DuplicateScenarioReport(CamelModel):
    created: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    duplicated_transaction_id: Optional[str] = None
    duplicate_position: int
    duplicate_sends: int = 0
    duplicate_delivered: bool = False
    transaction_ids: List[str] = []
    errors: List[ItemError] = []
    processing_time_ms: int = 0


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: Optional[str] = None
