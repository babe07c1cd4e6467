from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.config import settings
from app.schemas.common import CamelModel

Flag = Literal["true", "false"]
Currency = Literal["ARS", "USD", "EUR", "BRL"]
Status = Literal["pending", "approved", "rejected", "refunded", "cancelled"]
PaymentMethodType = Literal["credit_card", "debit_card", "bank_transfer", "cash"]

MAX_BULK_COUNT = 10_000


class MerchantIn(CamelModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    notification_url: Optional[str] = None


class PayerIn(CamelModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    document_type: str = "DNI"
    document_number: str = Field(..., min_length=1)


class PaymentMethodIn(CamelModel):
    type: PaymentMethodType
    brand: Optional[str] = None
    last_four_digits: Optional[str] = None
    token: Optional[str] = None
    token_id: Optional[str] = None
    pan_token: Optional[str] = None
    commerce_token: Optional[str] = None

    @field_validator("last_four_digits")
    @classmethod
    def validate_last_four(cls, v):
        if v is not None and (len(v) != 4 or not v.isdigit()):
            raise ValueError("lastFourDigits must be exactly 4 digits")
        return v


class DeliveryAttributesIn(BaseModel):
    """Queue-style message attributes, sent as "true"/"false" strings."""

    allow_commerce_pan_token: Optional[Flag] = None
    from_batch: Optional[Flag] = None
    is_force: Optional[Flag] = None


class PaymentCreateRequest(CamelModel):
    merchant: MerchantIn
    amount: Decimal = Field(..., gt=0)
    currency: Currency = Field(default_factory=lambda: settings.default_currency)
    payer: PayerIn
    payment_method: Optional[PaymentMethodIn] = None
    payment_methods: Optional[List[PaymentMethodIn]] = None
    external_reference: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    notification_url: Optional[str] = None
    sqs_attributes: Optional[DeliveryAttributesIn] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if not v.is_finite():
            raise ValueError("amount must be a number")
        if v.normalize().as_tuple().exponent < -2:
            raise ValueError("amount must have at most 2 decimal places")
        return v

    @model_validator(mode="after")
    def require_payment_method(self):
        if self.payment_method is None and not self.payment_methods:
            raise ValueError("payment method is required")
        return self

    def instruments(self) -> List[Dict[str, Any]]:
        methods = list(self.payment_methods or [])
        if self.payment_method is not None:
            methods.insert(0, self.payment_method)
        return [m.model_dump(exclude_none=True) for m in methods]

    def destination(self) -> Optional[str]:
        return self.notification_url or self.merchant.notification_url


class StatusUpdateRequest(CamelModel):
    status: Status


class ResendRequest(CamelModel):
    notification_url: Optional[str] = None
    is_force: Flag = "true"
    allow_commerce_pan_token: Optional[Flag] = None
    from_batch: Optional[Flag] = None


class BulkTestRequest(CamelModel):
    count: int = 25
    all_approved: bool = False
    token_mode: Literal["all", "half", "none"] = "all"
    notification_url: Optional[str] = None
    sqs_attributes: Optional[DeliveryAttributesIn] = None

    @field_validator("count")
    @classmethod
    def validate_count(cls, v):
        if v < 1:
            raise ValueError("count must be at least 1")
        if v > MAX_BULK_COUNT:
            raise ValueError(f"Maximum {MAX_BULK_COUNT} transactions per request")
        return v


class BulkApprovedRequest(BulkTestRequest):
    count: int = 50
    all_approved: bool = True
    token_mode: Literal["all", "half", "none"] = "half"


class DuplicateScenarioRequest(CamelModel):
    count: int = Field(default=10, ge=1, le=100)
    duplicate_position: int = Field(default=5, ge=1)
    notification_url: Optional[str] = None

    @model_validator(mode="after")
    def position_within_batch(self):
        if self.duplicate_position > self.count:
            raise ValueError("duplicatePosition must be within the batch")
        return self


class MarkNotifiedRequest(CamelModel):
    transaction_ids: List[str]

    @field_validator("transaction_ids")
    @classmethod
    def validate_ids(cls, v):
        if not v:
            raise ValueError("transactionIds cannot be empty")
        if len(v) > MAX_BULK_COUNT:
            raise ValueError(f"Maximum {MAX_BULK_COUNT} transaction IDs per request")
        return v
