import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, Numeric, String

from app.database import Base

STATUSES = ("pending", "approved", "rejected", "refunded", "cancelled")
CURRENCIES = ("ARS", "USD", "EUR", "BRL")
PAYMENT_METHOD_TYPES = ("credit_card", "debit_card", "bank_transfer", "cash")

MILESTONE_FIELDS = ("processed_at", "paid_at", "accredited_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_transaction_id() -> str:
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"TXN-{millis}-{uuid.uuid4().hex[:8].upper()}"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(
        String, nullable=False, unique=True, index=True, default=generate_transaction_id
    )

    # Merchant (collector) receiving the payment
    merchant_id = Column(String, nullable=False, index=True)
    merchant_name = Column(String, nullable=False)
    merchant_email = Column(String, nullable=False)

    payer_name = Column(String, nullable=False)
    payer_email = Column(String, nullable=False)
    payer_document_type = Column(String, nullable=False, default="DNI")
    payer_document_number = Column(String, nullable=False)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="ARS")
    payment_methods = Column(JSON, nullable=False, default=list)

    status = Column(String, nullable=False, default="pending", index=True)
    response_code = Column(String, nullable=True)
    response_message = Column(String, nullable=True)

    external_reference = Column(String, nullable=True)
    description = Column(String, nullable=True)
    extra_metadata = Column(JSON, nullable=False, default=dict)

    # Notification state and per-transaction delivery attributes
    notification_url = Column(String, nullable=True)
    notification_sent = Column(Boolean, nullable=False, default=False)
    notification_sent_at = Column(DateTime, nullable=True)
    allow_commerce_pan_token = Column(Boolean, nullable=False, default=True)
    from_batch = Column(Boolean, nullable=False, default=False)
    is_force = Column(Boolean, nullable=False, default=False)

    # Milestones, only populated while approved
    processed_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    accredited_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_transactions_merchant_status_created", "merchant_id", "status", "created_at"),
        Index("ix_transactions_notified_status", "notification_sent", "status"),
    )


def milestone_patch(status: str, when: datetime = None) -> dict:
    """Milestone fields implied by moving to `status`.

    Approval stamps all three; every other status clears them, so the
    milestones are only ever populated on an approved transaction.
    """
    if status == "approved":
        when = when or utcnow()
        return {field: when for field in MILESTONE_FIELDS}
    return {field: None for field in MILESTONE_FIELDS}
