"""
Transaction record store.

Thin repository over a SQLAlchemy session, keyed by the public
transaction_id rather than the storage primary key. Every mutation is a
single commit and bumps updated_at strictly forward.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import models
from app.exceptions import DuplicateKeyError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = {"id", "transaction_id", "created_at", "updated_at"}
WRITABLE_FIELDS = {
    c.name for c in models.Transaction.__table__.columns
} - IMMUTABLE_FIELDS


@dataclass
class TransactionFilter:
    merchant_id: Optional[str] = None
    status: Optional[str] = None
    notification_sent: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


def _next_timestamp(previous: Optional[datetime]) -> datetime:
    now = models.utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class TransactionStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, txn: models.Transaction) -> models.Transaction:
        if not txn.transaction_id:
            txn.transaction_id = models.generate_transaction_id()
        now = models.utcnow()
        txn.created_at = txn.created_at or now
        txn.updated_at = now
        self.db.add(txn)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError(
                f"Transaction {txn.transaction_id} already exists",
                {"transaction_id": txn.transaction_id},
            )
        self.db.refresh(txn)
        return txn

    def find_by_id(self, transaction_id: str) -> Optional[models.Transaction]:
        return self.db.query(models.Transaction).filter(
            models.Transaction.transaction_id == transaction_id
        ).first()

    def get(self, transaction_id: str) -> models.Transaction:
        txn = self.find_by_id(transaction_id)
        if txn is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def update(self, transaction_id: str, patch: Dict[str, Any]) -> models.Transaction:
        unknown = set(patch) - WRITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        txn = self.get(transaction_id)
        for field, value in patch.items():
            setattr(txn, field, value)
        txn.updated_at = _next_timestamp(txn.updated_at)
        self.db.commit()
        self.db.refresh(txn)
        return txn

    def mark_notified(self, transaction_id: str, when: datetime = None) -> models.Transaction:
        return self.update(transaction_id, {
            "notification_sent": True,
            "notification_sent_at": when or models.utcnow(),
        })

    def mark_many_notified(self, transaction_ids: Iterable[str]) -> Tuple[int, int]:
        """Returns (matched, modified). Already-notified rows keep their timestamp."""
        ids = list(dict.fromkeys(transaction_ids))
        rows = self.db.query(models.Transaction).filter(
            models.Transaction.transaction_id.in_(ids)
        ).all()
        now = models.utcnow()
        modified = 0
        for txn in rows:
            if txn.notification_sent:
                continue
            txn.notification_sent = True
            txn.notification_sent_at = now
            txn.updated_at = _next_timestamp(txn.updated_at)
            modified += 1
        self.db.commit()
        return len(rows), modified

    def query(
        self,
        filters: Optional[TransactionFilter] = None,
        page: int = 1,
        limit: int = 20,
        skip: Optional[int] = None,
    ) -> Tuple[List[models.Transaction], int]:
        filters = filters or TransactionFilter()
        q = self.db.query(models.Transaction)

        if filters.merchant_id:
            q = q.filter(models.Transaction.merchant_id == filters.merchant_id)
        if filters.status:
            q = q.filter(models.Transaction.status == filters.status)
        if filters.notification_sent is not None:
            q = q.filter(models.Transaction.notification_sent == filters.notification_sent)
        if filters.start_date:
            q = q.filter(models.Transaction.created_at >= filters.start_date)
        if filters.end_date:
            q = q.filter(models.Transaction.created_at <= filters.end_date)

        total = q.count()
        offset = skip if skip is not None else (page - 1) * limit
        items = q.order_by(
            models.Transaction.created_at.desc(), models.Transaction.id.desc()
        ).offset(offset).limit(limit).all()
        return items, total

    def pending_notifications(self, statuses: Iterable[str], limit: int = 100) -> List[models.Transaction]:
        return self.db.query(models.Transaction).filter(
            models.Transaction.notification_sent.is_(False),
            models.Transaction.status.in_(list(statuses)),
        ).order_by(models.Transaction.created_at.asc(), models.Transaction.id.asc()).limit(limit).all()
