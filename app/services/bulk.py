"""
Bulk generator: synthetic transactions for load and consumer testing.

generate() creates N transactions one after another, dispatching each one
whose status qualifies. duplicate_scenario() builds the fixture for
downstream deduplication: every transaction is notified once, then one
designated transaction is notified a second time with is_force=true.

Items are processed sequentially, in request order. A failure on one item is
recorded in the report and the loop moves on.
"""
import logging
import random
import time
import uuid
from typing import List, Optional

from app import models
from app.schemas.responses import BulkReport, DuplicateScenarioReport, ItemError
from app.services import outcome as outcome_engine
from app.services.dispatcher import DispatchResult, NotificationDispatcher, NotificationPolicy
from app.services.serializer import DeliveryAttributes
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)

MERCHANTS = [
    ("MERCHANT-001", "Mi Tienda Online", "pagos@mitienda.com"),
    ("MERCHANT-002", "Electro Sur", "cobros@electrosur.com"),
    ("MERCHANT-003", "Libreria Central", "ventas@libreriacentral.com"),
]
PAYERS = [
    ("Juan Perez", "juan.perez@email.com", "12345678"),
    ("Maria Gomez", "maria.gomez@email.com", "23456789"),
    ("Lucia Fernandez", "lucia.fernandez@email.com", "34567890"),
    ("Carlos Diaz", "carlos.diaz@email.com", "45678901"),
]
CARD_TYPES = ["credit_card", "debit_card"]
BRANDS = ["visa", "mastercard", "amex"]
CURRENCIES = ["ARS", "ARS", "ARS", "USD", "BRL"]

TOKEN_MODES = ("all", "half", "none")


def _wants_tokens(token_mode: str, index: int) -> bool:
    if token_mode == "none":
        return False
    if token_mode == "half":
        return index % 2 == 0
    return True


class BulkGenerator:
    def __init__(
        self,
        store: TransactionStore,
        dispatcher: NotificationDispatcher,
        policy: Optional[NotificationPolicy] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.policy = policy or NotificationPolicy()
        self.rng = rng or random.Random()

    def synthetic_instrument(self, with_tokens: bool) -> dict:
        instrument = {
            "type": self.rng.choice(CARD_TYPES),
            "brand": self.rng.choice(BRANDS),
            "last_four_digits": f"{self.rng.randint(0, 9999):04d}",
        }
        if with_tokens:
            instrument["token"] = f"tok_{uuid.uuid4().hex[:16]}"
            instrument["token_id"] = f"tid_{uuid.uuid4().hex[:12]}"
            instrument["pan_token"] = f"pan_{uuid.uuid4().hex[:16]}"
            instrument["commerce_token"] = f"ctk_{uuid.uuid4().hex[:16]}"
        return instrument

    def synthetic_transaction(
        self,
        index: int,
        all_approved: bool = False,
        with_tokens: bool = True,
        destination: Optional[str] = None,
        attributes: Optional[DeliveryAttributes] = None,
    ) -> models.Transaction:
        merchant_id, merchant_name, merchant_email = self.rng.choice(MERCHANTS)
        payer_name, payer_email, document = self.rng.choice(PAYERS)
        instrument = self.synthetic_instrument(with_tokens)
        amount = round(self.rng.uniform(100, 50000), 2)

        if all_approved:
            outcome = outcome_engine.approved()
        else:
            outcome = outcome_engine.decide(amount, instrument, rng=self.rng)

        attributes = attributes or DeliveryAttributes(from_batch=True)
        txn = models.Transaction(
            transaction_id=models.generate_transaction_id(),
            merchant_id=merchant_id,
            merchant_name=merchant_name,
            merchant_email=merchant_email,
            payer_name=payer_name,
            payer_email=payer_email,
            payer_document_type="DNI",
            payer_document_number=document,
            amount=amount,
            currency=self.rng.choice(CURRENCIES),
            payment_methods=[instrument],
            status=outcome.status,
            response_code=outcome.response_code,
            response_message=outcome.detail,
            external_reference=f"BULK-{index + 1:05d}",
            description="Synthetic bulk payment",
            extra_metadata={"bulk_index": index + 1},
            notification_url=destination,
            **attributes.as_dict(),
        )
        for field, value in models.milestone_patch(outcome.status).items():
            setattr(txn, field, value)
        return txn

    def _record_dispatch(self, report, index: int, txn, result: DispatchResult) -> None:
        if result.success:
            report.notifications_sent += 1
            return
        report.notifications_failed += 1
        report.errors.append(ItemError(
            index=index,
            transaction_id=txn.transaction_id,
            stage="notification",
            error=f"{result.error_kind}: {result.detail}",
        ))

    async def _dispatch(
        self, report, index: int, txn, attributes: Optional[DeliveryAttributes] = None
    ) -> Optional[DispatchResult]:
        transaction_id = txn.transaction_id
        try:
            result = await self.dispatcher.dispatch(txn, attributes)
        except Exception as e:
            self.store.db.rollback()
            logger.warning(f"Bulk item {index} ({transaction_id}) failed during notification: {e}")
            report.notifications_failed += 1
            report.errors.append(ItemError(
                index=index, transaction_id=transaction_id, stage="notification", error=str(e)
            ))
            return None
        self._record_dispatch(report, index, txn, result)
        return result

    def _create(self, report, index: int, **kwargs) -> Optional[models.Transaction]:
        try:
            txn = self.store.create(self.synthetic_transaction(index, **kwargs))
        except Exception as e:
            self.store.db.rollback()
            logger.warning(f"Bulk item {index} failed to persist: {e}")
            report.errors.append(ItemError(index=index, stage="create", error=str(e)))
            return None
        report.created += 1
        report.transaction_ids.append(txn.transaction_id)
        return txn

    async def generate(
        self,
        count: int,
        all_approved: bool = False,
        token_mode: str = "all",
        destination: Optional[str] = None,
        attributes: Optional[DeliveryAttributes] = None,
    ) -> BulkReport:
        if token_mode not in TOKEN_MODES:
            raise ValueError(f"Unknown token mode: {token_mode}")

        start_ms = time.time() * 1000
        report = BulkReport(total_requested=count)
        attributes = (attributes or DeliveryAttributes()).replace(from_batch=True)

        for index in range(count):
            txn = self._create(
                report,
                index,
                all_approved=all_approved,
                with_tokens=_wants_tokens(token_mode, index),
                destination=destination,
                attributes=attributes,
            )
            if txn is None:
                continue

            if txn.status == "approved":
                report.approved += 1
            elif txn.status == "rejected":
                report.rejected += 1
            else:
                report.pending += 1

            if self.policy.qualifies(txn.status):
                await self._dispatch(report, index, txn)

        report.processing_time_ms = int(time.time() * 1000 - start_ms)
        logger.info(
            f"Bulk run: {report.created}/{count} created, "
            f"{report.notifications_sent} notifications sent"
        )
        return report

    async def duplicate_scenario(
        self,
        count: int = 10,
        duplicate_position: int = 5,
        destination: Optional[str] = None,
    ) -> DuplicateScenarioReport:
        """
        Notify every transaction once, then the one at duplicate_position
        (1-based) a second time with is_force=true.
        """
        if not 1 <= duplicate_position <= count:
            raise ValueError("duplicate_position must be within the batch")

        start_ms = time.time() * 1000
        report = DuplicateScenarioReport(duplicate_position=duplicate_position)
        normal = DeliveryAttributes(from_batch=True, is_force=False)
        created: List[Optional[models.Transaction]] = []

        for index in range(count):
            txn = self._create(
                report, index, all_approved=True, destination=destination, attributes=normal
            )
            created.append(txn)
            if txn is not None:
                await self._dispatch(report, index, txn, normal)

        target = created[duplicate_position - 1]
        if target is not None:
            report.duplicated_transaction_id = target.transaction_id
            report.duplicate_sends = 1
            forced = normal.replace(is_force=True)
            result = await self._dispatch(report, duplicate_position - 1, target, forced)
            report.duplicate_delivered = result is not None and result.success

        report.processing_time_ms = int(time.time() * 1000 - start_ms)
        logger.info(
            f"Duplicate scenario: {report.duplicated_transaction_id} sent twice, "
            f"{report.notifications_sent} notifications total"
        )
        return report
