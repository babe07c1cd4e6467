"""
Seeds the database with demo payments for the simulator UI and consumers.

- 150 synthetic payments spread over the last 72 hours
- Outcomes decided by the outcome engine (so the 00/99/50 rules apply)
- A handful of fixed-suffix amounts so every deterministic branch is present
- Roughly half of the notifiable payments marked as already notified
- Nothing is dispatched: seeding never talks to the destination
"""
import os
import random
import sys
from datetime import timedelta

# Allow running from project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import SessionLocal, engine
from app import models
from app.services import outcome as outcome_engine
from app.services.bulk import BulkGenerator
from app.services.dispatcher import NotificationDispatcher, NotificationPolicy
from app.config import settings
from app.services.store import TransactionStore

random.seed(42)

SEED_COUNT = 150
FIXED_AMOUNTS = [1000.00, 2500.00, 1999.00, 349.99, 1250.00, 4750.00]


def generate_transactions(generator: BulkGenerator):
    now = models.utcnow()
    transactions = []

    for i in range(SEED_COUNT):
        txn = generator.synthetic_transaction(i, with_tokens=random.random() < 0.5)
        txn.from_batch = False
        txn.created_at = now - timedelta(hours=random.uniform(0, 72))
        transactions.append(txn)

    # Deterministic suffixes, one of each
    for i, amount in enumerate(FIXED_AMOUNTS):
        txn = generator.synthetic_transaction(SEED_COUNT + i)
        outcome = outcome_engine.decide(amount)
        txn.amount = amount
        txn.status = outcome.status
        txn.response_code = outcome.response_code
        txn.response_message = outcome.detail
        for field, value in models.milestone_patch(outcome.status).items():
            setattr(txn, field, value)
        txn.from_batch = False
        txn.created_at = now - timedelta(minutes=5 * (i + 1))
        transactions.append(txn)

    policy = NotificationPolicy(settings.notify_status_list())
    for txn in transactions:
        if policy.qualifies(txn.status) and random.random() < 0.5:
            txn.notification_sent = True
            txn.notification_sent_at = txn.created_at + timedelta(seconds=random.randint(1, 30))

    return transactions


def main():
    print("Creating database tables...")
    models.Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        existing = db.query(models.Transaction).count()
        if existing > 0:
            print(f"Database already has {existing} transactions. Skipping seed.")
            return

        store = TransactionStore(db)
        generator = BulkGenerator(
            store,
            NotificationDispatcher(settings.dispatcher_config()),
            rng=random.Random(42),
        )

        print("Generating transactions...")
        for txn in generate_transactions(generator):
            store.create(txn)

        count = db.query(models.Transaction).count()
        print(f"Successfully seeded {count} transactions.")

        from sqlalchemy import func as sqlfunc
        states = db.query(
            models.Transaction.status,
            sqlfunc.count(models.Transaction.id)
        ).group_by(models.Transaction.status).all()
        print("\nStatus distribution:")
        for state, cnt in states:
            print(f"  {state}: {cnt}")

    finally:
        db.close()


if __name__ == "__main__":
    main()
