"""
Tests for scripts/generate_test_data.py.

Nothing here touches the database: generate_transactions() only builds rows.
"""
import random

from app.services import outcome as outcome_engine
from app.services.bulk import BulkGenerator
from scripts.generate_test_data import FIXED_AMOUNTS, SEED_COUNT, generate_transactions


def seeded_rows():
    random.seed(42)
    return generate_transactions(BulkGenerator(None, None, rng=random.Random(42)))


def test_fixed_amounts_hit_deterministic_suffixes():
    for amount in FIXED_AMOUNTS:
        assert outcome_engine.amount_text(amount)[-2:] in ("00", "99", "50")


def test_fixed_amounts_cover_every_deterministic_status():
    statuses = {outcome_engine.decide(amount).status for amount in FIXED_AMOUNTS}
    assert statuses == {"approved", "rejected", "pending"}


def test_seeded_run_is_reproducible():
    first, second = seeded_rows(), seeded_rows()

    assert len(first) == SEED_COUNT + len(FIXED_AMOUNTS)
    assert [t.amount for t in first] == [t.amount for t in second]
    assert [t.status for t in first] == [t.status for t in second]
    assert [t.notification_sent for t in first] == [t.notification_sent for t in second]


def test_seeded_rows_are_not_batch_rows():
    assert not any(t.from_batch for t in seeded_rows())
