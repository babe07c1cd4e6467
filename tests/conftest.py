"""
Shared pytest fixtures for all test modules.

Uses an in-memory SQLite database (StaticPool) so every test
function gets a clean, isolated database, and an httpx.MockTransport
destination so no notification ever leaves the process.
"""
import json
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models
from app.config import DispatcherConfig
from app.database import Base, get_db
from app.services.dispatcher import NotificationDispatcher
from app.services.store import TransactionStore

DESTINATION = "http://consumer.test/notifications"

# ---------------------------------------------------------------------------
# In-memory database engine shared across all fixtures in a test session.
# StaticPool forces all SQLAlchemy connections to reuse the same underlying
# sqlite3 connection, which is required for in-memory SQLite.
# ---------------------------------------------------------------------------
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=TEST_ENGINE)


class FakeDestination:
    """Records every POST; answers with `status_code` or raises `error`."""

    def __init__(self, status_code: int = 200, error: Optional[Exception] = None):
        self.status_code = status_code
        self.error = error
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"messageId": f"msg-{len(self.requests)}"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture(autouse=True)
def reset_db():
    """Drop and recreate all tables before each test for full isolation."""
    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db(reset_db):
    """Yield a SQLAlchemy session backed by the in-memory test database."""
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return TransactionStore(db)


@pytest.fixture
def destination():
    return FakeDestination()


@pytest.fixture
def dispatcher(store, destination):
    return NotificationDispatcher(
        DispatcherConfig(destination_url=DESTINATION), store=store, client=destination.client()
    )


@pytest.fixture
def client(db, destination):
    """
    FastAPI TestClient with the DB dependency overridden to use the
    in-memory session and the dispatcher wired to the fake destination.
    The TestClient is NOT used as a context manager so the lifespan hook
    (which touches the on-disk DB) is skipped.
    """
    from app.dependencies import get_notification_dispatcher
    from app.main import app

    def override_get_db():
        yield db

    def override_dispatcher():
        return NotificationDispatcher(
            DispatcherConfig(destination_url=DESTINATION), client=destination.client()
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = override_dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()


def payment_body(amount=1000.00, **overrides) -> dict:
    body = {
        "merchant": {"id": "MERCHANT-001", "name": "Mi Tienda Online", "email": "pagos@mitienda.com"},
        "amount": amount,
        "currency": "ARS",
        "payer": {"name": "Juan Perez", "email": "juan.perez@email.com", "documentNumber": "12345678"},
        "paymentMethod": {
            "type": "credit_card",
            "brand": "visa",
            "lastFourDigits": "4242",
            "token": "tok_abc",
            "panToken": "pan_abc",
        },
        "externalReference": "ORDER-12345",
        "description": "Compra en Mi Tienda Online",
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# Helper, not a fixture, so any test file can import and call it directly.
# ---------------------------------------------------------------------------
def make_txn(
    db,
    transaction_id: str,
    status: str = "approved",
    amount: float = 1000.00,
    merchant_id: str = "MERCHANT-001",
    currency: str = "ARS",
    payment_methods: Optional[list] = None,
    notification_url: Optional[str] = None,
    notification_sent: bool = False,
    is_force: bool = False,
    from_batch: bool = False,
    allow_commerce_pan_token: bool = True,
    created_at: Optional[datetime] = None,
) -> models.Transaction:
    created_at = created_at or models.utcnow()
    txn = models.Transaction(
        transaction_id=transaction_id,
        merchant_id=merchant_id,
        merchant_name="Mi Tienda Online",
        merchant_email="pagos@mitienda.com",
        payer_name="Juan Perez",
        payer_email="juan.perez@email.com",
        payer_document_type="DNI",
        payer_document_number="12345678",
        amount=Decimal(str(amount)),
        currency=currency,
        payment_methods=payment_methods if payment_methods is not None else [
            {"type": "credit_card", "brand": "visa", "last_four_digits": "4242"}
        ],
        status=status,
        response_code="00",
        response_message="authorized",
        notification_url=notification_url,
        notification_sent=notification_sent,
        notification_sent_at=created_at if notification_sent else None,
        is_force=is_force,
        from_batch=from_batch,
        allow_commerce_pan_token=allow_commerce_pan_token,
        created_at=created_at,
        updated_at=created_at,
    )
    for field, value in models.milestone_patch(status, created_at).items():
        setattr(txn, field, value)
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn
