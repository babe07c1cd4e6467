"""
Unit tests for app/services/dispatcher.py.

Every test talks to an httpx.MockTransport destination (tests.conftest.
FakeDestination) except the unreachable-port check. Covers: payload shape,
token omission, success marking, failure classification, force semantics,
the hard timeout.
"""
import asyncio

import httpx
import pytest

from app.config import DispatcherConfig
from app.exceptions import DeliveryError
from app.services.dispatcher import NotificationDispatcher, NotificationPolicy, classify_transport_error
from app.services.serializer import DeliveryAttributes
from tests.conftest import DESTINATION, FakeDestination, make_txn


def dispatcher_for(store, destination, **config):
    config.setdefault("destination_url", DESTINATION)
    return NotificationDispatcher(DispatcherConfig(**config), store=store, client=destination.client())


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------
class TestPayload:
    async def test_payload_shape(self, db, dispatcher, destination):
        txn = make_txn(db, "TXN-1", payment_methods=[{
            "type": "credit_card", "brand": "visa", "last_four_digits": "4242",
            "token": "tok_1", "token_id": "tid_1", "pan_token": "pan_1", "commerce_token": "ctk_1",
        }])
        await dispatcher.dispatch(txn)

        payload = destination.payloads[0]
        assert payload["transactionIdentifier"] == "TXN-1"
        assert payload["destinationRef"] == "MERCHANT-001"
        assert payload["status"] == "approved"
        assert payload["paymentMethod"] == {
            "type": "credit_card",
            "brand": "visa",
            "maskedDigits": "**** **** **** 4242",
            "token": "tok_1",
            "tokenId": "tid_1",
            "panToken": "pan_1",
            "commerceToken": "ctk_1",
        }
        assert payload["attributes"] == {
            "allow_commerce_pan_token": {"DataType": "String", "StringValue": "true"},
            "from_batch": {"DataType": "String", "StringValue": "false"},
            "is_force": {"DataType": "String", "StringValue": "false"},
        }

    async def test_absent_tokens_are_omitted_not_null(self, db, dispatcher, destination):
        txn = make_txn(db, "TXN-1", payment_methods=[{"type": "debit_card", "brand": "visa",
                                                      "last_four_digits": "1111", "pan_token": None}])
        await dispatcher.dispatch(txn)

        method = destination.payloads[0]["paymentMethod"]
        for key in ("token", "tokenId", "panToken", "commerceToken"):
            assert key not in method

    async def test_stored_attributes_are_replayed(self, db, dispatcher, destination):
        txn = make_txn(db, "TXN-1", from_batch=True, allow_commerce_pan_token=False)
        await dispatcher.dispatch(txn)

        attributes = destination.payloads[0]["attributes"]
        assert attributes["from_batch"]["StringValue"] == "true"
        assert attributes["allow_commerce_pan_token"]["StringValue"] == "false"

    async def test_auth_and_region_headers(self, store, db, destination):
        txn = make_txn(db, "TXN-1")
        d = dispatcher_for(store, destination, auth_token="secret", region="us-east-1")
        await d.dispatch(txn)

        request = destination.requests[0]
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["X-Destination-Region"] == "us-east-1"


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------
class TestSuccess:
    async def test_success_marks_transaction_notified(self, db, dispatcher, destination):
        txn = make_txn(db, "TXN-1")
        result = await dispatcher.dispatch(txn)

        assert result.success is True
        assert result.message_id == "msg-1"
        assert result.destination == DESTINATION
        db.refresh(txn)
        assert txn.notification_sent is True
        assert txn.notification_sent_at is not None

    async def test_transaction_destination_wins_over_config(self, db, dispatcher, destination):
        txn = make_txn(db, "TXN-1", notification_url="http://merchant.test/hook")
        await dispatcher.dispatch(txn)
        assert destination.urls == ["http://merchant.test/hook"]

    async def test_explicit_destination_wins_over_everything(self, db, dispatcher, destination):
        txn = make_txn(db, "TXN-1", notification_url="http://merchant.test/hook")
        await dispatcher.dispatch(txn, destination="http://override.test/hook")
        assert destination.urls == ["http://override.test/hook"]

    async def test_sends_every_time_even_when_already_notified(self, db, dispatcher, destination):
        txn = make_txn(db, "TXN-1", notification_sent=True)
        await dispatcher.dispatch(txn)
        await dispatcher.dispatch(txn, DeliveryAttributes(is_force=True))

        assert len(destination.requests) == 2
        forced = destination.payloads[1]["attributes"]["is_force"]["StringValue"]
        assert forced == "true"


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------
class TestFailures:
    async def test_unreachable_destination_is_connection_error(self, store, db):
        """Scenario F: nothing is listening, record stays unnotified."""
        txn = make_txn(db, "TXN-1")
        d = NotificationDispatcher(
            DispatcherConfig(destination_url="http://127.0.0.1:1/hook", timeout_ms=5000),
            store=store,
            client=httpx.AsyncClient(trust_env=False),
        )
        result = await d.dispatch(txn)

        assert result.success is False
        assert result.error_kind == "connection"
        db.refresh(txn)
        assert txn.notification_sent is False
        assert store.find_by_id("TXN-1") is not None

    async def test_connect_error_from_transport(self, store, db):
        destination = FakeDestination(error=httpx.ConnectError("[Errno 111] Connection refused"))
        txn = make_txn(db, "TXN-1")
        result = await dispatcher_for(store, destination).dispatch(txn)

        assert result.error_kind == "connection"
        assert txn.notification_sent is False
        with pytest.raises(DeliveryError) as exc_info:
            result.raise_for_failure()
        assert exc_info.value.kind == "connection"

    async def test_http_error_status(self, store, db):
        destination = FakeDestination(status_code=503)
        txn = make_txn(db, "TXN-1")
        result = await dispatcher_for(store, destination).dispatch(txn)

        assert result.success is False
        assert result.error_kind == "httpStatus:503"
        assert result.status_code == 503
        db.refresh(txn)
        assert txn.notification_sent is False

    async def test_read_timeout(self, store, db):
        destination = FakeDestination(error=httpx.ReadTimeout("timed out"))
        result = await dispatcher_for(store, destination).dispatch(make_txn(db, "TXN-1"))
        assert result.error_kind == "timeout"

    async def test_hard_timeout_aborts_slow_destination(self, store, db):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow))
        d = NotificationDispatcher(DispatcherConfig(destination_url=DESTINATION, timeout_ms=50),
                                   store=store, client=client)
        result = await d.dispatch(make_txn(db, "TXN-1"))

        assert result.success is False
        assert result.error_kind == "timeout"

    async def test_no_destination_configured(self, store, db, destination):
        d = dispatcher_for(store, destination, destination_url=None)
        result = await d.dispatch(make_txn(db, "TXN-1"))

        assert result.success is False
        assert result.detail == "no destination configured"
        assert destination.requests == []

    async def test_no_automatic_retry(self, store, db):
        destination = FakeDestination(status_code=500)
        await dispatcher_for(store, destination).dispatch(make_txn(db, "TXN-1"))
        assert len(destination.requests) == 1


class TestClassification:
    @pytest.mark.parametrize("exc,kind", [
        (httpx.ConnectTimeout("slow"), "timeout"),
        (asyncio.TimeoutError(), "timeout"),
        (httpx.ConnectError("[Errno 111] Connection refused"), "connection"),
        (httpx.ReadError("[Errno 104] Connection reset by peer"), "connectionReset"),
        (httpx.ConnectError("[Errno -2] Name or service not known"), "network"),
        (httpx.RemoteProtocolError("Server disconnected without sending a response."), "network"),
    ])
    def test_kinds(self, exc, kind):
        assert classify_transport_error(exc) == kind


class TestPolicy:
    def test_default_policy_notifies_all_three_outcomes(self):
        policy = NotificationPolicy()
        assert all(policy.qualifies(s) for s in ("approved", "rejected", "pending"))
        assert not policy.qualifies("refunded")

    def test_policy_is_configurable(self):
        policy = NotificationPolicy(["approved"])
        assert policy.qualifies("approved")
        assert not policy.qualifies("pending")
