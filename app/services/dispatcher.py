"""
Notification dispatcher.

Delivers one outcome notification for one transaction to one destination:

1. Build the payload (serializer.build_notification_payload)
2. POST it once, bounded by the configured timeout
3. On 2xx, mark the transaction notified in the store
4. Otherwise classify the failure and hand it back to the caller

There is no retry and no local deduplication here. is_force is only a label
for the downstream consumer; every call sends.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

import httpx

from app.config import DispatcherConfig
from app.exceptions import DeliveryError
from app.services.serializer import DeliveryAttributes, build_notification_payload

logger = logging.getLogger(__name__)

DEFAULT_NOTIFY_STATUSES = ("approved", "rejected", "pending")

TIMEOUT = "timeout"
CONNECTION = "connection"
CONNECTION_RESET = "connectionReset"
NETWORK = "network"

DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "name resolution")


class NotificationPolicy:
    """Which statuses trigger a notification automatically at creation time."""

    def __init__(self, statuses: Iterable[str] = DEFAULT_NOTIFY_STATUSES):
        self.statuses = tuple(statuses)

    def qualifies(self, status: str) -> bool:
        return status in self.statuses


@dataclass
class DispatchResult:
    success: bool
    destination: Optional[str] = None
    message_id: Optional[str] = None
    error_kind: Optional[str] = None
    status_code: Optional[int] = None
    detail: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)

    def raise_for_failure(self) -> None:
        if not self.success:
            raise DeliveryError(
                self.error_kind or NETWORK,
                f"Notification delivery failed: {self.detail or self.error_kind}",
                {"destination": self.destination, "status_code": self.status_code},
            )

    def as_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success, "destination": self.destination}
        if self.message_id:
            body["messageId"] = self.message_id
        if not self.success:
            body["errorKind"] = self.error_kind
            body["detail"] = self.detail
            if self.status_code is not None:
                body["statusCode"] = self.status_code
        return body


def classify_transport_error(exc: Exception) -> str:
    """Map an httpx/asyncio exception to a delivery error kind."""
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return TIMEOUT

    text = str(exc).lower()
    cause = exc.__cause__ or exc.__context__
    if isinstance(cause, ConnectionResetError) or "reset" in text:
        return CONNECTION_RESET
    if isinstance(exc, httpx.ConnectError):
        if any(marker in text for marker in DNS_MARKERS):
            return NETWORK
        return CONNECTION
    return NETWORK


def _message_id(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("messageId", "MessageId", "message_id"):
            if body.get(key):
                return str(body[key])
    return response.headers.get("x-message-id")


class NotificationDispatcher:
    def __init__(
        self,
        config: DispatcherConfig,
        store=None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.store = store
        self.client = client

    def with_store(self, store) -> "NotificationDispatcher":
        """Same transport and config, bound to another request's store."""
        return NotificationDispatcher(self.config, store=store, client=self.client)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        if self.config.region:
            headers["X-Destination-Region"] = self.config.region
        return headers

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        timeout = httpx.Timeout(self.config.timeout_seconds)
        if self.client is not None:
            return await self.client.post(url, json=payload, headers=self._headers(), timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, json=payload, headers=self._headers())

    async def dispatch(
        self,
        txn,
        attributes: Optional[DeliveryAttributes] = None,
        destination: Optional[str] = None,
    ) -> DispatchResult:
        """
        Send one notification for `txn`.

        attributes default to the ones stored on the transaction; destination
        defaults to the transaction's notification_url, then the configured one.
        Never raises for delivery problems: inspect the returned result.
        """
        attributes = attributes or DeliveryAttributes.from_transaction(txn)
        url = destination or txn.notification_url or self.config.destination_url
        result = DispatchResult(success=False, destination=url, attributes=attributes.as_strings())

        if not url:
            result.error_kind = NETWORK
            result.detail = "no destination configured"
            logger.warning(f"No destination for {txn.transaction_id}; notification not sent")
            return result

        payload = build_notification_payload(txn, attributes)
        logger.info(
            f"Dispatching notification for {txn.transaction_id} "
            f"(status={txn.status}, is_force={result.attributes['is_force']}) to {url}"
        )

        try:
            response = await asyncio.wait_for(
                self._post(url, payload), timeout=self.config.timeout_seconds
            )
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError, OSError) as e:
            result.error_kind = classify_transport_error(e)
            result.detail = str(e) or type(e).__name__
            logger.warning(
                f"Notification for {txn.transaction_id} failed ({result.error_kind}): {result.detail}"
            )
            return result

        result.status_code = response.status_code
        if not response.is_success:
            result.error_kind = f"httpStatus:{response.status_code}"
            result.detail = response.text[:500] or response.reason_phrase
            logger.warning(
                f"Notification for {txn.transaction_id} rejected by destination: "
                f"{response.status_code}"
            )
            return result

        result.success = True
        result.message_id = _message_id(response)
        if self.store is not None:
            self.store.mark_notified(txn.transaction_id)
        logger.info(f"Notification for {txn.transaction_id} delivered (message_id={result.message_id})")
        return result
