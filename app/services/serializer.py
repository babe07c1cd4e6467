"""
Wire formats for transactions.

to_wire_format() is the API representation of a stored transaction;
build_notification_payload() is the body POSTed to a destination. Both are
pure functions over the ORM row, so the storage model never renders itself.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.exceptions import ValidationError

OPTIONAL_TOKEN_FIELDS = {
    "token": "token",
    "token_id": "tokenId",
    "pan_token": "panToken",
    "commerce_token": "commerceToken",
}


def parse_flag(value: Any, field: str) -> bool:
    """Accept the "true"/"false" strings used on the wire (and plain bools)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationError(f"{field} must be \"true\" or \"false\"")


def flag_text(value: bool) -> str:
    return "true" if value else "false"


@dataclass(frozen=True)
class DeliveryAttributes:
    allow_commerce_pan_token: bool = True
    from_batch: bool = False
    is_force: bool = False

    @classmethod
    def from_transaction(cls, txn) -> "DeliveryAttributes":
        return cls(
            allow_commerce_pan_token=bool(txn.allow_commerce_pan_token),
            from_batch=bool(txn.from_batch),
            is_force=bool(txn.is_force),
        )

    @classmethod
    def from_wire(cls, raw: Optional[Dict[str, Any]], base: "DeliveryAttributes" = None) -> "DeliveryAttributes":
        """Overlay "true"/"false" strings from a request onto `base`."""
        base = base or cls()
        if not raw:
            return base
        values = base.as_dict()
        for field in values:
            if raw.get(field) is not None:
                values[field] = parse_flag(raw[field], field)
        return cls(**values)

    def replace(self, **changes) -> "DeliveryAttributes":
        values = self.as_dict()
        values.update({k: v for k, v in changes.items() if v is not None})
        return DeliveryAttributes(**values)

    def as_dict(self) -> Dict[str, bool]:
        return {
            "allow_commerce_pan_token": self.allow_commerce_pan_token,
            "from_batch": self.from_batch,
            "is_force": self.is_force,
        }

    def as_strings(self) -> Dict[str, str]:
        return {k: flag_text(v) for k, v in self.as_dict().items()}

    def as_message_attributes(self) -> Dict[str, Dict[str, str]]:
        return {
            k: {"DataType": "String", "StringValue": v}
            for k, v in self.as_strings().items()
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def masked_digits(last_four: Optional[str]) -> Optional[str]:
    if not last_four:
        return None
    return f"**** **** **** {last_four}"


def instrument_summary(method: Dict[str, Any]) -> Dict[str, Any]:
    """Normalized instrument for notifications; absent tokens are left out."""
    summary = {
        "type": method.get("type"),
        "brand": method.get("brand"),
        "maskedDigits": masked_digits(method.get("last_four_digits")),
    }
    for field, wire_name in OPTIONAL_TOKEN_FIELDS.items():
        if method.get(field):
            summary[wire_name] = method[field]
    return summary


def payment_method_wire(method: Dict[str, Any]) -> Dict[str, Any]:
    body = {
        "type": method.get("type"),
        "brand": method.get("brand"),
        "lastFourDigits": method.get("last_four_digits"),
    }
    for field, wire_name in OPTIONAL_TOKEN_FIELDS.items():
        if method.get(field):
            body[wire_name] = method[field]
    return body


def to_wire_format(txn) -> Dict[str, Any]:
    methods: List[Dict[str, Any]] = txn.payment_methods or []
    return {
        "transactionId": txn.transaction_id,
        "merchant": {
            "id": txn.merchant_id,
            "name": txn.merchant_name,
            "email": txn.merchant_email,
        },
        "payer": {
            "name": txn.payer_name,
            "email": txn.payer_email,
            "documentType": txn.payer_document_type,
            "documentNumber": txn.payer_document_number,
        },
        "amount": float(txn.amount),
        "currency": txn.currency,
        "paymentMethods": [payment_method_wire(m) for m in methods],
        "status": txn.status,
        "responseCode": txn.response_code,
        "responseMessage": txn.response_message,
        "externalReference": txn.external_reference,
        "description": txn.description,
        "metadata": txn.extra_metadata or {},
        "notificationUrl": txn.notification_url,
        "notificationSent": bool(txn.notification_sent),
        "notificationSentAt": _iso(txn.notification_sent_at),
        "sqsAttributes": DeliveryAttributes.from_transaction(txn).as_strings(),
        "processedAt": _iso(txn.processed_at),
        "paidAt": _iso(txn.paid_at),
        "accreditedAt": _iso(txn.accredited_at),
        "createdAt": _iso(txn.created_at),
        "updatedAt": _iso(txn.updated_at),
    }


def build_notification_payload(txn, attributes: DeliveryAttributes) -> Dict[str, Any]:
    methods = txn.payment_methods or [{}]
    return {
        "destinationRef": txn.merchant_id,
        "transactionIdentifier": txn.transaction_id,
        "status": txn.status,
        "statusDetail": txn.response_message,
        "amount": float(txn.amount),
        "currency": txn.currency,
        "paymentMethod": instrument_summary(methods[0]),
        "attributes": attributes.as_message_attributes(),
    }
