"""
Outcome engine: decides how a simulated payment resolves.

Rules, applied to the amount's shortest decimal string
(1999.00 -> "1999", 12.50 -> "12.5"):

  ends in "00" -> approved
  ends in "99" -> rejected (insufficient funds)
  ends in "50" -> pending
  otherwise    -> random: 80% approved, 15% rejected, 5% pending

The random branch is intentionally non-reproducible. Callers needing
determinism pass their own random.Random as `rng`.
"""
import random
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from app.exceptions import ValidationError

APPROVE_THRESHOLD = 0.80
REJECT_THRESHOLD = 0.95

APPROVED_CODE = ("00", "authorized")
PENDING_CODE = ("10", "awaiting validation")
REJECTION_REASONS = [
    ("51", "insufficient funds"),
    ("54", "expired card"),
    ("57", "transaction not permitted"),
    ("91", "issuer unavailable"),
]


@dataclass(frozen=True)
class Outcome:
    status: str
    response_code: str
    detail: str


def validate_amount(amount: Any) -> Decimal:
    """Coerce to Decimal; reject non-numeric, non-finite, non-positive and sub-cent amounts."""
    if isinstance(amount, bool):
        raise ValidationError("amount must be a number")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("amount must be a number")
    if not value.is_finite():
        raise ValidationError("amount must be a number")
    if value <= 0:
        raise ValidationError("amount must be greater than 0")
    if value.normalize().as_tuple().exponent < -2:
        raise ValidationError("amount must have at most 2 decimal places")
    return value


def amount_text(amount: Any) -> str:
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


def approved() -> Outcome:
    return Outcome("approved", *APPROVED_CODE)


def pending() -> Outcome:
    return Outcome("pending", *PENDING_CODE)


def rejected(rng: Optional[random.Random] = None) -> Outcome:
    chooser = rng or random
    return Outcome("rejected", *chooser.choice(REJECTION_REASONS))


def decide(
    amount: Any,
    instrument: Optional[Dict[str, Any]] = None,
    rng: Optional[random.Random] = None,
) -> Outcome:
    """Map an amount (and instrument, currently unused by the rules) to an outcome."""
    text = amount_text(validate_amount(amount))

    if text.endswith("00"):
        return approved()
    if text.endswith("99"):
        return Outcome("rejected", *REJECTION_REASONS[0])
    if text.endswith("50"):
        return pending()

    r = (rng or random).random()
    if r < APPROVE_THRESHOLD:
        return approved()
    if r < REJECT_THRESHOLD:
        return rejected(rng)
    return pending()
