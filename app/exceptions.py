"""
Simulator error hierarchy.

Each error carries the HTTP status it maps to, so the exception handlers in
app.main can render the `{success: false, error, details?}` envelope without
knowing about individual error types.
"""
from typing import Any, Dict, Optional


class SimulatorError(Exception):
    """Base exception for all errors raised by the simulator core."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SimulatorError):
    """Malformed or incomplete request. Raised before any mutation."""

    status_code = 400


class NotFoundError(SimulatorError):
    """Unknown transaction identifier."""

    status_code = 404


class InvalidTransition(SimulatorError):
    """
    Status change not allowed from the current state.

    Example:
    - refund requested for a transaction that is not approved
    """

    status_code = 400


class DuplicateKeyError(SimulatorError):
    """Transaction identifier collision on create."""

    status_code = 409


class DeliveryError(SimulatorError):
    """
    Notification delivery failed.

    kind is one of: timeout, connection, connectionReset, network,
    httpStatus:<code>.
    """

    status_code = 502

    def __init__(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.kind = kind
        details = dict(details or {})
        details.setdefault("kind", kind)
        super().__init__(message, details)
