"""Error codes and exceptions raised across the booking and gate flow.

Every error carries a stable machine-checkable code, a human-readable
message and the HTTP status the API answers with.
"""

from enum import Enum


class ErrorCode(Enum):
    INVALID_QUANTITY = "INVALID_QUANTITY"
    UNKNOWN_TIER = "UNKNOWN_TIER"
    MALFORMED_CREDENTIAL = "MALFORMED_CREDENTIAL"
    INVALID_ACTION = "INVALID_ACTION"
    INVALID_REQUEST = "INVALID_REQUEST"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN = "FORBIDDEN"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    NOT_CHECKED_IN = "NOT_CHECKED_IN"
    GATEWAY_UNAVAILABLE = "GATEWAY_UNAVAILABLE"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"
    QR_UNAVAILABLE = "QR_UNAVAILABLE"


class GatepassError(Exception):
    """Base error with code and user-safe message."""

    code: ErrorCode = ErrorCode.INVALID_REQUEST
    status_code: int = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


# --- input validation


class InvalidQuantity(GatepassError):
    code = ErrorCode.INVALID_QUANTITY

    def __init__(self, quantity, max_quantity: int) -> None:
        super().__init__(
            f"Quantity must be between 1 and {max_quantity}, got {quantity!r}"
        )
        self.quantity = quantity


class UnknownTier(GatepassError):
    code = ErrorCode.UNKNOWN_TIER

    def __init__(self, tier) -> None:
        super().__init__(f"Unknown ticket tier {tier!r}")
        self.tier = tier


class MalformedCredential(GatepassError):
    code = ErrorCode.MALFORMED_CREDENTIAL

    def __init__(self, reason: str = "Invalid QR code format") -> None:
        super().__init__(reason)


class InvalidAction(GatepassError):
    code = ErrorCode.INVALID_ACTION

    def __init__(self, action) -> None:
        super().__init__(
            f"Invalid action {action!r}. Use 'check_in' or 'check_out'"
        )


class InvalidRequest(GatepassError):
    code = ErrorCode.INVALID_REQUEST


# --- payment


class PaymentRejected(GatepassError):
    code = ErrorCode.PAYMENT_REJECTED

    def __init__(self, message: str = "Payment verification failed") -> None:
        super().__init__(message)


# --- authorization


class Unauthenticated(GatepassError):
    code = ErrorCode.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class Forbidden(GatepassError):
    code = ErrorCode.FORBIDDEN
    status_code = 403

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


# --- state conflicts


class TicketNotFound(GatepassError):
    code = ErrorCode.TICKET_NOT_FOUND
    status_code = 404

    def __init__(self, ticket_id: str) -> None:
        super().__init__("Ticket not found")
        self.ticket_id = ticket_id


class NotFound(GatepassError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class SessionNotFound(GatepassError):
    code = ErrorCode.SESSION_NOT_FOUND
    status_code = 404

    def __init__(self, gateway_order_id: str) -> None:
        super().__init__("Payment session not found")
        self.gateway_order_id = gateway_order_id


class AlreadyCheckedIn(GatepassError):
    code = ErrorCode.ALREADY_CHECKED_IN
    status_code = 409

    def __init__(self, ticket_id: str) -> None:
        super().__init__("Ticket is already checked in")
        self.ticket_id = ticket_id


class NotCheckedIn(GatepassError):
    code = ErrorCode.NOT_CHECKED_IN
    status_code = 409

    def __init__(self, ticket_id: str) -> None:
        super().__init__("Ticket is not checked in")
        self.ticket_id = ticket_id


# --- external dependencies


class QrUnavailable(GatepassError):
    code = ErrorCode.QR_UNAVAILABLE
    status_code = 500

    def __init__(self, message: str = "QR rendering failed") -> None:
        super().__init__(message)


class GatewayUnavailable(GatepassError):
    code = ErrorCode.GATEWAY_UNAVAILABLE
    status_code = 502


class StorageUnavailable(GatepassError):
    code = ErrorCode.STORAGE_UNAVAILABLE
    status_code = 503
