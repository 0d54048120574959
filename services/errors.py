"""Domain errors for booking admission and payment settlement."""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_RANGE = "INVALID_RANGE"
    INVALID_RATE = "INVALID_RATE"
    INVALID_QR_CODE = "INVALID_QR_CODE"
    VENUE_NOT_FOUND = "VENUE_NOT_FOUND"
    VENUE_UNAVAILABLE = "VENUE_UNAVAILABLE"
    RESERVATION_NOT_FOUND = "RESERVATION_NOT_FOUND"
    HOLD_NOT_FOUND = "HOLD_NOT_FOUND"
    SLOT_CONFLICT = "SLOT_CONFLICT"
    PAYMENT_INVALID = "PAYMENT_INVALID"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    PAYMENT_NOT_CAPTURED = "PAYMENT_NOT_CAPTURED"
    GATEWAY_UNREACHABLE = "GATEWAY_UNREACHABLE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CANCELLATION_WINDOW_CLOSED = "CANCELLATION_WINDOW_CLOSED"
    NOT_PERMITTED = "NOT_PERMITTED"
    LEDGER_WRITE_FAILED = "LEDGER_WRITE_FAILED"


class BookingError(Exception):
    """Base domain error with code and user-safe message."""

    code = ErrorCode.INVALID_RANGE
    http_status = 400
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "error": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }


class InvalidRequest(BookingError):
    """Raised when a request field is missing or has the wrong type."""

    code = ErrorCode.INVALID_REQUEST


class InvalidRange(BookingError):
    """Raised when a time range is empty, misaligned or outside the bookable window."""

    code = ErrorCode.INVALID_RANGE


class InvalidRate(BookingError):
    """Raised when an hourly rate is not a positive amount."""

    code = ErrorCode.INVALID_RATE


class InvalidQRCode(BookingError):
    code = ErrorCode.INVALID_QR_CODE


class VenueNotFound(BookingError):
    code = ErrorCode.VENUE_NOT_FOUND
    http_status = 404

    def __init__(self, venue_id) -> None:
        super().__init__("Venue not found")
        self.venue_id = venue_id


class VenueUnavailable(BookingError):
    """Raised when a venue exists but is inactive or not yet verified."""

    code = ErrorCode.VENUE_UNAVAILABLE
    http_status = 409


class ReservationNotFound(BookingError):
    code = ErrorCode.RESERVATION_NOT_FOUND
    http_status = 404

    def __init__(self, reservation_id) -> None:
        super().__init__("Reservation not found")
        self.reservation_id = reservation_id


class HoldNotFound(BookingError):
    code = ErrorCode.HOLD_NOT_FOUND
    http_status = 404

    def __init__(self, hold_id) -> None:
        super().__init__("Hold not found")
        self.hold_id = hold_id


class SlotConflict(BookingError):
    """Raised when the requested range overlaps a live reservation or hold.

    ``refund_required`` is set when the conflict was detected by the store
    after the payment had already been verified (the loser of a race).
    """

    code = ErrorCode.SLOT_CONFLICT
    http_status = 409

    def __init__(self, message: str = "Selected slot is no longer available",
                 payment_ref: str | None = None, refund_required: bool = False) -> None:
        super().__init__(message)
        self.payment_ref = payment_ref
        self.refund_required = refund_required

    def to_dict(self) -> dict:
        out = super().to_dict()
        if self.refund_required:
            out["refund_required"] = True
            out["payment_ref"] = self.payment_ref
        return out


class PaymentInvalid(BookingError):
    """Payment integrity failure. Needs a fresh payment, never a plain retry."""

    code = ErrorCode.PAYMENT_INVALID
    http_status = 402


class AmountMismatch(PaymentInvalid):
    code = ErrorCode.AMOUNT_MISMATCH


class PaymentNotCaptured(PaymentInvalid):
    code = ErrorCode.PAYMENT_NOT_CAPTURED


class GatewayUnreachable(BookingError):
    """Transient gateway failure (timeout, connection error, 5xx)."""

    code = ErrorCode.GATEWAY_UNREACHABLE
    http_status = 503
    retryable = True


class InvalidTransition(BookingError):
    code = ErrorCode.INVALID_TRANSITION
    http_status = 409

    def __init__(self, reservation_id, current: str, target: str) -> None:
        super().__init__(f"Cannot move reservation from {current} to {target}")
        self.reservation_id = reservation_id
        self.current = current
        self.target = target


class CancellationWindowClosed(BookingError):
    code = ErrorCode.CANCELLATION_WINDOW_CLOSED
    http_status = 409


class NotPermitted(BookingError):
    code = ErrorCode.NOT_PERMITTED
    http_status = 403


class LedgerWriteFailed(BookingError):
    """The payment was verified but the reservation could not be stored.

    The caller must pursue a refund for ``payment_ref``.
    """

    code = ErrorCode.LEDGER_WRITE_FAILED
    http_status = 500

    def __init__(self, payment_ref: str, message: str = "Reservation could not be recorded") -> None:
        super().__init__(message)
        self.payment_ref = payment_ref

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["refund_required"] = True
        out["payment_ref"] = self.payment_ref
        return out
