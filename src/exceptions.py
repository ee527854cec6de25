"""Error taxonomy for the counter booking service."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class ValidationIssue(BaseModel):
    """Single booking field violation"""
    code: str
    message: str
    field: Optional[str] = None


class BookingError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class HoldConflict(BookingError):
    """Seat is held by another party"""

    def __init__(self, seat_number: str, message: Optional[str] = None):
        self.seat_number = seat_number
        super().__init__(message or f"Seat {seat_number} is already held by another agent", 409)


class HoldAlreadyOwned(BookingError):
    """Upstream reports the seat is already held by this caller"""

    def __init__(self, seat_number: str):
        self.seat_number = seat_number
        super().__init__(f"Seat {seat_number} is already held by you", 409)


class HoldServiceError(BookingError):
    def __init__(self, message: str):
        super().__init__(message, 502)


class BookingApiError(BookingError):
    """Upstream booking backend failed or was unreachable"""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message, 502)


class BookingValidationError(BookingError):
    def __init__(self, issues: List[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(issue.message for issue in issues)
        super().__init__(f"Booking is incomplete: {summary}", 422)


class PaymentShortfall(BookingError):
    def __init__(self, total: Decimal, amount: Decimal):
        self.total = total
        self.amount = amount
        super().__init__(
            f"Payment of {amount} is less than the total fare of {total}", 402
        )


class SubmissionError(BookingError):
    """Booking creation failed after local validation passed"""

    def __init__(self, message: str):
        super().__init__(message, 502)


class FlowStateError(BookingError):
    def __init__(self, message: str):
        super().__init__(message, 409)


class SessionNotFound(BookingError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found", 404)
