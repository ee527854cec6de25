from typing import List
from src.bookings.schemas import BookingFlowState
from src.exceptions import ValidationIssue

class BookingValidator:
    """Validates a flow state before it is turned into a booking request"""

    def validate_for_submission(self, state: BookingFlowState) -> List[ValidationIssue]:
        """Collect every violation instead of stopping at the first one"""
        errors = []

        if not state.trip:
            errors.append(ValidationIssue(
                code="TRIP_MISSING",
                message="Trip not selected",
                field="trip"
            ))

        if not state.origin_stop:
            errors.append(ValidationIssue(
                code="ORIGIN_STOP_MISSING",
                message="Origin stop not selected",
                field="origin_stop"
            ))
        if not state.destination_stop:
            errors.append(ValidationIssue(
                code="DESTINATION_STOP_MISSING",
                message="Destination stop not selected",
                field="destination_stop"
            ))

        if state.origin_sequence is None:
            errors.append(ValidationIssue(
                code="ORIGIN_SEQUENCE_MISSING",
                message="Origin sequence missing",
                field="origin_sequence"
            ))
        if state.destination_sequence is None:
            errors.append(ValidationIssue(
                code="DESTINATION_SEQUENCE_MISSING",
                message="Destination sequence missing",
                field="destination_sequence"
            ))
        if (state.origin_sequence is not None and state.destination_sequence is not None
                and state.origin_sequence >= state.destination_sequence):
            errors.append(ValidationIssue(
                code="INVALID_ROUTE_ORDER",
                message="Origin must come before destination",
                field="destination_sequence"
            ))

        errors.extend(self._validate_seats(state.selected_seats))

        if len(state.passengers) != len(state.selected_seats):
            errors.append(ValidationIssue(
                code="PASSENGER_COUNT_MISMATCH",
                message=(
                    f"Passenger count mismatch: {len(state.passengers)} passengers "
                    f"for {len(state.selected_seats)} seats"
                ),
                field="passengers"
            ))

        for index, passenger in enumerate(state.passengers):
            if not passenger.full_name or not passenger.full_name.strip():
                errors.append(ValidationIssue(
                    code="PASSENGER_NAME_MISSING",
                    message=f"Passenger {index + 1} has no name",
                    field=f"passengers[{index}].full_name"
                ))

        if not state.payment:
            errors.append(ValidationIssue(
                code="PAYMENT_MISSING",
                message="Payment not provided",
                field="payment"
            ))

        return errors

    def _validate_seats(self, seats: List[str]) -> List[ValidationIssue]:
        errors = []

        if not seats:
            errors.append(ValidationIssue(
                code="NO_SEATS",
                message="No seats selected",
                field="selected_seats"
            ))
            return errors

        if any(not seat or not seat.strip() for seat in seats):
            errors.append(ValidationIssue(
                code="BLANK_SEAT",
                message="Seat list contains a blank entry",
                field="selected_seats"
            ))

        duplicates = sorted({seat for seat in seats if seats.count(seat) > 1})
        if duplicates:
            errors.append(ValidationIssue(
                code="DUPLICATE_SEAT",
                message=f"Duplicate seats selected: {', '.join(duplicates)}",
                field="selected_seats"
            ))

        return errors
