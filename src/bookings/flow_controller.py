from typing import List, Optional, Tuple
from decimal import Decimal
import asyncio
import secrets
import time

from loguru import logger

from src.config import settings
from src.bookings.schemas import (
    BookingFlowState, BookingPassenger, BookingRequest, BookingResult, BookingStep,
    FlowSnapshot, FlowStep, Outlet, PassengerInfo, PaymentDetails, PaymentMethod,
    Stop, TripSummary, STEP_NAMES
)
from src.bookings.validation import BookingValidator
from src.clients.booking_api import BookingApiClient
from src.exceptions import (
    BookingApiError, FlowStateError, PaymentShortfall, SubmissionError,
    BookingValidationError, ValidationIssue
)
from src.fares.fare_service import FareCalculationService
from src.fares.schemas import FareQuote
from src.holds.hold_registry import HoldRegistry
from src.notifications import Notifier

FareKey = Tuple[Optional[str], Optional[int], Optional[int], int]

def generate_idempotency_key() -> str:
    """Unique per submission attempt"""
    return f"booking-{int(time.time() * 1000)}-{secrets.token_hex(8)}"

class BookingFlowController:
    """Step state machine for one counter transaction.

    Owns the BookingFlowState; every step reads and writes it through the
    operations below. Fare totals are refreshed in the background whenever the
    trip, the route or the number of seats changes.
    """

    def __init__(
        self,
        api: BookingApiClient,
        holds: HoldRegistry,
        fare_service: FareCalculationService,
        notifier: Notifier,
        validator: BookingValidator = None
    ):
        self.api = api
        self.holds = holds
        self.fare_service = fare_service
        self.notifier = notifier
        self.validator = validator or BookingValidator()
        self.state = BookingFlowState()
        self.result: Optional[BookingResult] = None
        self._fare = self._zero_quote()
        self._fare_key: Optional[FareKey] = None
        self._fare_task: Optional[asyncio.Task] = None
        self._submitting = False

    # Step navigation
    @property
    def current_step(self) -> FlowStep:
        return self.state.current_step

    @property
    def steps(self) -> List[BookingStep]:
        current = self.state.current_step
        return [
            BookingStep(
                id=step.value,
                name=STEP_NAMES[step],
                status="completed" if step < current else "active" if step == current else "pending"
            )
            for step in FlowStep
        ]

    def can_proceed(self, step: Optional[int] = None) -> bool:
        step = FlowStep(step if step is not None else self.state.current_step)
        state = self.state

        if step == FlowStep.OUTLET:
            return state.outlet is not None
        elif step == FlowStep.TRIP:
            return state.trip is not None
        elif step == FlowStep.ROUTE:
            return state.origin_stop is not None and state.destination_stop is not None
        elif step == FlowStep.SEATS:
            return len(state.selected_seats) > 0
        elif step == FlowStep.PASSENGERS:
            return (
                len(state.passengers) == len(state.selected_seats)
                and all(p.full_name and p.full_name.strip() for p in state.passengers)
            )
        elif step == FlowStep.PAYMENT:
            return state.payment is not None
        return False

    def next_step(self) -> FlowStep:
        self._ensure_editable()
        current = self.state.current_step
        if current >= FlowStep.PAYMENT:
            raise FlowStateError("Submit the booking to reach confirmation")
        if not self.can_proceed(current):
            raise FlowStateError(f"{STEP_NAMES[current]} step is not complete")
        self.state.current_step = FlowStep(current + 1)
        return self.state.current_step

    def prev_step(self) -> FlowStep:
        self._ensure_editable()
        self.state.current_step = FlowStep(max(self.state.current_step - 1, FlowStep.OUTLET))
        return self.state.current_step

    def set_current_step(self, step: int) -> FlowStep:
        """Jump back to an earlier step; jumping ahead is refused"""
        self._ensure_editable()
        if step < FlowStep.OUTLET or step > self.state.current_step:
            raise FlowStateError(
                f"Cannot jump to step {step} from step {int(self.state.current_step)}"
            )
        self.state.current_step = FlowStep(step)
        return self.state.current_step

    def _ensure_editable(self):
        if self.state.current_step == FlowStep.CONFIRMATION:
            raise FlowStateError("Booking is already confirmed; start a new transaction")

    def _advance_from(self, step: FlowStep):
        if self.state.current_step == step and self.can_proceed(step):
            self.state.current_step = FlowStep(step + 1)

    # Step commits
    async def select_outlet(self, outlet: Outlet) -> List[str]:
        """Select the outlet; every downstream choice and every hold is dropped"""
        self._ensure_editable()
        self.state.outlet = outlet
        self.state.trip = None
        self.state.origin_stop = None
        self.state.destination_stop = None
        self.state.origin_sequence = None
        self.state.destination_sequence = None
        self.state.selected_seats = []
        self.state.passengers = []
        self.state.payment = None
        self.state.current_step = FlowStep.OUTLET
        self._on_selection_changed()

        failed = await self.holds.release_all()
        self._advance_from(FlowStep.OUTLET)
        return failed

    def select_trip(self, trip: TripSummary):
        self._ensure_editable()
        self.state.trip = trip
        self._on_selection_changed()
        self._advance_from(FlowStep.TRIP)

    def select_origin(self, stop: Stop, sequence: int):
        self._ensure_editable()
        self.state.origin_stop = stop
        self.state.origin_sequence = sequence
        if self.state.destination_sequence is not None and self.state.destination_sequence <= sequence:
            self.state.destination_stop = None
            self.state.destination_sequence = None
        self._on_selection_changed()
        self._advance_from(FlowStep.ROUTE)

    def select_destination(self, stop: Stop, sequence: int):
        self._ensure_editable()
        origin_sequence = self.state.origin_sequence
        if origin_sequence is not None and sequence <= origin_sequence:
            raise BookingValidationError([ValidationIssue(
                code="INVALID_ROUTE_ORDER",
                message="Destination must come after the origin stop",
                field="destination_sequence"
            )])
        self.state.destination_stop = stop
        self.state.destination_sequence = sequence
        self._on_selection_changed()
        self._advance_from(FlowStep.ROUTE)

    def add_seat(self, seat_number: str) -> bool:
        self._ensure_editable()
        if not seat_number or not seat_number.strip():
            raise BookingValidationError([ValidationIssue(
                code="BLANK_SEAT",
                message="Seat number cannot be blank",
                field="selected_seats"
            )])
        if seat_number in self.state.selected_seats:
            return False
        self.state.selected_seats = self.state.selected_seats + [seat_number]
        self._on_selection_changed()
        return True

    def remove_seat(self, seat_number: str) -> bool:
        """Drop a seat from the selection; passengers are left for the agent to fix"""
        self._ensure_editable()
        if seat_number not in self.state.selected_seats:
            return False
        self.state.selected_seats = [s for s in self.state.selected_seats if s != seat_number]
        self._on_selection_changed()
        return True

    def clear_seats(self):
        self._ensure_editable()
        self.state.selected_seats = []
        self._on_selection_changed()

    def update_passengers(self, passengers: List[PassengerInfo]):
        self._ensure_editable()
        self.state.passengers = list(passengers)

    def set_payment(self, method: PaymentMethod, amount: Decimal):
        self._ensure_editable()
        self.state.payment = PaymentDetails(method=method, amount=amount)

    # Fare
    @property
    def fare(self) -> FareQuote:
        return self._fare

    @property
    def total_amount(self) -> Decimal:
        """Last known total; kept while a new quote is pending"""
        return self._fare.total_for_all_passengers

    def _current_fare_key(self) -> FareKey:
        state = self.state
        return (
            state.trip.id if state.trip else None,
            state.origin_sequence,
            state.destination_sequence,
            len(state.selected_seats)
        )

    def _zero_quote(self) -> FareQuote:
        return FareQuote(total_for_all_passengers=Decimal('0'), currency=self.fare_service.currency)

    def _on_selection_changed(self):
        key = self._current_fare_key()
        if key == self._fare_key:
            return

        if key[3] == 0:
            self._cancel_fare_task()
            self._fare_key = key
            self._fare = self._zero_quote()
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No loop to quote on; the next refresh_fare() picks it up
            return

        self._cancel_fare_task()
        self._fare_key = key
        self._fare_task = asyncio.create_task(self._quote(key))

    async def _quote(self, key: FareKey) -> FareQuote:
        quote = await self.fare_service.calculate_total(*key)
        if key == self._current_fare_key():
            self._fare = quote
        return quote

    def _cancel_fare_task(self):
        if self._fare_task and not self._fare_task.done():
            self._fare_task.cancel()
        self._fare_task = None

    async def refresh_fare(self) -> FareQuote:
        """Quote the current selection now and remember the result"""
        key = self._current_fare_key()
        self._cancel_fare_task()
        self._fare_key = key
        self._fare = await self.fare_service.calculate_total(*key)
        return self._fare

    async def wait_for_fare(self) -> FareQuote:
        task = self._fare_task
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass
        return self._fare

    # Submission
    async def create_booking(self) -> BookingResult:
        """Validate, price and submit the booking exactly once for this action"""
        if self.state.current_step == FlowStep.CONFIRMATION:
            raise FlowStateError("Booking already created; start a new transaction")
        if self._submitting:
            raise FlowStateError("Booking submission already in progress")

        issues = self.validator.validate_for_submission(self.state)
        if issues:
            error = BookingValidationError(issues)
            self.notifier.error("Booking Incomplete", error.message)
            raise error

        self._submitting = True
        try:
            quote = await self.refresh_fare()
            total = quote.total_for_all_passengers
            if self.state.payment.amount < total:
                error = PaymentShortfall(total, self.state.payment.amount)
                self.notifier.error("Insufficient Payment", error.message)
                raise error

            request = self._build_request()
            logger.info(
                f"Submitting booking for trip {request.trip_id} seats "
                f"{[p.seat_number for p in request.passengers]} key={request.idempotency_key}"
            )
            try:
                result = await self.api.create_booking(request, request.idempotency_key)
            except BookingApiError as e:
                self.notifier.error("Booking Failed", e.message)
                raise SubmissionError(e.message) from e
        finally:
            self._submitting = False

        self.result = result
        self.state.current_step = FlowStep.CONFIRMATION
        booking_id = str(result.booking.get("id", ""))
        self.notifier.notify("Booking Created", f"Booking {booking_id[-8:]} created successfully")
        return result

    def _build_request(self) -> BookingRequest:
        state = self.state
        return BookingRequest(
            trip_id=state.trip.id,
            outlet_id=state.outlet.id if state.outlet else None,
            origin_stop_id=state.origin_stop.id,
            destination_stop_id=state.destination_stop.id,
            origin_sequence=state.origin_sequence,
            destination_sequence=state.destination_sequence,
            channel=settings.BOOKING_CHANNEL,
            created_by=settings.CREATED_BY,
            passengers=[
                BookingPassenger(
                    full_name=passenger.full_name.strip(),
                    phone=passenger.phone or None,
                    id_number=passenger.id_number or None,
                    seat_number=seat_number
                )
                for passenger, seat_number in zip(state.passengers, state.selected_seats)
            ],
            payment=state.payment,
            idempotency_key=generate_idempotency_key()
        )

    @property
    def submitting(self) -> bool:
        return self._submitting

    def reset_flow(self):
        """Back to an empty flow; holds are left to the caller"""
        self._cancel_fare_task()
        self.state = BookingFlowState()
        self.result = None
        self._fare_key = None
        self._fare = self._zero_quote()
        self._submitting = False

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            state=self.state,
            steps=self.steps,
            total_amount=self.total_amount,
            fare_is_fallback=self._fare.is_fallback,
            can_proceed=self.can_proceed() if self.state.current_step != FlowStep.CONFIRMATION else False,
            submitting=self._submitting,
            result=self.result
        )
