"""
Booking flow state machine, validation and submission tests
"""

import asyncio
import re
from decimal import Decimal

import httpx
import pydantic
import pytest

from src.bookings.flow_controller import BookingFlowController, generate_idempotency_key
from src.bookings.schemas import (
    BookingResult, FlowStep, PassengerInfo, PaymentDetails, PaymentMethod, Stop, TripSummary
)
from src.clients.booking_api import BookingApiClient
from src.fares.schemas import FareQuote
from src.exceptions import (
    BookingApiError, FlowStateError, PaymentShortfall, SubmissionError, BookingValidationError
)

from tests.conftest import TRIP_ID


async def fill_flow(controller, outlet, trip, origin, destination, seats=("A1", "A2"), amount="60000"):
    await controller.select_outlet(outlet)
    controller.select_trip(trip)
    controller.select_origin(origin, 1)
    controller.select_destination(destination, 3)
    for seat in seats:
        controller.add_seat(seat)
    controller.next_step()
    controller.update_passengers([PassengerInfo(full_name=f"Passenger {seat}") for seat in seats])
    controller.next_step()
    if amount is not None:
        controller.set_payment(PaymentMethod.CASH, Decimal(amount))


def booking_result(booking_id="bkg-000000001234"):
    return BookingResult(booking={"id": booking_id, "status": "confirmed"}, print_payload={"code": "JKT-1"})


class TestStepNavigation:
    async def test_initial_steps(self, controller):
        steps = controller.steps

        assert [s.name for s in steps] == [
            "Outlet", "Trip", "Route", "Seats", "Passengers", "Payment", "Confirmation"
        ]
        assert steps[0].status == "active"
        assert all(s.status == "pending" for s in steps[1:])
        assert controller.can_proceed() is False

    async def test_commits_advance_through_selection_steps(self, controller, outlet, trip, origin, destination):
        await controller.select_outlet(outlet)
        assert controller.current_step == FlowStep.TRIP

        controller.select_trip(trip)
        assert controller.current_step == FlowStep.ROUTE

        controller.select_origin(origin, 1)
        assert controller.current_step == FlowStep.ROUTE

        controller.select_destination(destination, 3)
        assert controller.current_step == FlowStep.SEATS
        assert [s.status for s in controller.steps[:3]] == ["completed"] * 3

    async def test_next_step_refused_until_step_complete(self, controller, outlet, trip, origin, destination):
        await controller.select_outlet(outlet)
        controller.select_trip(trip)
        controller.select_origin(origin, 1)
        controller.select_destination(destination, 3)

        with pytest.raises(FlowStateError):
            controller.next_step()

        controller.add_seat("A1")
        assert controller.next_step() == FlowStep.PASSENGERS

    async def test_passenger_gate_follows_seat_removal(self, controller, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination, amount=None)
        controller.set_current_step(FlowStep.PASSENGERS)
        assert controller.can_proceed(FlowStep.PASSENGERS)

        controller.remove_seat("A2")

        assert controller.state.selected_seats == ["A1"]
        assert len(controller.state.passengers) == 2
        assert controller.can_proceed(FlowStep.PASSENGERS) is False

    async def test_blank_passenger_name_blocks(self, controller, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination, seats=("A1",), amount=None)
        controller.update_passengers([PassengerInfo(full_name="   ")])

        assert controller.can_proceed(FlowStep.PASSENGERS) is False

    async def test_jump_forward_refused_and_back_allowed(self, controller, outlet, trip):
        await controller.select_outlet(outlet)
        controller.select_trip(trip)

        with pytest.raises(FlowStateError):
            controller.set_current_step(FlowStep.PAYMENT)

        assert controller.set_current_step(FlowStep.OUTLET) == FlowStep.OUTLET
        assert controller.prev_step() == FlowStep.OUTLET

    async def test_next_step_never_reaches_confirmation(self, controller, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination)
        assert controller.current_step == FlowStep.PAYMENT
        assert controller.can_proceed()

        with pytest.raises(FlowStateError):
            controller.next_step()


class TestSelections:
    async def test_outlet_change_clears_downstream_and_releases_holds(
        self, controller, holds, api, outlet, trip, origin, destination
    ):
        await fill_flow(controller, outlet, trip, origin, destination)
        await holds.create(TRIP_ID, "A1", 1, 3)
        await holds.create(TRIP_ID, "A2", 1, 3)

        failed = await controller.select_outlet(outlet)

        assert failed == []
        assert len(holds) == 0
        assert api.release_hold.await_count == 2
        state = controller.state
        assert state.trip is None
        assert state.origin_stop is None and state.destination_stop is None
        assert state.selected_seats == []
        assert state.passengers == []
        assert state.payment is None
        assert controller.current_step == FlowStep.TRIP

    async def test_trip_change_keeps_seats(self, controller, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination, amount=None)
        controller.select_trip(TripSummary(id="trip-0002", status="scheduled"))

        assert controller.state.selected_seats == ["A1", "A2"]

    async def test_origin_after_destination_clears_destination(self, controller, outlet, trip, origin, destination):
        await controller.select_outlet(outlet)
        controller.select_trip(trip)
        controller.select_origin(origin, 1)
        controller.select_destination(destination, 3)

        controller.select_origin(Stop(id="stop-cjr", name="Cianjur"), 4)

        assert controller.state.destination_stop is None
        assert controller.state.destination_sequence is None

    async def test_destination_before_origin_rejected(self, controller, outlet, trip, origin, destination):
        await controller.select_outlet(outlet)
        controller.select_trip(trip)
        controller.select_origin(origin, 3)

        with pytest.raises(BookingValidationError) as exc_info:
            controller.select_destination(destination, 3)

        assert exc_info.value.issues[0].code == "INVALID_ROUTE_ORDER"
        assert controller.state.destination_stop is None

    async def test_duplicate_seat_is_ignored(self, controller):
        assert controller.add_seat("A1") is True
        assert controller.add_seat("A1") is False
        assert controller.state.selected_seats == ["A1"]

    async def test_blank_seat_rejected(self, controller):
        with pytest.raises(BookingValidationError):
            controller.add_seat("  ")


class TestFare:
    async def test_fare_follows_seat_count(self, controller, api, outlet, trip, origin, destination):
        await controller.select_outlet(outlet)
        controller.select_trip(trip)
        controller.select_origin(origin, 1)
        controller.select_destination(destination, 3)
        controller.add_seat("A1")
        controller.add_seat("A2")

        quote = await controller.wait_for_fare()

        assert quote.total_for_all_passengers == Decimal("60000")
        assert controller.total_amount == Decimal("60000")
        api.quote_fare.assert_awaited_with(TRIP_ID, 1, 3, 2)

    async def test_no_seats_means_zero_without_upstream_call(self, controller, api, outlet, trip, origin, destination):
        await controller.select_outlet(outlet)
        controller.select_trip(trip)
        controller.select_origin(origin, 1)
        controller.select_destination(destination, 3)

        quote = await controller.refresh_fare()

        assert quote.total_for_all_passengers == Decimal("0")
        api.quote_fare.assert_not_awaited()


class TestSubmission:
    async def test_incomplete_booking_reports_every_issue(self, controller, api, outlet, trip, origin, destination):
        await controller.select_outlet(outlet)
        controller.select_trip(trip)
        controller.select_origin(origin, 1)
        controller.select_destination(destination, 3)
        controller.add_seat("A1")
        controller.add_seat("A2")
        controller.update_passengers([PassengerInfo(full_name="Siti Rahma")])

        with pytest.raises(BookingValidationError) as exc_info:
            await controller.create_booking()

        codes = [issue.code for issue in exc_info.value.issues]
        assert "PASSENGER_COUNT_MISMATCH" in codes
        assert "PAYMENT_MISSING" in codes
        assert "Passenger count mismatch" in exc_info.value.message
        assert "Payment not provided" in exc_info.value.message
        api.create_booking.assert_not_awaited()

    async def test_route_order_checked_before_submission(self, controller, api, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination)
        controller.state.origin_sequence = 3
        controller.state.destination_sequence = 3

        with pytest.raises(BookingValidationError) as exc_info:
            await controller.create_booking()

        assert [i.code for i in exc_info.value.issues] == ["INVALID_ROUTE_ORDER"]
        api.create_booking.assert_not_awaited()

    async def test_successful_submission_confirms(self, controller, api, notifier, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination)
        api.create_booking.return_value = booking_result()

        result = await controller.create_booking()

        assert result.booking["id"] == "bkg-000000001234"
        assert controller.current_step == FlowStep.CONFIRMATION
        assert controller.result == result
        assert notifier.find("Booking Created").description == "Booking 00001234 created successfully"

        request, key = api.create_booking.await_args.args
        assert key == request.idempotency_key
        assert request.channel == "CSO"
        assert [(p.full_name, p.seat_number) for p in request.passengers] == [
            ("Passenger A1", "A1"), ("Passenger A2", "A2")
        ]

    async def test_fallback_fare_still_allows_submission(self, controller, api, outlet, trip, origin, destination):
        api.quote_fare.side_effect = BookingApiError("pricing down")
        await fill_flow(controller, outlet, trip, origin, destination, amount="50000")
        api.create_booking.return_value = booking_result()

        await controller.create_booking()

        assert controller.fare.is_fallback
        assert controller.total_amount == Decimal("50000")
        api.create_booking.assert_awaited_once()

    async def test_payment_shortfall_blocks_submission(self, controller, api, notifier, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination, amount="40000")

        with pytest.raises(PaymentShortfall) as exc_info:
            await controller.create_booking()

        assert exc_info.value.total == Decimal("60000")
        assert "60000" in exc_info.value.message
        assert notifier.find("Insufficient Payment") is not None
        api.create_booking.assert_not_awaited()
        assert controller.current_step == FlowStep.PAYMENT

    async def test_failed_submission_keeps_holds_and_step(
        self, controller, api, holds, notifier, outlet, trip, origin, destination
    ):
        await fill_flow(controller, outlet, trip, origin, destination)
        await holds.create(TRIP_ID, "A1", 1, 3)
        await holds.create(TRIP_ID, "A2", 1, 3)
        api.create_booking.side_effect = BookingApiError("Seat A2 no longer held", upstream_status=409)

        with pytest.raises(SubmissionError):
            await controller.create_booking()

        assert controller.current_step == FlowStep.PAYMENT
        assert controller.submitting is False
        assert len(holds) == 2
        api.release_hold.assert_not_awaited()
        assert notifier.find("Booking Failed").variant == "destructive"

    async def test_each_attempt_gets_a_new_key(self, controller, api, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination)
        api.create_booking.side_effect = [BookingApiError("timeout"), booking_result()]

        with pytest.raises(SubmissionError):
            await controller.create_booking()
        await controller.create_booking()

        first_key = api.create_booking.await_args_list[0].args[1]
        second_key = api.create_booking.await_args_list[1].args[1]
        assert first_key != second_key

    async def test_confirmed_booking_cannot_be_resubmitted(self, controller, api, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination)
        api.create_booking.return_value = booking_result()
        await controller.create_booking()

        with pytest.raises(FlowStateError):
            await controller.create_booking()
        with pytest.raises(FlowStateError):
            controller.add_seat("A3")

        assert api.create_booking.await_count == 1

    async def test_reset_flow_keeps_holds(self, controller, holds, api, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination)
        await holds.create(TRIP_ID, "A1", 1, 3)

        controller.reset_flow()

        assert controller.current_step == FlowStep.OUTLET
        assert controller.state.selected_seats == []
        assert controller.total_amount == Decimal("0")
        assert holds.is_held("A1")
        api.release_hold.assert_not_awaited()

    async def test_concurrent_submit_reaches_backend_once(self, controller, api, outlet, trip, origin, destination):
        await fill_flow(controller, outlet, trip, origin, destination)
        backend_done = asyncio.Event()

        async def slow_booking(request, idempotency_key):
            await backend_done.wait()
            return booking_result()

        api.create_booking.side_effect = slow_booking
        first = asyncio.create_task(controller.create_booking())
        while api.create_booking.await_count == 0:
            await asyncio.sleep(0)

        assert controller.submitting is True
        with pytest.raises(FlowStateError):
            await controller.create_booking()

        backend_done.set()
        result = await first

        assert result.booking["id"] == "bkg-000000001234"
        assert api.create_booking.await_count == 1
        assert controller.current_step == FlowStep.CONFIRMATION

    async def test_malformed_booking_response_is_submission_failure(
        self, holds, fare_service, notifier, outlet, trip, origin, destination
    ):
        client = BookingApiClient(
            base_url="http://booking.test",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(201, text="<html><body>Gateway</body></html>")
            )
        )
        controller = BookingFlowController(client, holds, fare_service, notifier)
        await fill_flow(controller, outlet, trip, origin, destination)

        with pytest.raises(SubmissionError):
            await controller.create_booking()

        assert controller.current_step == FlowStep.PAYMENT
        assert controller.submitting is False
        assert notifier.find("Booking Failed").variant == "destructive"
        await client.close()


class TestPendingFare:
    async def test_total_keeps_last_quote_while_new_quote_pending(
        self, controller, api, outlet, trip, origin, destination
    ):
        await controller.select_outlet(outlet)
        controller.select_trip(trip)
        controller.select_origin(origin, 1)
        controller.select_destination(destination, 3)
        controller.add_seat("A1")
        await controller.wait_for_fare()
        assert controller.total_amount == Decimal("30000")

        quote_ready = asyncio.Event()

        async def slow_quote(trip_id, origin_sequence, destination_sequence, seat_count):
            await quote_ready.wait()
            return FareQuote(total_for_all_passengers=Decimal("30000") * seat_count, seat_count=seat_count)

        api.quote_fare.side_effect = slow_quote
        controller.add_seat("A2")
        while api.quote_fare.await_count < 2:
            await asyncio.sleep(0)

        assert controller.total_amount == Decimal("30000")
        assert controller.snapshot().total_amount == Decimal("30000")

        quote_ready.set()
        await controller.wait_for_fare()

        assert controller.total_amount == Decimal("60000")


class TestPaymentMethod:
    def test_unknown_payment_method_rejected_at_the_model(self):
        with pytest.raises(pydantic.ValidationError):
            PaymentDetails(method="cheque", amount=Decimal("30000"))

    def test_negative_amount_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            PaymentDetails(method=PaymentMethod.CASH, amount=Decimal("-1"))


class TestIdempotencyKey:
    def test_key_format(self):
        key = generate_idempotency_key()

        assert re.fullmatch(r"booking-\d{13}-[0-9a-f]{16}", key)

    def test_keys_are_unique(self):
        keys = {generate_idempotency_key() for _ in range(100)}

        assert len(keys) == 100
