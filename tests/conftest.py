from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
import itertools

import pytest

from src.bookings.flow_controller import BookingFlowController
from src.bookings.schemas import Outlet, Stop, TripSummary
from src.clients.booking_api import BookingApiClient
from src.fares.fare_service import FareCalculationService
from src.fares.schemas import FareQuote
from src.holds.hold_registry import HoldRegistry
from src.holds.schemas import HoldResponse
from src.notifications import Notifier
from src.seats.schemas import Seatmap, SeatAvailability

FLAT_FARE = Decimal("25000")
TRIP_ID = "trip-0001"


class FakeClock:
    """Controllable replacement for datetime.now"""

    def __init__(self, now: datetime = datetime(2026, 3, 1, 8, 0, 0)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


def make_seatmap(available=("A1", "A2", "A3", "B3"), held=(), booked=(), trip_id=TRIP_ID, hold_refs=None):
    hold_refs = hold_refs or {}
    seats = {}
    for seat in available:
        seats[seat] = SeatAvailability(available=True, held=False)
    for seat in held:
        seats[seat] = SeatAvailability(available=False, held=True, hold_ref=hold_refs.get(seat))
    for seat in booked:
        seats[seat] = SeatAvailability(available=False, held=False)
    return Seatmap(
        trip_id=trip_id,
        origin_sequence=1,
        destination_sequence=3,
        seat_availability=seats,
        leg_indexes=[1, 2]
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def api():
    api = MagicMock(spec=BookingApiClient)
    counter = itertools.count(1)
    api.create_hold = AsyncMock(
        side_effect=lambda request: HoldResponse(holder_reference=f"hold-{next(counter)}")
    )
    api.release_hold = AsyncMock(return_value=None)
    api.get_seatmap = AsyncMock(return_value=make_seatmap())
    api.quote_fare = AsyncMock(
        side_effect=lambda trip_id, origin, destination, seat_count: FareQuote(
            total_for_all_passengers=Decimal("30000") * seat_count,
            per_passenger=Decimal("30000"),
            seat_count=seat_count
        )
    )
    api.create_booking = AsyncMock()
    api.close = AsyncMock()
    return api


@pytest.fixture
def holds(api, notifier, clock):
    return HoldRegistry(api, notifier, clock=clock, tick_seconds=0.01, default_ttl_seconds=120)


@pytest.fixture
def fare_service(api):
    return FareCalculationService(api, flat_fare_per_seat=FLAT_FARE, currency="IDR")


@pytest.fixture
def controller(api, holds, fare_service, notifier):
    return BookingFlowController(api, holds, fare_service, notifier)


@pytest.fixture
def outlet():
    return Outlet(id="outlet-jkt", name="Jakarta Pool", code="JKT")


@pytest.fixture
def trip():
    return TripSummary(id=TRIP_ID, status="scheduled", capacity=12, base_id="base-07")


@pytest.fixture
def origin():
    return Stop(id="stop-jkt", name="Jakarta", code="JKT")


@pytest.fixture
def destination():
    return Stop(id="stop-bdg", name="Bandung", code="BDG")
