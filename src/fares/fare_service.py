from typing import Optional
from decimal import Decimal

from loguru import logger

from src.config import settings
from src.clients.booking_api import BookingApiClient
from src.fares.schemas import FareQuote

class FareCalculationService:
    """Service for pricing the current seat selection"""

    def __init__(
        self,
        api: BookingApiClient,
        flat_fare_per_seat: Decimal = None,
        currency: str = None
    ):
        self.api = api
        self.flat_fare_per_seat = flat_fare_per_seat if flat_fare_per_seat is not None else settings.FLAT_FARE_PER_SEAT
        self.currency = currency or settings.CURRENCY

    async def calculate_total(
        self,
        trip_id: Optional[str],
        origin_sequence: Optional[int],
        destination_sequence: Optional[int],
        seat_count: int
    ) -> FareQuote:
        """Quote the total for all passengers, falling back to the flat per-seat fare"""

        if seat_count <= 0:
            return FareQuote(
                total_for_all_passengers=Decimal('0'),
                currency=self.currency,
                seat_count=0
            )

        if not trip_id or origin_sequence is None or destination_sequence is None:
            logger.warning("Fare quote requested without trip or route, using flat fare")
            return self.fallback_quote(seat_count)

        try:
            quote = await self.api.quote_fare(
                trip_id, origin_sequence, destination_sequence, seat_count
            )
        except Exception as e:
            logger.warning(f"Fare quote failed for trip {trip_id}, using flat fare: {e}")
            return self.fallback_quote(seat_count)

        return quote

    def fallback_quote(self, seat_count: int) -> FareQuote:
        return FareQuote(
            total_for_all_passengers=self.flat_fare_per_seat * seat_count,
            currency=self.currency,
            per_passenger=self.flat_fare_per_seat,
            seat_count=seat_count,
            is_fallback=True
        )
