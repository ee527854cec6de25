"""
HTTP client for the upstream booking backend.

Covers the five operations the counter flow consumes: seat holds, seatmap
reads, fare quotes and booking creation. HTTP outcomes are mapped onto the
service error taxonomy so callers never see raw httpx exceptions.
"""

from typing import Any, Dict, Optional
from datetime import datetime
from decimal import Decimal, InvalidOperation

import httpx
from loguru import logger

from src.config import settings
from src.exceptions import (
    BookingApiError, HoldAlreadyOwned, HoldConflict, HoldServiceError
)
from src.holds.schemas import CreateHoldRequest, HoldResponse
from src.seats.schemas import Seatmap, SeatAvailability
from src.fares.schemas import FareQuote
from src.bookings.schemas import BookingRequest, BookingResult

ALREADY_HELD_BY_YOU = "ALREADY_HELD_BY_YOU"


def _error_message(response: httpx.Response) -> str:
    """Extract the most specific error text the backend returned"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}: {response.reason_phrase}"

    if isinstance(body, dict):
        for key in ("details", "error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {response.status_code}: {response.reason_phrase}"


def _error_code(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("code")
    return None


def _to_datetime(value: Any) -> Optional[datetime]:
    """Backend timestamps are epoch milliseconds or ISO strings"""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    """Decode a success body; raises ValueError unless it is a JSON object"""
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError(f"expected a JSON object, got {type(body).__name__}")
    return body


# Raised while reading a success body that does not have the expected shape
MALFORMED_BODY_ERRORS = (ValueError, KeyError, TypeError, AttributeError, InvalidOperation)


class BookingApiClient:
    """Client for the booking backend REST API"""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.base_url = base_url or settings.BOOKING_API_URL
        self.timeout = httpx.Timeout(timeout or settings.HTTP_TIMEOUT_SECONDS, connect=5.0)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

    async def close(self):
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict = None,
        data: Dict = None,
        headers: Dict = None
    ) -> httpx.Response:
        """Send a request; transport failures surface as httpx.RequestError"""
        try:
            return await self._client.request(
                method=method,
                url=path,
                params=params,
                json=data,
                headers=headers
            )
        except httpx.RequestError as e:
            logger.error(f"Request error calling booking backend {method} {path}: {e}")
            raise

    # Holds
    async def create_hold(self, request: CreateHoldRequest) -> HoldResponse:
        payload = {
            "tripId": request.trip_id,
            "seatNo": request.seat_number,
            "originSeq": request.origin_sequence,
            "destinationSeq": request.destination_sequence,
            "ttlSeconds": request.ttl_seconds,
        }
        try:
            response = await self._request("POST", "/api/holds", data=payload)
        except httpx.RequestError as e:
            raise HoldServiceError(f"Reservation service unreachable: {e}") from e

        if response.status_code == 409:
            message = _error_message(response)
            if _error_code(response) == ALREADY_HELD_BY_YOU or ALREADY_HELD_BY_YOU in message:
                raise HoldAlreadyOwned(request.seat_number)
            raise HoldConflict(request.seat_number, message)

        if response.is_error:
            logger.error(f"Hold request for seat {request.seat_number} failed: {response.status_code}")
            raise HoldServiceError(_error_message(response))

        try:
            body = _json_body(response)
            return HoldResponse(
                holder_reference=body["holdRef"],
                expires_at=_to_datetime(body.get("expiresAt"))
            )
        except MALFORMED_BODY_ERRORS as e:
            logger.error(f"Malformed hold response for seat {request.seat_number}: {e!r}")
            raise HoldServiceError(f"Malformed hold response: {e!r}") from e

    async def release_hold(self, holder_reference: str) -> None:
        try:
            response = await self._request("DELETE", f"/api/holds/{holder_reference}")
        except httpx.RequestError as e:
            raise HoldServiceError(f"Reservation service unreachable: {e}") from e

        # Unknown reference means the hold is already gone
        if response.status_code == 404:
            logger.debug(f"Hold {holder_reference} already released upstream")
            return

        if response.is_error:
            raise HoldServiceError(_error_message(response))

    # Seatmap
    async def get_seatmap(
        self,
        trip_id: str,
        origin_sequence: int,
        destination_sequence: int
    ) -> Seatmap:
        try:
            response = await self._request(
                "GET",
                f"/api/trips/{trip_id}/seatmap",
                params={"originSeq": origin_sequence, "destinationSeq": destination_sequence}
            )
        except httpx.RequestError as e:
            raise BookingApiError(f"Seatmap unavailable: {e}") from e

        if response.is_error:
            raise BookingApiError(_error_message(response), response.status_code)

        try:
            body = _json_body(response)
            availability = {
                seat_number: SeatAvailability(
                    available=bool(entry.get("available")),
                    held=bool(entry.get("held")),
                    hold_ref=entry.get("holdRef")
                )
                for seat_number, entry in body["seatAvailability"].items()
            }
            return Seatmap(
                trip_id=trip_id,
                origin_sequence=origin_sequence,
                destination_sequence=destination_sequence,
                layout=body.get("layout"),
                seat_availability=availability,
                leg_indexes=body.get("legIndexes") or []
            )
        except MALFORMED_BODY_ERRORS as e:
            raise BookingApiError(f"Malformed seatmap: {e!r}") from e

    # Pricing
    async def quote_fare(
        self,
        trip_id: str,
        origin_sequence: int,
        destination_sequence: int,
        seat_count: int
    ) -> FareQuote:
        try:
            response = await self._request(
                "GET",
                "/api/pricing/quote-fare",
                params={
                    "tripId": trip_id,
                    "originSeq": origin_sequence,
                    "destinationSeq": destination_sequence,
                    "passengerCount": seat_count,
                }
            )
        except httpx.RequestError as e:
            raise BookingApiError(f"Fare quote unavailable: {e}") from e

        if response.is_error:
            raise BookingApiError(_error_message(response), response.status_code)

        try:
            body = _json_body(response)
            total = Decimal(str(body["totalForAllPassengers"]))
            per_passenger = body.get("perPassenger")
            per_passenger = Decimal(str(per_passenger)) if per_passenger is not None else None
            return FareQuote(
                total_for_all_passengers=total,
                currency=body.get("currency") or settings.CURRENCY,
                per_passenger=per_passenger,
                seat_count=seat_count,
                breakdown=body.get("breakdown")
            )
        except MALFORMED_BODY_ERRORS as e:
            raise BookingApiError(f"Malformed fare quote: {e!r}") from e

    # Bookings
    async def create_booking(self, request: BookingRequest, idempotency_key: str) -> BookingResult:
        payload = {
            "tripId": request.trip_id,
            "outletId": request.outlet_id,
            "originStopId": request.origin_stop_id,
            "destinationStopId": request.destination_stop_id,
            "originSeq": request.origin_sequence,
            "destinationSeq": request.destination_sequence,
            "channel": request.channel,
            "createdBy": request.created_by,
            "passengers": [
                {
                    "fullName": passenger.full_name,
                    "phone": passenger.phone,
                    "idNumber": passenger.id_number,
                    "seatNo": passenger.seat_number,
                }
                for passenger in request.passengers
            ],
            "payment": {
                "method": request.payment.method.value,
                "amount": float(request.payment.amount),
            },
        }
        try:
            response = await self._request(
                "POST",
                "/api/bookings",
                data=payload,
                headers={"Idempotency-Key": idempotency_key}
            )
        except httpx.RequestError as e:
            raise BookingApiError(f"Booking service unreachable: {e}") from e

        if response.is_error:
            raise BookingApiError(_error_message(response), response.status_code)

        try:
            body = _json_body(response)
            return BookingResult(
                booking=body["booking"],
                print_payload=body.get("printPayload")
            )
        except MALFORMED_BODY_ERRORS as e:
            logger.error(f"Malformed booking response for trip {request.trip_id}: {e!r}")
            raise BookingApiError(f"Malformed booking response: {e!r}") from e
