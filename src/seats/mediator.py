from typing import Callable, List, Optional
import asyncio

from loguru import logger

from src.bookings.flow_controller import BookingFlowController
from src.clients.booking_api import BookingApiClient
from src.exceptions import FlowStateError, HoldConflict
from src.holds.hold_registry import HoldRegistry
from src.realtime.channel import RealtimeChannel
from src.realtime.schemas import RealtimeEvent, RealtimeEventType
from src.seats.schemas import Seatmap, SeatAvailability, SeatState, SeatView

INVALIDATING_EVENTS = (
    RealtimeEventType.HOLDS_RELEASED,
    RealtimeEventType.INVENTORY_UPDATED,
    RealtimeEventType.TRIP_CANCELED,
    RealtimeEventType.TRIP_STATUS_CHANGED,
)

class SeatInteractionMediator:
    """Decides per seat whether the agent may select it.

    Server-reported availability always wins over the local hold registry; the
    local TTL is only an advisory countdown.
    """

    def __init__(
        self,
        api: BookingApiClient,
        holds: HoldRegistry,
        flow: BookingFlowController,
        channel: Optional[RealtimeChannel] = None
    ):
        self.api = api
        self.holds = holds
        self.flow = flow
        self.channel = channel
        self.seatmap: Optional[Seatmap] = None
        self.stale = True
        self._unsubscribers: List[Callable[[], None]] = []
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def needs_refresh(self) -> bool:
        if self.stale or self.seatmap is None:
            return True
        return self.channel is not None and not self.channel.is_connected

    def _segment(self):
        state = self.flow.state
        if not state.trip or state.origin_sequence is None or state.destination_sequence is None:
            raise FlowStateError("Select a trip and route before choosing seats")
        return state.trip.id, state.origin_sequence, state.destination_sequence

    async def refresh(self) -> Seatmap:
        trip_id, origin_sequence, destination_sequence = self._segment()
        self.seatmap = await self.api.get_seatmap(trip_id, origin_sequence, destination_sequence)
        self.stale = False
        return self.seatmap

    def _seatmap_matches_flow(self) -> bool:
        state = self.flow.state
        return (
            self.seatmap is not None
            and state.trip is not None
            and self.seatmap.trip_id == state.trip.id
            and self.seatmap.origin_sequence == state.origin_sequence
            and self.seatmap.destination_sequence == state.destination_sequence
        )

    def seat_state(self, seat_number: str) -> SeatState:
        if self.seatmap is None:
            return SeatState.BOOKED
        availability = self.seatmap.seat_availability.get(seat_number)
        if availability is None:
            return SeatState.BOOKED

        if availability.available:
            return SeatState.AVAILABLE

        if availability.held:
            hold = self.holds.get(seat_number)
            ours = (
                hold is not None
                and self.holds.is_held(seat_number)
                and (availability.hold_ref is None or availability.hold_ref == hold.holder_reference)
            )
            return SeatState.SELECTED if ours else SeatState.HELD

        return SeatState.BOOKED

    def seat_views(self) -> List[SeatView]:
        if self.seatmap is None:
            return []
        views = []
        for seat_number in self.seatmap.seat_availability:
            state = self.seat_state(seat_number)
            views.append(SeatView(
                seat_number=seat_number,
                state=state,
                selectable=state in (SeatState.AVAILABLE, SeatState.SELECTED),
                ttl_seconds=self.holds.ttl_remaining(seat_number) if state == SeatState.SELECTED else 0
            ))
        return views

    async def toggle_seat(self, seat_number: str) -> SeatState:
        """Select or deselect a seat, holding or releasing it upstream"""
        trip_id, origin_sequence, destination_sequence = self._segment()
        if not self._seatmap_matches_flow():
            await self.refresh()

        if seat_number in self.flow.state.selected_seats:
            await self.holds.release(seat_number)
            self.flow.remove_seat(seat_number)
            self._mark(seat_number, available=True, held=False)
            return SeatState.AVAILABLE

        state = self.seat_state(seat_number)
        if state in (SeatState.BOOKED, SeatState.HELD):
            logger.debug(f"Seat {seat_number} is {state.value}, ignoring selection")
            return state

        try:
            await self.holds.create(trip_id, seat_number, origin_sequence, destination_sequence)
        except HoldConflict:
            # Unselectable until a refresh shows the seat free again
            self._mark(seat_number, available=False, held=True)
            raise

        self.flow.add_seat(seat_number)
        try:
            await self.refresh()
        except Exception as e:
            logger.warning(f"Seatmap refresh after holding {seat_number} failed: {e}")
            self.stale = True
        return SeatState.SELECTED

    def _mark(self, seat_number: str, available: bool, held: bool):
        if self.seatmap is None:
            return
        hold = self.holds.get(seat_number)
        self.seatmap.seat_availability[seat_number] = SeatAvailability(
            available=available,
            held=held,
            hold_ref=None if available else (hold.holder_reference if hold else None)
        )

    # Realtime invalidation
    def bind(self, channel: RealtimeChannel):
        self.unbind()
        self.channel = channel
        for event_type in INVALIDATING_EVENTS:
            self._unsubscribers.append(channel.add_event_listener(event_type, self._on_invalidated))

    def unbind(self):
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_invalidated(self, event: RealtimeEvent):
        trip = self.flow.state.trip
        if trip is None or event.trip_id != trip.id:
            return

        self.stale = True
        if event.event == RealtimeEventType.TRIP_CANCELED:
            self.flow.notifier.error("Trip Canceled", f"Trip {trip.id} has been canceled")

        if self._refresh_task and not self._refresh_task.done():
            return
        try:
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_quietly())
        except RuntimeError:
            pass

    async def _refresh_quietly(self):
        try:
            await self.refresh()
        except Exception as e:
            logger.warning(f"Seatmap refresh after realtime update failed: {e}")

    async def close(self):
        self.unbind()
        if self._refresh_task and not self._refresh_task.done():
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
