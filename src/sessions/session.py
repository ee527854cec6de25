from typing import Dict, List, Optional
from datetime import date, datetime
import asyncio
import uuid

from loguru import logger

from src.config import settings
from src.bookings.flow_controller import BookingFlowController
from src.bookings.schemas import Outlet, TripSummary
from src.clients.booking_api import BookingApiClient
from src.exceptions import SessionNotFound
from src.fares.fare_service import FareCalculationService
from src.holds.hold_registry import HoldRegistry
from src.notifications import Notifier
from src.realtime.channel import RealtimeChannel
from src.realtime.schemas import RealtimeEventType, TripMaterialized
from src.seats.mediator import SeatInteractionMediator

class AgentSession:
    """Everything one counter terminal needs for a booking transaction"""

    def __init__(
        self,
        session_id: str = None,
        api: BookingApiClient = None,
        channel: RealtimeChannel = None,
        realtime_enabled: bool = None
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.created_at = datetime.now()
        self.notifier = Notifier()
        self.api = api or BookingApiClient()
        self.channel = channel or RealtimeChannel()
        self.realtime_enabled = settings.REALTIME_ENABLED if realtime_enabled is None else realtime_enabled

        self.holds = HoldRegistry(self.api, self.notifier)
        self.fare_service = FareCalculationService(self.api)
        self.flow = BookingFlowController(self.api, self.holds, self.fare_service, self.notifier)
        self.seats = SeatInteractionMediator(self.api, self.holds, self.flow, self.channel)

        self._subscribed_trip: Optional[str] = None
        self._subscribed_cso: Optional[tuple] = None
        self._remove_materialized_listener = None

    async def start(self):
        self.holds.start()
        self.seats.bind(self.channel)
        self._remove_materialized_listener = self.channel.add_event_listener(
            RealtimeEventType.TRIP_MATERIALIZED, self._on_trip_materialized
        )
        if self.realtime_enabled:
            self.channel.connect()
        logger.info(f"Agent session {self.session_id} started")

    async def close(self):
        await self.seats.close()
        if self._remove_materialized_listener:
            self._remove_materialized_listener()
        await self.channel.disconnect()
        await self.holds.stop()
        failed = await self.holds.release_all()
        if failed:
            logger.warning(f"Session {self.session_id} closed with unreleased holds: {failed}")
        await self.api.close()
        logger.info(f"Agent session {self.session_id} closed")

    # Flow operations that also drive realtime subscriptions
    async def select_outlet(self, outlet: Outlet, service_date: Optional[date] = None) -> List[str]:
        failed = await self.flow.select_outlet(outlet)
        await self._follow_trip(None)

        service_date = (service_date or date.today()).isoformat()
        if self._subscribed_cso:
            await self.channel.unsubscribe_from_cso(*self._subscribed_cso)
        self._subscribed_cso = (outlet.id, service_date)
        await self.channel.subscribe_to_cso(outlet.id, service_date)
        return failed

    async def select_trip(self, trip: TripSummary):
        self.flow.select_trip(trip)
        self.seats.stale = True
        await self._follow_trip(trip.id)

    async def _follow_trip(self, trip_id: Optional[str]):
        if self._subscribed_trip == trip_id:
            return
        if self._subscribed_trip:
            await self.channel.unsubscribe_from_trip(self._subscribed_trip)
        self._subscribed_trip = trip_id
        if trip_id:
            await self.channel.subscribe_to_trip(trip_id)

    def _on_trip_materialized(self, event: TripMaterialized):
        trip = self.flow.state.trip
        if trip and trip.base_id == event.base_id:
            self.notifier.notify(
                "Trip Materialized",
                f"Trip for {event.service_date} is now bookable as {event.trip_id}"
            )

    async def start_new_transaction(self) -> List[str]:
        """Reset the flow and give back every seat this session holds"""
        self.flow.reset_flow()
        self.seats.seatmap = None
        self.seats.stale = True
        await self._follow_trip(None)
        return await self.holds.release_all()

    def reset(self):
        """Reset the flow keeping holds, e.g. after a displayed error"""
        self.flow.reset_flow()
        self.seats.stale = True

class SessionManager:
    """Registry of live agent sessions"""

    def __init__(self):
        self._sessions: Dict[str, AgentSession] = {}
        self._lock = asyncio.Lock()

    async def create(self, **kwargs) -> AgentSession:
        session = AgentSession(**kwargs)
        async with self._lock:
            self._sessions[session.session_id] = session
        await session.start()
        return session

    def get(self, session_id: str) -> AgentSession:
        session = self._sessions.get(session_id)
        if not session:
            raise SessionNotFound(session_id)
        return session

    async def close(self, session_id: str):
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if not session:
            raise SessionNotFound(session_id)
        await session.close()

    async def close_all(self):
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            try:
                await session.close()
            except Exception:
                logger.exception(f"Failed to close session {session.session_id}")

    def __len__(self) -> int:
        return len(self._sessions)

# Global session registry
session_manager = SessionManager()
