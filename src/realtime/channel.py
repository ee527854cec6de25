from typing import Any, Awaitable, Callable, Dict, Optional, Set
from datetime import datetime
import asyncio
import inspect
import json

import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException
from loguru import logger

from src.config import settings
from src.realtime.schemas import (
    ConnectionStatus, RealtimeEvent, RealtimeEventType, Subscription,
    SubscriptionKind, parse_event
)

EventHandler = Callable[[RealtimeEvent], Any]
Connector = Callable[[str], Awaitable[Any]]

async def default_connector(url: str):
    return await websockets.connect(url, open_timeout=20)

class RealtimeChannel:
    """Single persistent event channel to the booking backend.

    Reconnection is handled here rather than by the websocket library: a
    transport failure schedules another attempt after a fixed delay until the
    attempt budget is spent, while clean closes end the connection for good.
    Subscriptions are remembered and replayed on every connect.
    """

    def __init__(
        self,
        url: str = None,
        reconnection_delay: float = None,
        max_reconnection_attempts: int = None,
        connector: Connector = None
    ):
        self.url = url or settings.REALTIME_URL
        self.reconnection_delay = (
            reconnection_delay if reconnection_delay is not None else settings.RECONNECTION_DELAY_SECONDS
        )
        self.max_reconnection_attempts = (
            max_reconnection_attempts if max_reconnection_attempts is not None
            else settings.MAX_RECONNECTION_ATTEMPTS
        )
        self._connector = connector or default_connector

        self.is_connected = False
        self.is_reconnecting = False
        self.reconnection_attempt = 0
        self.last_event_at: Optional[datetime] = None

        self._websocket = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._subscriptions: Set[Subscription] = set()
        self._handlers: Dict[RealtimeEventType, Set[EventHandler]] = {}

    # Connection lifecycle
    def connect(self) -> asyncio.Task:
        """Start the connection task if it is not already running"""
        if self._task and not self._task.done():
            return self._task
        self._closing = False
        self.reconnection_attempt = 0
        self._task = asyncio.create_task(self._run())
        return self._task

    async def disconnect(self):
        """Intentional close; never followed by a reconnection"""
        self._closing = True
        if self._websocket is not None:
            logger.info("[Realtime] Disconnecting from server...")
            try:
                await self._websocket.close()
            except Exception as e:
                logger.debug(f"[Realtime] Error while closing: {e}")

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None
        self._websocket = None
        self.is_connected = False
        self.is_reconnecting = False
        self.reconnection_attempt = 0

    async def _run(self):
        while not self._closing:
            logger.info(f"[Realtime] Connecting to {self.url}")
            try:
                websocket = await self._connector(self.url)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.error(f"[Realtime] Connection error: {e}")
                self.is_connected = False
                if not await self._schedule_reconnection():
                    return
                continue

            await self._on_open(websocket)
            transport_failure = await self._receive(websocket)
            self._websocket = None
            self.is_connected = False

            if not transport_failure or self._closing:
                logger.info("[Realtime] Connection closed cleanly")
                return
            if not await self._schedule_reconnection():
                return

    async def _schedule_reconnection(self) -> bool:
        if self._closing:
            return False
        if self.reconnection_attempt >= self.max_reconnection_attempts:
            logger.warning("[Realtime] Max reconnection attempts reached")
            self.is_reconnecting = False
            return False

        self.is_reconnecting = True
        self.reconnection_attempt += 1
        logger.info(
            f"[Realtime] Reconnection attempt {self.reconnection_attempt}/"
            f"{self.max_reconnection_attempts} in {self.reconnection_delay}s"
        )
        await asyncio.sleep(self.reconnection_delay)
        return True

    async def _on_open(self, websocket):
        self._websocket = websocket
        self.is_connected = True
        self.is_reconnecting = False
        self.reconnection_attempt = 0
        logger.info("[Realtime] Connected to server")

        for subscription in list(self._subscriptions):
            await self._send(subscription.control_message(subscribe=True))

    async def _receive(self, websocket) -> bool:
        """Consume messages until the socket closes; True means transport failure"""
        try:
            async for raw in websocket:
                await self._handle_message(raw)
        except ConnectionClosedError as e:
            if e.rcvd is not None:
                # Close frame from the server: a deliberate disconnect
                logger.info(f"[Realtime] Server closed the connection: {e}")
                return False
            logger.warning(f"[Realtime] Transport closed: {e}")
            return True
        except OSError as e:
            logger.warning(f"[Realtime] Transport error: {e}")
            return True
        return False

    async def _send(self, message: dict):
        if self._websocket is None:
            return
        try:
            await self._websocket.send(json.dumps(message))
        except (WebSocketException, OSError) as e:
            # The receive loop notices the broken transport and reconnects
            logger.warning(f"[Realtime] Failed to send {message.get('action')}: {e}")

    # Subscriptions
    @property
    def subscriptions(self) -> Set[Subscription]:
        return set(self._subscriptions)

    async def _subscribe(self, subscription: Subscription):
        self._subscriptions.add(subscription)
        await self._send(subscription.control_message(subscribe=True))
        logger.debug(f"[Realtime] Subscribed to {subscription.kind.value}: {':'.join(subscription.params)}")

    async def _unsubscribe(self, subscription: Subscription):
        self._subscriptions.discard(subscription)
        await self._send(subscription.control_message(subscribe=False))
        logger.debug(f"[Realtime] Unsubscribed from {subscription.kind.value}: {':'.join(subscription.params)}")

    async def subscribe_to_trip(self, trip_id: str):
        await self._subscribe(Subscription(kind=SubscriptionKind.TRIP, params=(trip_id,)))

    async def unsubscribe_from_trip(self, trip_id: str):
        await self._unsubscribe(Subscription(kind=SubscriptionKind.TRIP, params=(trip_id,)))

    async def subscribe_to_base(self, base_id: str):
        await self._subscribe(Subscription(kind=SubscriptionKind.BASE, params=(base_id,)))

    async def unsubscribe_from_base(self, base_id: str):
        await self._unsubscribe(Subscription(kind=SubscriptionKind.BASE, params=(base_id,)))

    async def subscribe_to_cso(self, outlet_id: str, service_date: str):
        await self._subscribe(Subscription(kind=SubscriptionKind.CSO, params=(outlet_id, service_date)))

    async def unsubscribe_from_cso(self, outlet_id: str, service_date: str):
        await self._unsubscribe(Subscription(kind=SubscriptionKind.CSO, params=(outlet_id, service_date)))

    # Event dispatch
    def add_event_listener(self, event_type: RealtimeEventType, handler: EventHandler) -> Callable[[], None]:
        """Register a handler; the returned callable removes it again"""
        event_type = RealtimeEventType(event_type)
        self._handlers.setdefault(event_type, set()).add(handler)

        def remove():
            handlers = self._handlers.get(event_type)
            if handlers:
                handlers.discard(handler)

        return remove

    async def _handle_message(self, raw):
        try:
            message = json.loads(raw)
            event = parse_event(message["event"], message.get("data") or {})
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"[Realtime] Ignoring malformed message: {e}")
            return

        self.last_event_at = datetime.now()
        logger.debug(f"[Realtime] Received {event.event.value}")
        await self.dispatch(event)

    async def dispatch(self, event: RealtimeEvent):
        """Deliver an event to every handler registered for its kind"""
        for handler in list(self._handlers.get(event.event, ())):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"[Realtime] Error in {event.event.value} handler")

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            is_connected=self.is_connected,
            is_reconnecting=self.is_reconnecting,
            reconnection_attempt=self.reconnection_attempt,
            max_reconnection_attempts=self.max_reconnection_attempts,
            subscriptions=sorted(
                ":".join((s.kind.value,) + tuple(s.params)) for s in self._subscriptions
            ),
            last_event_at=self.last_event_at
        )
