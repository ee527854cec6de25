from typing import Callable, Dict, List, Optional
from datetime import datetime, timedelta
import asyncio
import math

from loguru import logger

from src.config import settings
from src.clients.booking_api import BookingApiClient
from src.exceptions import HoldAlreadyOwned, HoldConflict, HoldServiceError
from src.holds.schemas import CreateHoldRequest, SeatHold, HoldView
from src.notifications import Notifier

class HoldRegistry:
    """Seat holds owned by one agent session, keyed by seat number.

    The reservation service is the source of truth for cross-session conflicts;
    local expiry only drives the countdown the agent sees. Every mutation of the
    registry runs under one lock shared with the expiry tick.
    """

    def __init__(
        self,
        api: BookingApiClient,
        notifier: Notifier,
        clock: Callable[[], datetime] = datetime.now,
        tick_seconds: float = None,
        default_ttl_seconds: int = None
    ):
        self.api = api
        self.notifier = notifier
        self.clock = clock
        self.tick_seconds = tick_seconds or settings.HOLD_TICK_SECONDS
        self.default_ttl_seconds = default_ttl_seconds or settings.HOLD_TTL_SECONDS
        self._holds: Dict[str, SeatHold] = {}
        self._lock = asyncio.Lock()
        self._tick_task: Optional[asyncio.Task] = None

    @property
    def holds(self) -> List[SeatHold]:
        return list(self._holds.values())

    def get(self, seat_number: str) -> Optional[SeatHold]:
        return self._holds.get(seat_number)

    def __len__(self) -> int:
        return len(self._holds)

    async def create(
        self,
        trip_id: str,
        seat_number: str,
        origin_sequence: int,
        destination_sequence: int,
        ttl_seconds: Optional[int] = None
    ) -> Optional[SeatHold]:
        """Reserve a seat upstream and record the hold.

        Returns the stored hold, or the existing record (possibly None) when the
        seat is already held by this caller.
        """
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl_seconds
        request = CreateHoldRequest(
            trip_id=trip_id,
            seat_number=seat_number,
            origin_sequence=origin_sequence,
            destination_sequence=destination_sequence,
            ttl_seconds=ttl_seconds
        )

        try:
            response = await self.api.create_hold(request)
        except HoldAlreadyOwned:
            logger.debug(f"Seat {seat_number} already held by this session")
            return self._holds.get(seat_number)
        except HoldConflict as e:
            self.notifier.error("Failed to Reserve Seat", e.message)
            raise
        except HoldServiceError as e:
            self.notifier.error("Failed to Reserve Seat", e.message)
            raise

        hold = SeatHold(
            holder_reference=response.holder_reference,
            seat_number=seat_number,
            trip_id=trip_id,
            origin_sequence=origin_sequence,
            destination_sequence=destination_sequence,
            expires_at=self.clock() + timedelta(seconds=ttl_seconds)
        )

        async with self._lock:
            self._holds[seat_number] = hold

        logger.info(f"Holding seat {seat_number} on trip {trip_id} as {hold.holder_reference}")
        self.notifier.notify(
            "Seat Reserved",
            f"Seat {seat_number} reserved for {ttl_seconds // 60}m {ttl_seconds % 60}s"
        )
        return hold

    async def release(self, seat_number: str) -> bool:
        """Release a held seat; the local record is dropped only after upstream confirms"""
        hold = self._holds.get(seat_number)
        if not hold:
            return False

        try:
            await self.api.release_hold(hold.holder_reference)
        except HoldServiceError as e:
            self.notifier.error("Failed to Release Hold", e.message)
            raise

        async with self._lock:
            # The tick may have evicted or a new hold may have replaced it meanwhile
            current = self._holds.get(seat_number)
            if current and current.holder_reference == hold.holder_reference:
                del self._holds[seat_number]

        logger.info(f"Released seat {seat_number} ({hold.holder_reference})")
        self.notifier.notify("Hold Released", f"Seat {seat_number} is now available")
        return True

    async def release_all(self) -> List[str]:
        """Release every held seat; returns the seats whose release failed"""
        seat_numbers = list(self._holds.keys())
        results = await asyncio.gather(
            *(self.release(seat_number) for seat_number in seat_numbers),
            return_exceptions=True
        )

        failed = []
        for seat_number, result in zip(seat_numbers, results):
            if isinstance(result, Exception):
                logger.warning(f"Could not release seat {seat_number}: {result}")
                failed.append(seat_number)
        return failed

    def ttl_remaining(self, seat_number: str) -> int:
        hold = self._holds.get(seat_number)
        if not hold:
            return 0
        remaining = (hold.expires_at - self.clock()).total_seconds()
        return max(0, math.floor(remaining))

    def is_held(self, seat_number: str) -> bool:
        hold = self._holds.get(seat_number)
        return hold is not None and hold.expires_at > self.clock()

    def views(self) -> List[HoldView]:
        return [
            HoldView(
                seat_number=hold.seat_number,
                trip_id=hold.trip_id,
                holder_reference=hold.holder_reference,
                expires_at=hold.expires_at,
                ttl_seconds=self.ttl_remaining(hold.seat_number)
            )
            for hold in self._holds.values()
        ]

    async def expire_due(self) -> List[str]:
        """Evict holds whose expiry has passed, notifying once per seat"""
        async with self._lock:
            now = self.clock()
            expired = [
                seat_number for seat_number, hold in self._holds.items()
                if hold.expires_at <= now
            ]
            for seat_number in expired:
                del self._holds[seat_number]

        for seat_number in expired:
            logger.info(f"Hold on seat {seat_number} expired")
            self.notifier.error("Hold Expired", f"Seat {seat_number} hold has expired")
        return expired

    def start(self):
        """Start the expiry tick"""
        if not self._tick_task or self._tick_task.done():
            self._tick_task = asyncio.create_task(self._run_expiry_tick())

    async def stop(self):
        if self._tick_task and not self._tick_task.done():
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
        self._tick_task = None

    async def _run_expiry_tick(self):
        while True:
            await asyncio.sleep(self.tick_seconds)
            try:
                await self.expire_due()
            except Exception:
                logger.exception("Error in hold expiry tick")
