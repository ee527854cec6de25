from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional, Type, Union
from datetime import datetime
from enum import Enum

class RealtimeEventType(str, Enum):
    """Events pushed by the booking backend"""
    TRIP_STATUS_CHANGED = "TRIP_STATUS_CHANGED"
    TRIP_CANCELED = "TRIP_CANCELED"
    HOLDS_RELEASED = "HOLDS_RELEASED"
    TRIP_MATERIALIZED = "TRIP_MATERIALIZED"
    INVENTORY_UPDATED = "INVENTORY_UPDATED"

class SubscriptionKind(str, Enum):
    """Subscription scopes understood by the backend"""
    TRIP = "trip"
    BASE = "base"
    CSO = "cso"

class _EventPayload(BaseModel):
    class Config:
        populate_by_name = True

class TripStatusChanged(_EventPayload):
    event: Literal[RealtimeEventType.TRIP_STATUS_CHANGED] = RealtimeEventType.TRIP_STATUS_CHANGED
    trip_id: str = Field(alias="tripId")
    status: str

class TripCanceled(_EventPayload):
    event: Literal[RealtimeEventType.TRIP_CANCELED] = RealtimeEventType.TRIP_CANCELED
    trip_id: str = Field(alias="tripId")

class HoldsReleased(_EventPayload):
    event: Literal[RealtimeEventType.HOLDS_RELEASED] = RealtimeEventType.HOLDS_RELEASED
    trip_id: str = Field(alias="tripId")
    seat_numbers: Optional[List[str]] = Field(default=None, alias="seatNos")

class TripMaterialized(_EventPayload):
    event: Literal[RealtimeEventType.TRIP_MATERIALIZED] = RealtimeEventType.TRIP_MATERIALIZED
    base_id: str = Field(alias="baseId")
    service_date: str = Field(alias="serviceDate")
    trip_id: str = Field(alias="tripId")

class InventoryUpdated(_EventPayload):
    event: Literal[RealtimeEventType.INVENTORY_UPDATED] = RealtimeEventType.INVENTORY_UPDATED
    trip_id: str = Field(alias="tripId")
    seat_number: str = Field(alias="seatNo")
    leg_indexes: Optional[List[int]] = Field(default=None, alias="legIndexes")

RealtimeEvent = Union[TripStatusChanged, TripCanceled, HoldsReleased, TripMaterialized, InventoryUpdated]

EVENT_MODELS: Dict[RealtimeEventType, Type[_EventPayload]] = {
    RealtimeEventType.TRIP_STATUS_CHANGED: TripStatusChanged,
    RealtimeEventType.TRIP_CANCELED: TripCanceled,
    RealtimeEventType.HOLDS_RELEASED: HoldsReleased,
    RealtimeEventType.TRIP_MATERIALIZED: TripMaterialized,
    RealtimeEventType.INVENTORY_UPDATED: InventoryUpdated,
}

class Subscription(BaseModel):
    """Active subscription, replayed on every reconnection"""
    kind: SubscriptionKind
    params: tuple

    class Config:
        frozen = True

    def control_message(self, subscribe: bool = True) -> dict:
        prefix = "subscribe" if subscribe else "unsubscribe"
        message = {"action": f"{prefix}-{self.kind.value}"}
        if self.kind == SubscriptionKind.TRIP:
            message["tripId"] = self.params[0]
        elif self.kind == SubscriptionKind.BASE:
            message["baseId"] = self.params[0]
        else:
            message["outletId"] = self.params[0]
            message["serviceDate"] = self.params[1]
        return message

class ConnectionStatus(BaseModel):
    """Realtime connection state for consumers deciding whether to trust cached data"""
    is_connected: bool
    is_reconnecting: bool
    reconnection_attempt: int
    max_reconnection_attempts: int
    subscriptions: List[str]
    last_event_at: Optional[datetime] = None

def parse_event(event_name: str, data: dict) -> RealtimeEvent:
    """Build the typed event for an incoming message; raises ValueError if unknown"""
    event_type = RealtimeEventType(event_name)
    model = EVENT_MODELS[event_type]
    return model(**data)
