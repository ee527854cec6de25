"""
Realtime Module

Persistent event channel to the booking backend with subscription replay and
manual reconnection.

Key Components:
- channel.py: RealtimeChannel (connection lifecycle, subscriptions, listener fan-out)
- schemas.py: Event taxonomy and typed payloads
"""

from .channel import RealtimeChannel
from .schemas import (
    RealtimeEventType, SubscriptionKind, Subscription, ConnectionStatus,
    TripStatusChanged, TripCanceled, HoldsReleased, TripMaterialized,
    InventoryUpdated, RealtimeEvent, parse_event
)

__all__ = [
    "RealtimeChannel",
    "RealtimeEventType",
    "SubscriptionKind",
    "Subscription",
    "ConnectionStatus",
    "TripStatusChanged",
    "TripCanceled",
    "HoldsReleased",
    "TripMaterialized",
    "InventoryUpdated",
    "RealtimeEvent",
    "parse_event"
]
