"""
Seat Hold Module

Local ownership model for seat reservations made by an agent session.

Key Components:
- hold_registry.py: HoldRegistry (create, release, release_all, TTL and expiry tick)
- schemas.py: SeatHold and hold request/response models
"""

from .schemas import CreateHoldRequest, HoldResponse, SeatHold, HoldView

__all__ = [
    "CreateHoldRequest",
    "HoldResponse",
    "SeatHold",
    "HoldView"
]
