"""
Seat Interaction Module

Reconciles locally held seats with the availability the server reports.

Key Components:
- mediator.py: SeatInteractionMediator (seat states, toggling, realtime refresh)
- schemas.py: Seatmap, SeatAvailability, SeatState and SeatView
"""

from .schemas import Seatmap, SeatAvailability, SeatState, SeatView

__all__ = [
    "Seatmap",
    "SeatAvailability",
    "SeatState",
    "SeatView"
]
