"""
Counter Sessions Module

One agent session per counter terminal. A session wires together everything a
booking transaction needs:

- Hold registry with a 1-second expiry tick
- Booking flow controller (outlet, trip, route, seats, passengers, payment)
- Fare calculation with flat-fare fallback
- Seat interaction mediator fed by realtime seat invalidations
- Realtime channel subscribed to the selected trip and outlet

Key Components:
- session.py: AgentSession and the global session registry
- router.py: FastAPI endpoints driving a session from the counter UI
- schemas.py: Request and response models for the endpoints
"""

from .router import router
from .session import AgentSession, SessionManager, session_manager

__all__ = [
    "router",
    "AgentSession",
    "SessionManager",
    "session_manager"
]
