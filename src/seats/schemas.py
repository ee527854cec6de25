from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from enum import Enum

class SeatState(str, Enum):
    """Seat state as shown to the agent"""
    AVAILABLE = "available"
    SELECTED = "selected"
    HELD = "held"
    BOOKED = "booked"

class SeatAvailability(BaseModel):
    """Server-reported availability of one seat for the requested segment"""
    available: bool
    held: bool = False
    hold_ref: Optional[str] = None

class Seatmap(BaseModel):
    """Seat layout and availability for a trip segment"""
    trip_id: str
    origin_sequence: int
    destination_sequence: int
    layout: Optional[Dict[str, Any]] = None
    seat_availability: Dict[str, SeatAvailability] = Field(default_factory=dict)
    leg_indexes: List[int] = Field(default_factory=list)

class SeatView(BaseModel):
    """Reconciled seat state for the counter UI"""
    seat_number: str
    state: SeatState
    selectable: bool
    ttl_seconds: int = 0
