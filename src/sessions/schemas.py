from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from src.bookings.schemas import FlowSnapshot, Outlet, PassengerInfo, PaymentMethod, Stop
from src.holds.schemas import HoldView
from src.seats.schemas import SeatState, SeatView

class SessionCreated(BaseModel):
    session_id: str
    created_at: datetime

class OutletSelection(BaseModel):
    outlet: Outlet
    service_date: Optional[date] = None

class StopSelection(BaseModel):
    stop: Stop
    sequence: int = Field(..., ge=0)

class PassengerUpdate(BaseModel):
    passengers: List[PassengerInfo]

class PaymentUpdate(BaseModel):
    method: PaymentMethod
    amount: Decimal = Field(..., ge=0)

class SeatToggleResult(BaseModel):
    seat_number: str
    state: SeatState
    selected_seats: List[str]

class SeatsResponse(BaseModel):
    seats: List[SeatView]
    needs_refresh: bool
    selected_seats: List[str]

class HoldsResponse(BaseModel):
    holds: List[HoldView]
    total_holds: int

class ResetResult(BaseModel):
    flow: FlowSnapshot
    released_holds: bool
    failed_releases: List[str] = Field(default_factory=list)
