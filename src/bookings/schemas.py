from pydantic import BaseModel, Field, validator
from typing import Any, Dict, List, Literal, Optional
from datetime import date
from decimal import Decimal
from enum import Enum, IntEnum

class FlowStep(IntEnum):
    """Counter booking flow steps"""
    OUTLET = 1
    TRIP = 2
    ROUTE = 3
    SEATS = 4
    PASSENGERS = 5
    PAYMENT = 6
    CONFIRMATION = 7

STEP_NAMES = {
    FlowStep.OUTLET: "Outlet",
    FlowStep.TRIP: "Trip",
    FlowStep.ROUTE: "Route",
    FlowStep.SEATS: "Seats",
    FlowStep.PASSENGERS: "Passengers",
    FlowStep.PAYMENT: "Payment",
    FlowStep.CONFIRMATION: "Confirmation",
}

class PaymentMethod(str, Enum):
    """Payment methods accepted at the counter"""
    CASH = "cash"
    QR = "qr"
    EWALLET = "ewallet"
    BANK = "bank"

class Outlet(BaseModel):
    """Sales outlet the agent works from"""
    id: str
    name: str
    code: Optional[str] = None

class TripSummary(BaseModel):
    """Scheduled trip as offered to the counter"""
    id: str
    service_date: Optional[date] = None
    status: Literal["scheduled", "canceled", "closed"] = "scheduled"
    capacity: Optional[int] = None
    base_id: Optional[str] = None

class Stop(BaseModel):
    """Stop on the trip pattern"""
    id: str
    name: str
    code: Optional[str] = None

class PassengerInfo(BaseModel):
    """Passenger travelling on one selected seat"""
    full_name: str = ""
    phone: Optional[str] = None
    id_number: Optional[str] = None

class PaymentDetails(BaseModel):
    """Payment taken at the counter"""
    method: PaymentMethod
    amount: Decimal

    @validator('amount')
    def validate_amount(cls, v):
        if v < 0:
            raise ValueError('Payment amount cannot be negative')
        return v

class BookingStep(BaseModel):
    """Step with its progress status"""
    id: int
    name: str
    status: Literal["pending", "active", "completed"]

class BookingFlowState(BaseModel):
    """Accumulated selection of the current counter transaction"""
    outlet: Optional[Outlet] = None
    trip: Optional[TripSummary] = None
    origin_stop: Optional[Stop] = None
    destination_stop: Optional[Stop] = None
    origin_sequence: Optional[int] = None
    destination_sequence: Optional[int] = None
    selected_seats: List[str] = Field(default_factory=list)
    passengers: List[PassengerInfo] = Field(default_factory=list)
    payment: Optional[PaymentDetails] = None
    current_step: FlowStep = FlowStep.OUTLET

class BookingPassenger(BaseModel):
    """Passenger entry of a booking request, bound to its seat"""
    full_name: str
    phone: Optional[str] = None
    id_number: Optional[str] = None
    seat_number: str

class BookingRequest(BaseModel):
    """Write-once snapshot submitted to the booking backend"""
    trip_id: str
    outlet_id: Optional[str] = None
    origin_stop_id: str
    destination_stop_id: str
    origin_sequence: int
    destination_sequence: int
    channel: Literal["CSO", "WEB", "APP", "OTA"] = "CSO"
    created_by: Optional[str] = None
    passengers: List[BookingPassenger]
    payment: PaymentDetails
    idempotency_key: str

    class Config:
        frozen = True

class BookingResult(BaseModel):
    """Created booking with its print payload"""
    booking: Dict[str, Any]
    print_payload: Optional[Dict[str, Any]] = None

class FlowSnapshot(BaseModel):
    """Flow state as exposed to the counter UI"""
    state: BookingFlowState
    steps: List[BookingStep]
    total_amount: Decimal
    fare_is_fallback: bool = False
    can_proceed: bool
    submitting: bool = False
    result: Optional[BookingResult] = None
