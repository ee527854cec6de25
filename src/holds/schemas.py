from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class CreateHoldRequest(BaseModel):
    """Request to reserve one seat on a trip segment"""
    trip_id: str
    seat_number: str
    origin_sequence: int
    destination_sequence: int
    ttl_seconds: int = 120

class HoldResponse(BaseModel):
    """Upstream answer to a successful hold request"""
    holder_reference: str
    expires_at: Optional[datetime] = None

class SeatHold(BaseModel):
    """Active seat hold owned by the local agent session"""
    holder_reference: str
    seat_number: str
    trip_id: str
    origin_sequence: int
    destination_sequence: int
    expires_at: datetime

class HoldView(BaseModel):
    """Seat hold with its remaining lifetime"""
    seat_number: str
    trip_id: str
    holder_reference: str
    expires_at: datetime
    ttl_seconds: int
