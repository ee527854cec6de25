from pydantic import BaseModel
from typing import Any, Optional
from decimal import Decimal

class FareQuote(BaseModel):
    """Total fare for every passenger of the current selection"""
    total_for_all_passengers: Decimal
    currency: str = "IDR"
    per_passenger: Optional[Decimal] = None
    seat_count: int = 0
    is_fallback: bool = False
    breakdown: Optional[Any] = None
