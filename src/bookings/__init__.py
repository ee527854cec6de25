"""
Booking Flow Module

Drives a counter booking from outlet selection to confirmation:

- Seven-step state machine with step gating (Outlet, Trip, Route, Seats,
  Passengers, Payment, Confirmation)
- Aggregate validation reporting every missing or inconsistent field at once
- Fare refresh on every trip, route or seat-count change
- Exactly-once submission with an idempotency key

Key Components:
- flow_controller.py: BookingFlowController state machine and submission
- validation.py: BookingValidator for pre-submission checks
- schemas.py: Pydantic models for flow state and booking requests
"""

from .schemas import (
    FlowStep, PaymentMethod, Outlet, TripSummary, Stop, PassengerInfo,
    PaymentDetails, BookingStep, BookingFlowState, BookingRequest,
    BookingResult, FlowSnapshot
)

__all__ = [
    "FlowStep",
    "PaymentMethod",
    "Outlet",
    "TripSummary",
    "Stop",
    "PassengerInfo",
    "PaymentDetails",
    "BookingStep",
    "BookingFlowState",
    "BookingRequest",
    "BookingResult",
    "FlowSnapshot"
]
