"""Clients for the upstream booking backend."""

from .booking_api import BookingApiClient, ALREADY_HELD_BY_YOU

__all__ = [
    "BookingApiClient",
    "ALREADY_HELD_BY_YOU"
]
