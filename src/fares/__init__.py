"""
Fare Module

Prices the current seat selection through the upstream quote service and
falls back to a flat per-seat fare when quoting is unavailable.

Key Components:
- fare_service.py: FareCalculationService
- schemas.py: FareQuote
"""

from .schemas import FareQuote

__all__ = ["FareQuote"]
