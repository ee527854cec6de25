from pydantic_settings import BaseSettings
from decimal import Decimal

class Settings(BaseSettings):
    # Upstream booking backend
    BOOKING_API_URL: str = "http://localhost:5000"
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Realtime channel
    REALTIME_URL: str = "ws://localhost:5000/ws"
    REALTIME_ENABLED: bool = True
    RECONNECTION_DELAY_SECONDS: float = 5.0
    MAX_RECONNECTION_ATTEMPTS: int = 5

    # Seat holds
    HOLD_TTL_SECONDS: int = 120
    HOLD_TICK_SECONDS: float = 1.0

    # Pricing
    FLAT_FARE_PER_SEAT: Decimal = Decimal("25000")
    CURRENCY: str = "IDR"

    # Booking
    BOOKING_CHANNEL: str = "CSO"
    CREATED_BY: str = "CSO User"

    # Application
    PROJECT_NAME: str = "Bus Counter Booking Service"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
