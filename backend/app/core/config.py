"""
SkyFare - Configuration
Environment driven settings for the Amadeus integration layer.

All values can be overridden through the environment or a local .env file.
Components take these as constructor defaults only.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


# ═══════════════════════════════════════════════════════════════════
# AMADEUS
# ═══════════════════════════════════════════════════════════════════

AMADEUS_API_KEY = os.getenv("AMADEUS_API_KEY")
AMADEUS_API_SECRET = os.getenv("AMADEUS_API_SECRET")
AMADEUS_HOSTNAME = os.getenv("AMADEUS_HOSTNAME", "test.api.amadeus.com")
AMADEUS_BASE_URL = f"https://{AMADEUS_HOSTNAME}"
AMADEUS_HTTP_TIMEOUT = _float_env("AMADEUS_HTTP_TIMEOUT", 30.0)

# ═══════════════════════════════════════════════════════════════════
# REFERENCE DATA (airports / airlines)
# ═══════════════════════════════════════════════════════════════════

REFERENCE_CACHE_TTL_HOURS = _int_env("REFERENCE_CACHE_TTL_HOURS", 24)
REFERENCE_REQUEST_INTERVAL_MS = _int_env("REFERENCE_REQUEST_INTERVAL_MS", 1000)
RATE_LIMIT_DEFAULT_COOLDOWN_S = _int_env("RATE_LIMIT_DEFAULT_COOLDOWN_S", 60)

# ═══════════════════════════════════════════════════════════════════
# BOOKING COMPATIBILITY DEFAULTS
# Values the booking endpoint requires but pricing sometimes omits.
# ═══════════════════════════════════════════════════════════════════

BOOKING_DEFAULT_SOURCE = os.getenv("BOOKING_DEFAULT_SOURCE", "GDS")
BOOKING_DEFAULT_SEATS = _int_env("BOOKING_DEFAULT_SEATS", 9)
BOOKING_TICKETING_WINDOW_DAYS = _int_env("BOOKING_TICKETING_WINDOW_DAYS", 7)
BOOKING_UNKNOWN_CARRIER = os.getenv("BOOKING_UNKNOWN_CARRIER", "XX")
BOOKING_DEFAULT_CURRENCY = os.getenv("BOOKING_DEFAULT_CURRENCY", "USD")

# ═══════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════

APP_VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
    if origin.strip()
]
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _int_env("PORT", 8000)
