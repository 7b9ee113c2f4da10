import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

# 1. Put the backend directory on sys.path so `app` imports resolve
ROOT_DIR = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT_DIR / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

# 2. Mock environment variables for testing
import os
os.environ.setdefault("AMADEUS_API_KEY", "test_key")
os.environ.setdefault("AMADEUS_API_SECRET", "test_secret")

from app.services.integration.amadeus.reference_data import (  # noqa: E402
    RateLimiter,
    ReferenceCache,
    ReferenceDataClient,
    RequestPacer,
    set_reference_client,
)

BASE_URL = "https://test.api.amadeus.com"

AIRPORTS = {
    "CDG": {
        "iataCode": "CDG",
        "name": "CHARLES DE GAULLE",
        "address": {"cityName": "PARIS", "countryName": "FRANCE"},
        "timeZoneOffset": "+02:00",
    },
    "JFK": {
        "iataCode": "JFK",
        "name": "JOHN F KENNEDY INTL",
        "address": {"cityName": "NEW YORK", "countryName": "UNITED STATES OF AMERICA"},
        "timeZoneOffset": "-04:00",
    },
    "IST": {
        "iataCode": "IST",
        "name": "ISTANBUL AIRPORT",
        "address": {"cityName": "ISTANBUL", "countryName": "TURKIYE"},
        "timeZoneOffset": "+03:00",
    },
    "AMS": {
        "iataCode": "AMS",
        "name": "SCHIPHOL",
        "address": {"cityName": "AMSTERDAM", "countryName": "NETHERLANDS"},
        "timeZoneOffset": "+02:00",
    },
}

AIRLINES = {
    "AF": {"iataCode": "AF", "commonName": "AIR FRANCE", "businessName": "AIR FRANCE SA"},
    "TK": {"iataCode": "TK", "businessName": "TURKISH AIRLINES"},
    "KL": {"iataCode": "KL", "commonName": "KLM"},
}


class FakeClock:
    """Manually advanced clock shared by rate limiter, cache and pacer."""

    def __init__(self):
        self.current = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.sleeps = []

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return (self.current - datetime(2025, 1, 1, tzinfo=timezone.utc)).total_seconds()

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


class FakeAmadeus:
    """Reference-data endpoints served from AIRPORTS / AIRLINES."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls = []
        self.status_code = 200
        self.headers = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append({"request": request, "at": self.clock.monotonic()})

        if self.status_code != 200:
            return httpx.Response(self.status_code, headers=self.headers, json={"errors": []})

        params = request.url.params
        if request.url.path == "/v1/reference-data/locations":
            record = AIRPORTS.get(params.get("keyword"))
        elif request.url.path == "/v1/reference-data/airlines":
            record = AIRLINES.get(params.get("airlineCodes"))
        else:
            return httpx.Response(404, json={"errors": [{"detail": "not found"}]})

        return httpx.Response(200, json={"data": [record] if record else []})

    def calls_for(self, code: str) -> int:
        return sum(
            1 for call in self.calls
            if code in (
                call["request"].url.params.get("keyword"),
                call["request"].url.params.get("airlineCodes"),
            )
        )


async def fake_token() -> str:
    return "test-token"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_amadeus(clock):
    return FakeAmadeus(clock)


@pytest.fixture
def make_client(fake_amadeus, clock):
    def _make(interval_s: float = 0.0, token_provider=fake_token, handler=None):
        transport = httpx.MockTransport(handler or fake_amadeus.handler)
        return ReferenceDataClient(
            token_provider=token_provider,
            base_url=BASE_URL,
            http_client=httpx.AsyncClient(transport=transport),
            rate_limiter=RateLimiter(now=clock.now),
            pacer=RequestPacer(interval_s=interval_s, clock=clock.monotonic, sleep=clock.sleep),
            airport_cache=ReferenceCache(now=clock.now),
            airline_cache=ReferenceCache(now=clock.now),
        )
    return _make


@pytest.fixture
def reference_client(make_client):
    client = make_client()
    set_reference_client(client)
    yield client
    set_reference_client(None)
