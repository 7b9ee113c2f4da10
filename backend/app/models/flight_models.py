# backend/app/models/flight_models.py
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict


class AirportInfo(BaseModel):
    """Display record for an airport IATA code. Every field is always set."""
    model_config = ConfigDict(frozen=True)

    name: str
    city_name: str
    country_name: str
    time_zone_offset: Optional[str] = None

    @classmethod
    def fallback(cls, code: str) -> "AirportInfo":
        return cls(
            name=f"{code} Airport",
            city_name=f"{code} City",
            country_name="Unknown Country",
        )

    @classmethod
    def from_amadeus(cls, code: str, raw: dict) -> "AirportInfo":
        address = raw.get("address")
        if not isinstance(address, dict):
            address = {}
        return cls(
            name=raw.get("name") or f"{code} Airport",
            city_name=address.get("cityName") or "Unknown City",
            country_name=address.get("countryName") or "Unknown Country",
            time_zone_offset=raw.get("timeZoneOffset") or None,
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cityName": self.city_name,
            "countryName": self.country_name,
            "timeZoneOffset": self.time_zone_offset,
        }


class AirlineInfo(BaseModel):
    """Display record for an airline IATA code."""
    model_config = ConfigDict(frozen=True)

    name: str

    @classmethod
    def fallback(cls, code: str) -> "AirlineInfo":
        return cls(name=f"{code} Airlines")

    @classmethod
    def from_amadeus(cls, code: str, raw: dict) -> "AirlineInfo":
        return cls(
            name=raw.get("commonName") or raw.get("businessName") or f"{code} Airlines"
        )

    def to_wire(self) -> Dict[str, Any]:
        return {"name": self.name}


class FormattedDateTime(BaseModel):
    date: str
    time: str
    full: str


class CacheStats(BaseModel):
    airports: int
    airlines: int


class RateLimitStatus(BaseModel):
    is_rate_limited: bool
    reset_time: int             # epoch milliseconds, 0 = never limited
    can_make_request: bool
    cache_stats: CacheStats

    def to_wire(self) -> Dict[str, Any]:
        return {
            "isRateLimited": self.is_rate_limited,
            "resetTime": self.reset_time,
            "canMakeRequest": self.can_make_request,
            "cacheStats": self.cache_stats.model_dump(),
        }


class BookingValidation(BaseModel):
    is_valid: bool
    errors: List[str] = []
    fixed: Optional[Dict[str, Any]] = None
