"""
Flight search - Amadeus Flight Offers Search (GET /v2/shopping/flight-offers).

Returns raw flight-offer dicts; display mapping happens in mappers.mapper and
pricing/booking reuse the raw shape untouched.
"""
from typing import Optional, Dict, Any, List
import logging

from app.services.integration.amadeus.client import amadeus_get

logger = logging.getLogger("SkyFare-FlightSearch")

SEARCH_ENDPOINT = "/v2/shopping/flight-offers"


def build_search_params(
    origin: str,
    destination: str,
    departure_date: str,
    adults: int = 1,
    return_date: Optional[str] = None,
    travel_class: Optional[str] = None,
    max_results: int = 10,
    currency: Optional[str] = None,
    non_stop: bool = False
) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "originLocationCode": origin.upper(),
        "destinationLocationCode": destination.upper(),
        "departureDate": departure_date,
        "adults": adults,
        "max": max_results
    }

    # optional filters are omitted rather than sent empty, Amadeus rejects blanks
    if return_date:
        params["returnDate"] = return_date
    if travel_class:
        params["travelClass"] = travel_class.upper()
    if currency:
        params["currencyCode"] = currency.upper()
    if non_stop:
        params["nonStop"] = "true"

    return params


async def search_flights(
    origin: str,
    destination: str,
    departure_date: str,
    adults: int = 1,
    return_date: Optional[str] = None,
    travel_class: Optional[str] = None,
    max_results: int = 10,
    currency: Optional[str] = None,
    non_stop: bool = False
) -> List[Dict[str, Any]]:
    """Raw offers of type "flight-offer". Upstream failures raise AmadeusAPIError."""
    params = build_search_params(
        origin, destination, departure_date, adults,
        return_date, travel_class, max_results, currency, non_stop
    )
    response = await amadeus_get(SEARCH_ENDPOINT, params)

    data = response.get("data")
    if not isinstance(data, list):
        logger.warning(f"Search {origin}->{destination}: response.data is not a list")
        return []

    offers = [o for o in data if isinstance(o, dict) and o.get("type") == "flight-offer"]
    logger.info(f"✈️ Search {origin.upper()}->{destination.upper()} on {departure_date}: {len(offers)} offers")
    return offers
