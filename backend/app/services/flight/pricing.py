from typing import Any, Dict, List
import logging

from app.services.integration.amadeus.client import amadeus_post

logger = logging.getLogger("SkyFare-FlightPricing")


async def price_flight_offers(flight_offers: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Calls the Amadeus flight-offers/pricing API.

    Returns the full raw response (data, dictionaries, warnings) so it can
    be enriched and later re-submitted for booking. Upstream failures
    raise AmadeusAPIError.
    """
    body = {
        "data": {
            "type": "flight-offers-pricing",
            "flightOffers": flight_offers,
        }
    }

    response = await amadeus_post("/v1/shopping/flight-offers/pricing", body=body)

    logger.info(f"💰 Amadeus pricing OK | offers={len(flight_offers)}")
    return response
