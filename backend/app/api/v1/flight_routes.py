"""
SkyFare API - Flight Routes
Flight operations over the Amadeus API

Endpoints:
    GET  /flights/search            - Flight search (display-ready offers)
    POST /flights/price             - Pricing + enrichment
    POST /flights/offers/process    - Simplify raw offers for list views
    POST /flights/booking/validate  - Prepare an offer for flight-orders
    GET  /flights/reference/status  - Rate limit / cache introspection
"""

from typing import Any, Dict, Optional
import logging
import time

from fastapi import APIRouter, Body, HTTPException, Query
from fastapi.encoders import jsonable_encoder

from app.services.flight.mappers.booking_compat import validate_flight_offer_for_booking
from app.services.flight.mappers.mapper import process_flight_offers
from app.services.flight.pricing import price_flight_offers
from app.services.flight.pricing_enrichment import enrich_pricing_response
from app.services.flight.search import search_flights
from app.services.integration.amadeus.reference_data import get_rate_limit_status
from app.services.integration.common.amadeus_error_mapper import map_amadeus_error
from app.services.integration.common.errors import AmadeusAPIError, AppError

router = APIRouter(prefix="/flights", tags=["Flights"])
logger = logging.getLogger("SkyFare-Flights")


def _upstream_http_error(error: AmadeusAPIError) -> HTTPException:
    logger.warning(f"Amadeus rejected request: {error}")
    if error.errors and isinstance(error.errors[0], dict):
        status, body = map_amadeus_error(error.errors[0])
        return HTTPException(status_code=status, detail=body)

    return HTTPException(
        status_code=502,
        detail=AppError(code="AMADEUS_ERROR", message=str(error)).model_dump()
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


# --------------------------------------------------
# FLIGHT SEARCH
# --------------------------------------------------
@router.get("/search")
async def search_flights_endpoint(
    origin: str = Query(..., min_length=3, max_length=3, description="Origin IATA code"),
    destination: str = Query(..., min_length=3, max_length=3, description="Destination IATA code"),
    date: str = Query(..., description="Departure date (YYYY-MM-DD)"),
    adults: int = Query(default=1, ge=1, le=9),
    return_date: Optional[str] = Query(default=None),
    travel_class: Optional[str] = Query(default=None),
    max_results: int = Query(default=10, ge=1, le=50),
    currency: Optional[str] = Query(default=None, min_length=3, max_length=3),
    non_stop: bool = Query(default=False)
):
    try:
        flights = await search_flights(
            origin=origin,
            destination=destination,
            departure_date=date,
            adults=adults,
            return_date=return_date,
            travel_class=travel_class,
            max_results=max_results,
            currency=currency,
            non_stop=non_stop
        )
        offers = await process_flight_offers(flights)
    except AmadeusAPIError as e:
        raise _upstream_http_error(e)

    return jsonable_encoder({
        "success": True,
        "route": f"{origin.upper()} → {destination.upper()}",
        "date": date,
        "return_date": return_date,
        "count": len(offers),
        "flights": offers,
        "raw": flights,
    })


# --------------------------------------------------
# FLIGHT PRICING
# --------------------------------------------------
@router.post("/price")
async def price_flight(payload: Dict[str, Any] = Body(...)):
    """
    Price offers with Amadeus and return the enriched response.
    The response keeps the upstream shape so it can be booked later.
    """
    body = payload.get("priceFlightOffersBody")
    if not body:
        raise HTTPException(
            status_code=400,
            detail="Missing required parameter: [ priceFlightOffersBody ]"
        )

    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, dict) or not isinstance(data.get("flightOffers"), list):
        raise HTTPException(
            status_code=400,
            detail="Invalid request structure. Expected: { data: { flightOffers: [...] } }"
        )

    try:
        pricing_start = time.perf_counter()
        priced = await price_flight_offers(data["flightOffers"])
        pricing_time = _elapsed_ms(pricing_start)

        enrichment_start = time.perf_counter()
        enriched = await enrich_pricing_response(priced)
        enrichment_time = _elapsed_ms(enrichment_start)
    except AmadeusAPIError as e:
        raise _upstream_http_error(e)

    return jsonable_encoder({
        "message": "Flight pricing completed successfully",
        "meta": {
            "performance": {
                "pricingTime": f"{pricing_time}ms",
                "enrichmentTime": f"{enrichment_time}ms",
                "totalTime": f"{pricing_time + enrichment_time}ms",
            },
            "rateLimitStatus": get_rate_limit_status(),
            "enriched": True,
        },
        "data": enriched,
    })


# --------------------------------------------------
# OFFER PROCESSING
# --------------------------------------------------
@router.post("/offers/process")
async def process_offers(payload: Dict[str, Any] = Body(...)):
    offers = await process_flight_offers(payload.get("flightOffers"))
    return {"count": len(offers), "flightOffers": offers}


# --------------------------------------------------
# BOOKING PREPARATION
# --------------------------------------------------
@router.post("/booking/validate")
async def validate_for_booking(payload: Dict[str, Any] = Body(...)):
    result = validate_flight_offer_for_booking(payload.get("flightOffer"))
    if not result.is_valid:
        raise HTTPException(
            status_code=422,
            detail={"isValid": False, "errors": result.errors}
        )

    return {"isValid": True, "errors": [], "flightOffer": result.fixed}


# --------------------------------------------------
# REFERENCE DATA STATUS
# --------------------------------------------------
@router.get("/reference/status")
async def reference_status():
    return get_rate_limit_status()
