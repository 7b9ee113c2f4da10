"""
Raw Amadeus flight-offers → display-ready offers for list views.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from app.models.flight_models import AirportInfo
from app.services.flight.formatters import format_date_time, format_duration
from app.services.flight.mappers.fields import (
    as_dict,
    code,
    dicts,
    fee_total,
    first_dict,
    first_value,
    to_count,
)
from app.services.integration.amadeus.reference_data import (
    ReferenceDataClient,
    get_reference_client,
)

logger = logging.getLogger("SkyFare-OfferMapper")


def _unknown_endpoint() -> Dict[str, Any]:
    return {
        "iataCode": "Unknown",
        "airportName": "Unknown Airport",
        "cityName": "Unknown",
        "countryName": "Unknown",
        "terminal": None,
        "dateTime": "",
        "formatted": format_date_time("").model_dump(),
    }


def placeholder_segment() -> Dict[str, Any]:
    return {
        "departure": _unknown_endpoint(),
        "arrival": _unknown_endpoint(),
        "airline": {"code": "Unknown", "name": "Unknown Airline"},
        "flightNumber": "Unknown",
        "duration": "Unknown",
        "stops": 0,
        "aircraft": "Unknown",
    }


def _map_endpoint(point: dict, airport: AirportInfo) -> Dict[str, Any]:
    at = point.get("at") if isinstance(point.get("at"), str) else ""
    return {
        "iataCode": code(point.get("iataCode")) or "Unknown",
        "airportName": airport.name,
        "cityName": airport.city_name,
        "countryName": airport.country_name,
        "terminal": point.get("terminal") or None,
        "dateTime": at,
        "formatted": format_date_time(at).model_dump(),
    }


async def enrich_segment(
    segment: Optional[dict],
    client: Optional[ReferenceDataClient] = None
) -> Dict[str, Any]:
    """Always returns a fully populated segment, a placeholder for None."""
    if not segment or not isinstance(segment, dict):
        return placeholder_segment()

    client = client or get_reference_client()
    departure = as_dict(segment.get("departure"))
    arrival = as_dict(segment.get("arrival"))
    carrier = code(segment.get("carrierCode"))

    departure_airport, arrival_airport, airline = await asyncio.gather(
        client.resolve_airport(code(departure.get("iataCode")) or "UNK"),
        client.resolve_airport(code(arrival.get("iataCode")) or "UNK"),
        client.resolve_airline(carrier or "UNK"),
    )

    return {
        "departure": _map_endpoint(departure, departure_airport),
        "arrival": _map_endpoint(arrival, arrival_airport),
        "airline": {
            "code": carrier or "Unknown",
            "name": airline.name,
        },
        "flightNumber": f"{carrier or 'UNK'}{segment.get('number') or '000'}",
        "duration": format_duration(segment.get("duration")),
        "stops": to_count(segment.get("numberOfStops")),
        "aircraft": code(as_dict(segment.get("aircraft")).get("code")) or "Unknown",
    }


async def _map_offer(offer: dict, client: ReferenceDataClient) -> Dict[str, Any]:
    raw_itineraries = offer["itineraries"]
    if not isinstance(raw_itineraries, list):
        raise TypeError(f"itineraries must be a list, got {type(raw_itineraries).__name__}")

    itineraries = []
    for itinerary in dicts(raw_itineraries):
        raw_segments = itinerary.get("segments")
        if not raw_segments or not isinstance(raw_segments, list):
            continue

        segments = [await enrich_segment(segment, client) for segment in raw_segments]
        itineraries.append({
            "duration": format_duration(itinerary.get("duration")),
            "totalStops": sum(to_count(s.get("numberOfStops")) for s in dicts(raw_segments)),
            "segments": segments,
        })

    validating_code = code(first_value(offer.get("validatingAirlineCodes"))) or "Unknown"
    validating_airline = await client.resolve_airline(validating_code)

    price = as_dict(offer.get("price"))
    fare = first_dict(first_dict(offer.get("travelerPricings")).get("fareDetailsBySegment"))
    seats = offer.get("numberOfBookableSeats")

    return {
        "id": offer.get("id") or "unknown",
        "price": {
            "total": price.get("total") or "0",
            "currency": price.get("currency") or "USD",
            "base": price.get("base") or "0",
            "fees": fee_total(price),
            "grandTotal": price.get("grandTotal") or price.get("total") or "0",
        },
        "outbound": itineraries[0] if len(itineraries) > 0 else None,
        "return": itineraries[1] if len(itineraries) > 1 else None,
        "validatingAirline": {
            "code": validating_code,
            "name": validating_airline.name,
        },
        "lastTicketingDate": offer.get("lastTicketingDate") or "",
        "numberOfBookableSeats": to_count(seats),
        "cabinClass": fare.get("cabin") or "ECONOMY",
        "oneWay": offer.get("oneWay") or False,
        "source": offer.get("source") or "GDS",
    }


async def process_flight_offers(
    flight_offers: Any,
    client: Optional[ReferenceDataClient] = None
) -> List[Dict[str, Any]]:
    """
    Simplified offers for list views. Offers without itineraries are
    skipped and a malformed offer never aborts the rest of the batch.
    """
    if not isinstance(flight_offers, list):
        return []

    client = client or get_reference_client()
    processed = []

    for offer in flight_offers:
        if not isinstance(offer, dict) or not offer.get("itineraries"):
            continue

        try:
            processed.append(await _map_offer(offer, client))
        except (KeyError, TypeError, ValueError, AttributeError):
            logger.exception(f"❌ Skipping malformed flight offer {offer.get('id')}")

    return processed
