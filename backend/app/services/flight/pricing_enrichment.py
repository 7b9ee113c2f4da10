"""
Pricing response enrichment.

The pricing response is re-submitted almost verbatim to flight-orders,
so nothing here renames or removes an upstream key. Display data is
added under `_enriched` at root, offer, itinerary and segment level,
and booking-mandatory fields are backfilled by booking_compat.

Flow:
    deep copy → collect unique codes → resolve concurrently
    → annotate → backfill → summaries
"""
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from app.models.flight_models import AirlineInfo, AirportInfo
from app.services.flight.formatters import format_date_time, format_duration
from app.services.flight.mappers.fields import (
    as_dict,
    code,
    dicts,
    fee_total,
    first_dict,
    first_value,
    to_count,
    to_float,
)
from app.services.flight.mappers.booking_compat import backfill_booking_fields, structural_errors
from app.services.integration.amadeus.reference_data import (
    ReferenceDataClient,
    get_reference_client,
)
from app.services.integration.common.errors import AmadeusAuthError

logger = logging.getLogger("SkyFare-PricingEnrichment")

ITINERARY_DIRECTIONS = ("outbound", "return")


def _processed_at() -> str:
    return datetime.now(timezone.utc).isoformat()


def _flight_offers(response: dict) -> List[dict]:
    data = response.get("data")
    if isinstance(data, dict):
        return dicts(data.get("flightOffers"))
    return dicts(data)


def _itineraries(offer: dict) -> List[dict]:
    return dicts(offer.get("itineraries"))


def _segments(itinerary: dict) -> List[dict]:
    return dicts(itinerary.get("segments"))


def _point(segment: dict, side: str) -> dict:
    return as_dict(segment.get(side))


def _operating_code(segment: dict) -> Optional[str]:
    return code(as_dict(segment.get("operating")).get("carrierCode"))


def _validating_code(offer: dict) -> Optional[str]:
    validating = code(first_value(offer.get("validatingAirlineCodes")))
    if validating:
        return validating
    for itinerary in _itineraries(offer):
        for segment in _segments(itinerary):
            carrier = code(segment.get("carrierCode"))
            if carrier:
                return carrier
    return None


def _quoted_total(offer: dict) -> Optional[float]:
    """Upstream price total, read before any backfill can default it to 0."""
    previous = as_dict(as_dict(offer.get("_enriched")).get("summary"))
    if "totalPrice" in previous and previous["totalPrice"] is None:
        # already enriched once and its price was a backfilled default
        return None
    return to_float(as_dict(offer.get("price")).get("total"))


# ═══════════════════════════════════════════════════════════════════
# CODE COLLECTION
# ═══════════════════════════════════════════════════════════════════

def collect_reference_codes(offers: List[dict]) -> Tuple[Set[str], Set[str]]:
    """Distinct airport and airline codes referenced anywhere in `offers`."""
    airports: Set[str] = set()
    airlines: Set[str] = set()

    for offer in offers:
        validating = _validating_code(offer)
        if validating:
            airlines.add(validating)

        for itinerary in _itineraries(offer):
            for segment in _segments(itinerary):
                for side in ("departure", "arrival"):
                    iata = code(_point(segment, side).get("iataCode"))
                    if iata:
                        airports.add(iata)
                for carrier in (code(segment.get("carrierCode")), _operating_code(segment)):
                    if carrier:
                        airlines.add(carrier)

    return airports, airlines


# ═══════════════════════════════════════════════════════════════════
# ANNOTATION
# ═══════════════════════════════════════════════════════════════════

class _Lookup:
    def __init__(self, airports: Dict[str, AirportInfo], airlines: Dict[str, AirlineInfo]):
        self.airports = airports
        self.airlines = airlines

    def airport(self, iata: Optional[str]) -> AirportInfo:
        return self.airports.get(iata) or AirportInfo.fallback(iata or "UNK")

    def airline(self, carrier: Optional[str]) -> AirlineInfo:
        return self.airlines.get(carrier) or AirlineInfo.fallback(carrier or "UNK")


def _point_annotation(point: dict, lookup: _Lookup) -> Dict[str, Any]:
    iata = code(point.get("iataCode"))
    airport = lookup.airport(iata)
    return {
        "iataCode": iata or "Unknown",
        "airportName": airport.name,
        "cityName": airport.city_name,
        "countryName": airport.country_name,
        "timeZoneOffset": airport.time_zone_offset,
        "terminal": point.get("terminal") or None,
        "formatted": format_date_time(point.get("at")).model_dump(),
    }


def _annotate_segment(segment: dict, lookup: _Lookup) -> None:
    carrier = code(segment.get("carrierCode"))
    annotation = {
        "departure": _point_annotation(_point(segment, "departure"), lookup),
        "arrival": _point_annotation(_point(segment, "arrival"), lookup),
        "airline": {"code": carrier or "Unknown", "name": lookup.airline(carrier).name},
        "flightNumber": f"{carrier or 'UNK'}{segment.get('number') or '000'}",
        "formattedDuration": format_duration(segment.get("duration")),
        "aircraft": code(as_dict(segment.get("aircraft")).get("code")) or "Unknown",
    }

    operating = _operating_code(segment)
    if operating and operating != carrier:
        annotation["operatingAirline"] = {
            "code": operating,
            "name": lookup.airline(operating).name,
        }

    segment["_enriched"] = annotation


def _endpoint_summary(point: dict, lookup: _Lookup) -> Dict[str, Any]:
    iata = code(point.get("iataCode"))
    return {"iataCode": iata or "Unknown", **lookup.airport(iata).to_wire()}


def _annotate_itinerary(itinerary: dict, index: int, lookup: _Lookup) -> None:
    segments = _segments(itinerary)
    for segment in segments:
        _annotate_segment(segment, lookup)

    origin = _point(segments[0], "departure") if segments else {}
    destination = _point(segments[-1], "arrival") if segments else {}

    itinerary["_enriched"] = {
        "direction": ITINERARY_DIRECTIONS[index] if index < len(ITINERARY_DIRECTIONS) else "additional",
        "formattedDuration": format_duration(itinerary.get("duration")),
        "totalStops": sum(to_count(s.get("numberOfStops")) for s in segments),
        "segmentCount": len(segments),
        "origin": _endpoint_summary(origin, lookup),
        "destination": _endpoint_summary(destination, lookup),
    }


def _offer_summary(offer: dict, quoted_total: Optional[float], lookup: _Lookup) -> Dict[str, Any]:
    price = as_dict(offer.get("price"))
    validating = _validating_code(offer)
    fare = first_dict(first_dict(offer.get("travelerPricings")).get("fareDetailsBySegment"))

    return {
        "totalPrice": price.get("total") if quoted_total is not None else None,
        "grandTotal": (price.get("grandTotal") or price.get("total")) if quoted_total is not None else None,
        "basePrice": price.get("base"),
        "currency": price.get("currency"),
        "totalFees": fee_total(price),
        "validatingAirline": {
            "code": validating or "Unknown",
            "name": lookup.airline(validating).name,
        },
        "cabinClass": fare.get("cabin") or "ECONOMY",
        "numberOfBookableSeats": offer.get("numberOfBookableSeats"),
        "lastTicketingDate": offer.get("lastTicketingDate"),
    }


def _is_bookable(offer: dict, quoted_total: Optional[float]) -> bool:
    # an offer whose price had to be defaulted cannot be booked at that price
    if quoted_total is None:
        return False
    seats = offer.get("numberOfBookableSeats")
    if isinstance(seats, bool) or not isinstance(seats, int) or seats <= 0:
        return False
    return not structural_errors(offer)


def _annotate_offer(offer: dict, lookup: _Lookup) -> Optional[float]:
    """Annotate and backfill `offer` in place; returns its upstream total."""
    quoted_total = _quoted_total(offer)

    itineraries = _itineraries(offer)
    for index, itinerary in enumerate(itineraries):
        _annotate_itinerary(itinerary, index, lookup)

    # summary reflects the offer as it will be booked
    backfill_booking_fields(offer)

    summary = _offer_summary(offer, quoted_total, lookup)
    summary["isBookable"] = _is_bookable(offer, quoted_total)
    offer["_enriched"] = {
        "summary": summary,
        "itineraryCount": len(itineraries),
    }
    return quoted_total


def _response_summary(offers: List[dict], quoted_totals: List[Optional[float]]) -> Dict[str, Any]:
    priced = [(o, total) for o, total in zip(offers, quoted_totals) if total is not None]
    prices = [total for _, total in priced]
    currency = next(
        (c for c in (as_dict(o.get("price")).get("currency") for o, _ in priced) if c),
        None
    )
    return {
        "totalOffers": len(offers),
        "bookableOffers": sum(1 for o in offers if o["_enriched"]["summary"]["isBookable"]),
        "minPrice": min(prices) if prices else None,
        "maxPrice": max(prices) if prices else None,
        "currency": currency,
    }


# ═══════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════

async def enrich_pricing_response(
    pricing_response: Any,
    client: Optional[ReferenceDataClient] = None
) -> Any:
    """
    Annotated deep copy of an Amadeus pricing response.

    Never raises for bad data or upstream outages; on an unexpected
    error the untouched copy is returned with an `_enriched.error`
    marker. Token failures propagate.
    """
    if not isinstance(pricing_response, dict):
        logger.warning(f"Pricing response is not an object: {type(pricing_response)}")
        return copy.deepcopy(pricing_response)

    client = client or get_reference_client()
    enriched = copy.deepcopy(pricing_response)

    try:
        offers = _flight_offers(enriched)
        airport_codes, airline_codes = collect_reference_codes(offers)
        airports, airlines = await client.resolve_many(airport_codes, airline_codes)
        lookup = _Lookup(airports, airlines)

        quoted_totals = [_annotate_offer(offer, lookup) for offer in offers]

        enriched["_enriched"] = {
            "processedAt": _processed_at(),
            "airports": {iata: record.to_wire() for iata, record in airports.items()},
            "airlines": {carrier: record.to_wire() for carrier, record in airlines.items()},
            "summary": _response_summary(offers, quoted_totals),
            "rateLimitStatus": client.get_rate_limit_status().to_wire(),
        }

        logger.info(
            f"✅ Pricing response enriched | offers={len(offers)} "
            f"airports={len(airports)} airlines={len(airlines)}"
        )
        return enriched

    except AmadeusAuthError:
        raise
    except Exception as e:
        logger.exception("❌ Pricing enrichment failed, returning original data")
        fallback = copy.deepcopy(pricing_response)
        fallback["_enriched"] = {
            "error": str(e) or type(e).__name__,
            "processedAt": _processed_at(),
            "originalDataPreserved": True,
        }
        return fallback
