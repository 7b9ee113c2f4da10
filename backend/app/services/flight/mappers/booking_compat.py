"""
Booking compatibility shim for Amadeus flight-offers.

The pricing endpoint omits some fields for certain fare types that the
flight-orders endpoint then rejects. backfill_booking_fields fills them
with the configured defaults; it only ever adds missing values. Drop
this module once upstream stops omitting them.
"""
import copy
import hashlib
import json
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from app.core import config
from app.models.flight_models import BookingValidation
from app.services.flight.mappers.fields import as_dict, code, dicts
from app.services.integration.common.errors import FlightOfferValidationError

logger = logging.getLogger("SkyFare-BookingCompat")

ENRICHMENT_KEYS = ("_enriched", "_formattedDuration")


def _missing(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _generated_offer_id(offer: dict) -> str:
    """
    Stable id derived from the flights and price, so the same upstream
    offer gets the same id however often it is backfilled.
    """
    flights = [
        [
            segment.get("carrierCode"),
            segment.get("number"),
            as_dict(segment.get("departure")).get("iataCode"),
            as_dict(segment.get("departure")).get("at"),
            as_dict(segment.get("arrival")).get("iataCode"),
            as_dict(segment.get("arrival")).get("at"),
        ]
        for segment in _iter_segments(offer)
    ]
    price = as_dict(offer.get("price"))
    fingerprint = json.dumps([flights, price.get("total"), price.get("currency")], default=str)
    return f"generated-{hashlib.sha1(fingerprint.encode()).hexdigest()[:12]}"


def _segment_duration(segment: dict) -> str:
    try:
        departure = datetime.fromisoformat(segment["departure"]["at"])
        arrival = datetime.fromisoformat(segment["arrival"]["at"])
        # naive minus aware raises TypeError
        minutes = int((arrival - departure).total_seconds() // 60)
    except (KeyError, TypeError, ValueError):
        return "PT0H0M"

    if minutes < 0:
        return "PT0H0M"
    return f"PT{minutes // 60}H{minutes % 60}M"


def _iter_segments(offer: dict):
    for itinerary in dicts(offer.get("itineraries")):
        yield from dicts(itinerary.get("segments"))


def _default_traveler_pricings(offer: dict) -> List[Dict[str, Any]]:
    price = as_dict(offer.get("price"))
    return [{
        "travelerId": "1",
        "fareOption": "STANDARD",
        "travelerType": "ADULT",
        "price": {
            "currency": price.get("currency") or config.BOOKING_DEFAULT_CURRENCY,
            "total": price.get("total") or "0",
            "base": price.get("base") or price.get("total") or "0",
            "taxes": price.get("taxes") or [],
        },
        "fareDetailsBySegment": [
            {
                "segmentId": segment.get("id"),
                "cabin": "ECONOMY",
                "fareBasis": "ECONOMY",
                "class": "Y",
                "includedCheckedBags": {
                    "quantity": 0,
                    "weight": 0,
                    "weightUnit": "KG",
                },
            }
            for segment in _iter_segments(offer)
        ],
    }]


def _backfill_segments(offer: dict, filled: List[str]) -> None:
    itineraries = offer.get("itineraries")
    if not isinstance(itineraries, list):
        return
    for itin_index, itinerary in enumerate(itineraries):
        if not isinstance(itinerary, dict) or not isinstance(itinerary.get("segments"), list):
            continue
        for seg_index, segment in enumerate(itinerary["segments"]):
            if not isinstance(segment, dict):
                continue
            if _missing(segment.get("id")):
                segment["id"] = f"{itin_index + 1}_{seg_index + 1}"
                filled.append(f"itineraries[{itin_index}].segments[{seg_index}].id")
            if _missing(segment.get("duration")):
                segment["duration"] = _segment_duration(segment)
                filled.append(f"itineraries[{itin_index}].segments[{seg_index}].duration")
            if segment.get("numberOfStops") is None:
                segment["numberOfStops"] = 0


def _backfill_price(offer: dict, filled: List[str]) -> None:
    price = offer.get("price")
    if not isinstance(price, dict):
        offer["price"] = {
            "currency": config.BOOKING_DEFAULT_CURRENCY,
            "total": "0",
            "base": "0",
            "fees": [],
            "grandTotal": "0",
        }
        filled.append("price")
        return

    defaults = {
        "currency": config.BOOKING_DEFAULT_CURRENCY,
        "total": "0",
        "base": price.get("total") or "0",
        "fees": [],
        "grandTotal": price.get("total") or "0",
    }
    for key, value in defaults.items():
        if key not in price or price[key] is None or price[key] == "":
            price[key] = value
            filled.append(f"price.{key}")


def backfill_booking_fields(offer: dict, today: Optional[date] = None) -> List[str]:
    """
    Fill booking-mandatory fields missing from `offer`, in place.
    Returns the names of the fields that were filled.
    """
    today = today or date.today()
    filled: List[str] = []

    if _missing(offer.get("id")):
        offer["id"] = _generated_offer_id(offer)
        filled.append("id")

    if _missing(offer.get("type")):
        offer["type"] = "flight-offer"
        filled.append("type")

    if _missing(offer.get("source")):
        offer["source"] = config.BOOKING_DEFAULT_SOURCE
        filled.append("source")

    codes = offer.get("validatingAirlineCodes")
    if not isinstance(codes, list) or not codes:
        first_carrier = next(
            (code(s.get("carrierCode")) for s in _iter_segments(offer) if code(s.get("carrierCode"))),
            None
        )
        offer["validatingAirlineCodes"] = [first_carrier or config.BOOKING_UNKNOWN_CARRIER]
        filled.append("validatingAirlineCodes")

    _backfill_segments(offer, filled)
    _backfill_price(offer, filled)

    pricings = offer.get("travelerPricings")
    if not isinstance(pricings, list) or not pricings:
        offer["travelerPricings"] = _default_traveler_pricings(offer)
        filled.append("travelerPricings")

    if _missing(offer.get("pricingOptions")):
        offer["pricingOptions"] = {
            "fareType": ["PUBLISHED"],
            "includedCheckedBagsOnly": False,
        }
        filled.append("pricingOptions")

    if _missing(offer.get("numberOfBookableSeats")):
        offer["numberOfBookableSeats"] = config.BOOKING_DEFAULT_SEATS
        filled.append("numberOfBookableSeats")

    if _missing(offer.get("lastTicketingDate")):
        offer["lastTicketingDate"] = (
            today + timedelta(days=config.BOOKING_TICKETING_WINDOW_DAYS)
        ).isoformat()
        filled.append("lastTicketingDate")

    if offer.get("oneWay") is None:
        offer["oneWay"] = True
    if offer.get("nonHomogeneous") is None:
        offer["nonHomogeneous"] = False

    if filled:
        logger.info(f"Backfilled offer {offer['id']}: {', '.join(filled)}")

    return filled


def strip_enrichment(offer: dict) -> dict:
    """Deep copy of `offer` without any display annotations."""
    clean = copy.deepcopy(offer)
    for key in ENRICHMENT_KEYS:
        clean.pop(key, None)

    for itinerary in clean.get("itineraries") or []:
        if not isinstance(itinerary, dict):
            continue
        for key in ENRICHMENT_KEYS:
            itinerary.pop(key, None)
        for segment in itinerary.get("segments") or []:
            if not isinstance(segment, dict):
                continue
            for key in ENRICHMENT_KEYS:
                segment.pop(key, None)
            for side in ("departure", "arrival"):
                if isinstance(segment.get(side), dict):
                    segment[side].pop("_enriched", None)

    return clean


def structural_errors(offer: dict) -> List[str]:
    errors = []
    itineraries = offer.get("itineraries")
    if not isinstance(itineraries, list) or not itineraries:
        return ["Flight offer must have at least one itinerary"]

    for itin_index, itinerary in enumerate(itineraries):
        segments = itinerary.get("segments") if isinstance(itinerary, dict) else None
        if not isinstance(segments, list) or not segments:
            errors.append(f"Itinerary {itin_index} must have at least one segment")
            continue

        for seg_index, segment in enumerate(segments):
            where = f"Segment {seg_index} in itinerary {itin_index}"
            if not isinstance(segment, dict):
                errors.append(f"{where} is not an object")
                continue
            for side in ("departure", "arrival"):
                point = as_dict(segment.get(side))
                if not point.get("iataCode") or not point.get("at"):
                    errors.append(f"{where} missing {side} data")
            if not segment.get("carrierCode") or not segment.get("number"):
                errors.append(f"{where} missing carrier information")

    return errors


def prepare_offer_for_booking(offer: dict) -> dict:
    """
    Strip annotations, backfill compatibility fields and check structure.
    Raises FlightOfferValidationError listing every problem found.
    """
    if not isinstance(offer, dict) or not offer:
        raise FlightOfferValidationError(["Flight offer is required"])

    fixed = strip_enrichment(offer)
    backfill_booking_fields(fixed)

    errors = structural_errors(fixed)
    if errors:
        raise FlightOfferValidationError(errors)

    return fixed


def validate_flight_offer_for_booking(offer: dict) -> BookingValidation:
    try:
        fixed = prepare_offer_for_booking(offer)
    except FlightOfferValidationError as e:
        return BookingValidation(is_valid=False, errors=e.errors)

    return BookingValidation(is_valid=True, errors=[], fixed=fixed)
