import pytest

from app.services.flight.mappers.mapper import enrich_segment, process_flight_offers


def _segment(origin, destination, departure_at, arrival_at, carrier="TK", number="1951", **extra):
    segment = {
        "departure": {"iataCode": origin, "at": departure_at, "terminal": "1"},
        "arrival": {"iataCode": destination, "at": arrival_at},
        "carrierCode": carrier,
        "number": number,
        "duration": "PT3H",
        "aircraft": {"code": "321"},
    }
    segment.update(extra)
    return segment


def _offer(offer_id="TEST123", itineraries=None, **extra):
    offer = {
        "id": offer_id,
        "type": "flight-offer",
        "price": {
            "total": "199.99",
            "base": "150.00",
            "currency": "EUR",
            "grandTotal": "199.99",
            "fees": [{"amount": "10.50", "type": "SUPPLIER"}, {"amount": "0.00", "type": "TICKETING"}],
        },
        "itineraries": itineraries if itineraries is not None else [
            {"duration": "PT3H", "segments": [
                _segment("IST", "AMS", "2024-12-01T10:00:00", "2024-12-01T13:00:00")
            ]}
        ],
        "validatingAirlineCodes": ["TK"],
        "travelerPricings": [
            {"fareDetailsBySegment": [{"cabin": "BUSINESS", "includedCheckedBags": {"quantity": 1}}]}
        ],
        "numberOfBookableSeats": 4,
        "lastTicketingDate": "2024-11-28",
    }
    offer.update(extra)
    return offer


# --------------------------------------------------
# SEGMENTS
# --------------------------------------------------
@pytest.mark.asyncio
async def test_enrich_segment_placeholder():
    segment = await enrich_segment(None)

    assert segment["flightNumber"] == "Unknown"
    assert segment["departure"]["airportName"] == "Unknown Airport"
    assert segment["arrival"]["formatted"]["date"] == "Unknown date"
    assert segment["airline"] == {"code": "Unknown", "name": "Unknown Airline"}


@pytest.mark.asyncio
async def test_enrich_segment_basic(reference_client):
    raw = _segment("IST", "AMS", "2024-12-01T10:00:00", "2024-12-01T13:00:00")

    segment = await enrich_segment(raw, reference_client)

    assert segment["departure"]["iataCode"] == "IST"
    assert segment["departure"]["airportName"] == "ISTANBUL AIRPORT"
    assert segment["departure"]["cityName"] == "ISTANBUL"
    assert segment["departure"]["terminal"] == "1"
    assert segment["departure"]["formatted"]["time"] == "10:00 AM"
    assert segment["arrival"]["countryName"] == "NETHERLANDS"
    assert segment["arrival"]["terminal"] is None
    assert segment["airline"] == {"code": "TK", "name": "TURKISH AIRLINES"}
    assert segment["flightNumber"] == "TK1951"
    assert segment["duration"] == "3h"
    assert segment["stops"] == 0
    assert segment["aircraft"] == "321"

    # raw input is left untouched
    assert "airportName" not in raw["departure"]


@pytest.mark.asyncio
async def test_enrich_segment_defaults_missing_fields(reference_client):
    segment = await enrich_segment(
        {"departure": {"iataCode": "XYZ"}, "arrival": {}},
        reference_client
    )

    assert segment["flightNumber"] == "UNK000"
    assert segment["airline"] == {"code": "Unknown", "name": "UNK Airlines"}
    assert segment["departure"]["airportName"] == "XYZ Airport"
    assert segment["arrival"]["iataCode"] == "Unknown"
    assert segment["duration"] == "Unknown duration"


# --------------------------------------------------
# OFFERS
# --------------------------------------------------
@pytest.mark.asyncio
async def test_process_flight_offers_basic(reference_client):
    offers = await process_flight_offers([_offer()], reference_client)

    assert len(offers) == 1
    offer = offers[0]
    assert offer["id"] == "TEST123"
    assert offer["price"] == {
        "total": "199.99",
        "currency": "EUR",
        "base": "150.00",
        "fees": 10.5,
        "grandTotal": "199.99",
    }
    assert offer["outbound"]["duration"] == "3h"
    assert offer["outbound"]["segments"][0]["flightNumber"] == "TK1951"
    assert offer["return"] is None
    assert offer["validatingAirline"] == {"code": "TK", "name": "TURKISH AIRLINES"}
    assert offer["cabinClass"] == "BUSINESS"
    assert offer["numberOfBookableSeats"] == 4
    assert offer["oneWay"] is False
    assert offer["source"] == "GDS"


@pytest.mark.asyncio
async def test_process_round_trip_by_position(reference_client):
    outbound = {"duration": "PT7H", "segments": [
        _segment("CDG", "AMS", "2024-12-01T08:00:00", "2024-12-01T09:20:00", carrier="KL", number="1224"),
        _segment("AMS", "JFK", "2024-12-01T11:00:00", "2024-12-01T13:00:00", carrier="KL", number="641",
                 numberOfStops=1),
    ]}
    inbound = {"duration": "PT8H", "segments": [
        _segment("JFK", "CDG", "2024-12-08T18:00:00", "2024-12-09T07:30:00", carrier="AF", number="7")
    ]}

    offers = await process_flight_offers(
        [_offer(itineraries=[outbound, inbound], validatingAirlineCodes=["AF"])],
        reference_client
    )

    offer = offers[0]
    assert offer["outbound"]["totalStops"] == 1
    assert len(offer["outbound"]["segments"]) == 2
    assert offer["return"]["segments"][0]["departure"]["cityName"] == "NEW YORK"
    assert offer["validatingAirline"]["name"] == "AIR FRANCE"


@pytest.mark.asyncio
async def test_process_skips_offers_without_itineraries(reference_client):
    offers = await process_flight_offers(
        [{"id": "NO_ITINERARIES"}, None, _offer("OK")],
        reference_client
    )

    assert [o["id"] for o in offers] == ["OK"]


@pytest.mark.asyncio
async def test_process_defaults_bad_fee_fields(reference_client):
    odd = _offer("ODD")
    odd["price"]["fees"] = [{"amount": "n/a"}, "SUPPLIER", {"amount": "4.50"}, {"amount": None}]

    offers = await process_flight_offers([odd], reference_client)

    assert [o["id"] for o in offers] == ["ODD"]
    assert offers[0]["price"]["fees"] == 4.5
    assert offers[0]["price"]["total"] == "199.99"


@pytest.mark.asyncio
async def test_process_defaults_odd_segment_fields(reference_client):
    segment = _segment(
        "IST", "AMS", 1733050800, "2024-12-01T13:00:00",
        duration=150, aircraft="321", numberOfStops="2"
    )
    odd = _offer("ODD", itineraries=[{"duration": 180, "segments": [segment, "garbage"]}])
    odd["travelerPricings"] = [{"fareDetailsBySegment": {"cabin": "FIRST"}}]
    odd["numberOfBookableSeats"] = True

    offers = await process_flight_offers([odd], reference_client)

    offer = offers[0]
    mapped = offer["outbound"]["segments"][0]
    assert mapped["duration"] == "Unknown duration"
    assert mapped["departure"]["dateTime"] == ""
    assert mapped["departure"]["formatted"]["date"] == "Unknown date"
    assert mapped["aircraft"] == "Unknown"
    assert mapped["stops"] == 0
    assert offer["outbound"]["segments"][1]["flightNumber"] == "Unknown"
    assert offer["outbound"]["duration"] == "Unknown duration"
    assert offer["cabinClass"] == "ECONOMY"
    assert offer["numberOfBookableSeats"] == 0


@pytest.mark.asyncio
async def test_process_isolates_offer_with_unusable_itineraries(reference_client):
    broken = _offer("BROKEN", itineraries={"segments": []})

    offers = await process_flight_offers([broken, _offer("GOOD")], reference_client)

    assert [o["id"] for o in offers] == ["GOOD"]


@pytest.mark.asyncio
async def test_process_rejects_non_list(reference_client):
    assert await process_flight_offers(None, reference_client) == []
    assert await process_flight_offers({"data": []}, reference_client) == []
