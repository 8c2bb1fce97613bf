"""
Place enrichment and route computation passes over a trip's days.

Both passes mutate the trip in place and call Google Maps one item/day at a
time. An ExternalLookupFailed from the client aborts the pass; the caller must
not persist a trip whose pass raised.
"""

import logging
from typing import Any, Protocol
from urllib.parse import quote

from pydantic import BaseModel

from app.core.maps_service import DirectionsResult, LatLng, PlaceResult
from app.core.schemas import Trip, TripDay, TripItem, TripLink, TripLocation, TripRoute, TravelMode

logger = logging.getLogger(__name__)

GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="
GOOGLE_SEARCH_URL = "https://www.google.com/search?q="


class MapsLookupClient(Protocol):
    async def find_place_from_text(self, query: str) -> PlaceResult | None: ...

    async def get_directions(self, points: list[LatLng], mode: str) -> DirectionsResult | None: ...


class EnrichmentResult(BaseModel):
    updated: bool = False
    updated_items: int = 0


class RoutingResult(BaseModel):
    updated: bool = False
    updated_days: int = 0


def _encode(value: str) -> str:
    # Same character set as JavaScript's encodeURIComponent
    return quote(value, safe="-_.!~*'()")


def _present(value: Any) -> bool:
    return value is not None and value != ""


def _first_present(existing: Any, update: Any) -> Any:
    return existing if _present(existing) else update


def select_days(trip: Trip, day_index: int | None) -> list[TripDay]:
    if day_index is None:
        return list(trip.days)
    return [day for day in trip.days if day.day_index == day_index]


def needs_location(item: TripItem) -> bool:
    location = item.location
    if location is None:
        return True
    return (
        not location.place_id
        or location.lat is None
        or location.lng is None
        or not location.address
    )


def build_location_query(item: TripItem, destination: str | None) -> str:
    location = item.location
    name_part = (location.name if location else None) or item.title
    address_part = location.address if location else None
    return ", ".join(part for part in (name_part, address_part, destination) if part)


def merge_location(existing: TripLocation | None, update: TripLocation) -> TripLocation:
    """Fill only missing fields; values already on the item always win."""
    if existing is None:
        return update.model_copy()
    return TripLocation(
        name=_first_present(existing.name, update.name),
        address=_first_present(existing.address, update.address),
        place_id=_first_present(existing.place_id, update.place_id),
        lat=_first_present(existing.lat, update.lat),
        lng=_first_present(existing.lng, update.lng),
    )


def ensure_link(links: list[TripLink], label: str, url: str) -> list[TripLink]:
    """Append a link unless one with the same label (any case) or URL exists."""
    for link in links:
        if link.label.lower() == label.lower() or link.url == url:
            return links
    return [*links, TripLink(label=label, url=url)]


def reference_links(query: str, place_id: str | None) -> list[tuple[str, str]]:
    maps_query = f"place_id:{place_id}" if place_id else query
    return [
        ("Google Maps", GOOGLE_MAPS_SEARCH_URL + _encode(maps_query)),
        ("Search", GOOGLE_SEARCH_URL + _encode(query)),
        ("Booking", GOOGLE_SEARCH_URL + _encode(f"{query} booking")),
    ]


async def enrich_trip_places(
    trip: Trip, maps_client: MapsLookupClient, day_index: int | None = None
) -> EnrichmentResult:
    """
    Resolve missing item locations through the Places API.

    Args:
        trip: Trip to enrich in place
        maps_client: Google Maps client or any MapsLookupClient
        day_index: Restrict the pass to this day; all days when None

    Returns:
        EnrichmentResult with whether anything changed and how many items
    """
    result = EnrichmentResult()

    for day in select_days(trip, day_index):
        for item in day.items:
            if not needs_location(item):
                continue

            query = build_location_query(item, trip.destination)
            if not query:
                continue

            place = await maps_client.find_place_from_text(query)
            if not place:
                logger.debug(f"No place found for '{query}'")
                continue

            before = (item.location, list(item.links))
            item.location = merge_location(
                item.location,
                TripLocation(
                    name=place.name,
                    address=place.address,
                    place_id=place.place_id,
                    lat=place.lat,
                    lng=place.lng,
                ),
            )

            links = list(item.links)
            for label, url in reference_links(query, place.place_id):
                links = ensure_link(links, label, url)
            item.links = links

            # A lookup that only repeats what the item already has is not an update
            if (item.location, item.links) == before:
                continue
            result.updated = True
            result.updated_items += 1

    logger.info(f"Enriched {result.updated_items} items for trip {trip.id}")
    return result


def day_route_points(day: TripDay) -> list[LatLng]:
    """Item coordinates in item order, skipping items without lat and lng."""
    points: list[LatLng] = []
    for item in day.items:
        location = item.location
        if location is None or location.lat is None or location.lng is None:
            continue
        points.append(LatLng(lat=location.lat, lng=location.lng))
    return points


async def compute_trip_routes(
    trip: Trip,
    maps_client: MapsLookupClient,
    day_index: int | None = None,
    mode: TravelMode = "driving",
) -> RoutingResult:
    """
    Attach an aggregate route to every selected day with two or more located items.

    A computed route replaces the day's previous route entirely.
    """
    result = RoutingResult()

    for day in select_days(trip, day_index):
        points = day_route_points(day)
        if len(points) < 2:
            continue

        directions = await maps_client.get_directions(points, mode)
        if not directions or not directions.polyline:
            continue

        day.route = TripRoute(
            mode=mode,
            polyline=directions.polyline,
            distance_meters=directions.distance_meters,
            duration_seconds=directions.duration_seconds,
        )
        result.updated = True
        result.updated_days += 1

    logger.info(f"Computed {mode} routes for {result.updated_days} days of trip {trip.id}")
    return result
