"""
Google Maps Places and Directions integration used by trip enrichment and routing.
"""

from typing import Any

import httpx
from pydantic import BaseModel

from app.core.errors import ExternalLookupFailed

GOOGLE_MAPS_API_BASE = "https://maps.googleapis.com/maps/api"


class PlaceResult(BaseModel):
    place_id: str
    name: str | None = None
    address: str | None = None
    lat: float
    lng: float


class DirectionsResult(BaseModel):
    polyline: str
    distance_meters: float
    duration_seconds: float


class LatLng(BaseModel):
    lat: float
    lng: float

    def as_param(self) -> str:
        return f"{self.lat},{self.lng}"


def normalize_google_error(status: str | None, message: str | None = None) -> str | None:
    """Return an error message for any API status other than OK / ZERO_RESULTS."""
    if status in ("OK", "ZERO_RESULTS"):
        return None
    return message or f"Google Maps error: {status}"


def sum_route_legs(legs: list[dict[str, Any]]) -> tuple[float, float]:
    """Total distance (meters) and duration (seconds); missing values count as zero."""
    distance = 0.0
    duration = 0.0
    for leg in legs:
        distance += (leg.get("distance") or {}).get("value") or 0
        duration += (leg.get("duration") or {}).get("value") or 0
    return distance, duration


class GoogleMapsClient:
    """Async client for the two Google Maps endpoints the trip pipeline needs."""

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self._http_client = http_client
        self.timeout = timeout

    async def _get_json(self, path: str, params: dict[str, Any], label: str) -> dict[str, Any]:
        url = f"{GOOGLE_MAPS_API_BASE}/{path}"
        params = {**params, "key": self.api_key}

        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, params=params, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise ExternalLookupFailed(f"{label} request failed: {e}") from e

        if response.status_code >= 400:
            raise ExternalLookupFailed(f"{label} request failed: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalLookupFailed(f"{label} returned invalid JSON") from e

        error = normalize_google_error(data.get("status"), data.get("error_message"))
        if error:
            raise ExternalLookupFailed(error)
        return data

    async def find_place_from_text(self, query: str) -> PlaceResult | None:
        """
        Resolve free text to the best matching place.

        Args:
            query: Free-text description, e.g. "Eiffel Tower, Paris"

        Returns:
            PlaceResult, or None if there is no usable candidate

        Raises:
            ExternalLookupFailed: On transport, HTTP or API status errors
        """
        data = await self._get_json(
            "place/findplacefromtext/json",
            {
                "input": query,
                "inputtype": "textquery",
                "fields": "place_id,name,formatted_address,geometry",
            },
            "Places API",
        )

        candidates = data.get("candidates") or []
        if not candidates:
            return None
        candidate = candidates[0]
        location = (candidate.get("geometry") or {}).get("location")
        if not location or not candidate.get("place_id"):
            return None

        return PlaceResult(
            place_id=candidate["place_id"],
            name=candidate.get("name"),
            address=candidate.get("formatted_address"),
            lat=location["lat"],
            lng=location["lng"],
        )

    async def get_directions(self, points: list[LatLng], mode: str) -> DirectionsResult | None:
        """
        Route through the points in order: first is the origin, last the
        destination, the rest are waypoints.

        Returns:
            DirectionsResult with leg totals, or None if no route was found
        """
        if len(points) < 2:
            return None

        origin = points[0]
        destination = points[-1]
        waypoints = points[1:-1]

        params: dict[str, Any] = {
            "origin": origin.as_param(),
            "destination": destination.as_param(),
            "mode": mode,
        }
        if waypoints:
            params["waypoints"] = "|".join(point.as_param() for point in waypoints)

        data = await self._get_json("directions/json", params, "Directions API")

        routes = data.get("routes") or []
        route = routes[0] if routes else None
        polyline = ((route or {}).get("overview_polyline") or {}).get("points")
        if not route or not polyline:
            return None

        distance, duration = sum_route_legs(route.get("legs") or [])
        return DirectionsResult(
            polyline=polyline,
            distance_meters=distance,
            duration_seconds=duration,
        )
