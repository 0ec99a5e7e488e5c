"""Location resolver: free-text place names → coordinates.

Uses an OpenCage-compatible geocoding API:
  GET <geocoding_url>?q=Austin&key=...&limit=1
  → {"results": [{"geometry": {"lat": 30.2711286, "lng": -97.7436995}, ...}], ...}

The first result wins. Coordinates are kept as the exact digits of the
response (floats are decoded as strings) so nothing is lost before they are
passed on to the weather provider.
"""

import logging
from typing import Protocol, runtime_checkable

import httpx

from weatherchat.config import get_settings
from weatherchat.schemas.weather import Coordinates

logger = logging.getLogger(__name__)
settings = get_settings()


class GeocodingError(Exception):
    """Base class for location resolution failures."""


class NoResultsFound(GeocodingError):
    """Raised when the provider knows no place matching the query."""


class ResolverUnavailable(GeocodingError):
    """Raised when the geocoding provider cannot be reached or answers with an error."""


@runtime_checkable
class LocationResolver(Protocol):
    """Protocol for resolver implementations."""

    async def resolve(self, location_text: str) -> Coordinates: ...


class OpenCageResolver:
    """Resolver backed by the OpenCage geocoding API."""

    async def resolve(self, location_text: str) -> Coordinates:
        api_key = settings.geocoding_api_key
        if not api_key:
            raise ResolverUnavailable("GEOCODING_API_KEY is not configured")

        params = {"q": location_text, "key": api_key, "limit": 1, "no_annotations": 1}

        try:
            async with httpx.AsyncClient(timeout=settings.geocoding_timeout_seconds) as client:
                response = await client.get(settings.geocoding_url, params=params)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Geocoding HTTP error %s for %r", e.response.status_code, location_text)
            raise ResolverUnavailable(f"Geocoding returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("Geocoding request error for %r: %s", location_text, e)
            raise ResolverUnavailable(f"Geocoding request failed: {e}") from e

        try:
            data = response.json(parse_float=str, parse_int=str)
        except ValueError as e:
            raise ResolverUnavailable(f"Geocoding returned invalid JSON: {e}") from e

        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            raise NoResultsFound(f"No results for {location_text!r}")

        first = results[0] if isinstance(results, list) else None
        geometry = first.get("geometry") if isinstance(first, dict) else None
        if not isinstance(geometry, dict):
            raise NoResultsFound(f"First result for {location_text!r} has no geometry")

        lat, lng = geometry.get("lat"), geometry.get("lng")
        if lat is None or lng is None:
            raise NoResultsFound(f"First result for {location_text!r} has no geometry")

        logger.info("Resolved %r to %s,%s", location_text, lat, lng)
        return Coordinates(latitude=str(lat), longitude=str(lng))
