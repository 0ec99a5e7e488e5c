"""Weather data gateway backed by the OpenWeather API.

Operations, all keyed by Coordinates:
- current_and_hourly: GET <endpoint>/forecast (3-hour steps, metric)
- daily:              GET <endpoint>/forecast/daily (cnt-bounded, metric)
- map_layer:          tile layer descriptor for a weather map (no request)
"""

import logging
from typing import Protocol, runtime_checkable

import httpx

from weatherchat.config import get_settings
from weatherchat.schemas.weather import (
    Coordinates,
    DailyEntry,
    DailyForecast,
    HourlyEntry,
    HourlyForecast,
    MapLayerDescriptor,
    WeatherLayer,
)

logger = logging.getLogger(__name__)
settings = get_settings()

TILE_URL_TEMPLATE = "https://tile.openweathermap.org/map/{layer}/{{z}}/{{x}}/{{y}}.png"

PROVIDER_LAYERS = {
    WeatherLayer.TEMPERATURE: "temp_new",
    WeatherLayer.RAIN: "precipitation_new",
    WeatherLayer.WIND: "wind_new",
    WeatherLayer.CLOUDS: "clouds_new",
    WeatherLayer.PRESSURE: "pressure_new",
}


class WeatherGatewayError(Exception):
    """Base class for weather fetch failures."""


class GatewayUnavailable(WeatherGatewayError):
    """Raised on a non-success status, a network error or an unusable payload."""


class GatewayTimeout(WeatherGatewayError):
    """Raised when the provider does not answer within the configured timeout."""


@runtime_checkable
class WeatherGateway(Protocol):
    """Protocol for weather gateway implementations."""

    async def current_and_hourly(self, coordinates: Coordinates) -> HourlyForecast: ...

    async def daily(self, coordinates: Coordinates) -> DailyForecast: ...

    async def map_layer(self, coordinates: Coordinates, layer: WeatherLayer) -> MapLayerDescriptor: ...


def _description(item: dict) -> str:
    weather = item.get("weather")
    first = weather[0] if isinstance(weather, list) and weather else None
    return first.get("description", "") if isinstance(first, dict) else ""


def _city_name(data: dict) -> str | None:
    city = data.get("city")
    return city.get("name") if isinstance(city, dict) else None


class OpenWeatherGateway:
    """Gateway for the OpenWeather 2.5 API."""

    async def _get(self, path: str, coordinates: Coordinates, **extra) -> dict:
        api_key = settings.openweather_api_key
        if not api_key:
            raise GatewayUnavailable("OPENWEATHER_API_KEY is not configured")

        url = f"{settings.openweather_api_endpoint.rstrip('/')}/{path}"
        params = {
            "lat": coordinates.latitude,
            "lon": coordinates.longitude,
            "units": "metric",
            "appid": api_key,
            **extra,
        }
        timeout = settings.weather_timeout_seconds

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("OpenWeather %s timed out after %ss", path, timeout)
            raise GatewayTimeout(f"OpenWeather {path} timed out after {timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error("OpenWeather %s HTTP error %s: %s", path, e.response.status_code, e.response.text[:200])
            raise GatewayUnavailable(f"OpenWeather returned {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error("OpenWeather %s request error: %s", path, e)
            raise GatewayUnavailable(f"OpenWeather request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayUnavailable(f"OpenWeather returned invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("list"), list):
            raise GatewayUnavailable(f"Unexpected OpenWeather {path} payload")
        return data

    async def current_and_hourly(self, coordinates: Coordinates) -> HourlyForecast:
        logger.info("Fetching hourly forecast for %s,%s", coordinates.latitude, coordinates.longitude)
        data = await self._get("forecast", coordinates)

        try:
            entries = [
                HourlyEntry(
                    timestamp=item["dt"],
                    time=item.get("dt_txt"),
                    temperature=item["main"]["temp"],
                    feels_like=item["main"].get("feels_like"),
                    description=_description(item),
                )
                for item in data["list"]
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise GatewayUnavailable(f"Malformed hourly forecast: {e}") from e

        return HourlyForecast(city=_city_name(data), entries=entries)

    async def daily(self, coordinates: Coordinates) -> DailyForecast:
        logger.info("Fetching daily forecast for %s,%s", coordinates.latitude, coordinates.longitude)
        data = await self._get("forecast/daily", coordinates, cnt=settings.daily_forecast_count)

        try:
            days = [
                DailyEntry(
                    timestamp=item["dt"],
                    temperature_day=(item.get("temp") or {}).get("day"),
                    temperature_min=(item.get("temp") or {}).get("min"),
                    temperature_max=(item.get("temp") or {}).get("max"),
                    description=_description(item),
                )
                for item in data["list"]
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise GatewayUnavailable(f"Malformed daily forecast: {e}") from e

        return DailyForecast(city=_city_name(data), days=days)

    async def map_layer(self, coordinates: Coordinates, layer: WeatherLayer) -> MapLayerDescriptor:
        provider_layer = PROVIDER_LAYERS[layer]
        return MapLayerDescriptor(
            layer=layer,
            provider_layer=provider_layer,
            zoom=settings.map_zoom,
            latitude=coordinates.latitude,
            longitude=coordinates.longitude,
            tile_url=TILE_URL_TEMPLATE.format(layer=provider_layer),
        )
