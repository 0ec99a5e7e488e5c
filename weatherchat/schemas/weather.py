"""Weather schemas shared by the gateway, the classifier and the UI widgets."""

from enum import Enum

from pydantic import BaseModel, Field


class WeatherLayer(str, Enum):
    """Map layers the assistant can show."""

    TEMPERATURE = "temperature"
    RAIN = "rain"
    WIND = "wind"
    CLOUDS = "clouds"
    PRESSURE = "pressure"

    @classmethod
    def parse(cls, value: str | None) -> "WeatherLayer":
        """Lenient lookup; anything unrecognized falls back to temperature."""
        if value:
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.TEMPERATURE


class Coordinates(BaseModel):
    """Latitude/longitude kept as the exact strings returned by the geocoder."""

    latitude: str
    longitude: str


class HourlyEntry(BaseModel):
    """One 3-hour step of the hourly forecast."""

    timestamp: int
    time: str | None = None
    temperature: float
    feels_like: float | None = None
    description: str = ""


class HourlyForecast(BaseModel):
    """Current conditions plus the upcoming hourly steps."""

    city: str | None = None
    entries: list[HourlyEntry] = Field(default_factory=list)

    @property
    def current(self) -> HourlyEntry | None:
        return self.entries[0] if self.entries else None


class DailyEntry(BaseModel):
    """One day of the daily forecast (metric units)."""

    timestamp: int
    temperature_day: float | None = None
    temperature_min: float | None = None
    temperature_max: float | None = None
    description: str = ""


class DailyForecast(BaseModel):
    """Count-bounded daily forecast."""

    city: str | None = None
    days: list[DailyEntry] = Field(default_factory=list)


class MapLayerDescriptor(BaseModel):
    """Everything a client needs to render a weather map tile layer."""

    layer: WeatherLayer
    provider_layer: str
    zoom: int
    latitude: str
    longitude: str
    tile_url: str


class WeatherWidget(BaseModel):
    """A resolved UI widget attached to an assistant reply."""

    id: str
    type: str  # "weather_map" | "current_conditions" | "daily_forecast" | "hourly_forecast"
    location: str
    coordinates: Coordinates
    payload: dict
