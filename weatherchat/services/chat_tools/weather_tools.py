"""
Weather tools for LLM tool-calling in chat.

These tools allow the LLM to ask for:
- A weather map for a location and layer
- The current temperature / conditions
- The daily forecast for the next few days
- The hourly forecast for later today

Each tool has an OpenAI-compatible definition (sent to the model) and a
pydantic model used to validate the arguments the model sends back.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, field_validator

from weatherchat.schemas.weather import WeatherLayer

SHOW_WEATHER_MAP = "show_weather_map"
SHOW_WEATHER_TEMPERATURE = "show_weather_temperature"
SHOW_DAILY_FORECAST = "show_daily_forecast"
SHOW_HOURLY_FORECAST = "show_hourly_forecast"


class LocationArgs(BaseModel):
    """Arguments shared by every weather tool."""

    model_config = ConfigDict(extra="ignore")

    location: str | None = None

    @field_validator("location")
    @classmethod
    def _blank_is_missing(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


class WeatherMapArgs(LocationArgs):
    """Arguments of show_weather_map."""

    layer: WeatherLayer = WeatherLayer.TEMPERATURE

    @field_validator("layer", mode="before")
    @classmethod
    def _lenient_layer(cls, value):
        if value is None or isinstance(value, str):
            return WeatherLayer.parse(value)
        return value


TOOL_ARGUMENTS: dict[str, type[LocationArgs]] = {
    SHOW_WEATHER_MAP: WeatherMapArgs,
    SHOW_WEATHER_TEMPERATURE: LocationArgs,
    SHOW_DAILY_FORECAST: LocationArgs,
    SHOW_HOURLY_FORECAST: LocationArgs,
}


def _location_property(what: str) -> dict:
    return {
        "type": "string",
        "description": (
            f"City or region to {what}. "
            "Use the user's current location if they did not name one."
        ),
    }


def get_weather_tools() -> List[dict]:
    """
    Get weather tool definitions for LLM function calling.

    Returns OpenAI-compatible function calling definitions.
    """
    return [
        {
            "type": "function",
            "function": {
                "name": SHOW_WEATHER_MAP,
                "description": (
                    "Display a weather map or radar for a location. "
                    "Pick the layer from the conversation context."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "location": _location_property("center the map on"),
                        "layer": {
                            "type": "string",
                            "enum": [layer.value for layer in WeatherLayer],
                            "description": "Weather layer to draw on the map",
                            "default": WeatherLayer.TEMPERATURE.value,
                        },
                    },
                    "required": ["location"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": SHOW_WEATHER_TEMPERATURE,
                "description": (
                    "Display the current temperature and the 'feels like' temperature. "
                    "Use for questions about the current weather."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {"location": _location_property("report on")},
                    "required": ["location"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": SHOW_DAILY_FORECAST,
                "description": "Display the daily weather forecast for the next few days.",
                "parameters": {
                    "type": "object",
                    "properties": {"location": _location_property("forecast")},
                    "required": ["location"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": SHOW_HOURLY_FORECAST,
                "description": "Display the hourly forecast for later today.",
                "parameters": {
                    "type": "object",
                    "properties": {"location": _location_property("forecast")},
                    "required": ["location"],
                },
            },
        },
    ]
