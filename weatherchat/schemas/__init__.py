"""Pydantic schemas for API request/response validation."""

from weatherchat.schemas.chat import (
    ChatRequest,
    ConversationCreated,
    MessageRead,
    SnapshotKind,
    TurnResponse,
    UISnapshot,
)
from weatherchat.schemas.weather import (
    Coordinates,
    DailyEntry,
    DailyForecast,
    HourlyEntry,
    HourlyForecast,
    MapLayerDescriptor,
    WeatherLayer,
    WeatherWidget,
)

__all__ = [
    "ChatRequest",
    "ConversationCreated",
    "MessageRead",
    "SnapshotKind",
    "TurnResponse",
    "UISnapshot",
    "Coordinates",
    "DailyEntry",
    "DailyForecast",
    "HourlyEntry",
    "HourlyForecast",
    "MapLayerDescriptor",
    "WeatherLayer",
    "WeatherWidget",
]
