"""Intent classification over streamed assistant text and structured tool calls.

Sources, strongest first:
1. An explicit tool call issued by the model (tool_calls in the stream).
2. A tool call the model wrote into its text, either as
   ``show_daily_forecast({"location": "Paris"})`` or as a bare JSON object
   ``{"name": "show_daily_forecast", "parameters": {...}}``.
3. Keyword cues, in fixed precedence:
   map/radar > daily forecast > hourly forecast > current conditions.

Classification is a pure function of its inputs: the same text always yields
the same Intent.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from weatherchat.schemas.weather import WeatherLayer
from weatherchat.services.chat_tools.weather_tools import (
    SHOW_DAILY_FORECAST,
    SHOW_HOURLY_FORECAST,
    SHOW_WEATHER_MAP,
    SHOW_WEATHER_TEMPERATURE,
    TOOL_ARGUMENTS,
    WeatherMapArgs,
)

logger = logging.getLogger(__name__)


class IntentKind(str, Enum):
    """Which weather capability the user is after."""

    NONE = "none"
    SHOW_MAP = "show_map"
    SHOW_CURRENT_CONDITIONS = "show_current_conditions"
    SHOW_DAILY_FORECAST = "show_daily_forecast"
    SHOW_HOURLY_FORECAST = "show_hourly_forecast"


@dataclass(frozen=True)
class Intent:
    """Best guess of the user's goal. ``layer`` is only set for maps."""

    kind: IntentKind
    location: str | None = None
    layer: WeatherLayer | None = None

    @property
    def is_none(self) -> bool:
        return self.kind is IntentKind.NONE


NO_INTENT = Intent(kind=IntentKind.NONE)


@dataclass(frozen=True)
class ToolCall:
    """A structured tool call. ``arguments`` is JSON text or an already decoded dict."""

    name: str
    arguments: str | dict


class InvalidToolArguments(Exception):
    """Raised when a known tool is called with arguments that fail its contract."""


TOOL_KINDS: dict[str, IntentKind] = {
    SHOW_WEATHER_MAP: IntentKind.SHOW_MAP,
    SHOW_WEATHER_TEMPERATURE: IntentKind.SHOW_CURRENT_CONDITIONS,
    SHOW_DAILY_FORECAST: IntentKind.SHOW_DAILY_FORECAST,
    SHOW_HOURLY_FORECAST: IntentKind.SHOW_HOURLY_FORECAST,
}

# Ordered: first match wins
_CUES: list[tuple[IntentKind, re.Pattern]] = [
    (
        IntentKind.SHOW_MAP,
        re.compile(r"\b(?:weather\s+maps?|maps?|radar)\b", re.IGNORECASE),
    ),
    (
        IntentKind.SHOW_DAILY_FORECAST,
        re.compile(
            r"\b(?:daily\s+forecast|next\s+(?:few|several|couple\s+of|\d+)\s+days"
            r"|(?:\d+|three|five|seven|ten)[-\s]day\s+forecast|this\s+week)\b",
            re.IGNORECASE,
        ),
    ),
    (
        IntentKind.SHOW_HOURLY_FORECAST,
        re.compile(
            r"\b(?:hourly\s+forecast|later\s+today|hour[-\s]by[-\s]hour|next\s+few\s+hours)\b",
            re.IGNORECASE,
        ),
    ),
    (
        IntentKind.SHOW_CURRENT_CONDITIONS,
        re.compile(
            r"\b(?:current\s+(?:weather|conditions)|temperature|feels\s+like)\b",
            re.IGNORECASE,
        ),
    ),
]

# The value ends at a comma or at the next sentence boundary
_LOCATION_MARKER = re.compile(r"\blocation:\s*([^,;.!?\n]+)", re.IGNORECASE)
_LAYER_MARKER = re.compile(r"\blayer:\s*(\w+)", re.IGNORECASE)

_LAYER_WORDS = re.compile(
    r"\b(temperature|rain|precipitation|wind|clouds?|pressure)\b", re.IGNORECASE
)
_LAYER_ALIASES = {"precipitation": "rain", "cloud": "clouds"}

# Preposition, then a phrase running to the next sentence boundary (or end of text).
# The phrase sits in a lookahead so "for later today in Austin" still yields "in Austin".
_PLACE_PHRASE = re.compile(
    r"\b(?i:in|at|for|of)\s+(?=(?P<place>[^\W\d_][^.!?\n,;:()\"]*))"
)
_PLACE_CONNECTORS = {"de", "del", "la", "le", "du", "upon", "on", "am", "of"}
_NOT_PLACES = {
    "i", "the", "a", "an", "celsius", "fahrenheit", "kelvin",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "today", "tomorrow", "tonight", "now",
}

_INLINE_CALL = re.compile(
    r"\b(" + "|".join(TOOL_KINDS) + r")\s*\(\s*(\{.*?\})\s*\)",
    re.DOTALL,
)

_MARKER_STRIP = " \t\"'`*."


def _proper_noun(phrase: str) -> str:
    """Keep the leading run of capitalized words ("Austin later today" → "Austin")."""
    words = phrase.split()
    kept: list[str] = []
    for i, word in enumerate(words):
        if word[0].isupper():
            kept.append(word)
        elif (
            kept
            and word.lower() in _PLACE_CONNECTORS
            and i + 1 < len(words)
            and words[i + 1][0].isupper()
        ):
            kept.append(word)
        else:
            break
    return " ".join(kept)


def extract_location(text: str) -> str | None:
    """Find a place name in text: explicit ``location:`` marker, then a prepositional phrase."""
    marker = _LOCATION_MARKER.search(text)
    if marker:
        value = marker.group(1).strip(_MARKER_STRIP)
        if value:
            return value

    for match in _PLACE_PHRASE.finditer(text):
        place = _proper_noun(match.group("place")).strip(_MARKER_STRIP)
        if place and place.lower() not in _NOT_PLACES:
            return place

    return None


def extract_layer(text: str) -> WeatherLayer:
    """``layer:`` marker first, then the first layer word in the text."""
    marker = _LAYER_MARKER.search(text)
    if marker:
        return WeatherLayer.parse(marker.group(1))

    word = _LAYER_WORDS.search(text)
    if word:
        value = word.group(1).lower()
        return WeatherLayer.parse(_LAYER_ALIASES.get(value, value))

    return WeatherLayer.TEMPERATURE


def find_inline_tool_call(text: str) -> ToolCall | None:
    """Find a tool call that the model wrote into its text instead of tool_calls."""
    stripped = text.lstrip()
    if stripped.startswith("{"):
        try:
            obj, _ = json.JSONDecoder().raw_decode(stripped)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict) and obj.get("name") in TOOL_KINDS:
            arguments = obj.get("parameters", obj.get("arguments", {}))
            if isinstance(arguments, (str, dict)):
                return ToolCall(name=obj["name"], arguments=arguments)

    match = _INLINE_CALL.search(text)
    if match:
        return ToolCall(name=match.group(1), arguments=match.group(2))

    return None


class IntentClassifier:
    """Maps accumulated text (and optionally a structured tool call) to an Intent."""

    def __init__(self, default_location: str):
        self.default_location = default_location

    def from_tool_call(self, call: ToolCall) -> Intent:
        """Validate a known tool's arguments and build its Intent.

        Raises:
            InvalidToolArguments: if the arguments fail the tool's contract.
        """
        kind = TOOL_KINDS[call.name]
        model = TOOL_ARGUMENTS[call.name]
        arguments = call.arguments
        try:
            if isinstance(arguments, str):
                args = model.model_validate_json(arguments) if arguments.strip() else model()
            else:
                args = model.model_validate(arguments)
        except ValidationError as e:
            raise InvalidToolArguments(
                f"Invalid arguments for {call.name}: {e.error_count()} error(s)"
            ) from e

        layer = args.layer if isinstance(args, WeatherMapArgs) else None
        return Intent(kind=kind, location=args.location or self.default_location, layer=layer)

    def classify(self, text: str, explicit_tool_call: ToolCall | None = None) -> Intent:
        """Return the current best-guess Intent.

        Raises:
            InvalidToolArguments: if ``explicit_tool_call`` names a known tool
                but its arguments are invalid.
        """
        if explicit_tool_call is not None and explicit_tool_call.name in TOOL_KINDS:
            return self.from_tool_call(explicit_tool_call)

        inline = find_inline_tool_call(text)
        if inline is not None:
            try:
                return self.from_tool_call(inline)
            except InvalidToolArguments as e:
                logger.debug("Ignoring malformed inline tool call: %s", e)

        for kind, pattern in _CUES:
            if pattern.search(text):
                location = extract_location(text) or self.default_location
                layer = extract_layer(text) if kind is IntentKind.SHOW_MAP else None
                return Intent(kind=kind, location=location, layer=layer)

        return NO_INTENT
