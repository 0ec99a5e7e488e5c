"""Chat service: streamed replies with weather widgets dispatched from the model output.

One turn is one sequential pipeline:

    Idle → Streaming → (Resolving → Fetching)* → Completed | Failed

Every stream event is fully handled (classification, geocoding, weather fetch)
before the next one is read, so snapshots only ever move forward.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from weatherchat.config import get_settings
from weatherchat.core.intent import (
    NO_INTENT,
    TOOL_KINDS,
    Intent,
    IntentClassifier,
    IntentKind,
    InvalidToolArguments,
    ToolCall,
)
from weatherchat.core.stream_reader import (
    ParseError,
    StreamEnded,
    StreamEvent,
    TextDelta,
    ToolCallRequested,
    read_stream,
)
from weatherchat.core.transcript import TranscriptBuffer
from weatherchat.schemas.chat import SnapshotKind, UISnapshot
from weatherchat.schemas.weather import Coordinates, WeatherLayer, WeatherWidget
from weatherchat.services.chat_tools.weather_tools import get_weather_tools
from weatherchat.services.conversation import ConversationStore
from weatherchat.services.display import LiveDisplay
from weatherchat.services.geocoding import GeocodingError, LocationResolver, OpenCageResolver
from weatherchat.services.llm import OllamaChatClient, TransportUnavailable
from weatherchat.services.weather import (
    GatewayUnavailable,
    OpenWeatherGateway,
    WeatherGateway,
    WeatherGatewayError,
)

settings = get_settings()
logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = "Sorry, I'm having trouble connecting. Please try again later."

SYSTEM_PROMPT = """\
The user's current location is *"{default_location}"*.

You are a weather chat bot and you can help users check weather conditions, step by step. \
You and the user can discuss weather forecasts for different locations. If the user doesn't \
name a city or region, assume they are asking about the weather at their current location (above).

If the user asks to see a weather map or radar, call `show_weather_map` with their specified or \
assumed location and a weather layer chosen from the conversation (temperature, rain, wind, \
clouds, pressure).

If the user asks about the current weather, the current temperature or what the temperature \
feels like, call `show_weather_temperature` with the specified or assumed location.

If the user asks about the daily forecast for the next few days, call `show_daily_forecast` \
with the specified or assumed location.

If the user asks about the weather later today or the hourly forecast, call \
`show_hourly_forecast` with the specified or assumed location.

Besides that, you can chat with users about weather advisories, suggest activities based on \
the weather, and provide detailed forecasts if needed."""

WIDGET_TYPES = {
    IntentKind.SHOW_MAP: "weather_map",
    IntentKind.SHOW_CURRENT_CONDITIONS: "current_conditions",
    IntentKind.SHOW_DAILY_FORECAST: "daily_forecast",
    IntentKind.SHOW_HOURLY_FORECAST: "hourly_forecast",
}


class TurnState(str, Enum):
    """Lifecycle of a single turn."""

    IDLE = "idle"
    STREAMING = "streaming"
    RESOLVING = "resolving"
    FETCHING = "fetching"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TurnContext:
    """Mutable state of one turn. Never shared between turns."""

    transcript: TranscriptBuffer = field(default_factory=TranscriptBuffer)
    state: TurnState = TurnState.IDLE
    tool_call: ToolCall | None = None
    dispatched: Intent = NO_INTENT
    widget: WeatherWidget | None = None
    # location key -> coordinates, or the error that resolving it raised
    locations: dict[str, Coordinates | GeocodingError] = field(default_factory=dict)


@dataclass
class TurnResult:
    """Outcome of a finished turn."""

    state: TurnState
    text: str
    intent: Intent
    widget: WeatherWidget | None
    snapshot: UISnapshot


class ChatService:
    """Drives one conversational turn from the model stream to the final snapshot."""

    def __init__(
        self,
        llm: OllamaChatClient | None = None,
        resolver: LocationResolver | None = None,
        gateway: WeatherGateway | None = None,
        default_location: str | None = None,
        tools_enabled: bool | None = None,
    ):
        self.llm = llm or OllamaChatClient()
        self.resolver = resolver or OpenCageResolver()
        self.gateway = gateway or OpenWeatherGateway()
        self.default_location = default_location or settings.default_location
        self.tools_enabled = settings.llm_tools_enabled if tools_enabled is None else tools_enabled
        self.classifier = IntentClassifier(self.default_location)

    def _build_messages(self, store: ConversationStore) -> list[dict]:
        """System prompt followed by the whole conversation log."""
        system = {
            "role": "system",
            "content": SYSTEM_PROMPT.format(default_location=self.default_location),
        }
        return [system, *store.as_chat_messages()]

    @staticmethod
    def _visible_text(text: str) -> str:
        """Text to show; a tool call written out as JSON is never displayed."""
        return "" if text.lstrip().startswith("{") else text

    def _snapshot(self, turn: TurnContext) -> UISnapshot:
        text = self._visible_text(turn.transcript.text)
        if turn.widget is not None:
            return UISnapshot(kind=SnapshotKind.WIDGET, text=text, widget=turn.widget)
        if text:
            return UISnapshot(kind=SnapshotKind.TEXT, text=text)
        return UISnapshot(kind=SnapshotKind.THINKING)

    async def run_turn(
        self,
        content: str,
        store: ConversationStore,
        display: LiveDisplay,
    ) -> TurnResult:
        """
        Run one turn: append the user message, stream the reply, dispatch widgets.

        The store receives exactly one assistant message whatever happens: the
        reply, the apology on failure, or the partial reply when cancelled.
        """
        turn = TurnContext()
        store.append_user(content)
        display.update(UISnapshot(kind=SnapshotKind.THINKING))

        messages = self._build_messages(store)
        tools = get_weather_tools() if self.tools_enabled else None

        try:
            async with self.llm.stream_chat(messages, tools) as chunks:
                turn.state = TurnState.STREAMING
                async for event in read_stream(chunks):
                    await self._handle_event(event, turn, display)
        except TransportUnavailable as e:
            logger.error("Turn failed, model endpoint unavailable: %s", e)
            return self._fail(turn, store, display)
        except asyncio.CancelledError:
            logger.info("Turn cancelled after %d chars", len(turn.transcript))
            self._commit(turn, store, display)
            raise
        except Exception as e:
            logger.exception("Turn failed unexpectedly: %s", e)
            return self._fail(turn, store, display)

        turn.state = TurnState.COMPLETED
        snapshot = self._commit(turn, store, display)
        logger.info(
            "Turn completed (%d chars, widget=%s)",
            len(turn.transcript),
            turn.widget.type if turn.widget else None,
        )
        return TurnResult(
            state=turn.state,
            text=turn.transcript.text,
            intent=turn.dispatched,
            widget=turn.widget,
            snapshot=snapshot,
        )

    def _commit(self, turn: TurnContext, store: ConversationStore, display: LiveDisplay) -> UISnapshot:
        store.append_assistant(turn.transcript.text)
        return display.finish(self._snapshot(turn))

    def _fail(self, turn: TurnContext, store: ConversationStore, display: LiveDisplay) -> TurnResult:
        turn.state = TurnState.FAILED
        store.append_assistant(APOLOGY_MESSAGE)
        snapshot = display.finish(UISnapshot(kind=SnapshotKind.ERROR, text=APOLOGY_MESSAGE))
        return TurnResult(
            state=turn.state,
            text=APOLOGY_MESSAGE,
            intent=NO_INTENT,
            widget=None,
            snapshot=snapshot,
        )

    async def _handle_event(self, event: StreamEvent, turn: TurnContext, display: LiveDisplay) -> None:
        if isinstance(event, TextDelta):
            turn.transcript.append(event.text)
            # Only complete sentences: a half-streamed place name must not be geocoded
            await self._reclassify(turn.transcript.settled(), turn, display)

        elif isinstance(event, ToolCallRequested):
            if event.name not in TOOL_KINDS:
                logger.warning("Ignoring call to unknown tool %s", event.name)
                return
            # Stays authoritative over text sniffing for the rest of the turn
            turn.tool_call = ToolCall(name=event.name, arguments=event.raw_arguments)
            await self._reclassify(turn.transcript.text, turn, display)

        elif isinstance(event, ParseError):
            logger.debug("Skipped malformed stream unit (%d chars)", len(event.raw))

        elif isinstance(event, StreamEnded):
            await self._reclassify(turn.transcript.text, turn, display)

    async def _reclassify(self, text: str, turn: TurnContext, display: LiveDisplay) -> None:
        try:
            intent = self.classifier.classify(text, turn.tool_call)
        except InvalidToolArguments as e:
            logger.warning("Discarding tool call %s: %s", turn.tool_call.name, e)
            turn.tool_call = None
            intent = NO_INTENT
            # The widget belonged to an intent that is no longer active
            turn.widget = None
            turn.dispatched = NO_INTENT

        if not intent.is_none and intent != turn.dispatched:
            await self._dispatch(intent, turn, display)
        else:
            display.update(self._snapshot(turn))

    async def _dispatch(self, intent: Intent, turn: TurnContext, display: LiveDisplay) -> None:
        """Resolve the intent's location, fetch its data and attach the widget."""
        # Recorded before trying so an unchanged failing intent is not retried
        turn.dispatched = intent
        logger.info("Dispatching %s for %r", intent.kind.value, intent.location)

        turn.state = TurnState.RESOLVING
        coordinates = await self._resolve(intent.location, turn)

        widget = None
        if coordinates is not None:
            turn.state = TurnState.FETCHING
            try:
                payload = await self._fetch(intent, coordinates)
            except WeatherGatewayError as e:
                logger.warning("Weather fetch failed for %s: %s", intent.kind.value, e)
            else:
                widget = WeatherWidget(
                    id=str(uuid4()),
                    type=WIDGET_TYPES[intent.kind],
                    location=intent.location,
                    coordinates=coordinates,
                    payload=payload,
                )

        turn.widget = widget
        turn.state = TurnState.STREAMING
        display.update(self._snapshot(turn))

    async def _resolve(self, location: str, turn: TurnContext) -> Coordinates | None:
        """Geocode at most once per distinct location within the turn."""
        key = location.strip().casefold()
        if key not in turn.locations:
            try:
                turn.locations[key] = await self.resolver.resolve(location)
            except GeocodingError as e:
                logger.warning("Could not resolve %r: %s", location, e)
                turn.locations[key] = e

        cached = turn.locations[key]
        return None if isinstance(cached, GeocodingError) else cached

    async def _fetch(self, intent: Intent, coordinates: Coordinates) -> dict:
        """Call the gateway operation matching the intent and return the widget payload."""
        if intent.kind is IntentKind.SHOW_MAP:
            descriptor = await self.gateway.map_layer(coordinates, intent.layer or WeatherLayer.TEMPERATURE)
            return descriptor.model_dump(mode="json")

        if intent.kind is IntentKind.SHOW_DAILY_FORECAST:
            forecast = await self.gateway.daily(coordinates)
            return forecast.model_dump(mode="json")

        hourly = await self.gateway.current_and_hourly(coordinates)
        if intent.kind is IntentKind.SHOW_HOURLY_FORECAST:
            return hourly.model_dump(mode="json")

        current = hourly.current
        if current is None:
            raise GatewayUnavailable("Forecast has no current entry")
        return {"city": hourly.city, **current.model_dump(mode="json")}


# Singleton instance
chat_service = ChatService()
