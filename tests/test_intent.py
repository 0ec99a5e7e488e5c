"""Tests for intent classification: precedence, location/layer extraction, tool calls."""

import pytest

from weatherchat.core.intent import (
    NO_INTENT,
    Intent,
    IntentClassifier,
    IntentKind,
    InvalidToolArguments,
    ToolCall,
    extract_layer,
    extract_location,
    find_inline_tool_call,
)
from weatherchat.schemas.weather import WeatherLayer


@pytest.fixture
def classifier():
    return IntentClassifier(default_location="San Francisco")


# ─── Keyword precedence ──────────────────────────────────────────────────────

class TestPrecedence:
    @pytest.mark.parametrize("text", [
        "Here is the daily forecast for Denver.",
        "It will be mild over the next few days.",
        "Let me pull up the 5-day forecast.",
    ])
    def test_daily_cue(self, classifier, text):
        assert classifier.classify(text).kind is IntentKind.SHOW_DAILY_FORECAST

    def test_map_beats_daily(self, classifier):
        intent = classifier.classify("Here is a radar map and the daily forecast for Denver.")
        assert intent.kind is IntentKind.SHOW_MAP

    def test_daily_beats_hourly_and_temperature(self, classifier):
        intent = classifier.classify(
            "The daily forecast shows the temperature rising; the hourly forecast is flat."
        )
        assert intent.kind is IntentKind.SHOW_DAILY_FORECAST

    def test_hourly_beats_current(self, classifier):
        intent = classifier.classify("The temperature later today will drop.")
        assert intent.kind is IntentKind.SHOW_HOURLY_FORECAST

    def test_current_conditions(self, classifier):
        intent = classifier.classify("Right now it feels like 12 degrees.")
        assert intent.kind is IntentKind.SHOW_CURRENT_CONDITIONS

    def test_cues_are_case_insensitive(self, classifier):
        assert classifier.classify("HOURLY FORECAST coming up.").kind is IntentKind.SHOW_HOURLY_FORECAST

    def test_no_cue(self, classifier):
        assert classifier.classify("Hello! How can I help you today?") == NO_INTENT

    def test_empty_text(self, classifier):
        assert classifier.classify("").is_none

    def test_deterministic(self, classifier):
        text = "The hourly forecast for later today in Austin looks warm."
        assert classifier.classify(text) == classifier.classify(text)


# ─── Location extraction ─────────────────────────────────────────────────────

class TestLocation:
    def test_marker_wins(self):
        assert extract_location("Showing the map in Paris. location: Tokyo, layer: rain") == "Tokyo"

    def test_marker_stops_at_sentence_boundary(self):
        text = "Here is the radar map. location: Austin. Expect rain later."
        assert extract_location(text) == "Austin"

    def test_marker_stops_at_semicolon(self):
        assert extract_location("location: Oslo; layer: wind") == "Oslo"

    def test_marker_is_trimmed(self):
        assert extract_location("location:   Buenos Aires\n") == "Buenos Aires"

    def test_prepositional_phrase(self):
        assert extract_location("What's the hourly forecast later today in Austin?") == "Austin"

    def test_multi_word_place(self):
        assert extract_location("The weather in New York City is sunny.") == "New York City"

    def test_place_with_connector(self):
        assert extract_location("It is hot in Rio de Janeiro today.") == "Rio de Janeiro"

    def test_trailing_time_words_dropped(self):
        assert extract_location("Rain expected in Seattle later this evening.") == "Seattle"

    def test_lowercase_phrase_ignored(self):
        assert extract_location("Here is the forecast for later today.") is None

    def test_units_are_not_places(self):
        assert extract_location("The temperature in Celsius is 21.") is None

    def test_absent(self):
        assert extract_location("The current temperature is 18 degrees.") is None

    def test_default_location_used(self, classifier):
        intent = classifier.classify("The current temperature is 18 degrees.")
        assert intent == Intent(IntentKind.SHOW_CURRENT_CONDITIONS, location="San Francisco")


# ─── Map layers ──────────────────────────────────────────────────────────────

class TestLayer:
    def test_marker(self):
        assert extract_layer("layer: wind") is WeatherLayer.WIND

    def test_unknown_marker_defaults_to_temperature(self):
        assert extract_layer("layer: humidity") is WeatherLayer.TEMPERATURE

    def test_layer_word(self):
        assert extract_layer("Here is the precipitation radar.") is WeatherLayer.RAIN

    def test_absent(self):
        assert extract_layer("Here is the map.") is WeatherLayer.TEMPERATURE

    def test_map_intent_carries_layer(self, classifier):
        intent = classifier.classify("Here is the cloud map for Lisbon.")
        assert intent == Intent(IntentKind.SHOW_MAP, location="Lisbon", layer=WeatherLayer.CLOUDS)

    def test_non_map_intent_has_no_layer(self, classifier):
        assert classifier.classify("The daily forecast calls for rain.").layer is None


# ─── Structured tool calls ───────────────────────────────────────────────────

class TestToolCalls:
    def test_explicit_call_wins_over_text(self, classifier):
        call = ToolCall(name="show_daily_forecast", arguments='{"location": "Oslo"}')
        intent = classifier.classify("Here is a radar map for Paris.", call)
        assert intent == Intent(IntentKind.SHOW_DAILY_FORECAST, location="Oslo")

    def test_dict_arguments(self, classifier):
        call = ToolCall(name="show_weather_map", arguments={"location": "Paris", "layer": "wind"})
        intent = classifier.classify("", call)
        assert intent == Intent(IntentKind.SHOW_MAP, location="Paris", layer=WeatherLayer.WIND)

    def test_unrecognized_layer_defaults(self, classifier):
        call = ToolCall(name="show_weather_map", arguments='{"location": "Paris", "layer": "snow"}')
        assert classifier.classify("", call).layer is WeatherLayer.TEMPERATURE

    def test_missing_location_uses_default(self, classifier):
        call = ToolCall(name="show_hourly_forecast", arguments='{"location": "  "}')
        assert classifier.classify("", call).location == "San Francisco"

    def test_empty_arguments(self, classifier):
        call = ToolCall(name="show_weather_temperature", arguments="")
        assert classifier.classify("", call) == Intent(
            IntentKind.SHOW_CURRENT_CONDITIONS, location="San Francisco"
        )

    @pytest.mark.parametrize("arguments", ['{"location": 42}', "not json", "[1, 2]"])
    def test_invalid_arguments_raise(self, classifier, arguments):
        call = ToolCall(name="show_daily_forecast", arguments=arguments)
        with pytest.raises(InvalidToolArguments):
            classifier.classify("", call)

    def test_unknown_tool_falls_back_to_text(self, classifier):
        call = ToolCall(name="get_stock_price", arguments="{}")
        intent = classifier.classify("The hourly forecast for Austin.", call)
        assert intent.kind is IntentKind.SHOW_HOURLY_FORECAST


class TestInlineToolCalls:
    def test_function_syntax(self):
        call = find_inline_tool_call('Sure! show_daily_forecast({"location": "Paris"})')
        assert call == ToolCall(name="show_daily_forecast", arguments='{"location": "Paris"}')

    def test_json_object_text(self):
        call = find_inline_tool_call(
            '{"name": "show_weather_map", "parameters": {"location": "Paris", "layer": "rain"}}'
        )
        assert call == ToolCall(name="show_weather_map", arguments={"location": "Paris", "layer": "rain"})

    def test_partial_json_is_not_a_call(self):
        assert find_inline_tool_call('{"name": "show_weather_map", "param') is None

    def test_inline_call_beats_keywords(self, classifier):
        text = 'Here is the radar. show_hourly_forecast({"location": "Austin"})'
        assert classifier.classify(text) == Intent(IntentKind.SHOW_HOURLY_FORECAST, location="Austin")

    def test_malformed_inline_call_falls_back_to_keywords(self, classifier):
        text = 'Here is the radar for Austin. show_hourly_forecast({"location": 5})'
        assert classifier.classify(text).kind is IntentKind.SHOW_MAP
