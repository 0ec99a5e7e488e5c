"""Token stream reader: newline-delimited JSON from the model endpoint → stream events.

The model endpoint answers with one JSON object per line:
  {"message": {"role": "assistant", "content": "Sun"}, "done": false}
  {"message": {"role": "assistant", "content": "", "tool_calls": [
      {"function": {"name": "show_weather_map", "arguments": {...}}}]}, "done": false}
  {"done": true, ...}

Network reads do not respect line or UTF-8 boundaries, so bytes are decoded
incrementally and only complete lines are parsed. A line that cannot be decoded
becomes a ParseError event; reading always continues to the end of the stream.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()


@dataclass(frozen=True)
class TextDelta:
    """Incremental assistant text."""

    text: str


@dataclass(frozen=True)
class ToolCallRequested:
    """A structured tool call issued by the model. Arguments are JSON-encoded."""

    name: str
    raw_arguments: str


@dataclass(frozen=True)
class ParseError:
    """A stream unit that could not be decoded. Skipped by consumers."""

    raw: str


@dataclass(frozen=True)
class StreamEnded:
    """Always the last event of a stream."""


StreamEvent = TextDelta | ToolCallRequested | ParseError | StreamEnded


def _events_from_object(obj: object, raw: str) -> list[StreamEvent]:
    """Map one decoded JSON object to zero or more events."""
    if not isinstance(obj, dict):
        return [ParseError(raw=raw)]

    if "error" in obj:
        logger.warning("Model stream reported an error: %s", obj["error"])
        return [ParseError(raw=raw)]

    message = obj.get("message")
    if not isinstance(message, dict):
        # Trailer lines ({"done": true, ...}) carry no message
        return []

    events: list[StreamEvent] = []

    content = message.get("content")
    if isinstance(content, str) and content:
        events.append(TextDelta(text=content))

    tool_calls = message.get("tool_calls") or []
    if not isinstance(tool_calls, list):
        events.append(ParseError(raw=raw))
        return events

    for call in tool_calls:
        function = call.get("function") if isinstance(call, dict) else None
        if not isinstance(function, dict) or not function.get("name"):
            events.append(ParseError(raw=raw))
            continue
        arguments = function.get("arguments", "")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        events.append(ToolCallRequested(name=function["name"], raw_arguments=arguments))

    return events


def parse_line(line: str) -> list[StreamEvent]:
    """Parse a complete line, which may hold several concatenated JSON objects."""
    events: list[StreamEvent] = []
    pos = 0
    length = len(line)

    while pos < length:
        # Skip whitespace between objects
        while pos < length and line[pos].isspace():
            pos += 1
        if pos >= length:
            break
        try:
            obj, end = _decoder.raw_decode(line, pos)
        except json.JSONDecodeError:
            remainder = line[pos:]
            logger.warning("Skipping undecodable stream unit: %r", remainder[:200])
            events.append(ParseError(raw=remainder))
            break
        events.extend(_events_from_object(obj, line[pos:end]))
        pos = end

    return events


async def read_stream(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[StreamEvent]:
    """Turn a raw chunk stream into an ordered, finite sequence of StreamEvents."""
    utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""

    async for chunk in chunks:
        buffer += utf8.decode(chunk) if isinstance(chunk, bytes) else chunk
        *lines, buffer = buffer.split("\n")
        for line in lines:
            if line.strip():
                for event in parse_line(line):
                    yield event

    buffer += utf8.decode(b"", final=True)
    if buffer.strip():
        for event in parse_line(buffer):
            yield event

    yield StreamEnded()
