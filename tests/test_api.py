"""Smoke tests for the chat endpoints.

The model endpoint, geocoder and weather provider are replaced by fakes via
dependency overrides; everything else (registry, background turns, SSE) is real.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from weatherchat.deps import get_chat_service, get_registry
from weatherchat.main import app, run, settings
from weatherchat.schemas.weather import Coordinates, HourlyEntry, HourlyForecast
from weatherchat.services.chat import ChatService
from weatherchat.services.conversation import ConversationRegistry

API = "/api/v1/chat"


class ScriptedLLM:
    """Replays a fixed reply, optionally stalling before the end of the stream."""

    def __init__(self, text: str, stall: float = 0):
        self.text = text
        self.stall = stall

    @asynccontextmanager
    async def stream_chat(self, messages, tools=None):
        async def body():
            yield (json.dumps({"message": {"content": self.text}}) + "\n").encode()
            if self.stall:
                await asyncio.sleep(self.stall)
            yield b'{"done": true}\n'

        yield body()


def _chat_service(llm) -> ChatService:
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=Coordinates(latitude="30.2711286", longitude="-97.7436995"))
    gateway = MagicMock()
    gateway.current_and_hourly = AsyncMock(return_value=HourlyForecast(
        city="Austin",
        entries=[HourlyEntry(timestamp=1760882400, temperature=24.5, description="clear sky")],
    ))
    return ChatService(llm=llm, resolver=resolver, gateway=gateway, default_location="San Francisco")


@pytest.fixture
def client_for():
    """Build a TestClient whose chat service uses the given fake model."""
    clients = []

    def build(llm):
        registry = ConversationRegistry()
        app.dependency_overrides[get_registry] = lambda: registry
        app.dependency_overrides[get_chat_service] = lambda: _chat_service(llm)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield build

    for client in clients:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()


def _open_conversation(client: TestClient) -> str:
    response = client.post(f"{API}/conversations")
    assert response.status_code == 201
    return response.json()["conversation_id"]


def _wait_final(client: TestClient, conversation_id: str, turn_id: str) -> dict:
    for _ in range(100):
        snapshot = client.get(f"{API}/conversations/{conversation_id}/turns/{turn_id}").json()
        if snapshot["final"]:
            return snapshot
        time.sleep(0.02)
    raise AssertionError("turn never finished")


# --- Turn flow ---

class TestTurnFlow:
    def test_submit_then_poll(self, client_for):
        client = client_for(ScriptedLLM("Here is the hourly forecast for Austin."))
        conversation_id = _open_conversation(client)

        response = client.post(
            f"{API}/conversations/{conversation_id}/messages",
            json={"message": "What about later today in Austin?"},
        )
        assert response.status_code == 202
        data = response.json()
        assert data["conversation_id"] == conversation_id
        assert data["snapshot"]["final"] is False

        snapshot = _wait_final(client, conversation_id, data["turn_id"])
        assert snapshot["kind"] == "widget"
        assert snapshot["widget"]["type"] == "hourly_forecast"
        assert snapshot["widget"]["coordinates"]["latitude"] == "30.2711286"

        messages = client.get(f"{API}/conversations/{conversation_id}/messages").json()
        assert [(m["role"], m["content"]) for m in messages] == [
            ("user", "What about later today in Austin?"),
            ("assistant", "Here is the hourly forecast for Austin."),
        ]

    def test_stream_ends_with_final_snapshot(self, client_for):
        client = client_for(ScriptedLLM("Hello there!"))
        conversation_id = _open_conversation(client)
        turn_id = client.post(
            f"{API}/conversations/{conversation_id}/messages",
            json={"message": "Hi"},
        ).json()["turn_id"]

        response = client.get(f"{API}/conversations/{conversation_id}/turns/{turn_id}/stream")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [block for block in response.text.split("\n\n") if block]
        assert events[-1].startswith("event: done\n")
        final = json.loads(events[-1].split("data: ", 1)[1])
        assert final["kind"] == "text"
        assert final["text"] == "Hello there!"
        assert all(e.startswith("event: snapshot\n") for e in events[:-1])


# --- Errors ---

class TestErrors:
    def test_unknown_conversation(self, client_for):
        client = client_for(ScriptedLLM("Hi"))

        assert client.post(f"{API}/conversations/nope/messages", json={"message": "Hi"}).status_code == 404
        assert client.get(f"{API}/conversations/nope/messages").status_code == 404
        assert client.get(f"{API}/conversations/nope/turns/x").status_code == 404
        assert client.delete(f"{API}/conversations/nope").status_code == 404

    def test_unknown_turn(self, client_for):
        client = client_for(ScriptedLLM("Hi"))
        conversation_id = _open_conversation(client)

        assert client.get(f"{API}/conversations/{conversation_id}/turns/x").status_code == 404

    def test_empty_message_rejected(self, client_for):
        client = client_for(ScriptedLLM("Hi"))
        conversation_id = _open_conversation(client)

        response = client.post(f"{API}/conversations/{conversation_id}/messages", json={"message": ""})
        assert response.status_code == 422

    def test_busy_conversation_then_delete(self, client_for):
        client = client_for(ScriptedLLM("Thinking about it.", stall=30))
        conversation_id = _open_conversation(client)
        url = f"{API}/conversations/{conversation_id}/messages"

        assert client.post(url, json={"message": "one"}).status_code == 202
        assert client.post(url, json={"message": "two"}).status_code == 409

        assert client.delete(f"{API}/conversations/{conversation_id}").status_code == 204
        assert client.get(url).status_code == 404


def test_health():
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "healthy"}


def test_run_serves_app_with_uvicorn():
    with patch("weatherchat.main.uvicorn.run") as mock_run:
        run()

    mock_run.assert_called_once()
    assert mock_run.call_args.args[0] == "weatherchat.main:app"
    assert mock_run.call_args.kwargs["port"] == settings.port
