"""Streaming client for an Ollama-compatible chat endpoint.

  POST <llm_base_url>/api/chat
  {"model": "...", "messages": [...], "stream": true, "tools": [...], "tool_choice": "auto"}
  → newline-delimited JSON, closed by the server at end of generation
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from weatherchat.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class TransportUnavailable(Exception):
    """Raised when the model endpoint cannot be reached or refuses the request."""


class OllamaChatClient:
    """Opens streamed chat completions. The connection lives as long as the context."""

    def __init__(self, base_url: str | None = None, model: str | None = None):
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.model = model or settings.llm_model

    def _build_body(self, messages: list[dict], tools: list[dict] | None) -> dict:
        body = {
            "model": self.model,
            "messages": messages,
            "stream": True,
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        return body

    @asynccontextmanager
    async def stream_chat(
        self,
        messages: list[dict],
        tools: list[dict] | None = None,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Yield the raw response byte stream.

        Raises:
            TransportUnavailable: if the connection fails or the endpoint answers
                with a non-success status before any body byte is read.
        """
        url = f"{self.base_url}/api/chat"
        timeout = httpx.Timeout(settings.llm_timeout_seconds, connect=10.0)

        async with httpx.AsyncClient(timeout=timeout) as client:
            try:
                request = client.build_request("POST", url, json=self._build_body(messages, tools))
                response = await client.send(request, stream=True)
            except httpx.RequestError as e:
                logger.error("Model endpoint unreachable: %s", e)
                raise TransportUnavailable(f"Model endpoint request failed: {e}") from e

            try:
                if response.is_error:
                    logger.error("Model endpoint returned HTTP %s", response.status_code)
                    raise TransportUnavailable(f"Model endpoint returned {response.status_code}")

                yield self._iter_body(response)
            finally:
                await response.aclose()

    @staticmethod
    async def _iter_body(response: httpx.Response) -> AsyncIterator[bytes]:
        """Body bytes; a read failure mid-stream ends the stream early."""
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            logger.warning("Model stream interrupted: %s", e)
