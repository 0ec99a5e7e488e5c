"""Conversation state: per-conversation message logs and the turns running on them."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import uuid4

from weatherchat.config import get_settings
from weatherchat.models.message import Message, MessageRole
from weatherchat.services.display import LiveDisplay

logger = logging.getLogger(__name__)
settings = get_settings()


class ConversationNotFound(Exception):
    """Raised for an unknown conversation or turn id."""


class ConversationBusy(Exception):
    """Raised when a turn is submitted while another one is still running."""


class ConversationStore:
    """Append-only message log of one conversation.

    Turns alternate strictly: a user message, then exactly one assistant
    message (the reply or the apology) before the next user message.
    """

    def __init__(self, conversation_id: str | None = None):
        self.conversation_id = conversation_id or str(uuid4())
        self._messages: list[Message] = []

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def awaiting_reply(self) -> bool:
        return bool(self._messages) and self._messages[-1].role is MessageRole.USER

    def append_user(self, content: str) -> Message:
        if self.awaiting_reply:
            raise ValueError("Previous user message has no assistant reply yet")
        message = Message(role=MessageRole.USER, content=content)
        self._messages.append(message)
        return message

    def append_assistant(self, content: str) -> Message:
        if not self.awaiting_reply:
            raise ValueError("Assistant reply without a pending user message")
        message = Message(role=MessageRole.ASSISTANT, content=content)
        self._messages.append(message)
        return message

    def as_chat_messages(self) -> list[dict]:
        """History in the shape the model endpoint expects."""
        return [m.to_chat_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)


@dataclass
class Turn:
    """A submitted user message and the live display of its reply."""

    turn_id: str
    display: LiveDisplay
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


TurnRunner = Callable[[str, ConversationStore, LiveDisplay], Awaitable[object]]


class ConversationRegistry:
    """Owns one store per conversation. Each conversation runs one turn at a time.

    Finished turns stay pollable until more than ``history_limit`` turns exist
    for the conversation; then the oldest finished ones are forgotten.
    """

    def __init__(self, history_limit: int | None = None) -> None:
        self.history_limit = history_limit or settings.turn_history_limit
        self._stores: dict[str, ConversationStore] = {}
        self._turns: dict[str, dict[str, Turn]] = {}

    def create(self) -> ConversationStore:
        store = ConversationStore()
        self._stores[store.conversation_id] = store
        self._turns[store.conversation_id] = {}
        logger.info("Opened conversation %s", store.conversation_id)
        return store

    def get(self, conversation_id: str) -> ConversationStore:
        try:
            return self._stores[conversation_id]
        except KeyError:
            raise ConversationNotFound(f"Conversation {conversation_id} not found") from None

    def get_turn(self, conversation_id: str, turn_id: str) -> Turn:
        self.get(conversation_id)
        try:
            return self._turns[conversation_id][turn_id]
        except KeyError:
            raise ConversationNotFound(f"Turn {turn_id} not found") from None

    def active_turn(self, conversation_id: str) -> Turn | None:
        self.get(conversation_id)
        for turn in self._turns[conversation_id].values():
            if turn.running:
                return turn
        return None

    def start_turn(self, conversation_id: str, content: str, runner: TurnRunner) -> Turn:
        """Schedule ``runner(content, store, display)`` as a background task."""
        store = self.get(conversation_id)
        if self.active_turn(conversation_id) is not None:
            raise ConversationBusy(f"Conversation {conversation_id} already has a running turn")

        turn = Turn(turn_id=str(uuid4()), display=LiveDisplay())
        turn.task = asyncio.create_task(runner(content, store, turn.display))
        # Suppress "Task exception was never retrieved" warnings
        turn.task.add_done_callback(
            lambda t: t.exception() if not t.cancelled() else None
        )
        self._turns[conversation_id][turn.turn_id] = turn
        self._prune(conversation_id)
        return turn

    def _prune(self, conversation_id: str) -> None:
        turns = self._turns[conversation_id]
        excess = len(turns) - self.history_limit
        finished = [turn_id for turn_id, turn in turns.items() if not turn.running]
        for turn_id in finished[: max(0, excess)]:
            del turns[turn_id]

    async def delete(self, conversation_id: str) -> None:
        """Cancel a running turn, then drop the conversation."""
        self.get(conversation_id)
        turn = self.active_turn(conversation_id)
        if turn is not None:
            await _cancel(turn.task)
        del self._stores[conversation_id]
        del self._turns[conversation_id]
        logger.info("Closed conversation %s", conversation_id)

    async def shutdown(self) -> None:
        """Cancel every running turn."""
        for turns in self._turns.values():
            for turn in turns.values():
                if turn.running:
                    await _cancel(turn.task)


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
