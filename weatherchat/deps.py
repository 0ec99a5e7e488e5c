"""FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from weatherchat.services.chat import ChatService, chat_service
from weatherchat.services.conversation import ConversationRegistry


@lru_cache
def get_registry() -> ConversationRegistry:
    """Process-wide conversation registry (conversations live in memory only)."""
    return ConversationRegistry()


def get_chat_service() -> ChatService:
    return chat_service


Registry = Annotated[ConversationRegistry, Depends(get_registry)]
Chat = Annotated[ChatService, Depends(get_chat_service)]
