"""Message model for the conversation log."""

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4


class MessageRole(str, Enum):
    """Message role in conversation."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class Message:
    """A single entry of a conversation. Never modified once appended."""

    role: MessageRole
    content: str
    id: str = field(default_factory=lambda: str(uuid4()))

    def to_chat_dict(self) -> dict:
        """Shape expected by the model endpoint."""
        return {"role": self.role.value, "content": self.content}
