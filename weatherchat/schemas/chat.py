"""Chat schemas."""

from enum import Enum

from pydantic import BaseModel, Field

from weatherchat.schemas.weather import WeatherWidget


class SnapshotKind(str, Enum):
    """What the latest snapshot of a turn shows."""

    THINKING = "thinking"
    TEXT = "text"
    WIDGET = "widget"
    ERROR = "error"


class UISnapshot(BaseModel):
    """The single current renderable state of a turn."""

    kind: SnapshotKind
    text: str = ""
    widget: WeatherWidget | None = None
    final: bool = False
    version: int = 0


class ChatRequest(BaseModel):
    """Chat request schema."""

    message: str = Field(min_length=1, max_length=4000)


class ConversationCreated(BaseModel):
    """Response for a newly opened conversation."""

    conversation_id: str


class TurnResponse(BaseModel):
    """Handle returned when a user message is submitted."""

    turn_id: str
    conversation_id: str
    snapshot: UISnapshot


class MessageRead(BaseModel):
    """A message of the conversation log."""

    id: str
    role: str
    content: str

