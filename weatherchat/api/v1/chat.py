"""Chat endpoints: submit a turn, then poll or stream its live snapshot."""

import logging

from fastapi import APIRouter, HTTPException, Response, status
from fastapi.responses import StreamingResponse

from weatherchat.deps import Chat, Registry
from weatherchat.schemas.chat import (
    ChatRequest,
    ConversationCreated,
    MessageRead,
    TurnResponse,
    UISnapshot,
)
from weatherchat.services.conversation import ConversationBusy, ConversationNotFound

logger = logging.getLogger(__name__)
router = APIRouter()


async def format_sse(event: str, data: str) -> str:
    """Format SSE message.

    Multi-line data must use separate 'data:' lines.
    The client reassembles them by joining with newlines.
    """
    lines = data.split("\n")
    data_lines = "\n".join(f"data: {line}" for line in lines)
    return f"event: {event}\n{data_lines}\n\n"


def _not_found(error: ConversationNotFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))


@router.post(
    "/conversations",
    response_model=ConversationCreated,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(registry: Registry) -> ConversationCreated:
    """Open a new, empty conversation."""
    store = registry.create()
    return ConversationCreated(conversation_id=store.conversation_id)


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=TurnResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_user_message(
    conversation_id: str,
    request: ChatRequest,
    registry: Registry,
    service: Chat,
) -> TurnResponse:
    """Start a turn. The reply is produced in the background; poll or stream the turn."""
    try:
        turn = registry.start_turn(conversation_id, request.message, service.run_turn)
    except ConversationNotFound as e:
        raise _not_found(e)
    except ConversationBusy as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    logger.info("Started turn %s in conversation %s", turn.turn_id, conversation_id)
    return TurnResponse(
        turn_id=turn.turn_id,
        conversation_id=conversation_id,
        snapshot=turn.display.current,
    )


@router.get(
    "/conversations/{conversation_id}/turns/{turn_id}",
    response_model=UISnapshot,
)
async def get_turn_snapshot(
    conversation_id: str,
    turn_id: str,
    registry: Registry,
) -> UISnapshot:
    """Latest snapshot of a turn (polling)."""
    try:
        turn = registry.get_turn(conversation_id, turn_id)
    except ConversationNotFound as e:
        raise _not_found(e)
    return turn.display.current


@router.get("/conversations/{conversation_id}/turns/{turn_id}/stream")
async def stream_turn(
    conversation_id: str,
    turn_id: str,
    registry: Registry,
) -> StreamingResponse:
    """Stream a turn's snapshots as SSE until the final one."""
    try:
        turn = registry.get_turn(conversation_id, turn_id)
    except ConversationNotFound as e:
        raise _not_found(e)

    async def event_generator():
        async for snapshot in turn.display.subscribe():
            event = "done" if snapshot.final else "snapshot"
            yield await format_sse(event, snapshot.model_dump_json())

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=list[MessageRead],
)
async def get_conversation(conversation_id: str, registry: Registry) -> list[MessageRead]:
    """Get conversation history."""
    try:
        store = registry.get(conversation_id)
    except ConversationNotFound as e:
        raise _not_found(e)

    return [
        MessageRead(id=m.id, role=m.role.value, content=m.content)
        for m in store.messages
    ]


@router.delete(
    "/conversations/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_conversation(conversation_id: str, registry: Registry) -> Response:
    """Cancel any running turn and forget the conversation."""
    try:
        await registry.delete(conversation_id)
    except ConversationNotFound as e:
        raise _not_found(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
