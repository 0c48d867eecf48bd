from __future__ import annotations

import json
import logging
from typing import Any, Dict, Type, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from core.constants import SSE_HEADERS, SSE_MEDIA_TYPE
from core.exceptions import InvalidPayloadError
from models.chat import (
    ConversationCreateRequest,
    ConversationMessagesResponse,
    MessageListResponse,
    MessageSendRequest,
)
from services.conversation_service import ConversationService
from services.stream_relay import StreamRelay

# Access initialized singletons from app_state set by the app lifespan
from .. import app_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["Conversations"])

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_relay() -> StreamRelay:
    relay = getattr(app_state, "relay", None)
    if relay is None:
        raise HTTPException(status_code=503, detail="Stream relay not initialized")
    return relay


def get_conversation_service() -> ConversationService:
    service = getattr(app_state, "conversations", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Conversation service not initialized")
    return service


async def _parse_body(request: Request, model: Type[ModelT]) -> ModelT:
    """Validation failures are reported as 400, not FastAPI's default 422"""
    try:
        body: Dict[str, Any] = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidPayloadError("Request body must be valid JSON") from e

    if not isinstance(body, dict):
        raise InvalidPayloadError("Request body must be a JSON object")

    try:
        return model.model_validate(body)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][-1]) for err in e.errors() if err.get("loc"))
        raise InvalidPayloadError(f"Invalid fields: {fields}") from e


@router.post("", status_code=201)
async def create_conversation(
    request: Request,
    service: ConversationService = Depends(get_conversation_service),
):
    """
    Create a conversation from its first user message.

    The id is minted by the client; posting an id that already exists
    returns the stored conversation without adding a second first message.
    """
    payload = await _parse_body(request, ConversationCreateRequest)
    chat, messages = await service.create_with_first_message(
        payload.conversation_id, payload.first_message, payload.sender
    )
    resp = ConversationMessagesResponse(chat=chat, messages=messages)
    return JSONResponse(status_code=201, content=resp.model_dump(mode="json", by_alias=True))


@router.get("/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    service: ConversationService = Depends(get_conversation_service),
):
    """Conversation metadata plus messages ordered by seq, then creation time"""
    chat, messages = await service.get_with_messages(conversation_id)
    resp = ConversationMessagesResponse(chat=chat, messages=messages)
    return JSONResponse(status_code=200, content=resp.model_dump(mode="json", by_alias=True))


@router.post("/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    request: Request,
    relay: StreamRelay = Depends(get_relay),
):
    """
    Persist a message and, for user messages, stream the assistant reply.

    Streaming behavior:
    - sender "user": text/event-stream of chunk events followed by a single
      complete or error event.
    - any other sender: JSON {messages: [...]} with status 201, no generation.
    """
    payload = await _parse_body(request, MessageSendRequest)

    result = await relay.handle_incoming_message(
        conversation_id,
        payload.sender,
        payload.text,
        is_disconnected=request.is_disconnected,
    )

    if result.is_stream:
        return StreamingResponse(result.stream, media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)

    resp = MessageListResponse(messages=result.messages)
    return JSONResponse(status_code=201, content=resp.model_dump(mode="json", by_alias=True))


@router.post("/{conversation_id}/reply")
async def request_reply(
    conversation_id: str,
    request: Request,
    relay: StreamRelay = Depends(get_relay),
):
    """
    Stream a reply to the last user message without storing a new one.

    Used right after creating a conversation and to retry a failed generation.
    Returns 400 when the conversation does not end with a user message.
    """
    result = await relay.resume(conversation_id, is_disconnected=request.is_disconnected)
    return StreamingResponse(result.stream, media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)
