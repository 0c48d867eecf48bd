from datetime import datetime, timezone
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(BaseModel):
    """Conversation metadata record"""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(..., alias="conversationId")
    title: str = ""
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")


class StoredMessage(BaseModel):
    """One entry of a conversation's ordered message log"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    conversation_id: str = Field(..., alias="conversationId")
    sender: str  # 'user' | 'assistant'
    text: str
    seq: int = Field(..., ge=0)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")


class MessageSendRequest(BaseModel):
    sender: str = Field(..., description="Message author: 'user' or 'assistant' ('ai' accepted)")
    text: str = Field(..., description="Message body")


class ConversationCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(..., alias="conversationId", min_length=1, description="Client-minted conversation id")
    first_message: str = Field(..., alias="firstMessage", description="First user message")
    sender: str = Field(default="user", description="Must be 'user'")


class MessageListResponse(BaseModel):
    messages: List[StoredMessage]


class ConversationMessagesResponse(BaseModel):
    chat: Conversation
    messages: List[StoredMessage]


class ErrorResponse(BaseModel):
    error: str
    message: str
    request_id: Optional[str] = None
