from .chat import (
    Conversation,
    StoredMessage,
    MessageSendRequest,
    ConversationCreateRequest,
    MessageListResponse,
    ConversationMessagesResponse,
    ErrorResponse,
)
from .stream_events import ChunkEvent, CompleteEvent, ErrorEvent, StreamEvent

__all__ = [
    # Storage models
    "Conversation",
    "StoredMessage",

    # API models
    "MessageSendRequest",
    "ConversationCreateRequest",
    "MessageListResponse",
    "ConversationMessagesResponse",
    "ErrorResponse",

    # Wire events
    "ChunkEvent",
    "CompleteEvent",
    "ErrorEvent",
    "StreamEvent",
]
