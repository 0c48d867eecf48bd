from enum import Enum

class Sender(Enum):
    """Who authored a persisted message"""
    USER = "user"
    ASSISTANT = "assistant"

class EventType(Enum):
    """Wire event discriminators"""
    CHUNK = "chunk"
    COMPLETE = "complete"
    ERROR = "error"

# Older clients send "ai" for assistant-authored messages
SENDER_ALIASES = {
    "user": Sender.USER,
    "assistant": Sender.ASSISTANT,
    "ai": Sender.ASSISTANT,
}

# Wire format
SSE_DATA_PREFIX = "data: "
SSE_EVENT_TERMINATOR = "\n\n"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # for nginx
}
SSE_MEDIA_TYPE = "text/event-stream"

GENERIC_PROVIDER_ERROR = "Assistant failed to respond"
STREAM_TIMEOUT_ERROR = "Assistant response timed out"

# Title generation
TITLE_MAX_WORDS = 5
DEFAULT_TITLE = "New Chat"
