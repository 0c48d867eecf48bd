from __future__ import annotations

from typing import Optional

from config.settings import Settings
from database.message_store import MessageStore
from services.conversation_service import ConversationService
from services.stream_relay import StreamRelay

# Lightweight module to share initialized singletons with route handlers.
# The app lifespan sets these during startup; routes read them at request time.

settings: Optional[Settings] = None
store: Optional[MessageStore] = None
relay: Optional[StreamRelay] = None
conversations: Optional[ConversationService] = None


def reset() -> None:
    global settings, store, relay, conversations
    settings = None
    store = None
    relay = None
    conversations = None
