from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional


@dataclass
class UiMessage:
    role: str  # 'user' | 'assistant'
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class StreamingState:
    text: str = ""
    is_streaming: bool = False


class ConversationState:
    """
    Client-side view of conversations.

    Holds the ordered UI messages per conversation and, for each conversation
    separately, the scratch text of the reply currently being streamed. Two
    conversations can stream at the same time without seeing each other's text.
    """

    def __init__(self):
        self._messages: Dict[str, List[UiMessage]] = {}
        self._streams: Dict[str, StreamingState] = {}

    # Messages

    def get_messages(self, conversation_id: str) -> Optional[List[UiMessage]]:
        messages = self._messages.get(conversation_id)
        return list(messages) if messages is not None else None

    def set_messages(self, conversation_id: str, messages: List[UiMessage]) -> None:
        self._messages[conversation_id] = list(messages)

    def add_message(self, conversation_id: str, message: UiMessage) -> None:
        self._messages.setdefault(conversation_id, []).append(message)

    def clear_chat(self, conversation_id: str) -> None:
        self._messages.pop(conversation_id, None)
        self._streams.pop(conversation_id, None)

    # Streaming

    def stream_state(self, conversation_id: str) -> StreamingState:
        return self._streams.setdefault(conversation_id, StreamingState())

    def is_streaming(self, conversation_id: str) -> bool:
        return self.stream_state(conversation_id).is_streaming

    def streaming_text(self, conversation_id: str) -> str:
        return self.stream_state(conversation_id).text

    def append_fragment(self, conversation_id: str, fragment: str) -> str:
        state = self.stream_state(conversation_id)
        state.text += fragment
        return state.text

    def finalize_reply(self, conversation_id: str, content: str) -> UiMessage:
        """Commit the reply and clear the scratch text"""
        message = UiMessage(role="assistant", content=content)
        self.add_message(conversation_id, message)
        self.stream_state(conversation_id).text = ""
        return message

    @contextmanager
    def streaming(self, conversation_id: str) -> Iterator[StreamingState]:
        """Mark the conversation as streaming; always back to idle on exit"""
        state = self.stream_state(conversation_id)
        state.text = ""
        state.is_streaming = True
        try:
            yield state
        finally:
            state.is_streaming = False
