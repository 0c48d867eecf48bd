from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from typing import AsyncIterable, Callable, List, Optional

from client.conversation_state import ConversationState, UiMessage
from core.exceptions import MalformedEventError
from models.stream_events import ChunkEvent, CompleteEvent, ErrorEvent, StreamEvent
from utils.sse import parse_event_line

logger = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent, ConversationState], None]


class StreamDecoder:
    """
    Incremental decoder for the reply stream.

    Network reads do not line up with event boundaries, so undecoded bytes of
    a split multi-byte character and the trailing partial line are kept until
    the next feed.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> List[StreamEvent]:
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> List[StreamEvent]:
        """Decode whatever is left once the stream has ended"""
        self._buffer += self._decoder.decode(b"", final=True)
        lines, self._buffer = self._buffer.split("\n"), ""
        return self._parse_lines(lines)

    def _parse_lines(self, lines: List[str]) -> List[StreamEvent]:
        events = []
        for line in lines:
            try:
                event = parse_event_line(line)
            except MalformedEventError as e:
                logger.warning(f"Skipping malformed stream event: {e}")
                continue
            if event is not None:
                events.append(event)
        return events


@dataclass
class StreamOutcome:
    completed: bool = False
    error: Optional[str] = None
    message: Optional[UiMessage] = None
    streamed_text: str = ""
    events: int = 0


def _apply(
    event: StreamEvent,
    state: ConversationState,
    conversation_id: str,
    outcome: StreamOutcome,
) -> bool:
    """Apply one event; True once the stream has reached a terminal event"""
    outcome.events += 1

    if isinstance(event, ChunkEvent):
        outcome.streamed_text += event.content
        state.append_fragment(conversation_id, event.content)
        return False

    if isinstance(event, CompleteEvent):
        # The server's assembled text wins over the locally accumulated one
        outcome.message = state.finalize_reply(conversation_id, event.content)
        outcome.completed = True
        return True

    if isinstance(event, ErrorEvent):
        logger.error(f"Reply stream for {conversation_id} failed: {event.error}")
        outcome.error = event.error
        return True

    return False


async def decode_stream(
    chunks: AsyncIterable[bytes],
    state: ConversationState,
    conversation_id: str,
    on_event: Optional[EventCallback] = None,
) -> StreamOutcome:
    """
    Read the byte stream to its first terminal event and apply every event
    to the conversation state.

    A stream that ends without complete or error just stops; nothing is
    committed in that case. The byte source is closed on every exit path.
    """
    decoder = StreamDecoder()
    outcome = StreamOutcome()

    def dispatch(events: List[StreamEvent]) -> bool:
        for event in events:
            done = _apply(event, state, conversation_id, outcome)
            if on_event is not None:
                on_event(event, state)
            if done:
                return True
        return False

    try:
        async for data in chunks:
            if dispatch(decoder.feed(data)):
                return outcome
        if not dispatch(decoder.flush()):
            logger.warning(f"Reply stream for {conversation_id} ended without a terminal event")
        return outcome
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
