"""
Encoding and decoding of the line-delimited stream protocol.

Each event travels as ``data: <JSON>\\n\\n`` where the JSON object carries a
``type`` discriminator (``chunk``, ``complete`` or ``error``). Server and
client both go through this module so the vocabulary stays in one place.
"""
import json
import uuid
from typing import Optional

from pydantic import ValidationError

from core.constants import EventType, SSE_DATA_PREFIX, SSE_EVENT_TERMINATOR
from core.exceptions import MalformedEventError
from models.stream_events import ChunkEvent, CompleteEvent, ErrorEvent, StreamEvent

_EVENT_MODELS = {
    EventType.CHUNK.value: ChunkEvent,
    EventType.COMPLETE.value: CompleteEvent,
    EventType.ERROR.value: ErrorEvent,
}


def new_message_id() -> str:
    return uuid.uuid4().hex


def chunk_event(content: str) -> ChunkEvent:
    """Wrap a fragment with a fresh random id"""
    return ChunkEvent(content=content, message_id=new_message_id())


def encode_event(event: StreamEvent) -> bytes:
    payload = json.dumps(event.model_dump(by_alias=True), ensure_ascii=False)
    return f"{SSE_DATA_PREFIX}{payload}{SSE_EVENT_TERMINATOR}".encode("utf-8")


def parse_event_line(line: str) -> Optional[StreamEvent]:
    """
    Parse one decoded line of the stream.

    Returns None for lines that are not data lines (blank separators, comments,
    other SSE fields) and for event types this client does not know about.

    Raises:
        MalformedEventError: payload is not a JSON object or misses fields
    """
    line = line.rstrip("\r")
    if not line.startswith(SSE_DATA_PREFIX):
        return None

    raw = line[len(SSE_DATA_PREFIX):]
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedEventError(f"Invalid JSON payload: {raw[:80]!r}") from e

    if not isinstance(data, dict):
        raise MalformedEventError(f"Event payload must be an object, got {type(data).__name__}")

    model = _EVENT_MODELS.get(data.get("type"))
    if model is None:
        return None

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedEventError(f"Invalid {data.get('type')} event: {e.error_count()} error(s)") from e
