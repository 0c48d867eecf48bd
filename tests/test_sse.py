import json

import pytest

from core.exceptions import MalformedEventError
from models.stream_events import ChunkEvent, CompleteEvent, ErrorEvent
from utils.sse import chunk_event, encode_event, parse_event_line


def test_chunk_event_encoding_matches_wire_format():
    event = ChunkEvent(content="Hi", message_id="abc")
    encoded = encode_event(event)

    assert encoded.startswith(b"data: ")
    assert encoded.endswith(b"\n\n")
    assert json.loads(encoded[len(b"data: "):].decode()) == {
        "type": "chunk",
        "content": "Hi",
        "messageId": "abc",
    }


def test_complete_and_error_payloads():
    complete = json.loads(encode_event(CompleteEvent(content="done"))[6:])
    error = json.loads(encode_event(ErrorEvent(error="boom"))[6:])

    assert complete == {"type": "complete", "content": "done"}
    assert error == {"type": "error", "error": "boom"}


def test_fragment_with_newlines_stays_on_one_line():
    encoded = encode_event(CompleteEvent(content="line one\nline two"))
    assert encoded.count(b"\n") == 2


def test_non_ascii_is_sent_as_utf8():
    encoded = encode_event(CompleteEvent(content="héllo 👋"))
    assert "héllo 👋".encode("utf-8") in encoded


def test_chunk_event_ids_are_unique():
    ids = {chunk_event("x").message_id for _ in range(50)}
    assert len(ids) == 50


def test_parse_roundtrips_chunk():
    line = encode_event(ChunkEvent(content="Hi", message_id="m1")).decode().strip()
    event = parse_event_line(line)
    assert isinstance(event, ChunkEvent)
    assert event.content == "Hi"
    assert event.message_id == "m1"


@pytest.mark.parametrize("line", ["", ": keep-alive", "event: status", "retry: 3000"])
def test_non_data_lines_are_ignored(line):
    assert parse_event_line(line) is None


def test_unknown_event_type_is_ignored():
    assert parse_event_line('data: {"type":"typing"}') is None


def test_trailing_carriage_return_is_tolerated():
    event = parse_event_line('data: {"type":"complete","content":"ok"}\r')
    assert isinstance(event, CompleteEvent)


@pytest.mark.parametrize(
    "line",
    [
        'data: {"type":"chunk","content":"Hi"',
        "data: [DONE]",
        'data: "just a string"',
        'data: {"type":"chunk","content":"Hi"}',
        'data: {"type":"error"}',
    ],
)
def test_malformed_payloads_raise(line):
    with pytest.raises(MalformedEventError):
        parse_event_line(line)
