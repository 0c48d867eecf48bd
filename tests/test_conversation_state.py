import pytest

from client.conversation_state import ConversationState, UiMessage


def test_streaming_flag_resets_even_when_body_raises():
    state = ConversationState()

    with pytest.raises(RuntimeError):
        with state.streaming("a"):
            assert state.is_streaming("a")
            raise RuntimeError("network down")

    assert not state.is_streaming("a")


def test_streams_are_scoped_per_conversation():
    state = ConversationState()

    with state.streaming("a"), state.streaming("b"):
        state.append_fragment("a", "alpha ")
        state.append_fragment("b", "beta")
        state.append_fragment("a", "done")

        assert state.streaming_text("a") == "alpha done"
        assert state.streaming_text("b") == "beta"

        state.finalize_reply("a", "alpha done")
        assert state.is_streaming("b")
        assert state.streaming_text("b") == "beta"

    assert [m.content for m in state.get_messages("a")] == ["alpha done"]
    assert state.get_messages("b") is None


def test_new_stream_starts_from_empty_scratch_text():
    state = ConversationState()
    with state.streaming("a"):
        state.append_fragment("a", "left over")

    with state.streaming("a"):
        assert state.streaming_text("a") == ""


def test_set_and_add_messages_keep_order():
    state = ConversationState()
    state.set_messages("a", [UiMessage(role="user", content="1")])
    state.add_message("a", UiMessage(role="assistant", content="2"))

    assert [m.content for m in state.get_messages("a")] == ["1", "2"]

    state.clear_chat("a")
    assert state.get_messages("a") is None
