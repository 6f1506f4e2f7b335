import pytest

from chatbridge.llm.types import Message
from chatbridge.memory.session import ChatSession


def test_add_and_list_messages():
    session = ChatSession()
    session.add_message("user", "hi")
    session.add_message("assistant", "hello")

    assert session.messages() == [Message("user", "hi"), Message("assistant", "hello")]
    assert session.message_count() == 2


def test_streamed_reply_is_filled_incrementally():
    session = ChatSession()
    reply_id = session.add_message("assistant")

    assert session.messages() == []
    session.append_to_message(reply_id, "Hel")
    session.append_to_message(reply_id, "lo")

    assert session.messages() == [Message("assistant", "Hello")]


def test_failed_turn_is_excluded_from_history():
    session = ChatSession()
    session.add_message("user", "hi")
    reply_id = session.add_message("assistant", "partial")

    assert session.update_message(reply_id, error="Groq API error: 500")
    assert session.messages() == [Message("user", "hi")]
    assert session.entries()[1].error == "Groq API error: 500"


def test_remove_and_unknown_ids():
    session = ChatSession()
    message_id = session.add_message("user", "hi")

    assert session.remove_message(message_id)
    assert not session.remove_message(message_id)
    assert not session.update_message("msg_missing", content="x")


def test_new_session_discards_history():
    session = ChatSession()
    first_id = session.session_id
    session.add_message("user", "hi")

    new_id = session.start_new_session()

    assert new_id != first_id
    assert new_id.startswith("session_")
    assert session.message_count() == 0


def test_invalid_role_rejected():
    with pytest.raises(ValueError):
        ChatSession().add_message("bot", "hi")


def test_clear_keeps_session_id():
    session = ChatSession()
    session_id = session.session_id
    session.add_message("user", "hi")

    session.clear()

    assert session.message_count() == 0
    assert session.session_id == session_id
