"""Tests for chat sessions."""

from __future__ import annotations

import pytest

from knowledge_hub.core.errors import PermissionDeniedError, ValidationError
from knowledge_hub.models.entities import MessageRole
from knowledge_hub.services.chat import ChatService, PlaceholderResponder


@pytest.fixture
def chat(database, registry) -> ChatService:
    return ChatService(database, registry, PlaceholderResponder(database))


def test_send_message_creates_session_and_cites_first_chunk(chat, make_file, add_chunks) -> None:
    record = make_file("u1", "handbook.pdf")
    add_chunks(record.id, [("Second   part", 1.0), ("Opening paragraph", 0.0)])

    answer = chat.send_message("u1", "  What is the   policy? ", [record.id])

    assert answer.role is MessageRole.ASSISTANT
    assert '"What is the   policy?"' in answer.content
    (source,) = answer.sources
    assert source.file_id == record.id
    assert source.file_name == "handbook.pdf"
    assert source.chunk_index == 0.0
    assert source.excerpt == "Opening paragraph"

    (session,) = chat.list_sessions("u1")
    assert session.title == "What is the policy?"
    messages = chat.get_messages("u1", session.id)
    assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]


def test_send_message_without_chunks_has_no_sources(chat, make_file) -> None:
    record = make_file("u1")
    answer = chat.send_message("u1", "hello", [record.id])
    assert answer.sources == []


def test_send_message_validation(chat, make_file) -> None:
    record = make_file("u1")
    with pytest.raises(ValidationError):
        chat.send_message("u1", "   ", [record.id])
    with pytest.raises(ValidationError):
        chat.send_message("u1", "hello", [])
    with pytest.raises(PermissionDeniedError):
        chat.send_message("u2", "hello", [record.id])


def test_existing_session_is_reused(chat, make_file) -> None:
    record = make_file("u1")
    session = chat.create_session("u1", "Research")
    chat.send_message("u1", "one", [record.id], session_id=session.id)
    chat.send_message("u1", "two", [record.id], session_id=session.id)

    assert len(chat.get_messages("u1", session.id)) == 4
    with pytest.raises(PermissionDeniedError):
        chat.get_messages("u2", session.id)


def test_export_session(chat, make_file, add_chunks) -> None:
    record = make_file("u1", "notes.txt")
    add_chunks(record.id, [("text", 0.0)])
    chat.send_message("u1", "hi", [record.id])
    (session,) = chat.list_sessions("u1")

    exported = chat.export_session("u1", session.id)

    user_block, assistant_block = exported.split("\n---\n")
    assert user_block == "USER: hi\n"
    assert assistant_block.startswith("ASSISTANT: ")
    assert assistant_block.endswith("Sources: notes.txt\n")


def test_delete_session(chat) -> None:
    session = chat.create_session("u1")
    chat.delete_session("u1", session.id)
    assert chat.list_sessions("u1") == []
