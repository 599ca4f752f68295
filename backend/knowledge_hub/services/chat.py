"""Chat sessions over selected knowledge files.

Answer generation is pluggable; the default ``PlaceholderResponder`` returns
a canned answer with one citation and does no retrieval.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, Sequence

from knowledge_hub.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from knowledge_hub.core.logging import get_logger
from knowledge_hub.db.sqlite import SQLiteDatabase
from knowledge_hub.models.entities import (
    ChatMessage,
    ChatSession,
    KnowledgeFile,
    MessageRole,
    SourceCitation,
    dumps_json,
)
from knowledge_hub.services.registry import FileRegistry
from knowledge_hub.utils.ids import new_id
from knowledge_hub.utils.text import excerpt, normalize
from knowledge_hub.utils.time import now_ms

logger = get_logger(__name__)

_TITLE_LIMIT = 60


@dataclass(slots=True)
class GeneratedAnswer:
    content: str
    sources: list[SourceCitation]


class ResponseGenerator(Protocol):
    def generate(self, question: str, files: Sequence[KnowledgeFile]) -> GeneratedAnswer:
        ...


class PlaceholderResponder:
    """Stand-in answer: fixed delay, canned text, first chunk as citation."""

    def __init__(self, database: SQLiteDatabase, delay: float = 0.0) -> None:
        self.db = database
        self.delay = delay

    def generate(self, question: str, files: Sequence[KnowledgeFile]) -> GeneratedAnswer:
        if self.delay > 0:
            time.sleep(self.delay)
        return GeneratedAnswer(
            content=(
                f'Based on your selected files, here\'s what I found about "{question}". '
                "This is a simulated response that would normally come from processing "
                "your knowledge base files."
            ),
            sources=self._first_citation(files),
        )

    def _first_citation(self, files: Sequence[KnowledgeFile]) -> list[SourceCitation]:
        for record in files:
            row = self.db.query_one(
                "SELECT content, chunk_index FROM file_chunks WHERE file_id = ? ORDER BY chunk_index ASC LIMIT 1",
                [record.id],
            )
            if row is not None:
                return [
                    SourceCitation(
                        file_id=record.id,
                        file_name=record.title,
                        chunk_index=float(row["chunk_index"]),
                        excerpt=excerpt(row["content"]),
                    )
                ]
        return []


class ChatService:
    def __init__(self, database: SQLiteDatabase, registry: FileRegistry, generator: ResponseGenerator) -> None:
        self.db = database
        self.registry = registry
        self.generator = generator

    def create_session(self, owner_id: str, title: str | None = None) -> ChatSession:
        session_id = new_id()
        now = now_ms()
        self.db.execute(
            "INSERT INTO chat_sessions (id, user_id, title, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            [session_id, owner_id, title, now, now],
        )
        self.db.commit()
        return self.get_session(owner_id, session_id)

    def get_session(self, owner_id: str, session_id: str) -> ChatSession:
        row = self.db.query_one(
            "SELECT id, user_id, title, created_at, updated_at FROM chat_sessions WHERE id = ?",
            [session_id],
        )
        if row is None:
            raise NotFoundError(f"Chat session {session_id} not found")
        session = ChatSession.from_row(row)
        if session.user_id != owner_id:
            raise PermissionDeniedError(f"Chat session {session_id} is not owned by the current user")
        return session

    def list_sessions(self, owner_id: str) -> list[ChatSession]:
        rows = self.db.query(
            """
            SELECT id, user_id, title, created_at, updated_at FROM chat_sessions
            WHERE user_id = ? ORDER BY updated_at DESC, rowid DESC
            """,
            [owner_id],
        )
        return [ChatSession.from_row(row) for row in rows]

    def delete_session(self, owner_id: str, session_id: str) -> None:
        self.get_session(owner_id, session_id)
        self.db.execute("DELETE FROM chat_sessions WHERE id = ?", [session_id])
        self.db.commit()

    def get_messages(self, owner_id: str, session_id: str) -> list[ChatMessage]:
        self.get_session(owner_id, session_id)
        rows = self.db.query(
            """
            SELECT id, session_id, role, content, sources_json, created_at FROM chat_messages
            WHERE session_id = ? ORDER BY created_at ASC, rowid ASC
            """,
            [session_id],
        )
        return [ChatMessage.from_row(row) for row in rows]

    def send_message(
        self,
        owner_id: str,
        content: str,
        file_ids: Sequence[str],
        session_id: str | None = None,
    ) -> ChatMessage:
        """Store the question, generate an answer, store and return it."""
        question = (content or "").strip()
        if not question:
            raise ValidationError("Message must not be empty")
        if not file_ids:
            raise ValidationError("Select at least one file to chat with")
        files = [self.registry.get_file(owner_id, file_id) for file_id in dict.fromkeys(file_ids)]

        if session_id is None:
            session = self.create_session(owner_id, title=normalize(question)[:_TITLE_LIMIT])
        else:
            session = self.get_session(owner_id, session_id)

        self._append(session.id, MessageRole.USER, question, [])
        answer = self.generator.generate(question, files)
        message = self._append(session.id, MessageRole.ASSISTANT, answer.content, answer.sources)
        logger.info("Answered message in session %s with %s sources", session.id, len(answer.sources))
        return message

    def export_session(self, owner_id: str, session_id: str) -> str:
        blocks: list[str] = []
        for message in self.get_messages(owner_id, session_id):
            text = f"{message.role.value.upper()}: {message.content}\n"
            if message.sources:
                text += "Sources: " + ", ".join(source.file_name for source in message.sources) + "\n"
            blocks.append(text)
        return "\n---\n".join(blocks)

    def _append(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        sources: Sequence[SourceCitation],
    ) -> ChatMessage:
        message_id = new_id()
        now = now_ms()
        self.db.execute(
            """
            INSERT INTO chat_messages (id, session_id, role, content, sources_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [message_id, session_id, role.value, content, dumps_json([s.to_dict() for s in sources]), now],
        )
        self.db.execute("UPDATE chat_sessions SET updated_at = ? WHERE id = ?", [now, session_id])
        self.db.commit()
        row = self.db.query_one(
            "SELECT id, session_id, role, content, sources_json, created_at FROM chat_messages WHERE id = ?",
            [message_id],
        )
        return ChatMessage.from_row(row)


__all__ = ["ChatService", "GeneratedAnswer", "PlaceholderResponder", "ResponseGenerator"]
