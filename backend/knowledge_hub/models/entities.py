"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import orjson

from knowledge_hub.utils.time import ms_to_datetime


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)


class FileType(str, Enum):
    PDF = "pdf"
    TXT = "txt"
    CSV = "csv"
    DOCX = "docx"
    AUDIO = "audio"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(slots=True)
class KnowledgeFile:
    id: str
    user_id: str
    title: str
    file_path: str | None
    file_size: int
    file_type: FileType
    processing_status: ProcessingStatus
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    chunk_count: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "KnowledgeFile":
        keys = row.keys()
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            file_path=row["file_path"],
            file_size=int(row["file_size"] or 0),
            file_type=FileType(row["file_type"]),
            processing_status=ProcessingStatus(row["processing_status"]),
            metadata=loads_json(row["metadata_json"], {}),
            created_at=ms_to_datetime(row["created_at"]),
            updated_at=ms_to_datetime(row["updated_at"]),
            chunk_count=int(row["chunk_count"]) if "chunk_count" in keys else 0,
        )


@dataclass(slots=True)
class FileChunk:
    id: str
    file_id: str
    content: str
    chunk_index: float
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "FileChunk":
        return cls(
            id=row["id"],
            file_id=row["file_id"],
            content=row["content"],
            chunk_index=float(row["chunk_index"]),
            metadata=loads_json(row["metadata_json"], {}),
            created_at=ms_to_datetime(row["created_at"]),
            updated_at=ms_to_datetime(row["updated_at"]),
        )


@dataclass(slots=True)
class SourceCitation:
    file_id: str
    file_name: str
    chunk_index: float
    excerpt: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "chunk_index": self.chunk_index,
            "excerpt": self.excerpt,
        }


@dataclass(slots=True)
class ChatSession:
    id: str
    user_id: str
    title: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ChatSession":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=ms_to_datetime(row["created_at"]),
            updated_at=ms_to_datetime(row["updated_at"]),
        )


@dataclass(slots=True)
class ChatMessage:
    id: str
    session_id: str
    role: MessageRole
    content: str
    created_at: datetime
    sources: list[SourceCitation] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ChatMessage":
        return cls(
            id=row["id"],
            session_id=row["session_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            created_at=ms_to_datetime(row["created_at"]),
            sources=[SourceCitation(**item) for item in loads_json(row["sources_json"], [])],
        )


def loads_json(value: str | bytes | None, default: Any) -> Any:
    if not value:
        return default
    return orjson.loads(value)


def dumps_json(value: Any) -> str:
    return orjson.dumps(value).decode("utf-8")


__all__ = [
    "ProcessingStatus",
    "FileType",
    "MessageRole",
    "KnowledgeFile",
    "FileChunk",
    "SourceCitation",
    "ChatSession",
    "ChatMessage",
    "loads_json",
    "dumps_json",
]
