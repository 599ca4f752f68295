"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from knowledge_hub.models.entities import ChatMessage, ChatSession, FileChunk, KnowledgeFile

FileTypeLiteral = Literal["pdf", "txt", "csv", "docx", "audio"]
StatusLiteral = Literal["pending", "processing", "completed", "failed"]


class KnowledgeFileResponse(BaseModel):
    id: str
    user_id: str
    title: str
    file_path: str | None
    file_size: int
    file_type: FileTypeLiteral
    processing_status: StatusLiteral
    chunk_count: int
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, record: KnowledgeFile) -> "KnowledgeFileResponse":
        return cls(
            id=record.id,
            user_id=record.user_id,
            title=record.title,
            file_path=record.file_path,
            file_size=record.file_size,
            file_type=record.file_type.value,
            processing_status=record.processing_status.value,
            chunk_count=record.chunk_count,
            metadata=record.metadata,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class FileUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    metadata: dict[str, Any] | None = None


class UploadResult(BaseModel):
    filename: str
    status: Literal["uploaded", "error"]
    file: KnowledgeFileResponse | None = None
    detail: str | None = None
    webhook_error: str | None = None


class UploadResponse(BaseModel):
    succeeded: int
    failed: int
    results: list[UploadResult]


class DeleteResponse(BaseModel):
    status: Literal["ok"]
    deleted: str


class ChunkResponse(BaseModel):
    id: str
    file_id: str
    content: str
    chunk_index: float
    metadata: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, chunk: FileChunk) -> "ChunkResponse":
        return cls(
            id=chunk.id,
            file_id=chunk.file_id,
            content=chunk.content,
            chunk_index=chunk.chunk_index,
            metadata=chunk.metadata,
            created_at=chunk.created_at,
            updated_at=chunk.updated_at,
        )


class ChunkListResponse(BaseModel):
    file_id: str
    chunks: list[ChunkResponse]


class ChunkUpdateRequest(BaseModel):
    content: str


class ChunkSplitRequest(BaseModel):
    offset: int = Field(..., ge=0, description="Character offset where the suffix starts")


class ChunkMergeRequest(BaseModel):
    chunk_ids: list[str] = Field(..., description="Two or more chunk ids from the same file")


class ProcessingCallbackRequest(BaseModel):
    file_id: str | None = None
    content: str | None = None
    chunks: list[Any] | None = Field(default=None, description="Chunk objects or bare strings, coerced one by one")
    title: str | None = None
    status: str | None = None
    error: str | None = None

    @field_validator("chunks", mode="before")
    @classmethod
    def _ignore_non_list_chunks(cls, value: Any) -> Any:
        return value if isinstance(value, list) else None


class ProcessingCallbackResponse(BaseModel):
    success: bool
    message: str
    chunks_inserted: int = 0


class ChatRequest(BaseModel):
    content: str
    file_ids: list[str]
    session_id: str | None = None


class SessionCreateRequest(BaseModel):
    title: str | None = None


class SourceResponse(BaseModel):
    file_id: str
    file_name: str
    chunk_index: float
    excerpt: str


class ChatMessageResponse(BaseModel):
    id: str
    session_id: str
    role: Literal["user", "assistant"]
    content: str
    sources: list[SourceResponse]
    created_at: datetime

    @classmethod
    def from_entity(cls, message: ChatMessage) -> "ChatMessageResponse":
        return cls(
            id=message.id,
            session_id=message.session_id,
            role=message.role.value,
            content=message.content,
            sources=[SourceResponse(**source.to_dict()) for source in message.sources],
            created_at=message.created_at,
        )


class ChatSessionResponse(BaseModel):
    id: str
    title: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, session: ChatSession) -> "ChatSessionResponse":
        return cls(
            id=session.id,
            title=session.title,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


__all__ = [
    "KnowledgeFileResponse",
    "FileUpdateRequest",
    "UploadResult",
    "UploadResponse",
    "DeleteResponse",
    "ChunkResponse",
    "ChunkListResponse",
    "ChunkUpdateRequest",
    "ChunkSplitRequest",
    "ChunkMergeRequest",
    "ProcessingCallbackRequest",
    "ProcessingCallbackResponse",
    "ChatRequest",
    "SessionCreateRequest",
    "SourceResponse",
    "ChatMessageResponse",
    "ChatSessionResponse",
]
