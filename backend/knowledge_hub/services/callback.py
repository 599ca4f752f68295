"""Handle the asynchronous result reported by the document processor."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from knowledge_hub.core.logging import get_logger
from knowledge_hub.core.metrics import CALLBACK_COUNT
from knowledge_hub.db.sqlite import SQLiteDatabase
from knowledge_hub.models.entities import KnowledgeFile, ProcessingStatus, dumps_json
from knowledge_hub.services.registry import FileRegistry
from knowledge_hub.utils.ids import new_id
from knowledge_hub.utils.time import now_ms

logger = get_logger(__name__)


@dataclass(slots=True)
class ChunkInput:
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ProcessingResult:
    """One processing attempt as reported back by the webhook."""

    file_id: str
    content: str | None = None
    chunks: Sequence[Any] = ()
    title: str | None = None
    failed: bool = False
    error: str | None = None


@dataclass(slots=True)
class CallbackOutcome:
    success: bool
    message: str
    file: KnowledgeFile | None = None
    chunks_inserted: int = 0


class ProcessingCallbackHandler:
    """Apply a processing result to the file and its chunk rows.

    The status update and the chunk insert are committed separately: a file is
    marked ``completed`` even when its chunks fail to persist, because the
    status reports that the attempt finished, not that chunks exist.
    Delivering the same success payload twice inserts the chunks twice.
    """

    def __init__(self, database: SQLiteDatabase, registry: FileRegistry) -> None:
        self.db = database
        self.registry = registry

    def handle(self, result: ProcessingResult) -> CallbackOutcome:
        record = self.registry.find_file(result.file_id)
        if record is None:
            logger.warning("Callback for unknown file %s ignored", result.file_id, extra={"ctx_file_id": result.file_id})
            CALLBACK_COUNT.labels(status="unknown_file").inc()
            return CallbackOutcome(success=False, message="File not found; callback ignored")

        if result.failed or result.error:
            logger.error(
                "Processing failed for %s: %s", result.file_id, result.error, extra={"ctx_file_id": result.file_id}
            )
            record = self.registry.transition_status(result.file_id, ProcessingStatus.FAILED)
            CALLBACK_COUNT.labels(status="failed").inc()
            return CallbackOutcome(success=True, message="File marked as failed", file=record)

        metadata = {"extracted_chars": len(result.content)} if result.content is not None else None
        record = self.registry.transition_status(
            result.file_id,
            ProcessingStatus.COMPLETED,
            title=result.title,
            metadata=metadata,
        )
        CALLBACK_COUNT.labels(status="completed").inc()

        inserted = 0
        chunks = _coerce_chunks(result.file_id, result.chunks)
        if chunks:
            try:
                inserted = self._insert_chunks(result.file_id, chunks)
            except sqlite3.Error as exc:
                logger.error(
                    "Error inserting chunks for %s: %s", result.file_id, exc, extra={"ctx_file_id": result.file_id}
                )
            else:
                logger.info("Inserted %s chunks for file %s", inserted, result.file_id)
                self.registry.touch_chunks(record.user_id, record.id)
        record = self.registry.find_file(result.file_id) or record
        return CallbackOutcome(
            success=True,
            message="Knowledge file processed successfully",
            file=record,
            chunks_inserted=inserted,
        )

    def _insert_chunks(self, file_id: str, chunks: Sequence[ChunkInput]) -> int:
        now = now_ms()
        rows = [
            (new_id(), file_id, chunk.content, float(index), dumps_json(chunk.metadata or {}), now, now)
            for index, chunk in enumerate(chunks)
        ]
        with self.db.transaction() as cursor:
            cursor.executemany(
                """
                INSERT INTO file_chunks (id, file_id, content, chunk_index, metadata_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)


def coerce_chunk(item: Any) -> ChunkInput | None:
    """Turn one reported chunk into a ``ChunkInput``.

    Strings are the content. Objects use their ``content`` field and
    ``metadata`` mapping; an object without usable content is stored as its
    JSON text. Empty items yield None.
    """
    if isinstance(item, ChunkInput):
        return item
    if isinstance(item, str):
        return ChunkInput(content=item) if item.strip() else None
    if isinstance(item, Mapping):
        metadata = item.get("metadata")
        metadata = dict(metadata) if isinstance(metadata, Mapping) else {}
        content = item.get("content")
        if isinstance(content, str) and content.strip():
            return ChunkInput(content=content, metadata=metadata)
        if content not in (None, "") and not isinstance(content, str):
            return ChunkInput(content=dumps_json(content), metadata=metadata)
        rest = {key: value for key, value in item.items() if key not in ("content", "metadata")}
        return ChunkInput(content=dumps_json(rest), metadata=metadata) if rest else None
    if item is None:
        return None
    return ChunkInput(content=dumps_json(item))


def _coerce_chunks(file_id: str, items: Sequence[Any]) -> list[ChunkInput]:
    chunks = []
    for position, item in enumerate(items or ()):
        chunk = coerce_chunk(item)
        if chunk is None:
            logger.warning("Skipping empty chunk %s for file %s", position, file_id, extra={"ctx_file_id": file_id})
            continue
        chunks.append(chunk)
    return chunks


__all__ = ["ChunkInput", "coerce_chunk", "ProcessingResult", "CallbackOutcome", "ProcessingCallbackHandler"]
