"""Chunk editor: update, delete, split and merge a file's ordered chunks.

Chunks are ordered by a fractional ``chunk_index``. A split places the new
chunk at the midpoint between the split chunk and its successor, so the rest
of the sequence never has to be renumbered. When float precision runs out
the file's keys are rebalanced to ``0..n-1`` first.

Each operation re-reads the chunk snapshot, then commits its sub-steps one
by one. Nothing spans a transaction: a failure halfway through a merge leaves
the merged first chunk plus the not-yet-deleted others.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from knowledge_hub.core.errors import NotFoundError, ValidationError
from knowledge_hub.core.logging import get_logger
from knowledge_hub.core.metrics import CHUNK_OPS
from knowledge_hub.db.sqlite import SQLiteDatabase, placeholders
from knowledge_hub.models.entities import FileChunk, KnowledgeFile, dumps_json
from knowledge_hub.services.registry import FileRegistry
from knowledge_hub.utils.ids import new_id
from knowledge_hub.utils.time import now_ms

logger = get_logger(__name__)

MERGE_SEPARATOR = "\n\n"
_CHUNK_COLUMNS = "id, file_id, content, chunk_index, metadata_json, created_at, updated_at"


@dataclass(slots=True)
class SplitResult:
    original: FileChunk
    created: FileChunk


@dataclass(slots=True)
class MergeResult:
    merged: FileChunk
    removed_ids: list[str]


def key_between(lower: float, upper: float | None) -> float | None:
    """Return a key strictly between ``lower`` and ``upper``.

    ``None`` means float precision cannot separate the two neighbours.
    """
    if upper is None:
        return lower + 0.5
    candidate = (lower + upper) / 2
    if lower < candidate < upper:
        return candidate
    return None


class ChunkEditor:
    def __init__(self, database: SQLiteDatabase, registry: FileRegistry) -> None:
        self.db = database
        self.registry = registry

    def list_chunks(self, owner_id: str, file_id: str) -> list[FileChunk]:
        self.registry.get_file(owner_id, file_id)
        return self._snapshot(file_id)

    def get_chunk(self, owner_id: str, chunk_id: str) -> FileChunk:
        chunk, _ = self._authorized_chunk(owner_id, chunk_id)
        return chunk

    def update_chunk(self, owner_id: str, chunk_id: str, content: str) -> FileChunk:
        if not content or not content.strip():
            raise ValidationError("Chunk content must not be empty")
        chunk, record = self._authorized_chunk(owner_id, chunk_id)
        self._write_content(chunk.id, content)
        CHUNK_OPS.labels(operation="update").inc()
        logger.info("Updated chunk %s", chunk.id, extra={"ctx_file_id": chunk.file_id})
        self.registry.touch_chunks(record.user_id, record.id)
        return self._load(chunk.id)

    def delete_chunk(self, owner_id: str, chunk_id: str) -> FileChunk:
        chunk, record = self._authorized_chunk(owner_id, chunk_id)
        self.db.execute("DELETE FROM file_chunks WHERE id = ?", [chunk.id])
        self.db.commit()
        CHUNK_OPS.labels(operation="delete").inc()
        logger.info("Deleted chunk %s", chunk.id, extra={"ctx_file_id": chunk.file_id})
        self.registry.touch_chunks(record.user_id, record.id)
        return chunk

    def split_chunk(self, owner_id: str, chunk_id: str, offset: int) -> SplitResult:
        chunk, record = self._authorized_chunk(owner_id, chunk_id)
        if not 0 < offset < len(chunk.content):
            raise ValidationError(
                f"Split offset must be between 1 and {len(chunk.content) - 1}, got {offset}"
            )
        prefix, suffix = chunk.content[:offset], chunk.content[offset:]

        snapshot = self._snapshot(chunk.file_id)
        new_key = key_between(chunk.chunk_index, _successor_key(snapshot, chunk))
        if new_key is None:
            logger.warning("Chunk keys exhausted in file %s; rebalancing", chunk.file_id)
            self._rebalance(snapshot)
            chunk = self._load(chunk.id)
            new_key = key_between(chunk.chunk_index, _successor_key(self._snapshot(chunk.file_id), chunk))

        self._write_content(chunk.id, prefix)
        created_id = new_id()
        now = now_ms()
        self.db.execute(
            f"""
            INSERT INTO file_chunks ({_CHUNK_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [created_id, chunk.file_id, suffix, new_key, dumps_json(chunk.metadata), now, now],
        )
        self.db.commit()
        CHUNK_OPS.labels(operation="split").inc()
        logger.info(
            "Split chunk %s at %s into new chunk %s (index %s)",
            chunk.id,
            offset,
            created_id,
            new_key,
            extra={"ctx_file_id": chunk.file_id},
        )
        self.registry.touch_chunks(record.user_id, record.id)
        return SplitResult(original=self._load(chunk.id), created=self._load(created_id))

    def merge_chunks(self, owner_id: str, chunk_ids: Sequence[str], file_id: str | None = None) -> MergeResult:
        unique_ids = list(dict.fromkeys(chunk_ids))
        if len(unique_ids) < 2:
            raise ValidationError("Need at least 2 chunks to merge")
        rows = self.db.query(
            f"SELECT {_CHUNK_COLUMNS} FROM file_chunks WHERE id IN ({placeholders(unique_ids)})",
            unique_ids,
        )
        found = [FileChunk.from_row(row) for row in rows]
        missing = set(unique_ids) - {chunk.id for chunk in found}
        if missing:
            raise NotFoundError(f"Chunks not found: {', '.join(sorted(missing))}")
        file_ids = {chunk.file_id for chunk in found}
        if len(file_ids) != 1:
            raise ValidationError("Chunks to merge must belong to the same file")
        record = self.registry.get_file(owner_id, file_ids.pop())
        if file_id is not None and record.id != file_id:
            raise ValidationError(f"Chunks do not belong to file {file_id}")

        ordered = sorted(found, key=lambda chunk: chunk.chunk_index)
        first, rest = ordered[0], ordered[1:]
        merged_content = MERGE_SEPARATOR.join(chunk.content for chunk in ordered)
        self._write_content(first.id, merged_content)

        removed_ids = [chunk.id for chunk in rest]
        self.db.execute(
            f"DELETE FROM file_chunks WHERE id IN ({placeholders(removed_ids)})",
            removed_ids,
        )
        self.db.commit()
        CHUNK_OPS.labels(operation="merge").inc()
        logger.info(
            "Merged %s chunks into %s", len(ordered), first.id, extra={"ctx_file_id": first.file_id}
        )
        self.registry.touch_chunks(record.user_id, record.id)
        return MergeResult(merged=self._load(first.id), removed_ids=removed_ids)

    def renumber_chunks(self, owner_id: str, file_id: str) -> list[FileChunk]:
        record = self.registry.get_file(owner_id, file_id)
        self._rebalance(self._snapshot(file_id))
        CHUNK_OPS.labels(operation="renumber").inc()
        self.registry.touch_chunks(record.user_id, record.id)
        return self._snapshot(file_id)

    # Internal helpers -------------------------------------------------

    def _snapshot(self, file_id: str) -> list[FileChunk]:
        rows = self.db.query(
            f"SELECT {_CHUNK_COLUMNS} FROM file_chunks WHERE file_id = ? ORDER BY chunk_index ASC, created_at ASC, rowid ASC",
            [file_id],
        )
        return [FileChunk.from_row(row) for row in rows]

    def _load(self, chunk_id: str) -> FileChunk:
        row = self.db.query_one(f"SELECT {_CHUNK_COLUMNS} FROM file_chunks WHERE id = ?", [chunk_id])
        if row is None:
            raise NotFoundError(f"Chunk {chunk_id} not found")
        return FileChunk.from_row(row)

    def _authorized_chunk(self, owner_id: str, chunk_id: str) -> tuple[FileChunk, KnowledgeFile]:
        chunk = self._load(chunk_id)
        record = self.registry.get_file(owner_id, chunk.file_id)
        return chunk, record

    def _write_content(self, chunk_id: str, content: str) -> None:
        self.db.execute(
            "UPDATE file_chunks SET content = ?, updated_at = ? WHERE id = ?",
            [content, now_ms(), chunk_id],
        )
        self.db.commit()

    def _rebalance(self, snapshot: Sequence[FileChunk]) -> None:
        with self.db.transaction() as cursor:
            cursor.executemany(
                "UPDATE file_chunks SET chunk_index = ? WHERE id = ?",
                [(float(position), chunk.id) for position, chunk in enumerate(snapshot)],
            )


def _successor_key(snapshot: Sequence[FileChunk], chunk: FileChunk) -> float | None:
    """Smallest key greater than ``chunk``'s, or None when it is last."""
    later = [item.chunk_index for item in snapshot if item.chunk_index > chunk.chunk_index]
    return min(later) if later else None


__all__ = ["ChunkEditor", "SplitResult", "MergeResult", "key_between", "MERGE_SEPARATOR"]
