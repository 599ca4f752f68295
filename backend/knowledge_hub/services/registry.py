"""File registry: ownership-checked CRUD over knowledge file records."""

from __future__ import annotations

from typing import Any, Mapping

from knowledge_hub.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from knowledge_hub.core.logging import get_logger
from knowledge_hub.db.sqlite import SQLiteDatabase
from knowledge_hub.events.notifier import (
    CHUNKS_UPDATED,
    FILE_CREATED,
    FILE_DELETED,
    FILE_UPDATED,
    ChangeNotifier,
    FileEvent,
)
from knowledge_hub.models.entities import (
    FileType,
    KnowledgeFile,
    ProcessingStatus,
    dumps_json,
)
from knowledge_hub.storage.blob import BlobStore
from knowledge_hub.utils.ids import new_id
from knowledge_hub.utils.time import now_ms

logger = get_logger(__name__)

_FILE_COLUMNS = (
    "f.id, f.user_id, f.title, f.file_path, f.file_size, f.file_type, "
    "f.processing_status, f.metadata_json, f.created_at, f.updated_at"
)
_SELECT_WITH_COUNT = f"""
    SELECT {_FILE_COLUMNS},
           (SELECT COUNT(*) FROM file_chunks c WHERE c.file_id = f.id) AS chunk_count
    FROM knowledge_files f
"""

# Targets reachable from each status. Nothing returns to pending; terminal
# files only re-enter processing through an explicit restart.
_TRANSITIONS: Mapping[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset(
        {ProcessingStatus.PROCESSING, ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}
    ),
    ProcessingStatus.PROCESSING: frozenset(
        {ProcessingStatus.PROCESSING, ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}
    ),
    ProcessingStatus.COMPLETED: frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}),
    ProcessingStatus.FAILED: frozenset({ProcessingStatus.FAILED, ProcessingStatus.COMPLETED}),
}


def can_transition(current: ProcessingStatus, target: ProcessingStatus, restart: bool = False) -> bool:
    if target in _TRANSITIONS[current]:
        return True
    return restart and current.is_terminal and target is ProcessingStatus.PROCESSING


class FileRegistry:
    """Knowledge file records scoped to their owner.

    Every public read or write takes the acting user id and checks ownership
    before touching the row. Successful mutations are pushed to the owner's
    subscribers through the notifier.
    """

    def __init__(self, database: SQLiteDatabase, blob_store: BlobStore, notifier: ChangeNotifier) -> None:
        self.db = database
        self.blob_store = blob_store
        self.notifier = notifier

    # Owner-facing operations ------------------------------------------

    def create_file(
        self,
        owner_id: str,
        title: str,
        file_type: FileType,
        file_size: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> KnowledgeFile:
        file_id = new_id()
        now = now_ms()
        self.db.execute(
            """
            INSERT INTO knowledge_files (
              id, user_id, title, file_path, file_size, file_type,
              processing_status, metadata_json, created_at, updated_at
            ) VALUES (?, ?, ?, NULL, ?, ?, ?, ?, ?, ?)
            """,
            [
                file_id,
                owner_id,
                title,
                int(file_size),
                FileType(file_type).value,
                ProcessingStatus.PENDING.value,
                dumps_json(dict(metadata or {})),
                now,
                now,
            ],
        )
        self.db.commit()
        logger.info("Created file record %s for %s", file_id, owner_id, extra={"ctx_file_id": file_id})
        record = self._load(file_id)
        self._publish(FILE_CREATED, record)
        return record

    def get_file(self, owner_id: str, file_id: str) -> KnowledgeFile:
        record = self._load(file_id)
        self._authorize(owner_id, record)
        return record

    def list_files(self, owner_id: str) -> list[KnowledgeFile]:
        rows = self.db.query(
            f"{_SELECT_WITH_COUNT} WHERE f.user_id = ? ORDER BY f.updated_at DESC, f.rowid DESC",
            [owner_id],
        )
        return [KnowledgeFile.from_row(row) for row in rows]

    def rename_file(self, owner_id: str, file_id: str, title: str) -> KnowledgeFile:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title must not be empty")
        self.get_file(owner_id, file_id)
        self._update_columns(file_id, {"title": title})
        return self._changed(file_id)

    def update_metadata(self, owner_id: str, file_id: str, metadata: Mapping[str, Any]) -> KnowledgeFile:
        self.get_file(owner_id, file_id)
        self._update_columns(file_id, {"metadata_json": dumps_json(dict(metadata))})
        return self._changed(file_id)

    def delete_file(self, owner_id: str, file_id: str) -> KnowledgeFile:
        """Remove the blob and the row; chunks go with it through the cascade."""
        record = self.get_file(owner_id, file_id)
        if record.file_path:
            self.blob_store.delete(record.file_path)
        self.db.execute("DELETE FROM knowledge_files WHERE id = ? AND user_id = ?", [file_id, owner_id])
        self.db.commit()
        logger.info("Deleted file %s", file_id, extra={"ctx_file_id": file_id})
        self._publish(FILE_DELETED, record)
        return record

    # Pipeline-facing operations ---------------------------------------

    def find_file(self, file_id: str) -> KnowledgeFile | None:
        """Unscoped lookup used by the processing callback."""
        row = self.db.query_one(f"{_SELECT_WITH_COUNT} WHERE f.id = ?", [file_id])
        return KnowledgeFile.from_row(row) if row else None

    def set_storage_path(self, file_id: str, file_path: str) -> KnowledgeFile:
        self._update_columns(file_id, {"file_path": file_path})
        return self._changed(file_id)

    def transition_status(
        self,
        file_id: str,
        status: ProcessingStatus,
        restart: bool = False,
        title: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> KnowledgeFile:
        record = self._load(file_id)
        if not can_transition(record.processing_status, status, restart=restart):
            raise ValidationError(
                f"Illegal status transition {record.processing_status.value} -> {status.value}"
            )
        columns: dict[str, Any] = {"processing_status": status.value}
        if title:
            columns["title"] = title
        if metadata is not None:
            columns["metadata_json"] = dumps_json({**record.metadata, **metadata})
        self._update_columns(file_id, columns)
        logger.info(
            "File %s status %s -> %s",
            file_id,
            record.processing_status.value,
            status.value,
            extra={"ctx_file_id": file_id},
        )
        return self._changed(file_id)

    def discard(self, file_id: str) -> None:
        """Drop a record that never got its blob stored."""
        record = self.find_file(file_id)
        self.db.execute("DELETE FROM knowledge_files WHERE id = ?", [file_id])
        self.db.commit()
        if record is not None:
            logger.warning("Discarded orphaned file record %s", file_id, extra={"ctx_file_id": file_id})
            self._publish(FILE_DELETED, record)

    def touch_chunks(self, owner_id: str, file_id: str) -> None:
        self.notifier.publish(FileEvent(type=CHUNKS_UPDATED, owner_id=owner_id, file_id=file_id))

    # Internal helpers -------------------------------------------------

    def _load(self, file_id: str) -> KnowledgeFile:
        record = self.find_file(file_id)
        if record is None:
            raise NotFoundError(f"File {file_id} not found")
        return record

    @staticmethod
    def _authorize(owner_id: str, record: KnowledgeFile) -> None:
        if record.user_id != owner_id:
            logger.warning("User %s denied access to file %s", owner_id, record.id, extra={"ctx_file_id": record.id})
            raise PermissionDeniedError(f"File {record.id} is not owned by the current user")

    def _update_columns(self, file_id: str, columns: Mapping[str, Any]) -> None:
        assignments = [f"{column} = ?" for column in columns]
        params: list[Any] = list(columns.values())
        assignments.append("updated_at = ?")
        params.append(now_ms())
        params.append(file_id)
        self.db.execute(f"UPDATE knowledge_files SET {', '.join(assignments)} WHERE id = ?", params)
        self.db.commit()

    def _changed(self, file_id: str) -> KnowledgeFile:
        record = self._load(file_id)
        self._publish(FILE_UPDATED, record)
        return record

    def _publish(self, event_type: str, record: KnowledgeFile) -> None:
        self.notifier.publish(
            FileEvent(
                type=event_type,
                owner_id=record.user_id,
                file_id=record.id,
                payload={
                    "title": record.title,
                    "processing_status": record.processing_status.value,
                    "chunk_count": record.chunk_count,
                },
            )
        )


__all__ = ["FileRegistry", "can_transition"]
