"""Upload coordination: record, blob, status, processing webhook."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from knowledge_hub.core.config import Settings
from knowledge_hub.core.errors import KnowledgeHubError, ValidationError, WebhookError
from knowledge_hub.core.logging import get_logger
from knowledge_hub.core.metrics import UPLOAD_COUNT
from knowledge_hub.models.entities import FileType, KnowledgeFile, ProcessingStatus
from knowledge_hub.services.registry import FileRegistry
from knowledge_hub.services.webhook import ProcessingTrigger, build_processing_request
from knowledge_hub.storage.blob import BlobStore
from knowledge_hub.utils.hashing import sha256_bytes
from knowledge_hub.utils.text import file_extension

logger = get_logger(__name__)

# Rules are tried in order; a rule matches on its MIME fragment or one of its
# extensions, so "text/csv" is caught by the text rule. Unmatched is plain text.
_TYPE_RULES: Sequence[tuple[FileType, str, frozenset[str]]] = (
    (FileType.PDF, "pdf", frozenset({"pdf"})),
    (FileType.TXT, "text", frozenset({"txt", "md"})),
    (FileType.CSV, "csv", frozenset({"csv"})),
    (FileType.DOCX, "word", frozenset({"doc", "docx"})),
    (FileType.AUDIO, "audio", frozenset({"mp3", "wav", "m4a"})),
)


def infer_file_type(filename: str, mime_type: str | None = None) -> FileType:
    extension = file_extension(filename, default="")
    mime = (mime_type or "").lower()
    for file_type, mime_fragment, extensions in _TYPE_RULES:
        if mime_fragment in mime or extension in extensions:
            return file_type
    return FileType.TXT


def storage_path_for(owner_id: str, file_id: str, filename: str) -> str:
    return f"{owner_id}/{file_id}.{file_extension(filename)}"


@dataclass(slots=True)
class UploadItem:
    filename: str
    data: bytes
    mime_type: str | None = None
    title: str | None = None


@dataclass(slots=True)
class UploadOutcome:
    """Result for one file of an upload request."""

    filename: str
    status: str
    file: KnowledgeFile | None = None
    detail: str | None = None
    webhook_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "uploaded"


@dataclass(slots=True)
class BatchUploadResult:
    results: list[UploadOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.results if item.ok)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.results if not item.ok)

    def stats(self) -> dict[str, int]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "webhook_errors": sum(1 for item in self.results if item.webhook_error),
        }


class UploadCoordinator:
    """Drive a file from upload request to an in-flight processing attempt."""

    def __init__(
        self,
        registry: FileRegistry,
        blob_store: BlobStore,
        processor: ProcessingTrigger,
        settings: Settings,
    ) -> None:
        self.registry = registry
        self.blob_store = blob_store
        self.processor = processor
        self.settings = settings

    def upload(
        self,
        owner_id: str,
        filename: str,
        data: bytes,
        mime_type: str | None = None,
        title: str | None = None,
    ) -> UploadOutcome:
        """Store one file and kick off processing.

        A blob write failure removes the freshly created record and re-raises.
        A webhook failure leaves the file in ``processing`` and is reported on
        the returned outcome instead of raised; :meth:`reprocess` retries it.
        """
        if len(data) > self.settings.max_upload_bytes:
            raise ValidationError(
                f"{filename} is {len(data)} bytes; the limit is {self.settings.max_upload_bytes}"
            )
        file_type = infer_file_type(filename, mime_type)
        record = self.registry.create_file(
            owner_id,
            title=(title or filename).strip() or filename,
            file_type=file_type,
            file_size=len(data),
            metadata={
                "original_name": filename,
                "mime_type": mime_type,
                "sha256": sha256_bytes(data),
            },
        )
        path = storage_path_for(owner_id, record.id, filename)
        try:
            self.blob_store.write(path, data)
        except Exception:
            logger.error("Blob write failed for %s; removing record", record.id, extra={"ctx_file_id": record.id})
            self.registry.discard(record.id)
            UPLOAD_COUNT.labels(outcome="storage_error").inc()
            raise

        self.registry.set_storage_path(record.id, path)
        record = self.registry.transition_status(record.id, ProcessingStatus.PROCESSING)
        outcome = UploadOutcome(filename=filename, status="uploaded", file=record)
        try:
            self._trigger(record)
        except WebhookError as exc:
            logger.warning(
                "Processing webhook failed for %s: %s", record.id, exc.message, extra={"ctx_file_id": record.id}
            )
            outcome.webhook_error = exc.message
            UPLOAD_COUNT.labels(outcome="webhook_error").inc()
        else:
            UPLOAD_COUNT.labels(outcome="ok").inc()
        return outcome

    def upload_many(self, owner_id: str, items: Sequence[UploadItem]) -> BatchUploadResult:
        """Upload every item independently; one failure never stops the rest."""
        batch = BatchUploadResult()
        for item in items:
            try:
                outcome = self.upload(owner_id, item.filename, item.data, item.mime_type, item.title)
            except KnowledgeHubError as exc:
                outcome = UploadOutcome(filename=item.filename, status="error", detail=exc.message)
            except Exception as exc:
                logger.exception("Failed to upload %s: %s", item.filename, exc)
                outcome = UploadOutcome(filename=item.filename, status="error", detail=str(exc))
            batch.results.append(outcome)
        logger.info("Batch upload for %s finished: %s", owner_id, batch.stats())
        return batch

    def reprocess(self, owner_id: str, file_id: str) -> KnowledgeFile:
        """Caller-initiated retry of the processing webhook."""
        record = self.registry.get_file(owner_id, file_id)
        if not record.file_path:
            raise ValidationError(f"File {file_id} has no stored content to process")
        record = self.registry.transition_status(
            file_id,
            ProcessingStatus.PROCESSING,
            restart=record.processing_status.is_terminal,
        )
        self._trigger(record)
        return record

    def _trigger(self, record: KnowledgeFile) -> dict[str, Any]:
        request = build_processing_request(
            self.settings,
            file_id=record.id,
            file_path=record.file_path or "",
            file_type=record.file_type.value,
        )
        return self.processor.trigger(request)


__all__ = [
    "infer_file_type",
    "storage_path_for",
    "UploadItem",
    "UploadOutcome",
    "BatchUploadResult",
    "UploadCoordinator",
]
