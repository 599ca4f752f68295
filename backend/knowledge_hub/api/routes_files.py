"""File registry and upload routes."""

from __future__ import annotations

import orjson
from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from knowledge_hub.api.dependencies import (
    get_blob_store,
    get_current_user,
    get_file_registry,
    get_notifier,
    get_upload_coordinator,
)
from knowledge_hub.core.errors import NotFoundError
from knowledge_hub.events.notifier import ChangeNotifier
from knowledge_hub.models.dto import (
    DeleteResponse,
    FileUpdateRequest,
    KnowledgeFileResponse,
    UploadResponse,
    UploadResult,
)
from knowledge_hub.services.registry import FileRegistry
from knowledge_hub.services.upload import UploadCoordinator, UploadItem
from knowledge_hub.storage.blob import BlobStore

router = APIRouter()

KEEPALIVE_SECONDS = 15.0


@router.get("", response_model=list[KnowledgeFileResponse], summary="List the caller's files")
async def list_files(
    user_id: str = Depends(get_current_user),
    registry: FileRegistry = Depends(get_file_registry),
) -> list[KnowledgeFileResponse]:
    return [KnowledgeFileResponse.from_entity(record) for record in registry.list_files(user_id)]


@router.post("", response_model=UploadResponse, summary="Upload one or more files")
async def upload_files(
    files: list[UploadFile] = File(...),
    user_id: str = Depends(get_current_user),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator),
) -> UploadResponse:
    items = [
        UploadItem(
            filename=upload.filename or "upload",
            data=await upload.read(),
            mime_type=upload.content_type,
        )
        for upload in files
    ]
    # Blob writes and the webhook call block; keep them off the event loop.
    batch = await run_in_threadpool(coordinator.upload_many, user_id, items)
    return UploadResponse(
        succeeded=batch.succeeded,
        failed=batch.failed,
        results=[
            UploadResult(
                filename=outcome.filename,
                status="uploaded" if outcome.ok else "error",
                file=KnowledgeFileResponse.from_entity(outcome.file) if outcome.file else None,
                detail=outcome.detail,
                webhook_error=outcome.webhook_error,
            )
            for outcome in batch.results
        ],
    )


@router.get("/events", summary="Server-sent stream of file changes")
async def stream_events(
    request: Request,
    user_id: str = Depends(get_current_user),
    notifier: ChangeNotifier = Depends(get_notifier),
) -> StreamingResponse:
    subscription = notifier.subscribe(user_id)

    async def event_stream():
        try:
            yield ": connected\n\n"
            while not await request.is_disconnected():
                event = await subscription.get(timeout=KEEPALIVE_SECONDS)
                if event is None:
                    yield ": keep-alive\n\n"
                    continue
                data = orjson.dumps(event.to_dict()).decode("utf-8")
                yield f"event: {event.type}\ndata: {data}\n\n"
        finally:
            subscription.close()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{file_id}", response_model=KnowledgeFileResponse, summary="Get one file")
async def get_file(
    file_id: str,
    user_id: str = Depends(get_current_user),
    registry: FileRegistry = Depends(get_file_registry),
) -> KnowledgeFileResponse:
    return KnowledgeFileResponse.from_entity(registry.get_file(user_id, file_id))


@router.patch("/{file_id}", response_model=KnowledgeFileResponse, summary="Rename or update metadata")
async def update_file(
    file_id: str,
    request: FileUpdateRequest,
    user_id: str = Depends(get_current_user),
    registry: FileRegistry = Depends(get_file_registry),
) -> KnowledgeFileResponse:
    record = registry.get_file(user_id, file_id)
    if request.title is not None:
        record = registry.rename_file(user_id, file_id, request.title)
    if request.metadata is not None:
        record = registry.update_metadata(user_id, file_id, request.metadata)
    return KnowledgeFileResponse.from_entity(record)


@router.delete("/{file_id}", response_model=DeleteResponse, summary="Delete a file, its chunks and its blob")
async def delete_file(
    file_id: str,
    user_id: str = Depends(get_current_user),
    registry: FileRegistry = Depends(get_file_registry),
) -> DeleteResponse:
    registry.delete_file(user_id, file_id)
    return DeleteResponse(status="ok", deleted=file_id)


@router.post("/{file_id}/reprocess", response_model=KnowledgeFileResponse, summary="Retry processing")
async def reprocess_file(
    file_id: str,
    user_id: str = Depends(get_current_user),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator),
) -> KnowledgeFileResponse:
    record = await run_in_threadpool(coordinator.reprocess, user_id, file_id)
    return KnowledgeFileResponse.from_entity(record)


@router.get("/{file_id}/content", summary="Download the stored file")
async def download_file(
    file_id: str,
    user_id: str = Depends(get_current_user),
    registry: FileRegistry = Depends(get_file_registry),
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    record = registry.get_file(user_id, file_id)
    if not record.file_path:
        raise NotFoundError(f"File {file_id} has no stored content")
    media_type = record.metadata.get("mime_type") or "application/octet-stream"
    return Response(content=blob_store.read(record.file_path), media_type=media_type)


__all__ = ["router"]
