"""Routes called by the external document processor."""

from __future__ import annotations

import hmac
import sqlite3

from fastapi import APIRouter, Depends, Header, HTTPException, Response

from knowledge_hub.api.dependencies import get_app_settings, get_blob_store, get_callback_handler
from knowledge_hub.core.config import Settings
from knowledge_hub.core.logging import get_logger
from knowledge_hub.models.dto import ProcessingCallbackRequest, ProcessingCallbackResponse
from knowledge_hub.services.callback import ProcessingCallbackHandler, ProcessingResult
from knowledge_hub.storage.blob import BlobStore

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/callbacks/processing",
    response_model=ProcessingCallbackResponse,
    summary="Receive the result of a processing attempt",
)
async def processing_callback(
    request: ProcessingCallbackRequest,
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    handler: ProcessingCallbackHandler = Depends(get_callback_handler),
) -> ProcessingCallbackResponse:
    if settings.callback_token and not _matches(authorization, f"Bearer {settings.callback_token}"):
        raise HTTPException(status_code=401, detail="Invalid callback token")
    if not request.file_id:
        raise HTTPException(status_code=400, detail="file_id is required")

    result = ProcessingResult(
        file_id=request.file_id,
        content=request.content,
        chunks=request.chunks or [],
        title=request.title,
        failed=request.status == "failed",
        error=request.error,
    )
    try:
        outcome = handler.handle(result)
    except sqlite3.Error as exc:
        logger.exception("Callback for %s failed: %s", request.file_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update file") from exc
    return ProcessingCallbackResponse(
        success=outcome.success,
        message=outcome.message,
        chunks_inserted=outcome.chunks_inserted,
    )


@router.get("/blobs/{path:path}", summary="Serve stored bytes to the processor")
async def read_blob(
    path: str,
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    if settings.webhook_auth and not _matches(authorization, settings.webhook_auth):
        raise HTTPException(status_code=401, detail="Invalid authorization")
    if not blob_store.exists(path):
        raise HTTPException(status_code=404, detail="Blob not found")
    return Response(content=blob_store.read(path), media_type="application/octet-stream")


def _matches(provided: str | None, expected: str) -> bool:
    return provided is not None and hmac.compare_digest(provided, expected)


__all__ = ["router"]
