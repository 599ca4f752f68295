"""Chunk editor routes.

Every mutation answers with the refreshed chunk list of the affected file.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowledge_hub.api.dependencies import get_chunk_editor, get_current_user
from knowledge_hub.models.dto import (
    ChunkListResponse,
    ChunkMergeRequest,
    ChunkResponse,
    ChunkSplitRequest,
    ChunkUpdateRequest,
)
from knowledge_hub.services.chunks import ChunkEditor

router = APIRouter()


@router.get("/files/{file_id}/chunks", response_model=ChunkListResponse, summary="List a file's chunks")
async def list_chunks(
    file_id: str,
    user_id: str = Depends(get_current_user),
    editor: ChunkEditor = Depends(get_chunk_editor),
) -> ChunkListResponse:
    return _listing(editor, user_id, file_id)


@router.post("/files/{file_id}/chunks/merge", response_model=ChunkListResponse, summary="Merge chunks")
async def merge_chunks(
    file_id: str,
    request: ChunkMergeRequest,
    user_id: str = Depends(get_current_user),
    editor: ChunkEditor = Depends(get_chunk_editor),
) -> ChunkListResponse:
    editor.merge_chunks(user_id, request.chunk_ids, file_id=file_id)
    return _listing(editor, user_id, file_id)


@router.post("/files/{file_id}/chunks/renumber", response_model=ChunkListResponse, summary="Rebalance chunk keys")
async def renumber_chunks(
    file_id: str,
    user_id: str = Depends(get_current_user),
    editor: ChunkEditor = Depends(get_chunk_editor),
) -> ChunkListResponse:
    chunks = editor.renumber_chunks(user_id, file_id)
    return ChunkListResponse(file_id=file_id, chunks=[ChunkResponse.from_entity(chunk) for chunk in chunks])


@router.get("/chunks/{chunk_id}", response_model=ChunkResponse, summary="Get one chunk")
async def get_chunk(
    chunk_id: str,
    user_id: str = Depends(get_current_user),
    editor: ChunkEditor = Depends(get_chunk_editor),
) -> ChunkResponse:
    return ChunkResponse.from_entity(editor.get_chunk(user_id, chunk_id))


@router.patch("/chunks/{chunk_id}", response_model=ChunkListResponse, summary="Edit chunk content")
async def update_chunk(
    chunk_id: str,
    request: ChunkUpdateRequest,
    user_id: str = Depends(get_current_user),
    editor: ChunkEditor = Depends(get_chunk_editor),
) -> ChunkListResponse:
    chunk = editor.update_chunk(user_id, chunk_id, request.content)
    return _listing(editor, user_id, chunk.file_id)


@router.delete("/chunks/{chunk_id}", response_model=ChunkListResponse, summary="Delete a chunk")
async def delete_chunk(
    chunk_id: str,
    user_id: str = Depends(get_current_user),
    editor: ChunkEditor = Depends(get_chunk_editor),
) -> ChunkListResponse:
    chunk = editor.delete_chunk(user_id, chunk_id)
    return _listing(editor, user_id, chunk.file_id)


@router.post("/chunks/{chunk_id}/split", response_model=ChunkListResponse, summary="Split a chunk at an offset")
async def split_chunk(
    chunk_id: str,
    request: ChunkSplitRequest,
    user_id: str = Depends(get_current_user),
    editor: ChunkEditor = Depends(get_chunk_editor),
) -> ChunkListResponse:
    result = editor.split_chunk(user_id, chunk_id, request.offset)
    return _listing(editor, user_id, result.original.file_id)


def _listing(editor: ChunkEditor, user_id: str, file_id: str) -> ChunkListResponse:
    return ChunkListResponse(
        file_id=file_id,
        chunks=[ChunkResponse.from_entity(chunk) for chunk in editor.list_chunks(user_id, file_id)],
    )


__all__ = ["router"]
