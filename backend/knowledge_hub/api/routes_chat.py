"""Chat session routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from knowledge_hub.api.dependencies import get_chat_service, get_current_user
from knowledge_hub.models.dto import (
    ChatMessageResponse,
    ChatRequest,
    ChatSessionResponse,
    SessionCreateRequest,
)
from knowledge_hub.services.chat import ChatService

router = APIRouter()


@router.post("/messages", response_model=ChatMessageResponse, summary="Ask a question about selected files")
async def send_message(
    request: ChatRequest,
    user_id: str = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ChatMessageResponse:
    # The responder may sleep; keep it off the event loop.
    message = await run_in_threadpool(
        service.send_message,
        user_id,
        request.content,
        request.file_ids,
        request.session_id,
    )
    return ChatMessageResponse.from_entity(message)


@router.get("/sessions", response_model=list[ChatSessionResponse], summary="List chat sessions")
async def list_sessions(
    user_id: str = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> list[ChatSessionResponse]:
    return [ChatSessionResponse.from_entity(session) for session in service.list_sessions(user_id)]


@router.post("/sessions", response_model=ChatSessionResponse, summary="Start a chat session")
async def create_session(
    request: SessionCreateRequest,
    user_id: str = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ChatSessionResponse:
    return ChatSessionResponse.from_entity(service.create_session(user_id, request.title))


@router.get(
    "/sessions/{session_id}/messages",
    response_model=list[ChatMessageResponse],
    summary="Messages of a session",
)
async def get_messages(
    session_id: str,
    user_id: str = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> list[ChatMessageResponse]:
    return [ChatMessageResponse.from_entity(message) for message in service.get_messages(user_id, session_id)]


@router.get("/sessions/{session_id}/export", response_class=PlainTextResponse, summary="Export a transcript")
async def export_session(
    session_id: str,
    user_id: str = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> PlainTextResponse:
    return PlainTextResponse(service.export_session(user_id, session_id))


@router.delete("/sessions/{session_id}", summary="Delete a chat session")
async def delete_session(
    session_id: str,
    user_id: str = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> dict[str, str]:
    service.delete_session(user_id, session_id)
    return {"status": "ok", "deleted": session_id}


__all__ = ["router"]
