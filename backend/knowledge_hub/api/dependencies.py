"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from knowledge_hub.core.config import Settings, get_settings
from knowledge_hub.db.sqlite import SQLiteDatabase
from knowledge_hub.events.notifier import ChangeNotifier
from knowledge_hub.services.callback import ProcessingCallbackHandler
from knowledge_hub.services.chat import ChatService, PlaceholderResponder
from knowledge_hub.services.chunks import ChunkEditor
from knowledge_hub.services.registry import FileRegistry
from knowledge_hub.services.upload import UploadCoordinator
from knowledge_hub.services.webhook import ProcessingTrigger, WebhookClient
from knowledge_hub.storage.blob import BlobStore, LocalBlobStore

_DB: SQLiteDatabase | None = None
_BLOB_STORE: BlobStore | None = None
_NOTIFIER: ChangeNotifier | None = None
_PROCESSOR: ProcessingTrigger | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_blob_store() -> BlobStore:
    global _BLOB_STORE
    if _BLOB_STORE is None:
        store = LocalBlobStore(get_app_settings().storage_root)
        store.ensure_ready()
        _BLOB_STORE = store
    return _BLOB_STORE


def get_notifier() -> ChangeNotifier:
    global _NOTIFIER
    if _NOTIFIER is None:
        _NOTIFIER = ChangeNotifier()
    return _NOTIFIER


def get_processor() -> ProcessingTrigger:
    global _PROCESSOR
    if _PROCESSOR is None:
        _PROCESSOR = WebhookClient(get_app_settings())
    return _PROCESSOR


def get_file_registry() -> FileRegistry:
    return FileRegistry(get_database(), get_blob_store(), get_notifier())


def get_upload_coordinator() -> UploadCoordinator:
    return UploadCoordinator(
        registry=get_file_registry(),
        blob_store=get_blob_store(),
        processor=get_processor(),
        settings=get_app_settings(),
    )


def get_callback_handler() -> ProcessingCallbackHandler:
    return ProcessingCallbackHandler(get_database(), get_file_registry())


def get_chunk_editor() -> ChunkEditor:
    return ChunkEditor(get_database(), get_file_registry())


def get_chat_service() -> ChatService:
    db = get_database()
    responder = PlaceholderResponder(db, delay=get_app_settings().chat_response_delay)
    return ChatService(db, get_file_registry(), responder)


def get_current_user(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """Identity forwarded by the upstream authentication provider."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


__all__ = [
    "get_app_settings",
    "get_database",
    "get_blob_store",
    "get_notifier",
    "get_processor",
    "get_file_registry",
    "get_upload_coordinator",
    "get_callback_handler",
    "get_chunk_editor",
    "get_chat_service",
    "get_current_user",
]
