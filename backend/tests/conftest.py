"""Test fixtures for Knowledge Hub."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from knowledge_hub.core.config import Settings  # noqa: E402
from knowledge_hub.core.errors import StorageError, WebhookError  # noqa: E402
from knowledge_hub.db.sqlite import SQLiteDatabase  # noqa: E402
from knowledge_hub.events.notifier import ChangeNotifier  # noqa: E402
from knowledge_hub.models.entities import FileType, KnowledgeFile  # noqa: E402
from knowledge_hub.services.callback import ProcessingCallbackHandler  # noqa: E402
from knowledge_hub.services.chunks import ChunkEditor  # noqa: E402
from knowledge_hub.services.registry import FileRegistry  # noqa: E402
from knowledge_hub.services.upload import UploadCoordinator  # noqa: E402
from knowledge_hub.services.webhook import ProcessingRequest  # noqa: E402
from knowledge_hub.storage.blob import LocalBlobStore  # noqa: E402
from knowledge_hub.utils.ids import new_id  # noqa: E402


class FakeProcessor:
    """Records processing requests instead of calling a webhook."""

    def __init__(self) -> None:
        self.requests: list[ProcessingRequest] = []
        self.error: str | None = None

    def trigger(self, request: ProcessingRequest) -> dict[str, Any]:
        self.requests.append(request)
        if self.error:
            raise WebhookError(self.error)
        return {"accepted": True}


class FailingBlobStore(LocalBlobStore):
    def write(self, path: str, data: bytes) -> None:
        raise StorageError(f"Failed to store {path}")


def _reset_singletons() -> None:
    from knowledge_hub.api import dependencies as deps
    from knowledge_hub.core import config

    config.get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    if deps._DB is not None:
        deps._DB.close()
    deps._DB = None
    deps._BLOB_STORE = None
    deps._NOTIFIER = None
    deps._PROCESSOR = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("KBH_DB_PATH", str(tmp_path / "kb.db"))
    monkeypatch.setenv("KBH_STORAGE_ROOT", str(tmp_path / "blobs"))
    monkeypatch.setenv("KBH_PUBLIC_BASE_URL", "http://kb.test")
    monkeypatch.delenv("KBH_CONFIG", raising=False)
    monkeypatch.delenv("KBH_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("KBH_WEBHOOK_AUTH", raising=False)
    monkeypatch.delenv("KBH_CALLBACK_TOKEN", raising=False)
    _reset_singletons()
    yield
    _reset_singletons()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "service.db",
        storage_root=tmp_path / "service-blobs",
        public_base_url="http://kb.test",
        webhook_url="http://processor.test/hook",
    )


@pytest.fixture
def database(settings: Settings) -> SQLiteDatabase:
    db = SQLiteDatabase(settings.db_path)
    db.ensure_schema()
    yield db
    db.close()


@pytest.fixture
def blob_store(settings: Settings) -> LocalBlobStore:
    store = LocalBlobStore(settings.storage_root)
    store.ensure_ready()
    return store


@pytest.fixture
def failing_blob_store(settings: Settings) -> FailingBlobStore:
    return FailingBlobStore(settings.storage_root)


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def registry(database: SQLiteDatabase, blob_store: LocalBlobStore, notifier: ChangeNotifier) -> FileRegistry:
    return FileRegistry(database, blob_store, notifier)


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def coordinator(
    registry: FileRegistry,
    blob_store: LocalBlobStore,
    processor: FakeProcessor,
    settings: Settings,
) -> UploadCoordinator:
    return UploadCoordinator(registry, blob_store, processor, settings)


@pytest.fixture
def callback_handler(database: SQLiteDatabase, registry: FileRegistry) -> ProcessingCallbackHandler:
    return ProcessingCallbackHandler(database, registry)


@pytest.fixture
def editor(database: SQLiteDatabase, registry: FileRegistry) -> ChunkEditor:
    return ChunkEditor(database, registry)


@pytest.fixture
def make_file(registry: FileRegistry):
    def _make(owner_id: str = "user-a", title: str = "notes.txt") -> KnowledgeFile:
        return registry.create_file(owner_id, title=title, file_type=FileType.TXT, file_size=10)

    return _make


@pytest.fixture
def add_chunks(database: SQLiteDatabase):
    """Insert chunk rows directly; ``chunks`` is a list of (content, index)."""

    def _add(file_id: str, chunks: list[tuple[str, float]]) -> list[str]:
        ids = []
        for content, index in chunks:
            chunk_id = new_id()
            database.execute(
                """
                INSERT INTO file_chunks (id, file_id, content, chunk_index, metadata_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, '{}', 0, 0)
                """,
                [chunk_id, file_id, content, index],
            )
            ids.append(chunk_id)
        database.commit()
        return ids

    return _add

