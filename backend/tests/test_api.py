"""API integration tests."""

from __future__ import annotations

import asyncio
import threading

import httpx
import pytest
from fastapi.testclient import TestClient

from knowledge_hub.api import dependencies as deps
from knowledge_hub.api.routes_files import stream_events
from knowledge_hub.app import app

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def client(processor) -> TestClient:
    with TestClient(app) as test_client:
        deps._PROCESSOR = processor
        yield test_client


def _upload(client: TestClient, name: str = "report.pdf", data: bytes = b"%PDF-1.4 test", headers=ALICE) -> dict:
    resp = client.post("/files", files=[("files", (name, data, "application/pdf"))], headers=headers)
    assert resp.status_code == 200
    return resp.json()["results"][0]["file"]


def _complete(client: TestClient, file_id: str, chunks: list) -> dict:
    resp = client.post("/callbacks/processing", json={"file_id": file_id, "chunks": chunks})
    assert resp.status_code == 200
    return resp.json()


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_requests_without_identity_are_rejected(client: TestClient) -> None:
    assert client.get("/files").status_code == 401
    assert client.get("/stats").status_code == 401


def test_upload_process_and_list_flow(client: TestClient, processor) -> None:
    payload = b"x" * 500_000
    resp = client.post(
        "/files",
        files=[("files", ("report.pdf", payload, "application/pdf"))],
        headers=ALICE,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["succeeded"] == 1
    assert body["failed"] == 0
    created = body["results"][0]["file"]
    assert created["processing_status"] == "processing"
    assert created["file_type"] == "pdf"
    assert created["file_size"] == 500_000

    request = processor.requests[0]
    blob = client.get(f"/blobs/{request.file_path}")
    assert blob.status_code == 200
    assert blob.content == payload

    result = _complete(client, created["id"], ["first", {"content": "second", "metadata": {"page": 2}}])
    assert result == {
        "success": True,
        "message": "Knowledge file processed successfully",
        "chunks_inserted": 2,
    }

    listing = client.get("/files", headers=ALICE).json()
    assert [(f["id"], f["processing_status"], f["chunk_count"]) for f in listing] == [
        (created["id"], "completed", 2)
    ]
    assert client.get("/files", headers=BOB).json() == []

    stats = client.get("/stats", headers=ALICE).json()
    assert stats == {"pending": 0, "processing": 0, "completed": 1, "failed": 0}
    assert client.get("/stats", headers=BOB).json()["completed"] == 0


def test_callback_without_file_id_is_bad_request(client: TestClient) -> None:
    resp = client.post("/callbacks/processing", json={"chunks": ["x"]})
    assert resp.status_code == 400


def test_callback_failure_status(client: TestClient) -> None:
    file = _upload(client)
    resp = client.post("/callbacks/processing", json={"file_id": file["id"], "status": "failed", "error": "boom"})
    assert resp.json()["success"] is True
    assert client.get(f"/files/{file['id']}", headers=ALICE).json()["processing_status"] == "failed"


def test_callback_token_enforced(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(deps.get_app_settings(), "callback_token", "s3cret")
    file = _upload(client)

    denied = client.post("/callbacks/processing", json={"file_id": file["id"]})
    assert denied.status_code == 401
    allowed = client.post(
        "/callbacks/processing",
        json={"file_id": file["id"]},
        headers={"Authorization": "Bearer s3cret"},
    )
    assert allowed.status_code == 200


def test_cross_owner_delete_is_forbidden(client: TestClient) -> None:
    file = _upload(client)
    _complete(client, file["id"], ["a", "b"])

    resp = client.delete(f"/files/{file['id']}", headers=BOB)

    assert resp.status_code == 403
    still_there = client.get(f"/files/{file['id']}", headers=ALICE).json()
    assert still_there["chunk_count"] == 2


def test_rename_and_delete(client: TestClient) -> None:
    file = _upload(client)

    renamed = client.patch(f"/files/{file['id']}", json={"title": "Q3 report"}, headers=ALICE)
    assert renamed.json()["title"] == "Q3 report"
    assert client.patch(f"/files/{file['id']}", json={"title": ""}, headers=ALICE).status_code == 422

    deleted = client.delete(f"/files/{file['id']}", headers=ALICE)
    assert deleted.json() == {"status": "ok", "deleted": file["id"]}
    assert client.get(f"/files/{file['id']}", headers=ALICE).status_code == 404


def test_download_content(client: TestClient) -> None:
    file = _upload(client, data=b"%PDF-1.4 bytes")
    resp = client.get(f"/files/{file['id']}/content", headers=ALICE)
    assert resp.status_code == 200
    assert resp.content == b"%PDF-1.4 bytes"


def test_chunk_split_and_merge_endpoints(client: TestClient) -> None:
    file = _upload(client)
    _complete(client, file["id"], ["ABCDEF", "tail"])
    chunks = client.get(f"/files/{file['id']}/chunks", headers=ALICE).json()["chunks"]

    split = client.post(f"/chunks/{chunks[0]['id']}/split", json={"offset": 3}, headers=ALICE)
    assert split.status_code == 200
    after_split = split.json()["chunks"]
    assert [(c["content"], c["chunk_index"]) for c in after_split] == [
        ("ABC", 0.0),
        ("DEF", 0.5),
        ("tail", 1.0),
    ]

    merge = client.post(
        f"/files/{file['id']}/chunks/merge",
        json={"chunk_ids": [after_split[0]["id"], after_split[1]["id"]]},
        headers=ALICE,
    )
    assert [c["content"] for c in merge.json()["chunks"]] == ["ABC\n\nDEF", "tail"]

    bad_split = client.post(f"/chunks/{chunks[1]['id']}/split", json={"offset": 0}, headers=ALICE)
    assert bad_split.status_code == 422
    single_merge = client.post(
        f"/files/{file['id']}/chunks/merge", json={"chunk_ids": [chunks[1]["id"]]}, headers=ALICE
    )
    assert single_merge.status_code == 422


def test_chunk_update_and_delete_endpoints(client: TestClient) -> None:
    file = _upload(client)
    _complete(client, file["id"], ["a", "b", "c"])
    chunks = client.get(f"/files/{file['id']}/chunks", headers=ALICE).json()["chunks"]

    updated = client.patch(f"/chunks/{chunks[0]['id']}", json={"content": "A"}, headers=ALICE)
    assert updated.json()["chunks"][0]["content"] == "A"
    assert client.patch(f"/chunks/{chunks[0]['id']}", json={"content": ""}, headers=ALICE).status_code == 422
    assert client.patch(f"/chunks/{chunks[0]['id']}", json={"content": "x"}, headers=BOB).status_code == 403

    remaining = client.delete(f"/chunks/{chunks[1]['id']}", headers=ALICE).json()["chunks"]
    assert [(c["content"], c["chunk_index"]) for c in remaining] == [("A", 0.0), ("c", 2.0)]


def test_webhook_failure_reported_in_upload_result(client: TestClient, processor) -> None:
    processor.error = "processor offline"
    resp = client.post("/files", files=[("files", ("a.txt", b"hi", "text/plain"))], headers=ALICE)
    result = resp.json()["results"][0]
    assert result["status"] == "uploaded"
    assert result["webhook_error"] == "processor offline"
    assert result["file"]["processing_status"] == "processing"

    retry = client.post(f"/files/{result['file']['id']}/reprocess", headers=ALICE)
    assert retry.status_code == 502


def test_chat_flow(client: TestClient) -> None:
    file = _upload(client)
    _complete(client, file["id"], ["Opening paragraph"])

    resp = client.post("/chat/messages", json={"content": "Summary?", "file_ids": [file["id"]]}, headers=ALICE)
    assert resp.status_code == 200
    message = resp.json()
    assert message["role"] == "assistant"
    assert message["sources"][0]["excerpt"] == "Opening paragraph"

    sessions = client.get("/chat/sessions", headers=ALICE).json()
    assert len(sessions) == 1
    export = client.get(f"/chat/sessions/{sessions[0]['id']}/export", headers=ALICE)
    assert export.text.startswith("USER: Summary?")


def test_metrics_endpoint(client: TestClient) -> None:
    _upload(client)
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "kbh_uploads_total" in resp.text


def test_failed_callback_ignores_malformed_chunks(client: TestClient) -> None:
    file = _upload(client)
    resp = client.post(
        "/callbacks/processing",
        json={"file_id": file["id"], "status": "failed", "error": "boom", "chunks": [{"text": "x"}]},
    )
    assert resp.status_code == 200
    assert client.get(f"/files/{file['id']}", headers=ALICE).json()["processing_status"] == "failed"


def test_callback_coerces_loose_chunk_items(client: TestClient) -> None:
    file = _upload(client)
    result = _complete(client, file["id"], [{"content": None}, {"text": "x"}, "plain"])

    assert result["chunks_inserted"] == 2
    chunks = client.get(f"/files/{file['id']}/chunks", headers=ALICE).json()["chunks"]
    assert [c["content"] for c in chunks] == ['{"text":"x"}', "plain"]
    assert client.get(f"/files/{file['id']}", headers=ALICE).json()["processing_status"] == "completed"


def test_callback_with_non_list_chunks_completes(client: TestClient) -> None:
    file = _upload(client)
    result = _complete(client, file["id"], "not a list")
    assert result["chunks_inserted"] == 0


class _BlockingProcessor:
    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()

    def trigger(self, request):
        self.started.set()
        self.release.wait(timeout=2)
        return {"accepted": True}


def test_slow_webhook_does_not_block_other_requests(client: TestClient) -> None:
    processor = _BlockingProcessor()
    deps._PROCESSOR = processor

    async def scenario() -> None:
        loop = asyncio.get_running_loop()
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://kb.test") as async_client:
            upload = asyncio.create_task(
                async_client.post("/files", files=[("files", ("a.txt", b"hi", "text/plain"))], headers=ALICE)
            )
            assert await loop.run_in_executor(None, processor.started.wait, 5)

            health = await async_client.get("/health")
            assert health.status_code == 200
            assert not upload.done()

            processor.release.set()
            resp = await upload
            assert resp.status_code == 200
            assert resp.json()["succeeded"] == 1

    try:
        asyncio.run(scenario())
    finally:
        processor.release.set()


class _OpenRequest:
    def __init__(self) -> None:
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


def test_event_stream_delivers_owner_changes(client: TestClient) -> None:
    async def scenario() -> None:
        notifier = deps.get_notifier()
        alice_request, bob_request = _OpenRequest(), _OpenRequest()
        alice = (await stream_events(request=alice_request, user_id="alice", notifier=notifier)).body_iterator
        bob = (await stream_events(request=bob_request, user_id="bob", notifier=notifier)).body_iterator
        assert await alice.__anext__() == ": connected\n\n"
        assert await bob.__anext__() == ": connected\n\n"

        file = await asyncio.to_thread(_upload, client)
        await asyncio.to_thread(_complete, client, file["id"], ["a"])

        frames = []
        while True:
            frame = await asyncio.wait_for(alice.__anext__(), 5)
            frames.append(frame)
            if frame.startswith("event: chunks.updated"):
                break
        assert frames[0].startswith("event: file.created")
        assert '"processing_status":"pending"' in frames[0]
        assert any(f.startswith("event: file.updated") and '"completed"' in f for f in frames)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(bob.__anext__(), 0.2)

        alice_request.disconnected = True
        await alice.aclose()

    asyncio.run(scenario())
