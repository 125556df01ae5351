"""Tests for the import HTTP API."""

import json

import pytest
from httpx import ASGITransport, AsyncClient

from chatmigrate.importer.router import get_import_service
from chatmigrate.importer.service import ImportService
from chatmigrate.main import app
from tests.fixtures import make_chatgpt_conversation


def upload(data, name: str = "conversations.json", content_type: str = "application/json"):
    body = data if isinstance(data, bytes) else json.dumps(data).encode()
    return {"file": (name, body, content_type)}


async def preview_session(client, count: int = 3) -> dict:
    convs = [make_chatgpt_conversation(conv_id=f"c{i}") for i in range(count)]
    resp = await client.post("/api/import/preview", files=upload(convs))
    assert resp.status_code == 200
    return resp.json()


class TestPreviewEndpoint:
    async def test_returns_previews_without_raw_data(self, client):
        data = await preview_session(client, 2)
        assert data["format"] == "chatgpt"
        assert data["total_count"] == 2
        assert data["importable_count"] == 2
        first = data["conversations"][0]
        assert first["id"] == "chatgpt-0"
        assert first["conversation_id"] == "c0"
        assert "raw_data" not in first

    async def test_invalid_json_returns_422(self, client):
        resp = await client.post("/api/import/preview", files=upload(b"{not json"))
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Invalid JSON file"

    async def test_unsupported_format_returns_422(self, client):
        resp = await client.post("/api/import/preview", files=upload([{"foo": "bar"}]))
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Unsupported import format"

    async def test_malformed_entry_returns_422(self, client):
        resp = await client.post(
            "/api/import/preview", files=upload([{"id": "a", "mapping": {}}, None])
        )
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Malformed chatgpt export"

    async def test_non_json_file_returns_422(self, client):
        resp = await client.post(
            "/api/import/preview", files=upload(b"[]", name="notes.txt", content_type="text/plain")
        )
        assert resp.status_code == 422

    async def test_file_too_large_returns_413(self, destination, cache, session_store):
        service = ImportService(destination, cache, session_store, max_file_size=1024 * 1024)
        app.dependency_overrides[get_import_service] = lambda: service
        try:
            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as c:
                body = b"[" + b" " * (2 * 1024 * 1024) + b"]"
                resp = await c.post("/api/import/preview", files=upload(body))
        finally:
            app.dependency_overrides.clear()
            await service.close()
        assert resp.status_code == 413
        assert resp.json()["detail"] == "File is too large. Maximum import size is 1.00 MB"


class TestFlowEndpoints:
    async def test_full_import_and_status(self, client, import_service):
        session_id = (await preview_session(client))["session_id"]

        resp = await client.post(f"/api/import/{session_id}/mode", json={"mode": "full"})
        assert resp.status_code == 200
        assert resp.json()["mode"] == "full"

        await import_service.wait_until_settled(session_id)
        resp = await client.get(f"/api/import/{session_id}/status")
        assert resp.status_code == 200
        status = resp.json()
        assert status["status"] == "complete"
        assert status["confirmed"] is True
        assert status["progress"] == 100
        assert status["file_name"] == "conversations.json"

    async def test_status_can_wait_for_the_upload(self, client):
        session_id = (await preview_session(client))["session_id"]
        await client.post(f"/api/import/{session_id}/mode", json={"mode": "full"})

        resp = await client.get(f"/api/import/{session_id}/status", params={"wait": "true"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "complete"
        assert resp.json()["confirmed"] is True

    async def test_batch_over_500_returns_422(self, client):
        session_id = (await preview_session(client, 3))["session_id"]
        resp = await client.post(
            f"/api/import/{session_id}/mode", json={"mode": "batch", "start": 1, "end": 600}
        )
        assert resp.status_code == 422

    async def test_selective_flow(self, client, import_service, destination):
        session_id = (await preview_session(client, 4))["session_id"]
        resp = await client.post(f"/api/import/{session_id}/mode", json={"mode": "selective"})
        assert resp.json()["step"] == "selective"

        resp = await client.get(
            f"/api/import/{session_id}/conversations", params={"date_filter": "all"}
        )
        assert len(resp.json()) == 4

        resp = await client.post(
            f"/api/import/{session_id}/selection/toggle", json={"preview_id": "chatgpt-1"}
        )
        assert resp.json()["selected_ids"] == ["chatgpt-1"]

        resp = await client.post(f"/api/import/{session_id}/selection/visible", json={})
        assert resp.json()["selected_count"] == 4

        resp = await client.delete(f"/api/import/{session_id}/selection")
        assert resp.json()["selected_count"] == 0

        resp = await client.post(f"/api/import/{session_id}/selection/submit")
        assert resp.status_code == 422

        await client.post(
            f"/api/import/{session_id}/selection/toggle", json={"preview_id": "chatgpt-3"}
        )
        resp = await client.post(f"/api/import/{session_id}/selection/submit")
        assert resp.status_code == 200
        await import_service.wait_until_settled(session_id)
        assert [conv["id"] for conv in destination.imports[0]] == ["c3"]

    async def test_toggle_before_selective_returns_409(self, client):
        session_id = (await preview_session(client))["session_id"]
        resp = await client.post(
            f"/api/import/{session_id}/selection/toggle", json={"preview_id": "chatgpt-0"}
        )
        assert resp.status_code == 409

    async def test_retry_without_failures_returns_422(self, client):
        session_id = (await preview_session(client))["session_id"]
        resp = await client.post(f"/api/import/{session_id}/retry")
        assert resp.status_code == 422

    async def test_cancel(self, client):
        session_id = (await preview_session(client))["session_id"]
        resp = await client.delete(f"/api/import/{session_id}")
        assert resp.status_code == 204
        resp = await client.get(f"/api/import/{session_id}/conversations")
        assert resp.status_code == 404

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/import/missing/status"),
        ("get", "/api/import/missing/conversations"),
        ("post", "/api/import/missing/selection/submit"),
        ("delete", "/api/import/missing"),
    ])
    async def test_unknown_session_returns_404(self, client, method, path):
        resp = await getattr(client, method)(path)
        assert resp.status_code == 404


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
