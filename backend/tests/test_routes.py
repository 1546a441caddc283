"""
NoteKeeper Backend: HTTP API Tests
====================================

What:  The FastAPI app end to end through httpx's ASGITransport, with the
       per-test SQLite database, a tmp_path object store and the scripted
       completion service wired in via dependency overrides.

What we test:
    ✅ Status codes and headers for every endpoint (201 + Location, 204, 400, 403, 404)
    ✅ Error body shape (error, message, request_id)
    ✅ Tag filter and distinct tag listing
    ✅ Note quota reached after 10 creates
    ✅ Unreachable completion endpoint → note tagged ErrorFetchingTags
    ✅ Attachment create/overwrite/download/list/delete over multipart
    ✅ X-Request-ID propagation and /health
"""

import uuid

import httpx
import pytest

from notekeeper.dependencies import get_quota_limits, get_tag_generator
from notekeeper.services.note_service import QuotaLimits
from notekeeper.services.openai_service import OpenAICompletionService
from notekeeper.services.tag_service import ERROR_FETCHING_TAGS, TagGenerator

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


async def create_note(client, summary="Groceries", details="Milk, Eggs, Oranges") -> dict:
    response = await client.post("/notes", json={"summary": summary, "details": details})
    assert response.status_code == 201, response.text
    return response.json()


def upload(client, note_id, attachment_id, content=PNG_BYTES, content_type="image/png"):
    return client.put(
        f"/notes/{note_id}/attachments/{attachment_id}",
        files={"fileData": (attachment_id, content, content_type)},
    )


class TestNotesApi:

    @pytest.mark.asyncio
    async def test_create_returns_201_with_location(self, client, completion_service):
        completion_service.default = '["groceries", "shopping"]'

        response = await client.post("/notes", json={"summary": "Groceries", "details": "Milk"})

        assert response.status_code == 201
        body = response.json()
        assert response.headers["location"] == f"/notes/{body['id']}"
        assert body["summary"] == "Groceries"
        assert sorted(body["tags"]) == ["groceries", "shopping"]
        assert body["modified_at"] is None

    @pytest.mark.asyncio
    async def test_get_round_trip(self, client):
        created = await create_note(client)

        response = await client.get(f"/notes/{created['id']}")

        assert response.status_code == 200
        assert response.json()["details"] == "Milk, Eggs, Oranges"

    @pytest.mark.asyncio
    async def test_missing_field_is_400(self, client):
        response = await client.post("/notes", json={"summary": "only a summary"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert "request_id" in body

    @pytest.mark.asyncio
    async def test_malformed_json_is_400(self, client):
        response = await client.post(
            "/notes", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_bad_uuid_is_400(self, client):
        response = await client.get("/notes/not-a-uuid")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_note_is_404(self, client):
        response = await client.get(f"/notes/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_list_and_tag_filter(self, client, completion_service):
        completion_service.responses = ['["Work", "urgent"]', '["home"]']
        work = await create_note(client, "Report", "Quarterly report")
        await create_note(client, "Chores", "Laundry")

        everything = await client.get("/notes")
        filtered = await client.get("/notes", params={"tagName": "Work"})
        wrong_case = await client.get("/notes", params={"tagName": "work"})

        assert len(everything.json()) == 2
        assert [n["id"] for n in filtered.json()] == [work["id"]]
        assert wrong_case.json() == []

    @pytest.mark.asyncio
    async def test_distinct_tags(self, client, completion_service):
        completion_service.responses = ['["b", "a"]', '["a", "c"]']
        await create_note(client, "one", "one")
        await create_note(client, "two", "two")

        response = await client.get("/notes/tags")

        assert response.status_code == 200
        assert response.json() == [{"name": "a"}, {"name": "b"}, {"name": "c"}]

    @pytest.mark.asyncio
    async def test_patch_summary(self, client):
        created = await create_note(client)

        response = await client.patch(f"/notes/{created['id']}", json={"summary": "Renamed"})
        fetched = (await client.get(f"/notes/{created['id']}")).json()

        assert response.status_code == 204
        assert fetched["summary"] == "Renamed"
        assert sorted(fetched["tags"]) == sorted(created["tags"])
        assert fetched["modified_at"] is not None

    @pytest.mark.asyncio
    async def test_patch_empty_body_is_400(self, client):
        created = await create_note(client)
        response = await client.patch(f"/notes/{created['id']}", json={})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_patch_unknown_is_404(self, client):
        response = await client.patch(f"/notes/{uuid.uuid4()}", json={"summary": "x"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_then_get_is_404(self, client):
        created = await create_note(client)

        deleted = await client.delete(f"/notes/{created['id']}")
        again = await client.delete(f"/notes/{created['id']}")
        fetched = await client.get(f"/notes/{created['id']}")

        assert deleted.status_code == 204
        assert again.status_code == 404
        assert fetched.status_code == 404

    @pytest.mark.asyncio
    async def test_eleventh_note_is_forbidden(self, client):
        ids = set()
        for i in range(10):
            ids.add((await create_note(client, f"note {i}", f"details {i}"))["id"])
        assert len(ids) == 10

        response = await client.post("/notes", json={"summary": "one too many", "details": "x"})

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "quota_exceeded"
        assert "10" in body["message"]
        assert len((await client.get("/notes")).json()) == 10

    @pytest.mark.asyncio
    async def test_unreachable_completion_endpoint(self, app, client):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        service = OpenAICompletionService(
            endpoint="http://completion.invalid/chat/completions",
            api_key="key",
            client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
        )
        generator = TagGenerator(service)
        app.dependency_overrides[get_tag_generator] = lambda: generator

        body = await create_note(client, "Trip", "Pack the suitcase")

        assert body["tags"] == [ERROR_FETCHING_TAGS]
        await generator.aclose()


class TestAttachmentsApi:

    @pytest.mark.asyncio
    async def test_upload_creates_then_overwrites(self, client):
        note = await create_note(client)

        first = await upload(client, note["id"], "receipt.png")
        second = await upload(client, note["id"], "receipt.png", b"new bytes", "image/png")

        assert first.status_code == 201
        assert first.headers["location"] == f"/notes/{note['id']}/attachments/receipt.png"
        assert first.json()["length"] == len(PNG_BYTES)
        assert second.status_code == 204

    @pytest.mark.asyncio
    async def test_download_streams_content(self, client):
        note = await create_note(client)
        await upload(client, note["id"], "receipt.png")

        response = await client.get(
            f"/notes/{note['id']}/attachments/receipt.png",
            headers={"Accept-Encoding": "identity"},
        )

        assert response.status_code == 200
        assert response.content == PNG_BYTES
        assert response.headers["content-type"] == "image/png"
        assert response.headers["content-length"] == str(len(PNG_BYTES))

    @pytest.mark.asyncio
    async def test_download_missing_is_404(self, client):
        note = await create_note(client)
        response = await client.get(f"/notes/{note['id']}/attachments/nothing.png")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_attachments(self, client):
        note = await create_note(client)
        await upload(client, note["id"], "b.txt", b"bee", "text/plain")
        await upload(client, note["id"], "a.png")

        response = await client.get(f"/notes/{note['id']}/attachments")

        assert response.status_code == 200
        listing = response.json()
        assert [a["id"] for a in listing] == ["a.png", "b.txt"]
        assert listing[1]["content_type"] == "text/plain"
        assert listing[1]["length"] == 3

    @pytest.mark.asyncio
    async def test_empty_file_is_400(self, client):
        note = await create_note(client)
        response = await upload(client, note["id"], "empty.txt", b"", "text/plain")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_fourth_attachment_is_forbidden(self, client):
        note = await create_note(client)
        for name in ("1.png", "2.png", "3.png"):
            assert (await upload(client, note["id"], name)).status_code == 201

        response = await upload(client, note["id"], "4.png")

        assert response.status_code == 403
        assert "3" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_empty_file_to_full_note_is_400(self, client):
        note = await create_note(client)
        for name in ("1.png", "2.png", "3.png"):
            await upload(client, note["id"], name)

        response = await upload(client, note["id"], "4.png", b"", "image/png")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_attachment_ceiling_follows_quota_limits(self, app, client):
        app.dependency_overrides[get_quota_limits] = lambda: QuotaLimits(max_notes=10, max_attachments=1)
        note = await create_note(client)

        first = await upload(client, note["id"], "1.png")
        second = await upload(client, note["id"], "2.png")

        assert first.status_code == 201
        assert second.status_code == 403
        assert "1" in second.json()["message"]

    @pytest.mark.asyncio
    async def test_missing_note_is_404(self, client, storage_root):
        missing = uuid.uuid4()

        put = await upload(client, missing, "a.png")
        listing = await client.get(f"/notes/{missing}/attachments")
        delete = await client.delete(f"/notes/{missing}/attachments/a.png")

        assert put.status_code == 404
        assert listing.status_code == 404
        assert delete.status_code == 404
        assert not (storage_root / str(missing)).exists()

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, client):
        note = await create_note(client)
        await upload(client, note["id"], "a.png")

        first = await client.delete(f"/notes/{note['id']}/attachments/a.png")
        second = await client.delete(f"/notes/{note['id']}/attachments/a.png")

        assert first.status_code == 204
        assert second.status_code == 204

    @pytest.mark.asyncio
    async def test_deleting_note_purges_attachments(self, client, storage_root):
        note = await create_note(client)
        await upload(client, note["id"], "a.png")

        response = await client.delete(f"/notes/{note['id']}")

        assert response.status_code == 204
        assert not (storage_root / note["id"]).exists()


class TestPlumbing:

    @pytest.mark.asyncio
    async def test_request_id_is_generated(self, client):
        response = await client.get("/notes")
        assert len(response.headers["x-request-id"]) == 8

    @pytest.mark.asyncio
    async def test_request_id_is_echoed_into_errors(self, client):
        response = await client.get(f"/notes/{uuid.uuid4()}", headers={"X-Request-ID": "trace-123"})

        assert response.headers["x-request-id"] == "trace-123"
        assert response.json()["request_id"] == "trace-123"

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["completion_service"] == "available"
        assert body["object_store"] == "writable"

    @pytest.mark.asyncio
    async def test_health_degraded_when_completion_unavailable(self, client, completion_service):
        completion_service.healthy = False

        body = (await client.get("/health")).json()

        assert body["status"] == "degraded"
        assert body["completion_service"] == "unavailable"
