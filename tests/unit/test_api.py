"""Unit tests for the HTTP API, served from an in-memory provider"""

import pytest


@pytest.mark.unit
class TestRootEndpoint:
    """Test service information"""

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"


@pytest.mark.unit
class TestFileEndpoints:
    """Test upload, download, url and delete over HTTP"""

    @pytest.mark.asyncio
    async def test_upload_image_with_variants(self, client, make_image):
        response = await client.post(
            "/api/v1/files",
            files={"file": ("avatar.png", make_image(1000, 1000), "image/png")},
            data={"category": "Users", "entity_type": "Avatar", "entity_id": "u-1"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["file"]["location"].startswith("Users/Avatar/Images/")
        assert body["file"]["content_type"] == "image/png"
        assert {v["variant_type"] for v in body["variants"]} == {"compressed", "thumbnail"}
        assert body["file"]["related_entities"][0]["entity_id"] == "u-1"
        assert body["variants"][0]["related_entities"][0]["entity_name"] == "Avatar"

    @pytest.mark.asyncio
    async def test_entity_id_without_entity_type_links_under_category(self, client):
        response = await client.post(
            "/api/v1/files",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            data={"category": "Docs", "entity_id": "d-7"},
        )

        assert response.status_code == 201
        body = response.json()["file"]
        assert body["location"].startswith("Docs/General/Others/")
        assert [(r["entity_id"], r["entity_name"]) for r in body["related_entities"]] == [("d-7", "Docs")]

    @pytest.mark.asyncio
    async def test_upload_download_delete(self, client):
        upload = await client.post(
            "/api/v1/files",
            files={"file": ("notes.txt", b"hello api", "text/plain")},
            data={"category": "Docs"},
        )
        location = upload.json()["file"]["location"]

        download = await client.get("/api/v1/files/content", params={"location": location})
        assert download.status_code == 200
        assert download.content == b"hello api"
        assert "attachment" in download.headers["content-disposition"]

        url = await client.get("/api/v1/files/url", params={"location": location})
        assert url.status_code == 200
        assert url.json()["url"].endswith(location)

        deleted = await client.delete("/api/v1/files", params={"location": location})
        assert deleted.json() == {"location": location, "deleted": True}

        missing = await client.get("/api/v1/files/content", params={"location": location})
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_archive_and_unarchive(self, client):
        upload = await client.post(
            "/api/v1/files",
            files={"file": ("notes.txt", b"keep", "text/plain")},
            data={"category": "Docs"},
        )
        location = upload.json()["file"]["location"]

        archived = await client.post("/api/v1/files/archive", params={"location": location})
        assert archived.status_code == 200
        assert archived.json() == {
            "location": location,
            "archive_location": f"archive/{location}",
            "moved": True,
        }
        missing = await client.get("/api/v1/files/content", params={"location": location})
        assert missing.status_code == 404

        restored = await client.post("/api/v1/files/unarchive", params={"location": location})
        assert restored.json()["moved"] is True
        download = await client.get("/api/v1/files/content", params={"location": location})
        assert download.content == b"keep"

        again = await client.post("/api/v1/files/unarchive", params={"location": location})
        assert again.json()["moved"] is False

    @pytest.mark.asyncio
    async def test_disallowed_extension_is_bad_request(self, client):
        response = await client.post(
            "/api/v1/files",
            files={"file": ("run.sh", b"echo hi", "text/x-sh")},
            data={"category": "Docs"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_blank_category_is_bad_request(self, client):
        response = await client.post(
            "/api/v1/files",
            files={"file": ("a.txt", b"a", "text/plain")},
            data={"category": " "},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_provider_is_not_found(self, client):
        response = await client.post(
            "/api/v1/files",
            files={"file": ("a.txt", b"a", "text/plain")},
            data={"category": "Docs", "provider_id": "missing"},
        )

        assert response.status_code == 404


@pytest.mark.unit
class TestProviderEndpoints:
    """Test provider listing and options hot-swap"""

    @pytest.mark.asyncio
    async def test_list_providers(self, client):
        response = await client.get("/api/v1/providers")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["providers"][0]["provider_type"] == "fake"
        assert body["providers"][0]["options_type"] == "FakeOptions"
        assert "options" not in body["providers"][0]

    @pytest.mark.asyncio
    async def test_update_options(self, client, storage_context):
        provider_id = storage_context.registry.get_default().id

        response = await client.put(
            f"/api/v1/providers/{provider_id}/options",
            json={"options": {"max_file_size_bytes": 3}},
        )

        assert response.status_code == 200
        assert storage_context.registry.get_default().options.max_file_size_bytes == 3

        rejected = await client.post(
            "/api/v1/files",
            files={"file": ("a.txt", b"abcd", "text/plain")},
            data={"category": "Docs"},
        )
        assert rejected.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_options_rejected(self, client, storage_context):
        provider_id = storage_context.registry.get_default().id

        response = await client.put(
            f"/api/v1/providers/{provider_id}/options",
            json={"options": {"operation_delay_ms": "soon"}},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_update_unknown_provider(self, client):
        response = await client.put("/api/v1/providers/missing/options", json={"options": {}})

        assert response.status_code == 404
