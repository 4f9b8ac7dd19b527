"""
Unit tests for the Supabase Storage provider.
"""

import json

import httpx
import pytest

from uploadhub.core.storage.errors import (
    BackendError,
    ConfigurationError,
    ResolutionError,
    ValidationError,
)
from uploadhub.core.storage.models import HealthState, UploadOptions, UploadRequest
from uploadhub.infrastructure.storage.supabase import SupabaseConfig, SupabaseStorage


PROJECT = "https://abc.supabase.co"


def make_storage(handler, service_role_key=None) -> SupabaseStorage:
    config = SupabaseConfig(
        url=f"{PROJECT}/",
        anon_key="anon-key",
        bucket="uploads",
        service_role_key=service_role_key,
    )
    return SupabaseStorage(config, transport=httpx.MockTransport(handler))


class TestSupabaseConfig:

    def test_missing_fields_are_rejected(self):
        with pytest.raises(ConfigurationError, match="anon_key"):
            SupabaseConfig(url=PROJECT, anon_key="", bucket="b")

    def test_storage_url(self):
        config = SupabaseConfig(url=f"{PROJECT}/", anon_key="k", bucket="b")
        assert config.storage_url == f"{PROJECT}/storage/v1"


class TestSupabaseUpload:
    """Tests for object uploads."""

    @pytest.mark.asyncio
    async def test_upload_posts_to_object_path(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"Key": "uploads/docs/k.pdf"})

        storage = make_storage(handler)
        stored = await storage.upload(UploadRequest(
            data=b"%PDF",
            name="report.pdf",
            content_type="application/pdf",
            options=UploadOptions(prefix="docs", file_name="k.pdf", cache_control="3600", upsert=True),
        ))

        request = sent[0]
        assert request.method == "POST"
        assert str(request.url) == f"{PROJECT}/storage/v1/object/uploads/docs/k.pdf"
        assert request.headers["authorization"] == "Bearer anon-key"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["content-type"] == "application/pdf"
        assert request.headers["cache-control"] == "3600"
        assert request.headers["x-upsert"] == "true"
        assert request.content == b"%PDF"

        assert stored.file_id == "docs/k.pdf"
        assert stored.url == f"{PROJECT}/storage/v1/object/public/uploads/docs/k.pdf"
        assert stored.provider_specific == {"bucket": "uploads", "path": "docs/k.pdf", "key": "uploads/docs/k.pdf"}

    @pytest.mark.asyncio
    async def test_upload_without_upsert_omits_header(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={})

        await make_storage(handler).upload(UploadRequest(data=b"x", name="a.png", content_type="image/png"))

        assert "x-upsert" not in sent[0].headers
        assert "cache-control" not in sent[0].headers

    @pytest.mark.asyncio
    async def test_duplicate_upload_surfaces_backend_message(self):
        storage = make_storage(lambda request: httpx.Response(
            400, json={"statusCode": "409", "error": "Duplicate", "message": "The resource already exists"}
        ))

        with pytest.raises(ValidationError, match="already exists"):
            await storage.upload(UploadRequest(data=b"x", name="a.png"))

    @pytest.mark.asyncio
    async def test_unauthorized_upload_is_backend_error(self):
        storage = make_storage(lambda request: httpx.Response(401, json={"message": "Invalid JWT"}))

        with pytest.raises(BackendError, match="Invalid JWT"):
            await storage.upload(UploadRequest(data=b"x", name="a.png"))


class TestSupabaseDelete:
    """Tests for deletes."""

    @pytest.mark.asyncio
    async def test_delete_prefers_service_role_key(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json=[{"name": "k.png"}])

        result = await make_storage(handler, service_role_key="service-key").delete("k.png")

        assert result.success is True
        assert sent[0].method == "DELETE"
        assert sent[0].headers["authorization"] == "Bearer service-key"
        assert str(sent[0].url) == f"{PROJECT}/storage/v1/object/uploads/k.png"

    @pytest.mark.asyncio
    async def test_delete_falls_back_to_anon_key(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={})

        await make_storage(handler).delete("k.png")

        assert sent[0].headers["authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_delete_twice_succeeds(self):
        """A second delete gets a wrapped not-found and still counts as success."""
        responses = iter([
            httpx.Response(200, json={}),
            httpx.Response(400, json={"statusCode": "404", "error": "not_found", "message": "Object not found"}),
        ])
        storage = make_storage(lambda request: next(responses))

        assert (await storage.delete("k.png")).success is True
        assert (await storage.delete("k.png")).success is True

    @pytest.mark.asyncio
    async def test_delete_reports_other_failures(self):
        storage = make_storage(lambda request: httpx.Response(403, json={"message": "denied"}))

        result = await storage.delete("k.png")

        assert result.success is False
        assert "denied" in result.message


class TestSupabaseUrls:
    """Tests for public and signed URL resolution."""

    @pytest.mark.asyncio
    async def test_public_url(self):
        storage = make_storage(lambda request: httpx.Response(200))
        assert await storage.resolve_url("a b.png") == (
            f"{PROJECT}/storage/v1/object/public/uploads/a%20b.png"
        )

    @pytest.mark.asyncio
    async def test_signed_url_relative_to_project(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"signedURL": "/storage/v1/object/sign/uploads/k.png?token=t"})

        url = await make_storage(handler).resolve_url("k.png", signed=True, expires_in_seconds=120)

        assert url == f"{PROJECT}/storage/v1/object/sign/uploads/k.png?token=t"
        assert str(sent[0].url) == f"{PROJECT}/storage/v1/object/sign/uploads/k.png"
        assert json.loads(sent[0].content) == {"expiresIn": 120}

    @pytest.mark.asyncio
    async def test_signed_url_relative_to_storage_api(self):
        storage = make_storage(
            lambda request: httpx.Response(200, json={"signedURL": "/object/sign/uploads/k.png?token=t"})
        )
        url = await storage.resolve_url("k.png", signed=True)
        assert url == f"{PROJECT}/storage/v1/object/sign/uploads/k.png?token=t"

    @pytest.mark.asyncio
    async def test_absolute_signed_url_is_kept(self):
        storage = make_storage(
            lambda request: httpx.Response(200, json={"signedURL": "https://cdn.example.com/k.png?token=t"})
        )
        assert await storage.resolve_url("k.png", signed=True) == "https://cdn.example.com/k.png?token=t"

    @pytest.mark.asyncio
    async def test_missing_signed_url_raises(self):
        storage = make_storage(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ResolutionError):
            await storage.resolve_url("k.png", signed=True)


class TestSupabaseHealth:
    """Tests for health and stats."""

    @pytest.mark.asyncio
    async def test_health_lists_one_object(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json=[])

        health = await make_storage(handler).health_check()

        assert health.status == HealthState.HEALTHY
        assert health.details == {"bucket": "uploads", "url": PROJECT}
        assert str(sent[0].url) == f"{PROJECT}/storage/v1/object/list/uploads"
        assert json.loads(sent[0].content) == {"limit": 1, "offset": 0, "prefix": ""}

    @pytest.mark.asyncio
    async def test_health_error_when_listing_fails(self):
        health = await make_storage(
            lambda request: httpx.Response(404, json={"message": "Bucket not found"})
        ).health_check()

        assert health.status == HealthState.ERROR
        assert "Bucket not found" in health.message

    @pytest.mark.asyncio
    async def test_list_files_passes_prefix(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json=[{"name": "a.png"}])

        files = await make_storage(handler).list_files("docs", limit=5, offset=10)

        assert files == [{"name": "a.png"}]
        assert json.loads(sent[0].content) == {"limit": 5, "offset": 10, "prefix": "docs"}

    @pytest.mark.asyncio
    async def test_stats_include_bucket_info(self):
        def handler(request):
            assert request.url.path == "/storage/v1/bucket/uploads"
            return httpx.Response(200, json={"id": "uploads", "public": True})

        stats = await make_storage(handler).stats()

        assert stats["provider"] == "supabase"
        assert stats["bucketInfo"] == {"id": "uploads", "public": True}
