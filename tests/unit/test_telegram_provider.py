"""
Unit tests for the Telegram provider.

The retry tests replace asyncio.sleep with a recorder so the linear
backoff can be checked without waiting.
"""

import asyncio

import httpx
import pytest

from uploadhub.core.storage.errors import (
    BackendError,
    ConfigurationError,
    ResolutionError,
    TransportError,
    ValidationError,
)
from uploadhub.core.storage.models import HealthState, UploadOptions, UploadRequest
from uploadhub.infrastructure.storage.telegram import (
    AUDIO_ENDPOINT,
    DOCUMENT_ENDPOINT,
    VIDEO_ENDPOINT,
    TelegramConfig,
    TelegramStorage,
    endpoint_for,
    extract_file_id,
    strip_extension,
)


BOT_URL = "https://api.telegram.org/bot123:ABC"

SENT_DOCUMENT = {
    "ok": True,
    "result": {"message_id": 7, "document": {"file_id": "BQADremote", "file_size": 10}},
}


def make_storage(handler, **kwargs) -> TelegramStorage:
    config = TelegramConfig(bot_token="123:ABC", chat_id="-1001")
    return TelegramStorage(config, transport=httpx.MockTransport(handler), **kwargs)


@pytest.fixture
def sleeps(monkeypatch):
    """Record asyncio.sleep delays instead of sleeping."""
    delays: list[float] = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return delays


class TestTelegramHelpers:
    """Tests for endpoint selection and response parsing."""

    def test_missing_token_is_rejected(self):
        with pytest.raises(ConfigurationError, match="bot_token"):
            TelegramConfig(bot_token="", chat_id="1")

    @pytest.mark.parametrize("content_type, endpoint", [
        ("audio/mpeg", AUDIO_ENDPOINT),
        ("video/mp4", VIDEO_ENDPOINT),
        ("image/png", DOCUMENT_ENDPOINT),
        ("application/pdf", DOCUMENT_ENDPOINT),
        ("", DOCUMENT_ENDPOINT),
    ])
    def test_endpoint_for_content_type(self, content_type, endpoint):
        assert endpoint_for(content_type) == endpoint

    def test_extract_prefers_document(self):
        message = {"document": {"file_id": "doc"}, "photo": [{"file_id": "p", "file_size": 1}]}
        assert extract_file_id(message) == "doc"

    def test_extract_picks_largest_photo(self):
        message = {"photo": [
            {"file_id": "small", "file_size": 100},
            {"file_id": "large", "file_size": 9000},
            {"file_id": "medium", "file_size": 800},
        ]}
        assert extract_file_id(message) == "large"

    def test_extract_returns_none_for_text_message(self):
        assert extract_file_id({"text": "hi"}) is None

    def test_strip_extension(self):
        assert strip_extension("BQAD.png") == "BQAD"
        assert strip_extension("BQAD") == "BQAD"


class TestTelegramUpload:
    """Tests for sending files."""

    @pytest.mark.asyncio
    async def test_upload_sends_document(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json=SENT_DOCUMENT)

        stored = await make_storage(handler).upload(UploadRequest(
            data=b"0123456789",
            name="a.png",
            content_type="image/png",
            options=UploadOptions(caption="hello"),
        ))

        assert stored.file_id == "BQADremote.png"
        assert stored.url == "/file/BQADremote.png"
        assert stored.size == 10
        assert stored.provider_specific == {"telegramFileId": "BQADremote", "endpoint": "sendDocument"}

        request = sent[0]
        assert str(request.url) == f"{BOT_URL}/sendDocument"
        body = request.read()
        assert b'name="chat_id"' in body and b"-1001" in body
        assert b'name="caption"' in body and b"hello" in body
        assert b'name="document"; filename="a.png"' in body

    @pytest.mark.asyncio
    async def test_audio_goes_to_send_audio(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"audio": {"file_id": "AUD"}}})

        stored = await make_storage(handler).upload(
            UploadRequest(data=b"x", name="song.mp3", content_type="audio/mpeg")
        )

        assert str(sent[0].url) == f"{BOT_URL}/sendAudio"
        assert b'name="audio"; filename="song.mp3"' in sent[0].read()
        assert stored.file_id == "AUD.mp3"

    @pytest.mark.asyncio
    async def test_retries_network_failures_with_linear_backoff(self, sleeps):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json=SENT_DOCUMENT)

        stored = await make_storage(handler).upload(UploadRequest(data=b"x", name="a.png"))

        assert stored.file_id == "BQADremote.png"
        assert len(attempts) == 3
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_two_retries(self, sleeps):
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(TransportError, match="unreachable"):
            await make_storage(handler).upload(UploadRequest(data=b"x", name="a.png"))

        assert len(attempts) == 3
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retry_delay_is_configurable(self, sleeps):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=SENT_DOCUMENT)

        await make_storage(handler, retry_delay_seconds=0.5).upload(UploadRequest(data=b"x", name="a.png"))

        assert sleeps == [0.5]

    @pytest.mark.asyncio
    async def test_api_error_is_not_retried(self, sleeps):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})

        with pytest.raises(ValidationError, match="chat not found"):
            await make_storage(handler).upload(UploadRequest(data=b"x", name="a.png"))

        assert len(attempts) == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_not_ok_reply_with_success_status_is_backend_error(self):
        storage = make_storage(lambda request: httpx.Response(200, json={"ok": False, "description": "weird"}))

        with pytest.raises(BackendError) as excinfo:
            await storage.upload(UploadRequest(data=b"x", name="a.png"))

        assert excinfo.value.status_code == 502

    @pytest.mark.asyncio
    async def test_reply_without_file_is_backend_error(self):
        storage = make_storage(lambda request: httpx.Response(200, json={"ok": True, "result": {"text": "?"}}))

        with pytest.raises(BackendError, match="file id"):
            await storage.upload(UploadRequest(data=b"x", name="a.png"))


class TestTelegramLifecycle:
    """Tests for URL resolution, delete and health."""

    @pytest.mark.asyncio
    async def test_resolve_url_looks_up_file_path(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"file_path": "documents/file_3.png"}})

        url = await make_storage(handler).resolve_url("BQADremote.png")

        assert url == "https://api.telegram.org/file/bot123:ABC/documents/file_3.png"
        assert sent[0].url.path == "/bot123:ABC/getFile"
        assert sent[0].url.params["file_id"] == "BQADremote"

    @pytest.mark.asyncio
    async def test_resolve_url_unknown_file_raises(self):
        storage = make_storage(
            lambda request: httpx.Response(400, json={"ok": False, "description": "Bad Request: invalid file_id"})
        )

        with pytest.raises(ResolutionError):
            await storage.resolve_url("nope.png")

    @pytest.mark.asyncio
    async def test_delete_is_unsupported(self):
        def handler(request):
            raise AssertionError("delete must not call the Bot API")

        result = await make_storage(handler).delete("BQADremote.png")

        assert result.success is False
        assert "does not support" in result.message

    @pytest.mark.asyncio
    async def test_health_reports_bot_identity(self):
        storage = make_storage(lambda request: httpx.Response(
            200, json={"ok": True, "result": {"username": "files_bot", "first_name": "Files"}}
        ))

        health = await storage.health_check()

        assert health.status == HealthState.HEALTHY
        assert health.details == {"username": "files_bot", "firstName": "Files"}

    @pytest.mark.asyncio
    async def test_health_unhealthy_on_bad_token(self):
        storage = make_storage(
            lambda request: httpx.Response(401, json={"ok": False, "description": "Unauthorized"})
        )

        health = await storage.health_check()

        assert health.status == HealthState.UNHEALTHY
        assert "Unauthorized" in health.message

    @pytest.mark.asyncio
    async def test_health_error_when_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        health = await make_storage(handler).health_check()

        assert health.status == HealthState.ERROR

    @pytest.mark.asyncio
    async def test_stats_include_chat_info(self):
        storage = make_storage(lambda request: httpx.Response(
            200, json={"ok": True, "result": {"type": "channel", "title": "Uploads"}}
        ))

        stats = await storage.stats()

        assert stats["chatId"] == "-1001"
        assert stats["chatInfo"] == {"type": "channel", "title": "Uploads", "username": None}
        assert stats["limitations"]["deleteSupport"] is False
