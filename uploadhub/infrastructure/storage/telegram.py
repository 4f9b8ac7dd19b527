"""
Telegram storage provider.

Files are sent to a fixed chat through the Bot API and later fetched back
through `getFile`. Telegram keeps them indefinitely, which makes a private
channel a free (if slow) file store.

Limitations worth knowing:
- The Bot API cannot delete sent files, so `delete` always reports failure.
- Download URLs embed the bot token, so they are resolved on demand and
  should not be handed to untrusted clients.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ...core.storage.errors import (
    BackendError,
    ConfigurationError,
    ResolutionError,
    TransportError,
    error_for_status,
)
from ...core.storage.helpers import file_extension
from ...core.storage.models import (
    DEFAULT_URL_EXPIRY_SECONDS,
    DeleteResult,
    HealthState,
    HealthStatus,
    StoredFile,
    UploadRequest,
)
from .base import DEFAULT_TIMEOUT_SECONDS, StorageProvider

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.telegram.org"
MAX_RETRIES = 2


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str
    api_base: str = DEFAULT_API_BASE
    file_route_prefix: str = "/file"

    def __post_init__(self) -> None:
        missing = [name for name in ("bot_token", "chat_id") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Telegram storage requires {', '.join(missing)}",
                provider="telegram",
                operation="configure",
            )

    @property
    def bot_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/bot{self.bot_token}"

    @property
    def file_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/file/bot{self.bot_token}"


@dataclass(frozen=True)
class SendEndpoint:
    """Bot API method and the multipart field that carries the file."""
    method: str
    field: str


DOCUMENT_ENDPOINT = SendEndpoint("sendDocument", "document")
AUDIO_ENDPOINT = SendEndpoint("sendAudio", "audio")
VIDEO_ENDPOINT = SendEndpoint("sendVideo", "video")


def endpoint_for(content_type: str) -> SendEndpoint:
    """
    Pick the send method for a MIME type.

    Images go through sendDocument: sendPhoto recompresses them.
    """
    content_type = (content_type or "").lower()
    if content_type.startswith("audio/"):
        return AUDIO_ENDPOINT
    if content_type.startswith("video/"):
        return VIDEO_ENDPOINT
    return DOCUMENT_ENDPOINT


def extract_file_id(message: dict[str, Any]) -> Optional[str]:
    """Find the remote file id in a sent message (largest photo wins)."""
    for kind in ("document", "video", "audio"):
        item = message.get(kind)
        if item and item.get("file_id"):
            return item["file_id"]
    photos = message.get("photo") or []
    if photos:
        largest = max(photos, key=lambda p: p.get("file_size") or 0)
        return largest.get("file_id")
    return None


def strip_extension(file_id: str) -> str:
    if "." in file_id:
        return file_id.rsplit(".", 1)[0]
    return file_id


class TelegramStorage(StorageProvider):
    """File storage backed by a Telegram chat."""

    name = "telegram"

    def __init__(
        self,
        config: TelegramConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        super().__init__(transport=transport, timeout=timeout)
        self._config = config
        self._max_retries = max_retries
        self._retry_delay_seconds = retry_delay_seconds

        logger.info("Initialized Telegram storage provider", extra={"chat_id": config.chat_id})

    @property
    def config(self) -> TelegramConfig:
        return self._config

    async def upload(self, request: UploadRequest) -> StoredFile:
        endpoint = endpoint_for(request.content_type)
        form: dict[str, str] = {"chat_id": self._config.chat_id}
        if request.options.caption:
            form["caption"] = request.options.caption

        logger.info(
            "Uploading file to Telegram",
            extra={
                "file_name": request.name,
                "size_bytes": request.size,
                "endpoint": endpoint.method,
            },
        )
        payload = await self._send_with_retry(endpoint, request, form)

        remote_id = extract_file_id(payload.get("result") or {})
        if not remote_id:
            raise BackendError(
                "Could not find a file id in the Telegram response",
                provider=self.name,
                operation="upload",
            )

        file_key = f"{remote_id}.{file_extension(request.name)}"
        return StoredFile(
            file_id=file_key,
            original_name=request.name,
            size=request.size,
            content_type=request.content_type,
            url=f"{self._config.file_route_prefix.rstrip('/')}/{file_key}",
            provider_specific={
                "telegramFileId": remote_id,
                "endpoint": endpoint.method,
            },
        )

    async def _send_with_retry(
        self,
        endpoint: SendEndpoint,
        request: UploadRequest,
        form: dict[str, str],
    ) -> dict[str, Any]:
        """
        POST the file, retrying network failures only.

        Up to `max_retries` extra attempts with a linear backoff of
        attempt x `retry_delay_seconds`. A well-formed error reply from
        Telegram is raised immediately.
        """
        url = f"{self._config.bot_url}/{endpoint.method}"
        attempt = 0
        while True:
            try:
                response = await self._send(
                    "POST",
                    url,
                    operation="upload",
                    data=form,
                    files={endpoint.field: (request.name, request.data, request.content_type)},
                )
                break
            except TransportError as e:
                if attempt >= self._max_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Retrying Telegram upload",
                    extra={"attempt": attempt, "max_retries": self._max_retries, "error": str(e)},
                )
                await asyncio.sleep(attempt * self._retry_delay_seconds)

        payload = _json_or_none(response)
        if response.is_success and payload and payload.get("ok"):
            return payload

        description = (payload or {}).get("description") or "Telegram API request failed"
        logger.error(
            "Telegram rejected upload",
            extra={"status_code": response.status_code, "error": description},
        )
        raise error_for_status(
            response.status_code if not response.is_success else 502,
            description,
            provider=self.name,
            operation="upload",
        )

    async def delete(self, file_id: str) -> DeleteResult:
        logger.warning("Telegram storage does not support deleting files", extra={"file_id": file_id})
        return DeleteResult(
            success=False,
            message="Telegram does not support deleting uploaded files",
        )

    async def resolve_url(
        self,
        file_id: str,
        signed: bool = False,
        expires_in_seconds: int = DEFAULT_URL_EXPIRY_SECONDS,
    ) -> str:
        file_path = await self.get_file_path(strip_extension(file_id))
        if not file_path:
            raise ResolutionError(
                f"Could not resolve Telegram file path for {file_id}",
                provider=self.name,
                operation="resolve_url",
            )
        return f"{self._config.file_url}/{file_path}"

    async def get_file_path(self, remote_id: str) -> Optional[str]:
        """Look up where Telegram keeps a file. None when it does not know."""
        response = await self._send(
            "GET",
            f"{self._config.bot_url}/getFile",
            operation="resolve_url",
            params={"file_id": remote_id},
        )
        payload = _json_or_none(response)
        if payload and payload.get("ok"):
            return (payload.get("result") or {}).get("file_path")
        logger.warning(
            "Telegram getFile returned no path",
            extra={"status_code": response.status_code},
        )
        return None

    async def health_check(self) -> HealthStatus:
        try:
            response = await self._send("GET", f"{self._config.bot_url}/getMe", operation="health_check")
        except Exception as e:
            return HealthStatus(HealthState.ERROR, f"Failed to reach Telegram API: {e}")

        payload = _json_or_none(response) or {}
        if payload.get("ok"):
            bot = payload.get("result") or {}
            return HealthStatus(
                HealthState.HEALTHY,
                "Telegram bot connection OK",
                {"username": bot.get("username"), "firstName": bot.get("first_name")},
            )
        return HealthStatus(
            HealthState.UNHEALTHY,
            f"Telegram API error: {payload.get('description') or f'HTTP {response.status_code}'}",
        )

    async def stats(self) -> Optional[dict[str, Any]]:
        return {
            "provider": self.name,
            "chatId": self._config.chat_id,
            "chatInfo": await self._chat_info(),
            "limitations": {
                "maxFileSize": "50MB (documents) / 20MB (photos)",
                "supportedFormats": "all",
                "deleteSupport": False,
            },
        }

    async def _chat_info(self) -> Optional[dict[str, Any]]:
        try:
            response = await self._send(
                "GET",
                f"{self._config.bot_url}/getChat",
                operation="stats",
                params={"chat_id": self._config.chat_id},
            )
        except TransportError as e:
            logger.warning("Failed to fetch Telegram chat info", extra={"error": str(e)})
            return None

        payload = _json_or_none(response) or {}
        if not payload.get("ok"):
            return None
        chat = payload.get("result") or {}
        return {
            "type": chat.get("type"),
            "title": chat.get("title") or chat.get("first_name"),
            "username": chat.get("username"),
        }


def _json_or_none(response: httpx.Response) -> Optional[dict[str, Any]]:
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None
