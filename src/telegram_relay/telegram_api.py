"""Telegram Bot API client.

Pure transport boundary: polling for updates, fetching submitted files and
sending replies. No retries beyond what httpx does on its own; every failure
surfaces as TransportError or DecodeError for the caller to report.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional

import httpx
import pydantic

from .errors import DecodeError, TransportError
from .models import File, SendMessage, TelegramResponse, Update


logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.telegram.org"

# Long-poll requests stay open for the poll timeout, the HTTP timeout must outlast it.
POLL_TIMEOUT_SLACK_SECONDS = 10


class TelegramClient:
    """Thin async wrapper over the Bot API methods the relay needs."""

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        poll_timeout: int = 30,
        http_timeout: Optional[float] = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._poll_timeout = poll_timeout
        self._http_timeout = http_timeout
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=http_timeout)

    async def __aenter__(self) -> "TelegramClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _api_url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._token}/{method}"

    def _file_url(self, file_path: str) -> str:
        return f"{self._api_base}/file/bot{self._token}/{file_path.lstrip('/')}"

    async def _send(self, method: str, request_desc: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, **kwargs)
        except httpx.HTTPError as e:
            # str(e) never includes the URL, so the token stays out of the message
            raise TransportError(f"Failed to {request_desc}: {e!r}") from e
        return response

    def _decode(self, response: httpx.Response, model: Any, request_desc: str):
        try:
            payload = response.json()
        except ValueError as e:
            if response.is_error:
                raise TransportError(
                    f"Failed to {request_desc}: HTTP {response.status_code}"
                ) from e
            raise DecodeError(f"Failed to parse response to {request_desc}") from e

        if isinstance(payload, dict) and payload.get("ok") is False:
            raise TransportError(
                f"Telegram API refused to {request_desc}: "
                f"{payload.get('error_code')} {payload.get('description', 'unknown error')}"
            )
        if response.is_error:
            raise TransportError(f"Failed to {request_desc}: HTTP {response.status_code}")

        try:
            envelope = TelegramResponse[model].model_validate(payload)
        except pydantic.ValidationError as e:
            raise DecodeError(f"Unexpected response shape to {request_desc}: {e}") from e
        if envelope.result is None:
            raise DecodeError(f"Response to {request_desc} has no result")
        return envelope.result

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def get_updates(self, offset: int) -> list[Update]:
        """Long-poll for updates with update_id >= offset."""
        desc = f"receive updates from offset {offset}"
        timeout = httpx.Timeout(self._poll_timeout + POLL_TIMEOUT_SLACK_SECONDS)
        response = await self._send(
            "GET",
            desc,
            url=self._api_url("getUpdates"),
            params={"offset": offset, "timeout": self._poll_timeout},
            timeout=timeout,
        )
        return self._decode(response, list[Update], desc)

    async def get_file(self, file_id: str) -> File:
        desc = f"get file with id {file_id}"
        response = await self._send(
            "GET", desc, url=self._api_url("getFile"), params={"file_id": file_id}
        )
        return self._decode(response, File, desc)

    async def download_file(self, file_path: str) -> bytes:
        desc = f"download file with path {file_path}"
        response = await self._send("GET", desc, url=self._file_url(file_path))
        if response.is_error:
            raise TransportError(f"Failed to {desc}: HTTP {response.status_code}")
        return response.content

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_message(self, message: SendMessage) -> None:
        desc = f"send message to chat {message.chat_id}"
        response = await self._send(
            "POST",
            desc,
            url=self._api_url("sendMessage"),
            json=message.model_dump(exclude_none=True),
        )
        self._decode(response, dict, desc)

    async def send_text(
        self, chat_id: int, text: str, reply_to: Optional[int] = None
    ) -> None:
        await self.send_message(
            SendMessage(chat_id=chat_id, text=text, reply_to_message_id=reply_to)
        )

    async def send_video(
        self, chat_id: int, path: Path, reply_to: Optional[int] = None
    ) -> None:
        """Upload a local file as a video attachment (multipart ``video`` part)."""
        path = Path(path)
        desc = f"send video {path.name} to chat {chat_id}"
        data: dict[str, str] = {"chat_id": str(chat_id)}
        if reply_to is not None:
            data["reply_to_message_id"] = str(reply_to)
        mime_type, _ = mimetypes.guess_type(path.name)

        try:
            handle = open(path, "rb")
        except OSError as e:
            raise TransportError(f"Failed to {desc}: can't open file: {e}") from e
        with handle:
            response = await self._send(
                "POST",
                desc,
                url=self._api_url("sendVideo"),
                data=data,
                files={"video": (path.name, handle, mime_type or "video/mp4")},
            )
        self._decode(response, dict, desc)
