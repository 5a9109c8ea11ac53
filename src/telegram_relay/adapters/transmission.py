"""Transmission daemon RPC client.

Transmission guards its RPC endpoint against CSRF with a session id: a request
without a valid ``X-Transmission-Session-Id`` header is answered with 409 and
the id to use. The client sends every request once without the header and, on
409, resends it exactly once with the id from the conflict response.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from ..errors import DecodeError, TransportError


logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Transmission-Session-Id"


# ---------------------------------------------------------------------------
# Request / response shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TorrentAdded:
    id: int
    name: str


@dataclass(frozen=True)
class TorrentDuplicate:
    id: int
    name: str


TorrentAddResult = Union[TorrentAdded, TorrentDuplicate]


# ---------------------------------------------------------------------------
# Session-id protocol
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RpcSuccess:
    """Final answer, decoded JSON body."""

    payload: Any


@dataclass(frozen=True)
class RpcNeedsRetry:
    """409 carrying the session id to resend with."""

    session_id: str


@dataclass(frozen=True)
class RpcFailure:
    status_code: int
    body: str


RpcOutcome = Union[RpcSuccess, RpcNeedsRetry, RpcFailure]


def classify_response(response: httpx.Response) -> RpcOutcome:
    """Map one HTTP response onto the session-id protocol outcome."""
    if response.status_code == httpx.codes.CONFLICT:
        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            return RpcNeedsRetry(session_id=session_id)
        return RpcFailure(status_code=response.status_code, body=response.text)

    if response.is_error:
        return RpcFailure(status_code=response.status_code, body=response.text)

    try:
        return RpcSuccess(payload=response.json())
    except ValueError as e:
        raise DecodeError(
            f"Transmission answered with invalid JSON: {response.text[:200]!r}"
        ) from e


def parse_torrent_add(payload: Any) -> TorrentAddResult:
    """Decode a torrent-add response into added / duplicate."""
    if not isinstance(payload, dict):
        raise DecodeError(f"Unexpected torrent-add response: {payload!r}")

    arguments = payload.get("arguments")
    if not isinstance(arguments, dict):
        raise DecodeError(
            f"torrent-add response without arguments, result: {payload.get('result')!r}"
        )

    for tag, result_type in (
        ("torrent-added", TorrentAdded),
        ("torrent-duplicate", TorrentDuplicate),
    ):
        info = arguments.get(tag)
        if info is None:
            continue
        try:
            return result_type(id=int(info["id"]), name=str(info["name"]))
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Malformed {tag} entry: {info!r}") from e

    raise DecodeError(
        f"torrent-add response is neither added nor duplicate, "
        f"result: {payload.get('result')!r}"
    )


class TransmissionClient:
    """Minimal JSON-RPC client for the Transmission daemon."""

    def __init__(self, address: str, http_client: httpx.AsyncClient):
        self.address = address
        self._http = http_client

    async def _post(self, body: dict, session_id: Optional[str] = None) -> httpx.Response:
        headers = {SESSION_HEADER: session_id} if session_id else {}
        try:
            return await self._http.post(self.address, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(
                f"Failed to send {body.get('method')} request to transmission: {e!r}"
            ) from e

    async def call(self, method: str, arguments: dict) -> Any:
        """
        Send one RPC request, following the session-id handshake.

        Returns:
            Decoded JSON body of the final response

        Raises:
            TransportError for network errors or a non-2xx final status,
            DecodeError for a body that is not JSON.
        """
        body = {"method": method, "arguments": arguments}

        outcome = classify_response(await self._post(body))
        if isinstance(outcome, RpcNeedsRetry):
            logger.debug("Transmission asked for a session id, retrying %s", method)
            outcome = classify_response(await self._post(body, outcome.session_id))
            if isinstance(outcome, RpcNeedsRetry):
                raise TransportError(
                    f"Transmission rejected the session id for {method} twice"
                )

        if isinstance(outcome, RpcFailure):
            raise TransportError(
                f"Transmission answered {outcome.status_code} to {method}: "
                f"{outcome.body[:200]}"
            )
        return outcome.payload

    async def torrent_add_metainfo(self, content: bytes) -> TorrentAddResult:
        """Add a torrent from the raw bytes of a .torrent file."""
        metainfo = base64.b64encode(content).decode("ascii")
        payload = await self.call("torrent-add", {"metainfo": metainfo})
        return parse_torrent_add(payload)

    async def torrent_add_filename(self, filename: str) -> TorrentAddResult:
        """Add a torrent by URL or magnet link."""
        payload = await self.call("torrent-add", {"filename": filename})
        return parse_torrent_add(payload)
