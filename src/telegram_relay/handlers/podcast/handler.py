"""Video-to-podcast ingestion: YouTube links become episodes of a per-user RSS feed."""

from __future__ import annotations

import asyncio
import hashlib
import ipaddress
import logging
import mimetypes
import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from ...adapters.extractor import run_extractor
from ...adapters.storage import S3Storage
from ...adapters.youtube import YoutubeClient
from ...errors import NotFoundError, TransportError, ValidationError
from ...models import Message, User
from ...telegram_api import TelegramClient
from ..base import Outcome
from .episodes import EpisodeRecord, EpisodeStore
from .feed import build_feed
from .paths import UserFeedKeys, user_feed_keys


logger = logging.getLogger(__name__)

YOUTUBE_PREFIXES = ("https://www.youtube.com/watch", "https://youtu.be/")
VIDEO_ID_PATTERN = re.compile(r"(v=|youtu\.be/)(?P<id>[^&?#]*)")

AUDIO_SUFFIXES = (".mp3", ".m4a", ".ogg", ".opus", ".wav", ".aac")
# Video hosts are never probed for audio
_VIDEO_HOSTS = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "music.youtube.com",
        "youtu.be",
        "instagram.com",
        "www.instagram.com",
    }
)

DOWNLOAD_CHUNK_SIZE = 64 * 1024

MP3_MIME = "audio/mpeg"
RSS_MIME = "application/rss+xml"


def extract_video_id(url: str) -> str:
    match = VIDEO_ID_PATTERN.search(url)
    if not match or not match.group("id"):
        raise NotFoundError(f"Can't parse video id from url {url}")
    return match.group("id")


def _single_http_url(text: str) -> Optional[str]:
    parts = text.split()
    if len(parts) != 1:
        return None
    url = parts[0]
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return url


def _has_audio_suffix(url: str) -> bool:
    return urlparse(url).path.lower().endswith(AUDIO_SUFFIXES)


def _public_host(url: str) -> bool:
    """False for localhost and for IP literals outside the global address space."""
    host = urlparse(url).hostname
    if not host or host == "localhost" or host.endswith(".localhost"):
        return False
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return True
    return address.is_global


def _audio_title(url: str) -> str:
    path = PurePosixPath(unquote(urlparse(url).path))
    return path.stem or url


class PodcastHandler:
    """
    Turns a video link into an mp3 episode and republishes the sender's feed.

    Storage namespace is the sender's id; the feed title uses their display name.
    """

    name = "Youtube2Rss"

    def __init__(
        self,
        telegram: TelegramClient,
        *,
        storage: S3Storage,
        youtube: YoutubeClient,
        episodes: EpisodeStore,
        http_client: httpx.AsyncClient,
        extractor_path: str,
        tmp_dir: Path,
        timeout: Optional[float] = None,
    ):
        self._telegram = telegram
        self._storage = storage
        self._youtube = youtube
        self._episodes = episodes
        self._http = http_client
        self._extractor_path = extractor_path
        self._tmp_dir = Path(tmp_dir)
        self._timeout = timeout

    async def process(self, message: Message) -> Outcome:
        text = (message.text or "").strip()
        if text.startswith(YOUTUBE_PREFIXES):
            record_for = self._ingest_video
        else:
            url = _single_http_url(text)
            if url is None or not _public_host(url):
                return Outcome.SKIPPED
            if _has_audio_suffix(url):
                record_for = self._ingest_audio
            # Only a message that could be ingested is worth a HEAD request
            elif message.sender is None or urlparse(url).hostname in _VIDEO_HOSTS:
                return Outcome.SKIPPED
            elif await self._reports_audio(url):
                record_for = self._ingest_audio
            else:
                return Outcome.SKIPPED

        if message.sender is None:
            raise ValidationError(
                f"Message {message.message_id} has no sender, can't pick a feed"
            )
        user = message.sender
        keys = user_feed_keys(user.id)

        record = await record_for(message, text, keys)
        feed_url = await self._publish(user, keys, record)

        await self._telegram.send_text(
            message.chat_id,
            f"RSS feed updated: {feed_url}",
            reply_to=message.message_id,
        )
        return Outcome.HANDLED

    # ------------------------------------------------------------------
    # Ingestion paths
    # ------------------------------------------------------------------

    async def _ingest_video(
        self, message: Message, url: str, keys: UserFeedKeys
    ) -> EpisodeRecord:
        video_id = extract_video_id(url)
        audio_path = self._tmp_dir / f"{message.message_id}{video_id}.mp3"
        audio_key = keys.audio_key(video_id)
        try:
            await self.extract_audio(message.message_id, url)
            file_size = audio_path.stat().st_size
            await self._storage.upload_file(audio_path, audio_key, MP3_MIME)
        finally:
            await asyncio.to_thread(self._remove, audio_path)

        snippet = await self._youtube.get_video_info(video_id)
        if snippet is None:
            raise NotFoundError(f"Can't find title for video with id {video_id}")

        logger.info("Ingested video %s (%s bytes) as %s", video_id, file_size, audio_key)
        return EpisodeRecord(
            file_size=file_size,
            file_url=self._storage.public_url(audio_key),
            source_id=video_id,
            created_at=datetime.now(timezone.utc),
            display_name=snippet.title,
            original_link=url,
            mime_type=MP3_MIME,
        )

    async def _ingest_audio(
        self, message: Message, url: str, keys: UserFeedKeys
    ) -> EpisodeRecord:
        source_id = hashlib.sha1(url.encode()).hexdigest()[:16]
        audio_path = self._tmp_dir / f"{message.message_id}{source_id}.part"
        try:
            try:
                async with self._http.stream("GET", url, follow_redirects=True) as response:
                    if response.is_error:
                        raise TransportError(
                            f"Audio request to {url} failed with HTTP {response.status_code}"
                        )
                    mime_type = (
                        response.headers.get("content-type", "").split(";")[0].strip()
                        or mimetypes.guess_type(url)[0]
                        or MP3_MIME
                    )
                    file_size = await self._save_body(response, audio_path)
            except httpx.HTTPError as e:
                raise TransportError(f"Failed to fetch audio from {url}: {e!r}") from e

            suffix = PurePosixPath(urlparse(url).path).suffix.lower()
            if suffix not in AUDIO_SUFFIXES:
                suffix = mimetypes.guess_extension(mime_type) or ".mp3"
            audio_key = keys.audio_key(source_id, suffix)
            await self._storage.upload_file(audio_path, audio_key, mime_type)
        finally:
            await asyncio.to_thread(self._remove, audio_path)

        logger.info("Ingested audio %s (%s bytes) as %s", url, file_size, audio_key)
        return EpisodeRecord(
            file_size=file_size,
            file_url=self._storage.public_url(audio_key),
            source_id=source_id,
            created_at=datetime.now(timezone.utc),
            display_name=_audio_title(url),
            original_link=url,
            mime_type=mime_type,
        )

    async def extract_audio(self, message_id: int, url: str) -> None:
        output = self._tmp_dir / f"{message_id}%(id)s.%(ext)s"
        args = ["-x", "--audio-format", "mp3", "-o", str(output), url]
        await run_extractor(
            self._extractor_path,
            args,
            timeout=self._timeout,
            env={"https_proxy": ""},
        )

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    async def _publish(
        self, user: User, keys: UserFeedKeys, record: EpisodeRecord
    ) -> str:
        feed_url = self._storage.public_url(keys.feed_key)

        async def upload_feed(episodes: list[EpisodeRecord]) -> None:
            document = build_feed(user.display_name, feed_url, episodes)
            await self._storage.put_object(keys.feed_key, document, RSS_MIME)

        episodes = await self._episodes.prepend(keys, record, after_save=upload_feed)
        logger.info("Feed %s now has %s episodes", keys.feed_key, len(episodes))
        return feed_url

    @staticmethod
    async def _save_body(response: httpx.Response, path: Path) -> int:
        size = 0
        with path.open("wb") as out:
            async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                await asyncio.to_thread(out.write, chunk)
                size += len(chunk)
        return size

    async def _reports_audio(self, url: str) -> bool:
        try:
            response = await self._http.head(url, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.debug("HEAD %s failed, not treating it as audio: %r", url, e)
            return False
        content_type = response.headers.get("content-type", "")
        return not response.is_error and content_type.startswith("audio/")

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Failed to remove %s", path, exc_info=True)
