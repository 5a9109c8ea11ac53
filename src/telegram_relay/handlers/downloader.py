"""Short-video download: Instagram reels and YouTube shorts sent back as videos."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from ..adapters.extractor import run_extractor
from ..errors import NotFoundError
from ..models import Message
from ..telegram_api import TelegramClient
from .base import Outcome


logger = logging.getLogger(__name__)

INSTAGRAM_URL_START = "https://www.instagram.com/reel/"
YT_URL_START = "https://www.youtube.com/shorts/"

ID_PATTERNS = {
    INSTAGRAM_URL_START: re.compile(r"(v=|reel/)(?P<id>[^/?#]+)"),
    YT_URL_START: re.compile(r"(v=|shorts/)(?P<id>[^/?#]+)"),
}


def extract_video_id(url: str) -> str:
    """
    Extract the video id from a reel / short URL.

    Raises:
        NotFoundError if the URL has no known prefix or no id after it.
    """
    for prefix, pattern in ID_PATTERNS.items():
        if url.startswith(prefix):
            match = pattern.search(url)
            if match:
                return match.group("id")
            raise NotFoundError(f"Can't parse video id from url {url}")
    raise NotFoundError(f"Didn't find id regex for url {url}")


def find_downloaded_file(download_dir: Path, expected: Path) -> Path:
    """Return the file the tool produced, preferring the requested path."""
    if expected.exists():
        return expected
    # yt-dlp may pick another container when remuxing is not possible
    candidates = [p for p in download_dir.iterdir() if p.is_file()]
    if len(candidates) == 1:
        return candidates[0]
    raise NotFoundError(
        f"Expected one downloaded file in {download_dir}, found {len(candidates)}"
    )


class DownloaderHandler:
    name = "Downloader"

    def __init__(
        self,
        telegram: TelegramClient,
        *,
        yt_dlp_path: Path,
        socks_proxy_url: str,
        cookies_path: Path,
        tmp_dir: Path,
        timeout: Optional[float] = None,
    ):
        self._telegram = telegram
        self._yt_dlp_path = yt_dlp_path
        self._socks_proxy_url = socks_proxy_url
        self._cookies_path = cookies_path
        self._tmp_dir = Path(tmp_dir)
        self._timeout = timeout

    async def process(self, message: Message) -> Outcome:
        text = (message.text or "").strip()
        if not text.startswith((INSTAGRAM_URL_START, YT_URL_START)):
            return Outcome.SKIPPED

        video_id = extract_video_id(text)
        download_dir = Path(
            tempfile.mkdtemp(prefix=f"tmp_{message.message_id}_", dir=self._tmp_dir)
        )
        try:
            expected = download_dir / f"{video_id}.mp4"
            await self.download(text, expected)
            video_path = find_downloaded_file(download_dir, expected)
            await self._telegram.send_video(
                message.chat_id, video_path, reply_to=message.message_id
            )
            logger.info("Sent %s (%s bytes)", video_path.name, video_path.stat().st_size)
        finally:
            await asyncio.to_thread(self._cleanup, download_dir)
        return Outcome.HANDLED

    async def download(self, url: str, path: Path) -> None:
        args = [
            "-o",
            str(path),
            "--proxy",
            self._socks_proxy_url,
            "--cookies",
            str(self._cookies_path),
            url,
        ]
        await run_extractor(self._yt_dlp_path, args, timeout=self._timeout)

    @staticmethod
    def _cleanup(download_dir: Path) -> None:
        try:
            shutil.rmtree(download_dir)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Failed to remove %s during cleanup", download_dir, exc_info=True)
