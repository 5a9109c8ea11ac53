"""Torrent submission: .torrent documents and magnet links go to Transmission."""

from __future__ import annotations

import logging

from ..adapters.transmission import TorrentAdded, TorrentAddResult, TransmissionClient
from ..models import Message
from ..telegram_api import TelegramClient
from .base import Outcome


logger = logging.getLogger(__name__)

TORRENT_SUFFIX = ".torrent"
MAGNET_PREFIX = "magnet:?"


def format_reply(result: TorrentAddResult) -> str:
    if isinstance(result, TorrentAdded):
        return f"{result.name} added successfully"
    return f"{result.name} was already added"


class TorrentHandler:
    name = "Torrent"

    def __init__(self, telegram: TelegramClient, transmission: TransmissionClient):
        self._telegram = telegram
        self._transmission = transmission

    async def process(self, message: Message) -> Outcome:
        document = message.document
        if document and (document.file_name or "").endswith(TORRENT_SUFFIX):
            result = await self._add_document(document.file_id)
        elif message.text and message.text.startswith(MAGNET_PREFIX):
            result = await self._transmission.torrent_add_filename(message.text.strip())
        else:
            return Outcome.SKIPPED

        logger.info("Torrent %s submitted: %s", result.name, type(result).__name__)
        await self._telegram.send_text(
            message.chat_id, format_reply(result), reply_to=message.message_id
        )
        return Outcome.HANDLED

    async def _add_document(self, file_id: str) -> TorrentAddResult:
        file_info = await self._telegram.get_file(file_id)
        content = await self._telegram.download_file(file_info.file_path)
        return await self._transmission.torrent_add_metainfo(content)
