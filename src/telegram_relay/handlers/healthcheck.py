"""Liveness check: answers ``ping`` with ``pong``."""

from __future__ import annotations

from ..models import Message
from ..telegram_api import TelegramClient
from .base import Outcome


class HealthCheckHandler:
    name = "HealthCheck"

    def __init__(self, telegram: TelegramClient):
        self._telegram = telegram

    async def process(self, message: Message) -> Outcome:
        if not message.text or not message.text.startswith("ping"):
            return Outcome.SKIPPED

        await self._telegram.send_text(
            message.chat_id, "pong", reply_to=message.message_id
        )
        return Outcome.HANDLED
