"""Handler contract shared by every feature."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol

import httpx

from ..config import BotConfig
from ..models import Message
from ..telegram_api import TelegramClient


class Outcome(enum.Enum):
    """Result of a handler invocation that did not fail."""

    SKIPPED = "skipped"  # trigger did not match
    HANDLED = "handled"  # side effects and reply already performed


class Handler(Protocol):
    """
    One feature reacting to incoming messages.

    ``process`` must be safe to run concurrently with other handlers and with
    itself for different updates. Failures propagate as exceptions; the
    dispatcher reports them to the chat.
    """

    name: str

    async def process(self, message: Message) -> Outcome:
        ...


@dataclass
class HandlerContext:
    """Dependencies handed to every handler at construction time."""

    config: BotConfig
    telegram: TelegramClient
    http: httpx.AsyncClient
