"""Poll loop: fetch updates, fan every message out to the handlers, advance the offset."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from .errors import DecodeError, TransportError
from .handlers.base import Handler
from .models import Message, Update
from .state import OffsetStore
from .telegram_api import TelegramClient


logger = logging.getLogger(__name__)

APOLOGY_TEMPLATE = "Something went wrong while processing the message in module {name}"


def apology_text(handler_name: str) -> str:
    return APOLOGY_TEMPLATE.format(name=handler_name)


class Dispatcher:
    """
    Owns the update watermark and the in-flight handler tasks.

    Every (update, handler) pair runs as its own task; a failing handler is
    reported to the chat and never affects the others or the loop.
    """

    def __init__(
        self,
        client: TelegramClient,
        handlers: Sequence[Handler],
        offset_store: OffsetStore,
        *,
        last_update_id: Optional[int] = None,
        retry_sleep: float = 1.0,
        await_handlers: bool = False,
    ):
        self._client = client
        self._handlers = list(handlers)
        self._offset_store = offset_store
        self.last_update_id = (
            offset_store.load() if last_update_id is None else last_update_id
        )
        self._retry_sleep = retry_sleep
        self._await_handlers = await_handlers
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of handler tasks still running."""
        return len(self._tasks)

    async def run_once(self) -> list[Update]:
        """
        Execute one fetch / dispatch / persist cycle.

        Returns:
            The updates of this cycle (empty after a failed fetch)
        """
        offset = self.last_update_id + 1
        try:
            updates = await self._client.get_updates(offset)
        except (TransportError, DecodeError) as e:
            logger.error("Failed to get updates from offset %s: %s", offset, e)
            await asyncio.sleep(self._retry_sleep)
            return []

        batch = []
        for update in updates:
            if update.message is None:
                logger.debug("Skipping update %s without a message", update.update_id)
                continue
            batch.extend(self._spawn(update.message))

        if self._await_handlers and batch:
            await asyncio.gather(*batch, return_exceptions=True)

        if updates:
            self.last_update_id = max(update.update_id for update in updates)
            logger.debug(
                "Dispatched %s updates, last update id %s",
                len(updates),
                self.last_update_id,
            )
        await asyncio.to_thread(self._offset_store.save, self.last_update_id)
        return updates

    async def run_forever(self) -> None:
        """Loop until cancelled, then wait for in-flight handlers."""
        logger.info("Polling for updates after %s", self.last_update_id)
        try:
            while True:
                await self.run_once()
        finally:
            await self.drain()

    async def drain(self) -> None:
        """Wait for every in-flight handler task."""
        if self._tasks:
            logger.info("Waiting for %s running handlers", len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, message: Message) -> list[asyncio.Task]:
        tasks = []
        for handler in self._handlers:
            task = asyncio.create_task(
                self._run_handler(handler, message),
                name=f"{handler.name}-{message.message_id}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)
        return tasks

    async def _run_handler(self, handler: Handler, message: Message) -> None:
        try:
            outcome = await handler.process(message)
        except Exception:
            logger.exception(
                "Handler %s failed on message %s from chat %s: %r",
                handler.name,
                message.message_id,
                message.chat_id,
                message.text,
            )
            await self._apologize(handler, message)
            return
        logger.debug("%s: %s message %s", handler.name, outcome.value, message.message_id)

    async def _apologize(self, handler: Handler, message: Message) -> None:
        try:
            await self._client.send_text(
                message.chat_id, apology_text(handler.name), reply_to=message.message_id
            )
        except Exception:
            logger.exception(
                "Can't send the error report for %s to chat %s",
                handler.name,
                message.chat_id,
            )
