"""Per-user episode list stored as a msgpack blob in object storage.

The list is most-recent-first and rewritten as a whole on every append.
No de-duplication is done: submitting the same video twice (or replaying an
update after a restart) yields two entries.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

import msgpack
import pydantic
from pydantic import BaseModel, TypeAdapter

from ...adapters.storage import S3Storage
from ...errors import DecodeError, NotFoundError
from .paths import UserFeedKeys


logger = logging.getLogger(__name__)


class EpisodeRecord(BaseModel):
    """Metadata of one ingested media item."""

    file_size: int
    file_url: str
    source_id: str
    created_at: datetime
    display_name: str
    original_link: str
    mime_type: str = "audio/mpeg"


_EPISODE_LIST = TypeAdapter(list[EpisodeRecord])

AfterSave = Callable[[list[EpisodeRecord]], Awaitable[None]]


def serialize_episodes(episodes: list[EpisodeRecord]) -> bytes:
    return msgpack.packb(
        [episode.model_dump(mode="json") for episode in episodes], use_bin_type=True
    )


def deserialize_episodes(data: bytes) -> list[EpisodeRecord]:
    """
    Decode a stored episode list.

    Raises:
        DecodeError if the blob is not a msgpack list of episode records.
    """
    if not data:
        return []
    try:
        raw = msgpack.unpackb(data, raw=False)
    except (ValueError, msgpack.UnpackException) as e:
        raise DecodeError(f"Episode list is not valid msgpack: {e}") from e
    try:
        return _EPISODE_LIST.validate_python(raw)
    except pydantic.ValidationError as e:
        raise DecodeError(f"Episode list has unexpected shape: {e}") from e


class EpisodeStore:
    """
    Load / store episode lists with one lock per user.

    Appends for the same user are serialized so concurrent ingestions can't
    lose each other's record; different users never wait on each other.
    """

    def __init__(self, storage: S3Storage):
        self._storage = storage
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, keys: UserFeedKeys) -> asyncio.Lock:
        return self._locks.setdefault(keys.metadata_key, asyncio.Lock())

    async def load(self, keys: UserFeedKeys) -> list[EpisodeRecord]:
        """Current episode list of a user, empty if none was stored yet."""
        try:
            data = await self._storage.get_object(keys.metadata_key)
        except NotFoundError:
            return []
        return deserialize_episodes(data)

    async def save(self, keys: UserFeedKeys, episodes: list[EpisodeRecord]) -> None:
        await self._storage.put_object(
            keys.metadata_key,
            serialize_episodes(episodes),
            content_type="application/msgpack",
        )

    async def prepend(
        self,
        keys: UserFeedKeys,
        record: EpisodeRecord,
        after_save: Optional[AfterSave] = None,
    ) -> list[EpisodeRecord]:
        """
        Put a new record in front of the user's list and store it.

        Args:
            keys: Storage keys of the user
            record: Episode to add
            after_save: Runs with the updated list while the lock is still held
                (feed regeneration belongs to the same critical section)

        Returns:
            The updated list, newest first
        """
        async with self.lock_for(keys):
            episodes = await self.load(keys)
            episodes.insert(0, record)
            await self.save(keys, episodes)
            if after_save is not None:
                await after_save(episodes)
        logger.debug("Stored %s episodes at %s", len(episodes), keys.metadata_key)
        return episodes
