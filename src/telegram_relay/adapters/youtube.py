"""YouTube Data API client - video title lookup for podcast episodes."""

from __future__ import annotations

import logging
from typing import Optional

import httpx
import pydantic
from pydantic import BaseModel, ConfigDict, Field

from ..errors import DecodeError, TransportError


logger = logging.getLogger(__name__)

VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"


class Snippet(BaseModel):
    """Subset of the ``snippet`` part of a video resource."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    published_at: Optional[str] = Field(default=None, alias="publishedAt")
    channel_id: Optional[str] = Field(default=None, alias="channelId")
    description: str = ""


class _Item(BaseModel):
    id: str
    snippet: Snippet


class _VideosResponse(BaseModel):
    items: list[_Item] = Field(default_factory=list)


class YoutubeClient:
    """Reads video metadata with an API key."""

    def __init__(
        self, api_key: str, http_client: httpx.AsyncClient, base_url: str = VIDEOS_URL
    ):
        self._api_key = api_key
        self._http = http_client
        self._base_url = base_url

    async def get_video_info(self, video_id: str) -> Optional[Snippet]:
        """
        Fetch the snippet of one video.

        Returns:
            Snippet of the first item, or None when the API knows no such video.
        """
        params = {"part": "snippet", "id": video_id, "key": self._api_key}
        try:
            response = await self._http.get(self._base_url, params=params)
        except httpx.HTTPError as e:
            raise TransportError(
                f"Failed to send request for getting video info with id {video_id}: {e!r}"
            ) from e

        if response.is_error:
            raise TransportError(
                f"Video info request for {video_id} failed with HTTP {response.status_code}"
            )

        try:
            parsed = _VideosResponse.model_validate_json(response.content)
        except pydantic.ValidationError as e:
            raise DecodeError(
                f"Failed to deserialize result of video info request with id {video_id}"
            ) from e

        if not parsed.items:
            return None
        return parsed.items[0].snippet
