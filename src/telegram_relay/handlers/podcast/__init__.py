"""Podcast ingestion: video links to per-user RSS feeds."""

from .episodes import EpisodeRecord, EpisodeStore, deserialize_episodes, serialize_episodes
from .feed import build_feed
from .handler import PodcastHandler
from .paths import UserFeedKeys, user_feed_keys

__all__ = [
    "EpisodeRecord",
    "EpisodeStore",
    "deserialize_episodes",
    "serialize_episodes",
    "build_feed",
    "PodcastHandler",
    "UserFeedKeys",
    "user_feed_keys",
]
