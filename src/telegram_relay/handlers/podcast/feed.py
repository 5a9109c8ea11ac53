"""RSS document for a user's episode list."""

from __future__ import annotations

from datetime import timezone

from feedgen.feed import FeedGenerator

from .episodes import EpisodeRecord


def build_feed(display_name: str, feed_url: str, episodes: list[EpisodeRecord]) -> bytes:
    """
    Render the RSS 2.0 feed of a user.

    Items follow the list order, so the newest episode is the first item.
    """
    fg = FeedGenerator()
    fg.title(f"{display_name} podcasts")
    fg.link(href=feed_url, rel="alternate")
    fg.link(href=feed_url, rel="self")
    fg.description(f"Audio saved by {display_name}")

    for episode in episodes:
        created_at = episode.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        entry = fg.add_entry(order="append")
        entry.title(episode.display_name)
        entry.guid(episode.file_url, permalink=True)
        entry.link(href=episode.original_link)
        entry.pubDate(created_at)
        entry.enclosure(episode.file_url, str(episode.file_size), episode.mime_type)

    return fg.rss_str(pretty=True)
