"""Object-storage key layout for a user's podcast feed."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UserFeedKeys:
    """Canonical storage keys for one user's episodes and feed."""

    metadata_key: str
    audio_prefix: str
    feed_key: str

    def audio_key(self, source_id: str, extension: str = ".mp3") -> str:
        return f"{self.audio_prefix}/{source_id}{extension}"


def user_feed_keys(user: str | int) -> UserFeedKeys:
    """
    Compute the storage keys of a user's feed.

    Layout:
      <user>/metadata.mp       episode list (msgpack)
      <user>/audio/<id>.<ext>  uploaded audio files
      <user>/feed.xml          RSS document

    Args:
        user: Storage namespace of the user (their Telegram id)

    Returns:
        UserFeedKeys with all canonical keys for the user
    """
    return UserFeedKeys(
        metadata_key=f"{user}/metadata.mp",
        audio_prefix=f"{user}/audio",
        feed_key=f"{user}/feed.xml",
    )
