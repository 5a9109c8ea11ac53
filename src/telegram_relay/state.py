"""Persisted update offset (the dispatch watermark).

The offset is a single plain-text integer: the last update_id whose
messages were handed to every handler. It is read once at startup and
overwritten after each dispatched batch.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from .errors import ConfigError


logger = logging.getLogger(__name__)


class OffsetStore:
    """File-backed storage for the last processed update id."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> int:
        """
        Read the stored offset.

        Returns:
            The last processed update id, or 0 when the file does not exist yet.

        Raises:
            ConfigError if the file exists but cannot be read or parsed.
        """
        if not self.path.exists():
            logger.warning(
                "State file %s not found, starting from the oldest pending update",
                self.path,
            )
            return 0

        try:
            contents = self.path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ConfigError(f"Can't read bot state file {self.path}: {e}") from e

        if not contents:
            return 0
        try:
            return int(contents)
        except ValueError as e:
            raise ConfigError(
                f"Bot state in {self.path} is corrupted: {contents[:50]!r}"
            ) from e

    def save(self, update_id: int) -> bool:
        """
        Persist a new offset. Best-effort: failures are logged, not raised.

        Returns:
            True if the offset reached the disk.
        """
        with self._lock:
            tmp_path = self.path.with_name(f"{self.path.name}.tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(str(update_id), encoding="utf-8")
                os.replace(tmp_path, self.path)
            except OSError:
                logger.exception(
                    "Can't save new state %s to bot state file %s", update_id, self.path
                )
                return False
        return True
