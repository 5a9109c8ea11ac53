"""Shared test fixtures: temp dirs, config, mock Telegram client, fake storage."""

from __future__ import annotations

import pytest
import pytest_asyncio
import yaml
from httpx import AsyncClient

from telegram_relay.config import BotConfig, RuntimeSettings
from telegram_relay.handlers.podcast import EpisodeStore
from telegram_relay.state import OffsetStore

from .mock_services import FakeStorage, FakeYoutube, MockTelegramClient


# ---------------------------------------------------------------------------
# Temp directories
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_data_dir(tmp_path):
    """Temporary data directory with a settings.yaml."""
    data = tmp_path / "data"
    data.mkdir()

    settings = {
        "handlers": ["healthcheck", "torrent", "youtube2rss", "downloader"],
        "poll_timeout_seconds": 0,
        "retry_sleep_seconds": 0,
    }
    with open(data / "settings.yaml", "w") as f:
        yaml.dump(settings, f)

    return data


@pytest.fixture
def work_dir(tmp_path):
    """Scratch directory handed to handlers as BOT_TMP_DIR."""
    path = tmp_path / "work"
    path.mkdir()
    return path


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@pytest.fixture
def bot_config(tmp_data_dir, work_dir):
    """BotConfig wired to temp directories, no real credentials needed."""
    return BotConfig(
        telegram_token="123:secret-token",
        data_dir=tmp_data_dir,
        tmp_dir=work_dir,
        transmission_address="http://transmission.test/transmission/rpc",
        youtube_extractor="youtube-dl",
        google_api_key="google-key",
        bucket_name="bucket",
        yt_dlp_path=work_dir / "yt-dlp",
        socks_proxy_url="socks5://proxy.test:1080",
        cookies_path=work_dir / "cookies.txt",
        settings=RuntimeSettings(poll_timeout_seconds=0, retry_sleep_seconds=0),
        settings_path=tmp_data_dir / "settings.yaml",
    )


@pytest.fixture
def offset_store(tmp_data_dir):
    return OffsetStore(tmp_data_dir / "update_id")


# ---------------------------------------------------------------------------
# External system fakes
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_client():
    """Default (empty) MockTelegramClient.

    Override in individual test modules to supply custom update batches.
    """
    return MockTelegramClient()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def episode_store(storage):
    return EpisodeStore(storage)


@pytest.fixture
def youtube():
    return FakeYoutube(titles={"abc123": "Interesting talk"})


# ---------------------------------------------------------------------------
# Shared HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def http_client():
    """Plain httpx client; tests that hit HTTP build their own MockTransport."""
    async with AsyncClient() as c:
        yield c
