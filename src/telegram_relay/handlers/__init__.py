"""Feature handlers and the factory that wires the enabled ones."""

from __future__ import annotations

import logging

from ..adapters.storage import S3Storage
from ..adapters.transmission import TransmissionClient
from ..adapters.youtube import YoutubeClient
from ..config import DOWNLOADER, HEALTHCHECK, TORRENT, YOUTUBE2RSS, BotConfig
from .base import Handler, HandlerContext, Outcome
from .downloader import DownloaderHandler
from .healthcheck import HealthCheckHandler
from .podcast import EpisodeStore, PodcastHandler
from .torrent import TorrentHandler


logger = logging.getLogger(__name__)


def _healthcheck(context: HandlerContext) -> Handler:
    return HealthCheckHandler(context.telegram)


def _torrent(context: HandlerContext) -> Handler:
    transmission = TransmissionClient(context.config.transmission_address, context.http)
    return TorrentHandler(context.telegram, transmission)


def _youtube2rss(context: HandlerContext) -> Handler:
    config = context.config
    storage = S3Storage(
        config.bucket_name,
        storage_host=config.storage_host,
        endpoint_url=config.s3_endpoint_url,
        region_name=config.s3_region,
        aws_access_key_id=config.aws_access_key_id,
        aws_secret_access_key=config.aws_secret_access_key,
    )
    return PodcastHandler(
        context.telegram,
        storage=storage,
        youtube=YoutubeClient(config.google_api_key, context.http),
        episodes=EpisodeStore(storage),
        http_client=context.http,
        extractor_path=config.youtube_extractor,
        tmp_dir=config.tmp_dir,
        timeout=config.settings.subprocess_timeout_seconds,
    )


def _downloader(context: HandlerContext) -> Handler:
    config = context.config
    return DownloaderHandler(
        context.telegram,
        yt_dlp_path=config.yt_dlp_path,
        socks_proxy_url=config.socks_proxy_url,
        cookies_path=config.cookies_path,
        tmp_dir=config.tmp_dir,
        timeout=config.settings.subprocess_timeout_seconds,
    )


_FACTORIES = {
    HEALTHCHECK: _healthcheck,
    TORRENT: _torrent,
    YOUTUBE2RSS: _youtube2rss,
    DOWNLOADER: _downloader,
}


def build_handlers(config: BotConfig, context: HandlerContext) -> list[Handler]:
    """
    Construct the enabled handlers in dispatch order.

    Args:
        config: Validated relay configuration
        context: Shared clients handed to the handlers

    Returns:
        One handler per enabled feature, ordered as in KNOWN_HANDLERS
    """
    handlers = [_FACTORIES[name](context) for name in config.enabled_handlers]
    logger.info("Enabled handlers: %s", ", ".join(h.name for h in handlers) or "none")
    return handlers


__all__ = [
    "Handler",
    "HandlerContext",
    "Outcome",
    "DownloaderHandler",
    "HealthCheckHandler",
    "PodcastHandler",
    "TorrentHandler",
    "build_handlers",
]
