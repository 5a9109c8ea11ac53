"""Command-line entry point for the Telegram relay bot."""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

import click
import httpx

from .config import BotConfig, build_config
from .dispatcher import Dispatcher
from .errors import ConfigError
from .handlers import HandlerContext, build_handlers
from .state import OffsetStore
from .telegram_api import TelegramClient


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: Iterable[str], fmt: str, datefmt: Optional[str] = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first so a secret containing another is replaced whole
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _configure_logging(log_level: str, secrets: Iterable[str] = ()) -> None:
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(_RedactingFormatter(secrets, fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    # Request lines carry the bot token in the URL
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _log_banner(config: BotConfig) -> None:
    settings = config.settings
    logger.info("=" * 60)
    logger.info("Telegram Relay Bot")
    logger.info("=" * 60)
    logger.info(f"Data directory: {config.data_dir.resolve()}")
    logger.info(f"State file: {config.state_path}")
    logger.info(f"Temp directory: {config.tmp_dir}")
    logger.info(f"Settings file: {config.settings_path}")
    logger.info(f"Handlers: {', '.join(config.enabled_handlers) or 'none'}")
    logger.info(f"Poll timeout: {settings.poll_timeout_seconds}s")
    logger.info(f"Retry sleep: {settings.retry_sleep_seconds}s")
    logger.info(f"HTTP timeout: {settings.http_timeout_seconds}")
    logger.info(f"Subprocess timeout: {settings.subprocess_timeout_seconds}")
    logger.info(f"Await handlers: {settings.await_handlers}")
    logger.info("=" * 60)


async def run(config: BotConfig, last_update_id: int) -> None:
    """Run the poll loop until cancelled."""
    settings = config.settings
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http:
        telegram = TelegramClient(
            config.telegram_token,
            api_base=config.api_base,
            poll_timeout=settings.poll_timeout_seconds,
            http_timeout=settings.http_timeout_seconds,
            http_client=http,
        )
        context = HandlerContext(config=config, telegram=telegram, http=http)
        dispatcher = Dispatcher(
            telegram,
            build_handlers(config, context),
            OffsetStore(config.state_path),
            last_update_id=last_update_id,
            retry_sleep=settings.retry_sleep_seconds,
            await_handlers=settings.await_handlers,
        )
        await dispatcher.run_forever()


@click.command()
@click.option(
    "--data-dir",
    type=click.Path(path_type=Path),
    default="./data",
    help="Data directory for the offset file and settings (default: ./data)",
)
@click.option(
    "--settings",
    "settings_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to a settings.yaml to import into the data directory (overrides existing)",
)
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
def main(data_dir: Path, settings_file: Optional[Path], log_level: str):
    """Telegram Relay Bot.

    Long-poll the Telegram Bot API and hand every message to the enabled
    feature handlers.

    \b
    Configuration:
    - Bot token and integrations: TELEGRAM_TOKEN, TRANSMISSION_ADDRESS,
      YOUTUBE_EXTRACTOR, GOOGLE_API_KEY, BOT_BUCKET_NAME, DOWNLOADER_*
      as environment variables or in a .env file.
    - Runtime settings (handlers, timeouts, await_handlers):
      stored in {data-dir}/settings.yaml.
    - Use --settings to import a settings.yaml template on first run
      or to reset settings.
    """
    _configure_logging(log_level)

    # 1. Build config from env, CLI and settings.yaml
    try:
        config = build_config(Path(data_dir), settings_file)
    except ConfigError as e:
        raise click.ClickException(str(e))

    # 2. Keep secrets out of every log line from here on
    _configure_logging(log_level, config.secrets())
    _log_banner(config)

    # 3. Read the watermark
    try:
        last_update_id = OffsetStore(config.state_path).load()
    except ConfigError as e:
        raise click.ClickException(str(e))

    # 4. Poll until interrupted
    try:
        asyncio.run(run(config, last_update_id))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
