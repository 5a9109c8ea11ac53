"""Configuration management for the Telegram relay bot.

Configuration sources (no overlap):
- bot token, integration endpoints, secrets → env vars / .env only
- data_dir                                   → CLI --data-dir (default ./data)
- settings file                              → CLI --settings or {data_dir}/settings.yaml
- handlers, poll/retry/timeouts, await_handlers → settings.yaml
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import pydantic
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigError
from .telegram_api import DEFAULT_API_BASE


logger = logging.getLogger(__name__)

HEALTHCHECK = "healthcheck"
TORRENT = "torrent"
YOUTUBE2RSS = "youtube2rss"
DOWNLOADER = "downloader"

# Also the order in which handlers see every message
KNOWN_HANDLERS = (HEALTHCHECK, TORRENT, YOUTUBE2RSS, DOWNLOADER)

# Environment variables each feature cannot start without
REQUIRED_ENV = {
    HEALTHCHECK: (),
    TORRENT: ("TRANSMISSION_ADDRESS",),
    YOUTUBE2RSS: ("YOUTUBE_EXTRACTOR", "GOOGLE_API_KEY", "BOT_BUCKET_NAME"),
    DOWNLOADER: (
        "DOWNLOADER_YT_DLP_PATH",
        "DOWNLOADER_SOCKS_PROXY",
        "DOWNLOADER_COOKIES_PATH",
    ),
}

# Environment variable → BotConfig field
ENV_FIELDS = {
    "TELEGRAM_TOKEN": "telegram_token",
    "TELEGRAM_API_BASE": "api_base",
    "BOT_STATE_PATH": "state_path",
    "BOT_TMP_DIR": "tmp_dir",
    "TRANSMISSION_ADDRESS": "transmission_address",
    "YOUTUBE_EXTRACTOR": "youtube_extractor",
    "GOOGLE_API_KEY": "google_api_key",
    "BOT_BUCKET_NAME": "bucket_name",
    "S3_ENDPOINT_URL": "s3_endpoint_url",
    "S3_REGION": "s3_region",
    "AWS_ACCESS_KEY_ID": "aws_access_key_id",
    "AWS_SECRET_ACCESS_KEY": "aws_secret_access_key",
    "DOWNLOADER_YT_DLP_PATH": "yt_dlp_path",
    "DOWNLOADER_SOCKS_PROXY": "socks_proxy_url",
    "DOWNLOADER_COOKIES_PATH": "cookies_path",
}

DEFAULT_S3_ENDPOINT = "https://storage.yandexcloud.net"
DEFAULT_S3_REGION = "ru-central1"

SETTINGS_HEADER = (
    "# Telegram Relay: runtime settings\n"
    "# handlers: any of healthcheck, torrent, youtube2rss, downloader\n\n"
)


class RuntimeSettings(BaseModel):
    """Tunable settings read from settings.yaml."""

    handlers: list[str] = Field(default_factory=lambda: list(KNOWN_HANDLERS))
    poll_timeout_seconds: int = Field(default=30, ge=0)
    retry_sleep_seconds: float = Field(default=1.0, ge=0)
    http_timeout_seconds: Optional[float] = Field(default=60.0, gt=0)
    subprocess_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    await_handlers: bool = False

    @field_validator("handlers")
    @classmethod
    def _known_handlers(cls, value: list[str]) -> list[str]:
        unknown = [name for name in value if name not in KNOWN_HANDLERS]
        if unknown:
            raise ValueError(
                f"unknown handlers {unknown}, expected any of {list(KNOWN_HANDLERS)}"
            )
        # Deduplicate and keep the canonical dispatch order
        return [name for name in KNOWN_HANDLERS if name in value]


@dataclass
class BotConfig:
    """Relay configuration."""

    # Telegram Bot API (from env vars)
    telegram_token: str
    api_base: str = DEFAULT_API_BASE

    # Data directory (from CLI)
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    state_path: Optional[Path] = None
    tmp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    # Torrent
    transmission_address: Optional[str] = None

    # Podcast
    youtube_extractor: Optional[str] = None
    google_api_key: Optional[str] = None
    bucket_name: Optional[str] = None
    s3_endpoint_url: str = DEFAULT_S3_ENDPOINT
    s3_region: str = DEFAULT_S3_REGION
    aws_access_key_id: Optional[str] = field(default=None, repr=False)
    aws_secret_access_key: Optional[str] = field(default=None, repr=False)

    # Short-video downloader
    yt_dlp_path: Optional[Path] = None
    socks_proxy_url: Optional[str] = field(default=None, repr=False)
    cookies_path: Optional[Path] = None

    # Runtime-tunable settings (from settings.yaml)
    settings: RuntimeSettings = field(default_factory=RuntimeSettings)

    # Internal: path to the active settings.yaml file
    settings_path: Optional[Path] = field(default=None, repr=False)

    def __post_init__(self):
        """Convert string paths and create directories."""
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)
        if isinstance(self.tmp_dir, str):
            self.tmp_dir = Path(self.tmp_dir)
        if isinstance(self.settings_path, str):
            self.settings_path = Path(self.settings_path)
        for name in ("yt_dlp_path", "cookies_path"):
            value = getattr(self, name)
            if isinstance(value, str):
                setattr(self, name, Path(value))
        if self.state_path is None:
            self.state_path = self.data_dir / "update_id"
        elif isinstance(self.state_path, str):
            self.state_path = Path(self.state_path)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.tmp_dir.mkdir(parents=True, exist_ok=True)

    @property
    def storage_host(self) -> str:
        """Host part of the S3 endpoint, used to build public object URLs."""
        return urlparse(self.s3_endpoint_url).netloc or self.s3_endpoint_url

    @property
    def enabled_handlers(self) -> list[str]:
        return list(self.settings.handlers)

    def secrets(self) -> list[str]:
        """Values that must never show up in logs."""
        values = [
            self.telegram_token,
            self.google_api_key,
            self.aws_secret_access_key,
            self.socks_proxy_url,
        ]
        return [value for value in values if value]


def load_env_config() -> dict:
    """
    Load relay credentials and integration endpoints from env / .env file.

    Returns:
        Dict of BotConfig keyword arguments for every variable that is set.

    Raises:
        ConfigError if TELEGRAM_TOKEN is missing.
    """
    load_dotenv()

    values = {}
    for env_name, attr in ENV_FIELDS.items():
        if value := os.getenv(env_name):
            values[attr] = value

    if "telegram_token" not in values:
        raise ConfigError(
            "Missing Telegram bot token.\n"
            "Set TELEGRAM_TOKEN as an environment variable\n"
            "or in a .env file in the working directory."
        )

    return values


def check_required_env(handlers: list[str], env_values: dict) -> None:
    """
    Make sure every enabled handler has the variables it needs.

    Raises:
        ConfigError naming all missing variables at once.
    """
    missing = []
    for handler in handlers:
        for env_name in REQUIRED_ENV[handler]:
            if not env_values.get(ENV_FIELDS[env_name]):
                missing.append(f"{env_name} (needed by {handler})")
    if missing:
        raise ConfigError(
            "Missing required environment variables:\n  " + "\n  ".join(missing)
        )


def load_settings(settings_path: Path) -> RuntimeSettings:
    """Load runtime-tunable settings from a YAML file."""
    try:
        with open(settings_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Can't read settings file {settings_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {settings_path} must contain a mapping")

    try:
        return RuntimeSettings.model_validate(data)
    except pydantic.ValidationError as e:
        raise ConfigError(f"Invalid settings in {settings_path}:\n{e}") from e


def resolve_settings_file(
    data_dir: Path, cli_settings_path: Optional[Path] = None
) -> Path:
    """
    Determine which settings.yaml to use and return the canonical path
    (always inside the data directory).

    Behaviour:
    - If --settings is given: copy that file into data_dir/settings.yaml
      (warn if overwriting). Return data_dir/settings.yaml.
    - If --settings is NOT given: look for data_dir/settings.yaml.
      If missing, create one with defaults. Return data_dir/settings.yaml.
    """
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    canonical = data_dir / "settings.yaml"

    if cli_settings_path is not None:
        cli_settings_path = Path(cli_settings_path)
        if not cli_settings_path.exists():
            raise ConfigError(
                f"Settings file not found: {cli_settings_path}\n"
                f"Provide a valid path or omit --settings to use defaults."
            )

        if cli_settings_path.resolve() != canonical.resolve():
            if canonical.exists():
                logger.warning(
                    "Overwriting existing %s with %s", canonical, cli_settings_path
                )
            shutil.copy2(cli_settings_path, canonical)
            logger.info("Settings imported from %s → %s", cli_settings_path, canonical)
    elif not canonical.exists():
        # First launch: create settings.yaml with defaults
        logger.info("No settings.yaml found in %s, creating with defaults", data_dir)
        with open(canonical, "w") as f:
            f.write(SETTINGS_HEADER)
            yaml.dump(
                RuntimeSettings().model_dump(),
                f,
                default_flow_style=False,
                sort_keys=False,
            )

    logger.info("Using settings file: %s", canonical)
    return canonical


def build_config(
    data_dir: Path, cli_settings_path: Optional[Path] = None
) -> BotConfig:
    """
    Assemble the full BotConfig from env, CLI and settings.yaml.

    Raises:
        ConfigError on any missing or invalid value; the caller aborts startup.
    """
    env_values = load_env_config()
    settings_path = resolve_settings_file(data_dir, cli_settings_path)
    settings = load_settings(settings_path)
    check_required_env(settings.handlers, env_values)

    return BotConfig(
        data_dir=Path(data_dir),
        settings=settings,
        settings_path=settings_path,
        **env_values,
    )
