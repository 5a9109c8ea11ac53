"""Adapters for the external systems the handlers talk to."""

from .extractor import ExtractorResult, run_extractor
from .storage import S3Storage
from .transmission import TorrentAdded, TorrentDuplicate, TransmissionClient
from .youtube import Snippet, YoutubeClient

__all__ = [
    "ExtractorResult",
    "run_extractor",
    "S3Storage",
    "TorrentAdded",
    "TorrentDuplicate",
    "TransmissionClient",
    "Snippet",
    "YoutubeClient",
]
