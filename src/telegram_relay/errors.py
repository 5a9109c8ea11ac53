"""Error taxonomy shared by adapters, handlers and the dispatch loop.

Adapters translate library exceptions (httpx, botocore, subprocess spawn
errors) into these types so the dispatcher only has one family to report.
"""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base class for all errors raised by telegram_relay."""


class TransportError(RelayError):
    """Network or HTTP failure while talking to an external service."""


class DecodeError(RelayError):
    """Response body could not be parsed into the expected shape."""


class NotFoundError(RelayError):
    """A required object does not exist (storage key, metadata, regex match)."""


class ValidationError(RelayError):
    """An incoming message lacks a field the handler requires."""


class ConfigError(RelayError):
    """Startup configuration is missing or invalid."""


class SubprocessError(RelayError):
    """External tool exited non-zero, could not be started, or timed out."""

    def __init__(
        self,
        message: str,
        *,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out

    def __str__(self) -> str:
        base = super().__str__()
        details = []
        if self.returncode is not None:
            details.append(f"exit code {self.returncode}")
        if self.timed_out:
            details.append("timed out")
        if self.stderr.strip():
            details.append(f"stderr: {self.stderr.strip()[-2000:]}")
        elif self.stdout.strip():
            details.append(f"stdout: {self.stdout.strip()[-2000:]}")
        if not details:
            return base
        return f"{base} ({'; '.join(details)})"
