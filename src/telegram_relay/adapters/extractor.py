"""Subprocess wrapper for the external media download tool (yt-dlp / youtube-dl)."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from ..errors import SubprocessError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractorResult:
    """Captured result of a successful extractor run."""

    returncode: int
    stdout: str
    stderr: str


async def run_extractor(
    binary: str | Path,
    args: Sequence[str],
    *,
    timeout: Optional[float] = None,
    env: Optional[dict[str, str]] = None,
) -> ExtractorResult:
    """
    Run the download tool and capture its output.

    Args:
        binary: Path or name of the executable
        args: Arguments passed after the binary
        timeout: Seconds before the process is killed (None = wait forever)
        env: Variables overriding the inherited environment

    Returns:
        ExtractorResult for a zero exit status

    Raises:
        SubprocessError if the tool can't be started, exits non-zero or times out.
        stdout/stderr are attached for diagnostics.
    """
    command = [str(binary), *args]
    process_env = None
    if env is not None:
        process_env = {**os.environ, **env}

    logger.debug("Running %s", command)
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=process_env,
            start_new_session=True,
        )
    except OSError as e:
        raise SubprocessError(f"Failed to execute {binary}: {e}") from e

    try:
        stdout_raw, stderr_raw = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        # The tool runs in its own session; kill the whole group so its children
        # release the output pipes
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        stdout_raw, stderr_raw = await process.communicate()
        raise SubprocessError(
            f"{Path(str(binary)).name} did not finish in {timeout}s",
            returncode=process.returncode,
            stdout=stdout_raw.decode("utf-8", errors="replace"),
            stderr=stderr_raw.decode("utf-8", errors="replace"),
            timed_out=True,
        )

    stdout = stdout_raw.decode("utf-8", errors="replace")
    stderr = stderr_raw.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise SubprocessError(
            f"{Path(str(binary)).name} exited with a non-zero status",
            returncode=process.returncode,
            stdout=stdout,
            stderr=stderr,
        )

    return ExtractorResult(returncode=process.returncode, stdout=stdout, stderr=stderr)
