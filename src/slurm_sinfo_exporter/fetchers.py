"""Fetchers that retrieve the raw node inventory payload.

A fetcher is any zero-argument callable returning the payload bytes. It
raises FetchFailure when the data source cannot be reached; it never
retries and owns its own timeout.
"""

import subprocess
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TypeAlias

import structlog

from .errors import FetchFailure

logger = structlog.get_logger(__name__)

Fetcher: TypeAlias = Callable[[], bytes]

DEFAULT_SINFO_COMMAND = ("sinfo", "--json")

DEFAULT_CLI_TIMEOUT = 30.0


class CliFetcher:
    """Fetch the node inventory by running the scheduler CLI.

    Each call runs the command once and returns its standard output.
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_SINFO_COMMAND,
        timeout: float = DEFAULT_CLI_TIMEOUT,
    ):
        """Initialize the CLI fetcher.

        Args:
            command: Program and arguments to run (default: sinfo --json).
            timeout: Seconds to wait for the command before giving up.

        Raises:
            ValueError: If command is empty or timeout is not positive.
        """
        if not command:
            msg = "command cannot be empty"
            raise ValueError(msg)
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.command = tuple(command)
        self._timeout = timeout

    def __call__(self) -> bytes:
        start_time = time.time()
        logger.debug("Running command", command=" ".join(self.command))
        try:
            result = subprocess.run(  # noqa: S603
                self.command,
                capture_output=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            msg = f"command not found: {self.command[0]}"
            raise FetchFailure(msg) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"command timed out after {self._timeout}s: {' '.join(self.command)}"
            raise FetchFailure(msg) from exc

        duration = time.time() - start_time
        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            logger.error(
                "Command failed",
                command=" ".join(self.command),
                returncode=result.returncode,
                stderr=stderr,
            )
            msg = f"{self.command[0]} exited with status {result.returncode}: {stderr}"
            raise FetchFailure(msg)

        logger.debug("Command completed", duration_seconds=round(duration, 3))
        return result.stdout


class FileFetcher:
    """Fetch the node inventory from a JSON file on disk.

    Useful for replaying a captured payload without access to the cluster.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def __call__(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as exc:
            msg = f"cannot read payload file {self.path}: {exc}"
            raise FetchFailure(msg) from exc
