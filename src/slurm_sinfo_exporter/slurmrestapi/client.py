"""SLURM REST API client.

Provides an HTTP fetcher for the node inventory with token-based
authentication and thread safety. The response body is returned as-is so
that REST and CLI sources share the same parser.
"""

import base64
import json
import threading
import time
from pathlib import Path

import httpx
import structlog

from ..errors import FetchFailure

logger = structlog.get_logger(__name__)

# The node payload schema might differ with any other API version.
DEFAULT_API_VERSION = "v0.0.38"

DEFAULT_TIMEOUT = 30.0


class ExpiredTokenError(Exception):
    """Raised when the Slurm JWT has expired."""


def validate_jwt_not_expired(token: str) -> None:
    """Check that a JWT token has not expired.

    Decodes the JWT payload without verifying the signature and checks
    the ``exp`` claim against the current time. If the token is not a
    valid JWT or has no ``exp`` claim, a warning is logged and execution
    continues.

    Args:
        token: The raw JWT string (header.payload.signature).

    Raises:
        ExpiredTokenError: If the token's ``exp`` claim is in the past.
    """
    parts = token.split(".")
    if len(parts) != 3:  # noqa: PLR2004
        logger.warning("Token does not appear to be a JWT, skipping expiry check")
        return

    try:
        # JWT base64url encoding omits padding
        payload_b64 = parts[1] + "=" * (-len(parts[1]) % 4)
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (ValueError, json.JSONDecodeError):
        logger.warning("Failed to decode JWT payload, skipping expiry check")
        return

    exp = payload.get("exp") if isinstance(payload, dict) else None
    if exp is None:
        logger.warning("JWT has no 'exp' claim, skipping expiry check")
        return

    now = time.time()
    if now >= exp:
        msg = f"Slurm JWT has expired (exp={exp}, now={int(now)})"
        raise ExpiredTokenError(msg)

    logger.info("JWT expiry validated", expires_in_seconds=int(exp - now))


class SlurmRestApiClient:
    """HTTP client for the SLURM REST API.

    Fetches the node inventory document from slurmrestd. Thread-safe
    through thread-local storage of httpx.Client instances. Can be used as
    a context manager for automatic cleanup.
    """

    def __init__(
        self,
        base_url: str,
        token_file: str | Path | None = None,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the REST API client.

        Args:
            base_url: Base URL for the SLURM REST API (e.g., "http://localhost:6820").
            token_file: Path to file containing authentication token.
            api_version: SLURM REST API version (default: v0.0.38).
            timeout: Request timeout in seconds (default: 30.0).
            transport: Optional httpx transport, mainly for tests.

        Raises:
            ValueError: If base_url is empty or timeout is not positive.
            FileNotFoundError: If token_file is specified but doesn't exist.
            ExpiredTokenError: If the token is a JWT that has expired.
        """
        if not base_url:
            msg = "base_url cannot be empty"
            raise ValueError(msg)
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self._timeout = timeout
        self._transport = transport

        self._headers = {"Accept": "application/json"}

        if token_file:
            token_path = Path(token_file)
            if not token_path.exists():
                msg = f"Token file not found: {token_file}"
                raise FileNotFoundError(msg)
            token = token_path.read_text().strip()
            validate_jwt_not_expired(token)
            self._headers["X-SLURM-USER-TOKEN"] = token

        self._local = threading.local()

    @property
    def client(self) -> httpx.Client:
        """Get or create thread-local httpx client."""
        if not hasattr(self._local, "client") or self._local.client.is_closed:
            self._local.client = httpx.Client(
                base_url=self.base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._local.client

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager and cleanup resources."""
        self.close()

    def close(self):
        """Close the thread-local HTTP client if open."""
        if hasattr(self._local, "client") and not self._local.client.is_closed:
            self._local.client.close()

    @property
    def nodes_endpoint(self) -> str:
        """Path of the node inventory endpoint for the configured API version."""
        return f"/slurm/{self.api_version}/nodes"

    def get_nodes_payload(self) -> bytes:
        """Fetch the raw node inventory from the SLURM REST API.

        Returns:
            Response body, unparsed.

        Raises:
            FetchFailure: If the request fails or returns an error status.
        """
        start_time = time.time()
        logger.debug("Making API request", method="GET", endpoint=self.nodes_endpoint)
        try:
            response = self.client.get(self.nodes_endpoint)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            duration = time.time() - start_time
            logger.exception(
                "API request failed",
                endpoint=self.nodes_endpoint,
                duration_seconds=round(duration, 3),
            )
            msg = f"request to {self.base_url}{self.nodes_endpoint} failed: {exc}"
            raise FetchFailure(msg) from exc

        duration = time.time() - start_time
        logger.debug("API request completed", duration_seconds=round(duration, 3))
        return response.content
